# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Retention Manager - Delete archives older than the retention window.

Pruning is not scheduled on its own: the backup orchestrator runs it at
the end of every successful backup. If backups stop, pruning stops too.
"""

from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Collection, List

import aiofiles.os
import structlog

from dbsnap.archive.catalog import ARCHIVE_SUFFIX, ensure_backup_dir, format_file_size
from dbsnap.models import BackupInfo

logger = structlog.get_logger()


async def prune_old_backups(
    backup_dir: Path,
    retention_days: int,
    now: datetime | None = None,
    keep: Collection[str] = (),
) -> List[BackupInfo]:
    """
    Delete archives whose modification time is older than now - retention_days.

    A file that cannot be deleted is logged and skipped; it is picked up
    again by the next prune.

    Args:
        backup_dir: Archive storage directory
        retention_days: Retention window in days
        now: Reference time (default: current time)
        keep: Archive names never pruned (the archive just written)

    Returns:
        Descriptors of the deleted archives
    """
    await ensure_backup_dir(backup_dir)

    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=retention_days)
    removed: List[BackupInfo] = []

    for name in sorted(await aiofiles.os.listdir(backup_dir)):
        if not name.endswith(ARCHIVE_SUFFIX) or name in keep:
            continue
        archive_path = backup_dir / name

        try:
            stat = await aiofiles.os.stat(archive_path)
            mtime = datetime.fromtimestamp(stat.st_mtime, UTC)

            if mtime < cutoff:
                await aiofiles.os.remove(archive_path)

                removed.append(
                    BackupInfo(
                        name=name,
                        created_at=mtime.isoformat(),
                        size_bytes=stat.st_size,
                        size_human=format_file_size(stat.st_size),
                        path=str(archive_path),
                    )
                )

                logger.debug(
                    "backup_file_pruned",
                    path=str(archive_path),
                    age_days=(now - mtime).days,
                )

        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(
                "prune_file_error",
                path=str(archive_path),
                error=str(e),
            )

    logger.info(
        "backup_pruning_complete",
        files_deleted=len(removed),
        bytes_freed=sum(info.size_bytes for info in removed),
        retention_days=retention_days,
    )

    return removed
