# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Metadata Catalog - Enumerate stored archives and read their descriptors.

Metadata is an annotation: a missing or corrupt metadata.json never makes
an archive unusable, it is simply reported as absent.
"""

import asyncio
import json
from datetime import datetime, UTC
from pathlib import Path
from typing import List

import aiofiles.os
import structlog

from dbsnap.archive.writer import METADATA_MEMBER, read_member
from dbsnap.exceptions import BackupNotFoundError
from dbsnap.models import BackupInfo, BackupMetadata, BackupSummary

logger = structlog.get_logger()

ARCHIVE_SUFFIX = ".zip"
_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_file_size(size_bytes: int) -> str:
    """
    Format a byte count for humans, e.g. 1536 -> "1.50 KB".
    """
    if size_bytes <= 0:
        return "0 B"
    value = float(size_bytes)
    index = 0
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {_SIZE_UNITS[index]}"


def format_backup_name(created: datetime) -> str:
    """
    Archive file name for a creation time: backup_YYYY_MM_DD_HHMMSS.zip.

    The caller passes local time; the name doubles as the default sort key.
    """
    return f"backup_{created.strftime('%Y_%m_%d_%H%M%S')}{ARCHIVE_SUFFIX}"


async def ensure_backup_dir(backup_dir: Path) -> None:
    await aiofiles.os.makedirs(backup_dir, exist_ok=True)


async def read_metadata(archive_path: Path) -> BackupMetadata | None:
    """
    Read the metadata.json descriptor of an archive.

    Best effort: returns None (and logs a warning when the archive or the
    descriptor is unreadable) instead of raising.

    Args:
        archive_path: Path to the archive

    Returns:
        Parsed BackupMetadata, or None
    """
    try:
        loop = asyncio.get_event_loop()
        raw = await loop.run_in_executor(None, read_member, archive_path, METADATA_MEMBER)
        if raw is None:
            return None
        return BackupMetadata.from_dict(json.loads(raw.decode("utf-8")))
    except Exception as e:
        logger.warning(
            "backup_metadata_unreadable",
            archive_path=str(archive_path),
            error=str(e),
        )
        return None


async def describe_backup(archive_path: Path, include_metadata: bool = True) -> BackupInfo:
    """
    Stat an archive and build its BackupInfo.

    Raises:
        FileNotFoundError: If the archive does not exist
    """
    stat = await aiofiles.os.stat(archive_path)
    metadata = await read_metadata(archive_path) if include_metadata else None

    return BackupInfo(
        name=archive_path.name,
        created_at=datetime.fromtimestamp(stat.st_mtime, UTC).isoformat(),
        size_bytes=stat.st_size,
        size_human=format_file_size(stat.st_size),
        path=str(archive_path),
        metadata=metadata,
    )


async def list_backups(backup_dir: Path) -> List[BackupInfo]:
    """
    List stored archives, newest first.

    Only regular files ending in .zip are considered; staged .partial
    files and anything else in the directory are ignored.

    Args:
        backup_dir: Archive storage directory (created if missing)

    Returns:
        List of BackupInfo with metadata attached where readable
    """
    await ensure_backup_dir(backup_dir)

    backups: List[BackupInfo] = []

    for name in await aiofiles.os.listdir(backup_dir):
        if not name.endswith(ARCHIVE_SUFFIX):
            continue
        archive_path = backup_dir / name
        if not await aiofiles.os.path.isfile(archive_path):
            continue

        try:
            backups.append(await describe_backup(archive_path))
        except FileNotFoundError:
            # Pruned or deleted while listing
            continue

    backups.sort(key=lambda info: datetime.fromisoformat(info.created_at), reverse=True)
    return backups


def next_scheduled_backup_date(now: datetime | None = None) -> datetime:
    """
    First day of the next calendar month, 00:00 UTC.

    This is a scheduling hint for display only; the scheduler that
    actually triggers automatic backups lives outside this package.
    """
    now = (now or datetime.now(UTC)).astimezone(UTC)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=UTC)
    return datetime(now.year, now.month + 1, 1, tzinfo=UTC)


async def get_backup_summary(backup_dir: Path, now: datetime | None = None) -> BackupSummary:
    """
    Summarize stored archives.

    Args:
        backup_dir: Archive storage directory
        now: Reference time for the next scheduled backup (default: now)

    Returns:
        BackupSummary with total count, newest archive time and the next
        scheduled backup hint
    """
    backups = await list_backups(backup_dir)

    return BackupSummary(
        total=len(backups),
        last_backup_at=backups[0].created_at if backups else None,
        next_scheduled_backup_at=next_scheduled_backup_date(now).isoformat(),
    )


async def resolve_backup_path(backup_dir: Path, backup_name: str) -> Path:
    """
    Map an archive name to its path in storage.

    Only plain file names are accepted, so a name can never point outside
    the archive directory.

    Raises:
        BackupNotFoundError: If the name is invalid or no such archive exists
    """
    if (
        not backup_name
        or not backup_name.endswith(ARCHIVE_SUFFIX)
        or Path(backup_name).name != backup_name
        or "\\" in backup_name
        or backup_name in (".", "..")
    ):
        raise BackupNotFoundError(
            f"Backup {backup_name} does not exist",
            details={"backup_name": backup_name},
        )

    archive_path = backup_dir / backup_name
    if not await aiofiles.os.path.isfile(archive_path):
        raise BackupNotFoundError(
            f"Backup {backup_name} does not exist",
            details={"backup_name": backup_name},
        )

    return archive_path


async def delete_backup(backup_dir: Path, backup_name: str) -> BackupInfo:
    """
    Manually delete a stored archive.

    Returns:
        Descriptor of the deleted archive (without metadata)

    Raises:
        BackupNotFoundError: If no such archive exists
    """
    archive_path = await resolve_backup_path(backup_dir, backup_name)
    info = await describe_backup(archive_path, include_metadata=False)
    await aiofiles.os.remove(archive_path)

    logger.info("backup_deleted", backup_name=backup_name, size=info.size_bytes)

    return info
