# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Orchestrator - Take a snapshot and store it as an archive.

A backup runs these steps while holding the operation gate:

1. Serialize every table of the database
2. Build the metadata descriptor (version, time, trigger, row counts)
3. Write the archive (dump + metadata + asset tree)
4. Prune archives older than the retention window

The gate is released on every exit path, including failures.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import List

import aiofiles.os
import structlog

from dbsnap.archive import (
    describe_backup,
    format_backup_name,
    prune_old_backups,
    write_archive,
)
from dbsnap.archive.catalog import ARCHIVE_SUFFIX, ensure_backup_dir
from dbsnap.backup.gate import OperationGate
from dbsnap.config import SnapshotConfig, TriggerSource
from dbsnap.db import DatabaseAdapter
from dbsnap.models import METADATA_VERSION, BackupInfo, BackupMetadata, Requester
from dbsnap.serializer import serialize_database

logger = structlog.get_logger()


@dataclass
class CreateBackupOptions:
    """What the caller tells us about a backup request."""

    triggered_by: TriggerSource = TriggerSource.MANUAL
    requested_by: Requester | None = None


@dataclass
class CreateBackupResult:
    """Result of a backup operation."""

    backup: BackupInfo
    deleted: List[BackupInfo] = field(default_factory=list)
    operation_id: str = ""
    duration_seconds: float = 0.0


async def create_backup(
    config: SnapshotConfig,
    adapter: DatabaseAdapter,
    gate: OperationGate,
    options: CreateBackupOptions,
) -> CreateBackupResult:
    """
    Create a new backup archive.

    This is the main entry point for taking backups.

    Args:
        config: Snapshot configuration
        adapter: Connected database adapter
        gate: Operation gate shared with restores
        options: Trigger source and requester

    Returns:
        CreateBackupResult with the new archive and the pruned ones

    Raises:
        BackupInProgressError: If another backup is running (retry later)
        RestoreInProgressError: If a restore is running (retry later)
        SerializationError: If the database could not be dumped
        BackupError: If the archive could not be written
    """
    from ulid import ULID

    async with gate.backup():
        operation_id = str(ULID())
        start_time = datetime.now(UTC)
        triggered_by = TriggerSource(options.triggered_by)
        requested_by = options.requested_by or Requester()

        logger.info(
            "backup_started",
            operation_id=operation_id,
            triggered_by=triggered_by.value,
            requested_by=requested_by.name,
        )

        try:
            await ensure_backup_dir(config.backup_dir)
            archive_path = await _allocate_archive_path(config.backup_dir, datetime.now())

            # Step 1: Dump the database
            dump, table_counts = await serialize_database(adapter)

            # Step 2: Describe the snapshot
            metadata = BackupMetadata(
                version=METADATA_VERSION,
                created_at=datetime.now(UTC).isoformat(),
                triggered_by=triggered_by,
                requested_by=requested_by,
                table_counts=table_counts,
            )

            # Step 3: Package everything (staged, then renamed into place)
            await write_archive(
                archive_path,
                dump,
                metadata,
                uploads_dir=config.uploads_dir,
                compression_level=config.compression_level,
            )

            backup = await describe_backup(archive_path, include_metadata=False)
            backup.metadata = metadata

            # Step 4: Apply retention (never prunes the archive just written)
            deleted = await prune_old_backups(
                config.backup_dir,
                config.retention_days,
                keep={archive_path.name},
            )

        except Exception as e:
            logger.error(
                "backup_failed",
                operation_id=operation_id,
                error=str(e),
            )
            raise

        duration = (datetime.now(UTC) - start_time).total_seconds()

        logger.info(
            "backup_completed",
            operation_id=operation_id,
            backup_name=backup.name,
            size=backup.size_bytes,
            tables=len(table_counts),
            deleted=len(deleted),
            duration=duration,
        )

        return CreateBackupResult(
            backup=backup,
            deleted=deleted,
            operation_id=operation_id,
            duration_seconds=duration,
        )


async def _allocate_archive_path(backup_dir: Path, created: datetime) -> Path:
    """
    Pick the archive path for a creation time.

    Two backups within the same second get _1, _2, ... appended so an
    existing archive is never overwritten.
    """
    name = format_backup_name(created)
    archive_path = backup_dir / name
    stem = name[: -len(ARCHIVE_SUFFIX)]

    counter = 1
    while await aiofiles.os.path.exists(archive_path):
        archive_path = backup_dir / f"{stem}_{counter}{ARCHIVE_SUFFIX}"
        counter += 1

    return archive_path
