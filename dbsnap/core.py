# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
DB Snapshot Core - Service facade over the backup engine.

SnapshotService ties one configuration, one database adapter and one
operation gate together, so every caller (HTTP routes, a cron job, a
maintenance script) goes through the same mutual exclusion.
"""

from pathlib import Path
from typing import List, TypedDict

import structlog

from dbsnap.archive import (
    delete_backup,
    get_backup_summary,
    list_backups,
    resolve_backup_path,
)
from dbsnap.backup import (
    CreateBackupOptions,
    CreateBackupResult,
    OperationGate,
    RestoreOptions,
    RestoreResult,
    create_backup,
    restore_backup,
)
from dbsnap.config import SnapshotConfig, TriggerSource
from dbsnap.db import DatabaseAdapter, create_adapter
from dbsnap.models import BackupInfo, BackupSummary, Requester

logger = structlog.get_logger()


class OperationStatus(TypedDict):
    """Which operation currently holds the gate."""

    backup_in_progress: bool
    restore_in_progress: bool


class SnapshotService:
    """
    Entry point for backup, restore and catalog operations.

    Create with initialize_service() for a connected instance.
    """

    def __init__(
        self,
        config: SnapshotConfig,
        adapter: DatabaseAdapter,
        gate: OperationGate | None = None,
    ) -> None:
        self.config = config
        self.adapter = adapter
        self.gate = gate or OperationGate()

    async def create_backup(
        self,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
        requested_by: Requester | None = None,
    ) -> CreateBackupResult:
        return await create_backup(
            self.config,
            self.adapter,
            self.gate,
            CreateBackupOptions(triggered_by=triggered_by, requested_by=requested_by),
        )

    async def restore_backup(
        self,
        backup_name: str,
        requested_by: Requester | None = None,
    ) -> RestoreResult:
        return await restore_backup(
            self.config,
            self.adapter,
            self.gate,
            RestoreOptions(backup_name=backup_name, requested_by=requested_by),
        )

    async def list_backups(self) -> List[BackupInfo]:
        return await list_backups(self.config.backup_dir)

    async def get_summary(self) -> BackupSummary:
        return await get_backup_summary(self.config.backup_dir)

    def get_status(self) -> OperationStatus:
        return OperationStatus(
            backup_in_progress=self.gate.backup_in_progress,
            restore_in_progress=self.gate.restore_in_progress,
        )

    async def resolve_backup_path(self, backup_name: str) -> Path:
        return await resolve_backup_path(self.config.backup_dir, backup_name)

    async def delete_backup(self, backup_name: str) -> BackupInfo:
        """
        Delete a stored archive.

        Refused while a backup or restore holds the gate, since either may
        be reading or pruning the archive directory.

        Raises:
            BackupInProgressError, RestoreInProgressError: Gate is held
            BackupNotFoundError: No such archive
        """
        self.gate.ensure_idle()
        return await delete_backup(self.config.backup_dir, backup_name)


async def initialize_service(
    config: SnapshotConfig,
    adapter: DatabaseAdapter | None = None,
) -> SnapshotService:
    """
    Initialize a SnapshotService.

    Creates the archive directory, creates the database adapter for the
    configured backend (unless one is given) and connects it.

    Args:
        config: Snapshot configuration
        adapter: Pre-built adapter (mainly for tests)

    Returns:
        A connected SnapshotService
    """
    config.backup_dir.mkdir(parents=True, exist_ok=True)

    if adapter is None:
        adapter = create_adapter(config)
    await adapter.connect()

    logger.info(
        "snapshot_service_initialized",
        backend=config.database_backend.value,
        backup_dir=str(config.backup_dir),
        uploads_dir=str(config.uploads_dir) if config.uploads_dir else None,
        retention_days=config.retention_days,
    )

    return SnapshotService(config, adapter)


async def shutdown_service(service: SnapshotService) -> None:
    """Cleanup resources."""
    try:
        await service.adapter.close()
    except Exception as e:
        logger.warning("adapter_close_failed", error=str(e))

    logger.info("snapshot_service_shutdown_complete")
