# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Operation Gate - Mutual exclusion between backups and restores.

At most one backup or one restore may run at a time, never both. The
gate does not queue: a second caller fails immediately with a retryable
error. Acquisition is a check-and-set with no await in between, which is
atomic on a single asyncio event loop.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

from dbsnap.exceptions import BackupInProgressError, RestoreInProgressError

logger = structlog.get_logger()


class OperationGate:
    """
    Owns the backup_in_progress / restore_in_progress flags.

    One instance is shared by every caller of a SnapshotService; tests
    create their own instances so no state leaks between them.
    """

    def __init__(self) -> None:
        self._backup_in_progress = False
        self._restore_in_progress = False

    @property
    def backup_in_progress(self) -> bool:
        return self._backup_in_progress

    @property
    def restore_in_progress(self) -> bool:
        return self._restore_in_progress

    @property
    def busy(self) -> bool:
        return self._backup_in_progress or self._restore_in_progress

    def ensure_idle(self) -> None:
        """
        Raise if any operation holds the gate.

        Raises:
            RestoreInProgressError: If a restore is running
            BackupInProgressError: If a backup is running
        """
        if self._restore_in_progress:
            raise RestoreInProgressError()
        if self._backup_in_progress:
            raise BackupInProgressError()

    @asynccontextmanager
    async def backup(self) -> AsyncIterator[None]:
        """
        Hold the gate for a backup.

        Raises:
            BackupInProgressError: If a backup is running
            RestoreInProgressError: If a restore is running
        """
        if self._backup_in_progress:
            raise BackupInProgressError()
        if self._restore_in_progress:
            raise RestoreInProgressError(
                "Cannot start a backup while a restore operation is running."
            )

        self._backup_in_progress = True
        logger.debug("gate_acquired", operation="backup")
        try:
            yield
        finally:
            self._backup_in_progress = False
            logger.debug("gate_released", operation="backup")

    @asynccontextmanager
    async def restore(self) -> AsyncIterator[None]:
        """
        Hold the gate for a restore.

        Raises:
            RestoreInProgressError: If a restore is running
            BackupInProgressError: If a backup is running
        """
        if self._restore_in_progress:
            raise RestoreInProgressError()
        if self._backup_in_progress:
            raise BackupInProgressError(
                "Cannot restore while a backup operation is running."
            )

        self._restore_in_progress = True
        logger.debug("gate_acquired", operation="restore")
        try:
            yield
        finally:
            self._restore_in_progress = False
            logger.debug("gate_released", operation="restore")
