# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Backup and restore orchestration.
"""

from dbsnap.backup.gate import OperationGate

from dbsnap.backup.manager import (
    create_backup,
    CreateBackupOptions,
    CreateBackupResult,
)

from dbsnap.backup.restore import (
    restore_backup,
    RestoreOptions,
    RestoreResult,
    RestoreStage,
)

__all__ = [
    # Gate
    "OperationGate",
    # Manager
    "create_backup",
    "CreateBackupOptions",
    "CreateBackupResult",
    # Restore
    "restore_backup",
    "RestoreOptions",
    "RestoreResult",
    "RestoreStage",
]
