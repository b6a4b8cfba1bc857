# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
DB Snapshot Exceptions - Custom exceptions for the dbsnap package.
"""


class SnapshotError(Exception):
    """Base exception for all dbsnap errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(SnapshotError):
    """Raised when configuration is invalid."""

    pass


class DatabaseError(SnapshotError):
    """Raised when the database cannot be reached."""

    pass


class OperationInProgressError(SnapshotError):
    """
    Raised when the operation gate is already held.

    This is a retryable condition: callers should ask the user to try
    again shortly rather than treat it as a failure.
    """

    pass


class BackupInProgressError(OperationInProgressError):
    """Raised when a backup is already running."""

    def __init__(
        self,
        message: str = "A backup operation is already running.",
        details: dict | None = None,
    ):
        super().__init__(message, details)


class RestoreInProgressError(OperationInProgressError):
    """Raised when a restore is already running."""

    def __init__(
        self,
        message: str = "A restore operation is already running.",
        details: dict | None = None,
    ):
        super().__init__(message, details)


class BackupNotFoundError(SnapshotError):
    """Raised when a requested archive does not exist in storage."""

    pass


class CorruptArchiveError(SnapshotError):
    """Raised when an archive is unreadable or missing its database dump."""

    pass


class SerializationError(SnapshotError):
    """Raised when the database cannot be dumped."""

    pass


class BackupError(SnapshotError):
    """Raised when writing an archive fails."""

    pass


class RestoreError(SnapshotError):
    """Raised when the transactional reload fails and is rolled back."""

    pass
