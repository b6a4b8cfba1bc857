# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
DB Snapshot Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while a backup or restore is running.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
import re


class DatabaseBackend(str, Enum):
    """Database engine the snapshot is taken from."""

    POSTGRES = "postgres"
    SQLITE = "sqlite"


class TriggerSource(str, Enum):
    """Who initiated a backup."""

    MANUAL = "manual"  # Requested by an operator
    AUTOMATIC = "automatic"  # Requested by the external scheduler


DEFAULT_RETENTION_DAYS = 90
DEFAULT_COMPRESSION_LEVEL = 9  # Maximum DEFLATE compression

_URL_PREFIXES = {
    DatabaseBackend.POSTGRES: ("postgres://", "postgresql://"),
    DatabaseBackend.SQLITE: ("sqlite:///",),
}


def _validate_identifier(name: str) -> bool:
    """Validate a SQL schema name (letters, digits, underscores)."""
    return bool(name) and re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", name) is not None


def _validate_database_url(backend: DatabaseBackend, url: str) -> bool:
    """Check that the URL scheme matches the configured backend."""
    return url.lower().startswith(_URL_PREFIXES[backend])


@dataclass(frozen=True)
class SnapshotConfig:
    """
    Immutable configuration for the backup/restore engine.

    Directories are owned by the caller; the engine only creates them
    when they are missing.
    """

    # Database connection URL (postgresql://... or sqlite:///...)
    database_url: str | None = None

    # Engine the URL points at
    database_backend: DatabaseBackend = DatabaseBackend.POSTGRES

    # Schema whose base tables are dumped (PostgreSQL only)
    database_schema: str = "public"

    # Directory holding backup_*.zip archives
    backup_dir: Path = field(default_factory=lambda: Path("./backups"))

    # Asset directory copied into archives under uploads/ (None disables)
    uploads_dir: Path | None = field(default_factory=lambda: Path("./public/uploads"))

    # Archives older than this many days are pruned after each backup
    retention_days: int = DEFAULT_RETENTION_DAYS

    # DEFLATE level for archive members (0-9)
    compression_level: int = DEFAULT_COMPRESSION_LEVEL

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.database_url:
            errors.append("database_url is required")
        elif not _validate_database_url(self.database_backend, self.database_url):
            errors.append(
                f"database_url does not match backend {self.database_backend.value}"
            )

        if not _validate_identifier(self.database_schema):
            errors.append(f"Invalid database_schema: {self.database_schema!r}")

        if self.retention_days < 0:
            errors.append(f"retention_days must be >= 0, got {self.retention_days}")

        if not 0 <= self.compression_level <= 9:
            errors.append(
                f"compression_level must be 0-9, got {self.compression_level}"
            )

        # Raise all errors at once
        if errors:
            from dbsnap.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "SnapshotConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return SnapshotConfig(**current)
