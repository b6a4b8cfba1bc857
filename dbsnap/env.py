# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

The storage directory, asset directory, retention window and database
connection are owned by the deployment environment. This module turns the
well-known environment variables into a validated SnapshotConfig.
"""

from __future__ import annotations

import os
from pathlib import Path

from dbsnap.builder import create_config
from dbsnap.config import (
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_RETENTION_DAYS,
    DatabaseBackend,
    SnapshotConfig,
)
from dbsnap.errors import (
    explain_invalid_compression_level_env,
    explain_invalid_database_backend_env,
    explain_invalid_retention_days_env,
    explain_missing_database_url_env,
)
from dbsnap.exceptions import ConfigurationError


def _parse_retention_days(value: str | None) -> int:
    if not value:
        return DEFAULT_RETENTION_DAYS
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention_days_env(value)) from exc
    if days < 0:
        raise ConfigurationError(explain_invalid_retention_days_env(value))
    return days


def _parse_compression_level(value: str | None) -> int:
    if not value:
        return DEFAULT_COMPRESSION_LEVEL
    try:
        level = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_compression_level_env(value)) from exc
    if not 0 <= level <= 9:
        raise ConfigurationError(explain_invalid_compression_level_env(value))
    return level


def _infer_backend_from_url(url: str) -> DatabaseBackend | None:
    """Best-effort backend inference from DATABASE_URL."""

    lower = url.lower()
    if lower.startswith(("postgres://", "postgresql://")):
        return DatabaseBackend.POSTGRES
    if lower.startswith("sqlite:///"):
        return DatabaseBackend.SQLITE
    return None


def _parse_backend(value: str | None, db_url: str) -> DatabaseBackend:
    if value:
        try:
            return DatabaseBackend(value.lower())
        except ValueError as exc:
            raise ConfigurationError(explain_invalid_database_backend_env(value)) from exc

    backend = _infer_backend_from_url(db_url)
    if backend is None:
        raise ConfigurationError(explain_invalid_database_backend_env(value))
    return backend


def create_config_from_env() -> SnapshotConfig:
    """
    Create a SnapshotConfig from environment variables.

    Required:
        - DATABASE_URL: postgresql://... or sqlite:///... connection URL

    Optional environment variables:
        - BACKUP_STORAGE_DIR: Archive directory (default: ./backups)
        - BACKUP_UPLOADS_DIR: Asset directory (default: ./public/uploads);
          set to an empty string to back up the database only
        - BACKUP_RETENTION_DAYS: Non-negative integer (default: 90)
        - BACKUP_DATABASE_SCHEMA: Schema to dump (default: public)
        - BACKUP_DATABASE_BACKEND: 'postgres' | 'sqlite' (default: inferred
          from DATABASE_URL)
        - BACKUP_COMPRESSION_LEVEL: 0-9 (default: 9)
    """

    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise ConfigurationError(explain_missing_database_url_env())

    backend = _parse_backend(os.getenv("BACKUP_DATABASE_BACKEND"), db_url)

    backup_dir_env = os.getenv("BACKUP_STORAGE_DIR")
    backup_dir = Path(backup_dir_env).resolve() if backup_dir_env else Path.cwd() / "backups"

    uploads_env = os.getenv("BACKUP_UPLOADS_DIR")
    if uploads_env is None:
        uploads_dir: Path | None = Path.cwd() / "public" / "uploads"
    elif uploads_env.strip():
        uploads_dir = Path(uploads_env).resolve()
    else:
        uploads_dir = None

    return create_config(
        db_url,
        database_backend=backend,
        database_schema=os.getenv("BACKUP_DATABASE_SCHEMA", "public"),
        backup_dir=backup_dir,
        uploads_dir=uploads_dir,
        include_assets=uploads_dir is not None,
        retention_days=_parse_retention_days(os.getenv("BACKUP_RETENTION_DAYS")),
        compression_level=_parse_compression_level(os.getenv("BACKUP_COMPRESSION_LEVEL")),
    )
