# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
DB Snapshot Builder - Functional builder pattern for configuration.

This module provides pure functions for building SnapshotConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from dbsnap.config import (
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_RETENTION_DAYS,
    DatabaseBackend,
    SnapshotConfig,
)


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "database_url": None,
        "database_backend": DatabaseBackend.POSTGRES,
        "database_schema": "public",
        "backup_dir": Path("./backups"),
        "uploads_dir": Path("./public/uploads"),
        "retention_days": DEFAULT_RETENTION_DAYS,
        "compression_level": DEFAULT_COMPRESSION_LEVEL,
    }


def with_postgres(config: ConfigDict, database_url: str, schema: str = "public") -> ConfigDict:
    """
    Snapshot a PostgreSQL database.

    Args:
        config: Current configuration dictionary
        database_url: postgresql:// connection URL
        schema: Schema whose base tables are dumped

    Returns:
        New configuration dictionary with the database set
    """
    return {
        **config,
        "database_backend": DatabaseBackend.POSTGRES,
        "database_url": database_url,
        "database_schema": schema,
    }


def with_sqlite(config: ConfigDict, database_path: Path | str) -> ConfigDict:
    """
    Snapshot a SQLite database file.

    Args:
        config: Current configuration dictionary
        database_path: Path to the database file

    Returns:
        New configuration dictionary with the database set
    """
    return {
        **config,
        "database_backend": DatabaseBackend.SQLITE,
        "database_url": f"sqlite:///{Path(database_path)}",
    }


def store_backups_in(config: ConfigDict, backup_dir: Path | str) -> ConfigDict:
    """
    Set the directory archives are written to.

    Args:
        config: Current configuration dictionary
        backup_dir: Archive storage directory

    Returns:
        New configuration dictionary with backup_dir set
    """
    return {**config, "backup_dir": Path(backup_dir)}


def include_uploads(config: ConfigDict, uploads_dir: Path | str) -> ConfigDict:
    """
    Include an asset directory in every archive.

    Args:
        config: Current configuration dictionary
        uploads_dir: Directory copied under uploads/ and replaced on restore

    Returns:
        New configuration dictionary with uploads_dir set
    """
    return {**config, "uploads_dir": Path(uploads_dir)}


def exclude_uploads(config: ConfigDict) -> ConfigDict:
    """Only back up the database."""
    return {**config, "uploads_dir": None}


def keep_backups_for(config: ConfigDict, days: int) -> ConfigDict:
    """
    Set the retention window in days.

    Archives older than this are deleted after the next successful backup.

    Args:
        config: Current configuration dictionary
        days: Retention window in days

    Returns:
        New configuration dictionary with retention period set
    """
    if days < 0:
        raise ValueError(f"retention days must be >= 0, got {days}")
    return {**config, "retention_days": days}


def with_compression_level(config: ConfigDict, level: int) -> ConfigDict:
    """
    Set the DEFLATE level used for archive members.

    Args:
        config: Current configuration dictionary
        level: 0 (store) to 9 (maximum)

    Returns:
        New configuration dictionary with compression level set
    """
    if not 0 <= level <= 9:
        raise ValueError(f"compression_level must be 0-9, got {level}")
    return {**config, "compression_level": level}


def build_config(config_dict: ConfigDict) -> SnapshotConfig:
    """
    Validate and build an immutable SnapshotConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable SnapshotConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("database_url"):
        from dbsnap.exceptions import ConfigurationError

        raise ConfigurationError("database_url is required")

    return SnapshotConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    This allows a more readable pipeline style:

        config = pipe(
            lambda c: with_postgres(c, "postgresql://localhost/app"),
            lambda c: keep_backups_for(c, 30),
            exclude_uploads,
        )(create_empty_config())
    """

    def composed(config: ConfigDict) -> ConfigDict:
        for func in funcs:
            config = func(config)
        return config

    return composed


def create_config(
    database_url: str,
    *,
    database_backend: str | DatabaseBackend = DatabaseBackend.POSTGRES,
    database_schema: str = "public",
    backup_dir: str | Path | None = None,
    uploads_dir: str | Path | None = None,
    include_assets: bool = True,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> SnapshotConfig:
    """
    Create a snapshot configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Args:
        database_url: Database connection URL (required)
        database_backend: "postgres" or "sqlite" (default: "postgres")
        database_schema: Schema to dump, PostgreSQL only (default: "public")
        backup_dir: Archive storage directory (default: "./backups")
        uploads_dir: Asset directory (default: "./public/uploads")
        include_assets: Set False to back up the database only
        retention_days: Retention window in days (default: 90)
        compression_level: DEFLATE level 0-9 (default: 9)

    Returns:
        Validated, immutable SnapshotConfig instance

    Example:
        config = create_config(
            "postgresql://app:secret@db:5432/campus",
            backup_dir="/var/lib/campus/backups",
            uploads_dir="/srv/campus/public/uploads",
            retention_days=90,
        )
    """
    config_dict = create_empty_config()

    if isinstance(database_backend, str):
        database_backend = DatabaseBackend(database_backend.lower())

    if database_backend == DatabaseBackend.SQLITE:
        config_dict = {
            **config_dict,
            "database_backend": DatabaseBackend.SQLITE,
            "database_url": database_url,
        }
    else:
        config_dict = with_postgres(config_dict, database_url, database_schema)

    if backup_dir is not None:
        config_dict = store_backups_in(config_dict, backup_dir)

    if not include_assets:
        config_dict = exclude_uploads(config_dict)
    elif uploads_dir is not None:
        config_dict = include_uploads(config_dict, uploads_dir)

    config_dict = keep_backups_for(config_dict, retention_days)
    config_dict = with_compression_level(config_dict, compression_level)

    return build_config(config_dict)
