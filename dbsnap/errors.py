# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for DB Snapshot.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_database_url_env() -> str:
    """
    Explain that the database URL environment variable is missing.
    """

    return (
        "Database is not configured. "
        "Set the DATABASE_URL environment variable or pass database_url=... to create_config()."
    )


def explain_invalid_retention_days_env(value: str | None) -> str:
    """
    Explain that BACKUP_RETENTION_DAYS is invalid.
    """

    return (
        f"Invalid BACKUP_RETENTION_DAYS value: {value!r}. "
        "It must be a non-negative integer number of days."
    )


def explain_invalid_compression_level_env(value: str | None) -> str:
    """
    Explain that BACKUP_COMPRESSION_LEVEL is invalid.
    """

    return (
        f"Invalid BACKUP_COMPRESSION_LEVEL value: {value!r}. "
        "Expected an integer between 0 (store) and 9 (maximum)."
    )


def explain_invalid_database_backend_env(value: str | None) -> str:
    """
    Explain that the database backend could not be determined.
    """

    return (
        f"Invalid BACKUP_DATABASE_BACKEND value: {value!r}. "
        "Expected 'postgres' or 'sqlite', or use a postgresql:// or sqlite:/// DATABASE_URL."
    )
