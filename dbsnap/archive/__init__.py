# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Storage - Writing, cataloguing and pruning backup archives.
"""

from dbsnap.archive.writer import (
    DATABASE_MEMBER,
    METADATA_MEMBER,
    UPLOADS_PREFIX,
    write_archive,
    extract_archive,
)

from dbsnap.archive.catalog import (
    read_metadata,
    describe_backup,
    list_backups,
    get_backup_summary,
    next_scheduled_backup_date,
    resolve_backup_path,
    delete_backup,
    format_backup_name,
    format_file_size,
)

from dbsnap.archive.retention import prune_old_backups

__all__ = [
    # Writer
    "DATABASE_MEMBER",
    "METADATA_MEMBER",
    "UPLOADS_PREFIX",
    "write_archive",
    "extract_archive",
    # Catalog
    "read_metadata",
    "describe_backup",
    "list_backups",
    "get_backup_summary",
    "next_scheduled_backup_date",
    "resolve_backup_path",
    "delete_backup",
    "format_backup_name",
    "format_file_size",
    # Retention
    "prune_old_backups",
]
