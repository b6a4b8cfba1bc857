# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Restore Orchestrator - Replace the live database and assets from an archive.

A restore moves through these stages while holding the operation gate:

    extracting -> parsing -> transacting -> asset_swap -> done
                                                       \\-> failed

Everything that can reject the archive (missing or unparsable dump, row
count mismatch, undecodable values) happens before the database is
touched. The table reload is a single transaction. The asset tree is
staged next to the live directory beforehand and swapped in with two
renames only after the transaction commits.
"""

import asyncio
import functools
import json
import shutil
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os
import aiofiles.tempfile
import structlog

from dbsnap.archive import (
    DATABASE_MEMBER,
    UPLOADS_PREFIX,
    describe_backup,
    extract_archive,
    read_metadata,
    resolve_backup_path,
)
from dbsnap.backup.gate import OperationGate
from dbsnap.config import SnapshotConfig
from dbsnap.db import DatabaseAdapter, TableRows
from dbsnap.exceptions import CorruptArchiveError, RestoreError
from dbsnap.models import BackupInfo, BackupMetadata, DatabaseDump, Requester
from dbsnap.values import decode_row

logger = structlog.get_logger()


class RestoreStage(str, Enum):
    """Where a restore is; reported in restore_failed."""

    EXTRACTING = "extracting"
    PARSING = "parsing"
    TRANSACTING = "transacting"
    ASSET_SWAP = "asset_swap"
    DONE = "done"


@dataclass
class RestoreOptions:
    backup_name: str
    requested_by: Requester | None = None


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    backup: BackupInfo
    operation_id: str = ""
    restored_tables: int = 0
    restored_rows: int = 0
    uploads_restored: bool = False
    duration_seconds: float = 0.0


async def restore_backup(
    config: SnapshotConfig,
    adapter: DatabaseAdapter,
    gate: OperationGate,
    options: RestoreOptions,
) -> RestoreResult:
    """
    Restore the database (and asset directory) from a stored archive.

    Args:
        config: Snapshot configuration
        adapter: Connected database adapter
        gate: Operation gate shared with backups
        options: Archive name and requester

    Returns:
        RestoreResult describing the archive that was restored

    Raises:
        RestoreInProgressError: If another restore is running
        BackupInProgressError: If a backup is running
        BackupNotFoundError: If the archive does not exist
        CorruptArchiveError: If the archive cannot be used (nothing changed)
        RestoreError: If the reload failed (transaction rolled back), or
            the asset swap failed after the reload (previous uploads kept)
    """
    from ulid import ULID

    async with gate.restore():
        operation_id = str(ULID())
        start_time = datetime.now(UTC)
        requested_by = options.requested_by or Requester()
        stage = RestoreStage.EXTRACTING

        logger.info(
            "restore_started",
            operation_id=operation_id,
            backup_name=options.backup_name,
            requested_by=requested_by.name,
        )

        try:
            archive_path = await resolve_backup_path(config.backup_dir, options.backup_name)

            async with aiofiles.tempfile.TemporaryDirectory(prefix="restore-") as temp_dir:
                work_dir = Path(temp_dir)
                await extract_archive(archive_path, work_dir)

                stage = RestoreStage.PARSING
                metadata = await read_metadata(archive_path)
                dump = await _load_dump(work_dir / DATABASE_MEMBER, archive_path)
                _check_table_counts(dump, metadata, archive_path)
                tables = _decode_tables(dump, archive_path)

                uploads_source = work_dir / UPLOADS_PREFIX
                staged_uploads: Path | None = None
                if await aiofiles.os.path.isdir(uploads_source):
                    if config.uploads_dir is None:
                        logger.info(
                            "restore_uploads_skipped",
                            operation_id=operation_id,
                            reason="uploads_dir not configured",
                        )
                    else:
                        staged_uploads = await _stage_uploads(
                            uploads_source, config.uploads_dir, operation_id
                        )

                stage = RestoreStage.TRANSACTING
                try:
                    await adapter.replace_all(tables)
                except Exception as e:
                    if staged_uploads is not None:
                        await _remove_tree(staged_uploads)
                    raise RestoreError(
                        f"Database restore failed and was rolled back: {e}",
                        details={"backup_name": options.backup_name},
                    ) from e

                if staged_uploads is not None:
                    stage = RestoreStage.ASSET_SWAP
                    try:
                        await _swap_uploads(staged_uploads, config.uploads_dir, operation_id)
                    except OSError as e:
                        raise RestoreError(
                            f"Database was restored but uploads could not be swapped in: {e}",
                            details={
                                "backup_name": options.backup_name,
                                "uploads_dir": str(config.uploads_dir),
                            },
                        ) from e

            stage = RestoreStage.DONE
            backup = await describe_backup(archive_path, include_metadata=False)
            backup.metadata = metadata

        except Exception as e:
            logger.error(
                "restore_failed",
                operation_id=operation_id,
                backup_name=options.backup_name,
                stage=stage.value,
                error=str(e),
            )
            raise

        duration = (datetime.now(UTC) - start_time).total_seconds()
        restored_rows = sum(len(rows) for _, rows in tables)

        logger.info(
            "restore_completed",
            operation_id=operation_id,
            backup_name=backup.name,
            tables=len(tables),
            rows=restored_rows,
            uploads_restored=staged_uploads is not None,
            duration=duration,
        )

        return RestoreResult(
            backup=backup,
            operation_id=operation_id,
            restored_tables=len(tables),
            restored_rows=restored_rows,
            uploads_restored=staged_uploads is not None,
            duration_seconds=duration,
        )


async def _load_dump(dump_path: Path, archive_path: Path) -> DatabaseDump:
    """Read and parse the extracted database.json."""
    details = {"archive_path": str(archive_path)}

    if not await aiofiles.os.path.isfile(dump_path):
        raise CorruptArchiveError(f"Archive has no {DATABASE_MEMBER}", details=details)

    try:
        async with aiofiles.open(dump_path, "r", encoding="utf-8") as f:
            raw = await f.read()
        return DatabaseDump.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        raise CorruptArchiveError(
            f"Unreadable {DATABASE_MEMBER}: {e}", details=details
        ) from e


def _check_table_counts(
    dump: DatabaseDump,
    metadata: BackupMetadata | None,
    archive_path: Path,
) -> None:
    """
    Reject dumps whose row counts disagree with themselves or the metadata.

    Metadata is optional; when absent only the dump's own rowCount fields
    are checked.
    """
    for table in dump.tables:
        if table.row_count != len(table.rows):
            raise CorruptArchiveError(
                f"Table {table.name} declares {table.row_count} rows but holds {len(table.rows)}",
                details={"archive_path": str(archive_path), "table": table.name},
            )

    if metadata is not None and metadata.table_counts != dump.table_counts():
        raise CorruptArchiveError(
            "Metadata table counts do not match the database dump",
            details={
                "archive_path": str(archive_path),
                "metadata_counts": metadata.table_counts,
                "dump_counts": dump.table_counts(),
            },
        )


def _decode_tables(dump: DatabaseDump, archive_path: Path) -> List[TableRows]:
    tables: List[TableRows] = []
    for table in dump.tables:
        try:
            tables.append((table.name, [decode_row(row) for row in table.rows]))
        except ValueError as e:
            raise CorruptArchiveError(
                f"Undecodable value in table {table.name}: {e}",
                details={"archive_path": str(archive_path), "table": table.name},
            ) from e
    return tables


async def _stage_uploads(source: Path, uploads_dir: Path, operation_id: str) -> Path:
    """
    Copy the extracted asset tree next to the live directory.

    Staging on the same filesystem as uploads_dir keeps the later swap to
    plain renames.
    """
    staging = uploads_dir.parent / f".{uploads_dir.name}.restore-{operation_id}"
    await aiofiles.os.makedirs(uploads_dir.parent, exist_ok=True)

    loop = asyncio.get_event_loop()
    await loop.run_in_executor(None, shutil.copytree, source, staging)

    logger.debug("restore_uploads_staged", staging=str(staging))
    return staging


async def _swap_uploads(staging: Path, uploads_dir: Path, operation_id: str) -> None:
    """Move the live asset tree aside, rename the staged one into place, drop the old one."""
    previous = uploads_dir.parent / f".{uploads_dir.name}.previous-{operation_id}"

    try:
        had_previous = await aiofiles.os.path.exists(uploads_dir)
        if had_previous:
            await aiofiles.os.rename(uploads_dir, previous)

        try:
            await aiofiles.os.rename(staging, uploads_dir)
        except OSError:
            if had_previous:
                await aiofiles.os.rename(previous, uploads_dir)
            raise
    finally:
        # Gone after a successful swap; left over if any rename failed
        if await aiofiles.os.path.exists(staging):
            await _remove_tree(staging)

    if had_previous:
        await _remove_tree(previous)

    logger.debug("restore_uploads_swapped", uploads_dir=str(uploads_dir))


async def _remove_tree(path: Path) -> None:
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(
        None, functools.partial(shutil.rmtree, path, ignore_errors=True)
    )
