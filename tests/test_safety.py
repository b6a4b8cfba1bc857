# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Critical Safety Tests for dbsnap.

These tests verify the core safety guarantees:
1. Mutual exclusion - Never two backups, never two restores, never both
2. Failure atomicity - A failed restore leaves the database unchanged
3. Corrupt archives - Rejected before anything is touched
4. No partial archives - A failed backup leaves nothing listable
5. Gate release - The gate is always released, even on failure

These tests MUST pass before any production deployment.
"""

import asyncio
import struct
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path

import aiofiles.os
import aiosqlite
import pytest

from conftest import EVENTS, USERS, count_rows

from dbsnap.archive import list_backups, write_archive
from dbsnap.backup import (
    CreateBackupOptions,
    OperationGate,
    RestoreOptions,
    create_backup,
    restore_backup,
)
from dbsnap.config import TriggerSource
from dbsnap.db.sqlite import SqliteAdapter
from dbsnap.exceptions import (
    BackupError,
    BackupInProgressError,
    BackupNotFoundError,
    CorruptArchiveError,
    RestoreError,
    RestoreInProgressError,
    SerializationError,
)
from dbsnap.models import BackupMetadata, DatabaseDump, Requester, TableDump


class BrokenReader:
    async def list_tables(self):
        return ["users"]

    async def fetch_rows(self, table):
        raise RuntimeError("connection lost")


class BrokenAdapter:
    """Adapter whose reads and reloads always fail."""

    async def connect(self):
        pass

    async def close(self):
        pass

    @asynccontextmanager
    async def reader(self):
        yield BrokenReader()

    async def replace_all(self, tables):
        raise RuntimeError("disk I/O error")


async def _write_custom_archive(
    backup_dir: Path,
    name: str,
    tables: dict,
    table_counts: dict | None = None,
) -> Path:
    """Write an archive holding exactly the given rows."""
    dump = DatabaseDump(
        exported_at="2026-01-01T00:00:00+00:00",
        tables=[TableDump(name=t, row_count=len(rows), rows=rows) for t, rows in tables.items()],
    )
    metadata = BackupMetadata(
        version=1,
        created_at="2026-01-01T00:00:00+00:00",
        triggered_by=TriggerSource.MANUAL,
        requested_by=Requester(),
        table_counts=table_counts if table_counts is not None else dump.table_counts(),
    )
    backup_dir.mkdir(parents=True, exist_ok=True)
    return await write_archive(backup_dir / name, dump, metadata)


async def _read_users(db_path: Path) -> list:
    async with aiosqlite.connect(db_path) as db:
        async with db.execute("SELECT id, name, avatar FROM users ORDER BY id") as cursor:
            return [tuple(row) for row in await cursor.fetchall()]


# ============================================================================
# Test 1: MUTUAL EXCLUSION
# ============================================================================

@pytest.mark.asyncio
async def test_second_backup_rejected_while_one_is_running(test_config):
    """
    CRITICAL: A backup started while another is in flight must fail fast
    with BackupInProgressError, and succeed once the first completes.
    """
    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    gate = OperationGate()

    async with gate.backup():
        with pytest.raises(BackupInProgressError):
            await create_backup(test_config, adapter, gate, CreateBackupOptions())

    result = await create_backup(test_config, adapter, gate, CreateBackupOptions())
    assert result.backup.name.endswith(".zip")


@pytest.mark.asyncio
async def test_concurrent_backups_exactly_one_runs(test_config):
    """Two backups started together: one succeeds, the other is rejected."""
    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    gate = OperationGate()

    results = await asyncio.gather(
        create_backup(test_config, adapter, gate, CreateBackupOptions()),
        create_backup(test_config, adapter, gate, CreateBackupOptions()),
        return_exceptions=True,
    )

    rejected = [r for r in results if isinstance(r, BackupInProgressError)]
    succeeded = [r for r in results if not isinstance(r, Exception)]
    assert len(rejected) == 1
    assert len(succeeded) == 1
    assert not gate.busy


@pytest.mark.asyncio
async def test_second_restore_rejected_while_one_is_running(test_config):
    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    gate = OperationGate()
    backup = (await create_backup(test_config, adapter, gate, CreateBackupOptions())).backup

    async with gate.restore():
        with pytest.raises(RestoreInProgressError):
            await restore_backup(test_config, adapter, gate, RestoreOptions(backup.name))

    result = await restore_backup(test_config, adapter, gate, RestoreOptions(backup.name))
    assert result.backup.name == backup.name


@pytest.mark.asyncio
async def test_restore_rejected_while_backup_runs(test_config):
    """CRITICAL: Restore during a backup fails with BackupInProgressError."""
    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    gate = OperationGate()
    backup = (await create_backup(test_config, adapter, gate, CreateBackupOptions())).backup

    async with gate.backup():
        with pytest.raises(BackupInProgressError):
            await restore_backup(test_config, adapter, gate, RestoreOptions(backup.name))
        assert gate.backup_in_progress
        assert not gate.restore_in_progress


@pytest.mark.asyncio
async def test_backup_rejected_while_restore_runs(test_config):
    """CRITICAL: Backup during a restore fails with RestoreInProgressError."""
    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    gate = OperationGate()

    async with gate.restore():
        with pytest.raises(RestoreInProgressError):
            await create_backup(test_config, adapter, gate, CreateBackupOptions())

    assert await list_backups(test_config.backup_dir) == []


@pytest.mark.asyncio
async def test_delete_refused_while_gate_is_held(snapshot_service):
    backup = (await snapshot_service.create_backup()).backup

    async with snapshot_service.gate.backup():
        with pytest.raises(BackupInProgressError):
            await snapshot_service.delete_backup(backup.name)

    async with snapshot_service.gate.restore():
        with pytest.raises(RestoreInProgressError):
            await snapshot_service.delete_backup(backup.name)

    deleted = await snapshot_service.delete_backup(backup.name)
    assert deleted.name == backup.name
    assert await snapshot_service.list_backups() == []


@pytest.mark.asyncio
async def test_gate_instances_are_independent():
    """Each service owns its gate; holding one never blocks another."""
    first = OperationGate()
    second = OperationGate()

    async with first.backup():
        async with second.restore():
            assert first.backup_in_progress
            assert second.restore_in_progress
            assert not first.restore_in_progress
            assert not second.backup_in_progress


# ============================================================================
# Test 2: GATE RELEASE ON FAILURE
# ============================================================================

@pytest.mark.asyncio
async def test_gate_released_after_failed_backup(test_config):
    gate = OperationGate()

    with pytest.raises(SerializationError):
        await create_backup(test_config, BrokenAdapter(), gate, CreateBackupOptions())

    assert not gate.busy


@pytest.mark.asyncio
async def test_gate_released_after_failed_restore(test_config):
    gate = OperationGate()

    with pytest.raises(BackupNotFoundError):
        await restore_backup(
            test_config, BrokenAdapter(), gate, RestoreOptions("backup_1999_01_01_000000.zip")
        )

    assert not gate.busy


# ============================================================================
# Test 3: NO PARTIAL ARCHIVES
# ============================================================================

@pytest.mark.asyncio
async def test_serialization_failure_leaves_no_archive(test_config):
    """CRITICAL: A failed dump must never produce an archive."""
    with pytest.raises(SerializationError) as exc_info:
        await create_backup(test_config, BrokenAdapter(), OperationGate(), CreateBackupOptions())

    assert exc_info.value.details["table"] == "users"
    assert list(test_config.backup_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_failed_archive_write_leaves_no_zip_or_partial(test_config, monkeypatch):
    """CRITICAL: A crash mid-write must not leave a listable or stray file."""
    import dbsnap.archive.writer as writer

    def exploding_write(path, *args):
        path.write_bytes(b"PK\x03\x04 truncated")
        raise OSError("No space left on device")

    monkeypatch.setattr(writer, "_write_zip_sync", exploding_write)

    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    gate = OperationGate()

    with pytest.raises(BackupError):
        await create_backup(test_config, adapter, gate, CreateBackupOptions())

    assert list(test_config.backup_dir.iterdir()) == []
    assert not gate.busy


# ============================================================================
# Test 4: CORRUPT ARCHIVES ARE REJECTED BEFORE MUTATION
# ============================================================================

@pytest.mark.asyncio
async def test_archive_without_database_json_is_rejected(test_config, sqlite_db):
    test_config.backup_dir.mkdir(parents=True, exist_ok=True)
    archive_path = test_config.backup_dir / "backup_2026_01_01_000000.zip"
    with zipfile.ZipFile(archive_path, "w") as zf:
        zf.writestr("metadata.json", "{}")

    with pytest.raises(CorruptArchiveError):
        await restore_backup(
            test_config, SqliteAdapter(sqlite_db), OperationGate(), RestoreOptions(archive_path.name)
        )

    assert await count_rows(sqlite_db) == {"users": 3, "events": 5}


@pytest.mark.asyncio
async def test_unparsable_database_json_is_rejected(test_config, sqlite_db):
    test_config.backup_dir.mkdir(parents=True, exist_ok=True)
    archive_path = test_config.backup_dir / "backup_2026_01_01_000000.zip"
    with zipfile.ZipFile(archive_path, "w") as zf:
        zf.writestr("database.json", '{"exportedAt": "2026-01-01", "tables": [')

    with pytest.raises(CorruptArchiveError):
        await restore_backup(
            test_config, SqliteAdapter(sqlite_db), OperationGate(), RestoreOptions(archive_path.name)
        )

    assert await count_rows(sqlite_db) == {"users": 3, "events": 5}


@pytest.mark.asyncio
async def test_not_a_zip_file_is_rejected(test_config, sqlite_db):
    test_config.backup_dir.mkdir(parents=True, exist_ok=True)
    (test_config.backup_dir / "backup_2026_01_01_000000.zip").write_text("not an archive")

    with pytest.raises(CorruptArchiveError):
        await restore_backup(
            test_config,
            SqliteAdapter(sqlite_db),
            OperationGate(),
            RestoreOptions("backup_2026_01_01_000000.zip"),
        )

    assert await count_rows(sqlite_db) == {"users": 3, "events": 5}


@pytest.mark.asyncio
async def test_metadata_count_mismatch_is_rejected(test_config, sqlite_db):
    await _write_custom_archive(
        test_config.backup_dir,
        "backup_2026_01_01_000000.zip",
        {"users": [{"id": 9, "name": "Solo", "avatar": None}], "events": []},
        table_counts={"users": 4, "events": 0},
    )

    with pytest.raises(CorruptArchiveError):
        await restore_backup(
            test_config,
            SqliteAdapter(sqlite_db),
            OperationGate(),
            RestoreOptions("backup_2026_01_01_000000.zip"),
        )

    assert await count_rows(sqlite_db) == {"users": 3, "events": 5}


@pytest.mark.asyncio
async def test_malformed_binary_payload_is_rejected(test_config, sqlite_db):
    await _write_custom_archive(
        test_config.backup_dir,
        "backup_2026_01_01_000000.zip",
        {"users": [{"id": 9, "name": "Solo", "avatar": {"kind": "buffer", "value": "%%%"}}]},
    )

    with pytest.raises(CorruptArchiveError):
        await restore_backup(
            test_config,
            SqliteAdapter(sqlite_db),
            OperationGate(),
            RestoreOptions("backup_2026_01_01_000000.zip"),
        )

    assert await count_rows(sqlite_db) == {"users": 3, "events": 5}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name",
    ["../campus.db", "../backups/x.zip", "nested/backup.zip", "backup.tar", ""],
)
async def test_invalid_backup_names_are_not_found(test_config, sqlite_db, name):
    with pytest.raises(BackupNotFoundError):
        await restore_backup(
            test_config, SqliteAdapter(sqlite_db), OperationGate(), RestoreOptions(name)
        )


# ============================================================================
# Test 5: FAILURE ATOMICITY
# ============================================================================

@pytest.mark.asyncio
async def test_failed_insert_rolls_back_whole_restore(test_config, sqlite_db):
    """
    CRITICAL: If any row insert fails, no table is changed.

    users reloads fine, then an events row violates NOT NULL. Both tables
    must keep their pre-restore contents.
    """
    await _write_custom_archive(
        test_config.backup_dir,
        "backup_2026_01_01_000000.zip",
        {
            "users": [{"id": 7, "name": "Replacement", "avatar": None}],
            "events": [
                {"id": 1, "user_id": 7, "title": "Valid", "starts_at": "2026-01-01T00:00:00", "notes": None},
                {"id": 2, "user_id": 7, "title": None, "starts_at": "2026-01-02T00:00:00", "notes": None},
            ],
        },
    )
    before = await _read_users(sqlite_db)

    with pytest.raises(RestoreError) as exc_info:
        await restore_backup(
            test_config,
            SqliteAdapter(sqlite_db),
            OperationGate(),
            RestoreOptions("backup_2026_01_01_000000.zip"),
        )

    assert isinstance(exc_info.value.__cause__, Exception)
    assert await count_rows(sqlite_db) == {"users": len(USERS), "events": len(EVENTS)}
    assert await _read_users(sqlite_db) == before


@pytest.mark.asyncio
async def test_failed_restore_keeps_live_uploads(test_config, uploads_dir):
    """The asset directory is only swapped after the database commits."""
    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    backup = (await create_backup(test_config, adapter, OperationGate(), CreateBackupOptions())).backup

    (uploads_dir / "banner.txt").write_text("changed after backup")

    with pytest.raises(RestoreError):
        await restore_backup(test_config, BrokenAdapter(), OperationGate(), RestoreOptions(backup.name))

    assert (uploads_dir / "banner.txt").read_text() == "changed after backup"
    # No staging directories left next to the live one
    assert sorted(p.name for p in uploads_dir.parent.iterdir()) == ["uploads"]


@pytest.mark.asyncio
async def test_non_object_table_entry_is_rejected(test_config, sqlite_db):
    test_config.backup_dir.mkdir(parents=True, exist_ok=True)
    archive_path = test_config.backup_dir / "backup_2026_01_01_000000.zip"
    with zipfile.ZipFile(archive_path, "w") as zf:
        zf.writestr("database.json", '{"exportedAt": "2026-01-01", "tables": ["users"]}')

    with pytest.raises(CorruptArchiveError):
        await restore_backup(
            test_config, SqliteAdapter(sqlite_db), OperationGate(), RestoreOptions(archive_path.name)
        )

    assert await count_rows(sqlite_db) == {"users": 3, "events": 5}


@pytest.mark.asyncio
async def test_damaged_deflate_stream_is_rejected(test_config, sqlite_db):
    archive_path = await _write_custom_archive(
        test_config.backup_dir,
        "backup_2026_01_01_000000.zip",
        {"users": [{"id": i, "name": f"user-{i}", "avatar": None} for i in range(50)]},
    )

    with zipfile.ZipFile(archive_path) as zf:
        info = zf.getinfo("database.json")
    raw = bytearray(archive_path.read_bytes())
    name_len, extra_len = struct.unpack("<HH", raw[info.header_offset + 26 : info.header_offset + 30])
    data_start = info.header_offset + 30 + name_len + extra_len
    # 0xFF opens a block with the reserved type 3
    raw[data_start : data_start + 8] = b"\xff" * 8
    archive_path.write_bytes(bytes(raw))

    with pytest.raises(CorruptArchiveError):
        await restore_backup(
            test_config, SqliteAdapter(sqlite_db), OperationGate(), RestoreOptions(archive_path.name)
        )

    assert await count_rows(sqlite_db) == {"users": 3, "events": 5}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failing_source",
    [
        "uploads",  # moving the live tree aside
        ".uploads.restore-",  # moving the staged tree in, live tree is moved back
    ],
)
async def test_failed_uploads_swap_cleans_staging(test_config, uploads_dir, monkeypatch, failing_source):
    adapter = SqliteAdapter(test_config.database_url.removeprefix("sqlite:///"))
    backup = (await create_backup(test_config, adapter, OperationGate(), CreateBackupOptions())).backup

    original_rename = aiofiles.os.rename

    async def failing_rename(src, dst, *args, **kwargs):
        if Path(src).name.startswith(failing_source):
            raise OSError("Invalid cross-device link")
        return await original_rename(src, dst, *args, **kwargs)

    monkeypatch.setattr(aiofiles.os, "rename", failing_rename)

    with pytest.raises(RestoreError):
        await restore_backup(test_config, adapter, OperationGate(), RestoreOptions(backup.name))

    assert (uploads_dir / "banner.txt").read_text() == "welcome"
    assert (uploads_dir / "avatars" / "ada.png").read_bytes() == b"\x89PNG-ada"
    assert sorted(p.name for p in uploads_dir.parent.iterdir()) == ["uploads"]
