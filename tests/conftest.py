# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for dbsnap tests.

Provides a real SQLite database with a small schema, test configuration
and a connected SnapshotService.
"""

import os
import tempfile
from pathlib import Path
from typing import Dict, Generator

import aiosqlite
import pytest
import pytest_asyncio

# Set test environment variables
os.environ["DBSNAP_ADMIN_API_KEY"] = "test-api-key-12345"
os.environ.pop("DBSNAP_CRON_SECRET", None)

SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    avatar BLOB
);

CREATE TABLE events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER REFERENCES users(id),
    title TEXT NOT NULL,
    starts_at TEXT NOT NULL,
    notes TEXT
);
"""

USERS = [
    (1, "Ada", b"\x89PNG\r\n\x1a\n\x00\xff\xfe"),
    (2, "Grace", None),
    (3, "Linus", b""),
]

EVENTS = [
    (1, 1, "Orientation", "2026-08-01T09:00:00+00:00", "Main hall"),
    (2, 1, "Career Fair", "2026-09-12T13:30:00+00:00", None),
    (3, 2, "Hackathon", "2026-10-03T08:00:00+00:00", "Bring laptops"),
    (4, 3, "Open Day", "2026-11-20T10:00:00+00:00", "Campus tour"),
    (5, 2, "Graduation", "2026-12-18T16:00:00+00:00", "Gowns required"),
]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


async def create_schema(db_path: Path) -> None:
    """Create the users/events schema in an empty database."""
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA)
        await db.commit()


async def seed_database(db_path: Path) -> None:
    """Fill users (3 rows) and events (5 rows)."""
    async with aiosqlite.connect(db_path) as db:
        await db.executemany("INSERT INTO users (id, name, avatar) VALUES (?, ?, ?)", USERS)
        await db.executemany(
            "INSERT INTO events (id, user_id, title, starts_at, notes) VALUES (?, ?, ?, ?, ?)",
            EVENTS,
        )
        await db.commit()


async def count_rows(db_path: Path) -> Dict[str, int]:
    """Row count per test table."""
    counts = {}
    async with aiosqlite.connect(db_path) as db:
        for table in ("events", "users"):
            async with db.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
                counts[table] = (await cursor.fetchone())[0]
    return counts


async def truncate_tables(db_path: Path) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("DELETE FROM events")
        await db.execute("DELETE FROM users")
        await db.commit()


@pytest_asyncio.fixture
async def sqlite_db(temp_dir: Path) -> Path:
    """A seeded SQLite database file."""
    db_path = temp_dir / "campus.db"
    await create_schema(db_path)
    await seed_database(db_path)
    return db_path


@pytest.fixture
def uploads_dir(temp_dir: Path) -> Path:
    """An asset directory with a nested file and an empty folder."""
    uploads = temp_dir / "public" / "uploads"
    (uploads / "avatars").mkdir(parents=True)
    (uploads / "empty").mkdir()
    (uploads / "avatars" / "ada.png").write_bytes(b"\x89PNG-ada")
    (uploads / "banner.txt").write_text("welcome")
    return uploads


@pytest.fixture
def test_config(temp_dir: Path, sqlite_db: Path, uploads_dir: Path):
    """Create a test configuration."""
    from dbsnap.builder import create_config

    return create_config(
        f"sqlite:///{sqlite_db}",
        database_backend="sqlite",
        backup_dir=temp_dir / "backups",
        uploads_dir=uploads_dir,
        retention_days=90,
    )


@pytest_asyncio.fixture
async def snapshot_service(test_config):
    """Create a connected SnapshotService for testing."""
    from dbsnap.core import initialize_service, shutdown_service

    service = await initialize_service(test_config)
    yield service
    await shutdown_service(service)
