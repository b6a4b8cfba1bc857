# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
SQLite Adapter - Schema discovery, export and reload over aiosqlite.

SQLite has no TRUNCATE: the reload deletes every dumped table's rows and
clears their AUTOINCREMENT counters in sqlite_sequence, all inside one
IMMEDIATE transaction. Foreign key checks are deferred to commit.
"""

from contextlib import asynccontextmanager
from itertools import groupby
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Sequence

import aiosqlite
import structlog

from dbsnap.db import TableRows, quote_ident

logger = structlog.get_logger()


class SqliteReader:
    """Reads tables through one connection inside a read transaction."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def list_tables(self) -> List[str]:
        async with self._db.execute(
            """
            SELECT name FROM sqlite_master
            WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
            ORDER BY name ASC
            """
        ) as cursor:
            return [row[0] async for row in cursor]

    async def fetch_rows(self, table: str) -> List[Dict[str, Any]]:
        async with self._db.execute(f"SELECT * FROM {quote_ident(table)}") as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]


class SqliteAdapter:
    """DatabaseAdapter for a SQLite database file."""

    def __init__(self, database_path: Path | str):
        self._path = Path(database_path)

    async def connect(self) -> None:
        # Connections are opened per operation
        logger.info("sqlite_adapter_ready", database_path=str(self._path))

    async def close(self) -> None:
        pass

    def _connect(self) -> aiosqlite.Connection:
        # Autocommit mode; transactions are issued explicitly
        return aiosqlite.connect(self._path, isolation_level=None)

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[SqliteReader]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN")
            try:
                yield SqliteReader(db)
            finally:
                await db.execute("ROLLBACK")

    async def replace_all(self, tables: Sequence[TableRows]) -> None:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                await db.execute("PRAGMA defer_foreign_keys = ON")

                for name, _ in tables:
                    await db.execute(f"DELETE FROM {quote_ident(name)}")
                await self._reset_sequences(db, [name for name, _ in tables])

                for name, rows in tables:
                    if not rows:
                        continue
                    await self._insert_rows(db, name, rows)

                    logger.debug("table_reloaded", table=name, rows=len(rows))

                await db.execute("COMMIT")
            except Exception:
                await db.execute("ROLLBACK")
                raise

    async def _reset_sequences(self, db: aiosqlite.Connection, names: List[str]) -> None:
        if not names:
            return
        async with db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'"
        ) as cursor:
            if await cursor.fetchone() is None:
                return
        placeholders = ", ".join("?" for _ in names)
        await db.execute(
            f"DELETE FROM sqlite_sequence WHERE name IN ({placeholders})",
            names,
        )

    async def _insert_rows(
        self,
        db: aiosqlite.Connection,
        table: str,
        rows: List[Dict[str, Any]],
    ) -> None:
        for columns, group in groupby(rows, key=lambda row: tuple(row.keys())):
            if not columns:
                for _ in group:
                    await db.execute(f"INSERT INTO {quote_ident(table)} DEFAULT VALUES")
                continue

            column_list = ", ".join(quote_ident(column) for column in columns)
            placeholders = ", ".join("?" for _ in columns)
            await db.executemany(
                f"INSERT INTO {quote_ident(table)} ({column_list}) VALUES ({placeholders})",
                [[row[column] for column in columns] for row in group],
            )
