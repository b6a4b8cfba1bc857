# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
PostgreSQL Adapter - Schema discovery, export and reload over asyncpg.

Reads run inside a read-only REPEATABLE READ transaction so every table
is dumped from the same snapshot. The reload truncates all dumped tables
with RESTART IDENTITY CASCADE and re-inserts the rows inside a single
transaction.

Timestamps are stored as ISO strings in dumps; asyncpg needs native
objects for typed parameters, so values are coerced using the column
types from the catalog before inserting.

asyncpg decodes network, geometric, range, bit string and composite
types into driver objects with no JSON form. Those columns travel as
their PostgreSQL text representation: selected with ``::text`` and
inserted back through ``$n::text::<column type>``.
"""

import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from itertools import groupby
from typing import Any, AsyncIterator, Callable, Dict, List, Sequence
from uuid import UUID

import asyncpg
import structlog

from dbsnap.db import TableRows, mask_password, quote_ident
from dbsnap.exceptions import DatabaseError

logger = structlog.get_logger()

Coercer = Callable[[Any], Any]


def _from_iso(parse: Callable[[str], Any]) -> Coercer:
    def coerce(value: Any) -> Any:
        return parse(value) if isinstance(value, str) else value

    return coerce


def _to_json_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


def _to_interval(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    return value


# format_type(atttypid, NULL) -> coercion of a decoded dump value
_COERCERS: Dict[str, Coercer] = {
    "timestamp with time zone": _from_iso(datetime.fromisoformat),
    "timestamp without time zone": _from_iso(datetime.fromisoformat),
    "date": _from_iso(date.fromisoformat),
    "time with time zone": _from_iso(time.fromisoformat),
    "time without time zone": _from_iso(time.fromisoformat),
    "numeric": _from_iso(Decimal),
    "uuid": _from_iso(UUID),
    "bigint": _from_iso(int),
    "interval": _to_interval,
    "json": _to_json_text,
    "jsonb": _to_json_text,
}

# pg_type.typcategory: network address, geometric, range, bit string
_TEXT_CATEGORIES = frozenset({"I", "G", "R", "V"})
# pg_type.typtype: composite, range, multirange
_TEXT_KINDS = frozenset({"c", "r", "m"})

# Arrays are classified by their element type
_COLUMNS_QUERY = """
SELECT a.attname AS column_name,
       format_type(a.atttypid, NULL) AS data_type,
       format_type(a.atttypid, a.atttypmod) AS column_type,
       coalesce(et.typcategory, t.typcategory)::text AS category,
       coalesce(et.typtype, t.typtype)::text AS kind
FROM pg_attribute a
JOIN pg_type t ON t.oid = a.atttypid
LEFT JOIN pg_type et ON et.oid = t.typelem AND t.typcategory = 'A'
WHERE a.attrelid = $1::regclass
  AND a.attnum > 0
  AND NOT a.attisdropped
ORDER BY a.attnum
"""


@dataclass(frozen=True)
class ColumnInfo:
    """How one column is read from and written back to the database."""

    name: str
    data_type: str  # without modifiers, e.g. "numeric"
    column_type: str  # with modifiers, e.g. "numeric(10,2)"
    as_text: bool

    def select_expr(self) -> str:
        if self.as_text:
            return f"{quote_ident(self.name)}::text AS {quote_ident(self.name)}"
        return quote_ident(self.name)

    def placeholder(self, index: int) -> str:
        if self.as_text:
            return f"${index}::text::{self.column_type}"
        return f"${index}"


async def describe_columns(conn: Any, qualified_table: str) -> Dict[str, ColumnInfo]:
    """Column name -> ColumnInfo, in table order."""
    rows = await conn.fetch(_COLUMNS_QUERY, qualified_table)
    return {
        row["column_name"]: ColumnInfo(
            name=row["column_name"],
            data_type=row["data_type"],
            column_type=row["column_type"],
            as_text=row["category"] in _TEXT_CATEGORIES or row["kind"] in _TEXT_KINDS,
        )
        for row in rows
    }


class PostgresReader:
    """Reads tables of one schema through a single connection."""

    def __init__(self, conn: Any, schema: str):
        self._conn = conn
        self._schema = schema

    async def list_tables(self) -> List[str]:
        rows = await self._conn.fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = $1
              AND table_type = 'BASE TABLE'
            ORDER BY table_name ASC
            """,
            self._schema,
        )
        return [row["table_name"] for row in rows]

    async def fetch_rows(self, table: str) -> List[Dict[str, Any]]:
        qualified = f"{quote_ident(self._schema)}.{quote_ident(table)}"
        columns = await describe_columns(self._conn, qualified)
        select_list = ", ".join(column.select_expr() for column in columns.values()) or "*"

        records = await self._conn.fetch(f"SELECT {select_list} FROM {qualified}")
        return [dict(record) for record in records]


class PostgresAdapter:
    """DatabaseAdapter backed by an asyncpg connection pool."""

    def __init__(
        self,
        connection_url: str,
        schema: str = "public",
        min_pool_size: int = 1,
        max_pool_size: int = 4,
    ):
        self._url = connection_url
        self._schema = schema
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: Any = None

    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._url,
                min_size=self._min_pool_size,
                max_size=self._max_pool_size,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to PostgreSQL: {e}",
                details={"connection_url": mask_password(self._url)},
            ) from e

        logger.info(
            "postgres_pool_created",
            connection_url=mask_password(self._url),
            schema=self._schema,
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("postgres_pool_closed")

    def _require_pool(self) -> Any:
        if self._pool is None:
            raise DatabaseError("PostgreSQL adapter is not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[PostgresReader]:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                yield PostgresReader(conn, self._schema)

    async def replace_all(self, tables: Sequence[TableRows]) -> None:
        pool = self._require_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                # Only affects DEFERRABLE constraints; others are checked per row
                await conn.execute("SET CONSTRAINTS ALL DEFERRED")

                if tables:
                    names = ", ".join(self._qualified(name) for name, _ in tables)
                    await conn.execute(f"TRUNCATE TABLE {names} RESTART IDENTITY CASCADE")

                for name, rows in tables:
                    if not rows:
                        continue
                    columns = await describe_columns(conn, self._qualified(name))
                    await self._insert_rows(conn, name, rows, columns)

                    logger.debug("table_reloaded", table=name, rows=len(rows))

    async def _insert_rows(
        self,
        conn: Any,
        table: str,
        rows: List[Dict[str, Any]],
        columns: Dict[str, ColumnInfo],
    ) -> None:
        # Rows of one table normally share a column set; batch each run of them
        for names, group in groupby(rows, key=lambda row: tuple(row.keys())):
            if not names:
                for _ in group:
                    await conn.execute(f"INSERT INTO {self._qualified(table)} DEFAULT VALUES")
                continue

            infos = [columns.get(name) for name in names]
            column_list = ", ".join(quote_ident(name) for name in names)
            placeholders = ", ".join(
                info.placeholder(idx) if info else f"${idx}"
                for idx, info in enumerate(infos, start=1)
            )
            coercers = [_coercer_for(info) for info in infos]

            query = (
                f"INSERT INTO {self._qualified(table)} ({column_list}) "
                f"VALUES ({placeholders})"
            )
            args = [
                [coerce(row[name]) for name, coerce in zip(names, coercers)]
                for row in group
            ]
            await conn.executemany(query, args)

    def _qualified(self, table: str) -> str:
        return f"{quote_ident(self._schema)}.{quote_ident(table)}"


def _coercer_for(info: ColumnInfo | None) -> Coercer:
    if info is None or info.as_text:
        return _identity
    return _COERCERS.get(info.data_type, _identity)


def _identity(value: Any) -> Any:
    return value
