# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Database Serializer - Dump every base table with type-preserving encoding.

Tables are discovered at call time (no fixed table list) and dumped in
name order. The whole dump is held in memory before it is written to an
archive; very large databases need correspondingly large memory.
"""

from datetime import datetime, UTC
from typing import Dict, List, Tuple

import structlog

from dbsnap.db import DatabaseAdapter
from dbsnap.exceptions import SerializationError
from dbsnap.models import DatabaseDump, TableDump
from dbsnap.values import encode_row

logger = structlog.get_logger()


async def serialize_database(
    adapter: DatabaseAdapter,
) -> Tuple[DatabaseDump, Dict[str, int]]:
    """
    Read the schema and dump all rows.

    Args:
        adapter: Connected database adapter

    Returns:
        Tuple of (dump, table_counts) where table_counts maps each table
        name to the number of rows dumped for it

    Raises:
        SerializationError: If any query or value encoding fails. No
            partial dump is returned.
    """
    tables: List[TableDump] = []
    table_counts: Dict[str, int] = {}
    current_table: str | None = None

    try:
        async with adapter.reader() as reader:
            for table_name in await reader.list_tables():
                current_table = table_name
                rows = await reader.fetch_rows(table_name)
                encoded = [encode_row(row) for row in rows]

                tables.append(
                    TableDump(name=table_name, row_count=len(encoded), rows=encoded)
                )
                table_counts[table_name] = len(encoded)

    except Exception as e:
        raise SerializationError(
            f"Failed to serialize database: {e}",
            details={"table": current_table},
        ) from e

    dump = DatabaseDump(
        exported_at=datetime.now(UTC).isoformat(),
        tables=tables,
    )

    logger.info(
        "database_serialized",
        tables=len(tables),
        rows=sum(table_counts.values()),
    )

    return dump, table_counts
