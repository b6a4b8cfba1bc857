# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Database Layer - Schema discovery, row export and transactional reload.

The serializer and the restore orchestrator only talk to the database
through the DatabaseAdapter protocol, so tests can substitute a fixed
table set for live schema introspection.
"""

from typing import Any, AsyncContextManager, Dict, List, Protocol, Sequence, Tuple
from urllib.parse import urlparse

from dbsnap.config import DatabaseBackend, SnapshotConfig
from dbsnap.exceptions import ConfigurationError

# (table name, rows) in dump order
TableRows = Tuple[str, List[Dict[str, Any]]]


class TableReader(Protocol):
    """Read access to one consistent view of the database."""

    async def list_tables(self) -> List[str]:
        """Return every base table name, sorted by name."""
        ...

    async def fetch_rows(self, table: str) -> List[Dict[str, Any]]:
        """Return all rows of a table as column -> native value mappings."""
        ...


class DatabaseAdapter(Protocol):
    """Protocol implemented by each supported database engine."""

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def reader(self) -> AsyncContextManager[TableReader]:
        """Open a read-only session; all reads inside see one snapshot."""
        ...

    async def replace_all(self, tables: Sequence[TableRows]) -> None:
        """
        Replace the contents of the given tables in one transaction.

        Every listed table is truncated (identity reset, cascading), then
        the rows are inserted table by table in the given order. Rows hold
        decoded values. Any error rolls the whole transaction back and
        propagates.
        """
        ...


def sqlite_path_from_url(url: str) -> str:
    """Strip the sqlite:/// prefix from a database URL."""
    prefix = "sqlite:///"
    if not url.lower().startswith(prefix):
        raise ConfigurationError(f"Not a SQLite URL: {url}")
    return url[len(prefix):]


def mask_password(url: str) -> str:
    """Mask password in connection URL for logging."""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(f":{parsed.password}@", ":***@")
    return url


def quote_ident(name: str) -> str:
    """Quote a SQL identifier (table or column name)."""
    return '"' + name.replace('"', '""') + '"'


def create_adapter(config: SnapshotConfig) -> DatabaseAdapter:
    """
    Create the adapter for the configured database backend.

    Args:
        config: Snapshot configuration

    Returns:
        An unconnected DatabaseAdapter

    Raises:
        ConfigurationError: If the backend is unsupported
    """
    if config.database_url is None:
        raise ConfigurationError("database_url is required")

    if config.database_backend == DatabaseBackend.POSTGRES:
        from dbsnap.db.postgres import PostgresAdapter

        return PostgresAdapter(config.database_url, schema=config.database_schema)
    elif config.database_backend == DatabaseBackend.SQLITE:
        from dbsnap.db.sqlite import SqliteAdapter

        return SqliteAdapter(sqlite_path_from_url(config.database_url))
    else:
        raise ConfigurationError(f"Unsupported database backend: {config.database_backend}")


__all__ = [
    "DatabaseAdapter",
    "TableReader",
    "TableRows",
    "create_adapter",
    "mask_password",
    "quote_ident",
    "sqlite_path_from_url",
]
