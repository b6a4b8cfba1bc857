# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
DB Snapshot Models - Archive, metadata and dump records.

Python attributes are snake_case; the JSON members stored inside archives
keep the camelCase names of the archive format (exportedAt, rowCount,
createdAt, triggeredBy, requestedBy, tableCounts).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from dbsnap.config import TriggerSource

METADATA_VERSION = 1


@dataclass(frozen=True)
class Requester:
    """Identity of whoever asked for an operation. Both fields may be null."""

    id: str | None = None
    name: str | None = None

    def to_dict(self) -> Dict[str, str | None]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "Requester":
        if not data:
            return cls()
        return cls(id=data.get("id"), name=data.get("name"))


@dataclass
class BackupMetadata:
    """Descriptor embedded in every archive as metadata.json."""

    version: int
    created_at: str  # ISO 8601
    triggered_by: TriggerSource
    requested_by: Requester
    table_counts: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "triggeredBy": self.triggered_by.value,
            "requestedBy": self.requested_by.to_dict(),
            "tableCounts": dict(self.table_counts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupMetadata":
        """
        Parse a metadata.json document.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed
        """
        table_counts = data["tableCounts"]
        if not isinstance(table_counts, dict):
            raise TypeError("tableCounts must be an object")

        return cls(
            version=int(data["version"]),
            created_at=str(data["createdAt"]),
            triggered_by=TriggerSource(data["triggeredBy"]),
            requested_by=Requester.from_dict(data.get("requestedBy")),
            table_counts={str(name): int(count) for name, count in table_counts.items()},
        )


@dataclass
class TableDump:
    """All rows of one table."""

    name: str
    row_count: int
    rows: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "rowCount": self.row_count, "rows": self.rows}


@dataclass
class DatabaseDump:
    """The database.json document: every table, in dump order."""

    exported_at: str  # ISO 8601
    tables: List[TableDump] = field(default_factory=list)

    def table_counts(self) -> Dict[str, int]:
        return {table.name: len(table.rows) for table in self.tables}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exportedAt": self.exported_at,
            "tables": [table.to_dict() for table in self.tables],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseDump":
        """
        Parse a database.json document.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed
        """
        if not isinstance(data, dict):
            raise TypeError("database dump must be an object")
        entries = data["tables"]
        if not isinstance(entries, list):
            raise TypeError("tables must be a list")

        tables: List[TableDump] = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise TypeError(f"table entry must be an object, got {type(entry).__name__}")
            rows = entry.get("rows") or []
            if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
                raise TypeError(f"rows of table {entry.get('name')!r} must be a list of objects")
            tables.append(
                TableDump(
                    name=str(entry["name"]),
                    row_count=int(entry.get("rowCount", len(rows))),
                    rows=rows,
                )
            )
        return cls(exported_at=str(data["exportedAt"]), tables=tables)


@dataclass
class BackupInfo:
    """A stored archive as seen by the catalog."""

    name: str
    created_at: str  # ISO 8601, file modification time
    size_bytes: int
    size_human: str
    path: str
    metadata: BackupMetadata | None = None


@dataclass
class BackupSummary:
    """Overview shown next to the archive list."""

    total: int
    last_backup_at: str | None
    next_scheduled_backup_at: str
