"""
Append-only audit trail for mutable record categories.

Entries are only ever inserted, always through the caller's open
transaction, so an entry and the domain write it describes commit or roll
back together. There is no update or delete path for audit rows.
"""

import sqlite3
from datetime import datetime
from typing import Any

import structlog

from core.domain.dates import index_key, parse_timestamp
from core.domain.models import AuditEntry, ChangeKind, Record, RecordCategory
from core.domain.schema import SchemaRegistry
from core.services.storage import Row, SQLiteBackend

logger = structlog.get_logger(__name__)

# Stable note codes, localized by core.presentation
DEFAULT_NOTES = {
    ChangeKind.CREATED: "record_added",
    ChangeKind.UPDATED: "record_changed",
    ChangeKind.DEACTIVATED: "record_removed",
}


class AuditTrail:
    """Writes and reads history entries for therapy and medication records."""

    def __init__(self, backend: SQLiteBackend, registry: SchemaRegistry | None = None) -> None:
        self.backend = backend
        self.registry = registry or SchemaRegistry()
        self.logger = logger.bind(component="audit_trail")

    def append(
        self,
        conn: sqlite3.Connection,
        record: Record,
        change_kind: ChangeKind,
        changed_at: datetime,
        old_value: dict[str, Any] | None,
        new_value: dict[str, Any],
        note: str | None = None,
    ) -> AuditEntry:
        """
        Insert one entry inside an open transaction.

        The record must belong to a mutable category; `created` entries carry
        no old value. Without a note the change kind's stable code is used.
        """
        spec = self.registry.spec(record.category)
        if not spec.mutable or spec.audit_category is None:
            raise ValueError(f"{record.category.value} is not an audited category")
        if change_kind is ChangeKind.CREATED:
            old_value = None
        if not note:
            note = DEFAULT_NOTES[change_kind]

        row: Row = {
            "category": spec.audit_category.value,
            "record_category": record.category.value,
            "record_id": record.id,
            "change_kind": change_kind.value,
            "changed_at": index_key(changed_at),
            "data": {"old_value": old_value, "new_value": new_value, "note": note},
        }
        entry_id = self.backend.insert_audit_entry(conn, row)

        self.logger.debug(
            "audit_entry_appended",
            entry_id=entry_id,
            record_category=record.category.value,
            record_id=record.id,
            change_kind=change_kind.value,
        )
        return _to_entry({**row, "id": entry_id})

    def history(
        self, conn: sqlite3.Connection, category: RecordCategory, record_id: int
    ) -> list[AuditEntry]:
        """All entries for one record, newest first."""
        rows = self.backend.fetch_audit_entries(conn, category.value, record_id)
        return [_to_entry(row) for row in rows]


def _to_entry(row: Row) -> AuditEntry:
    data = row["data"]
    return AuditEntry(
        id=row["id"],
        category=RecordCategory(row["category"]),
        record_category=RecordCategory(row["record_category"]),
        record_id=row["record_id"],
        change_kind=ChangeKind(row["change_kind"]),
        changed_at=parse_timestamp(row["changed_at"]),
        old_value=data.get("old_value"),
        new_value=data.get("new_value") or {},
        note=data.get("note") or "",
    )
