"""
SQLite persistence substrate for the record store.

Tables:
  records            : every category's records: indexed columns + JSON payload
  audit_entries      : append-only history of mutable records
  baseline_profiles  : one row per subject (upsert)
  schema_meta        : persisted schema version

Index columns (subject_id, event_date, record_type, active) are written only
by the record store's row builder; this module stores what it is given.
All writes happen inside transaction(), which commits every statement
together or rolls all of them back.
"""

import json
import os
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from core.config import StorageConfig
from core.domain.schema import SchemaRegistry

logger = structlog.get_logger(__name__)

Row = dict[str, Any]


class SQLiteBackend:
    """
    Local SQLite store with explicit transactions.

    The connection runs in autocommit mode; transaction() issues
    BEGIN IMMEDIATE / COMMIT / ROLLBACK itself so a dual write is one unit.
    A lock serializes access because async callers reach it from worker threads.
    """

    def __init__(self, config: StorageConfig, registry: SchemaRegistry | None = None) -> None:
        self.config = config
        self.registry = registry or SchemaRegistry()
        self.logger = logger.bind(component="sqlite_backend", path=config.path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    # ─── LIFECYCLE ─────────────────────────────────────────────

    def open(self) -> None:
        if self._conn is not None:
            return
        directory = os.path.dirname(self.config.path)
        if directory and self.config.path != ":memory:":
            os.makedirs(directory, exist_ok=True)

        conn = sqlite3.connect(
            self.config.path,
            timeout=self.config.busy_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        if self.config.wal_mode and self.config.path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
        self._conn = conn
        self._migrate()
        self.logger.info("storage_opened", schema_version=self.registry.current_version)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self.logger.info("storage_closed")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage not open - call open() first")
        return self._conn

    # ─── TRANSACTIONS ──────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write scope: everything inside commits together or not at all."""
        with self._lock:
            conn = self.conn
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            yield self.conn

    # ─── SCHEMA ────────────────────────────────────────────────

    def schema_version(self) -> int:
        with self.reading() as conn:
            return self._read_version(conn)

    def _read_version(self, conn: sqlite3.Connection) -> int:
        conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (version INTEGER NOT NULL)")
        row = conn.execute("SELECT version FROM schema_meta").fetchone()
        return int(row["version"]) if row else 0

    def _migrate(self) -> None:
        with self.transaction() as conn:
            persisted = self._read_version(conn)
            pending = self.registry.pending_migrations(persisted)
            for version, statements in pending:
                for statement in statements:
                    conn.execute(statement)
                self.logger.info("schema_migrated", from_version=persisted, to_version=version)
            if pending:
                conn.execute("DELETE FROM schema_meta")
                conn.execute(
                    "INSERT INTO schema_meta (version) VALUES (?)", (pending[-1][0],)
                )

    # ─── RECORDS ───────────────────────────────────────────────

    def insert_record(self, conn: sqlite3.Connection, row: Row) -> int:
        cursor = conn.execute(
            """
            INSERT INTO records
            (category, subject_id, event_date, record_type, active,
             created_at, last_modified, data)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["category"],
                row["subject_id"],
                row["event_date"],
                row["record_type"],
                row["active"],
                row["created_at"],
                row["last_modified"],
                json.dumps(row["data"], default=str),
            ),
        )
        return int(cursor.lastrowid)

    def update_record(self, conn: sqlite3.Connection, record_id: int, row: Row) -> None:
        conn.execute(
            """
            UPDATE records
               SET subject_id = ?, event_date = ?, record_type = ?, active = ?,
                   last_modified = ?, data = ?
             WHERE id = ? AND category = ?
            """,
            (
                row["subject_id"],
                row["event_date"],
                row["record_type"],
                row["active"],
                row["last_modified"],
                json.dumps(row["data"], default=str),
                record_id,
                row["category"],
            ),
        )

    def fetch_record(self, conn: sqlite3.Connection, category: str, record_id: int) -> Row | None:
        row = conn.execute(
            "SELECT * FROM records WHERE id = ? AND category = ?", (record_id, category)
        ).fetchone()
        return _decode(row) if row else None

    def query_records(
        self,
        conn: sqlite3.Connection,
        category: str,
        subject_id: str,
        since: str | None = None,
        record_type: str | None = None,
        active: bool | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        sql = "SELECT * FROM records WHERE category = ? AND subject_id = ?"
        params: list[Any] = [category, subject_id]
        if since is not None:
            sql += " AND event_date >= ?"
            params.append(since)
        if record_type is not None:
            sql += " AND record_type = ?"
            params.append(record_type)
        if active is not None:
            sql += " AND active = ?"
            params.append(1 if active else 0)
        sql += " ORDER BY event_date DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_decode(r) for r in conn.execute(sql, params).fetchall()]

    # ─── AUDIT ENTRIES ─────────────────────────────────────────

    def insert_audit_entry(self, conn: sqlite3.Connection, row: Row) -> int:
        cursor = conn.execute(
            """
            INSERT INTO audit_entries
            (category, record_category, record_id, change_kind, changed_at, data)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                row["category"],
                row["record_category"],
                row["record_id"],
                row["change_kind"],
                row["changed_at"],
                json.dumps(row["data"], default=str),
            ),
        )
        return int(cursor.lastrowid)

    def fetch_audit_entries(
        self, conn: sqlite3.Connection, record_category: str, record_id: int
    ) -> list[Row]:
        rows = conn.execute(
            """
            SELECT * FROM audit_entries
             WHERE record_category = ? AND record_id = ?
             ORDER BY changed_at DESC, id DESC
            """,
            (record_category, record_id),
        ).fetchall()
        return [_decode(r) for r in rows]

    # ─── BASELINES ─────────────────────────────────────────────

    def upsert_baseline(
        self, conn: sqlite3.Connection, subject_id: str, updated_at: str, data: dict[str, Any]
    ) -> None:
        conn.execute(
            """
            INSERT INTO baseline_profiles (subject_id, updated_at, data)
            VALUES (?, ?, ?)
            ON CONFLICT(subject_id) DO UPDATE SET
                updated_at = excluded.updated_at,
                data = excluded.data
            """,
            (subject_id, updated_at, json.dumps(data, default=str)),
        )

    def fetch_baseline(self, conn: sqlite3.Connection, subject_id: str) -> Row | None:
        row = conn.execute(
            "SELECT * FROM baseline_profiles WHERE subject_id = ?", (subject_id,)
        ).fetchone()
        return _decode(row) if row else None


def _decode(row: sqlite3.Row) -> Row:
    decoded = dict(row)
    decoded["data"] = json.loads(decoded.get("data") or "{}")
    return decoded
