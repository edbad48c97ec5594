"""
Record store: validated, indexed, audited persistence for every category.

Key patterns:
- Generic Result type for explicit error handling at the persistence boundary
- Every operation is one task; dual writes (record + audit) are one transaction
- Index columns are derived by a single row builder used by every write path
- Injectable clock so windows and timestamps are deterministic under test
"""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta
from typing import Any, Generic, TypeVar

import structlog
from pydantic import ValidationError as PydanticValidationError

from core.domain.dates import index_key, parse_timestamp, shift_months, utc_now
from core.domain.errors import NotFoundError, RecordStoreError, StorageError, ValidationError
from core.domain.models import (
    AuditEntry,
    BaselineProfile,
    ChangeKind,
    QueryWindow,
    Record,
    RecordCategory,
)
from core.domain.schema import CategorySpec, SchemaRegistry
from core.services.audit_trail import AuditTrail
from core.services.storage import Row, SQLiteBackend

logger = structlog.get_logger(__name__)

# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Value-or-error outcome of an operation whose failures are expected.

    Store operations use the StoreResult alias, which fixes the error side to
    RecordStoreError so callers branch on is_err() and inspect .category.
    unwrap() re-raises the stored error.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


StoreResult = Result[ValueT, RecordStoreError]

# Fields the store owns; callers may not set them.
SYSTEM_FIELDS = frozenset(
    {"id", "created_at", "active", "last_modified", "deactivated_at", "deactivation_reason"}
)
# Fields that identify a record and never change after creation.
IMMUTABLE_FIELDS = SYSTEM_FIELDS | {"subject_id"}
_LIFECYCLE_FIELDS = ("deactivated_at", "deactivation_reason")


class RecordStore:
    """
    Async record store over a SQLite backend.

    Design principles:
    - Validate before write, fail with ValidationError rather than store junk
    - Mutable categories are audited in the same transaction as the change
    - Storage failures surface as StorageError; nothing is retried or queued
    """

    def __init__(
        self,
        backend: SQLiteBackend,
        registry: SchemaRegistry | None = None,
        audit_trail: AuditTrail | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.registry = registry or backend.registry
        self.audit_trail = audit_trail or AuditTrail(backend, self.registry)
        self.clock = clock
        self.logger = logger.bind(component="record_store")

    def repository(self, category: RecordCategory) -> "CategoryRepository":
        return CategoryRepository(self, category)

    # ─── OPERATIONS ────────────────────────────────────────────

    async def create(
        self, category: RecordCategory, payload: Mapping[str, Any]
    ) -> StoreResult[int]:
        """Validate, assign id and creation time, persist. Returns the new id."""

        def work() -> int:
            spec = self._creatable_spec(category)
            data = _normalize(payload)
            overlap = SYSTEM_FIELDS & data.keys()
            if overlap:
                raise ValidationError(
                    f"Fields managed by the store cannot be set: {sorted(overlap)}",
                    fields=sorted(overlap),
                )
            now = self.clock()
            if spec.stamp_date_if_missing and _is_blank(data.get(spec.date_field)):
                data[spec.date_field] = now.isoformat()
            _validate(spec, data)

            active = True if spec.mutable else None
            row = self._build_row(spec, data, created_at=now, active=active, last_modified=now)
            with self.backend.transaction() as conn:
                record_id = self.backend.insert_record(conn, row)
                if spec.mutable:
                    record = _to_record(spec, {**row, "id": record_id})
                    self.audit_trail.append(
                        conn, record, ChangeKind.CREATED, now, None, _snapshot(record)
                    )
            return record_id

        result = await self._run("record_create", work, category=category.value)
        if result.is_ok():
            self.logger.info("record_created", category=category.value, record_id=result.unwrap())
        return result

    async def get(self, category: RecordCategory, record_id: int) -> StoreResult[Record]:
        def work() -> Record:
            spec = self.registry.spec(category)
            with self.backend.reading() as conn:
                return self._load(conn, spec, record_id)

        return await self._run("record_get", work, category=category.value, record_id=record_id)

    async def query(
        self,
        category: RecordCategory,
        subject_id: str,
        window: QueryWindow | None = None,
        type_filter: str | None = None,
        active_only: bool | None = None,
        limit: int | None = None,
    ) -> StoreResult[list[Record]]:
        """
        Records of one subject, newest event first.

        Args:
            window: Trailing window; keeps records with event date >= now - window.
            type_filter: Equality on the category's type field (e.g. lab test type).
            active_only: For mutable categories, restrict to active (True) or
                deactivated (False) records.
            limit: Maximum number of records returned.
        """

        def work() -> list[Record]:
            spec = self.registry.spec(category)
            if type_filter is not None and spec.type_field is None:
                raise ValidationError(f"{category.value} has no type index")
            if active_only is not None and not spec.mutable:
                raise ValidationError(f"{category.value} has no active index")
            since = index_key(self.cutoff(window)) if window is not None else None
            with self.backend.reading() as conn:
                rows = self.backend.query_records(
                    conn,
                    category.value,
                    subject_id,
                    since=since,
                    record_type=type_filter,
                    active=active_only,
                    limit=limit,
                )
            return [_to_record(spec, row) for row in rows]

        return await self._run(
            "record_query", work, category=category.value, subject_id=subject_id
        )

    async def update(
        self, category: RecordCategory, record_id: int, changes: Mapping[str, Any]
    ) -> StoreResult[Record]:
        """Merge changes into an existing record and refresh its modification time."""

        def work() -> Record:
            spec = self.registry.spec(category)
            data = _normalize(changes)
            overlap = IMMUTABLE_FIELDS & data.keys()
            if overlap:
                raise ValidationError(
                    f"Fields cannot be changed by update: {sorted(overlap)}",
                    fields=sorted(overlap),
                )
            now = self.clock()
            with self.backend.transaction() as conn:
                before = self._load(conn, spec, record_id)
                if spec.mutable and not before.active:
                    raise ValidationError(f"{category.value} record {record_id} is deactivated")

                merged = {**before.payload, **data}
                _validate(spec, merged)
                row = self._build_row(
                    spec,
                    merged,
                    created_at=before.created_at,
                    active=before.active,
                    last_modified=now,
                )
                self.backend.update_record(conn, record_id, row)
                after = _to_record(spec, {**row, "id": record_id})
                if spec.mutable:
                    self.audit_trail.append(
                        conn,
                        after,
                        ChangeKind.UPDATED,
                        now,
                        _snapshot(before),
                        _snapshot(after),
                    )
            return after

        result = await self._run(
            "record_update", work, category=category.value, record_id=record_id
        )
        if result.is_ok():
            self.logger.info("record_updated", category=category.value, record_id=record_id)
        return result

    async def deactivate(
        self, category: RecordCategory, record_id: int, reason: str | None = None
    ) -> StoreResult[Record]:
        """End a mutable record's lifecycle. There is no way back."""

        def work() -> Record:
            spec = self._mutable_spec(category)
            now = self.clock()
            with self.backend.transaction() as conn:
                before = self._load(conn, spec, record_id)
                if not before.active:
                    raise ValidationError(
                        f"{category.value} record {record_id} is already deactivated"
                    )
                data = {
                    **before.payload,
                    "deactivated_at": now.isoformat(),
                    "deactivation_reason": reason,
                }
                row = self._build_row(
                    spec, data, created_at=before.created_at, active=False, last_modified=now
                )
                self.backend.update_record(conn, record_id, row)
                after = _to_record(spec, {**row, "id": record_id})
                self.audit_trail.append(
                    conn,
                    after,
                    ChangeKind.DEACTIVATED,
                    now,
                    {"active": True},
                    {"active": False},
                    note=reason,
                )
            return after

        result = await self._run(
            "record_deactivate", work, category=category.value, record_id=record_id
        )
        if result.is_ok():
            self.logger.info("record_deactivated", category=category.value, record_id=record_id)
        return result

    async def history(
        self, category: RecordCategory, record_id: int
    ) -> StoreResult[list[AuditEntry]]:
        """Audit entries of one mutable record, newest first."""

        def work() -> list[AuditEntry]:
            spec = self._mutable_spec(category)
            with self.backend.reading() as conn:
                self._load(conn, spec, record_id)
                return self.audit_trail.history(conn, category, record_id)

        return await self._run(
            "record_history", work, category=category.value, record_id=record_id
        )

    async def upsert_baseline(self, profile: BaselineProfile) -> StoreResult[BaselineProfile]:
        """Write the subject's baseline, replacing any previous one."""

        def work() -> BaselineProfile:
            stored = profile.model_copy(update={"updated_at": self.clock()})
            with self.backend.transaction() as conn:
                self.backend.upsert_baseline(
                    conn,
                    stored.subject_id,
                    index_key(stored.updated_at),
                    stored.model_dump(mode="json"),
                )
            return stored

        result = await self._run("baseline_upsert", work, subject_id=profile.subject_id)
        if result.is_ok():
            self.logger.info("baseline_saved", subject_id=profile.subject_id)
        return result

    async def get_baseline(self, subject_id: str) -> StoreResult[BaselineProfile]:
        def work() -> BaselineProfile:
            with self.backend.reading() as conn:
                row = self.backend.fetch_baseline(conn, subject_id)
            if row is None:
                raise NotFoundError(RecordCategory.BASELINE_PROFILE.value, subject_id)
            return BaselineProfile.model_validate(row["data"])

        return await self._run("baseline_get", work, subject_id=subject_id)

    # ─── HELPERS ───────────────────────────────────────────────

    def cutoff(self, window: QueryWindow) -> datetime:
        """Inclusive lower bound for a trailing window, relative to the clock."""
        now = self.clock()
        if window.days_back is not None:
            return now - timedelta(days=window.days_back)
        if window.months_back is not None:
            return shift_months(now, -window.months_back)
        return shift_months(now, -12 * (window.years_back or 0))

    async def _run(
        self, operation: str, work: Callable[[], ValueT], **context: Any
    ) -> StoreResult[ValueT]:
        try:
            value = await asyncio.to_thread(work)
        except RecordStoreError as e:
            self.logger.warning(f"{operation}_rejected", error=str(e), **context)
            return Result.err(e)
        except sqlite3.Error as e:
            self.logger.error(f"{operation}_failed", error=str(e), **context)
            error = StorageError(str(e))
            error.__cause__ = e
            return Result.err(error)
        return Result.ok(value)

    def _creatable_spec(self, category: RecordCategory) -> CategorySpec:
        spec = self.registry.spec(category)
        if not spec.creatable:
            raise ValidationError(f"{category.value} records cannot be created directly")
        return spec

    def _mutable_spec(self, category: RecordCategory) -> CategorySpec:
        spec = self.registry.spec(category)
        if not spec.mutable:
            raise ValidationError(f"{category.value} is not a mutable category")
        return spec

    def _load(self, conn: sqlite3.Connection, spec: CategorySpec, record_id: int) -> Record:
        row = self.backend.fetch_record(conn, spec.category.value, record_id)
        if row is None:
            raise NotFoundError(spec.category.value, record_id)
        return _to_record(spec, row)

    def _build_row(
        self,
        spec: CategorySpec,
        data: dict[str, Any],
        created_at: datetime,
        active: bool | None,
        last_modified: datetime | None,
    ) -> Row:
        """The only place index columns are derived from a record."""
        type_value = data.get(spec.type_field) if spec.type_field else None
        return {
            "category": spec.category.value,
            "subject_id": str(data["subject_id"]),
            "event_date": index_key(_event_date(spec, data, created_at)),
            "record_type": None if _is_blank(type_value) else str(type_value),
            "active": None if active is None else int(active),
            "created_at": index_key(created_at),
            "last_modified": index_key(last_modified) if last_modified else None,
            "data": data,
        }


class CategoryRepository:
    """Store operations bound to one category."""

    def __init__(self, store: RecordStore, category: RecordCategory) -> None:
        self.store = store
        self.category = category

    @property
    def mutable(self) -> bool:
        return self.store.registry.spec(self.category).mutable

    async def create(self, payload: Mapping[str, Any]) -> StoreResult[int]:
        return await self.store.create(self.category, payload)

    async def get(self, record_id: int) -> StoreResult[Record]:
        return await self.store.get(self.category, record_id)

    async def update(self, record_id: int, changes: Mapping[str, Any]) -> StoreResult[Record]:
        return await self.store.update(self.category, record_id, changes)

    async def list(
        self,
        subject_id: str,
        window: QueryWindow | None = None,
        type_filter: str | None = None,
        limit: int | None = None,
    ) -> StoreResult[list[Record]]:
        return await self.store.query(
            self.category, subject_id, window=window, type_filter=type_filter, limit=limit
        )

    async def list_active(self, subject_id: str) -> StoreResult[list[Record]]:
        return await self.store.query(self.category, subject_id, active_only=True)

    async def deactivate(self, record_id: int, reason: str | None = None) -> StoreResult[Record]:
        return await self.store.deactivate(self.category, record_id, reason)

    async def history(self, record_id: int) -> StoreResult[list[AuditEntry]]:
        return await self.store.history(self.category, record_id)


def _normalize(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Copy a payload, turning dates into ISO strings so it round-trips through JSON."""

    def convert(value: Any) -> Any:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, Mapping):
            return {str(k): convert(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [convert(v) for v in value]
        return value

    return {str(k): convert(v) for k, v in payload.items()}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _validate(spec: CategorySpec, data: dict[str, Any]) -> None:
    missing = [f for f in spec.all_required if _is_blank(data.get(f))]
    if missing:
        raise ValidationError(
            f"{spec.category.value} is missing required fields: {missing}", fields=missing
        )
    malformed = []
    for field in spec.parsed_date_fields:
        value = data.get(field)
        if _is_blank(value):
            continue
        try:
            parse_timestamp(value)
        except (TypeError, ValueError):
            malformed.append(field)
    if malformed:
        raise ValidationError(
            f"{spec.category.value} has malformed dates: {malformed}", fields=malformed
        )
    if spec.payload_model is not None:
        candidate = dict(data)
        if not _is_blank(candidate.get(spec.date_field)):
            candidate[spec.date_field] = parse_timestamp(candidate[spec.date_field])
        try:
            spec.payload_model.model_validate(candidate)
        except PydanticValidationError as e:
            invalid = _error_fields(e)
            raise ValidationError(
                f"{spec.category.value} has invalid fields: {invalid}", fields=invalid
            ) from e


def _error_fields(error: PydanticValidationError) -> list[str]:
    """Dotted paths of the fields a pydantic error points at, e.g. `foods.1.name`."""
    return [".".join(str(part) for part in detail["loc"]) for detail in error.errors()]


def _event_date(spec: CategorySpec, data: Mapping[str, Any], created_at: datetime) -> datetime:
    value = data.get(spec.date_field)
    if _is_blank(value):
        return created_at
    return parse_timestamp(value)


def _to_record(spec: CategorySpec, row: Row) -> Record:
    data = dict(row["data"])
    lifecycle = {key: data.pop(key, None) for key in _LIFECYCLE_FIELDS}
    created_at = parse_timestamp(row["created_at"])
    return Record(
        id=row["id"],
        category=spec.category,
        subject_id=row["subject_id"],
        created_at=created_at,
        event_date=_event_date(spec, data, created_at),
        payload=data,
        active=None if row["active"] is None else bool(row["active"]),
        last_modified=parse_timestamp(row["last_modified"]) if row["last_modified"] else None,
        deactivated_at=(
            parse_timestamp(lifecycle["deactivated_at"]) if lifecycle["deactivated_at"] else None
        ),
        deactivation_reason=lifecycle["deactivation_reason"],
    )


def _snapshot(record: Record) -> dict[str, Any]:
    """JSON-safe view of a mutable record for the audit trail."""
    return {
        **record.payload,
        "id": record.id,
        "active": record.active,
        "created_at": record.created_at.isoformat(),
        "last_modified": record.last_modified.isoformat() if record.last_modified else None,
    }
