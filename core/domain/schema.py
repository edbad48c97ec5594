"""
Schema registry: record categories, their indices, and persisted schema versions.

Every RecordCategory must have exactly one CategorySpec. The check runs at
import time so adding a category without declaring its schema fails
immediately instead of at the first write.
"""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

from core.domain.models import FoodDiaryEntry, RecordCategory


class IndexField(str, Enum):
    """Secondary indices a category can declare."""

    SUBJECT = "subject_id"
    DATE = "event_date"
    ACTIVE = "active"
    TYPE = "record_type"


@dataclass(frozen=True)
class CategorySpec:
    category: RecordCategory
    required_fields: tuple[str, ...] = ()
    date_field: str = "date"
    type_field: str | None = None
    mutable: bool = False
    audit_category: RecordCategory | None = None
    stamp_date_if_missing: bool = False
    creatable: bool = True
    date_fields: tuple[str, ...] = field(default_factory=tuple)
    # Full payload model checked on every write, beyond the required fields
    payload_model: type[BaseModel] | None = None

    @property
    def indices(self) -> tuple[IndexField, ...]:
        found = [IndexField.SUBJECT, IndexField.DATE]
        if self.mutable:
            found.append(IndexField.ACTIVE)
        if self.type_field:
            found.append(IndexField.TYPE)
        return tuple(found)

    @property
    def all_required(self) -> tuple[str, ...]:
        return ("subject_id", *self.required_fields)

    @property
    def parsed_date_fields(self) -> tuple[str, ...]:
        """Payload fields that must parse as ISO dates when present."""
        if self.date_field in ("created_at", "changed_at", "updated_at"):
            return self.date_fields
        return (self.date_field, *self.date_fields)


_SPECS: dict[RecordCategory, CategorySpec] = {
    spec.category: spec
    for spec in (
        CategorySpec(
            RecordCategory.SEIZURE_EVENTS,
            required_fields=("date_time",),
            date_field="date_time",
        ),
        CategorySpec(
            RecordCategory.THERAPY,
            required_fields=("medication_name", "dosage"),
            date_field="created_at",
            mutable=True,
            audit_category=RecordCategory.THERAPY_HISTORY,
        ),
        CategorySpec(
            RecordCategory.THERAPY_HISTORY,
            date_field="changed_at",
            creatable=False,
        ),
        CategorySpec(
            RecordCategory.DEVELOPMENT_CHECKPOINTS,
            date_field="record_date",
            stamp_date_if_missing=True,
        ),
        CategorySpec(
            RecordCategory.LAB_RESULTS,
            required_fields=("date", "test_type", "value"),
            type_field="test_type",
        ),
        CategorySpec(
            RecordCategory.MEDICATIONS,
            required_fields=("name", "dosage"),
            date_field="start_date",
            mutable=True,
            audit_category=RecordCategory.THERAPY_HISTORY,
        ),
        CategorySpec(RecordCategory.TRANSFUSIONS, required_fields=("date",)),
        CategorySpec(
            RecordCategory.HOSPITALIZATIONS,
            required_fields=("admission_date",),
            date_field="admission_date",
            date_fields=("discharge_date",),
        ),
        CategorySpec(
            RecordCategory.OPERATIONS,
            required_fields=("date",),
            type_field="operation_type",
        ),
        CategorySpec(
            RecordCategory.VACCINATIONS,
            required_fields=("date", "vaccine_name"),
            type_field="vaccine_name",
        ),
        CategorySpec(
            RecordCategory.ANNUAL_EXAMS,
            required_fields=("date", "exam_type"),
            type_field="exam_type",
            date_fields=("next_scheduled",),
        ),
        CategorySpec(RecordCategory.DAILY_TRACKING, required_fields=("date",)),
        CategorySpec(RecordCategory.RED_FLAG_EVENTS, required_fields=("date", "symptoms")),
        CategorySpec(
            RecordCategory.DOCTOR_VISITS,
            required_fields=("date",),
            date_fields=("next_visit",),
        ),
        CategorySpec(
            RecordCategory.BASELINE_PROFILE,
            date_field="updated_at",
            creatable=False,
        ),
        CategorySpec(
            RecordCategory.FOOD_DIARY_ENTRIES,
            required_fields=("date", "foods"),
            payload_model=FoodDiaryEntry,
        ),
        CategorySpec(
            RecordCategory.ELIMINATION_PLANS,
            required_fields=("items",),
            date_field="created_at",
        ),
    )
}

_missing = set(RecordCategory) - set(_SPECS)
if _missing:
    raise RuntimeError(f"Categories without a schema: {sorted(c.value for c in _missing)}")


# Ordered migrations: version -> statements that bring version-1 up to version.
MIGRATIONS: dict[int, tuple[str, ...]] = {
    1: (
        """
        CREATE TABLE IF NOT EXISTS records (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            category        TEXT NOT NULL,
            subject_id      TEXT NOT NULL,
            event_date      TEXT NOT NULL,
            record_type     TEXT,
            active          INTEGER,
            created_at      TEXT NOT NULL,
            last_modified   TEXT,
            data            TEXT NOT NULL DEFAULT '{}'
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS audit_entries (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            category        TEXT NOT NULL,
            record_category TEXT NOT NULL,
            record_id       INTEGER NOT NULL REFERENCES records(id),
            change_kind     TEXT NOT NULL,
            changed_at      TEXT NOT NULL,
            data            TEXT NOT NULL DEFAULT '{}'
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_records_subject ON records(category, subject_id)",
        "CREATE INDEX IF NOT EXISTS idx_records_date ON records(category, event_date)",
        "CREATE INDEX IF NOT EXISTS idx_records_active ON records(category, active)",
        "CREATE INDEX IF NOT EXISTS idx_audit_record ON audit_entries(record_id, changed_at)",
    ),
    2: (
        """
        CREATE TABLE IF NOT EXISTS baseline_profiles (
            subject_id  TEXT PRIMARY KEY,
            updated_at  TEXT NOT NULL,
            data        TEXT NOT NULL DEFAULT '{}'
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_records_type ON records(category, record_type)",
    ),
}


class SchemaRegistry:
    """Lookup of category schemas and the migration plan."""

    current_version: int = max(MIGRATIONS)

    def spec(self, category: RecordCategory) -> CategorySpec:
        return _SPECS[category]

    def categories(self) -> list[RecordCategory]:
        return list(_SPECS)

    def mutable_categories(self) -> list[RecordCategory]:
        return [c for c, s in _SPECS.items() if s.mutable]

    def pending_migrations(self, persisted_version: int) -> list[tuple[int, tuple[str, ...]]]:
        """Migrations to apply, in order, for a store at persisted_version."""
        if persisted_version > self.current_version:
            raise RuntimeError(
                f"Store schema version {persisted_version} is newer than "
                f"supported version {self.current_version}"
            )
        return [(v, MIGRATIONS[v]) for v in sorted(MIGRATIONS) if v > persisted_version]
