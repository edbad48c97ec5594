"""
Domain models for the family chronic-disease tracker.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; persisted snapshots are frozen so analytics
can never mutate what the store handed them.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RecordCategory(str, Enum):
    """Closed set of record categories kept by the store."""

    SEIZURE_EVENTS = "seizure-events"
    THERAPY = "therapy"
    THERAPY_HISTORY = "therapy-history"
    DEVELOPMENT_CHECKPOINTS = "development-checkpoints"
    LAB_RESULTS = "lab-results"
    MEDICATIONS = "medications"
    TRANSFUSIONS = "transfusions"
    HOSPITALIZATIONS = "hospitalizations"
    OPERATIONS = "operations"
    VACCINATIONS = "vaccinations"
    ANNUAL_EXAMS = "annual-exams"
    DAILY_TRACKING = "daily-tracking"
    RED_FLAG_EVENTS = "red-flag-events"
    DOCTOR_VISITS = "doctor-visits"
    BASELINE_PROFILE = "baseline-profile"
    FOOD_DIARY_ENTRIES = "food-diary-entries"
    ELIMINATION_PLANS = "elimination-plans"


class ChangeKind(str, Enum):
    """Mutation kinds recorded by the audit trail."""

    CREATED = "created"
    UPDATED = "updated"
    DEACTIVATED = "deactivated"


class Record(BaseModel):
    """A stored record snapshot."""

    model_config = ConfigDict(frozen=True)

    id: int
    category: RecordCategory
    subject_id: str
    created_at: datetime
    event_date: datetime = Field(description="Value of the category's date field")
    payload: dict[str, Any] = Field(default_factory=dict)

    # Lifecycle fields, only meaningful for mutable categories
    active: bool | None = None
    last_modified: datetime | None = None
    deactivated_at: datetime | None = None
    deactivation_reason: str | None = None

    def get(self, field: str, default: Any = None) -> Any:
        return self.payload.get(field, default)


class CategoryPayload(BaseModel):
    """
    Typed payload for one record category.

    Condition adapters subclass this; the store only ever sees the dict
    produced by to_payload().
    """

    category: ClassVar[RecordCategory]

    subject_id: str = Field(min_length=1)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class AuditEntry(BaseModel):
    """Append-only history entry for a mutable record."""

    model_config = ConfigDict(frozen=True)

    id: int
    category: RecordCategory = RecordCategory.THERAPY_HISTORY
    record_category: RecordCategory
    record_id: int
    change_kind: ChangeKind
    changed_at: datetime
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any]
    note: str = ""


class BaselineProfile(BaseModel):
    """Per-subject reference values. One live row per subject."""

    subject_id: str = Field(min_length=1)
    normal_hb: float | None = Field(None, gt=0.0, description="Steady-state hemoglobin g/dL")
    hb_std_dev: float = Field(default=1.0, gt=0.0)
    current_weight: float | None = Field(None, gt=0.0, description="Weight in kg")
    known_complications: list[str] = Field(default_factory=list)
    environmental_risks: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class QueryWindow(BaseModel):
    """Trailing time window: exactly one of the three fields is set."""

    model_config = ConfigDict(frozen=True)

    days_back: int | None = Field(None, ge=0)
    months_back: int | None = Field(None, ge=0)
    years_back: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def exactly_one_unit(self) -> "QueryWindow":
        given = [v for v in (self.days_back, self.months_back, self.years_back) if v is not None]
        if len(given) != 1:
            raise ValueError("exactly one of days_back, months_back, years_back must be set")
        return self


class DiarySeverity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class FoodItem(BaseModel):
    name: str = Field(min_length=1)
    amount: str | None = None


class FoodDiaryEntry(BaseModel):
    """One day of the food diary."""

    date: datetime
    foods: list[FoodItem] = Field(default_factory=list)
    reactions: list[str] = Field(default_factory=list)
    severity: DiarySeverity | None = None
    notes: str | None = None

    @field_validator("foods", mode="before")
    @classmethod
    def accept_plain_names(cls, v: Any) -> Any:
        """Allow foods given as bare strings."""
        if isinstance(v, list):
            return [{"name": item} if isinstance(item, str) else item for item in v]
        return v

    @field_validator("severity", mode="before")
    @classmethod
    def blank_severity_is_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    @property
    def has_reaction(self) -> bool:
        return len(self.reactions) > 0

    @classmethod
    def from_record(cls, record: Record) -> "FoodDiaryEntry":
        return cls.model_validate({**record.payload, "date": record.event_date})
