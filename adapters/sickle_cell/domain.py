"""
Sickle-cell-specific record payloads.

Key concepts:
- Hb is tracked against the subject's own steady-state baseline, not a
  population range
- Transfusion count over years drives the iron-overload risk score
- Daily water intake is compared with a weight-based fluid requirement
- Red flags (fever, pain crisis, chest symptoms...) are logged as they happen
"""

import datetime as dt
from enum import Enum
from typing import ClassVar

from pydantic import Field, field_validator, model_validator

from core.domain.models import CategoryPayload, RecordCategory


class LabTestType(str, Enum):
    """Lab tests with entries in the reference-range table."""

    HB = "hb"
    CREATININE = "creatinine"
    UREA = "urea"
    ALT = "alt"
    AST = "ast"
    VIT_B12 = "vit_b12"
    VIT_D = "vit_d"


class LabResult(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.LAB_RESULTS

    date: dt.date
    test_type: str = Field(min_length=1, description="See LabTestType for known tests")
    value: float
    unit: str | None = None
    photo: str | None = Field(None, description="Opaque attachment reference")
    notes: str | None = None

    @field_validator("test_type")
    @classmethod
    def normalize_test_type(cls, v: str) -> str:
        return v.strip().lower()


class Medication(CategoryPayload):
    """Long-term medication (e.g. hydroxyurea, folic acid). Changes are audited."""

    category: ClassVar[RecordCategory] = RecordCategory.MEDICATIONS

    name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    start_date: dt.date | None = None
    photo: str | None = None


class Transfusion(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.TRANSFUSIONS

    date: dt.date
    reason: str | None = None
    amount: str | None = Field(None, description="e.g. '250 ml'")
    notes: str | None = None


class Hospitalization(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.HOSPITALIZATIONS

    admission_date: dt.date
    discharge_date: dt.date | None = None
    reason: str | None = None
    bed_days: int | None = Field(None, ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def discharge_after_admission(self) -> "Hospitalization":
        if self.discharge_date is not None and self.discharge_date < self.admission_date:
            raise ValueError("discharge_date is before admission_date")
        return self


class Operation(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.OPERATIONS

    date: dt.date
    operation_type: str | None = None
    outcome: str | None = None
    notes: str | None = None


class Vaccination(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.VACCINATIONS

    date: dt.date
    vaccine_name: str = Field(min_length=1)
    notes: str | None = None


class AnnualExam(CategoryPayload):
    """Periodic screening (e.g. transcranial doppler, eye exam) and its follow-up date."""

    category: ClassVar[RecordCategory] = RecordCategory.ANNUAL_EXAMS

    date: dt.date
    exam_type: str = Field(min_length=1)
    result: str | None = None
    next_scheduled: dt.date | None = None
    notes: str | None = None


class DailyTracking(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.DAILY_TRACKING

    date: dt.date
    water_intake: float | None = Field(None, ge=0.0, description="Liters drunk that day")
    clothing: str | None = Field(None, description="Warm enough for the weather?")
    urination_frequency: int | None = Field(None, ge=0)
    notes: str | None = None


class RedFlagEvent(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.RED_FLAG_EVENTS

    date: dt.date
    symptoms: list[str] = Field(min_length=1)
    action_taken: str | None = None
    outcome: str | None = None
    notes: str | None = None


class DoctorVisit(CategoryPayload):
    category: ClassVar[RecordCategory] = RecordCategory.DOCTOR_VISITS

    date: dt.date
    next_visit: dt.date | None = None
    discussed: str | None = None
    prescriptions: str | None = None
    notes: str | None = None
