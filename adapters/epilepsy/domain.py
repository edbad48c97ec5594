"""
Epilepsy-specific record payloads.

Covers the seizure diary, the basic therapy plan (audited medication
records) and periodic development checkpoints.

Key concepts:
- Seizure onset and after-effects are multi-select checklists
- Therapy timing maps a time of day (asubuhi, mchana, jioni, usiku) to a dose
- Development checkpoints are yes/no milestone observations
"""

from datetime import datetime
from typing import ClassVar

from pydantic import Field, field_validator

from core.domain.models import CategoryPayload, RecordCategory


class SeizureEvent(CategoryPayload):
    """One seizure as logged by a caregiver."""

    category: ClassVar[RecordCategory] = RecordCategory.SEIZURE_EVENTS

    date_time: datetime
    duration: str | None = Field(None, description="Free text, e.g. '2 min'")
    before_seizure: str | None = None
    aura: str | None = None
    onset: list[str] = Field(default_factory=list)
    onset_other: str | None = None
    body_parts: list[str] = Field(default_factory=list)
    body_parts_details: str | None = None
    lost_consciousness: bool | None = None
    triggers: list[str] = Field(default_factory=list)
    triggers_other: str | None = None
    after_seizure: list[str] = Field(default_factory=list)
    after_seizure_details: str | None = None
    emergency_meds: str | None = None
    location: str | None = None
    took_meds: bool | None = None
    video: str | None = Field(None, description="Opaque attachment reference")
    additional_notes: str | None = None

    @field_validator("triggers", "onset", "body_parts", "after_seizure")
    @classmethod
    def drop_blank_items(cls, v: list[str]) -> list[str]:
        return [item.strip() for item in v if item and item.strip()]


class TherapyMedication(CategoryPayload):
    """A medication in the basic therapy plan. Changes are audited."""

    category: ClassVar[RecordCategory] = RecordCategory.THERAPY

    medication_name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    timing: dict[str, str] = Field(
        default_factory=dict, description="Time of day -> dose, e.g. {'asubuhi': '150mg'}"
    )
    child_weight: float | None = Field(None, gt=0.0, description="Weight in kg")
    photo: str | None = Field(None, description="Opaque attachment reference")


class DevelopmentCheckpoint(CategoryPayload):
    """Milestone observations; the record date is stamped on save when absent."""

    category: ClassVar[RecordCategory] = RecordCategory.DEVELOPMENT_CHECKPOINTS

    record_date: datetime | None = None
    speech: bool | None = None
    social_interaction: bool | None = None
    recognizes_parents: bool | None = None
    school_performance: str | None = None
    bladder_control: bool | None = None
    bowel_control: bool | None = None
    notes: str | None = None
