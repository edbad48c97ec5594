"""
Provisional clinical reference data.

Nothing in this table has been reviewed by a clinician. Every entry is
flagged unvalidated, and the analytics engine reports "unknown" for any
range that is not validated instead of classifying against it. Replace the
table (and bump its version) once calibrated values are available.
"""

from pydantic import BaseModel, ConfigDict, Field


class ReferenceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_type: str
    unit: str | None = None
    low: float | None = None
    high: float | None = None
    validated: bool = False
    note: str = ""


class BloodPressureThresholds(BaseModel):
    """Screening cut-offs, not an age/height percentile table."""

    model_config = ConfigDict(frozen=True)

    child_age_limit: int = Field(default=13, description="Ages below use the child cut-offs")
    child_elevated: tuple[int, int] = (120, 80)
    child_high: tuple[int, int] = (130, 85)
    adult_elevated: tuple[int, int] = (120, 80)
    adult_high: tuple[int, int] = (130, 85)
    validated: bool = False
    note: str = "Needs age/height-adjusted percentile tables"


class ReferenceRangeTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    validated: bool = False
    ranges: dict[str, ReferenceRange] = Field(default_factory=dict)
    blood_pressure: BloodPressureThresholds = Field(default_factory=BloodPressureThresholds)

    def lookup(self, test_type: str) -> ReferenceRange | None:
        return self.ranges.get(test_type)


PROVISIONAL_RANGES = ReferenceRangeTable(
    version="2024.1-provisional",
    ranges={
        r.test_type: r
        for r in (
            ReferenceRange(
                test_type="hb",
                unit="g/dL",
                note="Individual baseline varies - use the subject's steady-state Hb",
            ),
            ReferenceRange(
                test_type="creatinine",
                unit="mg/dL",
                low=0.5,
                high=1.2,
                note="Needs age/sex adjustment",
            ),
            ReferenceRange(
                test_type="urea", unit="mg/dL", low=7, high=20, note="Needs age adjustment"
            ),
            ReferenceRange(
                test_type="alt", unit="U/L", high=40, note="Needs age/sex adjustment"
            ),
            ReferenceRange(
                test_type="ast", unit="U/L", high=40, note="Needs age/sex adjustment"
            ),
            ReferenceRange(
                test_type="vit_b12", unit="pg/mL", low=200, high=900, note="Verify range"
            ),
            ReferenceRange(
                test_type="vit_d", unit="ng/mL", low=30, high=100, note="Verify range"
            ),
        )
    },
)
