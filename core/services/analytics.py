"""
Analytics engine: pure functions over record snapshots.

Key architectural decisions:
- No I/O and no hidden state: every input arrives as an argument, so each
  routine is deterministic and testable in isolation
- Results are typed models carrying enums and numbers only; wording and
  language belong to core.presentation
- "Not enough data" and "no validated range" are ordinary results
  (INSUFFICIENT_DATA, UNKNOWN), never exceptions
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from enum import Enum

import structlog
from pydantic import BaseModel, Field, computed_field

from core.config import AnalyticsConfig
from core.domain.dates import DateLike, days_until, parse_timestamp, shift_months, utc_now
from core.domain.models import Record
from core.domain.reference_ranges import PROVISIONAL_RANGES, ReferenceRangeTable

logger = structlog.get_logger(__name__)


class DeviationStatus(str, Enum):
    MARKEDLY_LOW = "markedly_low"
    NORMAL = "normal"
    MARKEDLY_HIGH = "markedly_high"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class IntakeStatus(str, Enum):
    CRITICALLY_LOW = "critically_low"
    LOW = "low"
    ADEQUATE = "adequate"
    GOOD = "good"


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class ExamCadence(str, Enum):
    MONTHLY = "monthly"
    SIX_MONTHS = "6months"
    YEARLY = "yearly"


class ExamStatus(str, Enum):
    UPCOMING = "upcoming"
    SCHEDULED = "scheduled"
    SOON = "soon"
    GRACE_PERIOD = "grace_period"
    OVERDUE = "overdue"


class LabValueStatus(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    UNKNOWN = "unknown"


class BloodPressureStatus(str, Enum):
    NORMAL = "normal"
    ELEVATED = "elevated"
    HIGH = "high"


class DeviationCheck(BaseModel):
    deviation: float
    is_critical: bool
    status: DeviationStatus


class TrendAnalysis(BaseModel):
    direction: TrendDirection
    avg_change: float | None = None
    lowest: float | None = None
    highest: float | None = None
    current: float | None = None
    data_points: int = 0


class FluidRequirement(BaseModel):
    weight_kg: float
    base_ml: float
    required_ml: float

    @computed_field(return_type=float)
    def required_liters(self) -> float:
        return round(self.required_ml / 1000, 1)


class IntakeCheck(BaseModel):
    status: IntakeStatus
    percent_of_needs: float
    actual_ml: float
    required_ml: float
    shortfall_ml: float = Field(ge=0.0)


class RiskAssessment(BaseModel):
    count: int
    years_back: int
    level: RiskLevel

    @computed_field(return_type=bool)
    def has_risk(self) -> bool:
        return self.level is RiskLevel.HIGH


class ExamSchedule(BaseModel):
    status: ExamStatus
    days_until: int
    scheduled_date: date
    exam_type: str | None = None


class LabValueCheck(BaseModel):
    test_type: str
    value: float
    status: LabValueStatus
    placeholder: bool
    unit: str | None = None
    note: str = ""
    table_version: str


class BloodPressureCheck(BaseModel):
    systolic: float
    diastolic: float
    percentile: int
    status: BloodPressureStatus
    placeholder: bool = True
    note: str = ""


class AnalyticsEngine:
    """
    Stateless analytics over supplied snapshots.

    Holds only configuration (thresholds) and the reference-range table.
    """

    def __init__(
        self,
        config: AnalyticsConfig | None = None,
        reference_ranges: ReferenceRangeTable = PROVISIONAL_RANGES,
    ) -> None:
        self.config = config or AnalyticsConfig()
        self.reference_ranges = reference_ranges

    # ============ BASELINE DEVIATION ============

    def check_deviation(
        self, current: float, baseline: float, std_dev: float | None = None
    ) -> DeviationCheck:
        """Distance from baseline in standard deviations, classified three ways."""
        if std_dev is None or std_dev <= 0:
            std_dev = self.config.default_std_dev
        deviation = (current - baseline) / std_dev
        limit = self.config.critical_deviation

        if deviation <= -limit:
            status = DeviationStatus.MARKEDLY_LOW
        elif deviation >= limit:
            status = DeviationStatus.MARKEDLY_HIGH
        else:
            status = DeviationStatus.NORMAL

        return DeviationCheck(
            deviation=deviation, is_critical=abs(deviation) >= limit, status=status
        )

    # ============ TRENDS ============

    def detect_trend(self, values: Sequence[float]) -> TrendAnalysis:
        """Trend of time-ordered values (oldest first)."""
        if len(values) < 2:
            return TrendAnalysis(
                direction=TrendDirection.INSUFFICIENT_DATA, data_points=len(values)
            )

        avg_change = (values[-1] - values[0]) / (len(values) - 1)
        threshold = self.config.trend_threshold
        if avg_change > threshold:
            direction = TrendDirection.INCREASING
        elif avg_change < -threshold:
            direction = TrendDirection.DECREASING
        else:
            direction = TrendDirection.STABLE

        return TrendAnalysis(
            direction=direction,
            avg_change=avg_change,
            lowest=min(values),
            highest=max(values),
            current=values[-1],
            data_points=len(values),
        )

    def analyze_lab_trend(self, lab_results: Iterable[Record]) -> TrendAnalysis:
        """Trend of lab values ordered by test date; non-numeric values are skipped."""
        ordered = sorted(lab_results, key=lambda r: r.event_date)
        values = []
        for record in ordered:
            value = _as_float(record.get("value"))
            if value is None:
                logger.debug("lab_value_not_numeric", record_id=record.id)
                continue
            values.append(value)
        return self.detect_trend(values)

    # ============ FLUID REQUIREMENT ============

    @staticmethod
    def base_fluid_ml(weight_kg: float) -> float:
        """Tiered maintenance fluid: 100/50/20 mL per kg over 0-10/10-20/20+ kg."""
        if weight_kg <= 10:
            return 100 * weight_kg
        if weight_kg <= 20:
            return 1000 + 50 * (weight_kg - 10)
        return 1500 + 20 * (weight_kg - 20)

    def fluid_requirement(self, weight_kg: float) -> FluidRequirement:
        base = self.base_fluid_ml(weight_kg)
        return FluidRequirement(
            weight_kg=weight_kg,
            base_ml=base,
            required_ml=base * self.config.fluid_multiplier,
        )

    def check_fluid_intake(self, actual_liters: float, weight_kg: float) -> IntakeCheck:
        requirement = self.fluid_requirement(weight_kg)
        actual_ml = actual_liters * 1000
        percent = actual_ml / requirement.required_ml * 100

        if percent < 60:
            status = IntakeStatus.CRITICALLY_LOW
        elif percent < 80:
            status = IntakeStatus.LOW
        elif percent > 120:
            status = IntakeStatus.GOOD
        else:
            status = IntakeStatus.ADEQUATE

        return IntakeCheck(
            status=status,
            percent_of_needs=round(percent),
            actual_ml=actual_ml,
            required_ml=requirement.required_ml,
            shortfall_ml=max(0.0, requirement.required_ml - actual_ml),
        )

    # ============ CUMULATIVE RISK ============

    def cumulative_risk(
        self,
        event_dates: Iterable[DateLike],
        as_of: datetime | None = None,
        years_back: int | None = None,
    ) -> RiskAssessment:
        """Count qualifying events in a trailing window and grade the exposure."""
        years = years_back if years_back is not None else self.config.risk_window_years
        end = as_of or utc_now()
        start = shift_months(end, -12 * years)
        count = sum(1 for d in event_dates if start <= parse_timestamp(d) <= end)

        if count > self.config.high_risk_count:
            level = RiskLevel.HIGH
        elif count > self.config.moderate_risk_count:
            level = RiskLevel.MODERATE
        else:
            level = RiskLevel.LOW

        return RiskAssessment(count=count, years_back=years, level=level)

    def transfusion_risk(
        self, transfusions: Iterable[Record], as_of: datetime | None = None
    ) -> RiskAssessment:
        """Iron-overload exposure from transfusions."""
        return self.cumulative_risk((t.event_date for t in transfusions), as_of=as_of)

    # ============ EXAM SCHEDULING ============

    @staticmethod
    def next_exam_date(last_exam: DateLike, cadence: ExamCadence) -> date:
        last = parse_timestamp(last_exam)
        months = {ExamCadence.MONTHLY: 1, ExamCadence.SIX_MONTHS: 6, ExamCadence.YEARLY: 12}
        return shift_months(last, months[cadence]).date()

    def exam_status(
        self,
        scheduled: DateLike,
        today: date | None = None,
        grace_days: int | None = None,
        exam_type: str | None = None,
    ) -> ExamSchedule:
        """Status of a scheduled exam relative to today. Recomputed on every call."""
        today = today or utc_now().date()
        grace = self.config.exam_grace_days if grace_days is None else grace_days
        remaining = days_until(scheduled, today)

        if remaining < -grace:
            status = ExamStatus.OVERDUE
        elif remaining < 0:
            status = ExamStatus.GRACE_PERIOD
        elif remaining <= self.config.exam_soon_days:
            status = ExamStatus.SOON
        elif remaining <= self.config.exam_scheduled_days:
            status = ExamStatus.SCHEDULED
        else:
            status = ExamStatus.UPCOMING

        return ExamSchedule(
            status=status,
            days_until=remaining,
            scheduled_date=parse_timestamp(scheduled).date(),
            exam_type=exam_type,
        )

    # ============ REFERENCE RANGES ============

    def check_lab_value(self, test_type: str, value: float) -> LabValueCheck:
        """
        Classify a lab value against the reference table.

        Ranges that are missing or not validated yield UNKNOWN: the caller
        should show a "consult your doctor" notice rather than a verdict.
        """
        table = self.reference_ranges
        reference = table.lookup(test_type)
        if reference is None or not reference.validated:
            return LabValueCheck(
                test_type=test_type,
                value=value,
                status=LabValueStatus.UNKNOWN,
                placeholder=True,
                unit=reference.unit if reference else None,
                note=reference.note if reference else "Range not defined",
                table_version=table.version,
            )

        status = LabValueStatus.NORMAL
        if reference.low is not None and value < reference.low:
            status = LabValueStatus.LOW
        if reference.high is not None and value > reference.high:
            status = LabValueStatus.HIGH
        return LabValueCheck(
            test_type=test_type,
            value=value,
            status=status,
            placeholder=False,
            unit=reference.unit,
            note=reference.note,
            table_version=table.version,
        )

    def check_blood_pressure(
        self, systolic: float, diastolic: float, age: int
    ) -> BloodPressureCheck:
        """Provisional screen; always marked placeholder until percentile tables exist."""
        bp = self.reference_ranges.blood_pressure
        percentile = 50
        status = BloodPressureStatus.NORMAL

        if age < bp.child_age_limit:
            # Children: strictly above the cut-off
            if systolic > bp.child_elevated[0] or diastolic > bp.child_elevated[1]:
                percentile, status = 85, BloodPressureStatus.ELEVATED
            if systolic > bp.child_high[0] or diastolic > bp.child_high[1]:
                percentile, status = 95, BloodPressureStatus.HIGH
        else:
            if systolic >= bp.adult_elevated[0] or diastolic >= bp.adult_elevated[1]:
                percentile, status = 85, BloodPressureStatus.ELEVATED
            if systolic >= bp.adult_high[0] or diastolic >= bp.adult_high[1]:
                percentile, status = 95, BloodPressureStatus.HIGH

        return BloodPressureCheck(
            systolic=systolic,
            diastolic=diastolic,
            percentile=percentile,
            status=status,
            placeholder=not bp.validated,
            note=bp.note,
        )


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
