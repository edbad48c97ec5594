"""
Time-windowed report composition.

Pulls a subject's records from the store, filters them to the requested
period and runs the analytics engine over the snapshots. Alerts carry kinds
and severities only; core.presentation renders them.
"""

from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field

from core.domain.dates import DateLike, end_of_day, is_date_only, parse_timestamp, weeks_between
from core.domain.errors import NotFoundError, RecordStoreError
from core.domain.models import BaselineProfile, Record, RecordCategory
from core.services.analytics import (
    AnalyticsEngine,
    DeviationCheck,
    ExamSchedule,
    ExamStatus,
    RiskAssessment,
    TrendAnalysis,
    TrendDirection,
)
from core.services.record_store import RecordStore, Result, StoreResult

logger = structlog.get_logger(__name__)

MUTABLE_CATEGORIES = (RecordCategory.THERAPY, RecordCategory.MEDICATIONS)
# Categories that are not subject events: audit rows, baselines and derived plans
_NOT_EVENTS = {
    RecordCategory.THERAPY_HISTORY,
    RecordCategory.BASELINE_PROFILE,
    RecordCategory.ELIMINATION_PLANS,
    *MUTABLE_CATEGORIES,
}
EVENT_CATEGORIES = tuple(c for c in RecordCategory if c not in _NOT_EVENTS)

HB_TEST_TYPE = "hb"


class AlertKind(str, Enum):
    HB_TREND = "hb_trend"
    TRANSFUSION_RISK = "transfusion_risk"
    HB_DEVIATION = "hb_deviation"
    EXAM_OVERDUE = "exam_overdue"


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class Alert(BaseModel):
    kind: AlertKind
    severity: AlertSeverity
    context: dict[str, Any] = Field(default_factory=dict)


class ReportPeriod(BaseModel):
    start: datetime | None = None
    end: datetime | None = None


class SeizureSummary(BaseModel):
    total: int = 0
    average_per_week: float = 0.0
    common_triggers: list[tuple[str, int]] = Field(default_factory=list)
    peak_hours: list[tuple[int, int]] = Field(default_factory=list)


class ReportSummary(BaseModel):
    seizures: SeizureSummary
    hb_trend: TrendAnalysis
    hb_deviation: DeviationCheck | None = None
    transfusion_risk: RiskAssessment
    red_flag_count: int = 0
    hospitalization_count: int = 0
    total_bed_days: float = 0
    upcoming_exams: list[ExamSchedule] = Field(default_factory=list)


class Report(BaseModel):
    """
    One subject's report for a period.

    `alerts` holds the summary's critical alerts. They are derived from
    `summary` once it is built and stored beside it.
    """

    subject_id: str
    generated_at: datetime
    period: ReportPeriod
    events: dict[RecordCategory, list[Record]] = Field(default_factory=dict)
    active_medications: list[Record] = Field(default_factory=list)
    latest_development: Record | None = None
    summary: ReportSummary
    alerts: list[Alert] = Field(default_factory=list)


class ReportGenerator:
    """Builds reports for one subject from its own store and engine."""

    def __init__(
        self,
        store: RecordStore,
        engine: AnalyticsEngine,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.clock = clock or store.clock
        self.logger = logger.bind(component="report_generator")

    async def generate_report(
        self,
        subject_id: str,
        start_date: DateLike | None = None,
        end_date: DateLike | None = None,
    ) -> StoreResult[Report]:
        """
        Compose a report over [start_date, end_date], both inclusive.

        A date-only end bound covers that whole day; a missing bound leaves
        that side open.
        """
        try:
            report = await self._assemble(subject_id, start_date, end_date)
        except RecordStoreError as e:
            self.logger.warning("report_failed", subject_id=subject_id, error=str(e))
            return Result.err(e)

        self.logger.info(
            "report_generated",
            subject_id=subject_id,
            alerts=len(report.alerts),
            seizures=report.summary.seizures.total,
        )
        return Result.ok(report)

    async def _assemble(
        self, subject_id: str, start_date: DateLike | None, end_date: DateLike | None
    ) -> Report:
        start = parse_timestamp(start_date) if start_date is not None else None
        end = parse_timestamp(end_date) if end_date is not None else None
        if end is not None and is_date_only(end_date):  # type: ignore[arg-type]
            end = end_of_day(end)

        history: dict[RecordCategory, list[Record]] = {}
        events: dict[RecordCategory, list[Record]] = {}
        for category in EVENT_CATEGORIES:
            history[category] = (await self.store.query(category, subject_id)).unwrap()
            events[category] = [
                r for r in history[category] if _within(r.event_date, start, end)
            ]

        active_medications: list[Record] = []
        for category in MUTABLE_CATEGORIES:
            active_medications += (
                await self.store.query(category, subject_id, active_only=True)
            ).unwrap()

        development = (
            await self.store.query(RecordCategory.DEVELOPMENT_CHECKPOINTS, subject_id, limit=1)
        ).unwrap()

        baseline_result = await self.store.get_baseline(subject_id)
        if baseline_result.is_err() and not isinstance(baseline_result.unwrap_err(), NotFoundError):
            raise baseline_result.unwrap_err()
        baseline = baseline_result.unwrap_or(None)  # type: ignore[arg-type]

        now = self.clock()
        summary = self._summarize(history, events, start, end, baseline, now)
        return Report(
            subject_id=subject_id,
            generated_at=now,
            period=ReportPeriod(start=start, end=end),
            events=events,
            active_medications=active_medications,
            latest_development=development[0] if development else None,
            summary=summary,
            alerts=_alerts(summary),
        )

    def _summarize(
        self,
        history: dict[RecordCategory, list[Record]],
        events: dict[RecordCategory, list[Record]],
        start: datetime | None,
        end: datetime | None,
        baseline: BaselineProfile | None,
        now: datetime,
    ) -> ReportSummary:
        hb_results = [
            r for r in events[RecordCategory.LAB_RESULTS] if r.get("test_type") == HB_TEST_TYPE
        ]
        hospitalizations = events[RecordCategory.HOSPITALIZATIONS]

        return ReportSummary(
            seizures=self._seizure_summary(events[RecordCategory.SEIZURE_EVENTS], start, end),
            hb_trend=self.engine.analyze_lab_trend(hb_results),
            hb_deviation=self._hb_deviation(hb_results, baseline),
            transfusion_risk=self.engine.transfusion_risk(
                history[RecordCategory.TRANSFUSIONS], as_of=end or now
            ),
            red_flag_count=len(events[RecordCategory.RED_FLAG_EVENTS]),
            hospitalization_count=len(hospitalizations),
            total_bed_days=sum(_bed_days(h) for h in hospitalizations),
            upcoming_exams=self._exam_statuses(history[RecordCategory.ANNUAL_EXAMS], now),
        )

    def _seizure_summary(
        self, seizures: Sequence[Record], start: datetime | None, end: datetime | None
    ) -> SeizureSummary:
        if not seizures:
            return SeizureSummary()

        # Records arrive newest first
        span_start = start or seizures[-1].event_date
        span_end = end or seizures[0].event_date
        weeks = weeks_between(span_start, span_end)
        average = round(len(seizures) / weeks, 1) if weeks > 0 else float(len(seizures))

        triggers: Counter[str] = Counter()
        hours: Counter[int] = Counter()
        for seizure in seizures:
            triggers.update(t for t in seizure.get("triggers") or [] if t)
            hours[seizure.event_date.hour] += 1

        return SeizureSummary(
            total=len(seizures),
            average_per_week=average,
            # ties keep first-encountered order, i.e. the newest event first
            common_triggers=triggers.most_common(3),
            peak_hours=hours.most_common(3),
        )

    def _hb_deviation(
        self, hb_results: Sequence[Record], baseline: BaselineProfile | None
    ) -> DeviationCheck | None:
        if not hb_results or baseline is None or baseline.normal_hb is None:
            return None
        latest = max(hb_results, key=lambda r: r.event_date)
        try:
            value = float(latest.get("value"))
        except (TypeError, ValueError):
            return None
        return self.engine.check_deviation(value, baseline.normal_hb, baseline.hb_std_dev)

    def _exam_statuses(self, exams: Sequence[Record], now: datetime) -> list[ExamSchedule]:
        """Status of the most recent scheduled follow-up per exam type."""
        seen: set[str] = set()
        statuses = []
        for exam in exams:
            scheduled = exam.get("next_scheduled")
            exam_type = str(exam.get("exam_type"))
            if not scheduled or exam_type in seen:
                continue
            seen.add(exam_type)
            try:
                statuses.append(
                    self.engine.exam_status(scheduled, today=now.date(), exam_type=exam_type)
                )
            except ValueError:
                self.logger.warning("exam_date_unreadable", record_id=exam.id)
        return statuses


def _within(moment: datetime, start: datetime | None, end: datetime | None) -> bool:
    return (start is None or moment >= start) and (end is None or moment <= end)


def _bed_days(hospitalization: Record) -> float:
    days = hospitalization.get("bed_days")
    if days is not None:
        try:
            return float(days)
        except (TypeError, ValueError):
            return 0
    discharge = hospitalization.get("discharge_date")
    if not discharge:
        return 0
    try:
        return max(0, (parse_timestamp(discharge) - hospitalization.event_date).days)
    except ValueError:
        return 0


def _alerts(summary: ReportSummary) -> list[Alert]:
    alerts = []
    if summary.hb_trend.direction is TrendDirection.DECREASING:
        alerts.append(
            Alert(
                kind=AlertKind.HB_TREND,
                severity=AlertSeverity.WARNING,
                context={"avg_change": summary.hb_trend.avg_change},
            )
        )
    if summary.transfusion_risk.has_risk:
        alerts.append(
            Alert(
                kind=AlertKind.TRANSFUSION_RISK,
                severity=AlertSeverity.CRITICAL,
                context={
                    "count": summary.transfusion_risk.count,
                    "years": summary.transfusion_risk.years_back,
                },
            )
        )
    if summary.hb_deviation is not None and summary.hb_deviation.is_critical:
        alerts.append(
            Alert(
                kind=AlertKind.HB_DEVIATION,
                severity=AlertSeverity.CRITICAL,
                context={
                    "deviation": round(summary.hb_deviation.deviation, 1),
                    "status": summary.hb_deviation.status.value,
                },
            )
        )
    for exam in summary.upcoming_exams:
        if exam.status is ExamStatus.OVERDUE:
            alerts.append(
                Alert(
                    kind=AlertKind.EXAM_OVERDUE,
                    severity=AlertSeverity.WARNING,
                    context={"exam_type": exam.exam_type, "days": abs(exam.days_until)},
                )
            )
    return alerts
