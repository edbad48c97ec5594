"""
Food-allergy suspicion analysis and elimination planning.

Works on food diary entries only; the service layer decides which entries
(subject, window) are passed in. Results are enum/number models, wording
lives in core.presentation.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from core.config import AnalyticsConfig
from core.domain.dates import utc_now
from core.domain.models import DiarySeverity, FoodDiaryEntry

logger = structlog.get_logger(__name__)

_SEVERITY_RANK = {DiarySeverity.MILD: 1, DiarySeverity.MODERATE: 2, DiarySeverity.SEVERE: 3}
_DAIRY_MARKERS = ("milk", "maziwa")


class RecommendedAction(str, Enum):
    ELIMINATE = "eliminate"
    MONITOR = "monitor"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class ReintroductionSetting(str, Enum):
    SUPERVISED = "supervised"
    HOME = "home"


class AmountUnit(str, Enum):
    TEASPOON = "teaspoon"
    MILLILITRE = "ml"
    NORMAL_PORTION = "normal_portion"


class PlanItemStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class Recommendation(BaseModel):
    action: RecommendedAction
    priority: Priority
    duration_weeks: int | None = Field(None, description="None for foods only monitored")


class SuspiciousFood(BaseModel):
    food: str
    confidence: int = Field(ge=0, le=100, description="Integer percent")
    confidence_ratio: float
    reaction_count: int
    total_count: int
    common_reactions: list[str] = Field(default_factory=list)
    max_severity: DiarySeverity | None = None
    recommendation: Recommendation


class AllergyAnalysis(BaseModel):
    suspicious: list[SuspiciousFood] = Field(default_factory=list)
    safe: list[str] = Field(default_factory=list)
    reaction_days_count: int = 0
    total_days_count: int = 0


class ReintroductionStep(BaseModel):
    day: int
    amount: float | None = None
    unit: AmountUnit
    food_form: str | None = Field(None, description="e.g. yogurt before fresh milk")
    wait: timedelta | None = Field(None, description="None means keep monitoring")


class ReintroductionProtocol(BaseModel):
    setting: ReintroductionSetting
    steps: list[ReintroductionStep]


class EliminationPlanItem(BaseModel):
    food: str
    priority: Priority
    start_date: date
    end_date: date
    status: PlanItemStatus = PlanItemStatus.PENDING
    protocol: ReintroductionProtocol


class EliminationPlan(BaseModel):
    start_date: date
    items: list[EliminationPlanItem] = Field(default_factory=list)


def normalize_food(name: str) -> str:
    return name.strip().casefold()


class AllergyAnalyzer:
    """
    Suspicion scoring over a food diary.

    A food is suspicious when it appears mostly on days with a reaction and
    on at least a minimum number of such days.
    """

    ELIMINATE_HIGH_ABOVE = 0.9
    ELIMINATE_MEDIUM_ABOVE = 0.7
    MONITOR_DEFAULT_WEEKS = 2

    def __init__(self, config: AnalyticsConfig | None = None) -> None:
        self.config = config or AnalyticsConfig()
        self.logger = logger.bind(component="allergy_analyzer")

    def analyze(self, entries: Sequence[FoodDiaryEntry]) -> AllergyAnalysis:
        total: Counter[str] = Counter()
        on_reaction_days: Counter[str] = Counter()
        reactions: dict[str, list[str]] = {}
        severities: dict[str, list[DiarySeverity]] = {}
        reaction_days = 0

        for entry in entries:
            if entry.has_reaction:
                reaction_days += 1
            for item in entry.foods:
                food = normalize_food(item.name)
                if not food:
                    continue
                total[food] += 1
                if entry.has_reaction:
                    on_reaction_days[food] += 1
                    reactions.setdefault(food, []).extend(entry.reactions)
                    if entry.severity is not None:
                        severities.setdefault(food, []).append(entry.severity)

        suspicious = []
        for food, reaction_count in on_reaction_days.items():
            ratio = reaction_count / total[food]
            if (
                ratio < self.config.allergy_confidence_threshold
                or reaction_count < self.config.allergy_min_reactions
            ):
                continue
            max_severity = _max_severity(severities.get(food, []))
            suspicious.append(
                SuspiciousFood(
                    food=food,
                    confidence=round(ratio * 100),
                    confidence_ratio=ratio,
                    reaction_count=reaction_count,
                    total_count=total[food],
                    common_reactions=[r for r, _ in Counter(reactions[food]).most_common(3)],
                    max_severity=max_severity,
                    recommendation=self.recommend(ratio, max_severity),
                )
            )
        # sort is stable: ties keep first-encountered order
        suspicious.sort(key=lambda s: s.confidence_ratio, reverse=True)

        flagged = {s.food for s in suspicious}
        safe: list[str] = []
        for entry in entries:
            if entry.has_reaction:
                continue
            for item in entry.foods:
                food = normalize_food(item.name)
                if food and food not in flagged and food not in safe:
                    safe.append(food)

        self.logger.info(
            "allergy_analysis_completed",
            days=len(entries),
            reaction_days=reaction_days,
            suspicious=len(suspicious),
        )
        return AllergyAnalysis(
            suspicious=suspicious,
            safe=safe,
            reaction_days_count=reaction_days,
            total_days_count=len(entries),
        )

    def recommend(self, ratio: float, max_severity: DiarySeverity | None) -> Recommendation:
        if max_severity is DiarySeverity.SEVERE or ratio > self.ELIMINATE_HIGH_ABOVE:
            return Recommendation(
                action=RecommendedAction.ELIMINATE, priority=Priority.HIGH, duration_weeks=4
            )
        if ratio > self.ELIMINATE_MEDIUM_ABOVE:
            return Recommendation(
                action=RecommendedAction.ELIMINATE, priority=Priority.MEDIUM, duration_weeks=2
            )
        return Recommendation(action=RecommendedAction.MONITOR, priority=Priority.LOW)

    def create_elimination_plan(
        self, suspicious: Iterable[SuspiciousFood], start: date | None = None
    ) -> EliminationPlan:
        """
        Schedule suspicious foods one after another, highest priority first.

        Each food is eliminated for its recommended number of weeks; the next
        one starts a fixed gap after the previous end.
        """
        start = start or utc_now().date()
        gap = timedelta(days=self.config.elimination_gap_days)
        ordered = sorted(suspicious, key=lambda s: _PRIORITY_ORDER[s.recommendation.priority])

        items = []
        current = start
        for food in ordered:
            weeks = food.recommendation.duration_weeks or self.MONITOR_DEFAULT_WEEKS
            end = current + timedelta(weeks=weeks)
            items.append(
                EliminationPlanItem(
                    food=food.food,
                    priority=food.recommendation.priority,
                    start_date=current,
                    end_date=end,
                    protocol=reintroduction_protocol(food),
                )
            )
            current = end + gap

        return EliminationPlan(start_date=start, items=items)


def reintroduction_protocol(food: SuspiciousFood) -> ReintroductionProtocol:
    """Step ladder for bringing a food back after elimination."""
    if food.max_severity is DiarySeverity.SEVERE:
        return ReintroductionProtocol(
            setting=ReintroductionSetting.SUPERVISED,
            steps=[
                ReintroductionStep(
                    day=1, amount=0.125, unit=AmountUnit.TEASPOON, wait=timedelta(hours=2)
                ),
                ReintroductionStep(
                    day=2, amount=0.25, unit=AmountUnit.TEASPOON, wait=timedelta(hours=4)
                ),
                ReintroductionStep(
                    day=3, amount=0.5, unit=AmountUnit.TEASPOON, wait=timedelta(days=1)
                ),
            ],
        )

    three_days = timedelta(days=3)
    if any(marker in food.food for marker in _DAIRY_MARKERS):
        return ReintroductionProtocol(
            setting=ReintroductionSetting.HOME,
            steps=[
                ReintroductionStep(
                    day=1, amount=1, unit=AmountUnit.TEASPOON, food_form="yogurt", wait=three_days
                ),
                ReintroductionStep(
                    day=4, amount=2, unit=AmountUnit.TEASPOON, food_form="kefir", wait=three_days
                ),
                ReintroductionStep(
                    day=7,
                    amount=30,
                    unit=AmountUnit.MILLILITRE,
                    food_form="fresh_milk",
                    wait=three_days,
                ),
                ReintroductionStep(
                    day=10, unit=AmountUnit.NORMAL_PORTION, food_form="milk", wait=three_days
                ),
            ],
        )

    return ReintroductionProtocol(
        setting=ReintroductionSetting.HOME,
        steps=[
            ReintroductionStep(day=1, amount=0.25, unit=AmountUnit.TEASPOON, wait=three_days),
            ReintroductionStep(day=4, amount=0.5, unit=AmountUnit.TEASPOON, wait=three_days),
            ReintroductionStep(day=7, amount=1, unit=AmountUnit.TEASPOON, wait=three_days),
            ReintroductionStep(day=10, unit=AmountUnit.NORMAL_PORTION),
        ],
    )


def _max_severity(severities: Iterable[DiarySeverity]) -> DiarySeverity | None:
    return max(severities, key=_SEVERITY_RANK.__getitem__, default=None)
