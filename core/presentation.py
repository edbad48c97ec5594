"""
Localized wording for analytics results.

Analytics and reports return enums and numbers; this module is the only
place that turns them into Swahili or English text. Every member of every
presented enum must have an entry for every language.
"""

from enum import Enum
from typing import Any, get_args

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from core.config import Language
from core.services.allergy_analysis import (
    AllergyAnalysis,
    AmountUnit,
    EliminationPlan,
    PlanItemStatus,
    Priority,
    RecommendedAction,
    ReintroductionSetting,
    ReintroductionStep,
)
from core.services.analytics import (
    BloodPressureStatus,
    DeviationStatus,
    ExamSchedule,
    ExamStatus,
    IntakeStatus,
    LabValueStatus,
    RiskLevel,
    TrendDirection,
)
from core.services.audit_trail import DEFAULT_NOTES
from core.services.reports import Alert, AlertKind, AlertSeverity, Report

LANGUAGES: tuple[Language, ...] = get_args(Language)

Messages = dict[str, dict[Language, str]]

MESSAGES: dict[type[Enum], Messages] = {
    DeviationStatus: {
        "markedly_low": {"sw": "Hb imepungua sana!", "en": "Hb dropped significantly!"},
        "markedly_high": {"sw": "Hb imeongezeka sana!", "en": "Hb increased significantly!"},
        "normal": {"sw": "Hb ni normal", "en": "Hb is normal"},
    },
    TrendDirection: {
        "increasing": {"sw": "Inaongezeka", "en": "Increasing"},
        "decreasing": {"sw": "Inapungua", "en": "Decreasing"},
        "stable": {"sw": "Imetulia", "en": "Stable"},
        "insufficient_data": {"sw": "Takwimu hazitoshi", "en": "Not enough data"},
    },
    IntakeStatus: {
        "critically_low": {"sw": "Maji ni kidogo sana!", "en": "Water intake is critically low!"},
        "low": {"sw": "Ongeza maji!", "en": "Increase water!"},
        "adequate": {"sw": "Maji ni ya kutosha", "en": "Water intake is adequate"},
        "good": {"sw": "Vizuri sana!", "en": "Excellent!"},
    },
    RiskLevel: {
        "high": {
            "sw": "Hatari ya iron overload! ({count} transfusions kwa miaka {years})",
            "en": "Iron overload risk! ({count} transfusions in {years} years)",
        },
        "moderate": {
            "sw": "Fuatilia iron levels ({count} transfusions)",
            "en": "Monitor iron levels ({count} transfusions)",
        },
        "low": {
            "sw": "Hakuna hatari ({count} transfusions)",
            "en": "No risk ({count} transfusions)",
        },
    },
    ExamStatus: {
        "overdue": {"sw": "Imechelewa ({days} siku)", "en": "Overdue ({days} days)"},
        "grace_period": {
            "sw": "Chelewa kidogo ({days} siku)",
            "en": "Slightly overdue ({days} days)",
        },
        "soon": {"sw": "Siku {days} zimebaki", "en": "{days} days left"},
        "scheduled": {"sw": "Imepangwa {date}", "en": "Scheduled for {date}"},
        "upcoming": {"sw": "Umepangwa", "en": "Scheduled"},
    },
    LabValueStatus: {
        "low": {"sw": "Chini ya kawaida", "en": "Below normal"},
        "normal": {"sw": "Normal", "en": "Normal"},
        "high": {"sw": "Juu ya kawaida", "en": "Above normal"},
        "unknown": {
            "sw": "Taarifa za kawaida hazijapatikana - angalia na daktari",
            "en": "Normal range not available - consult doctor",
        },
    },
    BloodPressureStatus: {
        "high": {"sw": "BP ni juu!", "en": "BP is high!"},
        "elevated": {"sw": "BP imeongezeka", "en": "BP is elevated"},
        "normal": {"sw": "BP ni normal", "en": "BP is normal"},
    },
    AlertKind: {
        "hb_trend": {"sw": "Hb inaendelea kupungua", "en": "Hb is decreasing over time"},
        "transfusion_risk": {
            "sw": "Hatari ya iron overload! ({count} transfusions kwa miaka {years})",
            "en": "Iron overload risk! ({count} transfusions in {years} years)",
        },
        "hb_deviation": {
            "sw": "Hb iko mbali na kawaida yake ({deviation} SD)",
            "en": "Hb is far from baseline ({deviation} SD)",
        },
        "exam_overdue": {
            "sw": "Uchunguzi {exam_type} umechelewa siku {days}",
            "en": "{exam_type} exam overdue by {days} days",
        },
    },
    AlertSeverity: {
        "warning": {"sw": "Tahadhari", "en": "Warning"},
        "critical": {"sw": "Hatari", "en": "Critical"},
    },
    RecommendedAction: {
        "eliminate": {"sw": "Ondoa kwenye chakula", "en": "Eliminate from diet"},
        "monitor": {"sw": "Endelea kufuatilia", "en": "Keep monitoring"},
    },
    Priority: {
        "high": {"sw": "Juu", "en": "High"},
        "medium": {"sw": "Kati", "en": "Medium"},
        "low": {"sw": "Chini", "en": "Low"},
    },
    ReintroductionSetting: {
        "supervised": {"sw": "Hospitali", "en": "Hospital"},
        "home": {"sw": "Nyumbani", "en": "Home"},
    },
    AmountUnit: {
        "teaspoon": {"sw": "Kijiko {amount}", "en": "{amount} teaspoon"},
        "ml": {"sw": "ml {amount}", "en": "{amount} ml"},
        "normal_portion": {"sw": "Kiasi cha kawaida", "en": "Normal amount"},
    },
    PlanItemStatus: {
        "pending": {"sw": "Inasubiri", "en": "Pending"},
        "active": {"sw": "Inaendelea", "en": "In progress"},
        "completed": {"sw": "Imekamilika", "en": "Completed"},
    },
}

AUDIT_NOTES: Messages = {
    "record_added": {"sw": "Dawa imeongezwa", "en": "Medication added"},
    "record_changed": {"sw": "Dawa imebadilishwa", "en": "Medication changed"},
    "record_removed": {"sw": "Dawa imeondolewa", "en": "Medication removed"},
}

_FOOD_FORMS: Messages = {
    "yogurt": {"sw": "Yogurt", "en": "Yogurt"},
    "kefir": {"sw": "Kefir", "en": "Kefir"},
    "fresh_milk": {"sw": "Maziwa fresh", "en": "Fresh milk"},
    "milk": {"sw": "Maziwa", "en": "Milk"},
}

_LABELS: Messages = {
    "report": {"sw": "Ripoti ya {subject}", "en": "Report for {subject}"},
    "seizures": {"sw": "Degedege", "en": "Seizures"},
    "per_week": {"sw": "kwa wiki", "en": "per week"},
    "triggers": {"sw": "Vichochezi", "en": "Triggers"},
    "peak_hours": {"sw": "Saa za kilele", "en": "Peak hours"},
    "hb_trend": {"sw": "Mwenendo wa Hb", "en": "Hb trend"},
    "transfusions": {"sw": "Transfusions", "en": "Transfusions"},
    "red_flags": {"sw": "Dalili za hatari", "en": "Red flags"},
    "hospital": {"sw": "Kulazwa (siku)", "en": "Admissions (bed days)"},
    "alerts": {"sw": "Tahadhari", "en": "Alerts"},
    "no_alerts": {"sw": "Hakuna tahadhari", "en": "No alerts"},
    "exams": {"sw": "Uchunguzi", "en": "Exams"},
    "food": {"sw": "Chakula", "en": "Food"},
    "confidence": {"sw": "Uhakika", "en": "Confidence"},
    "safe": {"sw": "Salama", "en": "Safe"},
    "plan": {"sw": "Mpango wa kuondoa", "en": "Elimination plan"},
    "start": {"sw": "Anza", "en": "Start"},
    "end": {"sw": "Mwisho", "en": "End"},
    "day": {"sw": "Siku {day}", "en": "Day {day}"},
    "wait_hours": {"sw": "Subiri saa {hours}", "en": "Wait {hours} h"},
    "wait_days": {"sw": "Subiri siku {days}", "en": "Wait {days} days"},
    "watch": {"sw": "Fuatilia", "en": "Monitor"},
}


class _Context(dict[str, Any]):
    def __missing__(self, key: str) -> str:
        return "?"


def _format(messages: Messages, key: str, language: Language, context: dict[str, Any]) -> str:
    entry = messages[key]
    template = entry.get(language) or entry["sw"]
    return template.format_map(_Context(context))


def localize(member: Enum, language: Language = "sw", **context: Any) -> str:
    """Text for an enum member; context fills placeholders such as {count}."""
    return _format(MESSAGES[type(member)], member.value, language, context)


def audit_note(note: str, language: Language = "sw") -> str:
    """Stable audit note codes are translated, free text passes through."""
    if note in AUDIT_NOTES:
        return _format(AUDIT_NOTES, note, language, {})
    return note


def label(key: str, language: Language = "sw", **context: Any) -> str:
    return _format(_LABELS, key, language, context)


def describe_exam(schedule: ExamSchedule, language: Language = "sw") -> str:
    return localize(
        schedule.status,
        language,
        days=abs(schedule.days_until),
        date=schedule.scheduled_date.isoformat(),
    )


def describe_alert(alert: Alert, language: Language = "sw") -> str:
    return localize(alert.kind, language, **alert.context)


def describe_step(step: ReintroductionStep, language: Language = "sw") -> str:
    amount = "" if step.amount is None else f"{step.amount:g}"
    parts = [label("day", language, day=step.day)]
    if step.food_form:
        parts.append(_format(_FOOD_FORMS, step.food_form, language, {}))
    parts.append(localize(step.unit, language, amount=amount))
    if step.wait is None:
        parts.append(label("watch", language))
    elif step.wait.days >= 1:
        parts.append(label("wait_days", language, days=step.wait.days))
    else:
        parts.append(label("wait_hours", language, hours=int(step.wait.total_seconds() // 3600)))
    return " - ".join(parts)


def render_report(
    report: Report, language: Language = "sw", console: Console | None = None
) -> None:
    console = console or Console()
    summary = report.summary

    console.print(Panel(label("report", language, subject=report.subject_id), style="blue"))

    table = Table()
    table.add_column("", style="cyan")
    table.add_column("", style="green")
    seizures = summary.seizures
    table.add_row(
        label("seizures", language),
        f"{seizures.total} ({seizures.average_per_week} {label('per_week', language)})",
    )
    table.add_row(
        label("triggers", language),
        ", ".join(f"{name} ({count})" for name, count in seizures.common_triggers) or "-",
    )
    table.add_row(
        label("peak_hours", language),
        ", ".join(f"{hour:02d}:00 ({count})" for hour, count in seizures.peak_hours) or "-",
    )
    table.add_row(label("hb_trend", language), localize(summary.hb_trend.direction, language))
    table.add_row(
        label("transfusions", language),
        localize(
            summary.transfusion_risk.level,
            language,
            count=summary.transfusion_risk.count,
            years=summary.transfusion_risk.years_back,
        ),
    )
    table.add_row(label("red_flags", language), str(summary.red_flag_count))
    table.add_row(
        label("hospital", language),
        f"{summary.hospitalization_count} ({summary.total_bed_days:g})",
    )
    for exam in summary.upcoming_exams:
        table.add_row(
            f"{label('exams', language)}: {exam.exam_type}", describe_exam(exam, language)
        )
    console.print(table)

    if not report.alerts:
        console.print(label("no_alerts", language), style="green")
    for alert in report.alerts:
        style = "red" if alert.severity is AlertSeverity.CRITICAL else "yellow"
        console.print(
            f"{localize(alert.severity, language)}: {describe_alert(alert, language)}", style=style
        )


def render_allergies(
    analysis: AllergyAnalysis,
    plan: EliminationPlan | None = None,
    language: Language = "sw",
    console: Console | None = None,
) -> None:
    console = console or Console()

    table = Table(title=label("food", language))
    table.add_column(label("food", language), style="cyan")
    table.add_column(label("confidence", language), style="magenta")
    table.add_column("", style="yellow")
    for food in analysis.suspicious:
        table.add_row(
            food.food,
            f"{food.confidence}%",
            f"{localize(food.recommendation.action, language)}"
            f" ({localize(food.recommendation.priority, language)})",
        )
    console.print(table)
    if analysis.safe:
        console.print(f"{label('safe', language)}: {', '.join(analysis.safe)}", style="green")

    if plan is None:
        return
    console.print(Panel(label("plan", language), style="blue"))
    for item in plan.items:
        console.print(
            f"{item.food}: {label('start', language)} {item.start_date.isoformat()}"
            f" / {label('end', language)} {item.end_date.isoformat()}"
            f" ({localize(item.protocol.setting, language)})"
        )
        for step in item.protocol.steps:
            console.print(f"  {describe_step(step, language)}")


def missing_translations() -> list[str]:
    """Catalog gaps, as 'Enum.member/lang' strings. Empty when complete."""
    gaps = []
    for enum_type, messages in MESSAGES.items():
        for member in enum_type:
            for language in LANGUAGES:
                if language not in messages.get(member.value, {}):
                    gaps.append(f"{enum_type.__name__}.{member.value}/{language}")
    for code in DEFAULT_NOTES.values():
        for language in LANGUAGES:
            if language not in AUDIT_NOTES.get(code, {}):
                gaps.append(f"audit_note.{code}/{language}")
    return gaps
