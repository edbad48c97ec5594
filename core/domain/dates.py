"""
Date helpers shared by the store, analytics and reports.

Stored timestamps are ISO-8601 strings. Naive values are taken as UTC.
Index columns hold the UTC form with fixed precision so that string
comparison orders them chronologically.
"""

import calendar
from datetime import UTC, date, datetime, time, timedelta

DateLike = datetime | date | str


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: DateLike) -> datetime:
    """
    Parse a date, datetime or ISO string into an aware datetime.

    The original offset is kept so wall-clock fields (hour of day) stay as
    the caregiver recorded them.

    Raises:
        ValueError: when the value is not a recognizable ISO date/datetime.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_date_only(value: DateLike) -> bool:
    """True for calendar dates without a time component."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def index_key(moment: datetime) -> str:
    """Sortable UTC representation used in index columns."""
    return moment.astimezone(UTC).isoformat(timespec="microseconds")


def shift_months(moment: datetime, months: int) -> datetime:
    """Move by whole months, clamping the day to the end of a shorter month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def days_until(target: DateLike, today: date) -> int:
    """Whole calendar days from today to target (negative when past)."""
    target_date = parse_timestamp(target).date()
    return (target_date - today).days


def weeks_between(start: datetime, end: datetime) -> float:
    return (end - start) / timedelta(weeks=1)
