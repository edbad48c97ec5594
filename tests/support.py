"""Test helpers shared across test modules."""

from datetime import UTC, datetime, timedelta

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)
