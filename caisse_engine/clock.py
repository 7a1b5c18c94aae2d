"""Injectable clocks for deterministic state evaluation."""

from datetime import date, datetime, time
from typing import Protocol


class Clock(Protocol):
    """Source of "today" for the contract service."""

    def now(self) -> date: ...

    def timestamp(self) -> datetime: ...


class SystemClock:
    """Clock reading the local calendar date."""

    def now(self) -> date:
        return date.today()

    def timestamp(self) -> datetime:
        return datetime.now()


class FixedClock:
    """Clock pinned to a date, movable by tests and replays.

    Timestamps fall at midnight of the pinned date.
    """

    def __init__(self, today: date) -> None:
        self.today = today

    def now(self) -> date:
        return self.today

    def timestamp(self) -> datetime:
        return datetime.combine(self.today, time.min)

    def set(self, today: date) -> None:
        self.today = today
