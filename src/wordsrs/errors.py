"""Classified errors raised by the scheduling core."""
from typing import Any, Optional


class SrsError(Exception):
    """Base class for every error the scheduler reports to callers."""


class MalformedRecord(SrsError):
    """A persisted record could not be read in any known layout."""

    def __init__(self, item_id: str, reason: str):
        super().__init__(f"Malformed record for {item_id}: {reason}")
        self.item_id = item_id
        self.reason = reason


class UnknownItem(SrsError, KeyError):
    """An answer or lookup referenced an item id that is not in the store."""

    def __init__(self, item_id: str):
        super().__init__(f"Unknown item {item_id!r}")
        self.item_id = item_id

    def __str__(self) -> str:
        return self.args[0]


class InvalidGrade(SrsError, ValueError):
    """An answer carried a grade that is neither correct nor incorrect."""

    def __init__(self, value: Any):
        super().__init__(f"Unknown grade {value!r}")
        self.value = value


class DailyLimitReached(SrsError):
    """Introducing another new item would break the daily new budget or the active pool."""

    def __init__(self, item_id: str, limit: str):
        super().__init__(f"Cannot introduce {item_id}: {limit} limit reached")
        self.item_id = item_id
        self.limit = limit


class PersistenceFailure(SrsError):
    """The in-memory state was updated but the write did not reach storage."""

    def __init__(self, message: str, result: Optional[Any] = None):
        super().__init__(message)
        self.result = result


class ClockAnomaly(SrsError):
    """A stored timestamp lies implausibly far from the current time."""

    def __init__(self, what: str, value: Any):
        super().__init__(f"Clock anomaly in {what}: {value!r}")
        self.what = what
        self.value = value
