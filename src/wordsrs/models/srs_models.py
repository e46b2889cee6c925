"""Models for scheduling-related data structures."""
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from wordsrs.config import SrsSettings
from wordsrs.errors import InvalidGrade

SCHEMA_VERSION = 2

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Normalise *value* to a timezone-aware UTC datetime."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def local_day(moment: datetime, day_start_hour: int = 0) -> date:
    """Return the learner's local calendar day for *moment*.

    A day starts at ``day_start_hour`` local time, so answers given shortly
    after midnight can still count towards the previous day.
    """
    local = ensure_utc(moment).astimezone()
    return (local - timedelta(hours=day_start_hour)).date()


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime as ISO-8601 UTC for JSON storage."""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO string, epoch milliseconds or datetime into UTC.

    Raises ValueError for values that cannot be a timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=UTC)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise ValueError(f"not a timestamp: {value!r}")


class Phase(str, Enum):
    """Scheduling phase of a learning item."""
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"


class PracticeMode(str, Enum):
    """How the practice queue is built."""
    SCHEDULED = "scheduled"  # fixed queue bounded by the daily budgets
    ENDLESS = "endless"  # re-drawn on demand, budgets ignored


class Grade(str, Enum):
    """Learner's answer to a card."""
    CORRECT = "correct"
    INCORRECT = "incorrect"

    @classmethod
    def coerce(cls, value: Any) -> "Grade":
        """Accept a Grade, a bool or the grade's name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.CORRECT if value else cls.INCORRECT
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise InvalidGrade(value) from e


@dataclass(frozen=True)
class LearningItem:
    """A vocabulary entry under study."""
    item_id: str
    word: str
    level: str
    forms: Optional[List[str]] = None
    translation: Optional[str] = None
    is_custom: bool = False
    added_at: Optional[datetime] = None

    @staticmethod
    def make_id(word: str, level: str) -> str:
        """Derive the stable id from the canonical text and level tag."""
        return f"{level.strip().upper()}:{' '.join(word.split()).lower()}"


@dataclass
class ScheduleRecord:
    """Scheduling state of one item plus its answer statistics."""
    phase: Phase = Phase.NEW
    step_index: int = 0
    interval_days: int = 0
    ease: float = 2.5
    due_at: Optional[datetime] = None
    lapses: int = 0
    correct: int = 0
    incorrect: int = 0
    total_answers: int = 0
    total_time_ms: int = 0
    acc_score: int = 0
    difficulty: int = 0
    first_seen_at: Optional[datetime] = None
    last_review_at: Optional[datetime] = None

    @classmethod
    def default(cls, now: datetime, srs: SrsSettings) -> "ScheduleRecord":
        """Record given to an item on first exposure."""
        return cls(
            phase=Phase.NEW,
            step_index=0,
            interval_days=0,
            ease=max(srs.starting_ease, srs.min_ease),
            due_at=ensure_utc(now),
            lapses=0,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScheduleRecord":
        """Build a record from a current-schema dictionary.

        Raises ValueError or TypeError when a field has the wrong shape.
        """
        return cls(
            phase=Phase(data["phase"]),
            step_index=int(data["step_index"]),
            interval_days=int(data["interval_days"]),
            ease=float(data["ease"]),
            due_at=parse_datetime(data["due_at"]),
            lapses=int(data["lapses"]),
            correct=int(data.get("correct", 0)),
            incorrect=int(data.get("incorrect", 0)),
            total_answers=int(data.get("total_answers", 0)),
            total_time_ms=int(data.get("total_time_ms", 0)),
            acc_score=int(data.get("acc_score", 0)),
            difficulty=int(data.get("difficulty", 0)),
            first_seen_at=parse_datetime(data.get("first_seen_at")),
            last_review_at=parse_datetime(data.get("last_review_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise into the current-schema, JSON friendly dictionary."""
        return {
            "schema_version": SCHEMA_VERSION,
            "phase": self.phase.value,
            "step_index": self.step_index,
            "interval_days": self.interval_days,
            "ease": round(self.ease, 4),
            "due_at": format_datetime(self.due_at),
            "lapses": self.lapses,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "total_answers": self.total_answers,
            "total_time_ms": self.total_time_ms,
            "acc_score": self.acc_score,
            "difficulty": self.difficulty,
            "first_seen_at": format_datetime(self.first_seen_at),
            "last_review_at": format_datetime(self.last_review_at),
        }

    def copy(self, **changes: Any) -> "ScheduleRecord":
        """Return a new record with *changes* applied."""
        return replace(self, **changes)

    def is_due(self, now: datetime) -> bool:
        return self.due_at is None or self.due_at <= now


@dataclass
class DayCounters:
    """Ledger of what has been consumed on one local day."""
    date: date
    new_introduced_count: int = 0
    review_answer_count: int = 0
    extra_answer_count: int = 0


@dataclass
class SessionQueue:
    """Ordered item ids of the active practice session and the cursor into it."""
    mode: PracticeMode = PracticeMode.SCHEDULED
    item_ids: List[str] = field(default_factory=list)
    current_review_index: int = 0
    session_date: Optional[date] = None
    correct_streak: int = 0
    total_correct: int = 0

    @property
    def is_finished(self) -> bool:
        return self.current_review_index >= len(self.item_ids)


@dataclass(frozen=True)
class SchedulerContext:
    """Configuration and clock handed to every scheduling operation."""
    srs: SrsSettings
    clock: Clock = utc_now

    def now(self) -> datetime:
        return ensure_utc(self.clock())

    def today(self) -> date:
        return local_day(self.now(), self.srs.day_start_hour)
