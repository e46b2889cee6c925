"""Conversion of persisted schedule records from older layouts.

Two layouts are known:

* ``LegacyStatsV1`` -- the browser-storage layout keyed by word text, with
  SM-2 style fields (``ef``, ``reps``, ``interval``, ``step``) and epoch
  millisecond timestamps (``nextReview``, ``lastReview``).
* ``StatsV2`` -- the current layout written by :meth:`ScheduleRecord.to_dict`,
  tagged with ``schema_version = 2``.

:meth:`SchemaMigrator.migrate` turns a mapping of either into current-schema
dictionaries. It is pure and idempotent: feeding its own output back in
returns an identical mapping.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from wordsrs.config import SrsSettings
from wordsrs.errors import ClockAnomaly, MalformedRecord
from wordsrs.models.srs_models import (
    SCHEMA_VERSION,
    DayCounters,
    Phase,
    ScheduleRecord,
    ensure_utc,
    parse_datetime,
)

logger = logging.getLogger(__name__)

LEGACY_DAY_FORMAT = "%a %b %d %Y"  # Date.prototype.toDateString(), e.g. "Mon Oct 19 2026"


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return int(round(number))


def _as_float(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class LegacyStatsV1:
    """Record in the legacy browser-storage layout."""
    payload: Mapping[str, Any]

    def to_record(self, now: datetime, srs: SrsSettings) -> ScheduleRecord:
        p = self.payload
        correct = _as_int(p.get("correct"))
        incorrect = _as_int(p.get("incorrect"))
        total = _as_int(p.get("totalAnswers"), correct + incorrect)
        reps = _as_int(p.get("reps"))
        interval = _as_int(p.get("interval"))
        raw_phase = str(p.get("phase") or "").lower()

        if total == 0 and reps == 0:
            phase = Phase.NEW
        elif raw_phase == Phase.REVIEW.value and interval >= 1:
            phase = Phase.REVIEW
        else:
            phase = Phase.LEARNING

        return ScheduleRecord(
            phase=phase,
            step_index=_as_int(p.get("step")) if phase is Phase.LEARNING else 0,
            interval_days=max(interval, 0),
            ease=_as_float(p.get("ef"), srs.starting_ease),
            due_at=parse_datetime(p.get("nextReview")) or now,
            lapses=_as_int(p.get("lapses")),
            correct=correct,
            incorrect=incorrect,
            total_answers=total,
            total_time_ms=_as_int(p.get("totalTimeMs")),
            acc_score=_as_int(p.get("accScore")),
            difficulty=_as_int(p.get("difficulty")),
            first_seen_at=parse_datetime(p.get("firstSeenAt")),
            last_review_at=parse_datetime(p.get("lastReview")),
        )


@dataclass(frozen=True)
class StatsV2:
    """Record in the current layout; missing fields take defaults."""
    payload: Mapping[str, Any]

    def to_record(self, now: datetime, srs: SrsSettings) -> ScheduleRecord:
        defaults = ScheduleRecord.default(now, srs).to_dict()
        merged = dict(defaults)
        merged.update({key: value for key, value in self.payload.items() if value is not None})
        return ScheduleRecord.from_dict(merged)


RawStats = Union[LegacyStatsV1, StatsV2]


def classify(item_id: str, payload: Any) -> RawStats:
    """Tag *payload* with the layout it was written in."""
    if not isinstance(payload, Mapping):
        raise MalformedRecord(item_id, f"expected a mapping, got {type(payload).__name__}")
    version = payload.get("schema_version")
    if version is None:
        return LegacyStatsV1(payload)
    if version == SCHEMA_VERSION:
        return StatsV2(payload)
    raise MalformedRecord(item_id, f"unsupported schema version {version!r}")


class SchemaMigrator:
    """Brings persisted records into the current layout before scheduling reads them."""

    def __init__(self, srs: SrsSettings):
        self.srs = srs

    def check_due(self, due_at: Optional[datetime], now: datetime) -> None:
        """Raise ClockAnomaly when *due_at* lies further ahead than any interval can reach."""
        if due_at is None:
            return
        limit = now + timedelta(days=self.srs.max_interval_days + 1)
        if due_at > limit:
            raise ClockAnomaly("due_at", due_at)

    def normalise(self, item_id: str, record: ScheduleRecord, now: datetime) -> ScheduleRecord:
        """Enforce the record invariants on an already parsed record."""
        last_step = len(self.srs.learning_steps) - 1
        changes: Dict[str, Any] = {}

        if not math.isfinite(record.ease):
            changes["ease"] = max(self.srs.starting_ease, self.srs.min_ease)
        elif record.ease < self.srs.min_ease:
            changes["ease"] = self.srs.min_ease
        if record.phase is Phase.LEARNING:
            step = min(max(record.step_index, 0), last_step)
            if step != record.step_index:
                changes["step_index"] = step
        elif record.step_index != 0:
            changes["step_index"] = 0
        if record.phase is Phase.REVIEW and record.interval_days < 1:
            changes["interval_days"] = self.srs.graduate_to_days[0]
        elif record.interval_days > self.srs.max_interval_days:
            changes["interval_days"] = self.srs.max_interval_days
        if record.due_at is None:
            changes["due_at"] = now
        else:
            try:
                self.check_due(record.due_at, now)
            except ClockAnomaly as e:
                logger.warning(f"{e} for {item_id}, making it due now")
                changes["due_at"] = now
        for name in ("lapses", "correct", "incorrect", "total_answers", "total_time_ms"):
            if getattr(record, name) < 0:
                changes[name] = 0
        if not 0 <= record.acc_score <= 10:
            changes["acc_score"] = min(max(record.acc_score, 0), 10)
        if not 0 <= record.difficulty <= 5:
            changes["difficulty"] = min(max(record.difficulty, 0), 5)

        return record.copy(**changes) if changes else record

    def migrate_record(self, item_id: str, payload: Any, now: datetime) -> Dict[str, Any]:
        """Migrate one record. Raises MalformedRecord when it cannot be recovered."""
        raw = classify(item_id, payload)
        try:
            record = raw.to_record(now, self.srs)
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise MalformedRecord(item_id, str(e)) from e
        return self.normalise(item_id, record, ensure_utc(now)).to_dict()

    def migrate(
        self,
        raw_stats: Mapping[str, Any],
        now: datetime,
        key_map: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> Dict[str, Dict[str, Any]]:
        """Migrate every record in *raw_stats*.

        *key_map* re-keys legacy records (keyed by word text) to item ids; a
        key missing from it is taken to be an item id already. Records that
        cannot be recovered are left out, so their items start over as new.
        """
        now = ensure_utc(now)
        migrated: Dict[str, Dict[str, Any]] = {}
        dropped = 0
        for key, payload in raw_stats.items():
            targets: List[str] = list(key_map.get(key, [key])) if key_map else [key]
            try:
                current = self.migrate_record(str(key), payload, now)
            except MalformedRecord as e:
                dropped += 1
                logger.warning(f"Dropping record: {e}")
                continue
            for item_id in targets:
                migrated[item_id] = dict(current)
        if dropped:
            logger.info(f"Migrated {len(migrated)} record(s), dropped {dropped}")
        return migrated

    def migrate_day(self, raw_day: Any, today: date) -> DayCounters:
        """Convert a stored day ledger, rolling it over when it is not for *today*."""
        if not isinstance(raw_day, Mapping):
            return DayCounters(date=today)
        try:
            stored_date = self.parse_day(raw_day.get("date"))
            if "newIntroduced" in raw_day or "answered" in raw_day:
                introduced = raw_day.get("newIntroduced") or []
                counters = DayCounters(
                    date=stored_date,
                    new_introduced_count=len(introduced) if isinstance(introduced, list) else _as_int(introduced),
                    review_answer_count=_as_int(raw_day.get("answered")),
                )
            else:
                counters = DayCounters(
                    date=stored_date,
                    new_introduced_count=_as_int(raw_day.get("new_introduced_count")),
                    review_answer_count=_as_int(raw_day.get("review_answer_count")),
                    extra_answer_count=_as_int(raw_day.get("extra_answer_count")),
                )
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable day ledger {raw_day!r}: {e}")
            return DayCounters(date=today)
        if counters.date != today:
            if counters.date > today:
                logger.warning(f"{ClockAnomaly('srs day', counters.date)}, starting a fresh day")
            return DayCounters(date=today)
        return counters

    @staticmethod
    def parse_day(value: Any) -> date:
        if isinstance(value, date):
            return value
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"missing day {value!r}")
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            return datetime.strptime(text, LEGACY_DAY_FORMAT).date()
