"""Spaced repetition state machine and due-set selection."""
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from wordsrs.config import SrsSettings
from wordsrs.models.srs_models import (
    DayCounters,
    Grade,
    Phase,
    PracticeMode,
    ScheduleRecord,
    SchedulerContext,
)

logger = logging.getLogger(__name__)

Entry = Tuple[str, ScheduleRecord]


class EasePolicy:
    """Ease growth and penalty rules for review answers.

    Every answer-driven change to ``ease`` and to the review interval goes
    through this class so the magnitudes can be tuned in one place.
    """

    def __init__(self, srs: SrsSettings):
        self.srs = srs

    def _finite(self, ease: float) -> float:
        """Replace an unusable ease with the starting one."""
        if math.isfinite(ease):
            return ease
        logger.warning(f"Non-finite ease {ease!r}, using {self.srs.starting_ease}")
        return max(self.srs.starting_ease, self.srs.min_ease)

    def clamp(self, ease: float) -> float:
        ease = self._finite(ease)
        return min(max(ease, self.srs.min_ease), max(self.srs.max_ease, self.srs.min_ease))

    def grow(self, ease: float) -> float:
        """Ease after a correct review."""
        ease = self._finite(ease)
        if ease >= self.srs.max_ease:
            return max(ease, self.srs.min_ease)
        return self.clamp(ease + self.srs.ease_bonus)

    def penalize(self, ease: float) -> float:
        """Ease after a lapse."""
        return max(self.srs.min_ease, self._finite(ease) - self.srs.ease_penalty)

    def next_interval(self, interval_days: int, ease: float) -> int:
        """Review interval after a correct answer."""
        ease = self._finite(ease)
        first, second = self.srs.graduate_to_days[0], self.srs.graduate_to_days[1]
        if interval_days == first:
            # Controlled ramp before ease takes over
            interval = second
        else:
            interval = max(interval_days + 1, int(round(min(interval_days * ease, self.srs.max_interval_days))))
        return min(interval, self.srs.max_interval_days)


class SchedulerService:
    """Applies answers to schedule records and picks the items due for practice."""

    def __init__(self, context: SchedulerContext, policy: Optional[EasePolicy] = None):
        """Initialize the service with a scheduler context."""
        self.context = context
        self.srs = context.srs
        self.policy = policy or EasePolicy(context.srs)

    def _step(self, index: int) -> timedelta:
        return timedelta(minutes=self.srs.learning_steps[index])

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def introduce(self, record: ScheduleRecord, now: datetime) -> ScheduleRecord:
        """Move a new item into the first learning step."""
        return record.copy(
            phase=Phase.LEARNING,
            step_index=0,
            due_at=now + self._step(0),
            first_seen_at=record.first_seen_at or now,
        )

    def transition(self, record: ScheduleRecord, grade: Grade, now: datetime) -> ScheduleRecord:
        """Return the record that results from answering *record* with *grade*."""
        if record.phase is Phase.NEW:
            record = self.introduce(record, now)

        last_step = len(self.srs.learning_steps) - 1

        if record.phase is Phase.LEARNING:
            step = min(max(record.step_index, 0), last_step)
            if grade is Grade.INCORRECT:
                return record.copy(step_index=0, due_at=now + self._step(0))
            if step >= last_step:
                interval = self.srs.graduate_to_days[0]
                logger.debug(f"Graduating item after step {step}, interval {interval} day(s)")
                updated = record.copy(
                    phase=Phase.REVIEW,
                    step_index=0,
                    interval_days=interval,
                    due_at=now + timedelta(days=interval),
                )
            else:
                updated = record.copy(step_index=step + 1, due_at=now + self._step(step + 1))
            return self._keep_due_monotonic(record, updated)

        # Phase.REVIEW
        if grade is Grade.INCORRECT:
            return record.copy(
                phase=Phase.LEARNING,
                step_index=0,
                lapses=record.lapses + 1,
                ease=self.policy.penalize(record.ease),
                due_at=now + self._step(0),
            )
        interval = self.policy.next_interval(record.interval_days, record.ease)
        updated = record.copy(
            interval_days=interval,
            ease=self.policy.grow(record.ease),
            due_at=now + timedelta(days=interval),
        )
        return self._keep_due_monotonic(record, updated)

    @staticmethod
    def _keep_due_monotonic(before: ScheduleRecord, after: ScheduleRecord) -> ScheduleRecord:
        if before.due_at is not None and after.due_at is not None and after.due_at < before.due_at:
            return after.copy(due_at=before.due_at)
        return after

    def record_answer_stats(
        self,
        record: ScheduleRecord,
        grade: Grade,
        now: datetime,
        response_time_ms: Optional[int] = None,
    ) -> ScheduleRecord:
        """Update the per-item answer statistics shown to the learner."""
        correct = grade is Grade.CORRECT
        return record.copy(
            correct=record.correct + (1 if correct else 0),
            incorrect=record.incorrect + (0 if correct else 1),
            total_answers=record.total_answers + 1,
            total_time_ms=record.total_time_ms + max(int(response_time_ms or 0), 0),
            acc_score=min(10, record.acc_score + 1) if correct else max(0, record.acc_score - 1),
            difficulty=max(0, record.difficulty - 1) if correct else min(5, record.difficulty + 1),
            last_review_at=now,
        )

    def apply_grade(
        self,
        record: ScheduleRecord,
        grade: Grade,
        now: Optional[datetime] = None,
        response_time_ms: Optional[int] = None,
    ) -> ScheduleRecord:
        """Apply one answer: phase transition plus answer statistics."""
        now = now or self.context.now()
        updated = self.transition(record, grade, now)
        return self.record_answer_stats(updated, grade, now, response_time_ms)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def in_flight_count(self, entries: Sequence[Entry], now: datetime) -> int:
        """Count items occupying the active pool."""
        horizon = now + timedelta(days=self.srs.active_pool_horizon_days)
        count = 0
        for _, record in entries:
            if record.phase is Phase.LEARNING:
                count += 1
            elif record.phase is Phase.REVIEW and record.due_at is not None and record.due_at <= horizon:
                count += 1
        return count

    def new_item_room(self, entries: Sequence[Entry], counters: DayCounters, now: datetime) -> int:
        """How many new items may still be introduced right now."""
        new_budget = self.srs.daily_new - counters.new_introduced_count
        pool_room = self.srs.active_pool - self.in_flight_count(entries, now)
        return max(0, min(new_budget, pool_room))

    def new_item_limit(self, entries: Sequence[Entry], counters: DayCounters, now: datetime) -> Optional[str]:
        """Name of the limit that blocks introducing a new item, if any."""
        if counters.new_introduced_count >= self.srs.daily_new:
            return "daily new"
        if self.in_flight_count(entries, now) >= self.srs.active_pool:
            return "active pool"
        return None

    @staticmethod
    def _ordered(entries: Sequence[Entry]) -> List[Tuple[int, Entry]]:
        return sorted(
            enumerate(entries),
            key=lambda pair: (pair[1][1].due_at is not None, pair[1][1].due_at or datetime.min, pair[0]),
        )

    def select_due(
        self,
        entries: Sequence[Entry],
        counters: DayCounters,
        mode: PracticeMode = PracticeMode.SCHEDULED,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Return the ids due now, oldest-due first, within the daily budgets.

        *entries* must be in insertion order; it breaks ties between equal
        due dates. In endless mode the review budget is ignored.
        """
        now = now or self.context.now()
        due = [(pos, entry) for pos, entry in self._ordered(entries) if entry[1].is_due(now)]

        if mode is PracticeMode.ENDLESS:
            review_budget = None
        else:
            review_budget = max(0, self.srs.daily_review - counters.review_answer_count)
        new_room = self.new_item_room(entries, counters, now)

        selected: List[str] = []
        new_taken = 0
        for _, (item_id, record) in due:
            if review_budget is not None and len(selected) >= review_budget:
                break
            if record.phase is Phase.NEW:
                if new_taken >= new_room:
                    continue
                new_taken += 1
            selected.append(item_id)

        logger.debug(f"Selected {len(selected)} of {len(due)} due item(s) in {mode.value} mode (new: {new_taken})")
        return selected

    def nearest_due(self, entries: Sequence[Entry], limit: int, now: Optional[datetime] = None) -> List[str]:
        """Ids of introduced items not yet due, soonest first."""
        now = now or self.context.now()
        upcoming = [
            item_id
            for _, (item_id, record) in self._ordered(entries)
            if record.phase is not Phase.NEW and not record.is_due(now)
        ]
        return upcoming[:limit]
