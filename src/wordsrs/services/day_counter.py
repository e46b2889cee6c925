"""Daily new/review ledger with local-day rollover."""
import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from wordsrs.errors import ClockAnomaly
from wordsrs.models.models import SrsDay, WeeklyProgress
from wordsrs.models.srs_models import DayCounters, SchedulerContext

logger = logging.getLogger(__name__)


class DayCounter:
    """Passive ledger of what was consumed today.

    The date is checked against the clock on every access, so a long-lived
    session picks up the rollover as soon as the local day changes.
    """

    def __init__(self, db: Session, context: SchedulerContext):
        """Initialize the counter from the stored day row."""
        self.db = db
        self.context = context
        self._dirty = False
        row = self.db.query(SrsDay).order_by(SrsDay.id).first()
        if row is None:
            self._counters = DayCounters(date=context.today())
            self._dirty = True
        else:
            self._counters = DayCounters(
                date=row.date,
                new_introduced_count=row.new_introduced_count or 0,
                review_answer_count=row.review_answer_count or 0,
                extra_answer_count=row.extra_answer_count or 0,
            )

    def _rollover_if_needed(self) -> None:
        today = self.context.today()
        stored = self._counters.date
        if stored == today:
            return
        if stored > today:
            logger.warning(f"{ClockAnomaly('srs day', stored)}, starting a fresh day")
        else:
            logger.info(f"New day {today}, resetting counters from {stored}")
        self._counters = DayCounters(date=today)
        self._dirty = True

    def current_counters(self) -> DayCounters:
        """Get today's counters."""
        self._rollover_if_needed()
        return replace(self._counters)

    def record_new_introduced(self) -> DayCounters:
        self._rollover_if_needed()
        self._counters.new_introduced_count += 1
        self._dirty = True
        return replace(self._counters)

    def record_review_answer(self) -> DayCounters:
        self._rollover_if_needed()
        self._counters.review_answer_count += 1
        self._dirty = True
        return replace(self._counters)

    def record_extra_answer(self) -> DayCounters:
        """Record an answer given after the daily review cap was reached."""
        self._rollover_if_needed()
        self._counters.extra_answer_count += 1
        self._dirty = True
        return replace(self._counters)

    def restore(self, counters: DayCounters) -> None:
        """Replace the ledger, e.g. with counters imported from a legacy dump."""
        self._counters = replace(counters)
        self._dirty = True
        self._rollover_if_needed()

    def flush(self) -> None:
        """Stage the ledger in the database session."""
        if not self._dirty:
            return
        row = self.db.query(SrsDay).order_by(SrsDay.id).first()
        if row is None:
            row = SrsDay()
            self.db.add(row)
        row.date = self._counters.date
        row.new_introduced_count = self._counters.new_introduced_count
        row.review_answer_count = self._counters.review_answer_count
        row.extra_answer_count = self._counters.extra_answer_count

    def mark_committed(self) -> None:
        self._dirty = False


class ProgressTracker:
    """Answers per local day over the last week.

    Answers are kept in memory until :meth:`flush` adds them to the stored
    rows and the transaction commits, so a rolled back commit does not lose
    them.
    """

    def __init__(self, db: Session, context: SchedulerContext):
        self.db = db
        self.context = context
        self._pending: Dict[date, int] = {}

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def record_answer(self, day: Optional[date] = None, count: int = 1) -> None:
        """Stage *count* more answers for *day* (today by default)."""
        day = day or self.context.today()
        self._pending[day] = self._pending.get(day, 0) + count

    def flush(self) -> None:
        """Add the staged answers to the database session and drop old days."""
        if not self._pending:
            return
        for day, count in sorted(self._pending.items()):
            row = self.db.query(WeeklyProgress).filter(WeeklyProgress.date == day).first()
            if row is None:
                row = WeeklyProgress(date=day, count=0)
                self.db.add(row)
            row.count = (row.count or 0) + count
        self.db.flush()
        self._prune(self.context.today())

    def mark_committed(self) -> None:
        self._pending.clear()

    def _prune(self, today: date) -> None:
        keep_from = today - timedelta(days=self.context.srs.weekly_progress_days - 1)
        self.db.query(WeeklyProgress).filter(WeeklyProgress.date < keep_from).delete()

    def get_weekly_progress(self) -> List[Tuple[date, int]]:
        """(day, answers) pairs for the last week, oldest first, days without answers included."""
        today = self.context.today()
        days = self.context.srs.weekly_progress_days
        start = today - timedelta(days=days - 1)
        rows = (
            self.db.query(WeeklyProgress)
            .filter(WeeklyProgress.date >= start, WeeklyProgress.date <= today)
            .all()
        )
        counts = {row.date: row.count or 0 for row in rows}
        for day, count in self._pending.items():
            counts[day] = counts.get(day, 0) + count
        return [(start + timedelta(days=offset), counts.get(start + timedelta(days=offset), 0))
                for offset in range(days)]
