"""Learning service: the scheduling API used by the rest of the application."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordsrs import monitoring
from wordsrs.config import settings
from wordsrs.errors import DailyLimitReached, PersistenceFailure, UnknownItem
from wordsrs.models.srs_models import (
    Clock,
    DayCounters,
    Grade,
    LearningItem,
    Phase,
    PracticeMode,
    ScheduleRecord,
    SchedulerContext,
    utc_now,
)
from wordsrs.services.day_counter import DayCounter, ProgressTracker
from wordsrs.services.item_store import ItemStore
from wordsrs.services.migration_service import SchemaMigrator
from wordsrs.services.scheduler_service import SchedulerService
from wordsrs.services.session_service import SessionService

logger = logging.getLogger(__name__)


class LearningService:
    """Service wiring the item store, day counter, scheduler and session together.

    Every mutating call applies its whole effect in memory and then commits
    it in a single transaction. When the commit fails the in-memory state is
    kept, :class:`PersistenceFailure` is raised, and the unsaved changes are
    written again by the next successful commit (or by :meth:`save`).
    """

    def __init__(self, db: Session, clock: Clock = utc_now, context: Optional[SchedulerContext] = None):
        """Initialize the service with a database session and a clock."""
        self.db = db
        self.context = context or SchedulerContext(srs=settings.srs, clock=clock)
        self.migrator = SchemaMigrator(self.context.srs)
        self.store = ItemStore(db, self.context, self.migrator)
        self.counter = DayCounter(db, self.context)
        self.progress = ProgressTracker(db, self.context)
        self.scheduler = SchedulerService(self.context)
        self.session = SessionService(db, self.context, self.store, self.counter, self.scheduler)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _commit(self, result: Any = None, answers: int = 0) -> None:
        try:
            self.store.flush()
            self.counter.flush()
            self.session.flush()
            if answers:
                self.progress.record_answer(count=answers)
            self.progress.flush()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            monitoring.db_errors.labels(error_type=type(e).__name__).inc()
            monitoring.error_count.labels(error_type="PersistenceFailure").inc()
            logger.error(f"Failed to persist scheduler state: {e}")
            raise PersistenceFailure("Scheduler state was not saved", result=result) from e
        self.store.mark_committed()
        self.counter.mark_committed()
        self.session.mark_committed()
        self.progress.mark_committed()

    def save(self) -> None:
        """Write any state left unsaved by an earlier failed commit."""
        self._commit()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    def add_word(
        self,
        word: str,
        level: str,
        translation: Optional[str] = None,
        forms: Optional[Sequence[str]] = None,
        is_custom: bool = False,
    ) -> LearningItem:
        """Add a word to the learner's set."""
        item = self.store.add_item(word, level, translation=translation, forms=forms, is_custom=is_custom)
        self._commit(result=item)
        return item

    def remove_word(self, item_id: str) -> None:
        """Remove a word and its schedule record permanently."""
        self.store.remove(item_id)
        self._commit()

    def get_item(self, item_id: str) -> Optional[LearningItem]:
        return self.store.get_item(item_id)

    def list_items(self) -> List[LearningItem]:
        return self.store.items()

    # ------------------------------------------------------------------
    # Scheduling API
    # ------------------------------------------------------------------
    def get_due_queue(self, mode: PracticeMode = PracticeMode.SCHEDULED) -> List[str]:
        """Ordered ids of the items to practise now in *mode*."""
        mode = PracticeMode(mode)
        queue = self.session.get_due_queue(mode)
        monitoring.due_queue_size.labels(mode=mode.value).set(len(queue))
        self._commit(result=queue)
        return queue

    def current_item(self) -> Optional[LearningItem]:
        """The card the active session shows next, or None when it is over."""
        item_id = self.session.current_item_id()
        self._commit()
        return self.store.get_item(item_id) if item_id else None

    def apply_answer(
        self,
        item_id: str,
        grade: Any,
        response_time_ms: Optional[int] = None,
    ) -> ScheduleRecord:
        """Apply the learner's answer for *item_id* and return its updated record.

        Raises UnknownItem for an id that is not in the store and
        DailyLimitReached when the answer would introduce a new item past the
        daily new budget or the active pool; neither mutates any state.
        """
        grade = Grade.coerce(grade)
        record = self.store.get(item_id)
        if record is None:
            monitoring.error_count.labels(error_type="UnknownItem").inc()
            logger.warning(f"Answer for unknown item {item_id}")
            raise UnknownItem(item_id)

        now = self.context.now()
        counters = self.counter.current_counters()
        introducing = record.phase is Phase.NEW
        if introducing:
            limit = self.scheduler.new_item_limit(self.store.all(), counters, now)
            if limit is not None:
                monitoring.error_count.labels(error_type="DailyLimitReached").inc()
                logger.info(f"Not introducing {item_id}: {limit} limit reached")
                raise DailyLimitReached(item_id, limit)

        updated = self.scheduler.apply_grade(record, grade, now, response_time_ms)
        self.store.upsert(item_id, updated)

        if introducing:
            self.counter.record_new_introduced()
            monitoring.new_items_introduced.inc()
        if counters.review_answer_count < self.context.srs.daily_review:
            self.counter.record_review_answer()
        else:
            self.counter.record_extra_answer()
        self.session.on_answer(item_id, grade)

        if record.phase is not Phase.REVIEW and updated.phase is Phase.REVIEW:
            monitoring.graduations.inc()
        if record.phase is Phase.REVIEW and updated.phase is Phase.LEARNING:
            monitoring.lapses.inc()
        monitoring.answers.labels(grade=grade.value, phase=record.phase.value).inc()
        logger.info(
            f"Answer {grade.value} for {item_id}: {record.phase.value} -> {updated.phase.value}, "
            f"due {updated.due_at.isoformat()}"
        )

        self._commit(result=updated, answers=1)
        return updated

    def get_stats(self, item_id: str) -> Optional[ScheduleRecord]:
        """Schedule record of an item, or None if the item is unknown."""
        return self.store.get(item_id)

    def switch_practice_mode(self, mode: PracticeMode) -> None:
        """Select the practice mode and reset the session cursor."""
        self.session.switch_practice_mode(PracticeMode(mode))
        self._commit()

    @property
    def practice_mode(self) -> PracticeMode:
        return self.session.mode

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    def get_day_stats(self) -> DayCounters:
        """Today's counters, rolled over if the day has changed."""
        return self.counter.current_counters()

    def get_word_accuracy(self, item_id: str) -> Optional[Dict[str, int]]:
        """Accuracy badge data for an item, or None when it has never been answered."""
        record = self.store.get(item_id)
        if record is None:
            return None
        pct = max(0, min(100, record.acc_score * 10))
        total = record.total_answers or (record.correct + record.incorrect)
        if total == 0 and pct == 0:
            return None
        return {
            "pct": pct,
            "total": total,
            "correct": record.correct,
            "incorrect": record.incorrect,
        }

    def get_weekly_progress(self) -> List[Tuple[date, int]]:
        return self.progress.get_weekly_progress()

    def get_summary(self) -> Dict[str, Any]:
        """Overview used by the command line front end."""
        counters = self.counter.current_counters()
        srs = self.context.srs
        return {
            "date": counters.date.isoformat(),
            "items": len(self.store),
            "phases": self.store.count_by_phase(),
            "new_introduced": f"{counters.new_introduced_count}/{srs.daily_new}",
            "review_answers": f"{counters.review_answer_count}/{srs.daily_review}",
            "extra_answers": counters.extra_answer_count,
            "in_flight": f"{self.scheduler.in_flight_count(self.store.all(), self.context.now())}/{srs.active_pool}",
            "practice_mode": self.session.mode.value,
        }
