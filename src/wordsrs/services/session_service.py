"""Practice session queue and cursor."""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from wordsrs.models.models import PracticeSession
from wordsrs.models.srs_models import Grade, PracticeMode, SchedulerContext, SessionQueue
from wordsrs.services.day_counter import DayCounter
from wordsrs.services.item_store import ItemStore
from wordsrs.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)


class SessionService:
    """Holds the ordered queue of one practice session and the cursor into it.

    In scheduled mode the queue is computed once per session from the due set
    and walked in order. In endless mode it is re-drawn whenever it runs out,
    so there is always a next card while the learner has any items.
    """

    def __init__(
        self,
        db: Session,
        context: SchedulerContext,
        store: ItemStore,
        counter: DayCounter,
        scheduler: SchedulerService,
    ):
        """Initialize the controller from the persisted practice state."""
        self.db = db
        self.context = context
        self.store = store
        self.counter = counter
        self.scheduler = scheduler
        self._dirty = False

        row = self.db.query(PracticeSession).order_by(PracticeSession.id).first()
        if row is None:
            self.queue = SessionQueue()
            self._dirty = True
        else:
            try:
                mode = PracticeMode(row.mode)
            except ValueError:
                logger.warning(f"Unknown practice mode {row.mode!r}, using scheduled")
                mode = PracticeMode.SCHEDULED
            self.queue = SessionQueue(
                mode=mode,
                item_ids=list(row.item_ids or []),
                current_review_index=row.current_review_index or 0,
                session_date=row.session_date,
                correct_streak=row.correct_streak or 0,
                total_correct=row.total_correct or 0,
            )

    @property
    def mode(self) -> PracticeMode:
        return self.queue.mode

    # ------------------------------------------------------------------
    # Queue construction
    # ------------------------------------------------------------------
    def _draw(self, mode: PracticeMode) -> List[str]:
        entries = self.store.all()
        counters = self.counter.current_counters()
        now = self.context.now()
        item_ids = self.scheduler.select_due(entries, counters, mode, now)
        if not item_ids and mode is PracticeMode.ENDLESS:
            item_ids = self.scheduler.nearest_due(entries, self.context.srs.endless_batch_size, now)
        return item_ids

    def _session_is_active(self) -> bool:
        return (
            self.queue.mode is PracticeMode.SCHEDULED
            and self.queue.session_date == self.context.today()
            and bool(self.queue.item_ids)
            and not self.queue.is_finished
        )

    def start_session(self) -> SessionQueue:
        """Compute a fresh queue for the current mode and reset the cursor."""
        item_ids = self._draw(self.queue.mode)
        self.queue.item_ids = item_ids
        self.queue.current_review_index = 0
        self.queue.session_date = self.context.today()
        self.queue.correct_streak = 0
        self.queue.total_correct = 0
        self._dirty = True
        logger.info(f"Started {self.queue.mode.value} session with {len(item_ids)} item(s)")
        return self.queue

    def get_due_queue(self, mode: PracticeMode) -> List[str]:
        """Ordered item ids to practise in *mode*.

        Scheduled mode returns the current session's fixed queue, computing a
        new one when there is no unfinished session for today. Endless mode
        always draws afresh and leaves the scheduled session untouched.
        """
        mode = PracticeMode(mode)
        if mode is PracticeMode.ENDLESS:
            return self._draw(mode)
        if self.queue.mode is not PracticeMode.SCHEDULED:
            return self._draw(mode)
        if not self._session_is_active():
            self.start_session()
        return [item_id for item_id in self.queue.item_ids if item_id in self.store]

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------
    def current_item_id(self) -> Optional[str]:
        """Id of the card to show next, or None when the session is over."""
        if self.queue.mode is PracticeMode.SCHEDULED:
            if self.queue.session_date != self.context.today() or not self.queue.item_ids:
                self.start_session()
        elif self.queue.is_finished:
            self.start_session()

        while not self.queue.is_finished:
            item_id = self.queue.item_ids[self.queue.current_review_index]
            if item_id in self.store:
                return item_id
            # Removed since the queue was built
            self.queue.current_review_index += 1
            self._dirty = True
        return None

    def on_answer(self, item_id: str, grade: Grade) -> None:
        """Advance the cursor when *item_id* is the current card."""
        if self.queue.is_finished or self.queue.item_ids[self.queue.current_review_index] != item_id:
            return
        self.queue.current_review_index += 1
        if grade is Grade.CORRECT:
            self.queue.correct_streak += 1
            self.queue.total_correct += 1
        else:
            self.queue.correct_streak = 0
        self._dirty = True
        if self.queue.is_finished and self.queue.mode is PracticeMode.SCHEDULED:
            logger.info(f"Scheduled session finished, {self.queue.total_correct} correct")

    def switch_practice_mode(self, mode: PracticeMode) -> SessionQueue:
        """Select the practice mode. Never touches item records."""
        mode = PracticeMode(mode)
        self.queue.mode = mode
        self.queue.current_review_index = 0
        if mode is PracticeMode.ENDLESS:
            # A stale scheduled cursor must not be resumed later
            self.queue.item_ids = []
            self.queue.session_date = None
            self.queue.correct_streak = 0
            self.queue.total_correct = 0
        self._dirty = True
        logger.info(f"Switched practice mode to {mode.value}")
        return self.queue

    def restore(self, queue: SessionQueue) -> None:
        self.queue = queue
        self._dirty = True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def flush(self) -> None:
        """Stage the practice state in the database session."""
        if not self._dirty:
            return
        row = self.db.query(PracticeSession).order_by(PracticeSession.id).first()
        if row is None:
            row = PracticeSession()
            self.db.add(row)
        row.mode = self.queue.mode.value
        row.session_date = self.queue.session_date
        # Endless queues are regenerated on demand
        row.item_ids = list(self.queue.item_ids) if self.queue.mode is PracticeMode.SCHEDULED else []
        row.current_review_index = self.queue.current_review_index
        row.correct_streak = self.queue.correct_streak
        row.total_correct = self.queue.total_correct

    def mark_committed(self) -> None:
        self._dirty = False
