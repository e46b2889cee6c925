"""Item store: learning words and their schedule records."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from wordsrs.errors import UnknownItem
from wordsrs.models.models import LearningWord, WordStat
from wordsrs.models.srs_models import (
    SCHEMA_VERSION,
    LearningItem,
    Phase,
    ScheduleRecord,
    SchedulerContext,
    format_datetime,
)
from wordsrs.services.migration_service import SchemaMigrator

logger = logging.getLogger(__name__)


def stat_row_to_dict(row: WordStat) -> Dict[str, Any]:
    """Read a stored row back into the current-schema dictionary layout."""
    return {
        "schema_version": row.schema_version,
        "phase": row.phase,
        "step_index": row.step_index,
        "interval_days": row.interval_days,
        "ease": row.ease,
        "due_at": format_datetime(row.due_at),
        "lapses": row.lapses,
        "correct": row.correct,
        "incorrect": row.incorrect,
        "total_answers": row.total_answers,
        "total_time_ms": row.total_time_ms,
        "acc_score": row.acc_score,
        "difficulty": row.difficulty,
        "first_seen_at": format_datetime(row.first_seen_at),
        "last_review_at": format_datetime(row.last_review_at),
    }


def _word_to_item(row: LearningWord) -> LearningItem:
    return LearningItem(
        item_id=row.item_id,
        word=row.word,
        level=row.level,
        forms=list(row.forms) if row.forms else None,
        translation=row.translation,
        is_custom=bool(row.is_custom),
        added_at=row.added_at,
    )


class ItemStore:
    """Owns every learning item and its schedule record.

    All records are held in memory and are authoritative for the session.
    Changes are staged with :meth:`flush` and become durable when the caller
    commits the database session; pending changes survive a failed commit and
    are written again on the next flush.
    """

    def __init__(self, db: Session, context: SchedulerContext, migrator: Optional[SchemaMigrator] = None):
        """Initialize the store and load every stored record through the migrator."""
        self.db = db
        self.context = context
        self.migrator = migrator or SchemaMigrator(context.srs)
        self._items: Dict[str, LearningItem] = {}
        self._records: Dict[str, ScheduleRecord] = {}
        self._pending_items: Set[str] = set()
        self._pending_records: Set[str] = set()
        self._pending_removals: Set[str] = set()
        self.load()

    def load(self) -> None:
        """Populate the store from the database."""
        now = self.context.now()
        self._items.clear()
        self._records.clear()

        words = self.db.query(LearningWord).order_by(LearningWord.id).all()
        raw = {row.item_id: stat_row_to_dict(row) for row in self.db.query(WordStat).all()}
        migrated = self.migrator.migrate(raw, now)

        for row in words:
            item_id = row.item_id
            self._items[item_id] = _word_to_item(row)
            current = migrated.get(item_id)
            if current is None:
                if item_id in raw:
                    logger.warning(f"Resetting {item_id} to a new item")
                self._records[item_id] = ScheduleRecord.default(now, self.context.srs)
                self._pending_records.add(item_id)
                continue
            self._records[item_id] = ScheduleRecord.from_dict(current)
            if current != raw[item_id]:
                self._pending_records.add(item_id)

        logger.info(f"Loaded {len(self._items)} item(s), {len(self._pending_records)} record(s) to rewrite")

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------
    def get(self, item_id: str) -> Optional[ScheduleRecord]:
        """Get the schedule record of an item, or None if the item is unknown."""
        record = self._records.get(item_id)
        return record.copy() if record is not None else None

    def ensure(self, item_id: str) -> ScheduleRecord:
        """Get the record of a known item, creating the default one on first exposure."""
        if item_id not in self._items:
            raise UnknownItem(item_id)
        if item_id not in self._records:
            self._records[item_id] = ScheduleRecord.default(self.context.now(), self.context.srs)
            self._pending_records.add(item_id)
        return self._records[item_id].copy()

    def upsert(self, item_id: str, record: ScheduleRecord) -> None:
        """Store *record* for a known item."""
        if item_id not in self._items:
            raise UnknownItem(item_id)
        self._records[item_id] = record.copy()
        self._pending_records.add(item_id)

    def all(self) -> List[Tuple[str, ScheduleRecord]]:
        """Every (id, record) pair in insertion order."""
        return [(item_id, self.ensure(item_id)) for item_id in self._items]

    def remove(self, item_id: str) -> None:
        """Delete an item and its record permanently."""
        if item_id not in self._items:
            raise UnknownItem(item_id)
        del self._items[item_id]
        self._records.pop(item_id, None)
        self._pending_items.discard(item_id)
        self._pending_records.discard(item_id)
        self._pending_removals.add(item_id)
        logger.info(f"Removed item {item_id}")

    def count_by_phase(self) -> Dict[str, int]:
        counts = {phase.value: 0 for phase in Phase}
        for record in self._records.values():
            counts[record.phase.value] += 1
        return counts

    # ------------------------------------------------------------------
    # Item catalog
    # ------------------------------------------------------------------
    def add_item(
        self,
        word: str,
        level: str,
        translation: Optional[str] = None,
        forms: Optional[Sequence[str]] = None,
        is_custom: bool = False,
        added_at: Optional[datetime] = None,
    ) -> LearningItem:
        """Add a word to the learner's set, or return it if it is already there."""
        word = " ".join(word.split())
        if not word:
            raise ValueError("Word must not be empty")
        item_id = LearningItem.make_id(word, level)
        existing = self._items.get(item_id)
        if existing is not None:
            return existing

        item = LearningItem(
            item_id=item_id,
            word=word,
            level=level.strip().upper(),
            forms=list(forms) if forms else None,
            translation=translation,
            is_custom=is_custom,
            added_at=added_at or self.context.now(),
        )
        self._items[item_id] = item
        self._pending_items.add(item_id)
        self._pending_removals.discard(item_id)
        self.ensure(item_id)
        logger.info(f"Added item {item_id}")
        return item

    def get_item(self, item_id: str) -> Optional[LearningItem]:
        return self._items.get(item_id)

    def items(self) -> List[LearningItem]:
        return list(self._items.values())

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    @property
    def has_pending(self) -> bool:
        return bool(self._pending_items or self._pending_records or self._pending_removals)

    def flush(self) -> None:
        """Stage every pending change in the database session."""
        for item_id in self._pending_removals:
            self.db.query(WordStat).filter(WordStat.item_id == item_id).delete()
            self.db.query(LearningWord).filter(LearningWord.item_id == item_id).delete()

        for item_id in self._pending_items:
            item = self._items[item_id]
            row = self.db.query(LearningWord).filter(LearningWord.item_id == item_id).first()
            if row is None:
                row = LearningWord(item_id=item_id)
                self.db.add(row)
            row.word = item.word
            row.level = item.level
            row.translation = item.translation
            row.forms = item.forms
            row.is_custom = item.is_custom
            row.added_at = item.added_at
        self.db.flush()

        for item_id in self._pending_records:
            record = self._records[item_id]
            row = self.db.get(WordStat, item_id)
            if row is None:
                row = WordStat(item_id=item_id)
                self.db.add(row)
            row.schema_version = SCHEMA_VERSION
            row.phase = record.phase.value
            row.step_index = record.step_index
            row.interval_days = record.interval_days
            row.ease = round(record.ease, 4)
            row.due_at = record.due_at
            row.lapses = record.lapses
            row.correct = record.correct
            row.incorrect = record.incorrect
            row.total_answers = record.total_answers
            row.total_time_ms = record.total_time_ms
            row.acc_score = record.acc_score
            row.difficulty = record.difficulty
            row.first_seen_at = record.first_seen_at
            row.last_review_at = record.last_review_at
        self.db.flush()

    def mark_committed(self) -> None:
        """Forget pending changes after a successful commit."""
        self._pending_items.clear()
        self._pending_records.clear()
        self._pending_removals.clear()
