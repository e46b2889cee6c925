"""Import and export of learner state in the browser trainer's storage layout."""
import json
import logging
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from wordsrs.models.srs_models import (
    LearningItem,
    PracticeMode,
    ScheduleRecord,
    SessionQueue,
    format_datetime,
    parse_datetime,
)
from wordsrs.services.learning_service import LearningService

logger = logging.getLogger(__name__)


def load_dump(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a JSON dump of the browser storage keys."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def export_state(service: LearningService) -> Dict[str, Any]:
    """Dump the store in the same layout the importer reads, with current-schema stats."""
    counters = service.counter.current_counters()
    return {
        "learningWords": [
            {
                "word": item.word,
                "translation": item.translation,
                "level": item.level,
                "forms": item.forms,
                "isCustom": item.is_custom,
                "addedAt": format_datetime(item.added_at),
            }
            for item in service.list_items()
        ],
        "wordStats": {item_id: record.to_dict() for item_id, record in service.store.all()},
        "srsDay": {
            "date": counters.date.isoformat(),
            "new_introduced_count": counters.new_introduced_count,
            "review_answer_count": counters.review_answer_count,
            "extra_answer_count": counters.extra_answer_count,
        },
        "currentPractice": service.practice_mode.value,
        "weeklyProgress": [
            {"date": day.isoformat(), "count": count}
            for day, count in service.get_weekly_progress()
            if count
        ],
    }


def _decode(value: Any) -> Any:
    """Browser storage keeps every value as a JSON string."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


class ImportService:
    """Loads ``learningWords``, ``wordStats``, ``srsDayV1``, ``currentPractice``,
    ``currentSession`` and ``weeklyProgress`` into the store.

    Stats go through the schema migrator, keyed by word text in the dump and
    by item id in the store.
    """

    def __init__(self, learning_service: LearningService):
        self.service = learning_service

    def import_state(self, dump: Mapping[str, Any]) -> Dict[str, int]:
        """Import a dump and commit it. Returns counts of what was imported."""
        service = self.service
        now = service.context.now()
        words = _decode(dump.get("learningWords")) or []
        raw_stats = _decode(dump.get("wordStats")) or {}
        if not isinstance(words, list):
            raise ValueError("learningWords must be a list")
        if not isinstance(raw_stats, Mapping):
            raise ValueError("wordStats must be an object")

        key_map: Dict[str, List[str]] = defaultdict(list)
        added = 0
        for entry in words:
            if not isinstance(entry, Mapping) or not str(entry.get("word") or "").strip():
                logger.warning(f"Skipping unreadable learning word {entry!r}")
                continue
            level = str(entry.get("level") or "ADDED")
            item_id = LearningItem.make_id(str(entry["word"]), level)
            if item_id not in service.store:
                added += 1
            forms = entry.get("forms")
            service.store.add_item(
                str(entry["word"]),
                level,
                translation=entry.get("translation"),
                forms=forms if isinstance(forms, list) else None,
                is_custom=bool(entry.get("isCustom")),
                added_at=self._timestamp(entry.get("addedAt")),
            )
            key_map[str(entry["word"])].append(item_id)

        migrated = service.migrator.migrate(raw_stats, now, key_map=key_map)
        imported = 0
        for item_id, current in migrated.items():
            if item_id not in service.store:
                continue
            service.store.upsert(item_id, ScheduleRecord.from_dict(current))
            imported += 1

        raw_day = _decode(dump.get("srsDayV1", dump.get("srsDay")))
        if raw_day is not None:
            service.counter.restore(service.migrator.migrate_day(raw_day, service.context.today()))

        self._import_practice(dump, key_map)
        self._import_progress(_decode(dump.get("weeklyProgress")) or [])

        service.save()
        dropped = sum(
            1 for key in raw_stats
            if not any(item_id in migrated for item_id in key_map.get(key) or [key])
        )
        summary = {"words_added": added, "records_imported": imported, "records_dropped": dropped}
        logger.info(f"Imported legacy state: {summary}")
        return summary

    @staticmethod
    def _timestamp(value: Any) -> Union[datetime, None]:
        try:
            return parse_datetime(value)
        except ValueError:
            return None

    def _import_practice(self, dump: Mapping[str, Any], key_map: Mapping[str, List[str]]) -> None:
        session = self.service.session
        mode = _decode(dump.get("currentPractice"))
        if mode in (PracticeMode.SCHEDULED.value, PracticeMode.ENDLESS.value):
            session.switch_practice_mode(PracticeMode(mode))

        raw_session = _decode(dump.get("currentSession"))
        if session.mode is not PracticeMode.SCHEDULED or not isinstance(raw_session, Mapping):
            return
        try:
            session_date = self.service.migrator.parse_day(raw_session.get("date"))
        except ValueError:
            return
        if session_date != self.service.context.today():
            return
        item_ids = [key_map[word][0] for word in raw_session.get("shownWords") or [] if key_map.get(word)]
        if not item_ids:
            return
        session.restore(SessionQueue(
            mode=PracticeMode.SCHEDULED,
            item_ids=item_ids,
            current_review_index=min(int(raw_session.get("currentIndex") or 0), len(item_ids)),
            session_date=session_date,
            correct_streak=int(raw_session.get("correctStreak") or 0),
            total_correct=int(raw_session.get("totalCorrect") or 0),
        ))

    def _import_progress(self, entries: Any) -> None:
        if not isinstance(entries, list):
            return
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            try:
                day = self.service.migrator.parse_day(entry.get("date"))
                count = int(entry.get("count") or 0)
            except (TypeError, ValueError):
                logger.warning(f"Skipping unreadable progress entry {entry!r}")
                continue
            if count > 0:
                self.service.progress.record_answer(day=day, count=count)
