"""Tests for the learning service."""
from dataclasses import replace
from datetime import timedelta

import pytest
from faker import Faker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordsrs.errors import DailyLimitReached, InvalidGrade, PersistenceFailure, SrsError, UnknownItem
from wordsrs.models.models import LearningWord, WordStat
from wordsrs.models.srs_models import (
    DayCounters,
    Grade,
    Phase,
    PracticeMode,
    SchedulerContext,
)
from wordsrs.services.learning_service import LearningService

fake = Faker()


def test_add_word(learning_service: LearningService, context: SchedulerContext) -> None:
    """Test adding a word to the learning set."""
    item = learning_service.add_word("  Look   after ", "b1", translation="доглядати", forms=["look", "looked"])

    assert item.item_id == "B1:look after"
    assert item.word == "Look after"
    assert item.level == "B1"
    assert item.added_at == context.now()
    assert learning_service.list_items() == [item]

    record = learning_service.get_stats(item.item_id)
    assert record.phase is Phase.NEW
    assert record.due_at == context.now()


def test_add_word_twice_returns_existing_item(learning_service: LearningService) -> None:
    first = learning_service.add_word("cat", "A1")
    second = learning_service.add_word("Cat", "a1", translation="кіт")
    assert second is first
    assert len(learning_service.list_items()) == 1


def test_add_empty_word(learning_service: LearningService) -> None:
    with pytest.raises(ValueError):
        learning_service.add_word("   ", "A1")


def test_answers_drive_item_to_review(learning_service: LearningService, clock) -> None:
    """Test the whole path from new item to review."""
    item_id = learning_service.add_word(fake.word(), "A2").item_id

    record = learning_service.apply_answer(item_id, "correct", response_time_ms=1500)
    assert (record.phase, record.step_index) == (Phase.LEARNING, 1)
    clock.advance(hours=1)
    record = learning_service.apply_answer(item_id, True)
    assert (record.phase, record.step_index) == (Phase.LEARNING, 2)
    clock.advance(hours=4)
    record = learning_service.apply_answer(item_id, Grade.CORRECT)
    assert record.phase is Phase.REVIEW
    assert record.interval_days == 1
    assert record.due_at == clock() + timedelta(days=1)

    assert learning_service.get_stats(item_id) == record
    counters = learning_service.get_day_stats()
    assert counters.new_introduced_count == 1
    assert counters.review_answer_count == 3


def test_lapse_through_service(learning_service: LearningService, clock) -> None:
    item_id = learning_service.add_word(fake.word(), "A2").item_id
    for minutes in (0, 60, 240):
        clock.advance(minutes=minutes)
        learning_service.apply_answer(item_id, Grade.CORRECT)
    clock.advance(days=1)

    record = learning_service.apply_answer(item_id, Grade.INCORRECT)
    assert record.phase is Phase.LEARNING
    assert record.step_index == 0
    assert record.lapses == 1
    assert record.ease == pytest.approx(2.3)


def test_unknown_item(learning_service: LearningService) -> None:
    """Test that answers for unknown ids are rejected without side effects."""
    with pytest.raises(UnknownItem) as exc_info:
        learning_service.apply_answer("A1:missing", Grade.CORRECT)
    assert isinstance(exc_info.value, KeyError)
    assert exc_info.value.item_id == "A1:missing"
    assert learning_service.get_day_stats().review_answer_count == 0
    assert learning_service.get_stats("A1:missing") is None

    with pytest.raises(UnknownItem):
        learning_service.remove_word("A1:missing")


def test_unknown_grade(learning_service: LearningService) -> None:
    item_id = learning_service.add_word(fake.word(), "A1").item_id
    with pytest.raises(InvalidGrade) as exc_info:
        learning_service.apply_answer(item_id, "almost")
    assert isinstance(exc_info.value, SrsError)
    assert exc_info.value.value == "almost"
    assert learning_service.get_stats(item_id).total_answers == 0


def test_daily_new_cap(learning_service: LearningService, context: SchedulerContext, clock) -> None:
    """Test that no more than daily_new items are introduced per day."""
    daily_new = context.srs.daily_new
    ids = [learning_service.add_word(fake.unique.word(), "A1").item_id for _ in range(daily_new + 5)]

    queue = learning_service.get_due_queue()
    assert queue == ids[:daily_new]
    for item_id in queue:
        learning_service.apply_answer(item_id, Grade.CORRECT)
    assert learning_service.get_day_stats().new_introduced_count == daily_new

    blocked = ids[daily_new]
    with pytest.raises(DailyLimitReached) as exc_info:
        learning_service.apply_answer(blocked, Grade.CORRECT)
    assert exc_info.value.limit == "daily new"
    assert learning_service.get_stats(blocked).phase is Phase.NEW
    assert learning_service.get_day_stats().review_answer_count == daily_new

    # The budget is back the next day
    clock.advance(days=1)
    assert learning_service.apply_answer(blocked, Grade.CORRECT).phase is Phase.LEARNING
    assert learning_service.get_day_stats().new_introduced_count == 1


def test_active_pool_cap(db: Session, srs, clock) -> None:
    """Test that a full active pool blocks new items."""
    context = SchedulerContext(srs=replace(srs, active_pool=2), clock=clock)
    service = LearningService(db, context=context)
    ids = [service.add_word(word, "A1").item_id for word in ("one", "two", "three")]

    assert service.get_due_queue() == ids[:2]
    service.apply_answer(ids[0], Grade.CORRECT)
    service.apply_answer(ids[1], Grade.INCORRECT)
    with pytest.raises(DailyLimitReached) as exc_info:
        service.apply_answer(ids[2], Grade.CORRECT)
    assert exc_info.value.limit == "active pool"


def test_review_cap_counts_extra_answers(learning_service: LearningService, context: SchedulerContext) -> None:
    """Test that answers past the review cap are counted separately."""
    item_id = learning_service.add_word(fake.word(), "A1").item_id
    learning_service.counter.restore(
        DayCounters(date=context.today(), review_answer_count=context.srs.daily_review)
    )

    learning_service.apply_answer(item_id, Grade.CORRECT)
    counters = learning_service.get_day_stats()
    assert counters.review_answer_count == context.srs.daily_review
    assert counters.extra_answer_count == 1
    assert counters.new_introduced_count == 1


def test_persistence_failure_keeps_state(
    db: Session, context: SchedulerContext, learning_service: LearningService, monkeypatch, caplog
) -> None:
    """Test that a failed write reports the result and is retried later."""
    item_id = learning_service.add_word(fake.word(), "B2").item_id

    def failing_commit() -> None:
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(db, "commit", failing_commit)
    with pytest.raises(PersistenceFailure) as exc_info:
        learning_service.apply_answer(item_id, Grade.CORRECT)
    assert exc_info.value.result.phase is Phase.LEARNING
    assert "Failed to persist scheduler state: disk I/O error" in caplog.text
    assert learning_service.get_stats(item_id).phase is Phase.LEARNING
    assert learning_service.store.has_pending
    assert learning_service.progress.has_pending
    assert learning_service.get_weekly_progress()[-1] == (context.today(), 1)

    monkeypatch.undo()
    learning_service.save()
    assert not learning_service.store.has_pending
    assert not learning_service.progress.has_pending
    assert learning_service.get_weekly_progress()[-1] == (context.today(), 1)

    reloaded = LearningService(db, context=context)
    assert reloaded.get_stats(item_id) == learning_service.get_stats(item_id)
    assert reloaded.get_day_stats().review_answer_count == 1
    assert reloaded.get_weekly_progress()[-1] == (context.today(), 1)


def test_state_survives_restart(db: Session, context: SchedulerContext, learning_service: LearningService) -> None:
    """Test reloading records, counters and mode from the database."""
    ids = [learning_service.add_word(fake.unique.word(), "A1").item_id for _ in range(3)]
    learning_service.apply_answer(ids[0], Grade.CORRECT)
    learning_service.apply_answer(ids[1], Grade.INCORRECT, response_time_ms=2500)
    learning_service.switch_practice_mode(PracticeMode.ENDLESS)

    reloaded = LearningService(db, context=context)
    assert [item.item_id for item in reloaded.list_items()] == ids
    for item_id in ids:
        assert reloaded.get_stats(item_id) == learning_service.get_stats(item_id)
    assert reloaded.get_day_stats() == learning_service.get_day_stats()
    assert reloaded.practice_mode is PracticeMode.ENDLESS
    assert not reloaded.store.has_pending


def test_stored_record_is_normalised_on_load(db: Session, context: SchedulerContext) -> None:
    """Test that out-of-range stored values are repaired when read."""
    db.add(LearningWord(item_id="A1:cat", word="cat", level="A1"))
    db.flush()
    db.add(WordStat(item_id="A1:cat", phase="learning", step_index=9, interval_days=0, ease=0.9,
                    due_at=context.now() - timedelta(hours=1)))
    db.commit()

    service = LearningService(db, context=context)
    record = service.get_stats("A1:cat")
    assert record.ease == context.srs.min_ease
    assert record.step_index == len(context.srs.learning_steps) - 1
    assert service.store.has_pending

    service.save()
    row = db.get(WordStat, "A1:cat")
    assert row.ease == context.srs.min_ease
    assert row.step_index == len(context.srs.learning_steps) - 1


def test_unreadable_stored_record_starts_over(db: Session, context: SchedulerContext) -> None:
    db.add(LearningWord(item_id="A1:dog", word="dog", level="A1"))
    db.flush()
    db.add(WordStat(item_id="A1:dog", phase="mastered", ease=2.5))
    db.commit()

    record = LearningService(db, context=context).get_stats("A1:dog")
    assert record.phase is Phase.NEW
    assert record.due_at == context.now()


def test_remove_word(db: Session, learning_service: LearningService) -> None:
    """Test that removal deletes the item and its record."""
    item_id = learning_service.add_word(fake.word(), "C1").item_id
    learning_service.apply_answer(item_id, Grade.CORRECT)

    learning_service.remove_word(item_id)
    assert learning_service.get_item(item_id) is None
    assert learning_service.get_stats(item_id) is None
    assert db.query(LearningWord).count() == 0
    assert db.query(WordStat).count() == 0


def test_word_accuracy(learning_service: LearningService) -> None:
    item_id = learning_service.add_word(fake.word(), "A1").item_id
    assert learning_service.get_word_accuracy(item_id) is None

    learning_service.apply_answer(item_id, Grade.CORRECT)
    learning_service.apply_answer(item_id, Grade.CORRECT)
    learning_service.apply_answer(item_id, Grade.INCORRECT)
    assert learning_service.get_word_accuracy(item_id) == {"pct": 10, "total": 3, "correct": 2, "incorrect": 1}
    assert learning_service.get_word_accuracy("A1:missing") is None


def test_weekly_progress_counts_answers(learning_service: LearningService, context: SchedulerContext) -> None:
    item_id = learning_service.add_word(fake.word(), "A1").item_id
    learning_service.apply_answer(item_id, Grade.CORRECT)
    learning_service.apply_answer(item_id, Grade.INCORRECT)

    progress = learning_service.get_weekly_progress()
    assert progress[-1] == (context.today(), 2)


def test_summary(learning_service: LearningService, context: SchedulerContext) -> None:
    ids = [learning_service.add_word(fake.unique.word(), "A1").item_id for _ in range(2)]
    learning_service.apply_answer(ids[0], Grade.CORRECT)

    summary = learning_service.get_summary()
    assert summary["items"] == 2
    assert summary["phases"] == {"new": 1, "learning": 1, "review": 0}
    assert summary["new_introduced"] == f"1/{context.srs.daily_new}"
    assert summary["in_flight"] == f"1/{context.srs.active_pool}"
    assert summary["practice_mode"] == "scheduled"


if __name__ == "__main__":
    pytest.main([__file__])
