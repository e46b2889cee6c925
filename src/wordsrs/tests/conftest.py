"""Test configuration."""
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Load test environment variables
test_env_path = Path(__file__).parents[3] / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import Session

from wordsrs.config import SrsSettings, ensure_directories
from wordsrs.models.base import SessionLocal, drop_db, init_db
from wordsrs.models.srs_models import SchedulerContext
from wordsrs.services.learning_service import LearningService


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    ensure_directories()
    yield


@pytest.fixture
def clock() -> FakeClock:
    # Midday UTC keeps the local calendar day stable across test machine time zones
    return FakeClock(datetime(2026, 3, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def srs() -> SrsSettings:
    """Scheduling settings with the stock values, independent of the environment."""
    return SrsSettings(
        daily_new=30,
        daily_review=150,
        active_pool=200,
        active_pool_horizon_days=7,
        learning_steps=[10, 60, 240],
        graduate_to_days=[1, 6],
        min_ease=1.3,
        starting_ease=2.5,
        max_ease=3.0,
        ease_bonus=0.05,
        ease_penalty=0.2,
        max_interval_days=3650,
        day_start_hour=0,
        endless_batch_size=20,
    )


@pytest.fixture
def context(srs: SrsSettings, clock: FakeClock) -> SchedulerContext:
    return SchedulerContext(srs=srs, clock=clock)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_db()


@pytest.fixture
def learning_service(db: Session, context: SchedulerContext) -> LearningService:
    """Create a learning service instance."""
    return LearningService(db, context=context)
