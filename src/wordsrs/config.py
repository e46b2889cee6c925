"""Configuration settings for the scheduler."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
EXPORTS_DIR = DATA_DIR / "exports"

# Scheduling settings
LEARNING_STEPS_MINUTES = [10, 60, 240]  # minutes between learning steps
GRADUATE_TO_DAYS = [1, 6]  # first two review intervals after graduation


def _int_list(name: str, default: list[int]) -> list[int]:
    """Read a comma separated list of integers from the environment."""
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [int(value) for value in raw.split(",") if value.strip()]


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        EXPORTS_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    exports_dir: Path = EXPORTS_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///wordsrs.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR") or None
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class SrsSettings:
    """Spaced repetition settings."""
    daily_new: int = int(os.getenv("SRS_DAILY_NEW", "30"))
    daily_review: int = int(os.getenv("SRS_DAILY_REVIEW", "150"))
    active_pool: int = int(os.getenv("SRS_ACTIVE_POOL", "200"))
    active_pool_horizon_days: int = int(os.getenv("SRS_ACTIVE_POOL_HORIZON_DAYS", "7"))
    learning_steps: list[int] = field(
        default_factory=lambda: _int_list("SRS_LEARNING_STEPS", LEARNING_STEPS_MINUTES)
    )
    graduate_to_days: list[int] = field(
        default_factory=lambda: _int_list("SRS_GRADUATE_TO_DAYS", GRADUATE_TO_DAYS)
    )
    min_ease: float = float(os.getenv("SRS_MIN_EASE", "1.3"))
    starting_ease: float = float(os.getenv("SRS_STARTING_EASE", "2.5"))
    max_ease: float = float(os.getenv("SRS_MAX_EASE", "3.0"))
    ease_bonus: float = float(os.getenv("SRS_EASE_BONUS", "0.05"))
    ease_penalty: float = float(os.getenv("SRS_EASE_PENALTY", "0.2"))
    max_interval_days: int = int(os.getenv("SRS_MAX_INTERVAL_DAYS", "3650"))
    day_start_hour: int = int(os.getenv("SRS_DAY_START_HOUR", "0"))
    endless_batch_size: int = int(os.getenv("SRS_ENDLESS_BATCH_SIZE", "20"))
    weekly_progress_days: int = 7


@dataclass
class MonitoringSettings:
    """Metrics exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_srs_settings() -> SrsSettings:
    """Get spaced repetition settings."""
    return SrsSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    srs: SrsSettings = field(default_factory=get_srs_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        srs = self.srs
        if srs.daily_new < 0 or srs.daily_review < 0:
            raise ValueError("SRS_DAILY_NEW and SRS_DAILY_REVIEW must not be negative")

        if srs.active_pool < 0:
            raise ValueError("SRS_ACTIVE_POOL must not be negative")

        if not srs.learning_steps or any(step <= 0 for step in srs.learning_steps):
            raise ValueError("SRS_LEARNING_STEPS must be a non-empty list of positive minutes")

        if len(srs.graduate_to_days) != 2 or any(days < 1 for days in srs.graduate_to_days):
            raise ValueError("SRS_GRADUATE_TO_DAYS must hold exactly two positive day counts")

        if srs.min_ease <= 1.0:
            raise ValueError("SRS_MIN_EASE must be greater than 1.0")

        if srs.max_ease < srs.min_ease:
            raise ValueError("SRS_MAX_EASE cannot be lower than SRS_MIN_EASE")

        if srs.ease_bonus < 0 or srs.ease_penalty < 0:
            raise ValueError("SRS_EASE_BONUS and SRS_EASE_PENALTY must not be negative")

        if srs.day_start_hour < 0 or srs.day_start_hour > 23:
            raise ValueError("SRS_DAY_START_HOUR must be between 0 and 23")


# Create global settings instance
settings = Settings()
settings.validate()
