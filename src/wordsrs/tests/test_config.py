"""Tests for configuration settings."""
from dataclasses import replace

import pytest

from wordsrs.config import Settings, SrsSettings


def test_base_directories_exist():
    """Test that all required directories exist."""
    from wordsrs.config import BASE_DIR, DATA_DIR, EXPORTS_DIR

    assert BASE_DIR.exists()
    assert DATA_DIR.exists()
    assert EXPORTS_DIR.exists()


def test_settings_defaults():
    """Test default scheduling values."""
    srs = SrsSettings()
    assert srs.daily_new == 30
    assert srs.daily_review == 150
    assert srs.active_pool == 200
    assert srs.learning_steps == [10, 60, 240]
    assert srs.graduate_to_days == [1, 6]
    assert srs.min_ease == 1.3
    assert srs.starting_ease == 2.5
    assert srs.max_interval_days == 3650


def test_settings_from_env(monkeypatch):
    """Test that list settings can be overridden by environment variables."""
    monkeypatch.setenv("SRS_LEARNING_STEPS", "1, 10,30")
    monkeypatch.setenv("SRS_GRADUATE_TO_DAYS", "2,4")

    srs = SrsSettings()
    assert srs.learning_steps == [1, 10, 30]
    assert srs.graduate_to_days == [2, 4]


@pytest.mark.parametrize(
    "changes",
    [
        {"daily_new": -1},
        {"learning_steps": []},
        {"learning_steps": [10, 0]},
        {"graduate_to_days": [1]},
        {"min_ease": 1.0},
        {"max_ease": 1.2},
        {"day_start_hour": 24},
    ],
)
def test_invalid_settings(changes):
    """Test that validation rejects unusable scheduling settings."""
    invalid = Settings(srs=replace(SrsSettings(), **changes))
    with pytest.raises(ValueError):
        invalid.validate()


if __name__ == "__main__":
    pytest.main([__file__])
