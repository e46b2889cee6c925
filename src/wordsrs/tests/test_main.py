"""Tests for the command line entry point."""
import json
from unittest.mock import patch

import pytest

from wordsrs.__main__ import build_parser, main, run
from wordsrs.services.learning_service import LearningService


def run_command(service: LearningService, *argv: str) -> int:
    return run(build_parser().parse_args(list(argv)), service)


def test_add_answer_and_stats(learning_service: LearningService, capsys) -> None:
    """Test the add, due, answer and stats commands."""
    assert run_command(learning_service, "add", "Give up", "--level", "b2", "--forms", "give up, gave up") == 0
    assert capsys.readouterr().out.strip() == "B2:give up"
    assert learning_service.get_item("B2:give up").forms == ["give up", "gave up"]

    assert run_command(learning_service, "due") == 0
    assert capsys.readouterr().out.splitlines() == ["B2:give up"]

    assert run_command(learning_service, "answer", "B2:give up", "correct", "--time-ms", "900") == 0
    assert capsys.readouterr().out.startswith("B2:give up: learning, due ")

    assert run_command(learning_service, "stats", "B2:give up") == 0
    out = capsys.readouterr().out
    assert "phase: learning" in out
    assert "total_time_ms: 900" in out


def test_stats_for_unknown_item(learning_service: LearningService, capsys) -> None:
    assert run_command(learning_service, "stats", "A1:missing") == 1
    assert "Unknown item" in capsys.readouterr().err


def test_mode_and_summary(learning_service: LearningService, capsys) -> None:
    assert run_command(learning_service, "mode", "endless") == 0
    assert run_command(learning_service, "stats") == 0
    assert "practice_mode: endless" in capsys.readouterr().out


def test_export(learning_service: LearningService, tmp_path, capsys) -> None:
    learning_service.add_word("cat", "A1")
    path = tmp_path / "export.json"

    assert run_command(learning_service, "export", str(path)) == 0
    data = json.loads(path.read_text(encoding="utf-8"))
    assert [entry["word"] for entry in data["learningWords"]] == ["cat"]
    assert "A1:cat" in data["wordStats"]


@patch("wordsrs.__main__.setup_logging")
def test_main_reports_errors(mock_setup_logging, db, capsys) -> None:
    """Test exit codes for scheduler errors and bad input."""
    assert main(["answer", "A1:missing", "correct"]) == 1
    assert "Unknown item" in capsys.readouterr().err

    assert main(["import", "does-not-exist.json"]) == 2
    mock_setup_logging.assert_called()


def test_parser_rejects_unknown_grade() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["answer", "A1:cat", "maybe"])


if __name__ == "__main__":
    pytest.main([__file__])
