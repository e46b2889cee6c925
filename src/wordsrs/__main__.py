"""Command line entry point for the scheduler."""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from wordsrs.config import ensure_directories, settings
from wordsrs.errors import SrsError
from wordsrs.logging_config import setup_logging
from wordsrs.models.base import SessionLocal, init_db
from wordsrs.models.srs_models import PracticeMode
from wordsrs.monitoring import start_monitoring
from wordsrs.services.import_service import ImportService, export_state, load_dump
from wordsrs.services.learning_service import LearningService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wordsrs", description="Spaced repetition scheduler for vocabulary")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="add a word to the learning set")
    add.add_argument("word")
    add.add_argument("--level", default="ADDED")
    add.add_argument("--translation")
    add.add_argument("--forms", help="comma separated surface forms, e.g. go,went,gone")

    remove = sub.add_parser("remove", help="remove an item")
    remove.add_argument("item_id")

    due = sub.add_parser("due", help="print the due queue")
    due.add_argument("--mode", choices=[m.value for m in PracticeMode], default=PracticeMode.SCHEDULED.value)

    answer = sub.add_parser("answer", help="apply an answer")
    answer.add_argument("item_id")
    answer.add_argument("grade", choices=["correct", "incorrect"])
    answer.add_argument("--time-ms", type=int, default=None)

    stats = sub.add_parser("stats", help="print item or day statistics")
    stats.add_argument("item_id", nargs="?")

    mode = sub.add_parser("mode", help="switch the practice mode")
    mode.add_argument("mode", choices=[m.value for m in PracticeMode])

    imp = sub.add_parser("import", help="import a JSON dump of the browser trainer")
    imp.add_argument("path")

    exp = sub.add_parser("export", help="write the current state as a JSON dump")
    exp.add_argument("path", nargs="?")
    return parser


def run(args: argparse.Namespace, service: LearningService) -> int:
    if args.command == "add":
        forms = [f.strip() for f in args.forms.split(",") if f.strip()] if args.forms else None
        item = service.add_word(args.word, args.level, translation=args.translation, forms=forms, is_custom=True)
        print(item.item_id)
    elif args.command == "remove":
        service.remove_word(args.item_id)
    elif args.command == "due":
        for item_id in service.get_due_queue(PracticeMode(args.mode)):
            print(item_id)
    elif args.command == "answer":
        record = service.apply_answer(args.item_id, args.grade, response_time_ms=args.time_ms)
        print(f"{args.item_id}: {record.phase.value}, due {record.due_at.isoformat()}")
    elif args.command == "stats":
        if args.item_id:
            record = service.get_stats(args.item_id)
            if record is None:
                print(f"Unknown item {args.item_id}", file=sys.stderr)
                return 1
            for key, value in record.to_dict().items():
                print(f"{key}: {value}")
        else:
            for key, value in service.get_summary().items():
                print(f"{key}: {value}")
            for day, count in service.get_weekly_progress():
                print(f"{day.isoformat()}: {count}")
    elif args.command == "mode":
        service.switch_practice_mode(PracticeMode(args.mode))
    elif args.command == "import":
        summary = ImportService(service).import_state(load_dump(args.path))
        for key, value in summary.items():
            print(f"{key}: {value}")
    elif args.command == "export":
        path = Path(args.path) if args.path else (
            settings.paths.exports_dir / f"wordsrs-{service.get_day_stats().date.isoformat()}.json"
        )
        with open(path, "w", encoding="utf-8") as f:
            json.dump(export_state(service), f, ensure_ascii=False, indent=2)
        print(path)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run one command against the configured database."""
    args = build_parser().parse_args(argv)

    ensure_directories()
    setup_logging()
    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)

    init_db()
    db = SessionLocal()
    try:
        service = LearningService(db)
        return run(args, service)
    except SrsError as e:
        logger.error(f"{e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Command {args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
