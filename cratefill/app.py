import argparse
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from . import __version__
from .compiler import DEFAULT_CHUNK_SIZE
from .database import init_database
from .engine import BackfillEngine
from .env import DEFAULT_DB_PATH, DEFAULT_LOG_DIR, env_path, env_str, load_env
from .errors import CratefillError
from .inspector import ArtifactInspector
from .logger import StructuredLogger
from .tasks import TASKS, get_task


def parse_before(value: str) -> datetime:
    """ISO-8601 timestamp; aware values are converted to naive UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid timestamp: {value!r} (expected ISO-8601)")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"Must be at least 1: {value}")
    return number


def build_engine(args: argparse.Namespace, logger: StructuredLogger) -> BackfillEngine:
    task = get_task(args.task)
    return BackfillEngine(
        task,
        db_path=args.db,
        logger=logger,
        crates_path=getattr(args, "crates_path", None),
        journal_path=args.journal_path,
        sql_path=args.sql_path,
        chunk_size=args.chunk_size,
        before=getattr(args, "before", None),
        workers=getattr(args, "workers", None),
        inspector=ArtifactInspector(max_size=getattr(args, "max_size", None)),
        fsync=not getattr(args, "no_fsync", False),
        show_progress=not getattr(args, "no_progress", False),
    )


def cmd_run(args: argparse.Namespace, logger: StructuredLogger) -> None:
    if not args.crates_path.is_dir():
        raise SystemExit(f"Crates directory not found: {args.crates_path}")
    engine = build_engine(args, logger)
    result = engine.run(apply=args.apply)
    logger.log_metrics_summary()
    print(
        f"Done. candidates={result.candidates} already-processed={result.already_resolved} "
        f"skipped={len(result.skipped)} updates={result.updates} batches={len(result.batches)}"
    )
    if result.applied is not None:
        print(f"Applied: {result.applied} rows updated")


def cmd_compile(args: argparse.Namespace, logger: StructuredLogger) -> None:
    engine = build_engine(args, logger)
    batches = engine.compile()
    print(f"Wrote {engine.sql_path}: {len(batches)} statements")
    if args.apply:
        affected = engine.apply(batches)
        print(f"Applied: {affected} rows updated")


def cmd_tasks(args: argparse.Namespace, logger: StructuredLogger) -> None:
    for name in sorted(TASKS):
        task = TASKS[name]
        print(f"{name}")
        print(f"  {task.help}")
        print(f"  Columns: {', '.join(task.column_names)}")


def cmd_init_db(args: argparse.Namespace, logger: StructuredLogger) -> None:
    init_database(args.db)
    print(f"Initialized database at {args.db}")


def _add_task_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("task", choices=sorted(TASKS), help="Backfill task to run")
    parser.add_argument("--journal-path", type=Path, help="Journal CSV of processed versions (default: <task>.csv)")
    parser.add_argument("--sql-path", type=Path, help="SQL file to generate (default: <task>.sql)")
    parser.add_argument("--chunk-size", type=positive_int, default=DEFAULT_CHUNK_SIZE,
                        help=f"Number of records per update statement (default: {DEFAULT_CHUNK_SIZE})")
    parser.add_argument("--apply", action="store_true", help="Also apply the updates to the database")


def main(argv: Optional[List[str]] = None) -> None:
    load_env()
    parser = argparse.ArgumentParser(prog="cratefill", description="Resumable metadata backfills from .crate files")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", type=Path, default=env_path("CRATEFILL_DB", DEFAULT_DB_PATH),
                        help=f"Path to SQLite registry database (default: $CRATEFILL_DB or {DEFAULT_DB_PATH})")
    parser.add_argument("--log-level", default=env_str("CRATEFILL_LOG_LEVEL", "INFO"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Console log level (default: $CRATEFILL_LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Process unfinished versions, append to the journal and write SQL")
    _add_task_options(run)
    run.add_argument("crates_path", type=Path, help="Root directory of a full crate mirror")
    run.add_argument("--before", type=parse_before, help="Only consider versions created before this ISO-8601 timestamp")
    run.add_argument("--workers", type=positive_int, help="Number of worker threads (default: CPU count)")
    run.add_argument("--max-size", type=positive_int, help="Skip artifacts larger than this many bytes")
    run.add_argument("--no-fsync", action="store_true", help="Flush journal rows without fsync")
    run.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    run.set_defaults(func=cmd_run)

    comp = subparsers.add_parser("compile", help="Regenerate the SQL file from an existing journal")
    _add_task_options(comp)
    comp.set_defaults(func=cmd_compile)

    lst = subparsers.add_parser("tasks", help="List available backfill tasks")
    lst.set_defaults(func=cmd_tasks)

    init = subparsers.add_parser("init-db", help="Create the registry schema in an empty database")
    init.set_defaults(func=cmd_init_db)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        return

    logger = StructuredLogger(
        level=args.log_level,
        log_dir=env_path("CRATEFILL_LOG_DIR", DEFAULT_LOG_DIR),
    )
    try:
        args.func(args, logger)
    except CratefillError as e:
        logger.critical(f"Backfill aborted: {e}", error=type(e).__name__)
        raise SystemExit(1)
    finally:
        logger.close()


if __name__ == "__main__":
    main()
