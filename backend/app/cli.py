"""Modality Ingest CLI - Command Line Interface for administrative tasks.

Usage:
    python -m app.cli <command> [options]

Commands:
    init-db         Create database tables
    check-db        Check database connectivity
    ingest          Replay a stored notification payload through the pipeline
    stats           Show ingestion totals
    version         Show version information

Examples:
    python -m app.cli init-db
    python -m app.cli ingest payload.json --repeat 2
    python -m app.cli stats

"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import NoReturn

import aiofiles

from app.core.config import settings
from app.core.logging import audit_logger, setup_logging


def print_banner() -> None:
    """Print Modality Ingest CLI banner."""
    print("\n" + "=" * 50)
    print(" Modality Ingest CLI")
    print(" Imaging Acquisition Notification Reconciliation")
    print("=" * 50 + "\n")


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"ERROR: {message}", file=sys.stderr)


def print_success(message: str) -> None:
    """Print success message."""
    print(f"SUCCESS: {message}")


def print_info(message: str) -> None:
    """Print info message."""
    print(f"INFO: {message}")


async def check_database() -> bool:
    """Check database connectivity."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from app.models.base import async_session_maker

    try:
        print_info("Checking database connectivity...")
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            print_success("Database connection successful")
            return True
    except (SQLAlchemyError, OSError) as e:
        print_error(f"Database connection failed: {e}")
        return False


async def init_database() -> bool:
    """Create all tables that do not exist yet."""
    from sqlalchemy.exc import SQLAlchemyError

    from app.models import Base, engine

    if not await check_database():
        return False

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        print_error(f"Failed to initialize database: {e}")
        return False

    print_success("Database tables created")
    return True


async def replay_payload(path: Path, repeat: int, notify: bool) -> bool:
    """Submit a stored payload to the pipeline ``repeat`` times."""
    from app.models.base import async_session_maker
    from app.services.ingest import IngestionPipeline, emit_diagnostics
    from app.services.ingest.notifier import LoggingStudyNotifier, RecordingStudyNotifier

    try:
        async with aiofiles.open(path, "rb") as f:
            body = await f.read()
    except OSError as e:
        print_error(f"Cannot read payload file {path}: {e}")
        return False

    recorder = RecordingStudyNotifier()
    pipeline = IngestionPipeline.from_session_maker(
        async_session_maker,
        notifier=LoggingStudyNotifier() if notify else recorder,
    )

    audit_logger.log_replay(path=str(path), repeat=repeat)
    all_succeeded = True
    for attempt in range(1, repeat + 1):
        outcome = await pipeline.ingest(body)
        emit_diagnostics(outcome, source="cli", attempt=attempt)
        audit_logger.log_ingestion(
            source="cli",
            identifiers=outcome.identifiers,
            created=outcome.created_entities(),
            success=outcome.success,
            error_kind=outcome.error_kind,
        )

        summary = json.dumps(
            {
                "attempt": attempt,
                "success": outcome.success,
                "created": outcome.created_entities(),
                "image_count": outcome.image_count,
                "error": outcome.error.to_dict() if outcome.error else None,
            },
            default=str,
        )
        if outcome.success:
            print_success(summary)
        else:
            print_error(summary)
            all_succeeded = False

    for study_id, is_new_study in recorder.events:
        print_info(f"Would notify: study {study_id} content added (new study: {is_new_study})")
    return all_succeeded


async def show_stats() -> bool:
    """Print ingestion totals."""
    from sqlalchemy.exc import SQLAlchemyError

    from app.api.v1.endpoints.webhooks import collect_stats
    from app.models.base import async_session_maker

    try:
        async with async_session_maker() as session:
            stats = await collect_stats(session)
    except SQLAlchemyError as e:
        print_error(f"Failed to collect stats: {e}")
        return False

    for name, value in stats.model_dump().items():
        print(f"{name:<16} {value}")
    return True


def cmd_version(_args: argparse.Namespace) -> int:
    """Show version information."""
    print_banner()
    print(f"Version:     {settings.app_version}")
    print(f"Environment: {settings.environment}")
    print(f"Debug:       {settings.debug}")
    print(f"Python:      {sys.version.split()[0]}")
    return 0


def cmd_check_db(_args: argparse.Namespace) -> int:
    """Check database connectivity command."""
    print_banner()
    result = asyncio.run(check_database())
    return 0 if result else 1


def cmd_init_db(_args: argparse.Namespace) -> int:
    """Initialize database command."""
    print_banner()
    result = asyncio.run(init_database())
    return 0 if result else 1


def cmd_ingest(args: argparse.Namespace) -> int:
    """Replay payload command."""
    if args.repeat < 1:
        print_error("--repeat must be at least 1")
        return 1
    setup_logging(log_level="DEBUG" if args.verbose else "WARNING")
    result = asyncio.run(replay_payload(Path(args.file), args.repeat, args.notify))
    return 0 if result else 1


def cmd_stats(_args: argparse.Namespace) -> int:
    """Show ingestion totals command."""
    result = asyncio.run(show_stats())
    return 0 if result else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="modality-ingest",
        description="Modality Ingest CLI - Administrative command line interface",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"Modality Ingest {settings.app_version}",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    # version command
    version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
    )
    version_parser.set_defaults(func=cmd_version)

    # check-db command
    check_db_parser = subparsers.add_parser(
        "check-db",
        help="Check database connectivity",
    )
    check_db_parser.set_defaults(func=cmd_check_db)

    # init-db command
    init_db_parser = subparsers.add_parser(
        "init-db",
        help="Create database tables",
    )
    init_db_parser.set_defaults(func=cmd_init_db)

    # ingest command
    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Replay a stored notification payload",
    )
    ingest_parser.add_argument("file", help="JSON file holding the notification body")
    ingest_parser.add_argument(
        "--repeat",
        "-r",
        type=int,
        default=1,
        help="Submit the payload this many times (checks idempotence)",
    )
    ingest_parser.add_argument(
        "--notify",
        action="store_true",
        help="Deliver study-content events instead of only listing them",
    )
    ingest_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show diagnostic events",
    )
    ingest_parser.set_defaults(func=cmd_ingest)

    # stats command
    stats_parser = subparsers.add_parser(
        "stats",
        help="Show ingestion totals",
    )
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    # Execute command
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
