"""Command line entry point: ``repjan [tui|sync|db|history|version]``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from repjan import __version__
from repjan.config import Settings, parse_duration
from repjan.database import create_engine, drop_tables, ensure_tables
from repjan.exceptions import RemoteError, StoreError
from repjan.github.client import GitHubClient
from repjan.services.refresh_service import RefreshWorker
from repjan.services.store_service import CacheStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(settings: Settings, *, to_file: bool = False) -> logging.Handler:
    """Configure application logging.

    The terminal UI owns the screen, so it logs to ``settings.resolved_log_file``;
    the plain commands log to stderr.
    """
    handler: logging.Handler
    if to_file:
        path = settings.resolved_log_file
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper())
    logging.basicConfig(level=level, handlers=[handler], force=True)
    # Quiet noisy libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if settings.debug else logging.WARNING)
    return handler


def _duration(value: str) -> int:
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repjan",
        description="Audit GitHub repositories and archive the ones nobody maintains",
    )
    parser.add_argument(
        "--owner", "-o", help="User or organization to audit (default: authenticated user)"
    )
    parser.add_argument(
        "--sync-interval",
        type=_duration,
        help="Background refresh interval, e.g. 300, 30s, 5m or 1h (default: 5m)",
    )
    parser.add_argument(
        "--log-level", choices=["debug", "info", "warn", "warning", "error"], help="Log level"
    )
    parser.add_argument("--log-format", choices=["text", "json"], help="Log output format")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("tui", help="Start the interactive terminal UI (default)")
    subparsers.add_parser("sync", help="Fetch repositories once and update the cache")

    db_parser = subparsers.add_parser("db", help="Inspect or reset the local cache")
    db_commands = db_parser.add_subparsers(dest="db_command", required=True)
    db_commands.add_parser("path", help="Print the database location")
    db_commands.add_parser("status", help="Show repository count and last sync")
    reset_parser = db_commands.add_parser("reset", help="Delete all cached data")
    reset_parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation")

    history_parser = subparsers.add_parser("history", help="Show sync history or audited changes")
    history_parser.add_argument("--limit", "-n", type=int, default=20, help="Entries to show")
    history_parser.add_argument(
        "--changes", action="store_true", help="Show the change log instead of sync runs"
    )

    subparsers.add_parser("version", help="Print the version")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command line overrides applied."""
    overrides: dict[str, Any] = {}
    if args.sync_interval is not None:
        overrides["sync_interval_seconds"] = args.sync_interval
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.log_format is not None:
        overrides["log_format"] = args.log_format
    settings = Settings()
    if not overrides:
        return settings
    # flags win over environment aliases
    return Settings.model_validate({**settings.model_dump(), **overrides})


@asynccontextmanager
async def open_store(settings: Settings) -> AsyncIterator[CacheStore]:
    """Open the cache database, creating its tables on first use."""
    engine, session_factory = create_engine(settings)
    try:
        await ensure_tables(engine)
        yield CacheStore(session_factory)
    finally:
        await engine.dispose()


async def resolve_owner(owner: str | None, client: GitHubClient) -> str:
    if owner:
        return owner
    return await client.get_authenticated_user()


async def run_tui(settings: Settings, owner_arg: str | None) -> int:
    # Textual is only needed by the interactive command
    from repjan.tui.app import RepjanApp
    from repjan.tui.model import Model
    from repjan.tui.runner import CommandRunner

    settings.validate_runtime()
    async with GitHubClient.from_settings(settings) as client, open_store(settings) as store:
        owner = await resolve_owner(owner_arg, client)
        repos = await store.get_all(owner)
        marks = await store.get_marks(owner)
        last_sync = await store.get_last_sync_time(owner)
        logger.info("Starting UI for %s with %d cached repos", owner, len(repos))

        worker = RefreshWorker(
            store,
            client.fetch_repositories,
            owner,
            settings.sync_interval_seconds,
            request_timeout=settings.request_timeout_seconds,
        )
        model = Model(owner, repos, marks=marks, last_sync=last_sync, using_cache=bool(repos))
        runner = CommandRunner(
            owner,
            store,
            client,
            worker=worker,
            export_dir=settings.export_dir.expanduser(),
            request_timeout=settings.request_timeout_seconds,
        )
        app = RepjanApp(model, runner, worker)
        worker.start()
        try:
            await app.run_async()
        finally:
            await worker.stop()
    return 0


async def run_sync(settings: Settings, owner_arg: str | None) -> int:
    settings.validate_runtime()
    async with GitHubClient.from_settings(settings) as client, open_store(settings) as store:
        owner = await resolve_owner(owner_arg, client)
        print(f"Fetching repositories for {owner}...")
        worker = RefreshWorker(
            store,
            client.fetch_repositories,
            owner,
            settings.sync_interval_seconds,
            request_timeout=settings.request_timeout_seconds,
        )
        result = await worker.refresh_once()
    print(f"Found {result.fetched} repositories")
    print(
        f"Sync complete: {result.inserted} inserted, {result.updated} updated, "
        f"{result.evicted} removed"
    )
    if result.status != "success":
        print(f"Warning: sync finished with status {result.status}")
    return 0


def db_path(settings: Settings) -> int:
    print(settings.database_path or settings.resolved_database_url)
    return 0


async def db_status(settings: Settings, owner: str | None) -> int:
    path = settings.database_path
    print(f"Database path: {path or settings.resolved_database_url}")
    if path is not None and not path.exists():
        print("Status: Database does not exist (run 'repjan sync' to create)")
        return 0
    async with open_store(settings) as store:
        print(f"Repository count: {await store.repository_count(owner)}")
        if owner is None:
            return 0
        last_sync = await store.get_last_sync_time(owner)
        if last_sync is None:
            print("Last sync: never")
        else:
            print(f"Last sync: {last_sync.strftime('%Y-%m-%d %H:%M:%S %Z')}")
        last_success = await store.get_last_successful_sync(owner)
        if last_success is not None and last_success.duration_ms is not None:
            print(f"Last successful sync took {last_success.duration_ms} ms")
    return 0


async def db_reset(settings: Settings, *, force: bool) -> int:
    path = settings.database_path
    target = path or settings.resolved_database_url
    if path is not None and not path.exists():
        print(f"Database does not exist: {path}")
        return 0
    if not force:
        print(f"WARNING: This will delete all data in {target}")
        answer = input("Type 'yes' to confirm: ")
        if answer.strip().lower() != "yes":
            print("Aborted.")
            return 1
    if path is not None:
        path.unlink()
        print(f"Deleted: {path}")
        return 0
    engine, _ = create_engine(settings)
    try:
        await drop_tables(engine)
        await ensure_tables(engine)
    finally:
        await engine.dispose()
    print(f"Reset: {target}")
    return 0


async def show_history(
    settings: Settings, owner_arg: str | None, *, limit: int, changes: bool
) -> int:
    owner = owner_arg
    if not owner:
        settings.validate_runtime()
        async with GitHubClient.from_settings(settings) as client:
            owner = await client.get_authenticated_user()
    async with open_store(settings) as store:
        if changes:
            entries = await store.get_recent_changes(owner, limit=limit)
            if not entries:
                print(f"No changes recorded for {owner}")
            for change in entries:
                line = (
                    f"{change.performed_at:%Y-%m-%d %H:%M:%S}  {change.action:<10} "
                    f"{change.repo_name}  by {change.performed_by}"
                )
                if change.notes:
                    line += f"  ({change.notes})"
                print(line)
            return 0

        records = await store.get_sync_history(owner, limit=limit)
        if not records:
            print(f"No syncs recorded for {owner}")
        for record in records:
            line = (
                f"{record.started_at:%Y-%m-%d %H:%M:%S}  {record.status:<8} "
                f"fetched={record.repos_fetched} inserted={record.repos_inserted} "
                f"updated={record.repos_updated}"
            )
            if record.duration_ms is not None:
                line += f" ({record.duration_ms} ms)"
            if record.error_message:
                line += f"  error: {record.error_message}"
            print(line)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "tui"

    if command == "version":
        print(f"repjan version {__version__}")
        return 0

    try:
        settings = load_settings(args)
    except ValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 2

    configure_logging(settings, to_file=command == "tui")
    logger.debug("Running %s (debug=%s)", command, settings.debug)

    try:
        if command == "tui":
            return asyncio.run(run_tui(settings, args.owner))
        if command == "sync":
            return asyncio.run(run_sync(settings, args.owner))
        if command == "history":
            return asyncio.run(
                show_history(settings, args.owner, limit=args.limit, changes=args.changes)
            )
        if args.db_command == "path":
            return db_path(settings)
        if args.db_command == "status":
            return asyncio.run(db_status(settings, args.owner))
        return asyncio.run(db_reset(settings, force=args.force))
    except (RemoteError, StoreError, ValueError, OSError) as exc:
        logger.error("%s failed: %s", command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130
