"""Tests for the command line entry point."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

import pytest

from conftest import make_repo
from repjan import __version__
from repjan.cli import JsonFormatter, build_parser, configure_logging, load_settings, main
from repjan.config import Settings
from repjan.database import create_engine, ensure_tables
from repjan.services.store_service import CacheStore, ChangeAction, SyncStatus

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def db_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a temporary database."""
    db_file = tmp_path / "cli" / "repjan.db"
    monkeypatch.delenv("REPJAN_DATABASE_URL", raising=False)
    monkeypatch.setenv("REPJAN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("REPJAN_DB_PATH", str(db_file))
    return db_file


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def _seed(db_file: Path) -> None:
    async def seed() -> None:
        settings = Settings(_env_file=None, db_path=db_file)  # type: ignore[call-arg]
        engine, session_factory = create_engine(settings)
        await ensure_tables(engine)
        store = CacheStore(session_factory)
        await store.upsert_all("alice", [make_repo("a"), make_repo("b")])
        sync_id = await store.record_sync_start("alice")
        await store.record_sync_complete(sync_id, SyncStatus.SUCCESS, fetched=2, inserted=2)
        await store.record_change("alice", "a", ChangeAction.MARKED)
        await engine.dispose()

    asyncio.run(seed())


class TestParser:
    def test_defaults_to_no_command(self) -> None:
        args = build_parser().parse_args([])
        assert args.command is None
        assert args.owner is None

    def test_global_flags(self) -> None:
        args = build_parser().parse_args(
            ["-o", "acme", "--sync-interval", "2m", "--log-level", "warn", "sync"]
        )
        assert args.owner == "acme"
        assert args.sync_interval == 120
        assert args.command == "sync"

    def test_invalid_interval(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--sync-interval", "soon"])

    def test_db_subcommand_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["db"])

    def test_overrides_applied(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPJAN_SYNC_INTERVAL", "1h")
        args = build_parser().parse_args(["--sync-interval", "45s", "--log-format", "json"])
        settings = load_settings(args)
        assert settings.sync_interval_seconds == 45
        assert settings.log_format == "json"


class TestLogging:
    def test_json_formatter(self) -> None:
        record = logging.LogRecord("repjan.test", logging.INFO, __file__, 1, "hi %s", ("x",), None)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "hi x"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "repjan.test"

    def test_tui_logs_to_file(self, tmp_path: Path) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, log_file=tmp_path / "logs" / "repjan.log", log_level="warning"
        )
        handler = configure_logging(settings, to_file=True)
        assert isinstance(handler, logging.FileHandler)
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
        handler.close()


class TestCommands:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["version"]) == 0
        assert capsys.readouterr().out.strip() == f"repjan version {__version__}"

    def test_db_path(self, db_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["db", "path"]) == 0
        assert capsys.readouterr().out.strip() == str(db_env)

    def test_db_status_without_database(
        self, db_env: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["db", "status"]) == 0
        assert "does not exist" in capsys.readouterr().out

    def test_db_status(self, db_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _seed(db_env)
        assert main(["--owner", "alice", "db", "status"]) == 0
        out = capsys.readouterr().out
        assert "Repository count: 2" in out
        assert "Last sync: " in out
        assert "never" not in out

    def test_history(self, db_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _seed(db_env)
        assert main(["--owner", "alice", "history"]) == 0
        assert "success" in capsys.readouterr().out
        assert main(["--owner", "alice", "history", "--changes"]) == 0
        assert "marked" in capsys.readouterr().out

    def test_db_reset_aborts_without_yes(
        self,
        db_env: Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _seed(db_env)
        monkeypatch.setattr("builtins.input", lambda prompt: "no")
        assert main(["db", "reset"]) == 1
        assert "Aborted." in capsys.readouterr().out
        assert db_env.exists()

    def test_db_reset_force(self, db_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _seed(db_env)
        assert main(["db", "reset", "--force"]) == 0
        assert f"Deleted: {db_env}" in capsys.readouterr().out
        assert not db_env.exists()

    def test_sync_requires_token(
        self,
        db_env: Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        for name in ("REPJAN_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN"):
            monkeypatch.delenv(name, raising=False)
        assert main(["--owner", "alice", "sync"]) == 1
        assert "GitHub token is required" in capsys.readouterr().err
