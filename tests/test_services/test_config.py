"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from repjan.config import Settings, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("90", 90), ("30s", 30), ("5m", 300), ("1h", 3600), ("1h30m", 5400), (" 2M ", 120)],
    )
    def test_valid(self, value: str, expected: int) -> None:
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "5x", "m5", "1h-5m"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError, match="invalid duration"):
            parse_duration(value)


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("GITHUB_TOKEN", "GH_TOKEN", "REPJAN_GITHUB_TOKEN", "REPJAN_SYNC_INTERVAL"):
            monkeypatch.delenv(name, raising=False)
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.sync_interval_seconds == 300
        assert s.log_level == "info"
        assert s.github_token is None
        assert s.resolved_database_url.endswith("repjan.db")

    def test_sync_interval_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPJAN_SYNC_INTERVAL", "10m")
        assert Settings(_env_file=None).sync_interval_seconds == 600  # type: ignore[call-arg]

    def test_token_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REPJAN_GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.setenv("GH_TOKEN", "from-gh")
        assert Settings(_env_file=None).github_token == "from-gh"  # type: ignore[call-arg]

    def test_warn_is_warning(self) -> None:
        assert Settings(_env_file=None, log_level="WARN").log_level == "warning"  # type: ignore[call-arg]

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, sync_interval_seconds=0)  # type: ignore[call-arg]

    def test_database_url_precedence(self, tmp_path: Path) -> None:
        s = Settings(_env_file=None, data_dir=tmp_path, db_path=tmp_path / "x.db")  # type: ignore[call-arg]
        assert s.database_path == tmp_path / "x.db"
        s = Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:")  # type: ignore[call-arg]
        assert s.database_path is None

    def test_validate_runtime_requires_token(self) -> None:
        s = Settings(_env_file=None, github_token=None)  # type: ignore[call-arg]
        with pytest.raises(ValueError, match="GitHub token is required"):
            s.validate_runtime()

    def test_validate_runtime_rejects_plain_http(self) -> None:
        s = Settings(  # type: ignore[call-arg]
            _env_file=None, github_token="t", github_api_url="http://example.com"
        )
        with pytest.raises(ValueError, match="must use https"):
            s.validate_runtime()
