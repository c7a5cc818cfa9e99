"""Application configuration loaded from environment variables."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["debug", "info", "warning", "error"]
LogFormat = Literal["text", "json"]

_DURATION_PART = re.compile(r"(\d+)(h|m|s)")
_DURATION_SECONDS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value: str) -> int:
    """Parse ``"90"``, ``"30s"``, ``"5m"`` or ``"1h30m"`` into whole seconds."""
    text = value.strip().lower()
    if text.isdigit():
        return int(text)
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(number + unit for number, unit in parts) != text:
        msg = f"invalid duration: {value!r}"
        raise ValueError(msg)
    return sum(int(number) * _DURATION_SECONDS[unit] for number, unit in parts)


class Settings(BaseSettings):
    """Repjan settings."""

    model_config = SettingsConfigDict(
        env_prefix="REPJAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Core
    debug: bool = False

    # Logging
    log_level: LogLevel = "info"
    log_format: LogFormat = "text"
    log_file: Path | None = None

    # Storage
    data_dir: Path = Path("~/.repjan")
    db_path: Path | None = Field(
        default=None, validation_alias=AliasChoices("REPJAN_DB_PATH")
    )
    database_url: str | None = None

    # Sync
    sync_interval_seconds: int = Field(
        default=300,
        ge=1,
        validation_alias=AliasChoices("REPJAN_SYNC_INTERVAL", "REPJAN_SYNC_INTERVAL_SECONDS"),
    )
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_repositories: int = Field(default=1000, ge=1)

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REPJAN_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN"),
    )

    # Export
    export_dir: Path = Path(".")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return "warning" if lowered == "warn" else lowered
        return value

    @field_validator("sync_interval_seconds", mode="before")
    @classmethod
    def _parse_sync_interval(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("log_format", mode="before")
    @classmethod
    def _normalize_log_format(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def resolved_data_dir(self) -> Path:
        """Data directory with ``~`` expanded."""
        return self.data_dir.expanduser()

    @property
    def resolved_database_url(self) -> str:
        """Database URL, defaulting to a SQLite file inside the data directory."""
        if self.database_url:
            return self.database_url
        if self.db_path is not None:
            return f"sqlite+aiosqlite:///{self.db_path.expanduser()}"
        return f"sqlite+aiosqlite:///{self.resolved_data_dir / 'repjan.db'}"

    @property
    def database_path(self) -> Path | None:
        """Filesystem path of the SQLite database, or None for non-file URLs."""
        url = self.resolved_database_url
        prefix = "sqlite+aiosqlite:///"
        if not url.startswith(prefix):
            return None
        raw = url[len(prefix) :]
        if not raw or raw == ":memory:":
            return None
        return Path(raw).expanduser()

    @property
    def resolved_log_file(self) -> Path:
        """Log file used while the terminal UI owns stdout and stderr."""
        if self.log_file is not None:
            return self.log_file.expanduser()
        return self.resolved_data_dir / "repjan.log"

    def validate_runtime(self) -> None:
        """Validate settings required to talk to the remote host."""
        violations: list[str] = []
        if not self.github_token:
            violations.append(
                "a GitHub token is required (set REPJAN_GITHUB_TOKEN, GITHUB_TOKEN or GH_TOKEN)"
            )
        if not self.github_api_url.startswith(("https://", "http://localhost", "http://127.")):
            violations.append("REPJAN_GITHUB_API_URL must use https")

        if violations:
            joined = "; ".join(violations)
            msg = f"Invalid configuration: {joined}"
            raise ValueError(msg)
