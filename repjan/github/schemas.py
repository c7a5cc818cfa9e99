"""GitHub REST API payload schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from repjan.services.datetime_service import days_since, parse_datetime
from repjan.snapshot import RepositorySnapshot


class AccountPayload(BaseModel):
    """A user or organisation account."""

    model_config = ConfigDict(extra="ignore")

    login: str
    type: str = "User"


class RepositoryPayload(BaseModel):
    """One entry of a repository listing."""

    model_config = ConfigDict(extra="ignore")

    name: str
    owner: AccountPayload
    description: str | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    language: str | None = None
    archived: bool = False
    fork: bool = False
    private: bool = False
    pushed_at: datetime | None = None
    created_at: datetime | None = None

    @field_validator("pushed_at", "created_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: object) -> object:
        if value is None or value == "":
            return None
        if isinstance(value, (str, datetime)):
            return parse_datetime(value)
        return value

    def to_snapshot(self, now: datetime) -> RepositorySnapshot:
        """Convert to a snapshot, computing days since the last push at ``now``."""
        return RepositorySnapshot(
            owner=self.owner.login,
            name=self.name,
            description=self.description or "",
            stars=self.stargazers_count,
            forks=self.forks_count,
            primary_language=self.language or "",
            is_archived=self.archived,
            is_fork=self.fork,
            is_private=self.private,
            pushed_at=self.pushed_at,
            created_at=self.created_at,
            days_since_activity=days_since(self.pushed_at, now),
        )


class ReadmePayload(BaseModel):
    """Response of the repository README endpoint."""

    model_config = ConfigDict(extra="ignore")

    content: str = ""
    encoding: str = "base64"


class ErrorPayload(BaseModel):
    """Error body returned by the API."""

    model_config = ConfigDict(extra="ignore")

    message: str = ""
    documentation_url: str | None = None
