"""Repository snapshot: the last-known metadata for one remote repository."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from repjan.services.datetime_service import format_iso


@dataclass(frozen=True)
class RepositorySnapshot:
    """Cached metadata for one repository.

    Snapshots are immutable: a refresh replaces them wholesale and the bulk
    action swaps in a copy with the archived flag flipped. UI-only state
    (marks, archive-candidate reasons) is never stored here.
    """

    owner: str
    name: str
    description: str = ""
    stars: int = 0
    forks: int = 0
    primary_language: str = ""
    is_archived: bool = False
    is_fork: bool = False
    is_private: bool = False
    pushed_at: datetime | None = None
    created_at: datetime | None = None
    days_since_activity: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.full_name}"

    def to_state(self) -> dict[str, Any]:
        """JSON-friendly view used for change-record before/after blobs."""
        state = asdict(self)
        state["pushed_at"] = format_iso(self.pushed_at) if self.pushed_at else None
        state["created_at"] = format_iso(self.created_at) if self.created_at else None
        return state
