"""Events consumed by the interactive model and commands it emits.

Events describe something that happened (a key press, a finished remote
call). Commands describe I/O the model wants performed; the command runner
executes them and turns each result back into an event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from repjan.services.refresh_service import RefreshCompleted, RefreshFailed, RefreshStarted

if TYPE_CHECKING:
    from pathlib import Path

    from repjan.services.bulk_action_service import BulkMode
    from repjan.snapshot import RepositorySnapshot

# Events


@dataclass(frozen=True)
class KeyPressed:
    """A normalised key: ``"j"``, ``"G"``, ``" "``, ``"enter"``, ``"ctrl+d"``..."""

    key: str


@dataclass(frozen=True)
class Resized:
    width: int
    height: int


@dataclass(frozen=True)
class BulkStepFinished:
    """One archive/unarchive call has returned."""

    index: int
    full_name: str
    error: str | None = None


@dataclass(frozen=True)
class ExportFinished:
    path: Path | None
    count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class ReadmeLoaded:
    full_name: str
    content: str = ""
    error: str | None = None


@dataclass(frozen=True)
class CommandFailed:
    """A background command failed; shown on the error banner."""

    error: str


Event = (
    KeyPressed
    | Resized
    | RefreshStarted
    | RefreshCompleted
    | RefreshFailed
    | BulkStepFinished
    | ExportFinished
    | ReadmeLoaded
    | CommandFailed
)

# Commands


@dataclass(frozen=True)
class RunBulkStep:
    mode: BulkMode
    index: int
    repo: RepositorySnapshot


@dataclass(frozen=True)
class PersistMark:
    """Add or remove one mark and audit the change."""

    repo_name: str
    marked: bool


@dataclass(frozen=True)
class ReplaceMarks:
    """Replace the stored mark set; ``added`` are audited as newly marked."""

    repo_names: tuple[str, ...]
    added: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClearMarks:
    """Remove every stored mark; ``removed`` are audited as unmarked."""

    removed: tuple[str, ...] = ()


@dataclass(frozen=True)
class RemoveMarks:
    """Drop marks whose repositories now match the completed bulk action."""

    repo_names: tuple[str, ...]


@dataclass(frozen=True)
class PersistArchiveState:
    """Write an optimistic archived-flag flip and audit it."""

    previous: RepositorySnapshot
    current: RepositorySnapshot


@dataclass(frozen=True)
class ExportMarked:
    repos: tuple[RepositorySnapshot, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LoadReadme:
    repo: RepositorySnapshot


@dataclass(frozen=True)
class OpenInBrowser:
    url: str


@dataclass(frozen=True)
class RequestRefresh:
    """Ask the refresh worker to sync now."""


@dataclass(frozen=True)
class Quit:
    pass


Command = (
    RunBulkStep
    | PersistMark
    | ReplaceMarks
    | ClearMarks
    | RemoveMarks
    | PersistArchiveState
    | ExportMarked
    | LoadReadme
    | OpenInBrowser
    | RequestRefresh
    | Quit
)

__all__ = [
    "BulkStepFinished",
    "ClearMarks",
    "Command",
    "CommandFailed",
    "Event",
    "ExportFinished",
    "ExportMarked",
    "KeyPressed",
    "LoadReadme",
    "OpenInBrowser",
    "PersistArchiveState",
    "PersistMark",
    "Quit",
    "ReadmeLoaded",
    "RefreshCompleted",
    "RefreshFailed",
    "RefreshStarted",
    "RemoveMarks",
    "ReplaceMarks",
    "RequestRefresh",
    "Resized",
    "RunBulkStep",
]
