"""Interactive model: the single owner of all mutable UI state.

``Model.update(event)`` applies one event and returns the commands the
caller must execute. The model never performs I/O, which keeps it testable
by feeding synthetic events.
"""

from __future__ import annotations

import dataclasses
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from repjan.services.bulk_action_service import BulkAction, MixedBatchError
from repjan.services.datetime_service import now_utc
from repjan.services.view_service import (
    ALL_LANGUAGES,
    FilterKind,
    LanguageOption,
    SortField,
    language_options,
    render,
)
from repjan.tui.events import (
    BulkStepFinished,
    ClearMarks,
    CommandFailed,
    ExportFinished,
    ExportMarked,
    KeyPressed,
    LoadReadme,
    OpenInBrowser,
    PersistArchiveState,
    PersistMark,
    Quit,
    ReadmeLoaded,
    RefreshCompleted,
    RefreshFailed,
    RefreshStarted,
    RemoveMarks,
    ReplaceMarks,
    RequestRefresh,
    Resized,
    RunBulkStep,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from repjan.snapshot import RepositorySnapshot
    from repjan.tui.events import Command, Event

logger = logging.getLogger(__name__)

RESERVED_ROWS = 8
FALLBACK_VISIBLE_ROWS = 5

_SORT_KEYS = {
    "1": SortField.NAME,
    "2": SortField.ACTIVITY,
    "3": SortField.STARS,
    "4": SortField.LANGUAGE,
}

_FILTER_KEYS = {
    "o": FilterKind.STALE,
    "n": FilterKind.NO_STARS,
    "f": FilterKind.FORKS,
}


class Modal(StrEnum):
    NONE = "none"
    DETAIL = "detail"
    CONFIRM = "confirm"
    HELP = "help"
    LANGUAGE = "language"


class Model:
    """Cursor, viewport, marks, filters, modals and bulk-action progress.

    Invariants kept after every event: ``cursor <= len(visible) - 1`` (or 0
    when nothing is visible) and ``offset <= cursor``.
    """

    def __init__(
        self,
        owner: str,
        repos: Iterable[RepositorySnapshot] = (),
        *,
        marks: Iterable[str] = (),
        last_sync: datetime | None = None,
        using_cache: bool = False,
        width: int = 0,
        height: int = 0,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.owner = owner
        self.repos: list[RepositorySnapshot] = list(repos)
        self.visible: list[RepositorySnapshot] = []
        self.marked: set[str] = {self._full_name(name) for name in marks}
        self.cursor = 0
        self.offset = 0

        self.filter_kind = FilterKind.ALL
        self.language = ""
        self.query = ""
        self.search_mode = False
        self.show_private = False
        self.show_archived = False
        self.sort_field = SortField.ACTIVITY
        self.ascending = self.sort_field.default_ascending

        self.modal = Modal.NONE
        self.selected: RepositorySnapshot | None = None
        self.readme: str | None = None
        self.languages: list[LanguageOption] = []
        self.language_cursor = 0

        self.bulk = BulkAction()
        self.syncing = False
        self.last_sync = last_sync
        self.using_cache = using_cache
        self.status_message = ""
        self.last_error = ""
        self.quitting = False

        self.width = width
        self.height = height
        self._clock = clock
        self.refresh_visible()

    # Derived state

    @property
    def visible_rows(self) -> int:
        rows = self.height - RESERVED_ROWS
        return rows if rows >= 1 else FALLBACK_VISIBLE_ROWS

    @property
    def current(self) -> RepositorySnapshot | None:
        if 0 <= self.cursor < len(self.visible):
            return self.visible[self.cursor]
        return None

    def page(self) -> list[RepositorySnapshot]:
        """Rows inside the viewport."""
        return self.visible[self.offset : self.offset + self.visible_rows]

    def is_marked(self, repo: RepositorySnapshot) -> bool:
        return repo.full_name in self.marked

    def marked_repos(self) -> list[RepositorySnapshot]:
        """Marked repositories present in the current set, in repository order."""
        return [repo for repo in self.repos if repo.full_name in self.marked]

    def _full_name(self, name: str) -> str:
        return f"{self.owner}/{name}"

    def _repo_name(self, full_name: str) -> str:
        return full_name.split("/", 1)[1] if "/" in full_name else full_name

    def _find(self, full_name: str) -> int | None:
        for index, repo in enumerate(self.repos):
            if repo.full_name == full_name:
                return index
        return None

    # Pipeline

    def refresh_visible(self) -> None:
        """Recompute the visible list and clamp cursor and viewport into bounds."""
        self.visible = render(
            self.repos,
            filter_kind=self.filter_kind,
            language=self.language,
            query=self.query,
            show_private=self.show_private,
            show_archived=self.show_archived,
            sort_field=self.sort_field,
            ascending=self.ascending,
        )
        if self.cursor >= len(self.visible):
            self.cursor = max(0, len(self.visible) - 1)
        if self.offset > self.cursor:
            self.offset = self.cursor

    def _scroll_to_cursor(self) -> None:
        if self.cursor < self.offset:
            self.offset = self.cursor
        elif self.cursor >= self.offset + self.visible_rows:
            self.offset = self.cursor - self.visible_rows + 1

    # Dispatch

    def update(self, event: Event) -> list[Command]:
        """Apply one event; return follow-up commands."""
        if isinstance(event, KeyPressed):
            return self._on_key(event.key)
        if isinstance(event, Resized):
            self.width = event.width
            self.height = event.height
            self._scroll_to_cursor()
            return []
        if isinstance(event, RefreshStarted):
            self.syncing = True
            self.status_message = "Syncing repositories..."
            return []
        if isinstance(event, RefreshCompleted):
            self._on_refresh_completed(event.repos)
            return []
        if isinstance(event, RefreshFailed):
            self.syncing = False
            self.status_message = f"Sync failed: {event.error}"
            return []
        if isinstance(event, BulkStepFinished):
            return self._on_bulk_step(event)
        if isinstance(event, ExportFinished):
            if event.error is not None:
                self.last_error = f"Export failed: {event.error}"
            else:
                self.status_message = f"Exported {event.count} repos to {event.path}"
            return []
        if isinstance(event, ReadmeLoaded):
            if self.selected is not None and self.selected.full_name == event.full_name:
                if event.error is not None:
                    self.readme = f"README unavailable: {event.error}"
                else:
                    self.readme = event.content or "No README"
            return []
        if isinstance(event, CommandFailed):
            self.last_error = event.error
            return []
        msg = f"unsupported event: {event!r}"
        raise TypeError(msg)

    def _on_refresh_completed(self, repos: list[RepositorySnapshot]) -> None:
        self.syncing = False
        selected = self.current.full_name if self.current is not None else None

        self.repos = list(repos)
        self.last_sync = self._clock()
        self.using_cache = False
        self.status_message = f"Synced {len(self.repos)} repos"
        self.refresh_visible()

        if selected is not None:
            for index, repo in enumerate(self.visible):
                if repo.full_name == selected:
                    self.cursor = index
                    break
        self._scroll_to_cursor()

    # Keys

    def _on_key(self, key: str) -> list[Command]:
        self.last_error = ""
        if self.search_mode:
            self._on_search_key(key)
            return []
        if self.modal is Modal.CONFIRM:
            return self._on_confirm_key(key)
        if self.modal is Modal.LANGUAGE:
            self._on_language_key(key)
            return []
        if self.modal is Modal.DETAIL:
            return self._on_detail_key(key)
        if self.modal is Modal.HELP:
            if key in ("escape", "q", "enter", "?"):
                self.modal = Modal.NONE
            return []
        return self._on_main_key(key)

    def _on_search_key(self, key: str) -> None:
        if key == "escape":
            self.search_mode = False
            self.query = ""
        elif key == "enter":
            self.search_mode = False
            return
        elif key == "backspace":
            if not self.query:
                return
            self.query = self.query[:-1]
        elif len(key) == 1:
            self.query += key
        else:
            return
        self.refresh_visible()

    def _on_confirm_key(self, key: str) -> list[Command]:
        if key in ("y", "Y", "enter"):
            self.modal = Modal.NONE
            self.bulk.confirm()
            self.status_message = ""
            return self._next_bulk_step()
        if key in ("n", "N", "escape", "q"):
            self.modal = Modal.NONE
            mode = self.bulk.mode
            self.bulk.cancel()
            self.status_message = f"{mode.verb} cancelled"
        return []

    def _on_language_key(self, key: str) -> None:
        if key in ("escape", "q"):
            self.modal = Modal.NONE
        elif key == "enter":
            if 0 <= self.language_cursor < len(self.languages):
                choice = self.languages[self.language_cursor].name
                self.language = "" if choice == ALL_LANGUAGES else choice
                self.refresh_visible()
            self.modal = Modal.NONE
        elif key in ("j", "down"):
            self.language_cursor = min(self.language_cursor + 1, len(self.languages) - 1)
        elif key in ("k", "up"):
            self.language_cursor = max(self.language_cursor - 1, 0)

    def _on_detail_key(self, key: str) -> list[Command]:
        if key in ("escape", "q", "enter"):
            self.modal = Modal.NONE
            self.selected = None
            self.readme = None
            return []
        if self.selected is None:
            return []
        if key == " ":
            return self._toggle_mark(self.selected)
        if key == "b":
            return [OpenInBrowser(self.selected.html_url)]
        return []

    def _on_main_key(self, key: str) -> list[Command]:
        rows = self.visible_rows
        total = len(self.visible)

        if key in ("j", "down"):
            if total:
                self.cursor = min(self.cursor + 1, total - 1)
                if self.cursor >= self.offset + rows:
                    self.offset = self.cursor - rows + 1
        elif key in ("k", "up"):
            self.cursor = max(self.cursor - 1, 0)
            if self.cursor < self.offset:
                self.offset = self.cursor
        elif key in ("pagedown", "ctrl+d"):
            if total:
                self.cursor = min(self.cursor + rows, total - 1)
                self.offset = min(self.offset + rows, max(0, total - rows))
        elif key in ("pageup", "ctrl+u"):
            self.cursor = max(self.cursor - rows, 0)
            self.offset = max(self.offset - rows, 0)
        elif key == "g":
            self.cursor = 0
            self.offset = 0
        elif key == "G":
            if total:
                self.cursor = total - 1
                self.offset = max(0, total - rows)
        elif key == "/":
            self.search_mode = True
            self.query = ""
            self.refresh_visible()
        elif key == "a":
            return self._on_archive_key()
        elif key in _FILTER_KEYS:
            self.filter_kind = _FILTER_KEYS[key]
            self.refresh_visible()
        elif key == "p":
            self.show_private = not self.show_private
            self.refresh_visible()
        elif key == "x":
            self.show_archived = not self.show_archived
            self.refresh_visible()
        elif key == "l":
            self.languages = language_options(self.repos)
            self.language_cursor = 0
            self.modal = Modal.LANGUAGE
        elif key in _SORT_KEYS:
            self._apply_sort(_SORT_KEYS[key])
        elif key == " ":
            if self.current is not None:
                return self._toggle_mark(self.current)
        elif key == "A":
            return self._mark_all_visible()
        elif key == "U":
            return self._clear_marks()
        elif key == "enter":
            if self.current is not None:
                self.selected = self.current
                self.readme = None
                self.modal = Modal.DETAIL
                return [LoadReadme(self.selected)]
        elif key == "e":
            marked = self.marked_repos()
            if not marked:
                self.status_message = "No repositories marked for export"
                return []
            return [ExportMarked(tuple(marked))]
        elif key == "s":
            if self.syncing:
                self.status_message = "Sync already in progress"
                return []
            return [RequestRefresh()]
        elif key == "?":
            self.modal = Modal.HELP
        elif key == "q":
            self.quitting = True
            return [Quit()]
        elif key == "escape":
            if self.query:
                self.query = ""
                self.refresh_visible()
        return []

    def _apply_sort(self, field: SortField) -> None:
        if self.sort_field is field:
            self.ascending = not self.ascending
        else:
            self.sort_field = field
            self.ascending = field.default_ascending
        self.refresh_visible()

    # Marks

    def _toggle_mark(self, repo: RepositorySnapshot) -> list[Command]:
        if repo.full_name in self.marked:
            self.marked.discard(repo.full_name)
            return [PersistMark(repo.name, marked=False)]
        self.marked.add(repo.full_name)
        return [PersistMark(repo.name, marked=True)]

    def _mark_all_visible(self) -> list[Command]:
        added = [repo.name for repo in self.visible if repo.full_name not in self.marked]
        if not added:
            return []
        self.marked.update(repo.full_name for repo in self.visible)
        names = sorted(self._repo_name(full_name) for full_name in self.marked)
        return [ReplaceMarks(tuple(names), added=tuple(added))]

    def _clear_marks(self) -> list[Command]:
        if not self.marked:
            return []
        removed = tuple(sorted(self._repo_name(full_name) for full_name in self.marked))
        self.marked.clear()
        return [ClearMarks(removed=removed)]

    # Bulk action

    def _on_archive_key(self) -> list[Command]:
        """``a`` starts a bulk action when marks exist, else shows everything."""
        marked = self.marked_repos()
        if not marked:
            self.filter_kind = FilterKind.ALL
            self.refresh_visible()
            return []
        if self.bulk.active:
            self.status_message = "A bulk action is already running"
            return []
        try:
            self.bulk.begin(marked)
        except MixedBatchError as exc:
            self.status_message = str(exc)
            return []
        self.modal = Modal.CONFIRM
        return []

    def _next_bulk_step(self) -> list[Command]:
        repo = self.bulk.current()
        if repo is None:
            return self._finish_bulk()
        return [RunBulkStep(self.bulk.mode, self.bulk.index, repo)]

    def _on_bulk_step(self, event: BulkStepFinished) -> list[Command]:
        if not self.bulk.processing:
            logger.warning("Ignoring bulk step %d reported while idle", event.index)
            return []
        self.bulk.record(event.index, event.error)
        commands: list[Command] = []
        if event.error is not None:
            self.last_error = event.error
        else:
            index = self._find(event.full_name)
            if index is not None:
                previous = self.repos[index]
                current = dataclasses.replace(
                    previous, is_archived=self.bulk.mode.target_archived
                )
                self.repos[index] = current
                commands.append(PersistArchiveState(previous=previous, current=current))
            self.refresh_visible()
        commands.extend(self._next_bulk_step())
        return commands

    def _finish_bulk(self) -> list[Command]:
        summary = self.bulk.complete()
        target = summary.mode.target_archived
        succeeded = summary.succeeded_names
        commands: list[Command] = []
        for index, repo in enumerate(self.repos):
            # a refresh listed before the call returned may have restored the old flag
            if repo.full_name in succeeded and repo.is_archived != target:
                current = dataclasses.replace(repo, is_archived=target)
                self.repos[index] = current
                commands.append(PersistArchiveState(previous=repo, current=current))

        order = {repo.full_name: index for index, repo in enumerate(self.repos)}
        cleared: list[str] = []
        for full_name in sorted(
            succeeded & self.marked, key=lambda name: order.get(name, len(order))
        ):
            self.marked.discard(full_name)
            cleared.append(self._repo_name(full_name))
        self.status_message = summary.status_message
        self.refresh_visible()
        logger.info(
            "%s finished: %d succeeded, %d failed", summary.mode.verb, summary.succeeded, summary.failed
        )
        if cleared:
            commands.append(RemoveMarks(tuple(cleared)))
        return commands
