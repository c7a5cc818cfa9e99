"""Execute model commands and translate their outcomes into events."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import TYPE_CHECKING

from repjan.exceptions import RemoteError, StoreError
from repjan.services.bulk_action_service import BulkMode
from repjan.services.datetime_service import now_utc
from repjan.services.export_service import export_marked
from repjan.services.store_service import Actor, ChangeAction
from repjan.tui.events import (
    BulkStepFinished,
    ClearMarks,
    CommandFailed,
    ExportFinished,
    ExportMarked,
    LoadReadme,
    OpenInBrowser,
    PersistArchiveState,
    PersistMark,
    Quit,
    ReadmeLoaded,
    RemoveMarks,
    ReplaceMarks,
    RequestRefresh,
    RunBulkStep,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from pathlib import Path

    from repjan.github.base import RepositoryHost
    from repjan.services.refresh_service import RefreshWorker
    from repjan.services.store_service import CacheStore
    from repjan.tui.events import Command, Event

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs one command at a time per call; store writes are serialised.

    Failures of a bulk step or a README fetch always come back as events, so a
    batch or the detail view never waits forever. For other commands only
    store and filesystem failures are converted; anything else propagates.
    """

    def __init__(
        self,
        owner: str,
        store: CacheStore,
        host: RepositoryHost,
        *,
        worker: RefreshWorker | None = None,
        export_dir: Path,
        request_timeout: float = 30.0,
        open_url: Callable[[str], object] = webbrowser.open,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.owner = owner
        self.store = store
        self.host = host
        self.worker = worker
        self.export_dir = export_dir
        self.request_timeout = request_timeout
        self._open_url = open_url
        self._clock = clock
        self._write_lock = asyncio.Lock()

    async def run(self, command: Command) -> Event | None:
        if isinstance(command, RunBulkStep):
            return await self._run_bulk_step(command)
        if isinstance(command, LoadReadme):
            return await self._load_readme(command)
        if isinstance(command, ExportMarked):
            return self._export(command)
        if isinstance(command, OpenInBrowser):
            await asyncio.to_thread(self._open_url, command.url)
            return None
        if isinstance(command, RequestRefresh):
            if self.worker is None or not self.worker.running:
                return CommandFailed("Background refresh is not running")
            self.worker.sync_now()
            return None
        if isinstance(command, Quit):
            return None
        if isinstance(
            command, PersistMark | ReplaceMarks | ClearMarks | RemoveMarks | PersistArchiveState
        ):
            return await self._persist(command)
        msg = f"unsupported command: {command!r}"
        raise TypeError(msg)

    async def _run_bulk_step(self, command: RunBulkStep) -> BulkStepFinished:
        repo = command.repo
        if command.mode is BulkMode.ARCHIVE:
            call = self.host.archive_repository
        else:
            call = self.host.unarchive_repository
        try:
            await asyncio.wait_for(call(self.owner, repo.name), timeout=self.request_timeout)
        except TimeoutError:
            error = f"{command.mode.value} {repo.full_name}: timed out"
            logger.error("Bulk step %d failed: %s", command.index, error)
            return BulkStepFinished(command.index, repo.full_name, error=error)
        except RemoteError as exc:
            logger.error("Bulk step %d failed: %s", command.index, exc)
            return BulkStepFinished(command.index, repo.full_name, error=str(exc))
        except Exception as exc:
            logger.exception("Bulk step %d for %s failed", command.index, repo.full_name)
            error = f"{command.mode.value} {repo.full_name}: {str(exc) or exc.__class__.__name__}"
            return BulkStepFinished(command.index, repo.full_name, error=error)
        return BulkStepFinished(command.index, repo.full_name)

    async def _load_readme(self, command: LoadReadme) -> ReadmeLoaded:
        repo = command.repo
        try:
            content = await asyncio.wait_for(
                self.host.fetch_readme(self.owner, repo.name), timeout=self.request_timeout
            )
        except TimeoutError:
            return ReadmeLoaded(repo.full_name, error="timed out")
        except RemoteError as exc:
            logger.warning("README for %s unavailable: %s", repo.full_name, exc)
            return ReadmeLoaded(repo.full_name, error=str(exc))
        except Exception as exc:
            logger.exception("Loading README for %s failed", repo.full_name)
            return ReadmeLoaded(repo.full_name, error=str(exc) or exc.__class__.__name__)
        return ReadmeLoaded(repo.full_name, content=content)

    def _export(self, command: ExportMarked) -> ExportFinished:
        try:
            path = export_marked(list(command.repos), self.owner, self.export_dir, self._clock())
        except OSError as exc:
            logger.error("Export failed: %s", exc)
            return ExportFinished(None, error=str(exc))
        return ExportFinished(path, count=len(command.repos))

    async def _persist(self, command: Command) -> CommandFailed | None:
        try:
            async with self._write_lock:
                await self._write(command)
        except StoreError as exc:
            logger.error("Could not persist %s: %s", type(command).__name__, exc)
            return CommandFailed(f"Could not save changes: {exc}")
        return None

    async def _write(self, command: Command) -> None:
        store = self.store
        owner = self.owner
        if isinstance(command, PersistMark):
            if command.marked:
                await store.add_mark(owner, command.repo_name)
                action = ChangeAction.MARKED
            else:
                await store.remove_mark(owner, command.repo_name)
                action = ChangeAction.UNMARKED
            await store.record_change(owner, command.repo_name, action, actor=Actor.USER)
        elif isinstance(command, ReplaceMarks):
            await store.replace_all(owner, command.repo_names)
            for name in command.added:
                await store.record_change(owner, name, ChangeAction.MARKED, actor=Actor.USER)
        elif isinstance(command, ClearMarks):
            await store.clear(owner)
            for name in command.removed:
                await store.record_change(owner, name, ChangeAction.UNMARKED, actor=Actor.USER)
        elif isinstance(command, RemoveMarks):
            await store.remove_marks(owner, command.repo_names)
        elif isinstance(command, PersistArchiveState):
            current = command.current
            await store.set_archived(owner, current.name, current.is_archived)
            action = ChangeAction.ARCHIVED if current.is_archived else ChangeAction.UNARCHIVED
            await store.record_change(
                owner,
                current.name,
                action,
                actor=Actor.USER,
                previous_state=command.previous.to_state(),
                new_state=current.to_state(),
            )
