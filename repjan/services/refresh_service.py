"""Background refresh worker.

The worker periodically re-fetches the owner's repositories, writes them to
the cache store and reports each attempt on a bounded outbound queue:
``RefreshStarted`` followed by ``RefreshCompleted`` or ``RefreshFailed``.
After the worker stops a ``None`` end-of-stream marker is offered to the
queue if there is room for it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from repjan.exceptions import RemoteError, StoreError
from repjan.services.datetime_service import now_utc
from repjan.services.store_service import Actor, SyncStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from repjan.services.store_service import CacheStore
    from repjan.snapshot import RepositorySnapshot

    Fetcher = Callable[[str], Awaitable[list[RepositorySnapshot]]]

logger = logging.getLogger(__name__)

QUEUE_SIZE = 10
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class RefreshStarted:
    """A refresh attempt has begun."""


@dataclass(frozen=True)
class RefreshCompleted:
    """A refresh succeeded; ``repos`` is the fresh cached list for the owner."""

    repos: list[RepositorySnapshot] = field(default_factory=list)


@dataclass(frozen=True)
class RefreshFailed:
    """A refresh failed; the cache was left as it was."""

    error: Exception


RefreshMessage = RefreshStarted | RefreshCompleted | RefreshFailed


@dataclass
class RefreshResult:
    """Outcome of one audited refresh."""

    repos: list[RepositorySnapshot]
    synced_at: datetime
    fetched: int
    inserted: int
    updated: int
    evicted: int
    status: SyncStatus


class RefreshWorker:
    """Periodic fetch-and-cache loop for one owner.

    ``start()`` launches the loop as an asyncio task on the running loop,
    ``sync_now()`` cuts the current wait short and ``stop()`` ends the loop.
    Only one refresh runs at a time, whether triggered by the timer, by
    ``sync_now()`` or by a direct ``refresh_once()`` call.
    """

    def __init__(
        self,
        store: CacheStore,
        fetch: Fetcher,
        owner: str,
        interval: float,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        queue_size: int = QUEUE_SIZE,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.store = store
        self.owner = owner
        self.interval = interval
        self.request_timeout = request_timeout
        self.messages: asyncio.Queue[RefreshMessage | None] = asyncio.Queue(maxsize=queue_size)
        self._fetch = fetch
        self._clock = clock
        self._stop = asyncio.Event()
        self._wake = asyncio.Event()
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        """Launch the background loop."""
        if self._task is not None:
            msg = "refresh worker already started"
            raise RuntimeError(msg)
        self._task = asyncio.create_task(self._run(), name=f"refresh-{self.owner}")

    def sync_now(self) -> None:
        """Request a refresh without waiting for the next tick."""
        self._wake.set()

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it.

        A remote call already in flight is allowed to finish (it is bounded
        by ``request_timeout``); no new refresh is started afterwards.
        """
        self._stop.set()
        self._wake.set()
        if self._task is not None:
            await self._task

    async def should_refresh_on_start(self) -> bool:
        """True if nothing was ever synced or the last sync is at least one interval old."""
        try:
            last_sync = await self.store.get_last_sync_time(self.owner)
        except StoreError as exc:
            logger.warning("Could not read last sync time for %s: %s", self.owner, exc)
            return True
        if last_sync is None:
            return True
        return self._clock() - last_sync >= timedelta(seconds=self.interval)

    async def _run(self) -> None:
        try:
            if await self.should_refresh_on_start():
                await self._cycle()
            else:
                logger.debug("Cache for %s is fresh; waiting for first tick", self.owner)
            while not self._stop.is_set():
                await self._wait_for_tick()
                if self._stop.is_set():
                    break
                await self._cycle()
        finally:
            with contextlib.suppress(asyncio.QueueFull):
                self.messages.put_nowait(None)
            logger.debug("Refresh worker for %s stopped", self.owner)

    async def _wait_for_tick(self) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
        self._wake.clear()

    async def _send(self, message: RefreshMessage) -> bool:
        """Deliver a message unless stop is requested first."""
        if self._stop.is_set():
            return False
        put = asyncio.ensure_future(self.messages.put(message))
        stopped = asyncio.ensure_future(self._stop.wait())
        done, pending = await asyncio.wait({put, stopped}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        return put in done

    async def _cycle(self) -> None:
        if not await self._send(RefreshStarted()):
            return
        try:
            result = await self.refresh_once()
        except (RemoteError, StoreError, TimeoutError) as exc:
            await self._send(RefreshFailed(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected refresh failure for %s", self.owner)
            await self._send(RefreshFailed(exc))
            return
        await self._send(RefreshCompleted(repos=result.repos))

    async def refresh_once(self) -> RefreshResult:
        """Fetch, upsert and evict once, recording a sync history entry.

        On failure the sync record is closed with ``error`` and the exception
        is re-raised; nothing else in the cache has changed. If only the
        eviction of vanished repositories fails the record is ``partial``.
        """
        async with self._lock:
            sync_id = await self.store.record_sync_start(self.owner)
            fetched: list[RepositorySnapshot] = []
            try:
                fetched = await asyncio.wait_for(
                    self._fetch(self.owner), timeout=self.request_timeout
                )
                upsert = await self.store.upsert_all(self.owner, fetched)
            except Exception as exc:
                error = str(exc) or exc.__class__.__name__
                logger.error("Refresh for %s failed: %s", self.owner, error)
                try:
                    await self.store.record_sync_complete(
                        sync_id, SyncStatus.ERROR, fetched=len(fetched), error=error
                    )
                except StoreError as record_exc:
                    logger.warning("Could not close sync record %d: %s", sync_id, record_exc)
                raise

            status = SyncStatus.SUCCESS
            error_message: str | None = None
            evicted = 0
            # an empty listing never evicts
            if fetched:
                try:
                    evicted = await self.store.delete_older_than(
                        self.owner, upsert.synced_at, audit_actor=Actor.SYNC
                    )
                except StoreError as exc:
                    status = SyncStatus.PARTIAL
                    error_message = f"eviction failed: {exc}"
                    logger.warning("Refresh for %s: %s", self.owner, error_message)

            await self.store.record_sync_complete(
                sync_id,
                status,
                fetched=len(fetched),
                inserted=upsert.inserted,
                updated=upsert.updated,
                error=error_message,
            )
            repos = await self.store.get_all(self.owner)

        logger.info(
            "Refreshed %s: %d fetched, %d new, %d updated, %d evicted",
            self.owner,
            len(fetched),
            upsert.inserted,
            upsert.updated,
            evicted,
        )
        return RefreshResult(
            repos=repos,
            synced_at=upsert.synced_at,
            fetched=len(fetched),
            inserted=upsert.inserted,
            updated=upsert.updated,
            evicted=evicted,
            status=status,
        )
