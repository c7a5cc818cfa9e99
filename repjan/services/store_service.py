"""Cache store: durable snapshots, marks, sync history and the change audit log.

All methods open their own session. Every write runs inside a single
``session.begin()`` transaction, so a failure rolls back everything the call
attempted before the wrapped ``StoreError`` reaches the caller.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from repjan.exceptions import RecordNotFoundError, StoreError
from repjan.models.repository import MarkedRepo, RepositoryCache
from repjan.models.sync import RepoChange, SyncHistory
from repjan.services.datetime_service import ensure_utc, now_utc
from repjan.snapshot import RepositorySnapshot

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable, Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

_UPSERT_COLUMNS = (
    "full_name",
    "description",
    "stars",
    "forks",
    "is_archived",
    "is_fork",
    "is_private",
    "primary_language",
    "pushed_at",
    "created_at",
    "days_since_activity",
    "synced_at",
)


class SyncStatus(StrEnum):
    """Outcome of a refresh attempt."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    PARTIAL = "partial"


class ChangeAction(StrEnum):
    """Kind of mutation recorded in the audit log."""

    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"
    MARKED = "marked"
    UNMARKED = "unmarked"
    DELETED = "deleted"
    SYNCED = "synced"


class Actor(StrEnum):
    """Who performed an audited change."""

    USER = "user"
    SYSTEM = "system"
    SYNC = "sync"


@dataclass
class UpsertResult:
    """Outcome of a batch upsert."""

    synced_at: datetime
    inserted: int
    updated: int


@dataclass
class SyncRecord:
    """A sync history entry."""

    id: int
    owner: str
    started_at: datetime
    completed_at: datetime | None
    status: SyncStatus
    repos_fetched: int
    repos_inserted: int
    repos_updated: int
    error_message: str | None
    duration_ms: int | None


@dataclass
class ChangeRecord:
    """An audit log entry."""

    id: int
    owner: str
    repo_name: str
    action: str
    performed_at: datetime
    performed_by: str
    previous_state: str | None
    new_state: str | None
    notes: str | None


def _to_snapshot(row: RepositoryCache) -> RepositorySnapshot:
    return RepositorySnapshot(
        owner=row.owner,
        name=row.name,
        description=row.description or "",
        stars=row.stars,
        forks=row.forks,
        primary_language=row.primary_language or "",
        is_archived=row.is_archived,
        is_fork=row.is_fork,
        is_private=row.is_private,
        pushed_at=ensure_utc(row.pushed_at),
        created_at=ensure_utc(row.created_at),
        days_since_activity=row.days_since_activity,
    )


def _to_sync_record(row: SyncHistory) -> SyncRecord:
    return SyncRecord(
        id=row.id,
        owner=row.owner,
        started_at=ensure_utc(row.started_at),  # type: ignore[arg-type]
        completed_at=ensure_utc(row.completed_at),
        status=SyncStatus(row.status),
        repos_fetched=row.repos_fetched,
        repos_inserted=row.repos_inserted,
        repos_updated=row.repos_updated,
        error_message=row.error_message,
        duration_ms=row.duration_ms,
    )


def _to_change_record(row: RepoChange) -> ChangeRecord:
    return ChangeRecord(
        id=row.id,
        owner=row.owner,
        repo_name=row.repo_name,
        action=row.action,
        performed_at=ensure_utc(row.performed_at),  # type: ignore[arg-type]
        performed_by=row.performed_by,
        previous_state=row.previous_state,
        new_state=row.new_state,
        notes=row.notes,
    )


def _serialize_state(state: Any) -> str | None:
    if state is None:
        return None
    return json.dumps(state, default=str, sort_keys=True)


class CacheStore:
    """Data access for the local repository cache.

    Rows are partitioned by the audited ``owner``; ``full_name`` is always
    derived as ``owner/name`` from that partition key.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[AsyncSession]:
        """Open a session with a transaction, wrapping database failures."""
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            logger.error("Cache store failure while %s: %s", action, exc)
            msg = f"{action} failed: {exc}"
            raise StoreError(msg) from exc

    def _now(self) -> datetime:
        return ensure_utc(self._clock())  # type: ignore[return-value]

    # Repositories

    async def upsert_all(
        self, owner: str, snapshots: Sequence[RepositorySnapshot]
    ) -> UpsertResult:
        """Insert or replace every snapshot, stamping one shared ``synced_at``.

        Either all snapshots land or none do.
        """
        synced_at = self._now()
        if not snapshots:
            return UpsertResult(synced_at=synced_at, inserted=0, updated=0)

        inserted = 0
        updated = 0
        async with self._transaction("upserting repositories") as session:
            result = await session.execute(
                select(RepositoryCache.name).where(RepositoryCache.owner == owner)
            )
            existing = set(result.scalars().all())

            for snapshot in snapshots:
                values = {
                    "owner": owner,
                    "name": snapshot.name,
                    "full_name": f"{owner}/{snapshot.name}",
                    "description": snapshot.description or None,
                    "stars": snapshot.stars,
                    "forks": snapshot.forks,
                    "is_archived": snapshot.is_archived,
                    "is_fork": snapshot.is_fork,
                    "is_private": snapshot.is_private,
                    "primary_language": snapshot.primary_language or None,
                    "pushed_at": ensure_utc(snapshot.pushed_at),
                    "created_at": ensure_utc(snapshot.created_at),
                    "days_since_activity": snapshot.days_since_activity,
                    "synced_at": synced_at,
                }
                stmt = sqlite_insert(RepositoryCache).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["owner", "name"],
                    set_={column: stmt.excluded[column] for column in _UPSERT_COLUMNS},
                )
                await session.execute(stmt)
                if snapshot.name in existing:
                    updated += 1
                else:
                    inserted += 1
                    existing.add(snapshot.name)

        logger.debug(
            "Upserted %d repositories for %s (%d new, %d updated)",
            len(snapshots),
            owner,
            inserted,
            updated,
        )
        return UpsertResult(synced_at=synced_at, inserted=inserted, updated=updated)

    async def get_all(self, owner: str) -> list[RepositorySnapshot]:
        """Return every cached snapshot for owner, ordered by name."""
        async with self._transaction("loading repositories") as session:
            result = await session.execute(
                select(RepositoryCache)
                .where(RepositoryCache.owner == owner)
                .order_by(RepositoryCache.name, RepositoryCache.id)
            )
            return [_to_snapshot(row) for row in result.scalars().all()]

    async def get_repository(self, owner: str, name: str) -> RepositorySnapshot:
        """Load one snapshot. Raises RecordNotFoundError if it isn't cached."""
        async with self._transaction("loading repository") as session:
            result = await session.execute(
                select(RepositoryCache).where(
                    RepositoryCache.owner == owner, RepositoryCache.name == name
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                msg = f"repository {owner}/{name} is not cached"
                raise RecordNotFoundError(msg)
            return _to_snapshot(row)

    async def set_archived(self, owner: str, name: str, archived: bool) -> None:
        """Update one snapshot's archived flag without touching ``synced_at``."""
        async with self._transaction("updating repository") as session:
            result = await session.execute(
                update(RepositoryCache)
                .where(RepositoryCache.owner == owner, RepositoryCache.name == name)
                .values(is_archived=archived)
            )
            if result.rowcount == 0:  # type: ignore[attr-defined]
                msg = f"repository {owner}/{name} is not cached"
                raise RecordNotFoundError(msg)

    async def delete_older_than(
        self, owner: str, cutoff: datetime, *, audit_actor: Actor | None = None
    ) -> int:
        """Remove snapshots not refreshed since cutoff. Returns the count removed.

        With ``audit_actor`` set, a ``deleted`` change is recorded for each
        evicted repository in the same transaction.
        """
        cutoff = ensure_utc(cutoff)  # type: ignore[assignment]
        async with self._transaction("deleting stale repositories") as session:
            result = await session.execute(
                select(RepositoryCache).where(
                    RepositoryCache.owner == owner, RepositoryCache.synced_at < cutoff
                )
            )
            stale = result.scalars().all()
            if not stale:
                return 0

            if audit_actor is not None:
                performed_at = self._now()
                for row in stale:
                    session.add(
                        RepoChange(
                            owner=owner,
                            repo_name=row.name,
                            action=ChangeAction.DELETED,
                            performed_at=performed_at,
                            performed_by=audit_actor,
                            previous_state=_serialize_state(_to_snapshot(row).to_state()),
                            notes="no longer reported by the remote host",
                        )
                    )

            await session.execute(
                delete(RepositoryCache).where(
                    RepositoryCache.owner == owner, RepositoryCache.synced_at < cutoff
                )
            )
            logger.info("Evicted %d stale repositories for %s", len(stale), owner)
            return len(stale)

    async def get_last_sync_time(self, owner: str) -> datetime | None:
        """Most recent ``synced_at`` across owner's snapshots, or None if never synced."""
        async with self._transaction("querying last sync time") as session:
            result = await session.execute(
                select(func.max(RepositoryCache.synced_at)).where(RepositoryCache.owner == owner)
            )
            return ensure_utc(result.scalar())

    async def repository_count(self, owner: str | None = None) -> int:
        """Count cached snapshots, optionally for one owner."""
        stmt = select(func.count()).select_from(RepositoryCache)
        if owner is not None:
            stmt = stmt.where(RepositoryCache.owner == owner)
        async with self._transaction("counting repositories") as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    # Marks

    async def get_marks(self, owner: str) -> list[str]:
        """Return marked repository names for owner, ordered by name."""
        async with self._transaction("loading marks") as session:
            result = await session.execute(
                select(MarkedRepo.repo_name)
                .where(MarkedRepo.owner == owner)
                .order_by(MarkedRepo.repo_name)
            )
            return list(result.scalars().all())

    async def add_mark(self, owner: str, repo_name: str) -> None:
        """Mark a repository. Marking an already-marked repository is a no-op."""
        async with self._transaction("adding mark") as session:
            await session.execute(
                sqlite_insert(MarkedRepo)
                .values(owner=owner, repo_name=repo_name, marked_at=self._now())
                .on_conflict_do_nothing(index_elements=["owner", "repo_name"])
            )

    async def remove_mark(self, owner: str, repo_name: str) -> None:
        """Unmark a repository. Removing a missing mark is a no-op."""
        await self.remove_marks(owner, [repo_name])

    async def remove_marks(self, owner: str, repo_names: Iterable[str]) -> None:
        """Unmark several repositories in one transaction."""
        names = list(repo_names)
        if not names:
            return
        async with self._transaction("removing marks") as session:
            await session.execute(
                delete(MarkedRepo).where(
                    MarkedRepo.owner == owner, MarkedRepo.repo_name.in_(names)
                )
            )

    async def replace_all(self, owner: str, repo_names: Iterable[str]) -> None:
        """Replace owner's marks with exactly repo_names."""
        names = sorted(set(repo_names))
        marked_at = self._now()
        async with self._transaction("replacing marks") as session:
            await session.execute(delete(MarkedRepo).where(MarkedRepo.owner == owner))
            for name in names:
                session.add(MarkedRepo(owner=owner, repo_name=name, marked_at=marked_at))

    async def clear(self, owner: str) -> None:
        """Remove every mark for owner."""
        async with self._transaction("clearing marks") as session:
            await session.execute(delete(MarkedRepo).where(MarkedRepo.owner == owner))

    # Sync history

    async def record_sync_start(self, owner: str) -> int:
        """Create a ``running`` sync record and return its id."""
        async with self._transaction("recording sync start") as session:
            row = SyncHistory(
                owner=owner,
                started_at=self._now(),
                status=SyncStatus.RUNNING,
            )
            session.add(row)
            await session.flush()
            return row.id

    async def record_sync_complete(
        self,
        sync_id: int,
        status: SyncStatus,
        *,
        fetched: int = 0,
        inserted: int = 0,
        updated: int = 0,
        error: str | None = None,
    ) -> SyncRecord:
        """Close a sync record with its outcome and duration."""
        async with self._transaction("recording sync completion") as session:
            row = await session.get(SyncHistory, sync_id)
            if row is None:
                msg = f"sync record {sync_id} does not exist"
                raise RecordNotFoundError(msg)
            completed_at = self._now()
            started_at = ensure_utc(row.started_at)
            row.completed_at = completed_at
            row.status = status
            row.repos_fetched = fetched
            row.repos_inserted = inserted
            row.repos_updated = updated
            row.error_message = error
            row.duration_ms = int(
                (completed_at - started_at).total_seconds() * 1000  # type: ignore[operator]
            )
            await session.flush()
            return _to_sync_record(row)

    async def get_sync_history(self, owner: str, limit: int = 20) -> list[SyncRecord]:
        """Most recent sync records first."""
        async with self._transaction("querying sync history") as session:
            result = await session.execute(
                select(SyncHistory)
                .where(SyncHistory.owner == owner)
                .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
                .limit(limit)
            )
            return [_to_sync_record(row) for row in result.scalars().all()]

    async def get_last_successful_sync(self, owner: str) -> SyncRecord | None:
        """The most recent successful sync, or None."""
        async with self._transaction("querying last successful sync") as session:
            result = await session.execute(
                select(SyncHistory)
                .where(SyncHistory.owner == owner, SyncHistory.status == SyncStatus.SUCCESS)
                .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _to_sync_record(row) if row is not None else None

    # Change audit log

    async def record_change(
        self,
        owner: str,
        repo_name: str,
        action: ChangeAction,
        *,
        actor: Actor = Actor.USER,
        previous_state: Any = None,
        new_state: Any = None,
        notes: str | None = None,
    ) -> None:
        """Append a change record; states are stored as JSON text."""
        async with self._transaction("recording change") as session:
            session.add(
                RepoChange(
                    owner=owner,
                    repo_name=repo_name,
                    action=action,
                    performed_at=self._now(),
                    performed_by=actor,
                    previous_state=_serialize_state(previous_state),
                    new_state=_serialize_state(new_state),
                    notes=notes,
                )
            )

    async def get_recent_changes(
        self, owner: str, limit: int = 50, action: ChangeAction | None = None
    ) -> list[ChangeRecord]:
        """Recent changes for owner, newest first, optionally for one action."""
        stmt = select(RepoChange).where(RepoChange.owner == owner)
        if action is not None:
            stmt = stmt.where(RepoChange.action == action)
        stmt = stmt.order_by(RepoChange.performed_at.desc(), RepoChange.id.desc()).limit(limit)
        async with self._transaction("querying changes") as session:
            result = await session.execute(stmt)
            return [_to_change_record(row) for row in result.scalars().all()]
