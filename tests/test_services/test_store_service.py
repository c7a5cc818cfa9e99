"""Tests for the cache store."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import NOW, FakeClock, make_repo
from repjan.exceptions import RecordNotFoundError, StoreError
from repjan.services.store_service import Actor, CacheStore, ChangeAction, SyncStatus

if TYPE_CHECKING:
    from pathlib import Path


class TestUpsert:
    async def test_insert_then_update_counts(self, store: CacheStore, clock: FakeClock) -> None:
        first = await store.upsert_all("alice", [make_repo("a"), make_repo("b")])
        assert (first.inserted, first.updated) == (2, 0)
        assert first.synced_at == NOW
        assert await store.get_last_sync_time("alice") == NOW

        clock.advance(minutes=5)
        second = await store.upsert_all("alice", [make_repo("b", stars=9), make_repo("c")])
        assert (second.inserted, second.updated) == (1, 1)

        repos = {repo.name: repo for repo in await store.get_all("alice")}
        assert set(repos) == {"a", "b", "c"}
        assert repos["b"].stars == 9

    async def test_empty_input_writes_nothing(self, store: CacheStore) -> None:
        result = await store.upsert_all("alice", [])
        assert (result.inserted, result.updated) == (0, 0)
        assert await store.get_last_sync_time("alice") is None

    async def test_full_name_uses_partition_owner(self, store: CacheStore) -> None:
        await store.upsert_all("Alice", [make_repo("tool", owner="alice")])
        [repo] = await store.get_all("Alice")
        assert repo.owner == "Alice"
        assert repo.full_name == "Alice/tool"

    async def test_round_trip_preserves_fields(self, store: CacheStore) -> None:
        original = make_repo(
            "full",
            description="",
            stars=3,
            forks=2,
            primary_language="",
            is_archived=True,
            is_fork=True,
            is_private=True,
        )
        await store.upsert_all("alice", [original])
        loaded = await store.get_repository("alice", "full")
        assert loaded == original

    async def test_get_all_is_name_ordered_and_owner_scoped(self, store: CacheStore) -> None:
        await store.upsert_all("alice", [make_repo("zeta"), make_repo("alpha")])
        await store.upsert_all("bob", [make_repo("mid", owner="bob")])
        names = [repo.name for repo in await store.get_all("alice")]
        assert names == ["alpha", "zeta"]
        assert await store.repository_count() == 3
        assert await store.repository_count("bob") == 1


class TestArchivedFlag:
    async def test_set_archived_keeps_synced_at(self, store: CacheStore, clock: FakeClock) -> None:
        await store.upsert_all("alice", [make_repo("a")])
        clock.advance(hours=1)
        await store.set_archived("alice", "a", True)

        repo = await store.get_repository("alice", "a")
        assert repo.is_archived is True
        assert await store.get_last_sync_time("alice") == NOW

    async def test_set_archived_missing_repo(self, store: CacheStore) -> None:
        with pytest.raises(RecordNotFoundError):
            await store.set_archived("alice", "ghost", True)

    async def test_get_repository_missing(self, store: CacheStore) -> None:
        with pytest.raises(RecordNotFoundError, match="alice/ghost"):
            await store.get_repository("alice", "ghost")


class TestEviction:
    async def test_delete_older_than_removes_unrefreshed(
        self, store: CacheStore, clock: FakeClock
    ) -> None:
        await store.upsert_all("alice", [make_repo("old"), make_repo("kept")])
        clock.advance(minutes=10)
        result = await store.upsert_all("alice", [make_repo("kept")])

        removed = await store.delete_older_than("alice", result.synced_at)
        assert removed == 1
        assert [repo.name for repo in await store.get_all("alice")] == ["kept"]

    async def test_eviction_is_owner_scoped(self, store: CacheStore, clock: FakeClock) -> None:
        await store.upsert_all("bob", [make_repo("theirs", owner="bob")])
        clock.advance(minutes=10)
        result = await store.upsert_all("alice", [make_repo("mine")])
        assert await store.delete_older_than("alice", result.synced_at) == 0
        assert await store.repository_count("bob") == 1

    async def test_eviction_audit_trail(self, store: CacheStore, clock: FakeClock) -> None:
        await store.upsert_all("alice", [make_repo("gone")])
        clock.advance(minutes=10)
        await store.delete_older_than("alice", clock(), audit_actor=Actor.SYNC)

        [change] = await store.get_recent_changes("alice")
        assert change.action == ChangeAction.DELETED
        assert change.performed_by == Actor.SYNC
        assert change.repo_name == "gone"
        assert json.loads(change.previous_state or "{}")["name"] == "gone"


class TestMarks:
    async def test_add_is_idempotent(self, store: CacheStore) -> None:
        await store.add_mark("alice", "a")
        await store.add_mark("alice", "a")
        assert await store.get_marks("alice") == ["a"]

    async def test_remove_missing_is_noop(self, store: CacheStore) -> None:
        await store.remove_mark("alice", "nothing")
        assert await store.get_marks("alice") == []

    async def test_replace_all_and_clear(self, store: CacheStore) -> None:
        await store.add_mark("alice", "old")
        await store.add_mark("bob", "keep")
        await store.replace_all("alice", ["b", "a", "b"])
        assert await store.get_marks("alice") == ["a", "b"]

        await store.clear("alice")
        assert await store.get_marks("alice") == []
        assert await store.get_marks("bob") == ["keep"]

    async def test_remove_marks(self, store: CacheStore) -> None:
        await store.replace_all("alice", ["a", "b", "c"])
        await store.remove_marks("alice", ["a", "c"])
        assert await store.get_marks("alice") == ["b"]


class TestSyncHistory:
    async def test_start_and_complete(self, store: CacheStore, clock: FakeClock) -> None:
        sync_id = await store.record_sync_start("alice")
        clock.advance(seconds=2)
        record = await store.record_sync_complete(
            sync_id, SyncStatus.SUCCESS, fetched=3, inserted=2, updated=1
        )
        assert record.status == SyncStatus.SUCCESS
        assert record.duration_ms == 2000
        assert record.repos_fetched == 3

        last = await store.get_last_successful_sync("alice")
        assert last is not None
        assert last.id == sync_id

    async def test_history_is_newest_first(self, store: CacheStore, clock: FakeClock) -> None:
        first = await store.record_sync_start("alice")
        await store.record_sync_complete(first, SyncStatus.ERROR, error="boom")
        clock.advance(minutes=1)
        second = await store.record_sync_start("alice")

        history = await store.get_sync_history("alice")
        assert [record.id for record in history] == [second, first]
        assert history[0].status == SyncStatus.RUNNING
        assert history[1].error_message == "boom"
        assert await store.get_last_successful_sync("alice") is None

    async def test_complete_unknown_record(self, store: CacheStore) -> None:
        with pytest.raises(RecordNotFoundError):
            await store.record_sync_complete(999, SyncStatus.SUCCESS)


class TestChangeLog:
    async def test_record_and_filter(self, store: CacheStore, clock: FakeClock) -> None:
        repo = make_repo("a")
        await store.record_change("alice", "a", ChangeAction.MARKED)
        clock.advance(seconds=1)
        await store.record_change(
            "alice",
            "a",
            ChangeAction.ARCHIVED,
            previous_state=repo.to_state(),
            new_state={"is_archived": True},
            notes="bulk",
        )

        changes = await store.get_recent_changes("alice")
        assert [change.action for change in changes] == ["archived", "marked"]
        assert json.loads(changes[0].new_state or "{}") == {"is_archived": True}
        assert changes[0].notes == "bulk"

        archived = await store.get_recent_changes("alice", action=ChangeAction.ARCHIVED)
        assert len(archived) == 1


class TestStoreErrors:
    async def test_missing_tables_raise_store_error(self, tmp_path: Path) -> None:
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            store = CacheStore(factory)
            with pytest.raises(StoreError):
                await store.get_all("alice")
        finally:
            await engine.dispose()

    async def test_failed_upsert_rolls_back(
        self, store: CacheStore, db_session: AsyncSession
    ) -> None:
        await store.upsert_all("alice", [make_repo("a")])
        # a second owner whose full_name collides with an existing row
        await db_session.execute(
            text(
                "INSERT INTO repositories (owner, name, full_name, stars, forks, is_archived, "
                "is_fork, is_private, days_since_activity, synced_at) "
                "VALUES ('x', 'y', 'alice/b', 0, 0, 0, 0, 0, 0, '2026-01-01 00:00:00')"
            )
        )
        await db_session.commit()

        with pytest.raises(StoreError):
            await store.upsert_all("alice", [make_repo("a", stars=50), make_repo("b")])

        [repo] = await store.get_all("alice")
        assert repo.stars == 1
