"""Tests for the bulk archive/unarchive state machine."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import make_repo
from repjan.services.bulk_action_service import (
    MIXED_BATCH_MESSAGE,
    BulkAction,
    BulkMode,
    BulkState,
    MixedBatchError,
    classify_batch,
)


def _run(action: BulkAction, failures: set[int]) -> None:
    while not action.finished:
        index = action.index
        action.record(index, "boom" if index in failures else None)


class TestClassifyBatch:
    def test_all_active_is_archive(self) -> None:
        assert classify_batch([make_repo("a"), make_repo("b")]) is BulkMode.ARCHIVE

    def test_all_archived_is_unarchive(self) -> None:
        repos = [make_repo("a", is_archived=True), make_repo("b", is_archived=True)]
        assert classify_batch(repos) is BulkMode.UNARCHIVE

    def test_mixed_batch_rejected(self) -> None:
        with pytest.raises(MixedBatchError, match=MIXED_BATCH_MESSAGE):
            classify_batch([make_repo("a"), make_repo("b", is_archived=True)])


class TestTransitions:
    def test_begin_enters_confirming(self) -> None:
        action = BulkAction()
        mode = action.begin([make_repo("a")])
        assert mode is BulkMode.ARCHIVE
        assert action.state is BulkState.CONFIRMING
        assert action.total == 1

    def test_mixed_batch_leaves_state_unchanged(self) -> None:
        action = BulkAction()
        with pytest.raises(MixedBatchError):
            action.begin([make_repo("a"), make_repo("b", is_archived=True)])
        assert action.state is BulkState.IDLE
        assert action.batch == []

    def test_empty_batch_rejected(self) -> None:
        with pytest.raises(ValueError, match="no repositories"):
            BulkAction().begin([])

    def test_cancel_returns_to_idle(self) -> None:
        action = BulkAction()
        action.begin([make_repo("a")])
        action.cancel()
        assert action.state is BulkState.IDLE
        assert not action.active

    def test_cannot_begin_twice(self) -> None:
        action = BulkAction()
        action.begin([make_repo("a")])
        with pytest.raises(RuntimeError):
            action.begin([make_repo("b")])

    def test_out_of_order_step_rejected(self) -> None:
        action = BulkAction()
        action.begin([make_repo("a"), make_repo("b")])
        action.confirm()
        with pytest.raises(RuntimeError, match="expecting step 0"):
            action.record(1)

    def test_complete_before_finished_rejected(self) -> None:
        action = BulkAction()
        action.begin([make_repo("a")])
        action.confirm()
        with pytest.raises(RuntimeError):
            action.complete()


class TestBatchOutcome:
    def test_middle_failure_does_not_halt_batch(self) -> None:
        repos = [make_repo("one"), make_repo("two"), make_repo("three")]
        action = BulkAction()
        action.begin(repos)
        action.confirm()

        seen = []
        while (repo := action.current()) is not None:
            seen.append(repo.name)
            action.record(action.index, "HTTP 500" if repo.name == "two" else None)
        summary = action.complete()

        assert seen == ["one", "two", "three"]
        assert (summary.succeeded, summary.failed, len(summary.errors)) == (2, 1, 1)
        assert summary.errors[0].full_name == "alice/two"
        assert summary.succeeded_names == {"alice/one", "alice/three"}
        assert summary.status_message == "Archive completed: 2 succeeded, 1 failed"
        assert action.state is BulkState.COMPLETE

    def test_status_message_without_failures(self) -> None:
        action = BulkAction()
        action.begin([make_repo("a", is_archived=True)])
        action.confirm()
        _run(action, set())
        assert action.complete().status_message == "Successfully unarchived 1 repo"

    def test_can_start_again_after_complete(self) -> None:
        action = BulkAction()
        action.begin([make_repo("a")])
        action.confirm()
        _run(action, set())
        action.complete()
        action.begin([make_repo("b")])
        assert action.state is BulkState.CONFIRMING
        assert action.succeeded == 0

    @settings(max_examples=200, deadline=None)
    @given(
        size=st.integers(min_value=1, max_value=30),
        data=st.data(),
    )
    def test_tallies_add_up(self, size: int, data: st.DataObject) -> None:
        failures = data.draw(st.sets(st.integers(min_value=0, max_value=size - 1)))
        action = BulkAction()
        action.begin([make_repo(f"r{index}") for index in range(size)])
        action.confirm()
        _run(action, failures)
        summary = action.complete()
        assert summary.succeeded + summary.failed == summary.total == size
        assert summary.failed == len(failures) == len(summary.errors)
