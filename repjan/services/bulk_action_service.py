"""Sequential archive/unarchive state machine.

The machine itself performs no I/O. The caller asks it for the next item,
performs one remote call, reports the outcome with ``record()`` and repeats
until ``finished``. Each step is scheduled as its own task so the terminal
keeps handling input while a long batch runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from repjan.snapshot import RepositorySnapshot

logger = logging.getLogger(__name__)

MIXED_BATCH_MESSAGE = "Cannot mix archived and unarchived repos"


class BulkMode(StrEnum):
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"

    @property
    def target_archived(self) -> bool:
        """Archived flag a repository has after a successful call."""
        return self is BulkMode.ARCHIVE

    @property
    def verb(self) -> str:
        return "Archive" if self is BulkMode.ARCHIVE else "Unarchive"


class BulkState(StrEnum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    PROCESSING = "processing"
    COMPLETE = "complete"


class MixedBatchError(ValueError):
    """Raised when a batch mixes archived and non-archived repositories."""


@dataclass(frozen=True)
class BulkStepError:
    full_name: str
    message: str


@dataclass(frozen=True)
class BulkSummary:
    """Final tallies of a completed batch."""

    mode: BulkMode
    total: int
    succeeded: int
    failed: int
    errors: list[BulkStepError]
    succeeded_names: frozenset[str]

    @property
    def status_message(self) -> str:
        if self.failed:
            return f"{self.mode.verb} completed: {self.succeeded} succeeded, {self.failed} failed"
        plural = "" if self.succeeded == 1 else "s"
        return f"Successfully {self.mode.value}d {self.succeeded} repo{plural}"


def classify_batch(repos: Iterable[RepositorySnapshot]) -> BulkMode:
    """ARCHIVE if nothing is archived, UNARCHIVE if everything is, else raise."""
    states = {repo.is_archived for repo in repos}
    if states == {True}:
        return BulkMode.UNARCHIVE
    if len(states) > 1:
        raise MixedBatchError(MIXED_BATCH_MESSAGE)
    return BulkMode.ARCHIVE


@dataclass
class BulkAction:
    """``Idle -> Confirming -> Processing(i) -> Complete``."""

    state: BulkState = BulkState.IDLE
    mode: BulkMode = BulkMode.ARCHIVE
    batch: list[RepositorySnapshot] = field(default_factory=list)
    index: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[BulkStepError] = field(default_factory=list)
    succeeded_names: set[str] = field(default_factory=set)

    @property
    def total(self) -> int:
        return len(self.batch)

    @property
    def active(self) -> bool:
        return self.state in (BulkState.CONFIRMING, BulkState.PROCESSING)

    @property
    def processing(self) -> bool:
        return self.state is BulkState.PROCESSING

    @property
    def finished(self) -> bool:
        return self.state is BulkState.PROCESSING and self.index >= self.total

    def begin(self, marked: Iterable[RepositorySnapshot]) -> BulkMode:
        """Snapshot the marked batch and enter ``Confirming``.

        A mixed batch raises ``MixedBatchError`` and leaves the state unchanged.
        """
        if self.active:
            msg = f"bulk action already {self.state.value}"
            raise RuntimeError(msg)
        batch = list(marked)
        if not batch:
            msg = "no repositories marked"
            raise ValueError(msg)
        mode = classify_batch(batch)
        self._reset()
        self.mode = mode
        self.batch = batch
        self.state = BulkState.CONFIRMING
        return mode

    def cancel(self) -> None:
        """Leave ``Confirming`` without touching anything."""
        if self.state is not BulkState.CONFIRMING:
            msg = f"cannot cancel while {self.state.value}"
            raise RuntimeError(msg)
        self._reset()

    def confirm(self) -> None:
        """Advance to ``Processing(0)``."""
        if self.state is not BulkState.CONFIRMING:
            msg = f"cannot confirm while {self.state.value}"
            raise RuntimeError(msg)
        self.state = BulkState.PROCESSING
        self.index = 0
        logger.debug("Starting %s of %d repositories", self.mode.value, self.total)

    def current(self) -> RepositorySnapshot | None:
        """The item for the next step, or None when the batch is exhausted."""
        if not self.processing or self.index >= self.total:
            return None
        return self.batch[self.index]

    def record(self, index: int, error: str | None = None) -> None:
        """Tally the outcome of step ``index`` and move to the next item.

        Failures are recorded and never halt the batch.
        """
        if not self.processing:
            msg = f"cannot record a step while {self.state.value}"
            raise RuntimeError(msg)
        if index != self.index:
            msg = f"step {index} reported while expecting step {self.index}"
            raise RuntimeError(msg)
        repo = self.batch[index]
        if error is None:
            self.succeeded += 1
            self.succeeded_names.add(repo.full_name)
        else:
            self.failed += 1
            self.errors.append(BulkStepError(repo.full_name, error))
        logger.debug(
            "%s step %d/%d for %s: %s",
            self.mode.verb,
            index + 1,
            self.total,
            repo.full_name,
            "ok" if error is None else error,
        )
        self.index += 1

    def complete(self) -> BulkSummary:
        """Finish the batch and return the final tallies."""
        if not self.finished:
            msg = "batch has unprocessed items"
            raise RuntimeError(msg)
        self.state = BulkState.COMPLETE
        return BulkSummary(
            mode=self.mode,
            total=self.total,
            succeeded=self.succeeded,
            failed=self.failed,
            errors=list(self.errors),
            succeeded_names=frozenset(self.succeeded_names),
        )

    def _reset(self) -> None:
        self.state = BulkState.IDLE
        self.batch = []
        self.index = 0
        self.succeeded = 0
        self.failed = 0
        self.errors = []
        self.succeeded_names = set()
