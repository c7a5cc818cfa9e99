"""JSON export of the marked repositories."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel

from repjan.services.classifier_service import classify_archive_candidate
from repjan.services.datetime_service import now_utc

if TYPE_CHECKING:
    from collections.abc import Sequence

    from repjan.snapshot import RepositorySnapshot

logger = logging.getLogger(__name__)

EXPORT_FILENAME_FORMAT = "archived-repos-%Y-%m-%d-%H%M%S.json"


class ExportedRepository(BaseModel):
    """One marked repository in an export document."""

    name: str
    full_name: str
    stars: int
    forks: int
    days_since_activity: int
    reason: str
    language: str
    last_push: datetime | None
    is_fork: bool
    is_private: bool


class ExportDocument(BaseModel):
    """Export document written by ``export_marked``."""

    exported_at: datetime
    owner: str
    total_marked: int
    repositories: list[ExportedRepository]


def build_export(
    repos: Sequence[RepositorySnapshot], owner: str, now: datetime
) -> ExportDocument:
    """Build the export document; reasons are recomputed by the classifier."""
    entries = []
    for repo in repos:
        _, reason = classify_archive_candidate(repo)
        entries.append(
            ExportedRepository(
                name=repo.name,
                full_name=repo.full_name,
                stars=repo.stars,
                forks=repo.forks,
                days_since_activity=repo.days_since_activity,
                reason=reason,
                language=repo.primary_language,
                last_push=repo.pushed_at,
                is_fork=repo.is_fork,
                is_private=repo.is_private,
            )
        )
    return ExportDocument(
        exported_at=now,
        owner=owner,
        total_marked=len(entries),
        repositories=entries,
    )


def export_filename(now: datetime) -> str:
    return now.strftime(EXPORT_FILENAME_FORMAT)


def export_marked(
    repos: Sequence[RepositorySnapshot],
    owner: str,
    directory: Path,
    now: datetime | None = None,
) -> Path:
    """Write the marked repositories as indented JSON and return the file path.

    The filename uses local time so it matches what the user sees on their
    clock; ``exported_at`` inside the document is UTC.
    """
    moment = now or now_utc()
    document = build_export(repos, owner, moment)
    directory = directory.expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(moment.astimezone())
    path.write_text(document.model_dump_json(indent=2) + "\n", encoding="utf-8")
    logger.info("Exported %d marked repositories to %s", len(repos), path)
    return path
