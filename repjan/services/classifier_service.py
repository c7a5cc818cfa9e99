"""Heuristic archive-candidate classification."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repjan.snapshot import RepositorySnapshot

LEGACY_LANGUAGES = frozenset({"php", "coffeescript", "perl", "actionscript", "objective-c"})


def is_legacy_language(language: str) -> bool:
    """Return True if the language is considered legacy."""
    return language.lower() in LEGACY_LANGUAGES


def classify_archive_candidate(repo: RepositorySnapshot) -> tuple[bool, str]:
    """Decide whether a repository looks like an archive candidate.

    Returns ``(True, reasons)`` with reasons joined by ``"; "`` when any
    criterion matches, ``(False, "")`` otherwise.
    """
    reasons: list[str] = []

    # Age (higher threshold first)
    if repo.days_since_activity > 730:
        reasons.append("No activity in 2+ years")
    elif repo.days_since_activity > 365:
        reasons.append("No activity in 1+ year")

    if repo.stars == 0 and repo.forks == 0:
        reasons.append("No community engagement")

    if repo.is_fork and repo.days_since_activity > 180:
        reasons.append("Stale fork")

    if is_legacy_language(repo.primary_language) and repo.days_since_activity > 365:
        reasons.append("Legacy language, inactive")

    if not reasons:
        return False, ""
    return True, "; ".join(reasons)
