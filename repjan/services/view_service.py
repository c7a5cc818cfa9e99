"""Filter, search and sort pipeline for the repository list."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from repjan.snapshot import RepositorySnapshot

STALE_DAYS = 365
NO_LANGUAGE = "None"
ALL_LANGUAGES = "All Languages"


class FilterKind(StrEnum):
    """Category filter applied after the visibility gate."""

    ALL = "all"
    STALE = "stale"
    NO_STARS = "no_stars"
    FORKS = "forks"

    @property
    def label(self) -> str:
        return _FILTER_LABELS[self]


_FILTER_LABELS = {
    FilterKind.ALL: "All",
    FilterKind.STALE: "Old (>1yr)",
    FilterKind.NO_STARS: "No Stars",
    FilterKind.FORKS: "Forks",
}


class SortField(StrEnum):
    NAME = "name"
    ACTIVITY = "activity"
    STARS = "stars"
    LANGUAGE = "language"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def default_ascending(self) -> bool:
        """Name and language start ascending; activity and stars start descending.

        Descending activity lists the longest-idle repositories first.
        """
        return self in (SortField.NAME, SortField.LANGUAGE)


@dataclass(frozen=True)
class LanguageOption:
    name: str
    count: int


def _passes_visibility(repo: RepositorySnapshot, show_private: bool, show_archived: bool) -> bool:
    if repo.is_archived and not show_archived:
        return False
    return not (repo.is_private and not show_private)


def _passes_category(repo: RepositorySnapshot, filter_kind: FilterKind) -> bool:
    if filter_kind is FilterKind.STALE:
        return repo.days_since_activity > STALE_DAYS
    if filter_kind is FilterKind.NO_STARS:
        return repo.stars == 0
    if filter_kind is FilterKind.FORKS:
        return repo.is_fork
    return True


def _passes_language(repo: RepositorySnapshot, language: str) -> bool:
    if not language:
        return True
    if language == NO_LANGUAGE:
        return repo.primary_language == ""
    return repo.primary_language == language


def filter_repos(
    repos: Sequence[RepositorySnapshot],
    filter_kind: FilterKind = FilterKind.ALL,
    language: str = "",
    *,
    show_private: bool = False,
    show_archived: bool = False,
) -> list[RepositorySnapshot]:
    """Apply the visibility gate, then the category filter, then the language filter.

    Private and archived repositories are hidden unless explicitly shown.
    An empty language disables the language filter; ``NO_LANGUAGE`` matches
    repositories without a primary language.
    """
    return [
        repo
        for repo in repos
        if _passes_visibility(repo, show_private, show_archived)
        and _passes_category(repo, filter_kind)
        and _passes_language(repo, language)
    ]


def search_repos(repos: Sequence[RepositorySnapshot], query: str) -> list[RepositorySnapshot]:
    """Case-insensitive substring match on the repository name."""
    if not query:
        return list(repos)
    needle = query.lower()
    return [repo for repo in repos if needle in repo.name.lower()]


_SORT_KEYS: dict[SortField, Callable[[RepositorySnapshot], object]] = {
    SortField.NAME: lambda repo: repo.name.lower(),
    # ascending activity lists the most recently active repositories first
    SortField.ACTIVITY: lambda repo: repo.days_since_activity,
    SortField.STARS: lambda repo: repo.stars,
    SortField.LANGUAGE: lambda repo: repo.primary_language.lower(),
}


def sort_repos(
    repos: Sequence[RepositorySnapshot], field: SortField, ascending: bool = True
) -> list[RepositorySnapshot]:
    """Return a stably sorted copy; equal keys keep their input order in both directions."""
    return sorted(repos, key=_SORT_KEYS[field], reverse=not ascending)  # type: ignore[arg-type]


def render(
    repos: Sequence[RepositorySnapshot],
    *,
    filter_kind: FilterKind = FilterKind.ALL,
    language: str = "",
    query: str = "",
    show_private: bool = False,
    show_archived: bool = False,
    sort_field: SortField = SortField.ACTIVITY,
    ascending: bool = True,
) -> list[RepositorySnapshot]:
    """Produce the ordered list to display. The input is never mutated."""
    visible = filter_repos(
        repos,
        filter_kind,
        language,
        show_private=show_private,
        show_archived=show_archived,
    )
    visible = search_repos(visible, query)
    return sort_repos(visible, sort_field, ascending)


def language_options(repos: Sequence[RepositorySnapshot]) -> list[LanguageOption]:
    """Options for the language picker.

    ``ALL_LANGUAGES`` comes first with the count of non-archived repositories,
    followed by each language ordered by count (descending) then name.
    Repositories without a language are grouped under ``NO_LANGUAGE``.
    """
    counts: Counter[str] = Counter()
    total = 0
    for repo in repos:
        if repo.is_archived:
            continue
        total += 1
        counts[repo.primary_language or NO_LANGUAGE] += 1

    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [LanguageOption(ALL_LANGUAGES, total)] + [
        LanguageOption(name, count) for name, count in ordered
    ]
