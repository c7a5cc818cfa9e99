"""Render the interactive model as rich ``Text`` blocks."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.text import Text

from repjan.services.classifier_service import classify_archive_candidate
from repjan.services.datetime_service import format_days_ago, humanize_since
from repjan.services.view_service import SortField
from repjan.tui.model import Modal

if TYPE_CHECKING:
    from datetime import datetime

    from repjan.snapshot import RepositorySnapshot
    from repjan.tui.model import Model

NAME_WIDTH = 30
STARS_WIDTH = 7
LANG_WIDTH = 12
PUSH_WIDTH = 14
STATUS_WIDTH = 10
MAX_CONFIRM_ITEMS = 10
MAX_LANGUAGE_ROWS = 15
README_PREVIEW_LINES = 12

ICON_ACTIVE = "●"
ICON_CANDIDATE = "⚠"
ICON_ARCHIVED = "□"

_FOOTER_BINDINGS = [
    ("j/k", "navigate"),
    ("pgup/pgdn", "page"),
    ("space", "mark"),
    ("enter", "details"),
    ("/", "search"),
    ("p", "private"),
    ("x", "archived"),
    ("a", "archive marked"),
    ("s", "sync"),
    ("q", "quit"),
]

_HELP_SECTIONS = [
    (
        "Navigation",
        [
            ("j/k or Up/Dn", "Navigate list"),
            ("PgUp/PgDn", "Page up/down (also Ctrl+U/Ctrl+D)"),
            ("g/G", "Go to top/bottom"),
            ("/", "Search by name"),
        ],
    ),
    (
        "Filtering",
        [
            ("a", "Show all"),
            ("o", "Show old (365+ days)"),
            ("n", "Show no stars"),
            ("f", "Show only forks"),
            ("l", "Language filter"),
            ("p", "Toggle private repos"),
            ("x", "Toggle archived repos"),
        ],
    ),
    ("Sorting", [("1-4", "Sort by Name/Activity/Stars/Language")]),
    (
        "Actions",
        [
            ("Space", "Mark/unmark"),
            ("Shift+A/U", "Mark all visible/unmark all"),
            ("Enter", "View details"),
            ("a", "Archive or unarchive marked repos"),
            ("e", "Export marked to JSON"),
            ("s", "Sync now"),
            ("q", "Quit"),
        ],
    ),
]


def truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    if width <= 3:
        return value[:width]
    return value[: width - 3] + "..."


def status_text(repo: RepositorySnapshot) -> tuple[str, str, str]:
    """(icon, label, style) for a repository's lifecycle status."""
    if repo.is_archived:
        return ICON_ARCHIVED, "Archived", "dim"
    candidate, _ = classify_archive_candidate(repo)
    if candidate:
        return ICON_CANDIDATE, "Candidate", "yellow"
    return ICON_ACTIVE, "Active", "green"


def visibility_label(model: Model) -> str:
    if model.show_private and model.show_archived:
        return "All Repos"
    if model.show_private:
        return "Including Private"
    if model.show_archived:
        return "Public All"
    return "Public Active"


def sync_status(model: Model, now: datetime) -> str:
    if model.last_sync is None:
        return "Not synced"
    return f"Last synced: {humanize_since(model.last_sync, now)}"


def render_header(model: Model) -> Text:
    marked = len(model.marked_repos())
    text = Text()
    text.append(
        f"repjan - {model.owner} ({len(model.visible)} repos, {marked} marked)", style="bold"
    )
    text.append("  [? Help]\n", style="dim")

    if model.show_private:
        text.append(
            "  PRIVATE REPOS VISIBLE - Screenshots may expose sensitive data  \n",
            style="bold white on red",
        )

    text.append(f"{visibility_label(model)} | Filter: {model.filter_kind.label} | ")
    if model.show_private:
        text.append("[P]+PRIVATE!", style="bold red")
    else:
        text.append("[P]rivate", style="dim")
    text.append(" ")
    if model.show_archived:
        text.append("[X]+Archived", style="bold cyan")
    else:
        text.append("[X]Archived", style="dim")
    if model.language:
        text.append(f" | Language: {model.language}", style="magenta")
    text.append("\n")

    text.append("Sort: ")
    for position, field in enumerate(SortField, start=1):
        if position > 1:
            text.append(" ")
        if field is model.sort_field:
            arrow = "↑" if model.ascending else "↓"
            text.append(f"[{position}]{field.label} {arrow}", style="bold reverse")
        else:
            text.append(f"[{position}]{field.label}", style="dim")

    if model.search_mode or model.query:
        suffix = "_" if model.search_mode else ""
        text.append(f"\n/ {model.query} ({len(model.visible)} matches){suffix}", style="cyan")
    return text


def render_table(model: Model) -> Text:
    text = Text()
    header = (
        f"  {'NAME':<{NAME_WIDTH}} {'STARS':>{STARS_WIDTH}} {'LANG':<{LANG_WIDTH}} "
        f"{'LAST PUSH':<{PUSH_WIDTH}} {'STATUS':<{STATUS_WIDTH}} MARK"
    )
    text.append(header, style="bold underline")
    if not model.visible:
        text.append("\nNo repositories to display", style="dim")
        return text

    processing = model.bulk.processing
    for index, repo in enumerate(model.page(), start=model.offset):
        icon, label, icon_style = status_text(repo)
        marked = model.is_marked(repo)
        last_push = format_days_ago(repo.days_since_activity) if repo.pushed_at else "unknown"
        row = (
            f" {truncate(repo.name, NAME_WIDTH):<{NAME_WIDTH}} {repo.stars:>{STARS_WIDTH}} "
            f"{truncate(repo.primary_language or '-', LANG_WIDTH):<{LANG_WIDTH}} "
            f"{truncate(last_push, PUSH_WIDTH):<{PUSH_WIDTH}} {label:<{STATUS_WIDTH}} "
            f"{'[x]' if marked else ''}"
        )
        style = ""
        if marked:
            style = "bold yellow" if processing else "magenta"
        if index == model.cursor:
            style = f"{style} reverse".strip()
        text.append("\n")
        text.append(icon, style=icon_style)
        text.append(row, style=style)
    return text


def render_status_bar(model: Model, now: datetime) -> Text:
    text = Text()
    if model.bulk.processing:
        action = "Archiving" if model.bulk.mode.target_archived else "Unarchiving"
        text.append(
            f"{action} {model.bulk.index}/{model.bulk.total} repositories...", style="bold yellow"
        )
    elif model.syncing:
        text.append("Syncing...", style="bold cyan")
    else:
        text.append(sync_status(model, now), style="dim")

    if model.using_cache:
        text.append(" (cached data)", style="red")
    if model.status_message:
        text.append(" | ", style="dim")
        text.append(model.status_message, style="bold")
    return text


def render_footer(model: Model, now: datetime) -> Text:
    text = Text()
    for position, (key, description) in enumerate(_FOOTER_BINDINGS):
        if position:
            text.append(" | ", style="dim")
        text.append(key, style="bold cyan")
        text.append(f" {description}", style="dim")
    text.append("\n")
    text.append_text(render_status_bar(model, now))
    return text


def render_error(model: Model) -> Text | None:
    if not model.last_error:
        return None
    return Text(f"Error: {model.last_error}", style="bold red")


def render_detail(model: Model) -> Text:
    repo = model.selected
    if repo is None:
        return Text("")
    text = Text()
    text.append(f"Repository Details: {repo.full_name}\n\n", style="bold")
    text.append(f"Description: {repo.description or 'No description'}\n\n")

    text.append("Stats:\n", style="bold")
    text.append(f"  Stars:         {repo.stars}\n")
    text.append(f"  Forks:         {repo.forks}\n")
    text.append(f"  Language:      {repo.primary_language or 'None'}\n")
    text.append(f"  Visibility:    {'Private' if repo.is_private else 'Public'}\n\n")

    text.append("Activity:\n", style="bold")
    if repo.pushed_at is not None:
        pushed = repo.pushed_at.strftime("%Y-%m-%d")
        text.append(f"  Last Push:     {format_days_ago(repo.days_since_activity)} ({pushed})\n")
    else:
        text.append("  Last Push:     Never\n")
    created = repo.created_at.strftime("%Y-%m-%d") if repo.created_at else "Unknown"
    text.append(f"  Created:       {created}\n\n")

    _, label, style = status_text(repo)
    _, reasons = classify_archive_candidate(repo)
    text.append("Archive Analysis:\n", style="bold")
    text.append("  Status:        ")
    text.append(f"{label}\n", style=style)
    text.append(f"  Reasons:       {reasons or 'None'}\n")
    text.append(f"  Marked:        {'Yes' if model.is_marked(repo) else 'No'}\n\n")

    text.append("README:\n", style="bold")
    if model.readme is None:
        text.append("  Loading...\n", style="dim")
    else:
        lines = model.readme.splitlines()
        for line in lines[:README_PREVIEW_LINES]:
            text.append(f"  {line}\n", style="dim")
        if len(lines) > README_PREVIEW_LINES:
            text.append("  ...\n", style="dim")

    text.append("\n[Space] Mark/unmark  [b] Open in browser  [Esc] Close", style="cyan")
    return text


def render_confirm(model: Model) -> Text:
    batch = model.bulk.batch
    verb = model.bulk.mode.value
    plural = "" if len(batch) == 1 else "s"
    text = Text()
    text.append(f"{model.bulk.mode.verb} Confirmation\n", style="bold")
    text.append("-" * 40 + "\n\n")
    text.append(f"You are about to {verb} {len(batch)} repo{plural}:\n\n")
    for repo in batch[:MAX_CONFIRM_ITEMS]:
        text.append(f"  * {repo.full_name}\n")
    if len(batch) > MAX_CONFIRM_ITEMS:
        text.append(f"  ... ({len(batch) - MAX_CONFIRM_ITEMS} more)\n")
    text.append("\nThis action is reversible via the GitHub web UI.\n\n")
    text.append("Continue? [Y/n]", style="bold cyan")
    return text


def render_help() -> Text:
    text = Text()
    text.append("Help - Keyboard Shortcuts\n", style="bold")
    text.append("-" * 55 + "\n")
    for title, bindings in _HELP_SECTIONS:
        text.append(f"{title}:\n", style="dim")
        for key, description in bindings:
            text.append(f"  {key:<13}", style="bold cyan")
            text.append(f"  {description}\n")
        text.append("\n")
    text.append("[Esc] Close", style="bold cyan")
    return text


def render_languages(model: Model) -> Text:
    text = Text()
    text.append("Filter by Language\n", style="bold")
    text.append("-" * 30 + "\n")
    start = max(0, model.language_cursor - MAX_LANGUAGE_ROWS + 1)
    for index, option in enumerate(model.languages[start : start + MAX_LANGUAGE_ROWS], start=start):
        pointer = "> " if index == model.language_cursor else "  "
        line = f"{pointer}{truncate(option.name, 20):<20} {f'({option.count})':>6}\n"
        if index == model.language_cursor:
            text.append(line, style="bold reverse")
        elif model.language and option.name == model.language:
            text.append(line, style="bold cyan")
        else:
            text.append(line)
    if len(model.languages) > start + MAX_LANGUAGE_ROWS:
        text.append("  ...\n", style="dim")
    text.append("-" * 30 + "\n")
    text.append("j/k: Navigate  Enter: Select  Esc: Cancel", style="dim")
    return text


def render_modal(model: Model) -> Text | None:
    """Content of the active modal, or None when no modal is open."""
    if model.modal is Modal.DETAIL:
        return render_detail(model)
    if model.modal is Modal.CONFIRM:
        return render_confirm(model)
    if model.modal is Modal.HELP:
        return render_help()
    if model.modal is Modal.LANGUAGE:
        return render_languages(model)
    return None


def render_main(model: Model, now: datetime) -> Text:
    """Header, error banner, table and footer as one block."""
    text = Text()
    error = render_error(model)
    if error is not None:
        text.append_text(error)
        text.append("\n")
    text.append_text(render_header(model))
    text.append("\n")
    text.append_text(render_table(model))
    text.append("\n")
    text.append_text(render_footer(model, now))
    return text
