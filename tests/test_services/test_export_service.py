"""Tests for exporting marked repositories."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from conftest import NOW, make_repo
from repjan.services.export_service import build_export, export_filename, export_marked

if TYPE_CHECKING:
    from pathlib import Path


class TestExport:
    def test_filename_format(self) -> None:
        moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert export_filename(moment) == "archived-repos-2026-01-02-030405.json"

    def test_document_fields(self) -> None:
        repo = make_repo("legacy", days=800, stars=0, forks=0, primary_language="Perl")
        document = build_export([repo], "alice", NOW)
        assert document.total_marked == 1
        entry = document.repositories[0]
        assert entry.full_name == "alice/legacy"
        assert entry.language == "Perl"
        assert "No activity in 2+ years" in entry.reason
        assert "Legacy language, inactive" in entry.reason

    def test_writes_indented_json(self, tmp_path: Path) -> None:
        repos = [make_repo("a"), make_repo("b", is_fork=True, is_private=True)]
        path = export_marked(repos, "alice", tmp_path / "out", NOW)

        assert path.parent == tmp_path / "out"
        assert path.name.startswith("archived-repos-")
        text = path.read_text(encoding="utf-8")
        assert text.startswith("{\n  ")
        payload = json.loads(text)
        assert set(payload) == {"exported_at", "owner", "total_marked", "repositories"}
        assert payload["owner"] == "alice"
        assert payload["total_marked"] == 2
        second = payload["repositories"][1]
        assert set(second) == {
            "name",
            "full_name",
            "stars",
            "forks",
            "days_since_activity",
            "reason",
            "language",
            "last_push",
            "is_fork",
            "is_private",
        }
        assert second["is_fork"] is True
        assert second["is_private"] is True
