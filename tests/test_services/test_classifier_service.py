"""Tests for archive-candidate classification."""

from conftest import make_repo
from repjan.services.classifier_service import classify_archive_candidate, is_legacy_language


class TestClassifier:
    def test_active_repo_is_not_candidate(self) -> None:
        assert classify_archive_candidate(make_repo("busy", days=3, stars=10)) == (False, "")

    def test_age_thresholds(self) -> None:
        _, year = classify_archive_candidate(make_repo("a", days=400, stars=1))
        _, two_years = classify_archive_candidate(make_repo("b", days=731, stars=1))
        assert year == "No activity in 1+ year"
        assert two_years == "No activity in 2+ years"

    def test_reasons_are_joined(self) -> None:
        repo = make_repo("f", days=200, stars=0, forks=0, is_fork=True)
        candidate, reasons = classify_archive_candidate(repo)
        assert candidate is True
        assert reasons == "No community engagement; Stale fork"

    def test_legacy_language_is_case_insensitive(self) -> None:
        assert is_legacy_language("PHP")
        assert is_legacy_language("Objective-C")
        assert not is_legacy_language("Python")
