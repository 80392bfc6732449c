"""Tests for cycle time extraction logic."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from flowmetrics.changelog import ChangelogRepository
from flowmetrics.cycle_time import (
    calculate_issue_cycle_time,
    calculate_issues_cycle_time,
    compute_cycle_time,
    extract_all_column_state_ids,
    extract_cycle_times,
    filter_completed_issues,
    filter_completed_results,
)
from flowmetrics.models import ChangelogEvent, FetchResult, Issue, KeyDates, Provenance, Status


def _utc(day: int, hour: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


def _make_issue(
    key: str = "ISSUE-1",
    created: datetime | None = None,
    status_id: str = "10003",
    category: str = "Done",
) -> Issue:
    return Issue(
        key=key,
        created=created or _utc(1, 9),
        status=Status(id=status_id, label="Status", category=category),
        issue_type="Story",
    )


def _key_dates(entry: datetime | None, done: datetime | None, key: str = "ISSUE-1") -> KeyDates:
    return KeyDates(item_key=key, entry_date=entry, done_date=done, calculated_at=_utc(20))


def _status(at: datetime, from_value: str, to_value: str) -> ChangelogEvent:
    return ChangelogEvent(occurred_at=at, field="status", from_value=from_value, to_value=to_value)


def test_compute_cycle_time_with_observed_entry_returns_hours():
    """Verify cycle time from To Do to Done is 77 hours with observed provenance."""
    issue = _make_issue(created=_utc(1, 9))

    cycle_time = compute_cycle_time(issue, _key_dates(_utc(2, 10), _utc(5, 15)))

    assert cycle_time is not None
    assert cycle_time.duration_hours == 77
    assert cycle_time.duration_days == 77 / 24
    assert cycle_time.provenance is Provenance.OBSERVED_ENTRY
    assert cycle_time.is_estimated is False
    assert cycle_time.start_date == _utc(2, 10)
    assert cycle_time.end_date == _utc(5, 15)


def test_compute_cycle_time_without_entry_falls_back_to_creation():
    """Verify a missing entry date uses the creation date and flags an estimate."""
    issue = _make_issue(created=_utc(1, 8))

    cycle_time = compute_cycle_time(issue, _key_dates(None, _utc(3, 16)))

    assert cycle_time is not None
    assert cycle_time.start_date == _utc(1, 8)
    assert cycle_time.is_estimated is True
    assert cycle_time.provenance is Provenance.CREATION_FALLBACK
    assert cycle_time.duration_hours == 56


def test_compute_cycle_time_without_done_date_returns_none():
    """Verify incomplete issues have no cycle time, with or without entry date."""
    issue = _make_issue()

    assert compute_cycle_time(issue, _key_dates(_utc(2), None)) is None
    assert compute_cycle_time(issue, _key_dates(None, None)) is None


def test_compute_cycle_time_keeps_negative_duration_and_warns(caplog):
    """Verify inconsistent history surfaces a negative duration plus a warning."""
    issue = _make_issue()

    with caplog.at_level(logging.WARNING, logger="flowmetrics.cycle_time"):
        cycle_time = compute_cycle_time(issue, _key_dates(_utc(5), _utc(4)))

    assert cycle_time is not None
    assert cycle_time.duration_hours == -24
    assert "Negative cycle time" in caplog.text


def test_calculate_issue_cycle_time_fetches_changelog_once_per_issue():
    """Verify single-issue calculation resolves dates from the cached changelog."""
    source = Mock()
    source.fetch_event_history.return_value = FetchResult(
        success=True,
        data=[_status(_utc(5, 15), "10001", "10003"), _status(_utc(2, 10), "1", "10001")],
    )
    repository = ChangelogRepository(source)

    result = calculate_issue_cycle_time(repository, _make_issue(), "42", ["10001"], ["10003"])
    calculate_issue_cycle_time(repository, _make_issue(), "42", ["10001"], ["10003"])

    assert result.board_id == "42"
    assert result.cycle_time is not None
    assert result.cycle_time.duration_hours == 77
    assert source.fetch_event_history.call_count == 1


def test_calculate_issues_cycle_time_isolates_failures():
    """Verify one failing issue yields an empty result without stopping the batch."""
    def _fetch(key: str):
        if key == "BROKEN-1":
            raise RuntimeError("unexpected payload")
        return FetchResult(success=True, data=[_status(_utc(2), "1", "10001"), _status(_utc(4), "10001", "10003")])

    source = Mock()
    source.fetch_event_history.side_effect = _fetch
    issues = [_make_issue("OK-1"), _make_issue("BROKEN-1"), _make_issue("OK-2")]

    for workers in (1, 3):
        results = calculate_issues_cycle_time(
            ChangelogRepository(source), issues, "42", ["10001"], ["10003"], max_workers=workers
        )

        assert [result.issue_key for result in results] == ["OK-1", "BROKEN-1", "OK-2"]
        assert results[1].cycle_time is None
        assert results[0].cycle_time.duration_hours == 48
        assert results[2].cycle_time.duration_hours == 48


def test_filter_completed_issues_by_done_state_or_category():
    """Verify completed issues match a done status id or the Done category."""
    in_done_state = _make_issue("A-1", status_id="10003", category="In Progress")
    done_category = _make_issue("A-2", status_id="77", category="Done")
    open_issue = _make_issue("A-3", status_id="10001", category="To Do")

    completed = filter_completed_issues([in_done_state, done_category, open_issue], ["10003"])

    assert [issue.key for issue in completed] == ["A-1", "A-2"]


def test_extract_cycle_times_and_filter_skip_incomplete_results():
    """Verify sample extraction keeps only results with a cycle time."""
    source = Mock()
    source.fetch_event_history.side_effect = lambda key: FetchResult(
        success=True,
        data=[_status(_utc(2), "1", "10003")] if key == "DONE-1" else [],
    )
    issues = [_make_issue("DONE-1", created=_utc(1)), _make_issue("OPEN-1")]

    results = calculate_issues_cycle_time(ChangelogRepository(source), issues, "42", ["10001"], ["10003"])

    assert [result.issue_key for result in filter_completed_results(results)] == ["DONE-1"]
    assert extract_cycle_times(results) == [24.0]


def test_extract_all_column_state_ids_deduplicates_in_order():
    """Verify column state ids are merged without duplicates."""
    assert extract_all_column_state_ids(["1", "2"], ["2", "3"], ["1"]) == ["1", "2", "3"]
