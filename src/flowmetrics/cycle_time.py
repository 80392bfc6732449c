"""Cycle time extraction for Jira issues.

Cycle time runs from an issue's first entry into a start state to its first
arrival at a done state. When no start transition exists the creation date is
used instead and the result is flagged as estimated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .batch import map_issues
from .changelog import ChangelogRepository
from .key_dates import compute_key_dates
from .models import CycleTime, Issue, IssueCycleTimeResult, KeyDates, Provenance

logger = logging.getLogger(__name__)

DONE_CATEGORY = "Done"


def compute_cycle_time(issue: Issue, key_dates: KeyDates) -> Optional[CycleTime]:
    """Derive the cycle time of an issue from its key dates.

    Business logic:
    - No done date means the issue is incomplete and has no cycle time.
    - Start is the entry date, falling back to ``issue.created``.
    - Duration is ``done_date - start`` in hours and is not clamped.

    A negative duration points at inconsistent upstream history; it is
    returned as is and logged as a data-quality warning.
    """
    if key_dates.done_date is None:
        return None

    observed = key_dates.entry_date is not None
    start_date = key_dates.entry_date if observed else issue.created
    duration_hours = (key_dates.done_date - start_date).total_seconds() / 3600

    if duration_hours < 0:
        logger.warning(
            "Negative cycle time for issue %s",
            issue.key,
            extra={"item_key": issue.key, "duration_hours": duration_hours},
        )

    provenance = Provenance.OBSERVED_ENTRY if observed else Provenance.CREATION_FALLBACK
    logger.debug(
        "Computed cycle time",
        extra={"item_key": issue.key, "duration_hours": duration_hours, "provenance": provenance.value},
    )

    return CycleTime(
        start_date=start_date,
        end_date=key_dates.done_date,
        duration_hours=duration_hours,
        is_estimated=not observed,
        provenance=provenance,
    )


def cycle_time_result(issue: Issue, board_id: str, key_dates: KeyDates) -> IssueCycleTimeResult:
    """Wrap ``compute_cycle_time`` into a per-issue result record."""
    return IssueCycleTimeResult(
        issue_key=issue.key,
        board_id=board_id,
        cycle_time=compute_cycle_time(issue, key_dates),
        calculated_at=datetime.now(timezone.utc),
    )


def _empty_result(issue: Issue, board_id: str) -> IssueCycleTimeResult:
    return IssueCycleTimeResult(
        issue_key=issue.key,
        board_id=board_id,
        cycle_time=None,
        calculated_at=datetime.now(timezone.utc),
    )


def calculate_issue_cycle_time(
    repository: ChangelogRepository,
    issue: Issue,
    board_id: str,
    entry_states: Iterable[str],
    done_states: Iterable[str],
) -> IssueCycleTimeResult:
    """Fetch (or reuse) an issue's changelog and compute its cycle time."""
    key_dates = compute_key_dates(repository, issue, entry_states, done_states)
    return cycle_time_result(issue, board_id, key_dates)


def calculate_issues_cycle_time(
    repository: ChangelogRepository,
    issues: Sequence[Issue],
    board_id: str,
    entry_states: Iterable[str],
    done_states: Iterable[str],
    max_workers: int = 1,
) -> List[IssueCycleTimeResult]:
    """Compute cycle times for many issues, isolating per-issue failures."""
    entry_states = frozenset(entry_states)
    done_states = frozenset(done_states)

    results = map_issues(
        issues,
        lambda issue: calculate_issue_cycle_time(repository, issue, board_id, entry_states, done_states),
        lambda issue: _empty_result(issue, board_id),
        max_workers=max_workers,
    )

    logger.info(
        "Completed cycle time calculation",
        extra={
            "board_id": board_id,
            "issues_total": len(issues),
            "with_cycle_time": sum(1 for result in results if result.cycle_time is not None),
        },
    )
    return results


def filter_completed_issues(issues: Sequence[Issue], done_states: Iterable[str]) -> List[Issue]:
    """Keep issues whose current status is a done state or in the Done category."""
    done_states = frozenset(done_states)
    return [
        issue
        for issue in issues
        if issue.status.id in done_states or issue.status.category == DONE_CATEGORY
    ]


def filter_completed_results(results: Sequence[IssueCycleTimeResult]) -> List[IssueCycleTimeResult]:
    return [result for result in results if result.cycle_time is not None]


def extract_cycle_times(results: Sequence[IssueCycleTimeResult]) -> List[float]:
    """Return cycle time samples in hours for results that have one."""
    return [result.cycle_time.duration_hours for result in results if result.cycle_time is not None]


def extract_all_column_state_ids(*state_groups: Iterable[str]) -> List[str]:
    """Merge state id groups into one de-duplicated list, preserving first-seen order."""
    merged: List[str] = []
    for group in state_groups:
        for state_id in group:
            if state_id not in merged:
                merged.append(state_id)
    return merged
