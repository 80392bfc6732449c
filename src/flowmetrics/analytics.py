"""Board-level flow analytics.

Orchestrates one analytics run for a board: fetch issues and state
configuration, resolve key dates once per issue, derive cycle times and
status times from the shared changelog cache, and aggregate percentiles and
the probability distribution. A run always yields a well-formed
``BoardAnalytics``; failures degrade to an empty result.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from .changelog import ChangelogRepository, EventHistorySource
from .cycle_time import (
    cycle_time_result,
    extract_cycle_times,
    filter_completed_issues,
    filter_completed_results,
)
from .distribution import calculate_probability_distribution
from .errors import ApiError
from .key_dates import compute_issues_key_dates
from .models import (
    BoardAnalytics,
    Issue,
    IssueCycleTimeResult,
    IssueDetail,
    IssueStatusTimeResult,
    KeyDates,
    TimePeriod,
    TimePeriodFilter,
    TrackedStates,
    as_utc,
)
from .stats import empty_percentiles, summarize_cycle_times
from .status_time import calculate_issues_status_times

logger = logging.getLogger(__name__)


class BoardDataSource(EventHistorySource, Protocol):
    """Collaborator providing board issues, state configuration and changelogs."""

    def list_board_issues(self, board_id: str) -> List[Issue]:
        ...

    def resolve_tracked_states(self, board_id: str) -> TrackedStates:
        ...

    def issue_url(self, issue_key: str) -> str:
        ...


def create_empty_analytics(board_id: str, calculated_at: Optional[datetime] = None) -> BoardAnalytics:
    """Return the well-formed result used when analytics cannot be computed."""
    return BoardAnalytics(
        board_id=board_id,
        total_issues=0,
        completed_issues=0,
        cycle_time_percentiles=empty_percentiles(),
        cycle_time_probability=None,
        issue_details=(),
        calculated_at=calculated_at or datetime.now(timezone.utc),
    )


def resolve_time_window(
    time_period_filter: TimePeriodFilter,
    now: datetime,
) -> Optional[Tuple[datetime, datetime]]:
    """Return the inclusive ``(start, end)`` window for a time period filter.

    ``None`` means no filtering (a custom period without both bounds).
    """
    period = time_period_filter.period

    if period is TimePeriod.LAST_15_DAYS:
        return now - timedelta(days=15), now
    if period is TimePeriod.LAST_MONTH:
        return now - relativedelta(months=1), now
    if period is TimePeriod.LAST_3_MONTHS:
        return now - relativedelta(months=3), now
    if time_period_filter.start is None or time_period_filter.end is None:
        return None
    return as_utc(time_period_filter.start), as_utc(time_period_filter.end)


def filter_by_time_period(
    issues: Sequence[Issue],
    key_dates: Dict[str, KeyDates],
    time_period_filter: Optional[TimePeriodFilter],
    now: datetime,
) -> List[Issue]:
    """Keep issues whose entry date (or creation date) falls inside the window."""
    if time_period_filter is None:
        return list(issues)

    window = resolve_time_window(time_period_filter, now)
    if window is None:
        return list(issues)

    start, end = window
    kept: List[Issue] = []
    for issue in issues:
        dates = key_dates.get(issue.key)
        reference = dates.entry_date if dates is not None and dates.entry_date else issue.created
        if start <= reference <= end:
            kept.append(issue)
    return kept


def filter_by_issue_types(issues: Sequence[Issue], issue_types: Optional[Iterable[str]]) -> List[Issue]:
    """Keep issues of the given types; no types keeps every issue."""
    wanted = frozenset(issue_types or ())
    if not wanted:
        return list(issues)
    return [issue for issue in issues if issue.issue_type and issue.issue_type in wanted]


def calculate_board_analytics(
    source: BoardDataSource,
    board_id: str,
    time_period_filter: Optional[TimePeriodFilter] = None,
    issue_types: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
    max_workers: int = 1,
) -> BoardAnalytics:
    """Calculate cycle time percentiles and distribution for a board.

    Never raises: a failed issue listing, a failed state configuration or any
    unexpected error produces ``create_empty_analytics``.
    """
    now = now or datetime.now(timezone.utc)
    logger.info("Starting analytics calculation", extra={"board_id": board_id})

    try:
        all_issues = source.list_board_issues(board_id)
        states = source.resolve_tracked_states(board_id)

        with ChangelogRepository(source) as repository:
            return _analyze_board(
                source, repository, board_id, all_issues, states, time_period_filter, issue_types, now, max_workers
            )
    except ApiError as exc:
        logger.error(
            "Failed to fetch board data for board %s: %s",
            board_id,
            exc,
            extra={"board_id": board_id},
        )
    except Exception:
        logger.exception("Error calculating analytics for board %s", board_id, extra={"board_id": board_id})

    return create_empty_analytics(board_id, now)


def _analyze_board(
    source: BoardDataSource,
    repository: ChangelogRepository,
    board_id: str,
    all_issues: Sequence[Issue],
    states: TrackedStates,
    time_period_filter: Optional[TimePeriodFilter],
    issue_types: Optional[Iterable[str]],
    now: datetime,
    max_workers: int,
) -> BoardAnalytics:
    typed_issues = filter_by_issue_types(all_issues, issue_types)
    done_issues = filter_completed_issues(typed_issues, states.done_states)

    key_dates = {
        dates.item_key: dates
        for dates in compute_issues_key_dates(
            repository, done_issues, states.entry_states, states.done_states, max_workers=max_workers
        )
    }
    completed_issues = filter_by_time_period(done_issues, key_dates, time_period_filter, now)

    cycle_time_results = filter_completed_results(
        [cycle_time_result(issue, board_id, key_dates[issue.key]) for issue in completed_issues]
    )
    cycle_times = extract_cycle_times(cycle_time_results)

    measured_keys = {result.issue_key for result in cycle_time_results}
    measured = [issue for issue in completed_issues if issue.key in measured_keys]
    status_results = calculate_issues_status_times(
        repository, measured, board_id, states.tracked_states, now=now, max_workers=max_workers
    )

    analytics = BoardAnalytics(
        board_id=board_id,
        total_issues=len(all_issues),
        completed_issues=len(completed_issues),
        cycle_time_percentiles=summarize_cycle_times(cycle_times),
        cycle_time_probability=calculate_probability_distribution(cycle_times),
        issue_details=_issue_details(source, measured, cycle_time_results, status_results),
        calculated_at=now,
    )

    logger.info(
        "Analytics calculation completed",
        extra={
            "board_id": board_id,
            "total_issues": analytics.total_issues,
            "completed_issues": analytics.completed_issues,
            "with_cycle_time": len(cycle_time_results),
            "p50_hours": analytics.cycle_time_percentiles.p50,
            "p95_hours": analytics.cycle_time_percentiles.p95,
        },
    )
    return analytics


def _issue_details(
    source: BoardDataSource,
    issues: Sequence[Issue],
    cycle_time_results: Sequence[IssueCycleTimeResult],
    status_results: Sequence[IssueStatusTimeResult],
) -> Tuple[IssueDetail, ...]:
    cycle_times = {result.issue_key: result.cycle_time for result in cycle_time_results}
    status_times = {result.issue_key: result.status_times for result in status_results}

    details = [
        IssueDetail(
            key=issue.key,
            summary=issue.summary,
            issue_type=issue.issue_type,
            status=issue.status,
            url=source.issue_url(issue.key),
            cycle_time_days=cycle_times[issue.key].duration_days,
            status_times=status_times.get(issue.key, ()),
        )
        for issue in issues
        if cycle_times.get(issue.key) is not None
    ]
    return tuple(sorted(details, key=lambda detail: detail.key))
