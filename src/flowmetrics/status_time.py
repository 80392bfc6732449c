"""Time-in-status reconstruction over a board's tracked states.

The replay records only *entries* into tracked states. Moves into untracked
states are skipped, so time spent in an untracked state is attributed to the
tracked state the issue was in before it. Each interval ends when the next
tracked entry begins; the last interval stays open.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .batch import map_issues
from .changelog import ChangelogRepository
from .models import EventLog, Issue, IssueStatusTimeResult, StatusInterval

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Entry:
    at: datetime
    state_id: str
    state_label: str


def infer_initial_state(issue: Issue, event_log: EventLog) -> Tuple[str, str]:
    """Return ``(state_id, label)`` of the state the issue was created in.

    Rule: the ``from_value`` of the first status change in the sorted log is
    the creation-time state. When the log has no status changes at all the
    issue never moved, so its current status is the creation-time state.
    A first status change without a ``from_value`` gives an empty id.
    """
    status_events = event_log.status_events
    if not status_events:
        return issue.status.id, issue.status.label

    first = status_events[0]
    state_id = first.from_value or ""
    return state_id, first.from_label or state_id


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def reconstruct_status_intervals(
    issue: Issue,
    event_log: EventLog,
    tracked_states: Iterable[str],
    now: Optional[datetime] = None,
) -> List[StatusInterval]:
    """Replay an issue's status changes into contiguous dwell intervals.

    Returns one interval per entry into a tracked state, oldest first. Every
    interval's ``exit_date`` is the next interval's ``entry_date``; the last
    one has ``exit_date=None`` and is measured up to ``now`` (never negative).
    An issue that never touched a tracked state yields an empty list.
    """
    tracked: FrozenSet[str] = frozenset(tracked_states)
    now = now or datetime.now(timezone.utc)

    entries: List[_Entry] = []

    initial_id, initial_label = infer_initial_state(issue, event_log)
    if initial_id in tracked:
        entries.append(_Entry(at=issue.created, state_id=initial_id, state_label=initial_label))

    for event in event_log.status_events:
        if event.to_value and event.to_value in tracked:
            entries.append(
                _Entry(
                    at=event.occurred_at,
                    state_id=event.to_value,
                    state_label=event.to_label or event.to_value,
                )
            )

    # stable: the creation seed stays ahead of a same-instant event
    entries.sort(key=lambda entry: entry.at)

    intervals: List[StatusInterval] = []
    for position, entry in enumerate(entries):
        following = entries[position + 1] if position + 1 < len(entries) else None
        exit_date = following.at if following is not None else None
        hours = _hours_between(entry.at, exit_date if exit_date is not None else now)
        intervals.append(
            StatusInterval(
                state_id=entry.state_id,
                state_label=entry.state_label,
                entry_date=entry.at,
                exit_date=exit_date,
                hours_spent=max(0.0, hours),
            )
        )

    return intervals


def compute_status_intervals(
    repository: ChangelogRepository,
    issue: Issue,
    tracked_states: Iterable[str],
    now: Optional[datetime] = None,
) -> List[StatusInterval]:
    """Compute dwell intervals for one issue; a failed fetch gives ``[]``."""
    event_log = repository.get_event_log(issue.key)
    if event_log is None:
        logger.warning(
            "No changelog available for status times of issue %s",
            issue.key,
            extra={"item_key": issue.key},
        )
        return []

    intervals = reconstruct_status_intervals(issue, event_log, tracked_states, now=now)
    logger.debug(
        "Calculated status times",
        extra={"item_key": issue.key, "intervals": len(intervals)},
    )
    return intervals


def calculate_issues_status_times(
    repository: ChangelogRepository,
    issues: Sequence[Issue],
    board_id: str,
    tracked_states: Iterable[str],
    now: Optional[datetime] = None,
    max_workers: int = 1,
) -> List[IssueStatusTimeResult]:
    """Compute dwell intervals for many issues, isolating per-issue failures."""
    tracked = frozenset(tracked_states)
    logger.info(
        "Starting status time calculation",
        extra={"board_id": board_id, "issues_total": len(issues), "tracked_states": sorted(tracked)},
    )

    def _compute(issue: Issue) -> IssueStatusTimeResult:
        return IssueStatusTimeResult(
            issue_key=issue.key,
            board_id=board_id,
            status_times=tuple(compute_status_intervals(repository, issue, tracked, now=now)),
            calculated_at=datetime.now(timezone.utc),
        )

    def _empty(issue: Issue) -> IssueStatusTimeResult:
        return IssueStatusTimeResult(
            issue_key=issue.key,
            board_id=board_id,
            status_times=(),
            calculated_at=datetime.now(timezone.utc),
        )

    return map_issues(issues, _compute, _empty, max_workers=max_workers)
