"""Key-date resolution: first entry into work and first arrival at done."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .batch import map_issues
from .changelog import ChangelogRepository
from .models import EventLog, Issue, KeyDates

logger = logging.getLogger(__name__)


def _earliest_entry(event_log: EventLog, state_ids: Iterable[str]) -> Optional[datetime]:
    earliest: Optional[datetime] = None
    for state_id in state_ids:
        candidate = event_log.transition_index.get(state_id)
        if candidate is not None and (earliest is None or candidate < earliest):
            earliest = candidate
    return earliest


def resolve_key_dates(
    event_log: EventLog,
    entry_states: Iterable[str],
    done_states: Iterable[str],
    calculated_at: Optional[datetime] = None,
) -> KeyDates:
    """Resolve key dates from an already built ``EventLog``.

    Whichever start state the issue reached first wins, regardless of the
    order of ``entry_states``; the same holds for ``done_states``. Either date
    is ``None`` when the issue never entered any state of its set.
    Performs no network access.
    """
    return KeyDates(
        item_key=event_log.item_key,
        entry_date=_earliest_entry(event_log, entry_states),
        done_date=_earliest_entry(event_log, done_states),
        calculated_at=calculated_at or datetime.now(timezone.utc),
    )


def empty_key_dates(issue: Issue) -> KeyDates:
    return KeyDates(
        item_key=issue.key,
        entry_date=None,
        done_date=None,
        calculated_at=datetime.now(timezone.utc),
    )


def compute_key_dates(
    repository: ChangelogRepository,
    issue: Issue,
    entry_states: Iterable[str],
    done_states: Iterable[str],
) -> KeyDates:
    """Compute key dates for one issue using the run's changelog cache.

    Lookups go through the repository's transition memo. A failed changelog
    fetch yields key dates with both dates ``None``.
    """
    if repository.get_event_log(issue.key) is None:
        return empty_key_dates(issue)

    return KeyDates(
        item_key=issue.key,
        entry_date=repository.find_transition_date(issue.key, entry_states),
        done_date=repository.find_transition_date(issue.key, done_states),
        calculated_at=datetime.now(timezone.utc),
    )


def compute_issues_key_dates(
    repository: ChangelogRepository,
    issues: Sequence[Issue],
    entry_states: Iterable[str],
    done_states: Iterable[str],
    max_workers: int = 1,
) -> List[KeyDates]:
    """Compute key dates for many issues, one result per issue in input order."""
    entry_states = frozenset(entry_states)
    done_states = frozenset(done_states)
    logger.info("Calculating key dates", extra={"issues_total": len(issues)})

    results = map_issues(
        issues,
        lambda issue: compute_key_dates(repository, issue, entry_states, done_states),
        empty_key_dates,
        max_workers=max_workers,
    )

    logger.info(
        "Calculated key dates",
        extra={
            "issues_total": len(issues),
            "with_entry_date": sum(1 for result in results if result.entry_date is not None),
            "with_done_date": sum(1 for result in results if result.done_date is not None),
        },
    )
    return results
