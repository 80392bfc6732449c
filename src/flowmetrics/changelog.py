"""Changelog indexing and per-run changelog caching.

``build_event_log`` turns an unordered event history into an ``EventLog``:
events sorted oldest first plus an index of the first time the issue entered
each state. ``ChangelogRepository`` owns the caches for one analytics run so
a fetched history is reused by every derived calculation.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol, Sequence, Tuple

from .models import ChangelogEvent, EventLog, FetchResult, freeze_index

logger = logging.getLogger(__name__)


class EventHistorySource(Protocol):
    """Collaborator that returns the raw, unsorted history of one issue."""

    def fetch_event_history(self, item_key: str) -> FetchResult[Sequence[ChangelogEvent]]:
        ...


def build_event_log(item_key: str, events: Optional[Iterable[ChangelogEvent]]) -> EventLog:
    """Sort an issue's events and index the first entry into each state.

    Only status changes feed the index. Re-entering a state later keeps the
    earliest timestamp; the later event still stays in ``events``.
    Missing or empty history yields an empty, valid ``EventLog``.
    """
    if not events:
        return EventLog(item_key=item_key)

    # sorted() is stable, so same-instant events keep their source order
    ordered = tuple(sorted(events, key=lambda event: event.occurred_at))

    index: Dict[str, datetime] = {}
    for event in ordered:
        if event.is_status_change and event.to_value and event.to_value not in index:
            index[event.to_value] = event.occurred_at

    return EventLog(item_key=item_key, events=ordered, transition_index=freeze_index(index))


class ChangelogRepository:
    """Run-scoped cache of event logs and state-transition lookups.

    Construct one per analytics run and dispose of it with ``clear()`` or by
    using it as a context manager. Lookups for the same issue are serialized
    by a per-issue lock so a history is fetched at most once even when
    several worker threads ask for it together.
    """

    def __init__(self, source: EventHistorySource) -> None:
        self._source = source
        self._event_logs: Dict[str, EventLog] = {}
        self._transition_memo: Dict[Tuple[str, str], Optional[datetime]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def __enter__(self) -> "ChangelogRepository":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clear()

    def _lock_for(self, item_key: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(item_key)
            if lock is None:
                # re-entrant: find_transition_date calls get_event_log while holding it
                lock = threading.RLock()
                self._locks[item_key] = lock
            return lock

    def get_event_log(self, item_key: str) -> Optional[EventLog]:
        """Return the cached ``EventLog`` for an issue, fetching it on first use.

        Returns ``None`` when the history could not be fetched. Failures are
        not cached, so a later call retries the fetch.
        """
        with self._lock_for(item_key):
            cached = self._event_logs.get(item_key)
            if cached is not None:
                logger.debug("Returning cached changelog", extra={"item_key": item_key})
                return cached

            result = self._source.fetch_event_history(item_key)
            if not result.success:
                logger.warning(
                    "Failed to fetch changelog for issue %s",
                    item_key,
                    extra={"item_key": item_key, "error": result.error},
                )
                return None

            event_log = build_event_log(item_key, result.data)
            self._event_logs[item_key] = event_log
            return event_log

    def find_transition_date(self, item_key: str, state_ids: Iterable[str]) -> Optional[datetime]:
        """Return the earliest first-entry date of the issue into any given state.

        Each ``(issue, state)`` lookup is memoized, including states the issue
        never reached.
        """
        state_ids = list(state_ids)

        with self._lock_for(item_key):
            pending = [
                state_id for state_id in state_ids if (item_key, state_id) not in self._transition_memo
            ]
            if pending:
                event_log = self.get_event_log(item_key)
                if event_log is None:
                    return None
                for state_id in pending:
                    self._transition_memo[(item_key, state_id)] = event_log.transition_index.get(state_id)

            hits = [
                self._transition_memo[(item_key, state_id)]
                for state_id in state_ids
                if self._transition_memo.get((item_key, state_id)) is not None
            ]
        return min(hits) if hits else None

    def was_in_state_by(self, item_key: str, state_ids: Iterable[str], at: datetime) -> bool:
        """Return whether the issue had entered any of ``state_ids`` by ``at``."""
        transition_date = self.find_transition_date(item_key, state_ids)
        if transition_date is None:
            return False
        return transition_date <= at

    def clear(self) -> None:
        """Drop every cached event log and memoized lookup."""
        with self._locks_guard:
            self._event_logs.clear()
            self._transition_memo.clear()
            self._locks.clear()

    @property
    def cached_item_count(self) -> int:
        return len(self._event_logs)
