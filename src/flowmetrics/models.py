"""Domain models for Jira flow analytics.

Every model is an immutable value. Derivations always build new instances;
nothing in the engine mutates a model after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Generic, Mapping, Optional, Tuple, TypeVar

T = TypeVar("T")

STATUS_FIELD = "status"


@dataclass(frozen=True, slots=True)
class Status:
    """Canonical ``{id, label, category}`` triple for an item state."""

    id: str
    label: str
    category: str = ""


@dataclass(frozen=True, slots=True)
class Issue:
    """Represents the minimal issue data required for flow calculations."""

    key: str
    created: datetime
    status: Status
    issue_type: str = ""
    summary: str = ""


@dataclass(frozen=True, slots=True)
class ChangelogEvent:
    """One historical field change recorded for an issue."""

    occurred_at: datetime
    field: str
    from_value: Optional[str] = None
    to_value: Optional[str] = None
    from_label: Optional[str] = None
    to_label: Optional[str] = None

    @property
    def is_status_change(self) -> bool:
        return self.field == STATUS_FIELD


@dataclass(frozen=True, slots=True)
class EventLog:
    """An issue's chronologically sorted history plus its transition index.

    ``transition_index`` maps a state id to the timestamp of the first event
    that moved the issue into that state.
    """

    item_key: str
    events: Tuple[ChangelogEvent, ...] = ()
    transition_index: Mapping[str, datetime] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def status_events(self) -> Tuple[ChangelogEvent, ...]:
        return tuple(event for event in self.events if event.is_status_change)


@dataclass(frozen=True, slots=True)
class FetchResult(Generic[T]):
    """Success/failure envelope returned by external collaborators."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TrackedStates:
    """Pre-resolved state classification for one board."""

    entry_states: FrozenSet[str] = frozenset()
    done_states: FrozenSet[str] = frozenset()
    tracked_states: FrozenSet[str] = frozenset()


@dataclass(frozen=True, slots=True)
class KeyDates:
    """First entry into a start state and first arrival at a done state."""

    item_key: str
    entry_date: Optional[datetime]
    done_date: Optional[datetime]
    calculated_at: datetime


class Provenance(str, Enum):
    """How the start date of a cycle time was obtained."""

    OBSERVED_ENTRY = "observed-entry"
    CREATION_FALLBACK = "creation-fallback"


@dataclass(frozen=True, slots=True)
class CycleTime:
    """Elapsed time from entering tracked work to reaching a done state."""

    start_date: datetime
    end_date: datetime
    duration_hours: float
    is_estimated: bool
    provenance: Provenance

    @property
    def duration_days(self) -> float:
        return self.duration_hours / 24


@dataclass(frozen=True, slots=True)
class StatusInterval:
    """One sojourn of an issue in one tracked state.

    ``exit_date`` is ``None`` while the issue is still in the state.
    """

    state_id: str
    state_label: str
    entry_date: datetime
    exit_date: Optional[datetime]
    hours_spent: float

    @property
    def days_spent(self) -> float:
        return self.hours_spent / 24


@dataclass(frozen=True, slots=True)
class IssueCycleTimeResult:
    """Per-issue cycle time outcome; ``cycle_time`` is ``None`` when not done."""

    issue_key: str
    board_id: str
    cycle_time: Optional[CycleTime]
    calculated_at: datetime


@dataclass(frozen=True, slots=True)
class IssueStatusTimeResult:
    """Per-issue dwell intervals over the board's tracked states."""

    issue_key: str
    board_id: str
    status_times: Tuple[StatusInterval, ...]
    calculated_at: datetime


@dataclass(frozen=True, slots=True)
class CycleTimePercentiles:
    """Board-level cycle time percentiles in hours."""

    p50: float
    p75: float
    p85: float
    p95: float
    sample_size: int


@dataclass(frozen=True, slots=True)
class DayRange:
    """One bucket of the cycle time probability distribution."""

    min_days: int
    max_days: int
    count: int
    probability: int
    confidence: int
    is_recommended: bool = False

    @property
    def label(self) -> str:
        return f"{self.min_days}-{self.max_days}"


@dataclass(frozen=True, slots=True)
class Recommendation:
    """Headline "most likely completion window" for a board."""

    min_days: int
    max_days: int
    confidence_level: int


@dataclass(frozen=True, slots=True)
class ProbabilityDistribution:
    """Adjacent day ranges with cumulative confidence plus a recommendation."""

    day_ranges: Tuple[DayRange, ...]
    recommendation: Recommendation
    sample_size: int

    @property
    def counted(self) -> int:
        """Number of samples that landed in a day range."""
        return sum(day_range.count for day_range in self.day_ranges)


@dataclass(frozen=True, slots=True)
class IssueDetail:
    """Per-issue row of the board analytics result."""

    key: str
    summary: str
    issue_type: str
    status: Status
    url: str
    cycle_time_days: float
    status_times: Tuple[StatusInterval, ...] = ()


@dataclass(frozen=True, slots=True)
class BoardAnalytics:
    """Board-level flow analytics for one run."""

    board_id: str
    total_issues: int
    completed_issues: int
    cycle_time_percentiles: CycleTimePercentiles
    cycle_time_probability: Optional[ProbabilityDistribution]
    issue_details: Tuple[IssueDetail, ...]
    calculated_at: datetime


class TimePeriod(str, Enum):
    """Supported analytics time windows."""

    LAST_15_DAYS = "last-15-days"
    LAST_MONTH = "last-month"
    LAST_3_MONTHS = "last-3-months"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class TimePeriodFilter:
    """Time window applied to issues by entry date (or creation date)."""

    period: TimePeriod
    start: Optional[datetime] = None
    end: Optional[datetime] = None


def freeze_index(index: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return a read-only view over a transition index."""
    return MappingProxyType(dict(index))


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware datetime; naive values are taken as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
