"""Cycle time probability distribution for completion forecasts.

Cycle times are bucketed into adjacent day ranges: 3-day ranges below
10 days, 5-day ranges below 30 days and 10-day ranges beyond. Every bucket
carries its share of the sample and the cumulative confidence up to it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from .models import DayRange, ProbabilityDistribution, Recommendation

logger = logging.getLogger(__name__)

FINE_RANGE_LIMIT_DAYS = 10
FINE_RANGE_DAYS = 3
MEDIUM_RANGE_LIMIT_DAYS = 30
MEDIUM_RANGE_DAYS = 5
WIDE_RANGE_DAYS = 10

RECOMMENDED_CONFIDENCE_BAND = (35, 85)
RECOMMENDED_MIN_PROBABILITY = 5
RECOMMENDED_TOP_RANGES = 2
HEADLINE_CONFIDENCE_BAND = (70, 85)
FALLBACK_CONFIDENCE = 75


def _whole_percent(part: float, total: float) -> int:
    # half-up rounding
    return int(math.floor(part * 100 / total + 0.5))


def generate_day_ranges(max_value: float) -> List[Tuple[int, int]]:
    """Generate adjacent ``[min, max)`` day ranges covering ``0..max_value``.

    The last range's upper bound is capped at ``ceil(max_value) + 1``.
    """
    cap = math.ceil(max_value) + 1
    ranges: List[Tuple[int, int]] = []

    current_min = 0
    while current_min < FINE_RANGE_LIMIT_DAYS and current_min <= max_value:
        current_max = current_min + FINE_RANGE_DAYS
        ranges.append((current_min, min(current_max, cap)))
        current_min = current_max

    while current_min <= max_value:
        width = MEDIUM_RANGE_DAYS if current_min < MEDIUM_RANGE_LIMIT_DAYS else WIDE_RANGE_DAYS
        current_max = current_min + width
        ranges.append((current_min, min(current_max, cap)))
        current_min = current_max

    return ranges


def _mark_recommended(day_ranges: List[DayRange]) -> List[DayRange]:
    by_probability = sorted(
        range(len(day_ranges)), key=lambda position: -day_ranges[position].probability
    )
    top = set(by_probability[:RECOMMENDED_TOP_RANGES])
    low, high = RECOMMENDED_CONFIDENCE_BAND

    return [
        replace(
            day_range,
            is_recommended=position in top
            and low <= day_range.confidence <= high
            and day_range.probability >= RECOMMENDED_MIN_PROBABILITY,
        )
        for position, day_range in enumerate(day_ranges)
    ]


def recommend_window(day_ranges: Sequence[DayRange], sorted_days: Sequence[float]) -> Recommendation:
    """Pick the headline completion window.

    Uses the first range whose cumulative confidence lies in the headline
    band. Otherwise falls back to the nearest-rank 75th percentile of the
    day sample: half of it (rounded down) to its ceiling, at 75% confidence.
    """
    low, high = HEADLINE_CONFIDENCE_BAND
    for day_range in day_ranges:
        if low <= day_range.confidence <= high:
            return Recommendation(
                min_days=day_range.min_days,
                max_days=day_range.max_days,
                confidence_level=day_range.confidence,
            )

    p75_days = sorted_days[math.floor(len(sorted_days) * 0.75)] or 1
    return Recommendation(
        min_days=math.floor(p75_days * 0.5),
        max_days=math.ceil(p75_days),
        confidence_level=FALLBACK_CONFIDENCE,
    )


def calculate_probability_distribution(cycle_time_hours: Sequence[float]) -> Optional[ProbabilityDistribution]:
    """Bucket cycle times (hours) into a day-range probability distribution.

    Returns ``None`` for an empty sample. When the bucket counts do not add
    up to the sample size (for example negative durations from corrupt
    history) the mismatch is logged rather than raised.
    """
    if not cycle_time_hours:
        return None

    sample_size = len(cycle_time_hours)
    days = sorted(hours / 24 for hours in cycle_time_hours)

    day_ranges: List[DayRange] = []
    cumulative = 0
    for range_min, range_max in generate_day_ranges(days[-1]):
        count = sum(1 for value in days if range_min <= value < range_max)
        cumulative += count
        day_ranges.append(
            DayRange(
                min_days=range_min,
                max_days=range_max,
                count=count,
                probability=_whole_percent(count, sample_size),
                confidence=_whole_percent(cumulative, sample_size),
            )
        )

    if cumulative != sample_size:
        logger.warning(
            "Range count mismatch: %d in ranges vs %d samples",
            cumulative,
            sample_size,
            extra={
                "counted": cumulative,
                "sample_size": sample_size,
                "ranges": [day_range.label for day_range in day_ranges],
            },
        )

    day_ranges = _mark_recommended(day_ranges)
    return ProbabilityDistribution(
        day_ranges=tuple(day_ranges),
        recommendation=recommend_window(day_ranges, days),
        sample_size=sample_size,
    )
