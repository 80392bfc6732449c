"""Statistics and formatting helpers for flow metrics reporting.

This module provides utilities for:
- Computing linear-interpolation percentiles, singly or in batches.
- Aggregating the board cycle time percentiles (P50, P75, P85, P95, count).
- Formatting hour-based durations for humans.
- Building a human-readable report for board analytics.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import EmptyDatasetError, InvalidPercentileError
from .models import BoardAnalytics, CycleTimePercentiles

logger = logging.getLogger(__name__)

BOARD_PERCENTILES = (50, 75, 85, 95)


def _validate_percentile(p: float, **details: object) -> None:
    if not 0 <= p <= 100:
        raise InvalidPercentileError(p, details)


def _percentile_of_sorted(sorted_values: Sequence[float], p: float) -> float:
    if p <= 0:
        return sorted_values[0]

    if p >= 100:
        return sorted_values[-1]

    position = (len(sorted_values) - 1) * (p / 100.0)
    lower_index = math.floor(position)
    upper_index = math.ceil(position)

    if lower_index == upper_index:
        return sorted_values[lower_index]

    lower_value = sorted_values[lower_index]
    upper_value = sorted_values[upper_index]
    return lower_value + (upper_value - lower_value) * (position - lower_index)


def calculate_percentile(values: Sequence[float], p: float) -> float:
    """Calculate a percentile using linear interpolation.

    The sample does not need to be sorted; a sorted copy is used.
    - ``p == 0`` returns the minimum, ``p == 100`` the maximum.
    - Otherwise the value at fractional rank ``(p / 100) * (n - 1)`` is
      linearly interpolated between its neighbours.

    Args:
        values: Numeric samples, for example cycle times in hours.
        p: Percentile in the inclusive range ``[0, 100]``.

    Returns:
        Percentile value.

    Raises:
        InvalidPercentileError: If ``p`` is outside ``[0, 100]``.
        EmptyDatasetError: If ``values`` is empty.
    """
    _validate_percentile(p)

    if not values:
        raise EmptyDatasetError(
            "Cannot calculate percentile for an empty sample",
            {"sample_size": 0},
        )

    return _percentile_of_sorted(sorted(values), p)


def calculate_percentiles(values: Sequence[float], percentiles: Iterable[float]) -> Dict[float, float]:
    """Calculate several percentiles against one sorted copy of the sample.

    Every percentile is validated before anything is computed, so one invalid
    value fails the whole call.

    Raises:
        EmptyDatasetError: If ``values`` is empty.
        InvalidPercentileError: If any percentile is outside ``[0, 100]``.
    """
    requested = list(percentiles)

    if not values:
        raise EmptyDatasetError(
            "Cannot calculate percentiles for an empty sample",
            {"sample_size": 0},
        )

    for p in requested:
        _validate_percentile(p, all_percentiles=requested)

    sorted_values = sorted(values)
    result = {p: _percentile_of_sorted(sorted_values, p) for p in requested}

    logger.debug(
        "Calculated percentiles",
        extra={"percentiles": requested, "sample_size": len(sorted_values)},
    )
    return result


def summarize_cycle_times(hours: Sequence[float]) -> CycleTimePercentiles:
    """Compute board percentiles (P50/P75/P85/P95) over cycle times in hours.

    An empty sample yields zero-filled percentiles with ``sample_size == 0``.
    """
    if not hours:
        return empty_percentiles()

    values = calculate_percentiles(hours, BOARD_PERCENTILES)
    return CycleTimePercentiles(
        p50=values[50],
        p75=values[75],
        p85=values[85],
        p95=values[95],
        sample_size=len(hours),
    )


def empty_percentiles() -> CycleTimePercentiles:
    return CycleTimePercentiles(p50=0.0, p75=0.0, p85=0.0, p95=0.0, sample_size=0)


def format_hours(hours: Optional[float]) -> str:
    """Format hours as ``"<h>h (<d>d)"`` with one decimal.

    Returns ``"n/a"`` when ``hours`` is ``None``.
    """
    if hours is None:
        return "n/a"

    return f"{hours:.1f}h ({hours / 24:.1f}d)"


def generate_report(analytics: BoardAnalytics) -> str:
    """Generate a human-readable flow analytics report for a board.

    The report includes issue counts, cycle time percentiles, the probability
    distribution (when available), and the recommended completion window.
    """
    percentiles = analytics.cycle_time_percentiles
    has_samples = percentiles.sample_size > 0

    lines: List[str] = [
        f"Board: {analytics.board_id}",
        "Flow Metrics Report",
        "",
        f"Total issues: {analytics.total_issues}",
        f"Completed issues: {analytics.completed_issues}",
        "",
        "1) Cycle Time (Entry to Done)",
        f"   Samples: {percentiles.sample_size}",
    ]
    for label, value in (
        ("P50", percentiles.p50),
        ("P75", percentiles.p75),
        ("P85", percentiles.p85),
        ("P95", percentiles.p95),
    ):
        lines.append(f"   {label}: {format_hours(value if has_samples else None)}")

    lines.extend(["", "2) Cycle Time Probability"])
    distribution = analytics.cycle_time_probability
    if distribution is None:
        lines.append("   No completed issues.")
    else:
        for day_range in distribution.day_ranges:
            marker = " *" if day_range.is_recommended else ""
            lines.append(
                f"   {day_range.label} days: {day_range.count} issues, "
                f"{day_range.probability}% (cumulative {day_range.confidence}%){marker}"
            )
        recommendation = distribution.recommendation
        lines.append(
            f"   Recommended: {recommendation.min_days}-{recommendation.max_days} days "
            f"({recommendation.confidence_level}% confidence)"
        )

    return "\n".join(lines)
