"""Best-effort per-issue batch execution."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Sequence, TypeVar

from .models import Issue

logger = logging.getLogger(__name__)

R = TypeVar("R")


def map_issues(
    issues: Sequence[Issue],
    compute: Callable[[Issue], R],
    fallback: Callable[[Issue], R],
    max_workers: int = 1,
) -> List[R]:
    """Apply ``compute`` to every issue, isolating per-issue failures.

    Results keep the input order. An exception raised for one issue is logged
    and replaced by ``fallback(issue)``; it never stops the other issues.
    With ``max_workers <= 1`` issues are processed sequentially.
    """
    if max_workers <= 1 or len(issues) <= 1:
        return [_run_one(issue, compute, fallback) for issue in issues]

    results: Dict[int, R] = {}
    with ThreadPoolExecutor(max_workers=min(max_workers, len(issues))) as executor:
        future_to_position = {
            executor.submit(_run_one, issue, compute, fallback): position
            for position, issue in enumerate(issues)
        }
        for future in as_completed(future_to_position):
            results[future_to_position[future]] = future.result()

    return [results[position] for position in range(len(issues))]


def _run_one(issue: Issue, compute: Callable[[Issue], R], fallback: Callable[[Issue], R]) -> R:
    try:
        return compute(issue)
    except Exception:
        logger.exception("Flow calculation failed for issue %s", issue.key, extra={"item_key": issue.key})
        return fallback(issue)
