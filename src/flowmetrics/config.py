"""Configuration parsing and validation for the Jira flow metrics engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from .errors import AuthenticationError, ConfigurationError
from .models import TimePeriod, TimePeriodFilter, as_utc


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the flow metrics engine."""

    base_url: str
    board_id: str
    email: str
    api_token: str
    time_period: Optional[TimePeriodFilter] = None
    issue_types: Tuple[str, ...] = ()
    max_workers: int = 1


def _build_time_period(
    period: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
) -> Optional[TimePeriodFilter]:
    if period is None or period == "all":
        return None

    try:
        time_period = TimePeriod(period)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for 'period': {period!r}.") from exc

    start, end = as_utc(start), as_utc(end)

    if time_period is TimePeriod.CUSTOM:
        if start is None or end is None:
            raise ConfigurationError("A custom period requires both 'start' and 'end'.")
        if start > end:
            raise ConfigurationError("Invalid custom period: 'start' must not be after 'end'.")

    return TimePeriodFilter(period=time_period, start=start, end=end)


def load_config(
    base_url: str,
    board_id: str,
    period: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    issue_types: Tuple[str, ...] = (),
    max_workers: int = 1,
) -> Config:
    """Build and validate application configuration.

    Args:
        base_url: Jira site URL, for example ``https://acme.atlassian.net``.
        board_id: Jira agile board identifier.
        period: ``all`` or one of the ``TimePeriod`` values.
        start: Inclusive start of a custom period.
        end: Inclusive end of a custom period.
        issue_types: Issue type names to keep; empty keeps every type.
        max_workers: Number of issues processed concurrently.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If an argument is missing or invalid.
        AuthenticationError: If ``JIRA_EMAIL`` or ``JIRA_API_TOKEN`` is not configured.
    """
    base_url = (base_url or "").strip().rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigurationError("Invalid value for 'base_url': expected an http(s) URL.")

    board_id = (board_id or "").strip()
    if not board_id:
        raise ConfigurationError("Missing required value for 'board_id'.")

    if max_workers <= 0:
        raise ConfigurationError("Invalid value for 'max_workers': expected an integer greater than 0.")

    time_period = _build_time_period(period, start, end)

    email: str = os.getenv("JIRA_EMAIL", "").strip()
    api_token: str = os.getenv("JIRA_API_TOKEN", "").strip()
    if not email or not api_token:
        raise AuthenticationError(
            "Missing required Jira credentials. "
            "Set the 'JIRA_EMAIL' and 'JIRA_API_TOKEN' environment variables before running."
        )

    return Config(
        base_url=base_url,
        board_id=board_id,
        email=email,
        api_token=api_token,
        time_period=time_period,
        issue_types=tuple(name.strip() for name in issue_types if name.strip()),
        max_workers=max_workers,
    )
