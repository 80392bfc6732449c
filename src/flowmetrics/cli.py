"""Command-line argument parsing for the Jira flow metrics engine."""

from __future__ import annotations

import argparse
from datetime import datetime
from typing import Optional, Sequence

from dateutil import parser as dtparser

from .models import as_utc

PERIOD_CHOICES = ("all", "last-15-days", "last-month", "last-3-months", "custom")
LOG_LEVEL_CHOICES = ("DEBUG", "INFO", "WARNING", "ERROR")


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def _iso_datetime(value: str) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    try:
        parsed = dtparser.isoparse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an ISO 8601 date, e.g. 2024-01-31") from exc

    return as_utc(parsed)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for board flow analytics.

    Returns:
        Parsed CLI arguments containing the Jira site, board, time period,
        issue type filter, worker count and log level.
    """
    parser = argparse.ArgumentParser(
        prog="jira-flow-metrics",
        description=(
            "Generate Jira board flow metrics: cycle time percentiles, "
            "time in status and completion forecasts."
        ),
    )

    parser.add_argument(
        "--base-url",
        required=True,
        help="Jira site URL, e.g. https://acme.atlassian.net.",
    )
    parser.add_argument(
        "--board-id",
        required=True,
        help="Jira agile board ID to analyze.",
    )
    parser.add_argument(
        "--period",
        choices=PERIOD_CHOICES,
        default="all",
        help="Time window applied to issues by board entry date (default: all).",
    )
    parser.add_argument(
        "--start",
        type=_iso_datetime,
        default=None,
        help="Start of a custom period (ISO 8601).",
    )
    parser.add_argument(
        "--end",
        type=_iso_datetime,
        default=None,
        help="End of a custom period (ISO 8601).",
    )
    parser.add_argument(
        "--issue-type",
        dest="issue_types",
        action="append",
        default=[],
        help="Issue type name to include (repeatable; default: all types).",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int,
        default=1,
        help="Number of issues processed concurrently (default: 1).",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVEL_CHOICES,
        default="WARNING",
        help="Logging verbosity (default: WARNING).",
    )

    return parser.parse_args(argv)
