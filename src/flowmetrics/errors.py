"""Custom exception types for the Jira flow metrics engine."""

from __future__ import annotations

from typing import Any, Dict, Optional


class FlowMetricsError(Exception):
    """Base exception for all recoverable flow metrics errors."""


class ConfigurationError(FlowMetricsError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(FlowMetricsError):
    """Raised when Jira authentication credentials are unavailable or invalid."""


class ApiError(FlowMetricsError):
    """Raised when a Jira API request fails or returns an unexpected response."""


class DataValidationError(FlowMetricsError):
    """Raised when API payloads or computed flow data do not meet expected constraints."""


class PercentileCalculationError(FlowMetricsError):
    """Raised when a percentile cannot be computed from the given inputs.

    ``code`` identifies the violated constraint so callers can branch on it
    without parsing the message.
    """

    code = "PERCENTILE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details: Dict[str, Any] = dict(details or {})


class EmptyDatasetError(PercentileCalculationError):
    """Raised when a percentile or distribution is requested over an empty sample."""

    code = "EMPTY_DATASET"


class InvalidPercentileError(PercentileCalculationError):
    """Raised when a requested percentile lies outside ``[0, 100]``."""

    code = "INVALID_PERCENTILE"

    def __init__(self, percentile: float, details: Optional[Dict[str, Any]] = None) -> None:
        self.percentile = percentile
        merged = {"percentile": percentile}
        merged.update(details or {})
        super().__init__(
            f"Invalid percentile: {percentile}. Must be between 0 and 100.",
            merged,
        )
