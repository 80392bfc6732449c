"""Jira REST API client for flow metrics data retrieval."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from dateutil import parser as dtparser
from requests.auth import HTTPBasicAuth

from .config import Config
from .errors import ApiError, DataValidationError
from .models import ChangelogEvent, FetchResult, Issue, Status, TrackedStates

logger = logging.getLogger(__name__)

BACKLOG_COLUMN = "backlog"


@dataclass(frozen=True, slots=True)
class BoardColumn:
    """One board column and the status ids mapped to it."""

    name: str
    status_ids: Tuple[str, ...]


def parse_jira_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse Jira ISO8601 timestamps (``+0000`` or ``Z`` offsets) into aware datetimes."""
    if not value:
        return None

    parsed = dtparser.isoparse(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_status(value: Any) -> Status:
    """Normalize a Jira status payload into the canonical ``Status`` triple.

    Jira sends either an object (``id``, ``name``, ``statusCategory``) or,
    in some payloads, a bare status name.
    """
    if isinstance(value, str):
        return Status(id=value, label=value)

    if not isinstance(value, dict):
        return Status(id="", label="")

    category = value.get("statusCategory") or {}
    category_name = category.get("name", "") if isinstance(category, dict) else str(category)
    status_id = str(value.get("id") or value.get("name") or "")
    return Status(id=status_id, label=str(value.get("name") or status_id), category=category_name)


def _issue_type_name(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("name") or "")
    return str(value or "")


class JiraClient:
    """Small, typed client for the Jira platform and agile REST APIs."""

    _ISSUE_PAGE_SIZE = 100
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30
    _ISSUE_FIELDS = ("summary", "status", "issuetype", "created")

    def __init__(self, config: Config, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated Jira API client.

        Args:
            config: Validated runtime configuration including site URL and credentials.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._base_url = config.base_url

        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(config.email, config.api_token)
        self._session.headers.update({"Accept": "application/json"})

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a path below the site root."""
        return f"{self._base_url}/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GET request with retry logic for 429/5xx responses.

        Raises:
            ApiError: If the request repeatedly fails, returns HTTP >= 400,
                or does not return a JSON object.
        """
        url = self._build_url(path)
        query = dict(params or {})

        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.get(url, params=query, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError(f"Jira request failed after retries: GET {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                time.sleep(self._extract_backoff_seconds(response, attempt))
                continue

            if status_code >= 400:
                raise ApiError(
                    "Jira API request failed: "
                    f"GET {url} returned {status_code} - {response.text}"
                )

            try:
                payload = response.json()
            except ValueError as exc:
                raise ApiError(f"Jira API returned invalid JSON: GET {url}") from exc

            if not isinstance(payload, dict):
                raise ApiError(f"Jira API returned unexpected payload shape: GET {url}")

            return payload

        raise ApiError(f"Jira request failed after retries: GET {url}") from last_error

    def issue_url(self, issue_key: str) -> str:
        return self._build_url(f"browse/{issue_key}")

    def list_board_issues(self, board_id: str) -> List[Issue]:
        """List every issue on an agile board using ``startAt`` pagination."""
        issues: List[Issue] = []
        start_at = 0

        while True:
            payload = self._get_json(
                f"rest/agile/1.0/board/{board_id}/issue",
                params={
                    "fields": ",".join(self._ISSUE_FIELDS),
                    "startAt": start_at,
                    "maxResults": self._ISSUE_PAGE_SIZE,
                },
            )

            page_items = payload.get("issues", [])
            for item in page_items:
                issues.append(self._parse_issue(board_id, item))

            start_at += self._ISSUE_PAGE_SIZE
            total = int(payload.get("total") or 0)
            if not page_items or start_at >= total:
                break

        logger.info("Fetched board issues", extra={"board_id": board_id, "issues_total": len(issues)})
        return issues

    def _parse_issue(self, board_id: str, item: Dict[str, Any]) -> Issue:
        fields = item.get("fields") or {}
        key = item.get("key")
        created = parse_jira_datetime(fields.get("created"))

        if not key or created is None:
            raise DataValidationError(
                "Jira issue payload is missing required fields: "
                f"board_id={board_id}, payload={item}"
            )

        return Issue(
            key=str(key),
            created=created,
            status=normalize_status(fields.get("status")),
            issue_type=_issue_type_name(fields.get("issuetype")),
            summary=str(fields.get("summary") or ""),
        )

    def fetch_board_columns(self, board_id: str) -> List[BoardColumn]:
        """Fetch the board's column configuration with mapped status ids.

        Raises:
            ApiError: If the request fails or the board has no column configuration.
        """
        payload = self._get_json(f"rest/agile/1.0/board/{board_id}/configuration")
        column_config = payload.get("columnConfig") or {}
        columns = column_config.get("columns")

        if not columns:
            raise ApiError(f"Board {board_id} configuration not found or invalid.")

        return [
            BoardColumn(
                name=str(column.get("name") or ""),
                status_ids=tuple(
                    str(status["id"]) for status in column.get("statuses") or [] if status.get("id")
                ),
            )
            for column in columns
        ]

    def resolve_tracked_states(self, board_id: str) -> TrackedStates:
        """Classify the board's statuses into entry, done and tracked states.

        - Entry: statuses of the first column, or of the second column when
          the first one is named "Backlog".
        - Done: statuses of the last column.
        - Tracked: statuses mapped to any column.
        """
        columns = self.fetch_board_columns(board_id)

        entry_column: Optional[BoardColumn] = columns[0]
        if entry_column.name.strip().lower() == BACKLOG_COLUMN:
            entry_column = columns[1] if len(columns) > 1 else None
            if entry_column is None:
                logger.warning(
                    "Board %s has only a Backlog column", board_id, extra={"board_id": board_id}
                )

        tracked = frozenset(status_id for column in columns for status_id in column.status_ids)
        states = TrackedStates(
            entry_states=frozenset(entry_column.status_ids if entry_column else ()),
            done_states=frozenset(columns[-1].status_ids),
            tracked_states=tracked,
        )

        logger.info(
            "Resolved board status configuration",
            extra={
                "board_id": board_id,
                "entry_states": sorted(states.entry_states),
                "done_states": sorted(states.done_states),
                "tracked_states": sorted(states.tracked_states),
            },
        )
        return states

    def fetch_event_history(self, item_key: str) -> FetchResult[Sequence[ChangelogEvent]]:
        """Fetch the raw changelog of an issue.

        Never raises for API failures (including "not found"); the failure is
        reported through ``FetchResult.success``.
        """
        try:
            payload = self._get_json(f"rest/api/3/issue/{item_key}", params={"expand": "changelog"})
            events = self._parse_changelog(payload)
        except (ApiError, ValueError) as exc:
            return FetchResult(success=False, error=str(exc))

        return FetchResult(success=True, data=events)

    def _parse_changelog(self, payload: Dict[str, Any]) -> List[ChangelogEvent]:
        changelog = payload.get("changelog") or {}
        events: List[ChangelogEvent] = []

        for history in changelog.get("histories") or []:
            occurred_at = parse_jira_datetime(history.get("created"))
            if occurred_at is None:
                continue

            for item in history.get("items") or []:
                events.append(
                    ChangelogEvent(
                        occurred_at=occurred_at,
                        field=str(item.get("field") or ""),
                        from_value=item.get("from") or None,
                        to_value=item.get("to") or None,
                        from_label=item.get("fromString") or None,
                        to_label=item.get("toString") or None,
                    )
                )

        return events

