"""Tests for Jira API client behavior with mocked HTTP."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from flowmetrics.config import Config
from flowmetrics.errors import ApiError, DataValidationError
from flowmetrics.jira_client import BoardColumn, JiraClient, normalize_status, parse_jira_datetime
from flowmetrics.models import Status


def _build_client() -> JiraClient:
    config = Config(
        base_url="https://acme.atlassian.net",
        board_id="42",
        email="dev@acme.test",
        api_token="api-token",
    )
    return JiraClient(config=config)


def _response(status_code: int, payload: dict | None = None, text: str = "", headers: dict | None = None):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {}
    return response


def _issue_item(number: int, status: dict | None = None) -> dict:
    return {
        "key": f"FLOW-{number}",
        "fields": {
            "summary": f"Issue {number}",
            "created": "2024-01-01T09:00:00.000+0000",
            "issuetype": {"name": "Story"},
            "status": status or {"id": "10003", "name": "Done", "statusCategory": {"name": "Done"}},
        },
    }


def _column(name: str, *status_ids: str) -> dict:
    return {"name": name, "statuses": [{"id": status_id} for status_id in status_ids]}


def test_parse_jira_datetime_handles_jira_offsets():
    """Verify Jira offsets without a colon and Z suffixes parse to aware datetimes."""
    parsed = parse_jira_datetime("2024-01-02T10:30:00.000+0200")

    assert parsed == datetime(2024, 1, 2, 8, 30, tzinfo=timezone.utc)
    assert parsed.utcoffset() == timedelta(hours=2)
    assert parse_jira_datetime("2024-01-02T10:30:00Z") == datetime(2024, 1, 2, 10, 30, tzinfo=timezone.utc)
    assert parse_jira_datetime(None) is None


def test_normalize_status_accepts_objects_and_names():
    """Verify status payloads of either shape become a canonical status triple."""
    assert normalize_status(
        {"id": "10002", "name": "In Progress", "statusCategory": {"name": "In Progress"}}
    ) == Status(id="10002", label="In Progress", category="In Progress")
    assert normalize_status("Done") == Status(id="Done", label="Done")
    assert normalize_status(None) == Status(id="", label="")


def test_get_json_retries_on_429_and_succeeds():
    """Verify _get_json retries after HTTP 429 and eventually returns JSON payload."""
    client = _build_client()
    first = _response(429, headers={"Retry-After": "2"})
    second = _response(200, payload={"issues": []})

    client._session.get = Mock(side_effect=[first, second])

    with patch("flowmetrics.jira_client.time.sleep") as sleep_mock:
        payload = client._get_json("rest/agile/1.0/board/42/issue")

    assert payload == {"issues": []}
    assert client._session.get.call_count == 2
    assert client._session.get.call_args.args[0] == "https://acme.atlassian.net/rest/agile/1.0/board/42/issue"
    sleep_mock.assert_called_once_with(2)


def test_get_json_retries_on_5xx_and_raises_after_max_retries():
    """Verify _get_json retries retryable server errors and raises ApiError after limit."""
    client = _build_client()
    server_error = _response(503, text="service unavailable")
    client._session.get = Mock(side_effect=[server_error] * client._MAX_RETRIES)

    with patch("flowmetrics.jira_client.time.sleep") as sleep_mock:
        with pytest.raises(ApiError):
            client._get_json("rest/agile/1.0/board/42/issue")

    assert client._session.get.call_count == client._MAX_RETRIES
    assert sleep_mock.call_count == client._MAX_RETRIES - 1


def test_get_json_retries_connection_errors():
    """Verify transport errors are retried before a request succeeds."""
    client = _build_client()
    client._session.get = Mock(
        side_effect=[requests.ConnectionError("reset"), _response(200, payload={"ok": True})]
    )

    with patch("flowmetrics.jira_client.time.sleep") as sleep_mock:
        payload = client._get_json("rest/api/3/issue/FLOW-1")

    assert payload == {"ok": True}
    sleep_mock.assert_called_once_with(1)


def test_get_json_client_error_raises_without_retry():
    """Verify non-retryable HTTP errors fail immediately."""
    client = _build_client()
    client._session.get = Mock(return_value=_response(401, text="unauthorized"))

    with pytest.raises(ApiError, match="401"):
        client._get_json("rest/agile/1.0/board/42/issue")

    assert client._session.get.call_count == 1


def test_list_board_issues_uses_start_at_pagination():
    """Verify issue listing pages with startAt/maxResults until the total is reached."""
    client = _build_client()
    first_page = {"issues": [_issue_item(i) for i in range(1, 101)], "total": 102}
    second_page = {"issues": [_issue_item(101), _issue_item(102)], "total": 102}
    client._get_json = Mock(side_effect=[first_page, second_page])

    issues = client.list_board_issues("42")

    assert len(issues) == 102
    assert issues[0].key == "FLOW-1"
    assert issues[0].issue_type == "Story"
    assert issues[0].status == Status(id="10003", label="Done", category="Done")
    assert issues[0].created == datetime(2024, 1, 1, 9, tzinfo=timezone.utc)

    first_call, second_call = client._get_json.call_args_list
    assert first_call.args[0] == "rest/agile/1.0/board/42/issue"
    assert first_call.kwargs["params"]["startAt"] == 0
    assert first_call.kwargs["params"]["maxResults"] == client._ISSUE_PAGE_SIZE
    assert second_call.kwargs["params"]["startAt"] == client._ISSUE_PAGE_SIZE


def test_list_board_issues_missing_created_raises_data_validation_error():
    """Verify malformed issue payloads are rejected."""
    client = _build_client()
    item = _issue_item(1)
    del item["fields"]["created"]
    client._get_json = Mock(return_value={"issues": [item], "total": 1})

    with pytest.raises(DataValidationError):
        client.list_board_issues("42")


def test_fetch_board_columns_without_configuration_raises_api_error():
    """Verify a board without column configuration is an API error."""
    client = _build_client()
    client._get_json = Mock(return_value={"columnConfig": {"columns": []}})

    with pytest.raises(ApiError):
        client.fetch_board_columns("42")


def test_resolve_tracked_states_skips_backlog_column():
    """Verify entry states come from the second column when the first is Backlog."""
    client = _build_client()
    client._get_json = Mock(
        return_value={
            "columnConfig": {
                "columns": [
                    _column("Backlog", "1"),
                    _column("Selected", "10001"),
                    _column("In Progress", "10002", "10004"),
                    _column("Done", "10003"),
                ]
            }
        }
    )

    states = client.resolve_tracked_states("42")

    assert states.entry_states == frozenset({"10001"})
    assert states.done_states == frozenset({"10003"})
    assert states.tracked_states == frozenset({"1", "10001", "10002", "10004", "10003"})


def test_resolve_tracked_states_uses_first_column_without_backlog():
    """Verify the first column is the entry column when it is not Backlog."""
    client = _build_client()
    client.fetch_board_columns = Mock(
        return_value=[BoardColumn(name="To Do", status_ids=("10001",)), BoardColumn(name="Done", status_ids=("10003",))]
    )

    states = client.resolve_tracked_states("42")

    assert states.entry_states == frozenset({"10001"})
    assert states.done_states == frozenset({"10003"})


def test_fetch_event_history_parses_changelog_items():
    """Verify changelog histories flatten into one event per changed field."""
    client = _build_client()
    client._get_json = Mock(
        return_value={
            "key": "FLOW-1",
            "changelog": {
                "histories": [
                    {
                        "created": "2024-01-02T10:00:00.000+0000",
                        "items": [
                            {"field": "status", "from": "10001", "to": "10002", "fromString": "To Do", "toString": "In Progress"},
                            {"field": "assignee", "from": None, "to": "abc", "fromString": None, "toString": "Dev"},
                        ],
                    }
                ]
            },
        }
    )

    result = client.fetch_event_history("FLOW-1")

    assert result.success is True
    assert len(result.data) == 2
    status_event = result.data[0]
    assert status_event.is_status_change
    assert status_event.occurred_at == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)
    assert (status_event.from_value, status_event.to_value) == ("10001", "10002")
    assert status_event.to_label == "In Progress"
    assert not result.data[1].is_status_change
    client._get_json.assert_called_once_with("rest/api/3/issue/FLOW-1", params={"expand": "changelog"})


def test_fetch_event_history_reports_failure_without_raising():
    """Verify a missing issue is reported through the fetch result."""
    client = _build_client()
    client._get_json = Mock(side_effect=ApiError("GET returned 404 - Issue does not exist"))

    result = client.fetch_event_history("FLOW-404")

    assert result.success is False
    assert result.data is None
    assert "404" in result.error


def test_issue_url_points_to_browse_page():
    """Verify issue links use the site's browse path."""
    assert _build_client().issue_url("FLOW-1") == "https://acme.atlassian.net/browse/FLOW-1"
