# tests/test_calendar.py

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import httplib2
import pytest
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

from taskcal.api.calendar import CalendarManager
from taskcal.core.errors import AuthError
from taskcal.core.models import Category, Priority

from .conftest import make_task


def http_error(status: int) -> HttpError:
    resp = httplib2.Response({"status": status})
    resp.reason = "error"
    return HttpError(resp, b'{"error": {"message": "boom"}}', uri="https://example.invalid")


@pytest.fixture()
def service() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def auth(service) -> MagicMock:
    auth = MagicMock()
    auth.get_calendar_service.return_value = service
    return auth


@pytest.fixture()
def manager(auth) -> CalendarManager:
    return CalendarManager(auth, timezone_name="Europe/London")


@pytest.fixture()
def task():
    return make_task(
        "task-1", "Pay rent",
        description="Transfer to landlord",
        category=Category.FINANCE,
        priority=Priority.HIGH,
        deadline=datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc),
        completed=True,
    )


def test_event_body_maps_task_fields(manager, task) -> None:
    body = manager.build_event_body(task)

    assert body["summary"] == "Pay rent"
    assert body["description"] == "Transfer to landlord\n\nPriority: high\nCategory: finance"
    assert body["start"] == {"dateTime": "2024-06-01T09:00:00Z", "timeZone": "Europe/London"}
    assert body["end"] == {"dateTime": "2024-06-01T10:00:00Z", "timeZone": "Europe/London"}
    assert body["colorId"] == "2"
    assert body["extendedProperties"] == {
        "private": {"appSource": "TaskManagerApp", "taskId": "task-1"}
    }


def test_status_line_is_only_added_for_completed_updates(manager, task) -> None:
    assert manager.build_event_body(task, include_status=True)["description"].endswith(
        "Category: finance\nStatus: Completed"
    )
    open_task = task.with_changes(completed=False)
    assert "Status" not in manager.build_event_body(open_task, include_status=True)["description"]


def test_missing_description_and_unknown_category(manager, task) -> None:
    odd = task.with_changes(description=None, category="shopping")
    body = manager.build_event_body(odd)

    assert body["description"] == "\n\nPriority: high\nCategory: shopping"
    assert body["colorId"] == "1"


def test_create_event_returns_new_id(manager, service, task) -> None:
    service.events.return_value.insert.return_value.execute.return_value = {"id": "evt42"}

    assert manager.create_event(task) == "evt42"
    kwargs = service.events.return_value.insert.call_args.kwargs
    assert kwargs["calendarId"] == "primary"
    assert "Status" not in kwargs["body"]["description"]


def test_create_event_failure_returns_none(manager, service, task) -> None:
    service.events.return_value.insert.return_value.execute.side_effect = http_error(500)
    assert manager.create_event(task) is None


def test_token_failure_fails_closed(manager, auth, task) -> None:
    auth.get_calendar_service.side_effect = AuthError("no token")

    assert manager.create_event(task) is None
    assert manager.update_event(task, "evt1") is False
    assert manager.delete_event("evt1") is False


def test_every_call_asks_for_a_fresh_service(manager, auth, service, task) -> None:
    service.events.return_value.insert.return_value.execute.return_value = {"id": "evt1"}
    manager.create_event(task)
    manager.update_event(task, "evt1")
    manager.delete_event("evt1")
    assert auth.get_calendar_service.call_count == 3


def test_update_event_sends_status_line(manager, service, task) -> None:
    assert manager.update_event(task, "evt7") is True

    kwargs = service.events.return_value.update.call_args.kwargs
    assert kwargs["eventId"] == "evt7"
    assert kwargs["body"]["description"].endswith("Status: Completed")


def test_update_event_rejected_returns_false(manager, service, task) -> None:
    service.events.return_value.update.return_value.execute.side_effect = http_error(404)
    assert manager.update_event(task, "gone") is False


@pytest.mark.parametrize("status", [404, 410])
def test_delete_of_missing_event_counts_as_success(manager, service, status) -> None:
    service.events.return_value.delete.return_value.execute.side_effect = http_error(status)
    assert manager.delete_event("evt123") is True


def test_delete_other_errors_report_failure(manager, service) -> None:
    service.events.return_value.delete.return_value.execute.side_effect = http_error(403)
    assert manager.delete_event("evt123") is False


def test_network_errors_do_not_escape(manager, service, task) -> None:
    service.events.return_value.insert.return_value.execute.side_effect = ConnectionResetError()
    assert manager.create_event(task) is None


@pytest.mark.parametrize("error", [RefreshError("invalid_grant"), TransportError("unreachable")])
def test_token_revoked_mid_request_fails_closed(manager, service, task, error) -> None:
    events = service.events.return_value
    events.insert.return_value.execute.side_effect = error
    events.update.return_value.execute.side_effect = error
    events.delete.return_value.execute.side_effect = error

    assert manager.create_event(task) is None
    assert manager.update_event(task, "evt1") is False
    assert manager.delete_event("evt1") is False
