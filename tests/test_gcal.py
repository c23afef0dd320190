from datetime import datetime
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from chatcal import gcal
from chatcal.agent.calendar_store import CalendarError
from chatcal.models import EventCreate, EventUpdate

from conftest import run


def _http_error(status):
    resp = MagicMock(status=status, reason="error")
    return HttpError(resp, b'{"error": {"message": "error"}}')


@pytest.fixture
def events_api(mocker):
    """Mocked ``service.events()`` resource behind GoogleCalendar."""
    service = MagicMock()
    mocker.patch("chatcal.gcal.get_gcal_service", return_value=service)
    return service.events.return_value


def test_normalize_timed_event():
    raw = {
        "id": "abc",
        "summary": "Sync",
        "start": {"dateTime": "2025-11-03T14:00:00+00:00"},
        "end": {"dateTime": "2025-11-03T15:00:00+00:00"},
        "attendees": [{"email": "a@x.com"}, {"displayName": "no email"}],
    }
    event = gcal._normalize_gcal_event(raw)
    assert event.id == "abc"
    assert event.title == "Sync"
    assert event.attendees == ["a@x.com"]


def test_all_day_end_is_inclusive():
    raw = {"id": "d1", "summary": "Offsite", "start": {"date": "2025-11-03"},
           "end": {"date": "2025-11-05"}}
    event = gcal._normalize_gcal_event(raw)
    assert event.start == "2025-11-03T00:00"
    assert event.end == "2025-11-04T23:59"


def test_event_without_start_is_skipped():
    assert gcal._normalize_gcal_event({"id": "x", "summary": "broken"}) is None


def test_patch_body_only_carries_given_fields():
    body = gcal._build_gcal_event_body("New title", None, None, None, None, None)
    assert body == {"summary": "New title"}


def test_create_sends_body_and_normalizes_result(events_api):
    events_api.insert.return_value.execute.return_value = {
        "id": "g1", "summary": "Sync",
        "start": {"date": "2025-11-03"}, "end": {"date": "2025-11-04"},
    }
    calendar = gcal.GoogleCalendar("u1", calendar_id="primary")

    created = run(calendar.create_event(EventCreate(
        title="Sync", start="2025-11-03T14:00", end="2025-11-03T15:00",
        attendees=["a@x.com"], recurrence=["RRULE:FREQ=WEEKLY"])))

    kwargs = events_api.insert.call_args.kwargs
    assert kwargs["calendarId"] == "primary"
    assert kwargs["body"]["summary"] == "Sync"
    assert kwargs["body"]["attendees"] == [{"email": "a@x.com"}]
    assert kwargs["body"]["recurrence"] == ["RRULE:FREQ=WEEKLY"]
    assert created.id == "g1"


def test_get_missing_event_returns_none(events_api):
    events_api.get.return_value.execute.side_effect = _http_error(404)
    assert run(gcal.GoogleCalendar("u1").get_event("gone")) is None


def test_delete_missing_event_raises_user_safe_error(events_api):
    events_api.delete.return_value.execute.side_effect = _http_error(410)
    with pytest.raises(CalendarError) as excinfo:
        run(gcal.GoogleCalendar("u1").delete_event("gone"))
    assert excinfo.value.user_message == "Event not found in your calendar."


def test_update_failure_is_wrapped(events_api):
    events_api.patch.return_value.execute.side_effect = _http_error(500)
    with pytest.raises(CalendarError):
        run(gcal.GoogleCalendar("u1").update_event("g1", EventUpdate(title="x")))


def test_list_follows_pages(events_api):
    page_one = {"items": [{"id": "a", "summary": "A", "start": {"date": "2025-11-03"}}],
                "nextPageToken": "t2"}
    page_two = {"items": [{"id": "b", "summary": "B", "start": {"date": "2025-11-04"}}]}
    events_api.list.return_value.execute.side_effect = [page_one, page_two]

    events = run(gcal.GoogleCalendar("u1").list_events(datetime(2025, 11, 1), datetime(2025, 11, 30)))

    assert [ev.id for ev in events] == ["a", "b"]
    assert events_api.list.call_args_list[1].kwargs["pageToken"] == "t2"
    assert events_api.list.call_args_list[0].kwargs["singleEvents"] is True


def test_unconfigured_google_calendar_reports_not_connected(mocker):
    mocker.patch("chatcal.gcal.is_gcal_configured", return_value=False)
    with pytest.raises(CalendarError) as excinfo:
        run(gcal.GoogleCalendar("u1").list_events(datetime(2025, 11, 1), datetime(2025, 11, 30)))
    assert excinfo.value.user_message == "Google Calendar is not connected."
