import pytest

from chatcal.agent.calendar_store import CalendarError, LocalCalendar
from chatcal.agent.continuation import match_continuation
from chatcal.agent.dispatcher import ActionDispatcher, UnsupportedIntentError
from chatcal.agent.field_registry import parse_fields
from chatcal.agent.resolve_event_target import EventResolver
from chatcal.agent.schemas import (CreateEventFields, EventMatch, ExtractedIntent, ValidationResult)
from chatcal.agent.validator import Validator, build_clarification
from chatcal.models import EventCreate

from conftest import days_from_now, run


@pytest.fixture
def seeded_calendar():
    """Calendar holding a single 'Budget review' event next week."""
    calendar = LocalCalendar()
    day = days_from_now(7)
    run(calendar.create_event(EventCreate(title="Budget review", start=f"{day}T10:00",
                                          end=f"{day}T11:00")))
    return calendar


def test_resolver_rejects_ids_outside_candidate_set(nlu, seeded_calendar):
    nlu.matches.append(EventMatch(success=True, event_id="ghost-42", confidence=0.99))
    resolution = run(EventResolver(nlu, seeded_calendar).resolve("budget", []))

    assert resolution.status == "not_found"
    assert resolution.event is None


def test_resolver_applies_confidence_floor(nlu, seeded_calendar):
    nlu.matches.append(EventMatch(success=True, event_id="local-1", confidence=0.2))
    resolution = run(EventResolver(nlu, seeded_calendar).resolve("budget", []))
    assert resolution.status == "not_found"


def test_resolver_finds_candidate(nlu, seeded_calendar):
    resolution = run(EventResolver(nlu, seeded_calendar).resolve("budget", []))
    assert resolution.status == "found"
    assert resolution.event.id == "local-1"


def test_resolver_on_empty_calendar_skips_matching(nlu):
    resolution = run(EventResolver(nlu, LocalCalendar()).resolve("anything", []))
    assert resolution.status == "not_found"
    assert resolution.message == "No events found in your calendar."
    assert nlu.match_calls == []


def test_resolver_reports_search_errors(nlu, seeded_calendar, mocker):
    mocker.patch.object(seeded_calendar, "list_events", side_effect=CalendarError("down"))
    resolution = run(EventResolver(nlu, seeded_calendar).resolve("budget", []))
    assert resolution.status == "not_found"
    assert resolution.message == "Error searching for events. Please try again."


def test_resolver_ambiguous_returns_no_candidates(nlu, seeded_calendar):
    nlu.matches.append(EventMatch(success=False, ambiguous=True, confidence=0.6))
    resolution = run(EventResolver(nlu, seeded_calendar).resolve("review", []))
    assert resolution.status == "ambiguous"
    assert resolution.events == []


def test_clarification_wording_names_every_field():
    assert build_clarification("cancel_event", ["event_identifier"]) == (
        "I need the event identifier to cancel the event. Please provide it.")
    plural = build_clarification("followup_event", ["event_identifier", "followup_days"])
    assert "event identifier" in plural
    assert "number of days for follow-up" in plural
    assert "schedule the follow-up" in plural


def test_validator_attaches_resolved_event(nlu, store, seeded_calendar):
    validator = Validator(nlu, store, lambda user_id: seeded_calendar)
    extracted = ExtractedIntent(intent="cancel_event", confidence=0.9,
                                fields=parse_fields("cancel_event", {"event_identifier": "budget"}),
                                message="cancel budget")

    result = run(validator.validate(extracted, "u1", []))
    assert result.requires_action is True
    assert result.resolved_event.title == "Budget review"


def test_dispatcher_raises_for_unknown_intent(nlu, calendar):
    dispatcher = ActionDispatcher(nlu, lambda user_id: calendar)
    validation = ValidationResult.model_construct(
        intent="teleport", confidence=1.0, fields=CreateEventFields(), message="",
        requires_action=True, resolved_event=None, clarification=None, missing_fields=[])
    with pytest.raises(UnsupportedIntentError):
        run(dispatcher.execute(validation, "u1", []))


def test_dispatcher_converts_calendar_failure(nlu, calendar, mocker):
    mocker.patch.object(calendar, "create_event", side_effect=RuntimeError("quota exceeded"))
    dispatcher = ActionDispatcher(nlu, lambda user_id: calendar)
    validation = ValidationResult(
        intent="create_event", confidence=0.9, requires_action=True,
        fields=CreateEventFields(title="Sync", date=days_from_now(1), time="10:00"))

    result = run(dispatcher.execute(validation, "u1", []))

    assert result.success is False
    assert result.message == "Failed to create calendar event"
    assert "quota" not in result.message


def test_dispatcher_static_replies(nlu, calendar):
    dispatcher = ActionDispatcher(nlu, lambda user_id: calendar)
    info = run(dispatcher.execute(ValidationResult(intent="get_information", requires_action=True), "u1", []))
    help_reply = run(dispatcher.execute(ValidationResult(intent="help_request", requires_action=True), "u1", []))
    assert info.kind == "chat" and "calendar" in info.message
    assert help_reply.kind == "chat" and help_reply.message != info.message


def test_list_events_falls_back_to_summary(nlu, seeded_calendar, failing_nlu_error):
    nlu.texts.append(failing_nlu_error)
    dispatcher = ActionDispatcher(nlu, lambda user_id: seeded_calendar)
    result = run(dispatcher.execute(ValidationResult(intent="list_events", requires_action=True), "u1", []))
    assert result.kind == "calendar_info"
    assert result.data["total_count"] == 1
    assert result.message.startswith("You have 1 event(s):")
    assert "Budget review" in result.message


@pytest.mark.parametrize("text, expected", [
    ("add jane@example.com too", {"attendees": ["jane@example.com"]}),
    ("email is sam@corp.io.", {"attendees": ["sam@corp.io"]}),
    ("location: Cafe Luna", {"location": "Cafe Luna"}),
    ("note: bring the slides", {"description": "bring the slides"}),
    ("what's the weather like", None),
])
def test_continuation_patterns(text, expected):
    patch = match_continuation(text)
    if expected is None:
        assert patch is None
    else:
        assert patch.model_dump(exclude_none=True) == expected
