from chatcal.agent.intent_router import IntentRouter, interpret_extraction, parse_intent_item
from chatcal.agent.llm_provider import parse_json_object
from chatcal.agent.multi_intent import MultiIntentSplitter, parse_sub_intents
from chatcal.agent.schemas import FallbackOutcome, IntentOutcome, MultipleIntentsOutcome

from conftest import run


def test_parse_json_object_handles_fences_prose_and_arrays():
    assert parse_json_object('```json\n{"intent": "help_request"}\n```') == {"intent": "help_request"}
    assert parse_json_object('Sure! {"a": 1} hope that helps') == {"a": 1}
    assert parse_json_object('[{"a": 1}, {"a": 2}]') == {"a": 1}
    assert parse_json_object("no json here") is None
    assert parse_json_object("") is None


def test_unknown_intent_becomes_fallback():
    outcome = interpret_extraction({"intent": "book_flight", "confidence": 0.99, "fields": {}}, "fly me")
    assert isinstance(outcome, FallbackOutcome)
    assert outcome.reason == "invalid_intent"
    assert outcome.effective_intent().intent == "general_chat"


def test_missing_confidence_is_invalid():
    assert parse_intent_item({"intent": "help_request"}, "help") is None


def test_confident_intent_is_kept_with_typed_fields():
    outcome = interpret_extraction(
        {"intent": "CREATE_EVENT", "confidence": "0.92",
         "fields": {"title": "Sync", "date": "2025-11-03", "time": "2pm"}},
        "sync at 2")
    assert isinstance(outcome, IntentOutcome)
    assert outcome.intent.intent == "create_event"
    assert outcome.intent.fields.time == "14:00"
    assert outcome.intent.message == "sync at 2"


def test_low_confidence_keeps_raw_fields():
    outcome = interpret_extraction(
        {"intent": "create_event", "confidence": 0.5, "fields": {"date": "2025-11-03"}}, "the 3rd")
    assert isinstance(outcome, FallbackOutcome)
    assert outcome.reason == "low_confidence"
    assert outcome.raw_confidence == 0.5
    assert outcome.raw_fields == {"date": "2025-11-03"}


def test_multiple_intents_in_extraction_output():
    raw = {"multipleIntents": [
        {"intent": "cancel_event", "confidence": 0.9, "fields": {"event_identifier": "a"}},
        {"intent": "list_events", "confidence": 0.8, "fields": {}},
    ]}
    outcome = interpret_extraction(raw, "cancel a and show my week")
    assert isinstance(outcome, MultipleIntentsOutcome)
    assert [i.intent for i in outcome.intents] == ["cancel_event", "list_events"]


def test_router_converts_collaborator_errors(nlu, failing_nlu_error):
    nlu.extractions.append(failing_nlu_error)
    outcome = run(IntentRouter(nlu).extract("hello", []))
    assert isinstance(outcome, FallbackOutcome)
    assert outcome.reason == "collaborator_error"


def test_sub_intents_are_deduplicated():
    item = {"intent": "cancel_event", "confidence": 0.9, "fields": {"event_identifier": "Sync"}}
    assert parse_sub_intents({"multipleIntents": [item, dict(item)]}, "cancel sync, cancel sync") == []

    other = {"intent": "list_events", "confidence": 0.9, "fields": {}}
    subs = parse_sub_intents({"multipleIntents": [item, dict(item), other]}, "msg")
    assert [s.intent for s in subs] == ["cancel_event", "list_events"]


def test_one_weak_sub_intent_voids_the_split():
    raw = {"multipleIntents": [
        {"intent": "cancel_event", "confidence": 0.9, "fields": {"event_identifier": "Sync"}},
        {"intent": "create_event", "confidence": 0.4, "fields": {"title": "x"}},
    ]}
    assert parse_sub_intents(raw, "msg") == []


def test_splitter_returns_empty_on_error_and_single_action(nlu, failing_nlu_error):
    splitter = MultiIntentSplitter(nlu)
    nlu.splits.extend([failing_nlu_error,
                       {"multipleIntents": [{"intent": "help_request", "confidence": 0.9, "fields": {}}]}])
    assert run(splitter.split("a", [])) == []
    assert run(splitter.split("b", [])) == []


def test_router_tolerates_non_finite_numbers(nlu):
    nlu.extractions.append({"intent": "create_event", "confidence": 0.9,
                            "fields": {"title": "Sync", "date": "2025-11-03", "time": "10:00",
                                       "duration": float("inf")}})
    outcome = run(IntentRouter(nlu).extract("sync forever", []))
    assert isinstance(outcome, IntentOutcome)
    assert outcome.intent.fields.duration is None


def test_router_turns_parse_faults_into_fallback(nlu, mocker):
    mocker.patch("chatcal.agent.intent_router.interpret_extraction",
                 side_effect=OverflowError("cannot convert float infinity to integer"))
    outcome = run(IntentRouter(nlu).extract("hello", []))
    assert isinstance(outcome, FallbackOutcome)
    assert outcome.effective_intent().intent == "general_chat"


def test_splitter_turns_parse_faults_into_no_split(nlu, mocker):
    mocker.patch("chatcal.agent.multi_intent.parse_sub_intents",
                 side_effect=OverflowError("cannot convert float infinity to integer"))
    assert run(MultiIntentSplitter(nlu).split("a and b", [])) == []
