from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Type

from .schemas import (
    CreateEventFields,
    EventReferenceFields,
    FollowupEventFields,
    IntentFields,
    ListEventsFields,
    NoFields,
    UpdateEventFields,
)

_EVENT_EDIT_FIELDS = ("title", "date", "time", "end", "duration", "location",
                      "attendees", "description")

REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "create_event": ("title", "date", "time"),
    "update_event": ("event_identifier",),
    "cancel_event": ("event_identifier",),
    "prepare_event": ("event_identifier",),
    "followup_event": ("event_identifier", "followup_days"),
    "list_events": (),
    "get_information": (),
    "help_request": (),
    "general_chat": (),
}

OPTIONAL_FIELDS: Dict[str, Tuple[str, ...]] = {
    "create_event": ("end", "duration", "location", "attendees", "description", "recurrence"),
    "update_event": _EVENT_EDIT_FIELDS,
    "cancel_event": (),
    "prepare_event": (),
    "followup_event": _EVENT_EDIT_FIELDS,
    "list_events": ("user_message", "date", "attendees"),
    "get_information": (),
    "help_request": (),
    "general_chat": (),
}

FIELD_MODELS: Dict[str, Type[IntentFields]] = {
    "create_event": CreateEventFields,
    "update_event": UpdateEventFields,
    "cancel_event": EventReferenceFields,
    "prepare_event": EventReferenceFields,
    "followup_event": FollowupEventFields,
    "list_events": ListEventsFields,
    "get_information": NoFields,
    "help_request": NoFields,
    "general_chat": NoFields,
}

FIELD_LABELS: Dict[str, str] = {
    "title": "event title",
    "date": "date",
    "time": "time",
    "location": "location",
    "attendees": "attendees",
    "description": "description",
    "event_identifier": "event identifier",
    "followup_days": "number of days for follow-up",
}

INTENT_ACTIONS: Dict[str, str] = {
    "create_event": "create the event",
    "update_event": "update the event",
    "cancel_event": "cancel the event",
    "prepare_event": "prepare for the event",
    "followup_event": "schedule the follow-up",
}

EVENT_REFERENCE_INTENTS = frozenset(
    ("update_event", "cancel_event", "prepare_event", "followup_event"))
CONVERSATIONAL_INTENTS = frozenset(("general_chat", "get_information", "help_request"))


def required_fields(intent: str) -> Tuple[str, ...]:
  return REQUIRED_FIELDS.get(intent, ())


def optional_fields(intent: str) -> Tuple[str, ...]:
  return OPTIONAL_FIELDS.get(intent, ())


def parse_fields(intent: str, raw: Optional[Dict[str, Any]]) -> IntentFields:
  model = FIELD_MODELS.get(intent, NoFields)
  return model.model_validate(raw if isinstance(raw, dict) else {})


def missing_fields(intent: str, fields: IntentFields) -> List[str]:
  missing: List[str] = []
  for name in required_fields(intent):
    value = getattr(fields, name, None)
    if value is None or value == "" or value == []:
      missing.append(name)
  return missing


def field_label(name: str) -> str:
  return FIELD_LABELS.get(name, name)


def intent_action(intent: str) -> str:
  return INTENT_ACTIONS.get(intent, "complete this action")
