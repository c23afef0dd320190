from __future__ import annotations

import time
from typing import Callable, List, Sequence

from ..utils import _log_debug
from .calendar_store import CalendarClient
from .field_registry import (
    CONVERSATIONAL_INTENTS,
    EVENT_REFERENCE_INTENTS,
    field_label,
    intent_action,
    missing_fields,
)
from .nlu import NluClient
from .resolve_event_target import EventResolver
from .schemas import ExtractedIntent, PendingIntent, Turn, ValidationResult
from .state import SessionStore


def build_clarification(intent: str, missing: List[str]) -> str:
  action = intent_action(intent)
  labels = [field_label(name) for name in missing]
  if len(labels) == 1:
    return f"I need the {labels[0]} to {action}. Please provide it."
  return (f"I need the following information to {action}: {', '.join(labels)}. "
          "Please provide these details.")


class Validator:
  """Checks required fields, resolves event references and produces clarifications."""

  def __init__(self,
               nlu: NluClient,
               store: SessionStore,
               calendar_for: Callable[[str], CalendarClient],
               clock: Callable[[], float] = time.time) -> None:
    self.nlu = nlu
    self.store = store
    self.calendar_for = calendar_for
    self.clock = clock

  def _base(self, extracted: ExtractedIntent) -> ValidationResult:
    return ValidationResult(
        intent=extracted.intent,
        confidence=extracted.confidence,
        fields=extracted.fields,
        message=extracted.message,
    )

  async def validate(self, extracted: ExtractedIntent, user_id: str,
                     history: Sequence[Turn]) -> ValidationResult:
    result = self._base(extracted)
    if extracted.intent in CONVERSATIONAL_INTENTS:
      result.requires_action = True
      return result

    missing = missing_fields(extracted.intent, extracted.fields)
    if missing:
      result.missing_fields = missing
      result.clarification = build_clarification(extracted.intent, missing)
      self.store.set_pending_intent(user_id, PendingIntent(
          intent=extracted.intent,
          fields=extracted.fields.present(),
          missing_fields=missing,
          created_at=self.clock(),
      ))
      _log_debug(f"[VALIDATOR] {extracted.intent} missing={missing}")
      return result

    if extracted.intent in EVENT_REFERENCE_INTENTS:
      identifier = getattr(extracted.fields, "event_identifier", None) or ""
      resolver = EventResolver(self.nlu, self.calendar_for(user_id))
      resolution = await resolver.resolve(identifier, history)
      if resolution.status != "found" or resolution.event is None:
        result.clarification = resolution.message
        _log_debug(f"[VALIDATOR] {extracted.intent} resolution={resolution.status}")
        return result
      result.resolved_event = resolution.event

    self.store.clear_pending_intent(user_id)
    result.requires_action = True
    return result
