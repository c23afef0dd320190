from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional, Sequence

from ..config import EVENT_LOOKUP_WINDOW_DAYS
from ..models import CalendarEvent
from ..utils import _log_debug, lookup_window
from .calendar_store import CalendarClient, CalendarError
from .normalizer import build_event_create, build_event_update, build_followup
from .nlu import NluClient
from .prompts import HELP_RESPONSE, INFORMATION_RESPONSE
from .response_agent import answer_event_query, chat_reply, generate_event_notes
from .schemas import ActionResult, CreateEventFields, Turn, UpdateEventFields, ValidationResult


class UnsupportedIntentError(Exception):
  """An intent outside the known set reached the dispatcher."""

  def __init__(self, intent: str) -> None:
    super().__init__(f"Unsupported intent: {intent}")
    self.intent = intent


def _failure(message: str) -> ActionResult:
  return ActionResult(success=False, kind="calendar_action", message=message)


def _calendar_failure(exc: Exception, fallback: str) -> ActionResult:
  if isinstance(exc, CalendarError):
    return _failure(exc.user_message)
  print(f"[DISPATCHER] calendar error: {exc}", flush=True)
  return _failure(fallback)


Handler = Callable[[ValidationResult, CalendarClient, Sequence[Turn]], Awaitable[ActionResult]]


class ActionDispatcher:
  """Runs the action behind a validated intent.

  Collaborator failures come back as ``ActionResult(success=False)``; only an
  intent with no handler raises (UnsupportedIntentError).
  """

  def __init__(self, nlu: NluClient, calendar_for: Callable[[str], CalendarClient]) -> None:
    self.nlu = nlu
    self.calendar_for = calendar_for
    self._handlers: Dict[str, Handler] = {
        "create_event": self._create_event,
        "update_event": self._update_event,
        "cancel_event": self._cancel_event,
        "prepare_event": self._prepare_event,
        "followup_event": self._followup_event,
        "list_events": self._list_events,
        "get_information": self._get_information,
        "help_request": self._help_request,
        "general_chat": self._general_chat,
    }

  async def execute(self, validation: ValidationResult, user_id: str,
                    history: Sequence[Turn]) -> ActionResult:
    if not validation.requires_action:
      return ActionResult(success=True, kind="clarification",
                          message=validation.clarification or "Could you tell me a bit more?")
    handler = self._handlers.get(validation.intent)
    if handler is None:
      raise UnsupportedIntentError(validation.intent)
    _log_debug(f"[DISPATCHER] user={user_id} intent={validation.intent}")
    return await handler(validation, self.calendar_for(user_id), history)

  async def _fetch_resolved(self, validation: ValidationResult,
                            calendar: CalendarClient) -> Optional[CalendarEvent]:
    resolved = validation.resolved_event
    if resolved is None:
      return None
    return await calendar.get_event(resolved.id)

  async def _create_event(self, validation: ValidationResult, calendar: CalendarClient,
                          history: Sequence[Turn]) -> ActionResult:
    fields = validation.fields
    if not isinstance(fields, CreateEventFields):
      fields = CreateEventFields.model_validate(fields.present())
    try:
      created = await calendar.create_event(build_event_create(fields))
    except Exception as exc:
      return _calendar_failure(exc, "Failed to create calendar event")
    return ActionResult(
        success=True,
        kind="calendar_action",
        message=f'Event "{created.title}" created successfully',
        data={"action": "create_event", "event": created.model_dump()},
    )

  async def _update_event(self, validation: ValidationResult, calendar: CalendarClient,
                          history: Sequence[Turn]) -> ActionResult:
    fields = validation.fields
    if not isinstance(fields, UpdateEventFields):
      fields = UpdateEventFields.model_validate(fields.present())
    try:
      existing = await self._fetch_resolved(validation, calendar)
      if existing is None:
        return _failure("Event not found in your calendar.")
      patch = build_event_update(existing, fields)
      updated = await calendar.update_event(existing.id, patch)
    except Exception as exc:
      return _calendar_failure(exc, "Failed to update calendar event")
    return ActionResult(
        success=True,
        kind="calendar_action",
        message=f'Event "{updated.title}" updated successfully',
        data={"action": "update_event", "event": updated.model_dump()},
    )

  async def _cancel_event(self, validation: ValidationResult, calendar: CalendarClient,
                          history: Sequence[Turn]) -> ActionResult:
    target = validation.resolved_event
    if target is None:
      return _failure("Event not found in your calendar.")
    try:
      await calendar.delete_event(target.id)
    except Exception as exc:
      return _calendar_failure(exc, "Failed to cancel calendar event")
    return ActionResult(
        success=True,
        kind="calendar_action",
        message=f'Event "{target.title}" cancelled successfully',
        data={"action": "cancel_event", "event_id": target.id},
    )

  async def _prepare_event(self, validation: ValidationResult, calendar: CalendarClient,
                           history: Sequence[Turn]) -> ActionResult:
    try:
      event = await self._fetch_resolved(validation, calendar)
    except Exception as exc:
      return _calendar_failure(exc, "Failed to load the event")
    if event is None:
      return _failure("Event not found in your calendar.")
    notes = await generate_event_notes(self.nlu, event)
    return ActionResult(
        success=True,
        kind="calendar_action",
        message=f"Here are the details and notes for your event:\n\n{notes}",
        data={"action": "prepare_event", "event": event.model_dump(), "notes": notes},
    )

  async def _followup_event(self, validation: ValidationResult, calendar: CalendarClient,
                            history: Sequence[Turn]) -> ActionResult:
    days = getattr(validation.fields, "followup_days", None)
    if not days:
      return _failure("A number of days for the follow-up is required.")
    try:
      original = await self._fetch_resolved(validation, calendar)
      if original is None:
        return _failure("Event not found in your calendar.")
      created = await calendar.create_event(build_followup(original, days, validation.fields))
    except Exception as exc:
      return _calendar_failure(exc, "Failed to create follow-up event")
    return ActionResult(
        success=True,
        kind="calendar_action",
        message=f'Follow-up event "{created.title}" created successfully',
        data={"action": "followup_event", "event": created.model_dump(),
              "original_event_id": original.id},
    )

  async def _list_events(self, validation: ValidationResult, calendar: CalendarClient,
                         history: Sequence[Turn]) -> ActionResult:
    start, end = lookup_window(EVENT_LOOKUP_WINDOW_DAYS)
    try:
      events = await calendar.list_events(start, end)
    except Exception as exc:
      return _calendar_failure(exc, "Failed to list calendar events")
    query = getattr(validation.fields, "user_message", None) or validation.message or "Show me my events"
    answer = await answer_event_query(self.nlu, query, events, history)
    return ActionResult(
        success=True,
        kind="calendar_info",
        message=answer,
        data={"events": [ev.model_dump() for ev in events], "total_count": len(events)},
    )

  async def _get_information(self, validation: ValidationResult, calendar: CalendarClient,
                             history: Sequence[Turn]) -> ActionResult:
    return ActionResult(success=True, kind="chat", message=INFORMATION_RESPONSE)

  async def _help_request(self, validation: ValidationResult, calendar: CalendarClient,
                          history: Sequence[Turn]) -> ActionResult:
    return ActionResult(success=True, kind="chat", message=HELP_RESPONSE)

  async def _general_chat(self, validation: ValidationResult, calendar: CalendarClient,
                          history: Sequence[Turn]) -> ActionResult:
    reply = await chat_reply(self.nlu, validation.message, history)
    return ActionResult(success=True, kind="chat", message=reply)
