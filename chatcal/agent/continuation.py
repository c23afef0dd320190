from __future__ import annotations

import re
from typing import Callable, Optional

from ..config import CONTINUATION_CONFIDENCE, EMAIL_SEARCH_RE, MAX_DESCRIPTION_LENGTH, MAX_LOCATION_LENGTH
from ..models import EventUpdate, MessageResult
from ..utils import _log_debug
from .calendar_store import CalendarClient, CalendarError
from .state import SessionStore

_LOCATION_RE = re.compile(r"(?:location|where)[:\s]+(.+)", re.IGNORECASE)
_DESCRIPTION_RE = re.compile(r"(?:description|note)[:\s]+(.+)", re.IGNORECASE)


def match_continuation(text: str) -> Optional[EventUpdate]:
  """Recognize a short follow-up that patches the event just updated."""
  lower = text.lower()
  if "email" in lower or "@" in lower or "add" in lower:
    email = EMAIL_SEARCH_RE.search(text)
    if email:
      return EventUpdate(attendees=[email.group(0).rstrip(".")])
  if "location" in lower or "where" in lower:
    m = _LOCATION_RE.search(text)
    if m and m.group(1).strip():
      return EventUpdate(location=m.group(1).strip()[:MAX_LOCATION_LENGTH])
  if "description" in lower or "note" in lower:
    m = _DESCRIPTION_RE.search(text)
    if m and m.group(1).strip():
      return EventUpdate(description=m.group(1).strip()[:MAX_DESCRIPTION_LENGTH])
  return None


class ContinuationHandler:
  """Pre-pipeline filter for messages that continue an event update.

  A match patches the remembered event directly, with no extraction and no
  resolution. Anything else clears the remembered event and falls through.
  """

  def __init__(self, store: SessionStore, calendar_for: Callable[[str], CalendarClient]) -> None:
    self.store = store
    self.calendar_for = calendar_for

  async def try_handle(self, text: str, user_id: str) -> Optional[MessageResult]:
    context = self.store.get_active_context(user_id)
    if context is None or context.type != "event_update":
      return None
    patch = match_continuation(text)
    if patch is None:
      self.store.clear_active_context(user_id)
      return None

    calendar = self.calendar_for(user_id)
    try:
      if patch.attendees:
        existing = await calendar.get_event(context.event_id)
        if existing is None:
          raise CalendarError("Event not found in your calendar.")
        merged = list(existing.attendees)
        for email in patch.attendees:
          if email not in merged:
            merged.append(email)
        patch.attendees = merged
      updated = await calendar.update_event(context.event_id, patch)
    except Exception as exc:
      self.store.clear_active_context(user_id)
      message = exc.user_message if isinstance(exc, CalendarError) else "Failed to update calendar event"
      print(f"[CONTINUATION] update failed event={context.event_id}: {exc}", flush=True)
      return MessageResult(success=False, intent="update_event", confidence=CONTINUATION_CONFIDENCE,
                           response=message, data=None)

    self.store.clear_active_context(user_id)
    _log_debug(f"[CONTINUATION] patched event={context.event_id} fields={sorted(patch.model_dump(exclude_none=True))}")
    return MessageResult(
        success=True,
        intent="update_event",
        confidence=CONTINUATION_CONFIDENCE,
        response=f'Event "{updated.title}" updated successfully',
        data={"action": "update_event", "event": updated.model_dump()},
    )
