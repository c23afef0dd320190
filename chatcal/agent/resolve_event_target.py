from __future__ import annotations

from typing import List, Sequence

from ..config import EVENT_LOOKUP_WINDOW_DAYS, EVENT_MATCH_CONFIDENCE_FLOOR, HISTORY_CONTEXT_TURNS
from ..models import CalendarEvent
from ..utils import _log_debug, lookup_window
from .calendar_store import CalendarClient
from .nlu import NluClient
from .schemas import EventResolution, Turn

NO_EVENTS_MESSAGE = "No events found in your calendar."
SEARCH_ERROR_MESSAGE = "Error searching for events. Please try again."
NOT_FOUND_MESSAGE_TEMPLATE = 'I couldn\'t find an event matching "{identifier}". Could you describe it differently?'
AMBIGUOUS_MESSAGE_TEMPLATE = 'Multiple events found matching "{identifier}". Please be more specific:'


class EventResolver:
  """Maps a free-text event reference to exactly one calendar event.

  All events in the lookup window are handed to the language model; only an
  id that belongs to that candidate set is ever accepted.
  """

  def __init__(self, nlu: NluClient, calendar: CalendarClient,
               window_days: int = EVENT_LOOKUP_WINDOW_DAYS) -> None:
    self.nlu = nlu
    self.calendar = calendar
    self.window_days = window_days

  async def resolve(self, identifier: str, history: Sequence[Turn]) -> EventResolution:
    start, end = lookup_window(self.window_days)
    try:
      candidates: List[CalendarEvent] = await self.calendar.list_events(start, end)
    except Exception as exc:
      print(f"[EVENT_RESOLVER] list error: {exc}", flush=True)
      return EventResolution(status="not_found", message=SEARCH_ERROR_MESSAGE)
    if not candidates:
      return EventResolution(status="not_found", message=NO_EVENTS_MESSAGE)

    context_turns = list(history)[-HISTORY_CONTEXT_TURNS:]
    try:
      match = await self.nlu.find_matching_event(identifier, candidates, context_turns)
    except Exception as exc:
      print(f"[EVENT_RESOLVER] match error: {exc}", flush=True)
      return EventResolution(status="not_found", message=SEARCH_ERROR_MESSAGE)

    _log_debug(f"[EVENT_RESOLVER] query={identifier!r} match={match.model_dump()}")
    if match.ambiguous:
      return EventResolution(
          status="ambiguous",
          events=[],
          confidence=match.confidence,
          message=AMBIGUOUS_MESSAGE_TEMPLATE.format(identifier=identifier),
      )

    not_found = EventResolution(
        status="not_found",
        confidence=match.confidence,
        message=NOT_FOUND_MESSAGE_TEMPLATE.format(identifier=identifier),
    )
    if not match.success or not match.event_id:
      return not_found
    if match.confidence < EVENT_MATCH_CONFIDENCE_FLOOR:
      return not_found
    by_id = {event.id: event for event in candidates}
    selected = by_id.get(str(match.event_id))
    if selected is None:
      print(f"[EVENT_RESOLVER] rejected id not in candidates: {match.event_id}", flush=True)
      return not_found
    return EventResolution(status="found", event=selected, confidence=match.confidence,
                           message=match.message)
