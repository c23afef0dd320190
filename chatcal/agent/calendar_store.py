from __future__ import annotations

import itertools
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, List, Optional, Protocol

from ..models import CalendarEvent, EventCreate, EventUpdate
from ..utils import _log_debug, _parse_iso_minute


class CalendarError(Exception):
  """Calendar backend failure carrying a message safe to show the user."""

  def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
    super().__init__(message)
    self.user_message = message
    self.cause = cause


class CalendarClient(Protocol):

  async def create_event(self, event: EventCreate) -> CalendarEvent:
    ...

  async def update_event(self, event_id: str, patch: EventUpdate) -> CalendarEvent:
    ...

  async def delete_event(self, event_id: str) -> None:
    ...

  async def get_event(self, event_id: str) -> Optional[CalendarEvent]:
    ...

  async def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
    ...


CalendarFactory = Callable[[str], CalendarClient]


def _overlaps(event: CalendarEvent, start: datetime, end: datetime) -> bool:
  ev_start = _parse_iso_minute(event.start)
  if ev_start is None:
    return False
  ev_end = _parse_iso_minute(event.end) or ev_start
  return ev_start <= end and ev_end >= start


class LocalCalendar:
  """In-memory calendar used when Google Calendar is disabled."""

  def __init__(self) -> None:
    self._events: Dict[str, CalendarEvent] = {}
    self._ids = itertools.count(1)
    self._lock = Lock()

  def __len__(self) -> int:
    return len(self._events)

  async def create_event(self, event: EventCreate) -> CalendarEvent:
    with self._lock:
      event_id = f"local-{next(self._ids)}"
      stored = CalendarEvent(
          id=event_id,
          title=event.title,
          start=event.start,
          end=event.end,
          location=event.location,
          description=event.description,
          attendees=list(event.attendees),
      )
      self._events[event_id] = stored
    _log_debug(f"[LOCAL CAL] created {event_id} {event.title!r} {event.start}")
    return stored.model_copy(deep=True)

  async def update_event(self, event_id: str, patch: EventUpdate) -> CalendarEvent:
    with self._lock:
      current = self._events.get(event_id)
      if current is None:
        raise CalendarError("Event not found in your calendar.")
      changes = patch.model_dump(exclude_none=True)
      updated = current.model_copy(update=changes, deep=True)
      self._events[event_id] = updated
    _log_debug(f"[LOCAL CAL] updated {event_id} fields={sorted(changes)}")
    return updated.model_copy(deep=True)

  async def delete_event(self, event_id: str) -> None:
    with self._lock:
      if self._events.pop(event_id, None) is None:
        raise CalendarError("Event not found in your calendar.")
    _log_debug(f"[LOCAL CAL] deleted {event_id}")

  async def get_event(self, event_id: str) -> Optional[CalendarEvent]:
    with self._lock:
      stored = self._events.get(event_id)
      return stored.model_copy(deep=True) if stored is not None else None

  async def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
    start_naive = start.replace(tzinfo=None)
    end_naive = end.replace(tzinfo=None)
    with self._lock:
      matched = [ev.model_copy(deep=True) for ev in self._events.values()
                 if _overlaps(ev, start_naive, end_naive)]
    matched.sort(key=lambda ev: ev.start)
    return matched


def local_calendar_factory() -> CalendarFactory:
  calendars: Dict[str, LocalCalendar] = {}
  guard = Lock()

  def _calendar_for(user_id: str) -> CalendarClient:
    with guard:
      calendar = calendars.get(user_id)
      if calendar is None:
        calendar = LocalCalendar()
        calendars[user_id] = calendar
      return calendar

  return _calendar_for
