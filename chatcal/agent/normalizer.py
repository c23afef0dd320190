from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from ..config import DEFAULT_EVENT_DURATION_MINUTES
from ..models import CalendarEvent, EventCreate, EventUpdate
from ..utils import (
    _combine_date_time,
    _format_iso_minute,
    _minutes_between,
    _parse_iso_minute,
    split_emails,
)
from .schemas import CreateEventFields, IntentFields, UpdateEventFields


def _append_note(description: Optional[str], note: str) -> str:
  if description:
    return f"{description}\n\n{note}"
  return note


def default_title(start: datetime) -> str:
  return f"Meeting on {start.strftime('%b %d, %Y')} at {start.strftime('%H:%M')}"


def _resolve_end(start: datetime, date_str: str, end_hhmm: Optional[str],
                 duration: Optional[int], fallback_minutes: int) -> datetime:
  if end_hhmm:
    end_dt = _combine_date_time(date_str, end_hhmm)
    if end_dt is not None and end_dt > start:
      return end_dt
  if duration:
    return start + timedelta(minutes=duration)
  return start + timedelta(minutes=fallback_minutes)


def _attendees_and_notes(attendees: Optional[List[str]],
                         description: Optional[str]) -> Tuple[List[str], Optional[str]]:
  emails, names = split_emails(attendees or [])
  if names:
    description = _append_note(description, f"Attendees: {', '.join(names)}")
  return emails, description


def build_event_create(fields: CreateEventFields) -> EventCreate:
  """Shape validated create_event fields into a calendar insert.

  End comes from ``end``, else ``duration`` minutes, else one hour. Only
  valid e-mail addresses become attendees; other names and the location are
  written into the description so the event stays searchable.
  """
  start = _combine_date_time(fields.date or "", fields.time or "")
  if start is None:
    raise ValueError("create_event requires a valid date and time")
  end = _resolve_end(start, fields.date or "", fields.end, fields.duration,
                     DEFAULT_EVENT_DURATION_MINUTES)
  emails, description = _attendees_and_notes(fields.attendees, fields.description)
  if fields.location:
    description = _append_note(description, f"Location: {fields.location}")
  recurrence = None
  if fields.recurrence:
    rule = fields.recurrence
    recurrence = [rule if rule.upper().startswith("RRULE:") else f"RRULE:{rule}"]
  return EventCreate(
      title=fields.title or default_title(start),
      start=_format_iso_minute(start),
      end=_format_iso_minute(end),
      location=fields.location,
      description=description,
      attendees=emails,
      recurrence=recurrence,
  )


def build_event_update(existing: CalendarEvent, fields: UpdateEventFields) -> EventUpdate:
  """Patch containing only what the update mentions.

  A new date or time without an end or duration keeps the event's original
  length. A date alone keeps the original time of day and vice versa.
  """
  patch = EventUpdate()
  if fields.title:
    patch.title = fields.title
  if fields.location:
    patch.location = fields.location
  description = fields.description

  original_start = _parse_iso_minute(existing.start)
  original_minutes = _minutes_between(existing.start, existing.end) or DEFAULT_EVENT_DURATION_MINUTES
  if original_start is not None and (fields.date or fields.time or fields.end or fields.duration):
    date_str = fields.date or original_start.strftime("%Y-%m-%d")
    time_str = fields.time or original_start.strftime("%H:%M")
    start = _combine_date_time(date_str, time_str) or original_start
    end = _resolve_end(start, date_str, fields.end, fields.duration, original_minutes)
    if start != original_start:
      patch.start = _format_iso_minute(start)
    patch.end = _format_iso_minute(end)

  if fields.attendees:
    emails, names = split_emails(fields.attendees)
    if emails:
      patch.attendees = emails
    if names:
      base = description if description is not None else existing.description
      description = _append_note(base, f"Attendees: {', '.join(names)}")
  if description is not None:
    patch.description = description
  return patch


def build_followup(original: CalendarEvent, days: int, overrides: IntentFields) -> EventCreate:
  """Follow-up ``days`` after the original, same time of day and length."""
  start = _parse_iso_minute(original.start)
  if start is None:
    raise ValueError(f"event {original.id} has no usable start time")
  minutes = _minutes_between(original.start, original.end) or DEFAULT_EVENT_DURATION_MINUTES
  new_start = start + timedelta(days=days)
  date_override = getattr(overrides, "date", None)
  time_override = getattr(overrides, "time", None)
  if date_override or time_override:
    new_start = _combine_date_time(date_override or new_start.strftime("%Y-%m-%d"),
                                   time_override or new_start.strftime("%H:%M")) or new_start
  new_end = _resolve_end(new_start, new_start.strftime("%Y-%m-%d"),
                         getattr(overrides, "end", None),
                         getattr(overrides, "duration", None), minutes)

  attendees = list(original.attendees)
  description = getattr(overrides, "description", None) or f"Follow-up meeting for: {original.title}"
  override_attendees = getattr(overrides, "attendees", None)
  if override_attendees:
    emails, description = _attendees_and_notes(override_attendees, description)
    attendees = emails or attendees
  return EventCreate(
      title=getattr(overrides, "title", None) or f"Follow-up: {original.title}",
      start=_format_iso_minute(new_start),
      end=_format_iso_minute(new_end),
      location=getattr(overrides, "location", None) or original.location,
      description=description,
      attendees=attendees,
  )
