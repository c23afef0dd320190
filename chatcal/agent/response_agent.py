from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional, Sequence

from ..config import HISTORY_CONTEXT_TURNS
from ..models import CalendarEvent
from ..utils import _log_debug, _now, _parse_iso_minute
from .nlu import NluClient, serialize_candidate
from .prompts import (CHAT_SYSTEM_PROMPT, EVENT_LIST_SYSTEM_PROMPT, EVENT_NOTES_PROMPT_TEMPLATE,
                      GENERAL_CHAT_RESPONSE)
from .schemas import Turn

NOTES_UNAVAILABLE = "Unable to generate notes at this time."


def _readable(value: Optional[str]) -> str:
  parsed: Optional[datetime] = _parse_iso_minute(value)
  if parsed is None:
    return value or ""
  return f"{parsed.strftime('%b')} {parsed.day} at {parsed.strftime('%H:%M')}"


def format_event_line(event: CalendarEvent) -> str:
  line = f"• {event.title} ({_readable(event.start)})"
  if event.location:
    line += f" @ {event.location}"
  return line


def summarize_events(events: Sequence[CalendarEvent]) -> str:
  if not events:
    return "You don't have any events in your calendar."
  lines = [f"You have {len(events)} event(s):"]
  lines.extend(format_event_line(ev) for ev in events)
  return "\n".join(lines)


async def generate_event_notes(nlu: NluClient, event: CalendarEvent) -> str:
  prompt = EVENT_NOTES_PROMPT_TEMPLATE.format(
      title=event.title,
      start=event.start,
      location=event.location or "Not specified",
      description=event.description or "No description provided",
      attendees=", ".join(event.attendees) or "Not specified",
  )
  try:
    return await nlu.generate_text(prompt, event.title)
  except Exception as exc:
    print(f"[RESPONSE_AGENT] notes error: {exc}", flush=True)
    return NOTES_UNAVAILABLE


async def answer_event_query(nlu: NluClient, query: str, events: List[CalendarEvent],
                             history: Sequence[Turn]) -> str:
  events_context = json.dumps([serialize_candidate(ev) for ev in events], ensure_ascii=False)
  prompt = (f"{EVENT_LIST_SYSTEM_PROMPT}\n\nToday: {_now().strftime('%Y-%m-%d')}\n"
            f"Calendar events: {events_context}")
  try:
    return await nlu.generate_text(prompt, query, list(history)[-HISTORY_CONTEXT_TURNS:])
  except Exception as exc:
    print(f"[RESPONSE_AGENT] event list answer error: {exc}", flush=True)
    return summarize_events(events)


async def chat_reply(nlu: NluClient, message: str, history: Sequence[Turn]) -> str:
  try:
    return await nlu.generate_text(CHAT_SYSTEM_PROMPT, message,
                                   list(history)[-HISTORY_CONTEXT_TURNS:])
  except Exception as exc:
    _log_debug(f"[RESPONSE_AGENT] chat fallback: {exc}")
    return GENERAL_CHAT_RESPONSE
