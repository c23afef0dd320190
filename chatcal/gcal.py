from __future__ import annotations

import asyncio
import json
import pathlib
import re
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request as GoogleRequest
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import (
    ENABLE_GCAL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_CALENDAR_ID,
    GCAL_SCOPES,
    GOOGLE_TOKEN_DIR,
    GOOGLE_TOKEN_DEFAULT_USER,
    DEFAULT_TIMEZONE,
    EVENT_LIST_MAX_RESULTS,
    TZ,
)
from .models import CalendarEvent, EventCreate, EventUpdate
from .utils import _log_debug, _split_iso_date_time
from .agent.calendar_store import CalendarClient, CalendarError, CalendarFactory

_SAFE_ID_RE = re.compile(r"[^A-Za-z0-9_.-]")


def is_gcal_configured() -> bool:
  return bool(ENABLE_GCAL and GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET)


def _token_path(user_id: str) -> pathlib.Path:
  safe = _SAFE_ID_RE.sub("_", user_id or "")[:100] or GOOGLE_TOKEN_DEFAULT_USER
  return GOOGLE_TOKEN_DIR / f"{safe}.json"


def load_gcal_token(user_id: str) -> Optional[Dict[str, Any]]:
  for path in (_token_path(user_id), _token_path(GOOGLE_TOKEN_DEFAULT_USER)):
    if not path.exists():
      continue
    try:
      with path.open("r", encoding="utf-8") as f:
        return json.load(f)
    except Exception as exc:
      _log_debug(f"[GCAL] token read failed {path}: {exc}")
  return None


def save_gcal_token(user_id: str, data: Dict[str, Any]) -> None:
  GOOGLE_TOKEN_DIR.mkdir(parents=True, exist_ok=True)
  path = _token_path(user_id)
  path.write_text(json.dumps(data, ensure_ascii=False, indent=2),
                  encoding="utf-8")


def get_gcal_service(user_id: str):
  if not is_gcal_configured():
    raise RuntimeError("Google Calendar is not configured.")

  token_data = load_gcal_token(user_id)
  if not token_data:
    raise RuntimeError("Google OAuth token not found.")

  creds = Credentials.from_authorized_user_info(token_data, GCAL_SCOPES)

  if creds.expired and creds.refresh_token:
    creds.refresh(GoogleRequest())
    save_gcal_token(user_id, json.loads(creds.to_json()))

  return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _convert_gcal_time(obj: Dict[str, Any],
                       is_end: bool,
                       start_iso: Optional[str]) -> Optional[str]:
  if not isinstance(obj, dict):
    return None

  dt_value = obj.get("dateTime")
  if isinstance(dt_value, str):
    try:
      dt = datetime.fromisoformat(dt_value.replace("Z", "+00:00"))
      return dt.astimezone(TZ).strftime("%Y-%m-%dT%H:%M")
    except Exception:
      return None

  date_value = obj.get("date")
  if isinstance(date_value, str):
    try:
      date_obj = datetime.strptime(date_value, "%Y-%m-%d").date()
    except Exception:
      return None
    if not is_end:
      return date_obj.strftime("%Y-%m-%dT00:00")
    # all-day end dates are exclusive
    inclusive = date_obj - timedelta(days=1)
    start_date, _ = _split_iso_date_time(start_iso)
    if start_date and inclusive < start_date:
      inclusive = start_date
    return inclusive.strftime("%Y-%m-%dT23:59")

  return None


def _normalize_gcal_event(raw: Dict[str, Any]) -> Optional[CalendarEvent]:
  event_id = raw.get("id")
  start_iso = _convert_gcal_time(raw.get("start") or {}, False, None)
  if not event_id or not start_iso:
    return None
  end_iso = _convert_gcal_time(raw.get("end") or {}, True, start_iso)
  attendees: List[str] = []
  attendees_raw = raw.get("attendees")
  if isinstance(attendees_raw, list):
    for item in attendees_raw:
      if not isinstance(item, dict):
        continue
      email = item.get("email")
      if isinstance(email, str) and email.strip():
        attendees.append(email.strip())
  return CalendarEvent(
      id=str(event_id),
      title=raw.get("summary") or "(untitled)",
      start=start_iso,
      end=end_iso,
      location=raw.get("location") or None,
      description=raw.get("description") or None,
      attendees=attendees,
  )


def _gcal_datetime(iso_minute: str) -> Dict[str, str]:
  dt = datetime.strptime(iso_minute, "%Y-%m-%dT%H:%M").replace(tzinfo=TZ)
  return {"dateTime": dt.isoformat(), "timeZone": DEFAULT_TIMEZONE}


def _build_gcal_event_body(title: Optional[str],
                           start_iso: Optional[str],
                           end_iso: Optional[str],
                           location: Optional[str],
                           description: Optional[str],
                           attendees: Optional[List[str]],
                           recurrence: Optional[List[str]] = None) -> Dict[str, Any]:
  body: Dict[str, Any] = {}
  if title is not None:
    body["summary"] = title
  if location is not None:
    body["location"] = location
  if description is not None:
    body["description"] = description
  if attendees is not None:
    body["attendees"] = [{"email": email} for email in attendees]
  if start_iso:
    body["start"] = _gcal_datetime(start_iso)
  if end_iso:
    body["end"] = _gcal_datetime(end_iso)
  if recurrence:
    body["recurrence"] = recurrence
  return body


class GoogleCalendar:
  """CalendarClient backed by the Google Calendar v3 API.

  The discovery client is synchronous, so every call is pushed to a worker
  thread. Failures are raised as CalendarError.
  """

  def __init__(self, user_id: str, calendar_id: str = GOOGLE_CALENDAR_ID) -> None:
    self.user_id = user_id
    self.calendar_id = calendar_id
    self._service = None
    self._service_lock = Lock()

  def _events(self):
    with self._service_lock:
      if self._service is None:
        try:
          self._service = get_gcal_service(self.user_id)
        except Exception as exc:
          raise CalendarError("Google Calendar is not connected.", cause=exc) from exc
      return self._service.events()

  async def _run(self, label: str, fn, *args, **kwargs):
    try:
      return await asyncio.to_thread(fn, *args, **kwargs)
    except CalendarError:
      raise
    except HttpError as exc:
      status = getattr(getattr(exc, "resp", None), "status", None)
      _log_debug(f"[GCAL] {label} http error status={status}: {exc}")
      if status in (404, 410):
        raise CalendarError("Event not found in your calendar.", cause=exc) from exc
      raise CalendarError("Google Calendar request failed. Please try again.", cause=exc) from exc
    except Exception as exc:
      _log_debug(f"[GCAL] {label} error: {exc}")
      raise CalendarError("Google Calendar request failed. Please try again.", cause=exc) from exc

  def _insert_sync(self, body: Dict[str, Any]) -> Dict[str, Any]:
    return self._events().insert(calendarId=self.calendar_id, body=body).execute()

  def _patch_sync(self, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    return self._events().patch(calendarId=self.calendar_id, eventId=event_id,
                                body=body).execute()

  def _delete_sync(self, event_id: str) -> None:
    self._events().delete(calendarId=self.calendar_id, eventId=event_id).execute()

  def _get_sync(self, event_id: str) -> Optional[Dict[str, Any]]:
    try:
      return self._events().get(calendarId=self.calendar_id, eventId=event_id).execute()
    except HttpError as exc:
      if getattr(getattr(exc, "resp", None), "status", None) in (404, 410):
        return None
      raise

  def _list_sync(self, time_min: str, time_max: str) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    page_token: Optional[str] = None
    while True:
      resp = self._events().list(
          calendarId=self.calendar_id,
          timeMin=time_min,
          timeMax=time_max,
          singleEvents=True,
          orderBy="startTime",
          maxResults=EVENT_LIST_MAX_RESULTS,
          pageToken=page_token,
      ).execute()
      items.extend(resp.get("items") or [])
      page_token = resp.get("nextPageToken")
      if not page_token or len(items) >= EVENT_LIST_MAX_RESULTS:
        break
    return items[:EVENT_LIST_MAX_RESULTS]

  def _require(self, raw: Optional[Dict[str, Any]]) -> CalendarEvent:
    event = _normalize_gcal_event(raw or {})
    if event is None:
      raise CalendarError("Google Calendar returned an unreadable event.")
    return event

  async def create_event(self, event: EventCreate) -> CalendarEvent:
    body = _build_gcal_event_body(event.title, event.start, event.end, event.location,
                                  event.description, event.attendees or None,
                                  event.recurrence)
    created = await self._run("create", self._insert_sync, body)
    return self._require(created)

  async def update_event(self, event_id: str, patch: EventUpdate) -> CalendarEvent:
    body = _build_gcal_event_body(patch.title, patch.start, patch.end, patch.location,
                                  patch.description, patch.attendees)
    updated = await self._run("update", self._patch_sync, event_id, body)
    return self._require(updated)

  async def delete_event(self, event_id: str) -> None:
    await self._run("delete", self._delete_sync, event_id)

  async def get_event(self, event_id: str) -> Optional[CalendarEvent]:
    raw = await self._run("get", self._get_sync, event_id)
    if raw is None:
      return None
    return _normalize_gcal_event(raw)

  async def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
    time_min, time_max = _window_bounds(start, end)
    raw_items = await self._run("list", self._list_sync, time_min, time_max)
    events: List[CalendarEvent] = []
    for raw in raw_items:
      normalized = _normalize_gcal_event(raw)
      if normalized is not None:
        events.append(normalized)
    return events


def _window_bounds(start: datetime, end: datetime) -> Tuple[str, str]:
  if start.tzinfo is None:
    start = start.replace(tzinfo=TZ)
  if end.tzinfo is None:
    end = end.replace(tzinfo=TZ)
  return start.isoformat(), end.isoformat()


def google_calendar_factory() -> CalendarFactory:
  clients: Dict[str, GoogleCalendar] = {}
  guard = Lock()

  def _calendar_for(user_id: str) -> CalendarClient:
    with guard:
      client = clients.get(user_id)
      if client is None:
        client = GoogleCalendar(user_id)
        clients[user_id] = client
      return client

  return _calendar_for
