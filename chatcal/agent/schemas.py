from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import (BaseModel, ConfigDict, Field, SerializeAsAny, field_validator,
                      model_validator)

from ..config import (
    FALLBACK_CONFIDENCE,
    ISO_DATE_RE,
    MAX_ATTENDEES,
    MAX_DESCRIPTION_LENGTH,
    MAX_EVENT_DURATION_MINUTES,
    MAX_FOLLOWUP_DAYS,
    MAX_LOCATION_LENGTH,
    MAX_TITLE_LENGTH,
    MIN_FOLLOWUP_DAYS,
)
from ..models import CalendarEvent
from ..utils import _clean_optional_str, _normalize_hhmm

IntentName = Literal[
    "create_event",
    "update_event",
    "cancel_event",
    "prepare_event",
    "followup_event",
    "list_events",
    "get_information",
    "help_request",
    "general_chat",
]

KNOWN_INTENTS = (
    "create_event",
    "update_event",
    "cancel_event",
    "prepare_event",
    "followup_event",
    "list_events",
    "get_information",
    "help_request",
    "general_chat",
)

# camelCase keys emitted by the model -> attribute names
_FIELD_ALIASES = {
    "followupDays": "followup_days",
    "follow_up_days": "followup_days",
    "userMessage": "user_message",
    "eventIdentifier": "event_identifier",
    "endTime": "end",
    "startTime": "time",
}


# ---------------------------------------------------------------------------
#  Per-intent field models
# ---------------------------------------------------------------------------

class IntentFields(BaseModel):
  """Base for per-intent field payloads.

  Normalization happens here so every consumer sees the same shapes:
  dates as YYYY-MM-DD, times as HH:MM, attendees as a list, durations and
  follow-up days as ints. Values that cannot be normalized become None and
  are reported as missing by the validator.
  """
  model_config = ConfigDict(extra="ignore")

  @model_validator(mode="before")
  @classmethod
  def _rename_and_split_time(cls, data: Any) -> Any:
    if not isinstance(data, dict):
      return data
    out: Dict[str, Any] = {}
    for key, value in data.items():
      out[_FIELD_ALIASES.get(key, key)] = value
    raw_time = out.get("time")
    if isinstance(raw_time, str) and "-" in raw_time and "T" not in raw_time:
      start_part, _, end_part = raw_time.partition("-")
      out["time"] = start_part.strip()
      if not out.get("end"):
        out["end"] = end_part.strip()
    recurrence = out.get("recurrence")
    if isinstance(recurrence, str) and recurrence.strip().lower() in ("", "none", "null"):
      out["recurrence"] = None
    return out

  @field_validator("title", check_fields=False, mode="before")
  @classmethod
  def _clip_title(cls, value: Any) -> Optional[str]:
    cleaned = _clean_optional_str(value)
    return cleaned[:MAX_TITLE_LENGTH] if cleaned else None

  @field_validator("description", check_fields=False, mode="before")
  @classmethod
  def _clip_description(cls, value: Any) -> Optional[str]:
    cleaned = _clean_optional_str(value)
    return cleaned[:MAX_DESCRIPTION_LENGTH] if cleaned else None

  @field_validator("location", check_fields=False, mode="before")
  @classmethod
  def _clip_location(cls, value: Any) -> Optional[str]:
    cleaned = _clean_optional_str(value)
    return cleaned[:MAX_LOCATION_LENGTH] if cleaned else None

  @field_validator("event_identifier", "user_message", "recurrence", check_fields=False, mode="before")
  @classmethod
  def _clean_text(cls, value: Any) -> Optional[str]:
    return _clean_optional_str(value)

  @field_validator("date", check_fields=False, mode="before")
  @classmethod
  def _normalize_date(cls, value: Any) -> Optional[str]:
    cleaned = _clean_optional_str(value)
    if not cleaned:
      return None
    candidate = cleaned[:10]
    if not ISO_DATE_RE.match(candidate):
      return None
    try:
      datetime.strptime(candidate, "%Y-%m-%d")
    except ValueError:
      return None
    return candidate

  @field_validator("time", "end", check_fields=False, mode="before")
  @classmethod
  def _normalize_clock(cls, value: Any) -> Optional[str]:
    if isinstance(value, str) and "T" in value:
      value = value.split("T", 1)[1][:5]
    return _normalize_hhmm(value)

  @field_validator("duration", check_fields=False, mode="before")
  @classmethod
  def _normalize_duration(cls, value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
      return None
    if isinstance(value, str):
      raw = value.strip().lower()
      hours = raw.endswith(("h", "hour", "hours"))
      digits = "".join(ch for ch in raw if ch.isdigit() or ch == ".")
      if not digits:
        return None
      try:
        minutes = float(digits) * (60 if hours else 1)
      except ValueError:
        return None
    else:
      try:
        minutes = float(value)
      except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes):
      return None
    minutes_int = int(minutes)
    if minutes_int <= 0 or minutes_int > MAX_EVENT_DURATION_MINUTES:
      return None
    return minutes_int

  @field_validator("followup_days", check_fields=False, mode="before")
  @classmethod
  def _normalize_followup_days(cls, value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
      return None
    try:
      days = int(str(value).strip())
    except (TypeError, ValueError):
      return None
    if days < MIN_FOLLOWUP_DAYS or days > MAX_FOLLOWUP_DAYS:
      return None
    return days

  @field_validator("attendees", check_fields=False, mode="before")
  @classmethod
  def _normalize_attendees(cls, value: Any) -> Optional[List[str]]:
    if value is None:
      return None
    if isinstance(value, str):
      value = value.replace(";", ",").split(",")
    if not isinstance(value, list):
      return None
    cleaned: List[str] = []
    for item in value:
      if isinstance(item, dict):
        item = item.get("email") or item.get("name")
      text = _clean_optional_str(item)
      if text and text not in cleaned:
        cleaned.append(text)
    return cleaned[:MAX_ATTENDEES] or None

  def present(self) -> Dict[str, Any]:
    return self.model_dump(exclude_none=True)


class NoFields(IntentFields):
  pass


class CreateEventFields(IntentFields):
  title: Optional[str] = None
  date: Optional[str] = None
  time: Optional[str] = None
  end: Optional[str] = None
  duration: Optional[int] = None
  location: Optional[str] = None
  attendees: Optional[List[str]] = None
  description: Optional[str] = None
  recurrence: Optional[str] = None


class EventReferenceFields(IntentFields):
  event_identifier: Optional[str] = None


class UpdateEventFields(EventReferenceFields):
  title: Optional[str] = None
  date: Optional[str] = None
  time: Optional[str] = None
  end: Optional[str] = None
  duration: Optional[int] = None
  location: Optional[str] = None
  attendees: Optional[List[str]] = None
  description: Optional[str] = None


class FollowupEventFields(UpdateEventFields):
  followup_days: Optional[int] = None


class ListEventsFields(IntentFields):
  user_message: Optional[str] = None
  date: Optional[str] = None
  attendees: Optional[List[str]] = None


class ExtractedIntent(BaseModel):
  model_config = ConfigDict(extra="ignore")

  intent: IntentName
  confidence: float = Field(default=0.0, ge=0.0, le=1.0)
  fields: SerializeAsAny[IntentFields] = Field(default_factory=NoFields)
  message: str = ""


# ---------------------------------------------------------------------------
#  Extraction outcome (tagged)
# ---------------------------------------------------------------------------

class IntentOutcome(BaseModel):
  kind: Literal["intent"] = "intent"
  intent: ExtractedIntent

  def effective_intent(self) -> ExtractedIntent:
    return self.intent


class MultipleIntentsOutcome(BaseModel):
  kind: Literal["multiple"] = "multiple"
  intents: List[ExtractedIntent] = Field(default_factory=list)

  def effective_intent(self) -> ExtractedIntent:
    return self.intents[0]


class FallbackOutcome(BaseModel):
  """Low-confidence or unusable extraction; always behaves as general chat."""
  kind: Literal["fallback"] = "fallback"
  reason: str = ""
  message: str = ""
  raw_intent: Optional[str] = None
  raw_confidence: Optional[float] = None
  raw_fields: Dict[str, Any] = Field(default_factory=dict)

  def effective_intent(self) -> ExtractedIntent:
    return ExtractedIntent(intent="general_chat",
                           confidence=FALLBACK_CONFIDENCE,
                           fields=NoFields(),
                           message=self.message)


ExtractionOutcome = Union[IntentOutcome, MultipleIntentsOutcome, FallbackOutcome]


# ---------------------------------------------------------------------------
#  Event matching (NLU output)
# ---------------------------------------------------------------------------

class EventMatch(BaseModel):
  model_config = ConfigDict(extra="ignore")

  success: bool = False
  event_id: Optional[str] = None
  confidence: float = Field(default=0.0, ge=0.0, le=1.0)
  ambiguous: bool = False
  message: str = ""

  @model_validator(mode="before")
  @classmethod
  def _lift_event_id(cls, data: Any) -> Any:
    if not isinstance(data, dict):
      return data
    out = dict(data)
    event = out.get("event")
    if not out.get("event_id") and isinstance(event, dict):
      out["event_id"] = event.get("id")
    conf = out.get("confidence")
    if isinstance(conf, (int, float)) and not isinstance(conf, bool):
      out["confidence"] = max(0.0, min(1.0, float(conf)))
    return out


class EventResolution(BaseModel):
  status: Literal["found", "ambiguous", "not_found"]
  event: Optional[CalendarEvent] = None
  events: List[CalendarEvent] = Field(default_factory=list)
  confidence: float = 0.0
  message: str = ""


# ---------------------------------------------------------------------------
#  Validation / action results
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
  intent: IntentName
  confidence: float = 0.0
  fields: SerializeAsAny[IntentFields] = Field(default_factory=NoFields)
  message: str = ""
  requires_action: bool = False
  resolved_event: Optional[CalendarEvent] = None
  clarification: Optional[str] = None
  missing_fields: List[str] = Field(default_factory=list)


class ActionResult(BaseModel):
  success: bool
  kind: Literal["clarification", "chat", "calendar_action", "calendar_info"]
  message: str
  data: Optional[Dict[str, Any]] = None


class StepReport(BaseModel):
  intent: str
  success: bool
  message: str
  data: Optional[Dict[str, Any]] = None


class MultiStepReport(BaseModel):
  """Outcome of a compound message.

  Steps run sequentially and independently; a failed or clarifying step does
  not stop later steps and earlier steps are never rolled back.
  """
  steps: List[StepReport] = Field(default_factory=list)
  total_intents: int = 0
  successful_intents: int = 0

  @property
  def success(self) -> bool:
    return bool(self.steps) and self.successful_intents == self.total_intents


# ---------------------------------------------------------------------------
#  Session state
# ---------------------------------------------------------------------------

class Turn(BaseModel):
  role: Literal["user", "assistant"]
  text: str
  timestamp: float


class PendingIntent(BaseModel):
  intent: IntentName
  fields: Dict[str, Any] = Field(default_factory=dict)
  missing_fields: List[str] = Field(default_factory=list)
  created_at: float


class ActiveContext(BaseModel):
  type: Literal["event_update"] = "event_update"
  event_id: str
  timestamp: float


class ConversationSession(BaseModel):
  user_id: str
  turns: List[Turn] = Field(default_factory=list)
  pending_intent: Optional[PendingIntent] = None
  active_context: Optional[ActiveContext] = None
  last_activity: float = 0.0
