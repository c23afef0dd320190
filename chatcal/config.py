from __future__ import annotations

import os
import pathlib
import re
from zoneinfo import ZoneInfo

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"
LLM_PROVIDER = os.getenv("AGENT_LLM_PROVIDER", "auto").strip().lower() or "auto"
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC").strip() or "UTC"
TZ = ZoneInfo(DEFAULT_TIMEZONE)

ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::[0-5]\d)?$")
AMPM_RE = re.compile(r"^(1[0-2]|0?[1-9])(?::([0-5]\d))?\s*([ap])\.?m\.?$", re.IGNORECASE)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_SEARCH_RE = re.compile(r"[^\s@,;<>]+@[^\s@,;<>]+\.[^\s@,;<>]+")

# -------------------------
# Google Calendar 설정
# -------------------------
ENABLE_GCAL = os.getenv("ENABLE_GCAL", "0") == "1"
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GCAL_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
]

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
GOOGLE_TOKEN_DIR = pathlib.Path(
    os.getenv("GOOGLE_TOKEN_DIR", str(BASE_DIR / "gcal_tokens")))
GOOGLE_TOKEN_DEFAULT_USER = os.getenv("GOOGLE_TOKEN_DEFAULT_USER", "default").strip() or "default"

CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "")
cors_origins: list[str] = []
if CORS_ALLOW_ORIGINS:
    cors_origins.extend(
        [origin.strip() for origin in CORS_ALLOW_ORIGINS.split(",") if origin.strip()])

# -------------------------
# 세션/대화 제한
# -------------------------
SESSION_MAX_HISTORY = int(os.getenv("SESSION_MAX_HISTORY", "20"))
SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(60 * 60 * 24)))
SESSION_SWEEP_INTERVAL_SECONDS = int(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", str(60 * 60)))
PENDING_INTENT_TIMEOUT_SECONDS = int(os.getenv("PENDING_INTENT_TIMEOUT_SECONDS", str(5 * 60)))
HISTORY_CONTEXT_TURNS = 6

# -------------------------
# 의도 추출/이벤트 매칭
# -------------------------
INTENT_CONFIDENCE_THRESHOLD = 0.7
FALLBACK_CONFIDENCE = 0.5
MULTI_INTENT_CONFIDENCE = 0.9
CONTINUATION_CONFIDENCE = 0.95
EVENT_MATCH_CONFIDENCE_FLOOR = 0.3

# -------------------------
# 캘린더 기본값/검증 규칙
# -------------------------
EVENT_LOOKUP_WINDOW_DAYS = int(os.getenv("EVENT_LOOKUP_WINDOW_DAYS", "365"))
EVENT_LIST_MAX_RESULTS = 2500
DEFAULT_EVENT_DURATION_MINUTES = 60
MAX_EVENT_DURATION_MINUTES = 24 * 60
MAX_MESSAGE_LENGTH = 1000
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_LOCATION_LENGTH = 500
MAX_ATTENDEES = 50
MIN_FOLLOWUP_DAYS = 1
MAX_FOLLOWUP_DAYS = 365
MAX_USER_ID_LENGTH = 100
