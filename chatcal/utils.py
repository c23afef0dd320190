from __future__ import annotations

from datetime import datetime, timedelta, date
from typing import Any, List, Optional, Tuple

from .config import (
    LLM_DEBUG,
    TZ,
    ISO_DATETIME_RE,
    ISO_DATE_RE,
    HHMM_RE,
    AMPM_RE,
    EMAIL_RE,
    MAX_MESSAGE_LENGTH,
)


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def _now() -> datetime:
    return datetime.now(TZ)


def sanitize_message(text: Any) -> str:
    """Strip markup brackets and clamp the message to the accepted length."""
    if not isinstance(text, str):
        return ""
    cleaned = text.strip().replace("<", "").replace(">", "")
    return cleaned[:MAX_MESSAGE_LENGTH]


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def _clean_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    cleaned = value.strip()
    return cleaned or None


def _normalize_hhmm(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    raw = value.strip()
    m = HHMM_RE.match(raw)
    if m:
        return f"{int(m.group(1)):02d}:{m.group(2)}"
    m = AMPM_RE.match(raw)
    if not m:
        return None
    hour = int(m.group(1)) % 12
    if m.group(3).lower() == "p":
        hour += 12
    return f"{hour:02d}:{m.group(2) or '00'}"


def _parse_iso_minute(value: Optional[str]) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not ISO_DATETIME_RE.match(raw):
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%dT%H:%M")
    except Exception:
        return None


def _format_iso_minute(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M")


def _split_iso_date_time(value: Optional[str]) -> Tuple[Optional[date], Optional[str]]:
    if not isinstance(value, str):
        return (None, None)
    raw = value.strip()
    if len(raw) < 10:
        return (None, None)
    date_part = raw[:10]
    if not ISO_DATE_RE.match(date_part):
        return (None, None)
    try:
        dt = datetime.strptime(date_part, "%Y-%m-%d").date()
    except Exception:
        return (None, None)
    time_part: Optional[str] = None
    if len(raw) >= 16:
        time_part = raw[11:16]
    return (dt, time_part)


def _combine_date_time(date_str: str, time_str: str) -> Optional[datetime]:
    hhmm = _normalize_hhmm(time_str)
    if not isinstance(date_str, str) or not ISO_DATE_RE.match(date_str.strip()) or not hhmm:
        return None
    try:
        return datetime.strptime(f"{date_str.strip()}T{hhmm}", "%Y-%m-%dT%H:%M")
    except Exception:
        return None


def _minutes_between(start_iso: Optional[str], end_iso: Optional[str]) -> Optional[int]:
    start_dt = _parse_iso_minute(start_iso)
    end_dt = _parse_iso_minute(end_iso)
    if start_dt is None or end_dt is None:
        return None
    delta = int((end_dt - start_dt).total_seconds() // 60)
    return delta if delta > 0 else None


def lookup_window(days: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    current = (now or _now()).replace(tzinfo=None, second=0, microsecond=0)
    return (current - timedelta(days=days), current + timedelta(days=days))


def split_emails(values: List[str]) -> Tuple[List[str], List[str]]:
    emails: List[str] = []
    names: List[str] = []
    for item in values:
        cleaned = _clean_optional_str(item)
        if not cleaned:
            continue
        if is_valid_email(cleaned):
            if cleaned not in emails:
                emails.append(cleaned)
        elif cleaned not in names:
            names.append(cleaned)
    return emails, names
