from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any

from .config import MAX_MESSAGE_LENGTH, MAX_USER_ID_LENGTH


class CalendarEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    start: str  # "YYYY-MM-DDTHH:MM"
    end: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)


class EventCreate(BaseModel):
    title: str
    start: str
    end: str
    location: Optional[str] = None
    description: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)
    recurrence: Optional[List[str]] = None


class EventUpdate(BaseModel):
    title: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    attendees: Optional[List[str]] = None


class MessageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    userId: str = Field(min_length=1, max_length=MAX_USER_ID_LENGTH)


class MessageResult(BaseModel):
    success: bool
    intent: str
    confidence: float = 0.0
    response: str
    data: Optional[Dict[str, Any]] = None
