import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

import pytest

from chatcal.agent.calendar_store import LocalCalendar
from chatcal.agent.nlu import NluError
from chatcal.agent.orchestrator import Orchestrator
from chatcal.agent.schemas import EventMatch, Turn
from chatcal.agent.state import SessionStore
from chatcal.models import CalendarEvent
from chatcal.utils import _now

MULTI_PROMPT_MARKER = "Multi-action detector"


def run(coro):
    return asyncio.run(coro)


def days_from_now(days: int) -> str:
    return (_now() + timedelta(days=days)).strftime("%Y-%m-%d")


class FakeNlu:
    """
    Scripted stand-in for the language model.

    Queues are consumed in order. When a queue is empty the fake answers the
    way a cautious model would: no compound actions, general chat, and a
    title-substring event match.
    """

    def __init__(self):
        self.extractions: List[Any] = []
        self.splits: List[Any] = []
        self.matches: List[Any] = []
        self.texts: List[Any] = []
        self.extract_calls: List[str] = []
        self.match_calls: List[Dict[str, Any]] = []

    async def extract_intent(self, prompt: str, message: str,
                             context_turns: Sequence[Turn]) -> Optional[Dict[str, Any]]:
        if MULTI_PROMPT_MARKER in prompt:
            item = self.splits.pop(0) if self.splits else {"multipleIntents": []}
        else:
            self.extract_calls.append(message)
            item = (self.extractions.pop(0) if self.extractions
                    else {"intent": "general_chat", "confidence": 0.9, "fields": {}})
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_text(self, prompt: str, message: str,
                            context_turns: Optional[Sequence[Turn]] = None) -> str:
        if not self.texts:
            return "ok"
        item = self.texts.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def find_matching_event(self, query: str, candidates: Sequence[CalendarEvent],
                                  context_turns: Sequence[Turn]) -> EventMatch:
        self.match_calls.append({"query": query, "candidate_ids": [c.id for c in candidates]})
        if self.matches:
            item = self.matches.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        hits = [c for c in candidates if query.lower() in c.title.lower()]
        if len(hits) == 1:
            return EventMatch(success=True, event_id=hits[0].id, confidence=0.9,
                              message=f"Matched {hits[0].title}")
        if len(hits) > 1:
            return EventMatch(success=False, ambiguous=True, confidence=0.5)
        return EventMatch(success=False, confidence=0.0, message="No match")


class FakeClock:

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def nlu():
    """A fresh scripted NLU collaborator per test."""
    return FakeNlu()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """Session store driven by the fake clock."""
    return SessionStore(clock=clock)


@pytest.fixture
def calendar():
    return LocalCalendar()


@pytest.fixture
def orchestrator(nlu, calendar, store, clock):
    """
    Orchestrator wired to the fake NLU and a single in-memory calendar that
    every user id shares.
    """
    return Orchestrator(nlu, lambda user_id: calendar, store=store, clock=clock)


@pytest.fixture
def failing_nlu_error():
    return NluError("provider unavailable")
