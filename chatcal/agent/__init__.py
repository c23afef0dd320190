"""
대화형 캘린더 에이전트 파이프라인
"""

from .intent_router import IntentRouter
from .multi_intent import MultiIntentSplitter
from .resolve_event_target import EventResolver
from .validator import Validator
from .dispatcher import ActionDispatcher
from .orchestrator import Orchestrator

__all__ = [
    "IntentRouter",
    "MultiIntentSplitter",
    "EventResolver",
    "Validator",
    "ActionDispatcher",
    "Orchestrator",
]
