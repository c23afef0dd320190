from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..config import LLM_PROVIDER
from ..models import CalendarEvent
from .llm_provider import (get_agent_llm_settings, run_json_completion, run_structured_completion,
                           run_text_completion)
from .prompts import EVENT_MATCH_DEVELOPER_PROMPT, EVENT_MATCH_SYSTEM_PROMPT
from .schemas import EventMatch, Turn

NLU_MODEL = os.getenv("AGENT_NLU_MODEL", "gpt-5-mini").strip()
RESPONSE_MODEL = os.getenv("AGENT_RESPONSE_MODEL", NLU_MODEL).strip()
_NLU_SETTINGS = get_agent_llm_settings("NLU")
_RESPONSE_SETTINGS = get_agent_llm_settings("RESPONSE")
print(f"[NLU] Loaded model: {NLU_MODEL}, response model: {RESPONSE_MODEL}, provider: {LLM_PROVIDER}", flush=True)


class NluError(Exception):
  """The language model could not be reached or returned nothing usable."""


class NluClient(Protocol):

  async def extract_intent(self, prompt: str, message: str,
                           context_turns: Sequence[Turn]) -> Optional[Dict[str, Any]]:
    ...

  async def generate_text(self, prompt: str, message: str,
                          context_turns: Optional[Sequence[Turn]] = None) -> str:
    ...

  async def find_matching_event(self, query: str, candidates: Sequence[CalendarEvent],
                                context_turns: Sequence[Turn]) -> EventMatch:
    ...


def format_history(turns: Optional[Sequence[Turn]]) -> List[str]:
  lines: List[str] = []
  for turn in turns or []:
    role = "User" if turn.role == "user" else "Assistant"
    lines.append(f"{role}: {turn.text}")
  return lines


def serialize_candidate(event: CalendarEvent) -> Dict[str, Any]:
  return event.model_dump(exclude_none=True)


def _raise_if_failed(meta: Dict[str, Any], what: str) -> None:
  if not meta.get("available", True):
    raise NluError(f"{what}: {meta.get('error') or 'provider unavailable'}")
  if meta.get("error"):
    raise NluError(f"{what}: {meta['error']}")


class LlmNluClient:
  """NluClient backed by OpenAI chat completions or Gemini."""

  def __init__(self, model: str = NLU_MODEL, response_model: str = RESPONSE_MODEL) -> None:
    self.model = model
    self.response_model = response_model

  async def extract_intent(self, prompt: str, message: str,
                           context_turns: Sequence[Turn]) -> Optional[Dict[str, Any]]:
    parsed, _raw, meta = await run_json_completion(
        model=self.model,
        system_prompt=prompt,
        developer_prompt=None,
        user_payload={
            "message": message,
            "conversation": format_history(context_turns),
        },
        reasoning_effort=_NLU_SETTINGS["reasoning_effort"],
        gemini_thinking_level=_NLU_SETTINGS["gemini_thinking_level"],
        max_completion_tokens=4000,
    )
    _raise_if_failed(meta, "intent extraction failed")
    return parsed

  async def generate_text(self, prompt: str, message: str,
                          context_turns: Optional[Sequence[Turn]] = None) -> str:
    text, meta = await run_text_completion(
        model=self.response_model,
        system_prompt=prompt,
        developer_prompt=None,
        user_payload={
            "message": message,
            "conversation": format_history(context_turns),
        },
        reasoning_effort=_RESPONSE_SETTINGS["reasoning_effort"],
        gemini_thinking_level=_RESPONSE_SETTINGS["gemini_thinking_level"],
        max_completion_tokens=4000,
    )
    _raise_if_failed(meta, "text generation failed")
    if not text.strip():
      raise NluError("text generation failed: empty output")
    return text.strip()

  async def find_matching_event(self, query: str, candidates: Sequence[CalendarEvent],
                                context_turns: Sequence[Turn]) -> EventMatch:
    parsed, raw_output, meta = await run_structured_completion(
        model=self.model,
        system_prompt=EVENT_MATCH_SYSTEM_PROMPT,
        developer_prompt=EVENT_MATCH_DEVELOPER_PROMPT,
        user_payload={
            "query": query,
            "conversation": format_history(context_turns),
            "candidates": [serialize_candidate(ev) for ev in candidates],
        },
        response_model=EventMatch,
        reasoning_effort=_NLU_SETTINGS["reasoning_effort"],
        gemini_thinking_level=_NLU_SETTINGS["gemini_thinking_level"],
        max_completion_tokens=4000,
    )
    _raise_if_failed(meta, "event matching failed")
    if parsed is None:
      raise NluError(f"event matching failed: unparseable output ({len(raw_output)} chars)")
    return parsed
