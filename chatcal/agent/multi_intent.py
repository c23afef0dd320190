from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from ..config import DEFAULT_TIMEZONE, HISTORY_CONTEXT_TURNS, INTENT_CONFIDENCE_THRESHOLD
from ..utils import _log_debug, _now
from .intent_router import parse_intent_item
from .nlu import NluClient
from .prompts import MULTI_INTENT_DEVELOPER_PROMPT, MULTI_INTENT_SYSTEM_PROMPT_TEMPLATE
from .schemas import ExtractedIntent, Turn


def build_multi_intent_prompt() -> str:
  system_prompt = MULTI_INTENT_SYSTEM_PROMPT_TEMPLATE.format(
      today=_now().strftime("%Y-%m-%d"),
      timezone=DEFAULT_TIMEZONE,
  )
  return f"{system_prompt}\n\n{MULTI_INTENT_DEVELOPER_PROMPT}"


def parse_sub_intents(raw: Optional[Dict[str, Any]], message: str) -> List[ExtractedIntent]:
  if not isinstance(raw, dict):
    return []
  items = raw.get("multipleIntents")
  if not isinstance(items, list) or len(items) < 2:
    return []
  sub_intents: List[ExtractedIntent] = []
  seen = set()
  for item in items:
    parsed = parse_intent_item(item, message)
    if parsed is None or parsed.confidence < INTENT_CONFIDENCE_THRESHOLD:
      return []
    key = (parsed.intent, json.dumps(parsed.fields.present(), sort_keys=True))
    if key in seen:
      continue
    seen.add(key)
    sub_intents.append(parsed)
  if len(sub_intents) < 2:
    return []
  return sub_intents


class MultiIntentSplitter:
  """Detects compound messages. Returns [] unless two or more distinct actions are found.

  Sub-intents repeating an earlier one (same intent and same fields) are
  dropped, so ``total_intents`` of a multi-step run can be lower than the
  number of items the model returned.
  """

  def __init__(self, nlu: NluClient) -> None:
    self.nlu = nlu

  async def split(self, message: str, history: Sequence[Turn]) -> List[ExtractedIntent]:
    context_turns = list(history)[-HISTORY_CONTEXT_TURNS:]
    try:
      raw = await self.nlu.extract_intent(build_multi_intent_prompt(), message, context_turns)
      sub_intents = parse_sub_intents(raw, message)
    except Exception as exc:
      print(f"[MULTI_INTENT] detection error: {exc}", flush=True)
      return []
    if sub_intents:
      _log_debug(f"[MULTI_INTENT] {len(sub_intents)} actions: {[s.intent for s in sub_intents]}")
    return sub_intents
