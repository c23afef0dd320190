from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..config import DEFAULT_TIMEZONE, HISTORY_CONTEXT_TURNS, INTENT_CONFIDENCE_THRESHOLD
from ..utils import _log_debug, _now
from .field_registry import parse_fields
from .nlu import NluClient
from .prompts import INTENT_EXTRACTION_DEVELOPER_PROMPT, INTENT_EXTRACTION_SYSTEM_PROMPT_TEMPLATE
from .schemas import (
    KNOWN_INTENTS,
    ExtractedIntent,
    ExtractionOutcome,
    FallbackOutcome,
    IntentOutcome,
    MultipleIntentsOutcome,
    Turn,
)


def build_extraction_prompt() -> str:
  system_prompt = INTENT_EXTRACTION_SYSTEM_PROMPT_TEMPLATE.format(
      today=_now().strftime("%Y-%m-%d"),
      timezone=DEFAULT_TIMEZONE,
  )
  return f"{system_prompt}\n\n{INTENT_EXTRACTION_DEVELOPER_PROMPT}"


def _coerce_confidence(value: Any) -> Optional[float]:
  if isinstance(value, bool):
    return None
  try:
    conf = float(value)
  except (TypeError, ValueError):
    return None
  if conf != conf:  # NaN
    return None
  return max(0.0, min(1.0, conf))


def parse_intent_item(item: Any, message: str) -> Optional[ExtractedIntent]:
  """Turn one raw ``{intent, confidence, fields}`` object into an ExtractedIntent.

  Returns None for unknown intents, missing/non-numeric confidence and
  field payloads that fail validation.
  """
  if not isinstance(item, dict):
    return None
  intent = str(item.get("intent") or "").strip().lower()
  if intent not in KNOWN_INTENTS:
    return None
  confidence = _coerce_confidence(item.get("confidence"))
  if confidence is None:
    return None
  try:
    fields = parse_fields(intent, item.get("fields"))
  except ValidationError as exc:
    _log_debug(f"[INTENT_ROUTER] field validation failed intent={intent}: {exc}")
    return None
  return ExtractedIntent(intent=intent, confidence=confidence, fields=fields, message=message)


def interpret_extraction(raw: Optional[Dict[str, Any]], message: str) -> ExtractionOutcome:
  if not isinstance(raw, dict):
    return FallbackOutcome(reason="unparseable", message=message)

  multiple = raw.get("multipleIntents")
  if isinstance(multiple, list) and multiple:
    parsed = [parse_intent_item(item, message) for item in multiple]
    if any(p is None or p.confidence < INTENT_CONFIDENCE_THRESHOLD for p in parsed):
      return FallbackOutcome(reason="low_confidence_multiple", message=message)
    if len(parsed) == 1:
      return IntentOutcome(intent=parsed[0])
    return MultipleIntentsOutcome(intents=parsed)

  extracted = parse_intent_item(raw, message)
  if extracted is None:
    return FallbackOutcome(
        reason="invalid_intent",
        message=message,
        raw_intent=str(raw.get("intent") or "") or None,
        raw_fields=raw.get("fields") if isinstance(raw.get("fields"), dict) else {},
    )
  if extracted.confidence < INTENT_CONFIDENCE_THRESHOLD:
    return FallbackOutcome(
        reason="low_confidence",
        message=message,
        raw_intent=extracted.intent,
        raw_confidence=extracted.confidence,
        raw_fields=raw.get("fields") if isinstance(raw.get("fields"), dict) else {},
    )
  return IntentOutcome(intent=extracted)


class IntentRouter:
  """Single-message intent extraction.

  Every path yields an ExtractionOutcome; collaborator errors and malformed
  output become FallbackOutcome, whose effective intent is general_chat.
  """

  def __init__(self, nlu: NluClient) -> None:
    self.nlu = nlu

  async def extract(self, message: str, history: Sequence[Turn]) -> ExtractionOutcome:
    context_turns: List[Turn] = list(history)[-HISTORY_CONTEXT_TURNS:]
    try:
      raw = await self.nlu.extract_intent(build_extraction_prompt(), message, context_turns)
      outcome = interpret_extraction(raw, message)
    except Exception as exc:
      print(f"[INTENT_ROUTER] extraction error: {exc}", flush=True)
      return FallbackOutcome(reason="collaborator_error", message=message)
    _log_debug(f"[INTENT_ROUTER] outcome={outcome.kind} intent={outcome.effective_intent().intent}")
    return outcome
