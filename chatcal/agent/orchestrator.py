from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from ..config import (
    MULTI_INTENT_CONFIDENCE,
    PENDING_INTENT_TIMEOUT_SECONDS,
)
from ..models import MessageResult
from ..utils import _log_debug, sanitize_message
from .calendar_store import CalendarClient
from .continuation import ContinuationHandler
from .dispatcher import ActionDispatcher, UnsupportedIntentError
from .field_registry import parse_fields
from .intent_router import IntentRouter
from .multi_intent import MultiIntentSplitter
from .nlu import NluClient
from .schemas import (
    ActionResult,
    ExtractedIntent,
    ExtractionOutcome,
    IntentOutcome,
    MultiStepReport,
    MultipleIntentsOutcome,
    StepReport,
    Turn,
    ValidationResult,
)
from .state import SessionStore, session_store
from .validator import Validator

logger = logging.getLogger(__name__)

ERROR_RESPONSE = "I apologize, but I encountered an error processing your request. Please try again."
EMPTY_MESSAGE_RESPONSE = "Please type a message so I can help with your calendar."
MULTI_STEP_HEADER = "I've executed the following actions:"


class Orchestrator:
  """Entry point for one user message.

  Messages for the same user id are processed one at a time. A compound
  message runs its actions sequentially and best-effort: a failing step is
  reported and later steps still run; completed steps are not rolled back.
  """

  def __init__(self,
               nlu: NluClient,
               calendar_for: Callable[[str], CalendarClient],
               store: Optional[SessionStore] = None,
               clock: Callable[[], float] = time.time) -> None:
    self.nlu = nlu
    self.store = store if store is not None else session_store
    self.clock = clock
    self.router = IntentRouter(nlu)
    self.splitter = MultiIntentSplitter(nlu)
    self.validator = Validator(nlu, self.store, calendar_for, clock=clock)
    self.dispatcher = ActionDispatcher(nlu, calendar_for)
    self.continuation = ContinuationHandler(self.store, calendar_for)

  async def process_message(self, text: str, user_id: str) -> MessageResult:
    message = sanitize_message(text)
    if not message:
      return MessageResult(success=False, intent="general_chat", confidence=0.0,
                           response=EMPTY_MESSAGE_RESPONSE)
    async with self.store.lock(user_id):
      try:
        result = await self._process_locked(message, user_id)
      except UnsupportedIntentError:
        logger.exception("dispatcher received an unsupported intent (user=%s)", user_id)
        result = MessageResult(success=False, intent="general_chat", confidence=0.0,
                               response=ERROR_RESPONSE)
      except Exception:
        logger.exception("message processing failed (user=%s)", user_id)
        result = MessageResult(success=False, intent="general_chat", confidence=0.0,
                               response=ERROR_RESPONSE)
      self.store.append_turn(user_id, "user", message)
      self.store.append_turn(user_id, "assistant", result.response)
      return result

  async def _process_locked(self, message: str, user_id: str) -> MessageResult:
    history = self.store.history(user_id)

    continued = await self.continuation.try_handle(message, user_id)
    if continued is not None:
      return continued

    sub_intents = await self.splitter.split(message, history)
    if len(sub_intents) >= 2:
      return await self._run_multi_step(sub_intents, user_id, history)

    outcome = await self.router.extract(message, history)
    if isinstance(outcome, MultipleIntentsOutcome) and len(outcome.intents) >= 2:
      return await self._run_multi_step(outcome.intents, user_id, history)

    extracted = self._resume_pending(outcome, message, user_id)
    validation = await self.validator.validate(extracted, user_id, history)
    action = await self.dispatcher.execute(validation, user_id, history)
    self._update_context(user_id, validation, action)
    return MessageResult(
        success=action.success,
        intent=validation.intent,
        confidence=validation.confidence,
        response=action.message,
        data=action.data,
    )

  def _resume_pending(self, outcome: ExtractionOutcome, message: str,
                      user_id: str) -> ExtractedIntent:
    """Fold a confident same-intent reply into a pending slot-filling request.

    Only an IntentOutcome can resume; a fallback stays general_chat and
    leaves the pending intent in place.
    """
    extracted = outcome.effective_intent()
    pending = self.store.get_pending_intent(user_id)
    if pending is None:
      return extracted
    if self.clock() - pending.created_at > PENDING_INTENT_TIMEOUT_SECONDS:
      self.store.clear_pending_intent(user_id)
      return extracted
    if not isinstance(outcome, IntentOutcome) or extracted.intent != pending.intent:
      return extracted

    merged = {**pending.fields, **extracted.fields.present()}
    _log_debug(f"[ORCHESTRATOR] resumed pending {pending.intent} for user={user_id}")
    return ExtractedIntent(intent=pending.intent, confidence=extracted.confidence,
                           fields=parse_fields(pending.intent, merged), message=message)

  def _update_context(self, user_id: str, validation: ValidationResult,
                      action: ActionResult) -> None:
    event = (action.data or {}).get("event") if action.success else None
    if validation.intent == "update_event" and isinstance(event, dict) and event.get("id"):
      self.store.set_active_context(user_id, str(event["id"]))
    else:
      self.store.clear_active_context(user_id)

  async def _run_multi_step(self, sub_intents: Sequence[ExtractedIntent], user_id: str,
                            history: Sequence[Turn]) -> MessageResult:
    report = MultiStepReport(total_intents=len(sub_intents))
    lines: List[str] = []
    for index, sub in enumerate(sub_intents, start=1):
      step = await self._run_step(sub, user_id, history)
      report.steps.append(step)
      if step.success:
        report.successful_intents += 1
      mark = "✅" if step.success else "❌"
      lines.append(f"{index}. {mark} {step.intent}: {step.message}")

    self.store.clear_active_context(user_id)
    response = f"{MULTI_STEP_HEADER}\n\n" + "\n".join(lines)
    data = {"action": "multiple_intents", **report.model_dump()}
    return MessageResult(
        success=report.success,
        intent="multiple_intents",
        confidence=MULTI_INTENT_CONFIDENCE,
        response=response,
        data=data,
    )

  async def _run_step(self, sub: ExtractedIntent, user_id: str,
                      history: Sequence[Turn]) -> StepReport:
    try:
      validation = await self.validator.validate(sub, user_id, history)
      if not validation.requires_action:
        return StepReport(intent=sub.intent, success=False,
                          message=validation.clarification or "More information is needed.")
      action = await self.dispatcher.execute(validation, user_id, history)
    except Exception:
      logger.exception("multi-step action failed (user=%s intent=%s)", user_id, sub.intent)
      return StepReport(intent=sub.intent, success=False, message="Action failed")
    return StepReport(intent=sub.intent, success=action.success, message=action.message,
                      data=action.data)
