from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from .agent.orchestrator import Orchestrator
from .models import MessageRequest, MessageResult

router = APIRouter()
logger = logging.getLogger(__name__)


def _orchestrator(request: Request) -> Orchestrator:
  orchestrator = getattr(request.app.state, "orchestrator", None)
  if orchestrator is None:
    raise HTTPException(status_code=503, detail="Orchestrator is not ready.")
  return orchestrator


@router.post("/api/webhook", response_model=MessageResult)
async def webhook(body: MessageRequest, request: Request):
  orchestrator = _orchestrator(request)
  try:
    return await orchestrator.process_message(body.text, body.userId)
  except Exception as exc:
    logger.exception("webhook failed for user=%s", body.userId)
    raise HTTPException(status_code=502, detail=f"Message processing error: {str(exc)}")


@router.get("/api/health")
def health(request: Request) -> Dict[str, Any]:
  orchestrator = getattr(request.app.state, "orchestrator", None)
  return {
      "status": "ok",
      "sessions": len(orchestrator.store) if orchestrator is not None else 0,
  }


@router.get("/api/sessions/{user_id}")
def session_state(user_id: str, request: Request) -> Dict[str, Any]:
  session = _orchestrator(request).store.snapshot(user_id)
  if session is None:
    raise HTTPException(status_code=404, detail="Session not found.")
  return session.model_dump()
