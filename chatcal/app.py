from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .agent.calendar_store import local_calendar_factory
from .agent.nlu import LlmNluClient
from .agent.orchestrator import Orchestrator
from .agent.state import SessionStore
from .config import ENABLE_GCAL, LLM_DEBUG, OPENAI_API_KEY, SESSION_SWEEP_INTERVAL_SECONDS, cors_origins
from .gcal import google_calendar_factory, is_gcal_configured
from .routes import router

logger = logging.getLogger(__name__)

print("OPENAI_API_KEY:", bool(OPENAI_API_KEY))
print("ENABLE_GCAL:", ENABLE_GCAL)


async def sweep_sessions_forever(store: SessionStore,
                                 interval: float = SESSION_SWEEP_INTERVAL_SECONDS) -> None:
  while True:
    await asyncio.sleep(interval)
    try:
      evicted = store.sweep()
    except Exception:
      logger.exception("session sweep failed")
      continue
    if evicted and LLM_DEBUG:
      print(f"[SESSION] evicted {len(evicted)} idle session(s)", flush=True)


def build_orchestrator() -> Orchestrator:
  if is_gcal_configured():
    calendar_for = google_calendar_factory()
    print("[CALENDAR] using Google Calendar", flush=True)
  else:
    calendar_for = local_calendar_factory()
    print("[CALENDAR] Google Calendar not configured; using in-memory calendar", flush=True)
  return Orchestrator(LlmNluClient(), calendar_for)


def create_app(orchestrator: Optional[Orchestrator] = None) -> FastAPI:

  @asynccontextmanager
  async def lifespan(app: FastAPI):
    sweeper = asyncio.create_task(sweep_sessions_forever(app.state.orchestrator.store))
    try:
      yield
    finally:
      sweeper.cancel()
      try:
        await sweeper
      except asyncio.CancelledError:
        pass

  app = FastAPI(title="chatcal", lifespan=lifespan)
  app.state.orchestrator = orchestrator if orchestrator is not None else build_orchestrator()
  if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
  app.include_router(router)
  return app


app = create_app()
