from __future__ import annotations

import asyncio
import time
from threading import Lock
from typing import Callable, Dict, List, Optional

from ..config import SESSION_MAX_AGE_SECONDS, SESSION_MAX_HISTORY
from ..utils import _log_debug
from .schemas import ActiveContext, ConversationSession, PendingIntent, Turn


class SessionStore:
  """Per-user conversation state.

  The session map is guarded by a thread lock. Message processing for one
  user id is serialized through ``lock(user_id)``; the sweeper never evicts
  a session whose lock is held.
  """

  def __init__(self,
               max_history: int = SESSION_MAX_HISTORY,
               clock: Callable[[], float] = time.time) -> None:
    self._sessions: Dict[str, ConversationSession] = {}
    self._locks: Dict[str, asyncio.Lock] = {}
    self._guard = Lock()
    self._max_history = max_history
    self._clock = clock

  def __contains__(self, user_id: str) -> bool:
    with self._guard:
      return user_id in self._sessions

  def __len__(self) -> int:
    with self._guard:
      return len(self._sessions)

  def lock(self, user_id: str) -> asyncio.Lock:
    with self._guard:
      user_lock = self._locks.get(user_id)
      if user_lock is None:
        user_lock = asyncio.Lock()
        self._locks[user_id] = user_lock
      return user_lock

  def get_or_create(self, user_id: str) -> ConversationSession:
    with self._guard:
      session = self._sessions.get(user_id)
      if session is None:
        session = ConversationSession(user_id=user_id, last_activity=self._clock())
        self._sessions[user_id] = session
      return session

  def snapshot(self, user_id: str) -> Optional[ConversationSession]:
    with self._guard:
      session = self._sessions.get(user_id)
      return session.model_copy(deep=True) if session is not None else None

  def append_turn(self, user_id: str, role: str, text: str) -> None:
    session = self.get_or_create(user_id)
    now = self._clock()
    with self._guard:
      session.turns.append(Turn(role=role, text=text, timestamp=now))
      overflow = len(session.turns) - self._max_history
      if overflow > 0:
        del session.turns[:overflow]
      session.last_activity = now

  def history(self, user_id: str, limit: Optional[int] = None) -> List[Turn]:
    with self._guard:
      session = self._sessions.get(user_id)
      if session is None:
        return []
      turns = list(session.turns)
    if limit is not None:
      turns = turns[-limit:] if limit > 0 else []
    return [turn.model_copy() for turn in turns]

  def get_pending_intent(self, user_id: str) -> Optional[PendingIntent]:
    session = self.get_or_create(user_id)
    pending = session.pending_intent
    return pending.model_copy(deep=True) if pending is not None else None

  def set_pending_intent(self, user_id: str, pending: PendingIntent) -> None:
    session = self.get_or_create(user_id)
    session.pending_intent = pending.model_copy(deep=True)

  def clear_pending_intent(self, user_id: str) -> None:
    session = self.get_or_create(user_id)
    session.pending_intent = None

  def get_active_context(self, user_id: str) -> Optional[ActiveContext]:
    session = self.get_or_create(user_id)
    return session.active_context

  def set_active_context(self, user_id: str, event_id: str) -> None:
    session = self.get_or_create(user_id)
    session.active_context = ActiveContext(event_id=event_id, timestamp=self._clock())

  def clear_active_context(self, user_id: str) -> None:
    session = self.get_or_create(user_id)
    session.active_context = None

  def sweep(self, now: Optional[float] = None, max_age: float = SESSION_MAX_AGE_SECONDS) -> List[str]:
    """Evict sessions idle longer than ``max_age`` seconds; returns evicted ids."""
    current = self._clock() if now is None else now
    evicted: List[str] = []
    with self._guard:
      for user_id, session in list(self._sessions.items()):
        if current - session.last_activity <= max_age:
          continue
        user_lock = self._locks.get(user_id)
        if user_lock is not None and user_lock.locked():
          continue
        del self._sessions[user_id]
        self._locks.pop(user_id, None)
        evicted.append(user_id)
    if evicted:
      _log_debug(f"[SESSION] swept {len(evicted)} idle session(s)")
    return evicted


session_store = SessionStore()
