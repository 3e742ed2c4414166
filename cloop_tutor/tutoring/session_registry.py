"""
In-memory registry of active tutoring sessions.

Sessions are keyed by ``"{user_id}_{topic_id}"``. Each key has an
``asyncio.Lock`` that turn handlers hold for the whole turn so two requests
for the same session are applied one after the other. Idle sessions are only
retired by ``sweep_inactive``, which an external timer must call.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from loguru import logger

from .errors import SessionNotFound
from .models import Session, session_key
from .persistence import Persistence


class SessionRegistry:
    """
    Owns the lifecycle of in-memory sessions.

    Usage:
        registry = SessionRegistry(persistence)
        async with registry.locked(user_id, topic_id):
            session = registry.require(user_id, topic_id)
            ...
    """

    def __init__(
        self,
        persistence: Persistence,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.persistence = persistence
        self.clock = clock
        self._sessions: dict[str, Session] = {}
        # A key's lock lives only while a turn holds or awaits it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def keys(self) -> list[str]:
        return list(self._sessions)

    # =========================================================================
    # Lookup and mutation
    # =========================================================================

    def get(self, user_id: str, topic_id: str) -> Session | None:
        return self._sessions.get(session_key(user_id, topic_id))

    def require(self, user_id: str, topic_id: str) -> Session:
        """Like ``get`` but raises ``SessionNotFound`` for an unknown key."""
        session = self.get(user_id, topic_id)
        if session is None:
            raise SessionNotFound(user_id, topic_id)
        return session

    def put(self, session: Session) -> None:
        if session.key in self._sessions:
            logger.debug("Replacing active session {}", session.key)
        self._sessions[session.key] = session

    def remove(self, user_id: str, topic_id: str) -> Session | None:
        # Turns queued on this key keep its lock alive through their own reference
        return self._sessions.pop(session_key(user_id, topic_id), None)

    # =========================================================================
    # Per-session serialization
    # =========================================================================

    def lock_for(self, user_id: str, topic_id: str) -> asyncio.Lock:
        key = session_key(user_id, topic_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def locked(self, user_id: str, topic_id: str) -> AsyncIterator[None]:
        """Hold the session's lock for the duration of a turn."""
        async with self.lock_for(user_id, topic_id):
            yield

    # =========================================================================
    # Expiry
    # =========================================================================

    async def sweep_inactive(self, max_idle_ms: int) -> list[str]:
        """
        Retire every session idle for longer than ``max_idle_ms``.

        Sessions with a turn in flight are left alone. Idle sessions are
        dropped from the registry first, then marked inactive in persistence.

        Returns:
            Keys of the sessions that were removed
        """
        now = self.clock()
        retired: list[Session] = []

        for key, session in list(self._sessions.items()):
            idle_ms = (now - session.last_activity_time).total_seconds() * 1000
            if idle_ms <= max_idle_ms:
                continue

            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                logger.debug("Skipping busy session {} during sweep", key)
                continue

            self.remove(session.user_id, session.topic_id)
            retired.append(session)

        for session in retired:
            await self.persistence.mark_session_inactive(session.user_id, session.topic_id)

        if retired:
            logger.info("Swept {} inactive session(s)", len(retired))
        return [session.key for session in retired]
