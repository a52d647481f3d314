"""
Session Registry — isolated sessions with serialized mutation.

Each participant gets their own SessionState; nothing mutable is shared
between sessions. Callers that may interleave (the HTTP API) take the
session's lock around every mutation so at most one is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from bean_republic.simulation.errors import InvalidReference
from bean_republic.simulation.schema import SessionState

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory map of live sessions. Nothing is persisted."""

    def __init__(self) -> None:
        self._sessions: dict[UUID, SessionState] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}

    def add(self, session: SessionState) -> SessionState:
        self._sessions[session.id] = session
        self._locks[session.id] = asyncio.Lock()
        return session

    def get(self, session_id: UUID) -> SessionState:
        """
        Look up a live session.

        Raises:
            InvalidReference: If no such session exists.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise InvalidReference(f"Session {session_id} not found")
        return session

    def lock(self, session_id: UUID) -> asyncio.Lock:
        self.get(session_id)
        return self._locks[session_id]

    def discard(self, session_id: UUID) -> None:
        """Abandon a session. Unknown ids are ignored."""
        if self._sessions.pop(session_id, None) is not None:
            logger.info("Session abandoned: %s", str(session_id)[:8])
        self._locks.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: UUID) -> bool:
        return session_id in self._sessions
