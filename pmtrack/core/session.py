"""Conversation session state for pmtrack.

A session holds the slot values collected so far in one quick-update
conversation, keyed by an opaque client-supplied id. Sessions are created on
the first turn that needs a follow-up, mutated on later turns, and deleted
when the intent completes, when the client resets them, or after a period
of inactivity.

Stores are injectable: the coordinator only relies on async get/set/delete,
so a networked cache can replace the in-memory implementation.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 1800


def new_session_id() -> str:
    """Generate a session id for clients that do not supply one."""
    return str(uuid.uuid4())


@dataclass
class SessionState:
    """Accumulated slot values for one conversation.

    Attributes:
        id: Opaque session identifier
        collected: Canonical slot name -> extracted value
        created_at: When the session was first persisted
        updated_at: When the session was last written
    """

    id: str
    collected: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage backends that need plain data."""
        return {
            "id": self.id,
            "collected": dict(self.collected),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        """Deserialize from plain data."""
        return cls(
            id=data["id"],
            collected=dict(data.get("collected") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


class SessionStore(ABC):
    """Key-value store for session state."""

    @abstractmethod
    async def get(self, session_id: str) -> SessionState | None:
        """Return the session, or None if absent or expired."""
        ...

    @abstractmethod
    async def set(self, state: SessionState) -> None:
        """Create or replace a session."""
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns True if one existed."""
        ...


class InMemorySessionStore(SessionStore):
    """Process-wide session map with idle-time eviction.

    Expired entries are dropped lazily on access and in bulk by
    purge_expired(). A process restart loses in-flight conversations.
    """

    def __init__(
        self,
        ttl_seconds: float | None = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the store.

        Args:
            ttl_seconds: Idle lifetime of a session; None disables eviction
            clock: Time source, injectable for tests
        """
        self._sessions: dict[str, SessionState] = {}
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, state: SessionState) -> bool:
        if self._ttl is None:
            return False
        return self._clock() - state.updated_at > self._ttl

    async def get(self, session_id: str) -> SessionState | None:
        state = self._sessions.get(session_id)
        if state is None:
            return None
        if self._is_expired(state):
            logger.info(f"[SESSION {session_id}] Expired after inactivity")
            del self._sessions[session_id]
            return None
        # Hand out a copy so callers cannot mutate stored state in place
        return SessionState(
            id=state.id,
            collected=dict(state.collected),
            created_at=state.created_at,
            updated_at=state.updated_at,
        )

    async def set(self, state: SessionState) -> None:
        existing = self._sessions.get(state.id)
        now = self._clock()
        self._sessions[state.id] = SessionState(
            id=state.id,
            collected=dict(state.collected),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired session.

        Returns:
            Number of sessions removed
        """
        expired = [sid for sid, state in self._sessions.items() if self._is_expired(state)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Purged {len(expired)} expired sessions")
        return len(expired)


__all__ = [
    "DEFAULT_SESSION_TTL",
    "SessionState",
    "SessionStore",
    "InMemorySessionStore",
    "new_session_id",
]
