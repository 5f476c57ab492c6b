"""Slot-filling coordinator: the per-turn conversation state machine.

Each call to ``handle`` is one turn:

1. Load the session's collected slots (empty when new)
2. Extract slots from the prompt (regex, or LLM when configured)
3. Merge: non-empty new values win, absent or empty values never erase
4. Classify the intent from the merged state
5. Compute missing required fields
6. Branch: unknown -> FAILED (nothing stored); missing -> PARTIAL (state
   stored); complete -> dispatch, then delete the session on success or
   keep the merged state on failure so one slot can be corrected

Turns for the same session id are serialized with a per-session lock.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, AsyncIterator, Iterable

from .dispatcher import DomainActionDispatcher
from .errors import (
    IntentUndetermined,
    NotFoundError,
    QuickUpdateError,
    StoreError,
    UpstreamProviderError,
    ValidationError,
)
from .intent.classifier import IntentClassifier
from .intent.entities import EntityExtractor
from .intent.taxonomy import (
    ConversationState,
    Intent,
    TurnResult,
    canonicalize,
    missing_fields,
)
from .session import InMemorySessionStore, SessionState, SessionStore, new_session_id
from .store import ProjectStore

if TYPE_CHECKING:
    from ..config import AppConfig
    from .intent.llm import LLMEntityExtractor

logger = logging.getLogger(__name__)

# Security: Maximum input length to bound regex and LLM work
MAX_INPUT_LENGTH = 10_000

UNKNOWN_MESSAGE = "Intent not recognized or not supported."


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class SlotFillingCoordinator:
    """Drive a quick-update conversation across turns.

    Attributes:
        store: Project store collaborator
        sessions: Session state store
        extractor: Regex entity extractor
        llm_extractor: Optional LLM extractor used instead of the regex one
        classifier: Intent classifier
        dispatcher: Domain action dispatcher
        known_assignees: Canonical people names for assignee normalization
    """

    def __init__(
        self,
        store: ProjectStore,
        sessions: SessionStore | None = None,
        extractor: EntityExtractor | None = None,
        llm_extractor: "LLMEntityExtractor | None" = None,
        classifier: IntentClassifier | None = None,
        dispatcher: DomainActionDispatcher | None = None,
        known_assignees: Iterable[str] | None = None,
    ) -> None:
        self.store = store
        self.sessions = sessions if sessions is not None else InMemorySessionStore()
        self.extractor = extractor or EntityExtractor()
        self.llm_extractor = llm_extractor
        self.classifier = classifier or IntentClassifier()
        self.dispatcher = dispatcher or DomainActionDispatcher(store)
        self.known_assignees = list(known_assignees or [])
        self._locks: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize turns for one session id; drop the lock when idle."""
        entry = self._locks.setdefault(session_id, _LockEntry())
        entry.waiters += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.waiters -= 1
            if entry.waiters == 0:
                self._locks.pop(session_id, None)

    async def handle(self, prompt: str, session_id: str | None = None) -> TurnResult:
        """Process one conversational turn.

        Args:
            prompt: Free-text user input
            session_id: Conversation id; generated when omitted

        Returns:
            TurnResult describing the new conversation state
        """
        session_id = session_id or new_session_id()
        text = (prompt or "").strip()

        if not text:
            error = ValidationError.for_field("prompt", "must not be empty")
            return self._failed(Intent.UNKNOWN, session_id, error)

        if len(text) > MAX_INPUT_LENGTH:
            logger.warning(
                f"[SESSION {session_id}] Input truncated from {len(text)} to {MAX_INPUT_LENGTH} chars"
            )
            text = text[:MAX_INPUT_LENGTH]

        async with self._session_lock(session_id):
            return await self._turn(text, session_id)

    async def _turn(self, text: str, session_id: str) -> TurnResult:
        session = await self.sessions.get(session_id)
        collected = dict(session.collected) if session else {}
        logger.info(f"[SESSION {session_id}] Loaded {len(collected)} collected slots")

        try:
            extracted = await self._extract(text)
        except UpstreamProviderError as e:
            logger.error(f"[SESSION {session_id}] Extraction failed, turn ignored: {e}")
            return self._failed(Intent.UNKNOWN, session_id, e)

        merged = merge_slots(collected, extracted)
        logger.info(f"[SESSION {session_id}] Extracted {extracted} -> merged {merged}")

        intent = self.classifier.classify(merged)
        logger.info(f"[SESSION {session_id}] Intent: {intent.value}")

        if intent == Intent.UNKNOWN:
            return self._failed(intent, session_id, IntentUndetermined(UNKNOWN_MESSAGE))

        missing = missing_fields(intent, merged)
        if missing:
            await self.sessions.set(SessionState(id=session_id, collected=merged))
            logger.info(f"[SESSION {session_id}] Missing fields: {missing}")
            return TurnResult(
                state=ConversationState.PARTIAL,
                intent=intent,
                message=f"Please provide: {', '.join(missing)}",
                session_id=session_id,
                missing_fields=missing,
                collected=merged,
            )

        try:
            outcome = await self.dispatcher.dispatch(intent, merged)
        except (NotFoundError, ValidationError, StoreError) as e:
            await self.sessions.set(SessionState(id=session_id, collected=merged))
            logger.info(f"[SESSION {session_id}] Dispatch failed, state kept: {e}")
            return self._failed(intent, session_id, e, collected=merged)

        await self.sessions.delete(session_id)
        logger.info(f"[SESSION {session_id}] Completed {intent.value}, session cleared")
        return TurnResult(
            state=ConversationState.COMPLETE,
            intent=intent,
            message=outcome.message,
            session_id=session_id,
            created=outcome.created,
            result=outcome.result,
            status_code=outcome.status_code,
        )

    async def _extract(self, text: str) -> dict[str, str]:
        """Run the configured extractor with the store's known names."""
        projects = await self.store.list_projects()
        project_names = [p.name for p in projects]
        people = list(
            dict.fromkeys([*self.known_assignees, *(p.pm_name for p in projects if p.pm_name)])
        )

        if self.llm_extractor is not None:
            return await self.llm_extractor.extract(
                text, known_projects=project_names, known_assignees=people
            )
        return self.extractor.extract(
            text, known_projects=project_names, known_assignees=people
        ).to_dict()

    @staticmethod
    def _failed(
        intent: Intent,
        session_id: str,
        error: QuickUpdateError,
        collected: dict[str, str] | None = None,
    ) -> TurnResult:
        return TurnResult(
            state=ConversationState.FAILED,
            intent=intent,
            message=str(error),
            session_id=session_id,
            collected=dict(collected or {}),
            error=error.to_dict(),
            status_code=error.status_code,
        )

    async def get_session(self, session_id: str) -> dict[str, str] | None:
        """Return the slots collected so far, or None for no session."""
        session = await self.sessions.get(session_id)
        return dict(session.collected) if session else None

    async def reset(self, session_id: str) -> bool:
        """Forget a conversation. Returns True if one existed."""
        async with self._session_lock(session_id):
            removed = await self.sessions.delete(session_id)
        if removed:
            logger.info(f"[SESSION {session_id}] Reset by client")
        return removed


def merge_slots(collected: dict[str, str], extracted: dict[str, str]) -> dict[str, str]:
    """Merge new slot values over collected ones.

    Non-empty new values overwrite; empty or absent values never erase.
    """
    merged = canonicalize(collected)
    merged.update(canonicalize(extracted))
    return merged


def create_coordinator(
    config: "AppConfig",
    store: ProjectStore | None = None,
    sessions: SessionStore | None = None,
) -> SlotFillingCoordinator:
    """Factory function to build a coordinator from application config.

    Args:
        config: Application configuration
        store: Overrides the configured project store
        sessions: Overrides the in-memory session store

    Returns:
        Configured SlotFillingCoordinator
    """
    from .store import InMemoryProjectStore, YamlProjectStore

    if store is None:
        if config.store_backend == "yaml":
            store = YamlProjectStore(config.data_path)
        else:
            store = InMemoryProjectStore()

    if sessions is None:
        sessions = InMemorySessionStore(ttl_seconds=config.session_ttl_seconds)

    llm_extractor = None
    if config.extractor == "llm":
        from .backends import create_backend
        from .intent.llm import LLMEntityExtractor

        llm_extractor = LLMEntityExtractor(
            create_backend(config.llm),
            temperature=config.llm.temperature,
            max_tokens=config.llm.max_tokens,
        )
        logger.info(f"Using LLM extraction via {config.llm.backend}:{config.llm.model}")

    return SlotFillingCoordinator(
        store=store,
        sessions=sessions,
        llm_extractor=llm_extractor,
        known_assignees=config.known_assignees,
    )


__all__ = [
    "MAX_INPUT_LENGTH",
    "SlotFillingCoordinator",
    "create_coordinator",
    "merge_slots",
]
