"""Core components for pmtrack."""

from __future__ import annotations

from .coordinator import (
    MAX_INPUT_LENGTH,
    SlotFillingCoordinator,
    create_coordinator,
    merge_slots,
)
from .dispatcher import (
    DispatchOutcome,
    DomainActionDispatcher,
)
from .errors import (
    IntentUndetermined,
    NotFoundError,
    QuickUpdateError,
    StoreError,
    UpstreamProviderError,
    ValidationError,
)
from .session import (
    InMemorySessionStore,
    SessionState,
    SessionStore,
)
from .store import (
    InMemoryProjectStore,
    ProjectStore,
    YamlProjectStore,
)

__all__ = [
    # Coordinator
    "SlotFillingCoordinator",
    "create_coordinator",
    "merge_slots",
    "MAX_INPUT_LENGTH",
    # Dispatch
    "DomainActionDispatcher",
    "DispatchOutcome",
    # Errors
    "QuickUpdateError",
    "IntentUndetermined",
    "NotFoundError",
    "StoreError",
    "UpstreamProviderError",
    "ValidationError",
    # Sessions
    "SessionState",
    "SessionStore",
    "InMemorySessionStore",
    # Store
    "ProjectStore",
    "InMemoryProjectStore",
    "YamlProjectStore",
]
