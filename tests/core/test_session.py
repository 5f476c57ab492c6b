"""Tests for pmtrack.core.session module.

Tests cover:
- SessionState serialization
- InMemorySessionStore get/set/delete
- Copy semantics (no shared mutation)
- Idle-time eviction, lazy and bulk
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from pmtrack.core.session import (
    InMemorySessionStore,
    SessionState,
    new_session_id,
)

# =============================================================================
# Fixtures
# =============================================================================


class FakeClock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 10, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(ttl_seconds=60, clock=clock)


# =============================================================================
# SessionState
# =============================================================================


class TestSessionState:
    """Tests for the SessionState dataclass."""

    def test_defaults(self):
        """Test that a new state has no collected slots."""
        state = SessionState(id="abc")
        assert state.collected == {}
        assert isinstance(state.created_at, datetime)

    def test_round_trip(self):
        """Test to_dict/from_dict preserve every field."""
        state = SessionState(
            id="abc",
            collected={"project": "Apollo"},
            created_at=datetime(2026, 1, 1, 10, 0),
            updated_at=datetime(2026, 1, 1, 10, 5),
        )
        restored = SessionState.from_dict(state.to_dict())
        assert restored == state

    def test_new_session_ids_are_unique(self):
        """Test generated ids do not repeat."""
        assert new_session_id() != new_session_id()


# =============================================================================
# InMemorySessionStore
# =============================================================================


class TestInMemorySessionStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        """Test that an unknown id returns None."""
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, store):
        """Test basic persistence."""
        await store.set(SessionState(id="s1", collected={"project": "Apollo"}))
        state = await store.get("s1")
        assert state is not None
        assert state.collected == {"project": "Apollo"}
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store):
        """Test that mutating a returned state does not touch the store."""
        await store.set(SessionState(id="s1", collected={"project": "Apollo"}))
        state = await store.get("s1")
        state.collected["project"] = "Gemini"
        again = await store.get("s1")
        assert again.collected["project"] == "Apollo"

    @pytest.mark.asyncio
    async def test_set_keeps_created_at(self, store, clock):
        """Test that overwriting keeps the creation time and bumps updated_at."""
        await store.set(SessionState(id="s1"))
        created = (await store.get("s1")).created_at
        clock.advance(30)
        await store.set(SessionState(id="s1", collected={"project": "Apollo"}))
        state = await store.get("s1")
        assert state.created_at == created
        assert state.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_delete(self, store):
        """Test delete reports whether a session existed."""
        await store.set(SessionState(id="s1"))
        assert await store.delete("s1") is True
        assert await store.delete("s1") is False
        assert await store.get("s1") is None

    @pytest.mark.asyncio
    async def test_expires_after_idle(self, store, clock):
        """Test lazy eviction on access."""
        await store.set(SessionState(id="s1"))
        clock.advance(61)
        assert await store.get("s1") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_activity_extends_lifetime(self, store, clock):
        """Test that a write resets the idle timer."""
        await store.set(SessionState(id="s1"))
        clock.advance(50)
        await store.set(SessionState(id="s1"))
        clock.advance(50)
        assert await store.get("s1") is not None

    @pytest.mark.asyncio
    async def test_purge_expired(self, store, clock):
        """Test bulk eviction."""
        await store.set(SessionState(id="old"))
        clock.advance(45)
        await store.set(SessionState(id="new"))
        clock.advance(30)
        assert store.purge_expired() == 1
        assert await store.get("new") is not None

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self, clock):
        """Test that ttl_seconds=None disables eviction."""
        store = InMemorySessionStore(ttl_seconds=None, clock=clock)
        await store.set(SessionState(id="s1"))
        clock.advance(10**6)
        assert await store.get("s1") is not None
        assert store.purge_expired() == 0
