"""Tests for pmtrack.core.coordinator module.

Tests cover:
- The four reference conversations (partial, completion, unknown project,
  session reuse after completion)
- Non-destructive merging and idempotency
- Unknown intents and empty prompts
- Upstream extraction failures, store write failures and bad due dates
- Per-session serialization
"""

from __future__ import annotations

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pmtrack.config import AppConfig
from pmtrack.core.coordinator import (
    MAX_INPUT_LENGTH,
    SlotFillingCoordinator,
    create_coordinator,
    merge_slots,
)
from pmtrack.core.dispatcher import DomainActionDispatcher
from pmtrack.core.errors import StoreError, UpstreamProviderError
from pmtrack.core.intent.taxonomy import ConversationState, Intent
from pmtrack.core.session import InMemorySessionStore, SessionState
from pmtrack.core.store import InMemoryProjectStore, YamlProjectStore

TODAY = date(2026, 3, 10)

SCENARIO_1 = "Create an issue called API Integration Bug in Zephyr Migration"
SCENARIO_2 = "assign to Pratik M, due tomorrow"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryProjectStore:
    return InMemoryProjectStore()


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def coordinator(store, sessions) -> SlotFillingCoordinator:
    return SlotFillingCoordinator(
        store=store,
        sessions=sessions,
        dispatcher=DomainActionDispatcher(store, clock=lambda: TODAY),
        known_assignees=["Balak S", "Pratik M"],
    )


# =============================================================================
# Reference Conversations
# =============================================================================


class TestConversations:
    """End-to-end turns through the coordinator."""

    @pytest.mark.asyncio
    async def test_first_turn_asks_for_missing_fields(self, coordinator):
        """Test a create-issue prompt missing assignee and due date."""
        turn = await coordinator.handle(SCENARIO_1, "s1")

        assert turn.state == ConversationState.PARTIAL
        assert turn.intent == Intent.CREATE_ISSUE
        assert turn.missing_fields == ["assignee", "dueDate"]
        assert turn.collected["project"] == "Zephyr Migration"
        assert turn.collected["issue_title"] == "API Integration Bug"
        assert turn.message == "Please provide: assignee, dueDate"

        body = turn.to_response()
        assert body["followUp"] is True
        assert body["sessionId"] == "s1"

    @pytest.mark.asyncio
    async def test_follow_up_completes_and_clears(self, coordinator, store, sessions):
        """Test the follow-up creates the issue and deletes the session."""
        await coordinator.handle(SCENARIO_1, "s1")
        turn = await coordinator.handle(SCENARIO_2, "s1")

        assert turn.state == ConversationState.COMPLETE
        assert turn.status_code == 201
        assert turn.missing_fields == []
        assert turn.created["owner"] == "Pratik M"
        assert turn.created["due_date"] == "2026-03-11"
        assert turn.message == 'Issue "API Integration Bug" created in project "Zephyr Migration".'
        assert await sessions.get("s1") is None

        project = (await store.find_projects_by_name("Zephyr Migration"))[0]
        titles = [i.title for i in await store.list_issues(project.id)]
        assert titles.count("API Integration Bug") == 1

    @pytest.mark.asyncio
    async def test_unknown_project_keeps_state(self, coordinator):
        """Test a NotFound failure keeps the collected slots for a retry."""
        prompt = "Create an issue called X in Nonexistent Project, assign to Balak, due tomorrow"
        turn = await coordinator.handle(prompt, "s3")

        assert turn.state == ConversationState.FAILED
        assert turn.success is False
        assert turn.status_code == 404
        assert "Nonexistent Project" in turn.message

        collected = await coordinator.get_session("s3")
        assert collected == {
            "project": "Nonexistent Project",
            "issue_title": "X",
            "assignee": "Balak S",
            "dueDate": "tomorrow",
        }

    @pytest.mark.asyncio
    async def test_correction_after_failure(self, coordinator):
        """Test that fixing the one bad slot completes the conversation."""
        prompt = "Create an issue called X in Nonexistent Project, assign to Balak, due tomorrow"
        await coordinator.handle(prompt, "s3")
        turn = await coordinator.handle("project: Zephyr Migration", "s3")

        assert turn.state == ConversationState.COMPLETE
        assert turn.created["title"] == "X"

    @pytest.mark.asyncio
    async def test_session_reuse_after_completion(self, coordinator):
        """Test a completed session id starts a clean conversation."""
        await coordinator.handle(SCENARIO_1, "s4")
        await coordinator.handle(SCENARIO_2, "s4")

        turn = await coordinator.handle("Create an issue called Second in E-Commerce Platform", "s4")
        assert turn.state == ConversationState.PARTIAL
        assert turn.collected == {"project": "E-Commerce Platform", "issue_title": "Second"}
        assert turn.missing_fields == ["assignee", "dueDate"]

    @pytest.mark.asyncio
    async def test_add_subtask_conversation(self, coordinator):
        """Test a two-turn add-subtask conversation."""
        first = await coordinator.handle(
            "Add subtask Write unit tests to the UAT milestone in Zephyr Migration", "s5"
        )
        assert first.intent == Intent.ADD_SUBTASK
        assert first.missing_fields == ["assignee", "dueDate"]

        second = await coordinator.handle("assign to Balak, due in 3 days", "s5")
        assert second.state == ConversationState.COMPLETE
        assert second.created["end_date"] == "2026-03-13"
        assert second.message == (
            'Subtask "Write unit tests" added to milestone "UAT" in project "Zephyr Migration".'
        )

    @pytest.mark.asyncio
    async def test_query_completes_in_one_turn(self, coordinator, sessions):
        """Test a status question is answered without a session."""
        turn = await coordinator.handle("What's the status of Zephyr Migration?", "q1")
        assert turn.state == ConversationState.COMPLETE
        assert turn.intent == Intent.QUERY_STATUS
        assert turn.result["progress"] == 35
        assert turn.status_code == 200
        assert await sessions.get("q1") is None


# =============================================================================
# Merge Semantics
# =============================================================================


class TestMerge:
    """Tests for non-destructive merging and idempotency."""

    def test_merge_slots_never_erases(self):
        """Test empty values do not overwrite collected ones."""
        merged = merge_slots({"project": "A", "assignee": "B"}, {"assignee": "", "dueDate": "x"})
        assert merged == {"project": "A", "assignee": "B", "dueDate": "x"}

    def test_merge_slots_new_value_wins(self):
        """Test non-empty values overwrite."""
        assert merge_slots({"project": "A"}, {"projectName": "B"}) == {"project": "B"}

    @pytest.mark.asyncio
    async def test_partial_follow_up_keeps_earlier_slots(self, coordinator):
        """Test a follow-up that fills one slot keeps the rest."""
        await coordinator.handle(SCENARIO_1, "m1")
        turn = await coordinator.handle("due tomorrow", "m1")

        assert turn.state == ConversationState.PARTIAL
        assert turn.missing_fields == ["assignee"]
        assert turn.collected["issue_title"] == "API Integration Bug"
        assert turn.collected["dueDate"] == "tomorrow"

    @pytest.mark.asyncio
    async def test_repeated_prompt_is_idempotent(self, coordinator):
        """Test re-sending the same prompt changes nothing."""
        first = await coordinator.handle(SCENARIO_1, "m2")
        second = await coordinator.handle(SCENARIO_1, "m2")
        assert second.collected == first.collected
        assert second.missing_fields == first.missing_fields

    @pytest.mark.asyncio
    async def test_completed_action_not_retriggered(self, coordinator, store):
        """Test that repeating the final prompt does not create twice."""
        await coordinator.handle(SCENARIO_1, "m3")
        await coordinator.handle(SCENARIO_2, "m3")
        again = await coordinator.handle(SCENARIO_2, "m3")

        assert again.state == ConversationState.FAILED
        assert again.intent == Intent.UNKNOWN
        project = (await store.find_projects_by_name("Zephyr Migration"))[0]
        titles = [i.title for i in await store.list_issues(project.id)]
        assert titles.count("API Integration Bug") == 1


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Tests for unknown intents, bad input and upstream errors."""

    @pytest.mark.asyncio
    async def test_noise_is_unknown_and_not_stored(self, coordinator, sessions):
        """Test a prompt with no recognizable fields."""
        turn = await coordinator.handle("hello there", "n1")

        assert turn.state == ConversationState.FAILED
        assert turn.intent == Intent.UNKNOWN
        assert turn.status_code == 200
        assert turn.message == "Intent not recognized or not supported."
        assert await sessions.get("n1") is None

    @pytest.mark.asyncio
    async def test_stray_slots_are_not_stored(self, coordinator, sessions):
        """Test that slots without an intent are not persisted."""
        await coordinator.handle(SCENARIO_2, "n2")
        assert await sessions.get("n2") is None

    @pytest.mark.asyncio
    async def test_unknown_leaves_existing_session_untouched(self, coordinator, sessions):
        """Test an unknown turn does not modify stored state."""
        await sessions.set(SessionState(id="n3", collected={"assignee": "Pratik M"}))
        turn = await coordinator.handle("due tomorrow", "n3")

        assert turn.intent == Intent.UNKNOWN
        state = await sessions.get("n3")
        assert state.collected == {"assignee": "Pratik M"}

    @pytest.mark.asyncio
    async def test_empty_prompt(self, coordinator):
        """Test blank input is a validation failure."""
        turn = await coordinator.handle("   ", "e1")
        assert turn.state == ConversationState.FAILED
        assert turn.status_code == 422
        assert turn.error["errors"][0]["field"] == "prompt"

    @pytest.mark.asyncio
    async def test_validation_failure_keeps_state(self, coordinator):
        """Test a bad due date keeps the conversation for correction."""
        await coordinator.handle(SCENARIO_1, "v1")
        turn = await coordinator.handle("assign to Pratik M, due date: 31/02", "v1")

        assert turn.state == ConversationState.FAILED
        assert turn.status_code == 422
        assert turn.collected["dueDate"] == "31/02"
        assert (await coordinator.get_session("v1"))["dueDate"] == "31/02"

        fixed = await coordinator.handle("due tomorrow", "v1")
        assert fixed.state == ConversationState.COMPLETE

    @pytest.mark.asyncio
    async def test_out_of_range_due_date_fails_cleanly(self, coordinator):
        """Test a huge relative due date is a 422, not an exception."""
        turn = await coordinator.handle(
            "Create an issue called X in Zephyr Migration, assign to Pratik M, "
            "due in 99999999 days",
            "o1",
        )

        assert turn.state == ConversationState.FAILED
        assert turn.status_code == 422
        assert turn.error["errors"][0]["field"] == "dueDate"
        assert (await coordinator.get_session("o1"))["dueDate"] == "in 99999999 days"

    @pytest.mark.asyncio
    async def test_store_write_failure_creates_nothing(self, tmp_path, sessions):
        """Test a failed persist keeps the session and a retry creates one issue."""
        store = YamlProjectStore(tmp_path)
        coordinator = SlotFillingCoordinator(
            store=store,
            sessions=sessions,
            dispatcher=DomainActionDispatcher(store, clock=lambda: TODAY),
            known_assignees=["Balak S", "Pratik M"],
        )
        await coordinator.handle(SCENARIO_1, "w1")

        with patch.object(store, "save", side_effect=StoreError("disk full")):
            turn = await coordinator.handle(SCENARIO_2, "w1")

        assert turn.state == ConversationState.FAILED
        assert turn.status_code == 503
        zephyr = (await store.find_projects_by_name("Zephyr Migration"))[0]
        assert await store.list_issues(zephyr.id) == []
        assert (await coordinator.get_session("w1"))["assignee"] == "Pratik M"

        retry = await coordinator.handle(SCENARIO_2, "w1")

        assert retry.state == ConversationState.COMPLETE
        titles = [i.title for i in await YamlProjectStore(tmp_path).list_issues(zephyr.id)]
        assert titles == ["API Integration Bug"]

    @pytest.mark.asyncio
    async def test_upstream_failure_is_a_no_op(self, store, sessions):
        """Test an LLM failure leaves the session as it was."""
        llm = MagicMock()
        llm.extract = AsyncMock(side_effect=UpstreamProviderError("model down"))
        coordinator = SlotFillingCoordinator(store=store, sessions=sessions, llm_extractor=llm)
        await sessions.set(SessionState(id="u1", collected={"project": "Zephyr Migration"}))

        turn = await coordinator.handle(SCENARIO_1, "u1")

        assert turn.state == ConversationState.FAILED
        assert turn.status_code == 502
        assert (await sessions.get("u1")).collected == {"project": "Zephyr Migration"}

    @pytest.mark.asyncio
    async def test_llm_extractor_used_when_configured(self, store, sessions):
        """Test the LLM extractor replaces regex extraction."""
        llm = MagicMock()
        llm.extract = AsyncMock(return_value={"project": "Zephyr Migration", "issue_title": "Z"})
        coordinator = SlotFillingCoordinator(store=store, sessions=sessions, llm_extractor=llm)

        turn = await coordinator.handle("anything at all", "u2")

        assert turn.collected == {"project": "Zephyr Migration", "issue_title": "Z"}
        kwargs = llm.extract.call_args.kwargs
        assert "Zephyr Migration" in kwargs["known_projects"]
        assert "Balak S" in kwargs["known_assignees"]


# =============================================================================
# Sessions and Concurrency
# =============================================================================


class TestSessions:
    """Tests for session ids, reset and locking."""

    @pytest.mark.asyncio
    async def test_session_id_generated(self, coordinator):
        """Test a missing session id gets a fresh one."""
        turn = await coordinator.handle(SCENARIO_1)
        assert turn.session_id
        assert await coordinator.get_session(turn.session_id) is not None

    @pytest.mark.asyncio
    async def test_reset(self, coordinator):
        """Test explicit reset forgets the conversation."""
        await coordinator.handle(SCENARIO_1, "r1")
        assert await coordinator.reset("r1") is True
        assert await coordinator.get_session("r1") is None
        assert await coordinator.reset("r1") is False

    @pytest.mark.asyncio
    async def test_concurrent_turns_do_not_lose_updates(self, store):
        """Test same-session turns are serialized."""

        class SlowSessions(InMemorySessionStore):
            async def get(self, session_id):
                state = await super().get(session_id)
                await asyncio.sleep(0.01)
                return state

        sessions = SlowSessions()
        coordinator = SlotFillingCoordinator(store=store, sessions=sessions)

        await asyncio.gather(
            coordinator.handle(SCENARIO_1, "c1"),
            coordinator.handle("Also make it high priority for Zephyr Migration", "c1"),
        )

        collected = await coordinator.get_session("c1")
        assert collected["issue_title"] == "API Integration Bug"
        assert collected["priority"] == "high"
        assert coordinator._locks == {}

    @pytest.mark.asyncio
    async def test_long_input_truncated(self, coordinator):
        """Test oversized input is cut to the maximum length."""
        prompt = SCENARIO_1 + " " + "x" * (MAX_INPUT_LENGTH + 100)
        turn = await coordinator.handle(prompt, "t1")
        assert turn.collected["project"] == "Zephyr Migration"


# =============================================================================
# Factory
# =============================================================================


class TestCreateCoordinator:
    """Tests for building a coordinator from config."""

    def test_memory_store_by_default(self, tmp_path):
        """Test default wiring."""
        coordinator = create_coordinator(AppConfig(data_path=tmp_path, session_ttl_seconds=60))
        assert isinstance(coordinator.store, InMemoryProjectStore)
        assert not isinstance(coordinator.store, YamlProjectStore)
        assert coordinator.llm_extractor is None
        assert coordinator.known_assignees == ["Balak S", "Pratik M"]

    def test_yaml_store(self, tmp_path):
        """Test store_backend=yaml."""
        coordinator = create_coordinator(AppConfig(data_path=tmp_path, store_backend="yaml"))
        assert isinstance(coordinator.store, YamlProjectStore)

    def test_llm_extractor(self, tmp_path):
        """Test extractor=llm wires a backend without connecting."""
        config = AppConfig(data_path=tmp_path, extractor="llm")
        coordinator = create_coordinator(config)
        assert coordinator.llm_extractor is not None
        assert coordinator.llm_extractor.backend.model_name == config.llm.model
        assert coordinator.llm_extractor.backend.is_loaded is False
