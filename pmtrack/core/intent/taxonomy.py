"""Intent taxonomy and slot tables for pmtrack quick updates.

Users never name their intent. It is inferred from which slots the merged
conversation state holds, using two static tables:

- INTENT_RULES: the smallest slot set that identifies each intent
- REQUIRED_FIELDS: every slot that must be filled before the action commits
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Intent(str, Enum):
    """Domain actions a quick update can resolve to."""

    CREATE_ISSUE = "create_issue"
    ADD_SUBTASK = "add_subtask"
    QUERY_STATUS = "query_status"
    QUERY_UPDATES = "query_updates"
    QUERY_ISSUES = "query_issues"
    UNKNOWN = "unknown"

    @property
    def is_query(self) -> bool:
        """Check if the intent is read-only."""
        return self.value.startswith("query_")


class ConversationState(str, Enum):
    """Where a conversation stands after a turn."""

    AWAITING_INPUT = "awaiting_input"  # No session yet
    PARTIAL = "partial"  # Intent known, required slots missing
    COMPLETE = "complete"  # Action dispatched, session cleared
    FAILED = "failed"  # Intent unknown or dispatch failed


# Canonical slot names produced by extraction
SLOTS: tuple[str, ...] = (
    "project",
    "issue_title",
    "milestone",
    "subtask",
    "assignee",
    "dueDate",
    "priority",
    "description",
    "query",
)

# Synonyms seen in prompts, LLM output and older clients
SLOT_ALIASES: dict[str, str] = {
    "projectName": "project",
    "project_name": "project",
    "title": "issue_title",
    "issue": "issue_title",
    "issueTitle": "issue_title",
    "milestone_name": "milestone",
    "milestoneName": "milestone",
    "parentTaskId": "milestone",
    "subtask_name": "subtask",
    "subtaskName": "subtask",
    "owner": "assignee",
    "assigned_to": "assignee",
    "assignedTo": "assignee",
    "due_date": "dueDate",
    "due": "dueDate",
    "endDate": "dueDate",
    "queryType": "query",
    "query_type": "query",
}


@dataclass(frozen=True)
class IntentRule:
    """One row of the classification table.

    Attributes:
        intent: Intent selected when the rule is eligible
        defining: Slots that must all be non-empty
        values: Slots that must additionally hold a specific value
    """

    intent: Intent
    defining: tuple[str, ...]
    values: Mapping[str, str] = field(default_factory=dict)

    @property
    def specificity(self) -> int:
        """Number of defining slots; larger wins."""
        return len(self.defining)

    def matches(self, state: Mapping[str, Any]) -> bool:
        """Check if every defining slot is present and value constraints hold."""
        if not all(state.get(slot) for slot in self.defining):
            return False
        return all(
            str(state.get(slot, "")).strip().lower() == expected
            for slot, expected in self.values.items()
        )


INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(Intent.ADD_SUBTASK, ("project", "milestone", "subtask")),
    IntentRule(Intent.CREATE_ISSUE, ("project", "issue_title")),
    IntentRule(Intent.QUERY_STATUS, ("project", "query"), {"query": "status"}),
    IntentRule(Intent.QUERY_UPDATES, ("project", "query"), {"query": "updates"}),
    IntentRule(Intent.QUERY_ISSUES, ("project", "query"), {"query": "issues"}),
)

# Ordered: follow-up questions name missing slots in this order
REQUIRED_FIELDS: dict[Intent, list[str]] = {
    Intent.CREATE_ISSUE: ["project", "issue_title", "assignee", "dueDate"],
    Intent.ADD_SUBTASK: ["project", "milestone", "subtask", "assignee", "dueDate"],
    Intent.QUERY_STATUS: ["project", "query"],
    Intent.QUERY_UPDATES: ["project", "query"],
    Intent.QUERY_ISSUES: ["project", "query"],
    Intent.UNKNOWN: [],
}


def canonical_slot(name: str) -> str:
    """Map a slot synonym to its canonical name."""
    return SLOT_ALIASES.get(name, name)


def canonicalize(entities: Mapping[str, Any]) -> dict[str, str]:
    """Rename synonyms to canonical slots and drop empty values.

    When a canonical key and one of its synonyms are both present, the
    canonical key wins.

    Args:
        entities: Raw slot mapping from any extractor

    Returns:
        New mapping keyed by canonical slot names with non-empty string values
    """
    result: dict[str, str] = {}
    for key, value in entities.items():
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        canonical = canonical_slot(key)
        if canonical in result and key != canonical:
            continue
        result[canonical] = text
    return result


def missing_fields(intent: Intent, state: Mapping[str, Any]) -> list[str]:
    """Required slots for ``intent`` that are absent or empty, in table order."""
    return [slot for slot in REQUIRED_FIELDS.get(intent, []) if not state.get(slot)]


@dataclass
class TurnResult:
    """Outcome of one conversational turn.

    Attributes:
        state: Conversation state after the turn
        intent: Intent classified from the merged state
        message: Human-readable response
        session_id: Session the turn belonged to
        missing_fields: Required slots still missing (PARTIAL)
        collected: Merged slot values (PARTIAL, and FAILED after dispatch)
        created: Created domain object (COMPLETE for create intents)
        result: Query answer (COMPLETE for query intents)
        error: Failure payload (FAILED)
        status_code: Suggested HTTP status
    """

    state: ConversationState
    intent: Intent
    message: str
    session_id: str
    missing_fields: list[str] = field(default_factory=list)
    collected: dict[str, str] = field(default_factory=dict)
    created: dict[str, Any] | None = None
    result: Any = None
    error: dict[str, Any] | None = None
    status_code: int = 200

    @property
    def success(self) -> bool:
        """True unless the turn failed."""
        return self.state != ConversationState.FAILED

    @property
    def follow_up(self) -> bool:
        """True when the caller should ask the user for more input."""
        return self.state == ConversationState.PARTIAL

    def to_response(self) -> dict[str, Any]:
        """Build the JSON body returned by the HTTP API."""
        body: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "sessionId": self.session_id,
            "intent": self.intent.value,
            "state": self.state.value,
        }
        if self.state == ConversationState.PARTIAL:
            body["followUp"] = True
            body["missingFields"] = list(self.missing_fields)
            body["collected"] = dict(self.collected)
        elif self.state == ConversationState.COMPLETE:
            if self.created is not None:
                body["created"] = self.created
            if self.result is not None:
                body["result"] = self.result
        else:
            if self.error:
                body.update({k: v for k, v in self.error.items() if k not in body})
                body["success"] = False
            if self.collected:
                body["collected"] = dict(self.collected)
            if self.missing_fields:
                body["missingFields"] = list(self.missing_fields)
        return body


__all__ = [
    "Intent",
    "ConversationState",
    "SLOTS",
    "SLOT_ALIASES",
    "IntentRule",
    "INTENT_RULES",
    "REQUIRED_FIELDS",
    "canonical_slot",
    "canonicalize",
    "missing_fields",
    "TurnResult",
]
