"""Entity extraction for pmtrack quick updates.

This module turns a free-text prompt into a sparse mapping of slot values
(project, issue_title, milestone, subtask, assignee, dueDate, priority,
description, query). Each slot has an ordered list of regex strategies and
the first match wins. Slots nobody matched are simply absent.

Captured project and assignee names are normalized against the known-entity
lists, which compensates for sloppy free-text captures.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..matching import match_name
from .taxonomy import canonicalize

logger = logging.getLogger(__name__)


def _until(*stops: str) -> str:
    """Build a lookahead ending a lazy capture at punctuation, end or ``stops``."""
    base = (r"\s*[,;!?\n]", r"\.(?:\s|$)", r"\s*$")
    return "(?=" + "|".join(base + stops) + ")"


# Where a free-text capture ends, per slot
TITLE_STOP = _until(
    r"\s+in\s+(?:the\s+)?(?:(?i:project)\s+)?[\"'A-Z]",
    r"\s+(?i:for)\s+(?:the\s+)?[\"'A-Z]",
    r"\s+(?i:in|for)\s+(?:the\s+)?[^,;\n]*?\s+project\b",
    r"\s+(?i:assign(?:ed)?|assignee|due|priority|owner)\b",
    r"\s+(?i:with)\s+(?i:high|medium|low|urgent)\b",
    r"\s+(?i:high|medium|low)[\s-]+(?i:priority)\b",
)
PERSON_STOP = _until(r"\s+(?i:due|by|with|and|in|on|for|priority|to|before)\b")
MILESTONE_STOP = _until(
    r"\s+(?i:in|of|for|under|within|assign(?:ed)?|due|by|with|owner)\b"
)
SUBTASK_STOP = _until(
    r"\s+(?i:to|in|into|under|for|within)\s+(?:(?i:the)\s+)?(?:[\"'A-Z]|(?i:milestone|project)\b)",
    r"\s+(?i:assign(?:ed)?|due|owner|priority)\b",
)
DESCRIPTION_STOP = r"(?=\s*[;\n]|,\s*(?i:assign|due|priority|owner)\b|\s*$)"

# A run of capitalized words: "Zephyr Migration", "Bank of Baroda", "SIT-IN"
PROPER_NOUN = r"([A-Z][\w&.'-]*(?:[ \t]+(?:of[ \t]+|&[ \t]+)?[A-Z0-9][\w&.'-]*)*)"

# Due-date expressions understood by the dispatcher
DATE_EXPR = (
    r"((?i:today|tomorrow|next\s+week|in\s+\d+\s+(?:days?|weeks?)"
    r"|(?:(?:this|next)\s+)?(?:mon|tues|wednes|thurs|fri|satur|sun)day\b)"
    r"|\d{4}-\d{1,2}-\d{1,2}|\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?)"
)

QUOTED = r"[\"“']([^\"”'\n]+)[\"”']"


@dataclass
class ExtractedEntities:
    """Container for slot values extracted from one prompt.

    Attributes:
        project: Project name (canonical casing when known)
        issue_title: Title for a new issue
        milestone: Milestone name
        subtask: Subtask name
        assignee: Person the work is assigned to
        due_date: Due-date expression as typed ("tomorrow", "24/04")
        priority: Priority keyword ("high", "medium", "low")
        description: Free-text description
        query: Kind of lookup requested ("status", "updates", "issues")
        raw: Matched text per slot, for debugging
    """

    project: str | None = None
    issue_title: str | None = None
    milestone: str | None = None
    subtask: str | None = None
    assignee: str | None = None
    due_date: str | None = None
    priority: str | None = None
    description: str | None = None
    query: str | None = None
    raw: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, str]:
        """Convert to a canonical slot mapping, excluding missing values."""
        values = {k: v for k, v in self.__dict__.items() if v is not None and k != "raw"}
        return canonicalize(values)


class EntityExtractor:
    """Extract slot values from natural language prompts.

    Stateless: the same text and known-entity lists always yield the same
    result. Known projects and assignees can be fixed at construction or
    passed per call.
    """

    # Ordered strategies per slot: (pattern, fixed value or None for group 1)
    PATTERNS: dict[str, list[tuple[str, str | None]]] = {
        "project": [
            # "project: Zephyr Migration", "project name = Apollo"
            (r"(?i:\bproject)(?:\s+(?i:name))?\s*[:=]\s*[\"']?([^\"',;\n]+?)[\"']?" + _until(), None),
            # project "Zephyr Migration"
            (r"(?i:\bproject)\s+" + QUOTED, None),
            # "in the Apollo project"
            (
                r"\b(?i:in|for|under)\s+(?:(?i:the)\s+)?[\"']?"
                r"([A-Za-z0-9](?:(?!\s+(?i:in|for|under)\s)[\w&.' -])*?)[\"']?\s+project\b",
                None,
            ),
            # "in Zephyr Migration", "in project Apollo"
            (r"\b(?:in|In)\s+(?:the\s+)?(?:(?i:project)\s+)?" + PROPER_NOUN, None),
        ],
        "issue_title": [
            # issue called "API Integration Bug"
            (r"(?i:\b(?:issue|bug))(?:\s+(?i:called|named|titled))?\s*:?\s*" + QUOTED, None),
            # "issue called API Integration Bug in ..."
            (r"(?i:\b(?:issue|bug)\s+(?:called|named|titled|about))\s*:?\s*(.+?)" + TITLE_STOP, None),
            # "issue: Login broken"
            (r"(?i:\bissue)\s*:\s*(.+?)" + TITLE_STOP, None),
            # "create an issue Login broken"
            (
                r"(?i:\b(?:create|add|raise|log|open|file|report)\s+(?:(?:a|an|new)\s+)*(?:issue|bug))"
                r"\s+(?!(?i:called|named|titled|about|for|in|on|to)\b)(.+?)" + TITLE_STOP,
                None,
            ),
            # "title: Login broken"
            (r"(?i:\btitle)\s*[:=]\s*(.+?)" + TITLE_STOP, None),
        ],
        "milestone": [
            (r"(?i:\bmilestone\b)\s+(?:(?i:called|named)\s+)?" + QUOTED, None),
            # "to the UAT milestone"
            (r"\b" + PROPER_NOUN + r"\s+(?i:milestone)\b", None),
            # "milestone UAT", "milestone: Go-Live"
            (
                r"(?i:\bmilestone\b)\s*[:=]?\s*(?:(?i:called|named)\s+)?"
                r"(?!(?i:in|of|for|under)\b)(.+?)" + MILESTONE_STOP,
                None,
            ),
        ],
        "subtask": [
            (r"(?i:\bsub-?task\b)\s+(?:(?i:called|named)\s+)?" + QUOTED, None),
            # "subtask Write tests to milestone UAT", "subtask to implement login"
            (
                r"(?i:\bsub-?task\b)\s*[:=]?\s*(?:(?i:called|named)\s+|(?i:to)\s+(?=[a-z]))?"
                r"(.+?)" + SUBTASK_STOP,
                None,
            ),
        ],
        "assignee": [
            (r"(?i:\bassign(?:ed)?)(?:\s+(?i:it|this))?\s+(?i:to)\s+(.+?)" + PERSON_STOP, None),
            (r"(?i:\bassignee)\s*[:=]?\s*(.+?)" + PERSON_STOP, None),
            (r"(?i:\bowner)\s*[:=]\s*(.+?)" + PERSON_STOP, None),
            (r"(?i:\bowned\s+by)\s+(.+?)" + PERSON_STOP, None),
            (r"(?i:\bassign(?:ed)?)\s+(?!(?i:to|it|this)\b)(.+?)" + PERSON_STOP, None),
        ],
        "due_date": [
            (r"(?i:\bdue(?:\s+date)?)\s*(?:[:=]|(?i:on|by))?\s*" + DATE_EXPR, None),
            (r"(?i:\b(?:by|before|deadline))\s*:?\s*" + DATE_EXPR, None),
            (r"\b(\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}(?:/\d{2,4})?)\b", None),
            (r"(?i)\b(tomorrow|next\s+week|in\s+\d+\s+(?:days?|weeks?))\b", None),
        ],
        "priority": [
            (r"(?i)\b(high|medium|low)[\s-]+priority\b", None),
            (r"(?i)\bpriority\s*(?:[:=]|is|of)?\s*(high|medium|low)\b", None),
            (r"(?i)\b(?:urgent|critical|important)\b", "high"),
        ],
        "description": [
            (r"(?i:\b(?:description|details?))\s*[:=]\s*(.+?)" + DESCRIPTION_STOP, None),
        ],
        "query": [
            (r"(?i)\b(?:show|list|get|see|view|what\s+are|any|open)\b[^.?!\n]*?\bissues\b", "issues"),
            (r"(?i)\b(?:show|list|get|see|view|what\s+are|any|latest|recent)\b[^.?!\n]*?\bupdates\b", "updates"),
            (r"(?i)\b(?:status|progress)\b(?!\s*[:=])|\bhow\s+is\b[^.?!\n]*?\bgoing\b", "status"),
        ],
    }

    # Tried after the project patterns, in order, when none matched
    PROJECT_FALLBACK = r"\b(?i:of|for)\s+(?:the\s+)?(?:(?i:project)\s+)?" + PROPER_NOUN

    def __init__(
        self,
        known_projects: Sequence[str] | None = None,
        known_assignees: Sequence[str] | None = None,
    ) -> None:
        """Initialize the extractor with compiled patterns.

        Args:
            known_projects: Canonical project names for normalization
            known_assignees: Canonical people names for normalization
        """
        self.known_projects = list(known_projects or [])
        self.known_assignees = list(known_assignees or [])
        self._compiled: dict[str, list[tuple[re.Pattern[str], str | None]]] = {
            slot: [(re.compile(pattern), fixed) for pattern, fixed in patterns]
            for slot, patterns in self.PATTERNS.items()
        }
        self._project_fallback = re.compile(self.PROJECT_FALLBACK)

    def extract(
        self,
        text: str,
        known_projects: Iterable[str] | None = None,
        known_assignees: Iterable[str] | None = None,
    ) -> ExtractedEntities:
        """Extract all slot values from natural language text.

        Args:
            text: User prompt
            known_projects: Overrides the constructor's project list
            known_assignees: Overrides the constructor's assignee list

        Returns:
            ExtractedEntities with every slot that matched
        """
        projects = self.known_projects if known_projects is None else list(known_projects)
        people = self.known_assignees if known_assignees is None else list(known_assignees)
        entities = ExtractedEntities()

        for slot, patterns in self._compiled.items():
            for pattern, fixed in patterns:
                match = pattern.search(text)
                if not match:
                    continue
                value = fixed if fixed is not None else _clean(match.group(1))
                if not value:
                    continue
                setattr(entities, slot, value)
                entities.raw[slot] = match.group(0)
                break

        if entities.project is None:
            self._project_fallbacks(text, projects, entities)
        elif projects:
            known = match_name(entities.project, projects)
            if known is not None:
                entities.project = known

        if entities.assignee is None and people:
            self._scan_known(_mask_captures(text, entities), people, entities, "assignee")
        elif entities.assignee is not None and people:
            known = match_name(entities.assignee, people)
            if known is not None:
                entities.assignee = known

        if entities.priority:
            entities.priority = entities.priority.lower()

        found = entities.to_dict()
        if found:
            logger.debug(f"Extracted {found} from prompt: {text!r}")
        return entities

    def _project_fallbacks(
        self, text: str, projects: list[str], entities: ExtractedEntities
    ) -> None:
        """Find a project by known-name mention, then by "of/for X"."""
        if self._scan_known(text, projects, entities, "project"):
            return

        match = self._project_fallback.search(text)
        if match:
            value = _clean(match.group(1))
            if value:
                known = match_name(value, projects) if projects else None
                entities.project = known or value
                entities.raw["project"] = match.group(0)

    @staticmethod
    def _scan_known(
        text: str, names: list[str], entities: ExtractedEntities, slot: str
    ) -> bool:
        """Look for a bare mention of a known name, longest names first.

        A person may be mentioned by first name only ("Pratik" for
        "Pratik M").
        """
        for name in sorted(names, key=len, reverse=True):
            match = re.search(rf"(?<!\w){re.escape(name)}(?!\w)", text, re.IGNORECASE)
            if match:
                setattr(entities, slot, name)
                entities.raw[slot] = match.group(0)
                return True

        if slot != "assignee":
            return False

        for name in names:
            first = name.split()[0] if name.split() else ""
            if len(first) < 3:
                continue
            match = re.search(rf"(?<!\w){re.escape(first)}(?!\w)", text, re.IGNORECASE)
            if match:
                setattr(entities, slot, name)
                entities.raw[slot] = match.group(0)
                return True
        return False


def _mask_captures(text: str, entities: ExtractedEntities) -> str:
    """Blank out free-text captures so names inside a title are not rescanned."""
    for slot in ("issue_title", "subtask", "milestone", "description"):
        captured = entities.raw.get(slot)
        if captured:
            text = text.replace(captured, " " * len(captured))
    return text


def _clean(value: str | None) -> str:
    """Trim whitespace, wrapping quotes and trailing punctuation."""
    if not value:
        return ""
    cleaned = re.sub(r"\s+", " ", value).strip()
    cleaned = cleaned.strip("\"'“”")
    return cleaned.rstrip(".,;:!?").strip()


# Module-level instance for convenience
_extractor = EntityExtractor()


def extract_entities(text: str, known_projects: Iterable[str] | None = None) -> dict[str, str]:
    """Extract a canonical slot mapping using the default extractor.

    Args:
        text: User prompt
        known_projects: Canonical project names for normalization

    Returns:
        Slot name -> value for every slot that matched
    """
    return _extractor.extract(text, known_projects=known_projects).to_dict()


__all__ = [
    "EntityExtractor",
    "ExtractedEntities",
    "extract_entities",
]
