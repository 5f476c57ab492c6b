"""LLM-backed entity extraction.

An alternative to the regex extractor for prompts phrased too freely for
the pattern tables. The model is asked for a flat JSON object of slot
values; whatever it returns goes through the same canonicalization and
known-name normalization as the regex path.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Iterable

from ..errors import UpstreamProviderError
from ..matching import match_name
from .taxonomy import SLOTS, canonicalize

if TYPE_CHECKING:
    from ..backends import InferenceBackend

logger = logging.getLogger(__name__)


LLM_EXTRACT_PROMPT = """\
You extract fields from project-tracker requests. Read the user message and \
output JSON.

KNOWN PROJECTS:
{projects}

KNOWN PEOPLE:
{people}

FIELDS (omit or use null when not mentioned):
- project: project name, copied from KNOWN PROJECTS when it matches one
- issue_title: title of an issue to create
- milestone: milestone (phase) a subtask belongs to
- subtask: name of a subtask to add
- assignee: person the work is assigned to
- dueDate: due date exactly as written ("tomorrow", "friday", "24/04", "2025-06-01")
- priority: high, medium or low
- description: longer free-text description
- query: "status", "updates" or "issues" when the user asks about a project

USER MESSAGE: "{message}"

Output ONLY a flat JSON object using the field names above."""


class LLMEntityExtractor:
    """Extract slot values by prompting an inference backend.

    Attributes:
        backend: Inference backend used for completion
        known_projects: Default canonical project names
        known_assignees: Default canonical people names
        temperature: Sampling temperature for the request
        max_tokens: Completion limit for the request
    """

    def __init__(
        self,
        backend: "InferenceBackend",
        known_projects: Iterable[str] | None = None,
        known_assignees: Iterable[str] | None = None,
        temperature: float = 0.1,
        max_tokens: int = 256,
    ) -> None:
        self.backend = backend
        self.known_projects = list(known_projects or [])
        self.known_assignees = list(known_assignees or [])
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_messages(
        self, text: str, projects: list[str], people: list[str]
    ) -> list[dict[str, str]]:
        """Render the extraction prompt as a single user message."""
        prompt = LLM_EXTRACT_PROMPT.format(
            projects="\n".join(f"- {p}" for p in projects) or "(none)",
            people="\n".join(f"- {p}" for p in people) or "(none)",
            message=text.replace('"', "'"),
        )
        return [{"role": "user", "content": prompt}]

    async def extract(
        self,
        text: str,
        known_projects: Iterable[str] | None = None,
        known_assignees: Iterable[str] | None = None,
    ) -> dict[str, str]:
        """Extract a canonical slot mapping from ``text``.

        Args:
            text: User prompt
            known_projects: Overrides the constructor's project list
            known_assignees: Overrides the constructor's assignee list

        Returns:
            Canonical slot name -> non-empty value

        Raises:
            UpstreamProviderError: If the backend fails or the reply is not JSON
        """
        from ..backends import BackendError

        projects = self.known_projects if known_projects is None else list(known_projects)
        people = self.known_assignees if known_assignees is None else list(known_assignees)

        try:
            if not self.backend.is_loaded:
                await self.backend.load()
            response = await self.backend.complete(
                self.build_messages(text, projects, people),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                json_output=True,
            )
        except (BackendError, RuntimeError) as e:
            logger.error(f"LLM extraction failed: {e}")
            raise UpstreamProviderError(f"Language model request failed: {e}") from e

        raw = self._parse_json(response)
        slots = self._filter(raw)

        if slots.get("project") and projects:
            slots["project"] = match_name(slots["project"], projects) or slots["project"]
        if slots.get("assignee") and people:
            slots["assignee"] = match_name(slots["assignee"], people) or slots["assignee"]
        if slots.get("priority"):
            slots["priority"] = slots["priority"].lower()
        if slots.get("query"):
            slots["query"] = slots["query"].lower()

        logger.debug(f"LLM extracted {slots} from prompt: {text!r}")
        return slots

    @staticmethod
    def _parse_json(response: str) -> dict[str, Any]:
        """Pull the first flat JSON object out of a model reply."""
        try:
            json_match = re.search(r"\{[^{}]*\}", response, re.DOTALL)
            data = json.loads(json_match.group() if json_match else response)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse LLM response as JSON: {e}")
            raise UpstreamProviderError("Language model returned malformed JSON") from e

        if not isinstance(data, dict):
            raise UpstreamProviderError("Language model returned malformed JSON")
        return data

    @staticmethod
    def _filter(data: dict[str, Any]) -> dict[str, str]:
        """Canonicalize keys and keep only known slots with scalar values."""
        scalars = {
            k: v
            for k, v in data.items()
            if isinstance(v, (str, int, float)) and not isinstance(v, bool)
        }
        slots = canonicalize(scalars)
        return {k: v for k, v in slots.items() if k in SLOTS and v.lower() != "null"}


__all__ = ["LLMEntityExtractor", "LLM_EXTRACT_PROMPT"]
