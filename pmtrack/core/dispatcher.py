"""Domain action dispatch for completed quick-update intents.

Given an intent and a merged slot state with every required field present,
the dispatcher resolves user-typed names against the store, normalizes
values, and performs exactly one store call. Query intents are read-only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping

from .errors import NotFoundError
from .intent.taxonomy import Intent
from .matching import match_name
from .normalize import normalize_priority, resolve_due_date
from .store import Milestone, Project, ProjectStore

logger = logging.getLogger(__name__)

AI_SOURCE = "ai"
AI_REPORTER = "AI Assistant"


@dataclass
class DispatchOutcome:
    """Result of a successful dispatch.

    Attributes:
        intent: The intent that was executed
        message: Confirmation naming canonical project/milestone names
        created: Serialized created object (create intents)
        result: Query answer (query intents)
        status_code: Suggested HTTP status
    """

    intent: Intent
    message: str
    created: dict[str, Any] | None = None
    result: Any = None
    status_code: int = 200


class DomainActionDispatcher:
    """Turn a completed intent into a store mutation or lookup.

    Example:
        >>> dispatcher = DomainActionDispatcher(InMemoryProjectStore())
        >>> outcome = await dispatcher.dispatch(Intent.CREATE_ISSUE, state)
        >>> outcome.created["owner"]
        'Pratik M'
    """

    def __init__(
        self,
        store: ProjectStore,
        clock: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Project store collaborator
            clock: Source of "today" for relative due dates
        """
        self.store = store
        self.clock = clock
        self._handlers: dict[Intent, Callable[[Mapping[str, str]], Any]] = {
            Intent.CREATE_ISSUE: self._create_issue,
            Intent.ADD_SUBTASK: self._add_subtask,
            Intent.QUERY_STATUS: self._query_status,
            Intent.QUERY_UPDATES: self._query_updates,
            Intent.QUERY_ISSUES: self._query_issues,
        }

    async def dispatch(self, intent: Intent, state: Mapping[str, str]) -> DispatchOutcome:
        """Execute ``intent`` against the store.

        Args:
            intent: Classified intent (must not be UNKNOWN)
            state: Merged canonical slot state

        Returns:
            DispatchOutcome describing what was created or found

        Raises:
            NotFoundError: If the project or milestone cannot be resolved
            ValidationError: If a value cannot be normalized or the store
                rejects the payload
            StoreError: If the store cannot persist the write
            ValueError: If the intent has no handler
        """
        handler = self._handlers.get(intent)
        if handler is None:
            raise ValueError(f"No action for intent: {intent.value}")
        logger.info(f"Dispatching {intent.value}")
        return await handler(state)

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve_project(self, name: str) -> Project:
        """Resolve a user-typed project name, exact match first.

        Raises:
            NotFoundError: If nothing matches
        """
        project = match_name(name, await self.store.list_projects(), key=lambda p: p.name)
        if project is None:
            logger.info(f"Project not found: {name!r}")
            raise NotFoundError("project", name)
        return project

    async def resolve_milestone(self, project: Project, name: str) -> Milestone:
        """Resolve a milestone name within one project.

        Raises:
            NotFoundError: If the project has no matching milestone
        """
        milestones = await self.store.find_milestones_by_project(project.id)
        milestone = match_name(name, milestones, key=lambda m: m.name)
        if milestone is None:
            logger.info(f"Milestone not found in {project.name}: {name!r}")
            raise NotFoundError("milestone", name)
        return milestone

    # =========================================================================
    # Create Actions
    # =========================================================================

    async def _create_issue(self, state: Mapping[str, str]) -> DispatchOutcome:
        project = await self.resolve_project(state["project"])
        priority = normalize_priority(state.get("priority"))
        due = resolve_due_date(state["dueDate"], self.clock())

        issue = await self.store.create_issue(
            {
                "project_id": project.id,
                "title": state["issue_title"],
                "description": state.get("description"),
                "status": "Open",
                "priority": priority,
                "owner": state["assignee"],
                "due_date": due,
                "source": AI_SOURCE,
                "reported_by": AI_REPORTER,
            }
        )
        return DispatchOutcome(
            intent=Intent.CREATE_ISSUE,
            message=f'Issue "{issue.title}" created in project "{project.name}".',
            created=issue.model_dump(mode="json"),
            status_code=201,
        )

    async def _add_subtask(self, state: Mapping[str, str]) -> DispatchOutcome:
        project = await self.resolve_project(state["project"])
        milestone = await self.resolve_milestone(project, state["milestone"])
        due = resolve_due_date(state["dueDate"], self.clock())

        existing = await self.store.list_subtasks(milestone.id)
        subtask = await self.store.create_subtask(
            {
                "milestone_id": milestone.id,
                "name": state["subtask"],
                "description": state.get("description"),
                "status": "Not Started",
                "owner": state["assignee"],
                "order": len(existing) + 1,
                "end_date": due,
            }
        )
        return DispatchOutcome(
            intent=Intent.ADD_SUBTASK,
            message=(
                f'Subtask "{subtask.name}" added to milestone "{milestone.name}" '
                f'in project "{project.name}".'
            ),
            created=subtask.model_dump(mode="json"),
            status_code=201,
        )

    # =========================================================================
    # Query Actions
    # =========================================================================

    async def _query_status(self, state: Mapping[str, str]) -> DispatchOutcome:
        project = await self.resolve_project(state["project"])
        milestones = await self.store.find_milestones_by_project(project.id)
        issues = await self.store.list_issues(project.id)

        completed = sum(1 for m in milestones if m.status == "Completed")
        open_issues = sum(1 for i in issues if i.status != "Closed")
        summary = {
            "project": project.name,
            "status": project.status,
            "progress": project.progress,
            "milestones": {"total": len(milestones), "completed": completed},
            "openIssues": open_issues,
        }
        noun = "issue" if open_issues == 1 else "issues"
        return DispatchOutcome(
            intent=Intent.QUERY_STATUS,
            message=(
                f"{project.name} is {project.status} ({project.progress}% complete). "
                f"{completed} of {len(milestones)} milestones completed, "
                f"{open_issues} open {noun}."
            ),
            result=summary,
        )

    async def _query_updates(self, state: Mapping[str, str]) -> DispatchOutcome:
        project = await self.resolve_project(state["project"])
        updates = await self.store.list_updates(project.id)

        if updates:
            lines = "\n".join(f"- {u.content}" for u in updates)
            message = f'Latest updates for "{project.name}":\n{lines}'
        else:
            message = f'No updates yet for "{project.name}".'
        return DispatchOutcome(
            intent=Intent.QUERY_UPDATES,
            message=message,
            result=[u.model_dump(mode="json") for u in updates],
        )

    async def _query_issues(self, state: Mapping[str, str]) -> DispatchOutcome:
        project = await self.resolve_project(state["project"])
        issues = await self.store.list_issues(project.id)

        if issues:
            lines = "\n".join(f"- [{i.priority}] {i.title} ({i.status})" for i in issues)
            message = f'Issues for "{project.name}":\n{lines}'
        else:
            message = f'No issues recorded for "{project.name}".'
        return DispatchOutcome(
            intent=Intent.QUERY_ISSUES,
            message=message,
            result=[i.model_dump(mode="json") for i in issues],
        )


__all__ = ["DispatchOutcome", "DomainActionDispatcher", "AI_SOURCE", "AI_REPORTER"]
