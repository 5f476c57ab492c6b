"""Project store collaborator for pmtrack.

The quick-update core does not own the data model: it only needs to look up
projects and milestones by name and to create issues and subtasks. This
module provides that collaborator interface plus two implementations:

- InMemoryProjectStore: process-local, seeded with demo projects
- YamlProjectStore: same, persisted to .pmtrack/store.yaml
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, Field
from ruamel.yaml import YAML

from .errors import StoreError, ValidationError
from .matching import match_name

logger = logging.getLogger(__name__)


# =============================================================================
# Default Demo Data
# =============================================================================

DEFAULT_MILESTONES: list[str] = [
    "Requirement Gathering",
    "BFRD Sign-off",
    "Configuration",
    "SIT-IN",
    "UAT",
    "Security",
    "Cut-off",
    "Go-Live",
    "Hypercare",
]

DEFAULT_PROJECTS: list[dict[str, Any]] = [
    {
        "name": "Zephyr Migration",
        "description": "Core banking migration to the Zephyr platform",
        "status": "In Progress",
        "progress": 35,
        "pm_name": "Balak S",
    },
    {
        "name": "E-Commerce Platform",
        "description": "Storefront rebuild",
        "status": "In Progress",
        "progress": 60,
        "pm_name": "Pratik M",
    },
    {
        "name": "Mobile Banking App",
        "description": "Retail banking app for iOS and Android",
        "status": "Not Started",
        "progress": 0,
    },
    {
        "name": "Healthcare Management System",
        "description": "Patient records and scheduling",
        "status": "Completed",
        "progress": 100,
    },
]


# =============================================================================
# Domain Models
# =============================================================================


class Project(BaseModel):
    """A tracked project."""

    id: int
    name: str
    description: str | None = None
    status: str = "Not Started"
    progress: int = 0
    start_date: date | None = None
    end_date: date | None = None
    pm_name: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class Milestone(BaseModel):
    """A project phase grouping subtasks."""

    id: int
    project_id: int
    name: str
    description: str | None = None
    status: str = "Not Started"
    owner: str | None = None
    order: int = 1
    start_date: date | None = None
    end_date: date | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class Subtask(BaseModel):
    """A unit of work inside a milestone."""

    id: int
    milestone_id: int
    name: str
    description: str | None = None
    status: str = "Not Started"
    owner: str | None = None
    order: int = 1
    start_date: date | None = None
    end_date: date | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class Issue(BaseModel):
    """A problem raised against a project."""

    id: int
    project_id: int
    title: str
    description: str | None = None
    status: str = "Open"
    priority: str = "Medium"
    owner: str | None = None
    due_date: date | None = None
    source: str | None = None
    reported_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    resolved_at: datetime | None = None


class Update(BaseModel):
    """A free-text status note posted on a project."""

    id: int
    project_id: int
    content: str
    created_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class IssueCreate(BaseModel):
    """Validated payload for create_issue."""

    project_id: int
    title: str = Field(min_length=1)
    description: str | None = None
    status: str = "Open"
    priority: Literal["High", "Medium", "Low"] = "Medium"
    owner: str | None = None
    due_date: date | None = None
    source: str | None = None
    reported_by: str | None = None


class SubtaskCreate(BaseModel):
    """Validated payload for create_subtask."""

    milestone_id: int
    name: str = Field(min_length=1)
    description: str | None = None
    status: str = "Not Started"
    owner: str | None = None
    order: int = 1
    start_date: date | None = None
    end_date: date | None = None


# =============================================================================
# Collaborator Interface
# =============================================================================


class ProjectStore(ABC):
    """Data-store operations consumed by the quick-update core.

    All methods are async so implementations can sit on a network database.
    """

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """Return every project."""
        ...

    @abstractmethod
    async def get_project(self, project_id: int) -> Project | None:
        """Return a project by id, or None."""
        ...

    @abstractmethod
    async def find_milestones_by_project(self, project_id: int) -> list[Milestone]:
        """Return a project's milestones in order."""
        ...

    @abstractmethod
    async def list_subtasks(self, milestone_id: int) -> list[Subtask]:
        """Return a milestone's subtasks in order."""
        ...

    @abstractmethod
    async def list_issues(self, project_id: int) -> list[Issue]:
        """Return a project's issues, oldest first."""
        ...

    @abstractmethod
    async def list_updates(self, project_id: int) -> list[Update]:
        """Return a project's updates, newest first."""
        ...

    @abstractmethod
    async def create_issue(self, payload: dict[str, Any]) -> Issue:
        """Insert an issue.

        Raises:
            ValidationError: If the payload is malformed
            StoreError: If the write cannot be persisted (nothing is kept)
        """
        ...

    @abstractmethod
    async def create_subtask(self, payload: dict[str, Any]) -> Subtask:
        """Insert a subtask.

        Raises:
            ValidationError: If the payload is malformed
            StoreError: If the write cannot be persisted (nothing is kept)
        """
        ...

    async def find_projects_by_name(self, name: str) -> list[Project]:
        """Return projects whose name loosely matches ``name``.

        Exact case-insensitive matches come first, followed by substring
        matches in either direction.
        """
        projects = await self.list_projects()
        exact = [p for p in projects if p.name.lower() == name.strip().lower()]
        loose = [
            p
            for p in projects
            if p not in exact and match_name(name, [p], key=lambda x: x.name) is not None
        ]
        return exact + loose


# =============================================================================
# In-Memory Implementation
# =============================================================================


class InMemoryProjectStore(ProjectStore):
    """Process-local store. Data is lost on restart.

    Example:
        >>> store = InMemoryProjectStore(seed=False)
        >>> store.add_project("Apollo").id
        1
    """

    def __init__(self, seed: bool = True) -> None:
        """Initialize the store.

        Args:
            seed: Populate demo projects, milestones, issues and updates
        """
        self._projects: dict[int, Project] = {}
        self._milestones: dict[int, Milestone] = {}
        self._subtasks: dict[int, Subtask] = {}
        self._issues: dict[int, Issue] = {}
        self._updates: dict[int, Update] = {}
        self._next_ids: dict[str, int] = {
            "project": 1,
            "milestone": 1,
            "subtask": 1,
            "issue": 1,
            "update": 1,
        }
        if seed:
            self.seed()

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    def seed(self) -> None:
        """Populate the demo data set."""
        for fields in DEFAULT_PROJECTS:
            project = self.add_project(**fields)
            for order, name in enumerate(DEFAULT_MILESTONES, start=1):
                self.add_milestone(project.id, name, order=order)

        zephyr = next(p for p in self._projects.values() if p.name == "Zephyr Migration")
        self.add_update(zephyr.id, "Requirement gathering workshops completed.", "Balak S")
        self.add_update(zephyr.id, "BFRD draft shared with the client.", "Balak S")
        self._insert_issue(
            IssueCreate(
                project_id=zephyr.id,
                title="Data mapping gaps",
                priority="High",
                owner="Pratik M",
                reported_by="Balak S",
            )
        )

    # Synchronous helpers used by seeding and tests

    def add_project(self, name: str, **fields: Any) -> Project:
        """Insert a project directly."""
        project = Project(id=self._next_id("project"), name=name, **fields)
        self._projects[project.id] = project
        return project

    def add_milestone(self, project_id: int, name: str, **fields: Any) -> Milestone:
        """Insert a milestone directly."""
        milestone = Milestone(
            id=self._next_id("milestone"), project_id=project_id, name=name, **fields
        )
        self._milestones[milestone.id] = milestone
        return milestone

    def add_update(self, project_id: int, content: str, created_by: str | None = None) -> Update:
        """Insert a project update directly."""
        update = Update(
            id=self._next_id("update"),
            project_id=project_id,
            content=content,
            created_by=created_by,
        )
        self._updates[update.id] = update
        return update

    def _insert_issue(self, data: IssueCreate) -> Issue:
        issue = Issue(id=self._next_id("issue"), **data.model_dump())
        self._issues[issue.id] = issue
        return issue

    def _insert_subtask(self, data: SubtaskCreate) -> Subtask:
        subtask = Subtask(id=self._next_id("subtask"), **data.model_dump())
        self._subtasks[subtask.id] = subtask
        return subtask

    # Collaborator interface

    async def list_projects(self) -> list[Project]:
        return sorted(self._projects.values(), key=lambda p: p.id)

    async def get_project(self, project_id: int) -> Project | None:
        return self._projects.get(project_id)

    async def find_milestones_by_project(self, project_id: int) -> list[Milestone]:
        milestones = [m for m in self._milestones.values() if m.project_id == project_id]
        return sorted(milestones, key=lambda m: (m.order, m.id))

    async def list_subtasks(self, milestone_id: int) -> list[Subtask]:
        subtasks = [s for s in self._subtasks.values() if s.milestone_id == milestone_id]
        return sorted(subtasks, key=lambda s: (s.order, s.id))

    async def list_issues(self, project_id: int) -> list[Issue]:
        issues = [i for i in self._issues.values() if i.project_id == project_id]
        return sorted(issues, key=lambda i: i.id)

    async def list_updates(self, project_id: int) -> list[Update]:
        updates = [u for u in self._updates.values() if u.project_id == project_id]
        return sorted(updates, key=lambda u: (u.created_at, u.id), reverse=True)

    async def create_issue(self, payload: dict[str, Any]) -> Issue:
        try:
            data = IssueCreate.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        if data.project_id not in self._projects:
            raise ValidationError.for_field("project_id", f"unknown project {data.project_id}")

        issue = self._insert_issue(data)
        try:
            self._after_write()
        except StoreError:
            del self._issues[issue.id]
            raise
        logger.info(f"Created issue #{issue.id} '{issue.title}' in project {issue.project_id}")
        return issue

    async def create_subtask(self, payload: dict[str, Any]) -> Subtask:
        try:
            data = SubtaskCreate.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        if data.milestone_id not in self._milestones:
            raise ValidationError.for_field(
                "milestone_id", f"unknown milestone {data.milestone_id}"
            )

        subtask = self._insert_subtask(data)
        try:
            self._after_write()
        except StoreError:
            del self._subtasks[subtask.id]
            raise
        logger.info(
            f"Created subtask #{subtask.id} '{subtask.name}' in milestone {subtask.milestone_id}"
        )
        return subtask

    def _after_write(self) -> None:
        """Hook for persistent subclasses. Raise StoreError to roll back."""

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        """Serialize every table to plain data."""
        return {
            "next_ids": dict(self._next_ids),
            "projects": [p.model_dump(mode="json") for p in self._projects.values()],
            "milestones": [m.model_dump(mode="json") for m in self._milestones.values()],
            "subtasks": [s.model_dump(mode="json") for s in self._subtasks.values()],
            "issues": [i.model_dump(mode="json") for i in self._issues.values()],
            "updates": [u.model_dump(mode="json") for u in self._updates.values()],
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        """Replace all tables with deserialized data."""
        self._projects = {p.id: p for p in map(Project.model_validate, data.get("projects") or [])}
        self._milestones = {
            m.id: m for m in map(Milestone.model_validate, data.get("milestones") or [])
        }
        self._subtasks = {s.id: s for s in map(Subtask.model_validate, data.get("subtasks") or [])}
        self._issues = {i.id: i for i in map(Issue.model_validate, data.get("issues") or [])}
        self._updates = {u.id: u for u in map(Update.model_validate, data.get("updates") or [])}

        next_ids = data.get("next_ids") or {}
        tables = {
            "project": self._projects,
            "milestone": self._milestones,
            "subtask": self._subtasks,
            "issue": self._issues,
            "update": self._updates,
        }
        for kind, table in tables.items():
            floor = max(table, default=0) + 1
            self._next_ids[kind] = max(int(next_ids.get(kind, 1)), floor)


# =============================================================================
# YAML-backed Implementation
# =============================================================================


class YamlProjectStore(InMemoryProjectStore):
    """Store persisted to .pmtrack/store.yaml under a data directory.

    The file is written after every create using an atomic
    write-then-rename. A missing file is seeded with the demo data.
    """

    STORE_DIR = ".pmtrack"
    STORE_FILE = "store.yaml"

    def __init__(self, data_path: Path, seed: bool = True) -> None:
        """Initialize the store.

        Args:
            data_path: Directory holding the .pmtrack folder
            seed: Seed demo data when no store file exists yet
        """
        self.data_path = Path(data_path)
        self._yaml = YAML()
        self._yaml.default_flow_style = False
        super().__init__(seed=False)

        if self.store_file.exists():
            self.load()
        elif seed:
            self.seed()
            self.save()

    @property
    def store_file(self) -> Path:
        """Get the store.yaml path."""
        return self.data_path / self.STORE_DIR / self.STORE_FILE

    def load(self) -> None:
        """Load all tables from disk.

        Raises:
            RuntimeError: If the file exists but cannot be parsed
        """
        try:
            with self.store_file.open("r") as f:
                data = self._yaml.load(f)
        except Exception as e:
            raise RuntimeError(f"Failed to load store from {self.store_file}: {e}") from e

        if data is None:
            logger.warning(f"Empty store file: {self.store_file}")
            return

        self.load_dict(data)
        logger.info(f"Loaded {len(self._projects)} projects from {self.store_file}")

    def save(self) -> None:
        """Write all tables to disk atomically.

        Raises:
            StoreError: If the file cannot be written
        """
        self.store_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.store_file.with_suffix(".yaml.tmp")
        try:
            with temp_file.open("w") as f:
                self._yaml.dump(self.to_dict(), f)
            temp_file.replace(self.store_file)
        except Exception as e:
            if temp_file.exists():
                temp_file.unlink()
            logger.error(f"Failed to save store to {self.store_file}: {e}")
            raise StoreError(f"Failed to save store: {e}") from e

    def _after_write(self) -> None:
        self.save()


__all__ = [
    "DEFAULT_MILESTONES",
    "DEFAULT_PROJECTS",
    "Project",
    "Milestone",
    "Subtask",
    "Issue",
    "Update",
    "IssueCreate",
    "SubtaskCreate",
    "ProjectStore",
    "InMemoryProjectStore",
    "YamlProjectStore",
]
