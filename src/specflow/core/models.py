"""Core data models for specflow."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SpecPhase(str, Enum):
    """Lifecycle phase of a spec. Order of declaration is the workflow order."""

    REQUIREMENTS = "requirements"
    DESIGN = "design"
    TASKS = "tasks"
    IMPLEMENTATION = "implementation"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self is SpecPhase.COMPLETED


class TaskStatus(str, Enum):
    """Status of a task within a spec."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    REVIEW = "review"
    DONE = "done"


class EntityType(str, Enum):
    """Kind of local entity a sync record links to the tracker."""

    SPEC = "spec"
    TASK = "task"
    ISSUE = "issue"
    PROJECT = "project"
    SUB_ISSUE = "sub_issue"


class SyncStatus(str, Enum):
    """Outcome of the last synchronization of a record."""

    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


# =============================================================================
# Entity Models
# =============================================================================


class Spec(BaseModel):
    """The unit of work tracked through the phase workflow."""

    id: str
    name: str
    description: str = ""
    phase: SpecPhase = SpecPhase.REQUIREMENTS
    branch_name: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def short_id(self) -> str:
        """First eight characters of the id, used in branch names."""
        return self.id[:8]


class Task(BaseModel):
    """A task belonging to exactly one spec."""

    id: str
    spec_id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: int = Field(default=3, ge=1, le=5, description="1 (highest) to 5 (lowest)")
    github_issue_number: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None


class SyncRecord(BaseModel):
    """Link between a local entity and a remote tracker object.

    At most one record exists per (entity_type, entity_id).
    """

    id: int | None = None
    entity_type: EntityType
    entity_id: str
    github_id: str | None = None
    github_number: int | None = None
    github_node_id: str | None = None
    sync_status: SyncStatus = SyncStatus.PENDING
    parent_issue_number: int | None = None
    parent_spec_id: str | None = None
    pr_number: int | None = None
    pr_url: str | None = None
    pr_merged_at: datetime | None = None
    error_message: str | None = None
    last_synced_at: datetime | None = None

    @property
    def is_linked(self) -> bool:
        """True when the record points at an existing remote object."""
        return self.github_number is not None
