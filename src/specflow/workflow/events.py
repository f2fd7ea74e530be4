"""Workflow event types.

Every event type has its own frozen dataclass carrying a typed payload; the
``type`` class attribute is the dispatch key used by the event bus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar

from specflow.core.models import SpecPhase, TaskStatus


class EventType(str, Enum):
    """All events the workflow publishes."""

    SPEC_CREATED = "spec.created"
    SPEC_UPDATED = "spec.updated"
    SPEC_PHASE_CHANGED = "spec.phase_changed"
    TASK_CREATED = "task.created"
    TASK_STATUS_CHANGED = "task.status_changed"
    TASK_COMPLETED = "task.completed"
    GITHUB_ISSUE_CREATED = "github.issue_created"
    GITHUB_ISSUE_UPDATED = "github.issue_updated"
    SUBAGENT_STARTED = "subagent.started"
    SUBAGENT_COMPLETED = "subagent.completed"
    SUBAGENT_FAILED = "subagent.failed"
    SKILL_EXECUTED = "skill.executed"


@dataclass(frozen=True, kw_only=True)
class WorkflowEvent:
    """Fields shared by every event."""

    type: ClassVar[EventType]

    spec_id: str
    task_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, kw_only=True)
class SpecCreated(WorkflowEvent):
    type: ClassVar[EventType] = EventType.SPEC_CREATED

    name: str
    description: str = ""


@dataclass(frozen=True, kw_only=True)
class SpecUpdated(WorkflowEvent):
    type: ClassVar[EventType] = EventType.SPEC_UPDATED

    name: str
    previous_name: str | None = None


@dataclass(frozen=True, kw_only=True)
class SpecPhaseChanged(WorkflowEvent):
    type: ClassVar[EventType] = EventType.SPEC_PHASE_CHANGED

    old_phase: SpecPhase
    new_phase: SpecPhase


@dataclass(frozen=True, kw_only=True)
class TaskCreated(WorkflowEvent):
    type: ClassVar[EventType] = EventType.TASK_CREATED

    title: str


@dataclass(frozen=True, kw_only=True)
class TaskStatusChanged(WorkflowEvent):
    type: ClassVar[EventType] = EventType.TASK_STATUS_CHANGED

    old_status: TaskStatus
    new_status: TaskStatus


@dataclass(frozen=True, kw_only=True)
class TaskCompleted(WorkflowEvent):
    type: ClassVar[EventType] = EventType.TASK_COMPLETED

    issue_number: int | None = None


@dataclass(frozen=True, kw_only=True)
class GitHubIssueCreated(WorkflowEvent):
    type: ClassVar[EventType] = EventType.GITHUB_ISSUE_CREATED

    issue_number: int
    url: str = ""


@dataclass(frozen=True, kw_only=True)
class GitHubIssueUpdated(WorkflowEvent):
    type: ClassVar[EventType] = EventType.GITHUB_ISSUE_UPDATED

    issue_number: int


@dataclass(frozen=True, kw_only=True)
class SubagentStarted(WorkflowEvent):
    type: ClassVar[EventType] = EventType.SUBAGENT_STARTED

    agent: str


@dataclass(frozen=True, kw_only=True)
class SubagentCompleted(WorkflowEvent):
    type: ClassVar[EventType] = EventType.SUBAGENT_COMPLETED

    agent: str
    summary: str = ""


@dataclass(frozen=True, kw_only=True)
class SubagentFailed(WorkflowEvent):
    type: ClassVar[EventType] = EventType.SUBAGENT_FAILED

    agent: str
    error: str


@dataclass(frozen=True, kw_only=True)
class SkillExecuted(WorkflowEvent):
    type: ClassVar[EventType] = EventType.SKILL_EXECUTED

    skill: str
    success: bool = True
