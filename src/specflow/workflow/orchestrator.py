"""Phase transitions for specs.

The orchestrator owns the state change itself (persisting the phase and the
document's phase line) and publishes an event for everything else. Side
effects such as commits, branches and issue updates live in handlers on the
event bus; only a handler raising ``PhaseRollbackError`` can make a
transition fail after it was persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from specflow.core.models import Spec, SpecPhase, Task, TaskStatus
from specflow.notifications.base import NullNotifier
from specflow.workflow.events import (
    SpecCreated,
    SpecPhaseChanged,
    SpecUpdated,
    TaskCompleted,
    TaskCreated,
    TaskStatusChanged,
)

if TYPE_CHECKING:
    from specflow.core.documents import SpecDocumentStore
    from specflow.core.state import StateManager
    from specflow.notifications.base import Notifier
    from specflow.workflow.event_bus import DispatchReport, EventBus

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================


class WorkflowError(Exception):
    """Base exception for workflow operations."""


class SpecNotFoundError(WorkflowError):
    """No spec with the given id."""


class TaskNotFoundError(WorkflowError):
    """No task with the given id."""


class InvalidTransitionError(WorkflowError):
    """The requested phase change is not allowed."""


class PhaseRollbackError(WorkflowError):
    """Raised by a handler after it has restored the previous phase."""

    def __init__(self, spec_id: str, restored_phase: SpecPhase, reason: str) -> None:
        self.spec_id = spec_id
        self.restored_phase = restored_phase
        self.reason = reason
        super().__init__(f"Spec {spec_id} rolled back to {restored_phase.value}: {reason}")


class PhaseTransitionError(WorkflowError):
    """A transition was undone by a handler and did not take place."""


# =============================================================================
# Results
# =============================================================================


@dataclass
class AdvanceResult:
    """Outcome of ``PhaseOrchestrator.advance``."""

    spec: Spec
    old_phase: SpecPhase
    new_phase: SpecPhase
    changed: bool
    report: DispatchReport | None = None

    @property
    def handler_errors(self) -> list[str]:
        if self.report is None:
            return []
        return [f"{f.handler_name}: {f.error}" for f in self.report.failures]


class PhaseOrchestrator:
    """Moves specs through their phases and publishes workflow events."""

    def __init__(
        self,
        state: StateManager,
        bus: EventBus,
        documents: SpecDocumentStore,
        notifier: Notifier | None = None,
    ) -> None:
        self.state = state
        self.bus = bus
        self.documents = documents
        self.notifier = notifier or NullNotifier()

    def _require_spec(self, spec_id: str) -> Spec:
        spec = self.state.get_spec(spec_id)
        if spec is None:
            raise SpecNotFoundError(f"Spec not found: {spec_id}")
        return spec

    def _require_task(self, task_id: str) -> Task:
        task = self.state.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    # =========================================================================
    # Specs
    # =========================================================================

    async def create_spec(self, name: str, description: str = "") -> Spec:
        """Persist a new spec, write its document and publish ``SpecCreated``."""
        spec = self.state.create_spec(name, description)
        self.documents.create(spec)
        self.state.log_activity(spec.id, "spec.created", name)
        logger.info(f"Created spec {spec.id} ({name})")

        await self.bus.publish(SpecCreated(spec_id=spec.id, name=name, description=description))
        return spec

    async def rename(self, spec_id: str, name: str) -> Spec:
        """Rename a spec and publish ``SpecUpdated``."""
        spec = self._require_spec(spec_id)
        if name == spec.name:
            return spec

        self.state.update_spec_name(spec_id, name)
        self.state.log_activity(spec_id, "spec.renamed", f"{spec.name} -> {name}")
        await self.bus.publish(SpecUpdated(spec_id=spec_id, name=name, previous_name=spec.name))
        return self._require_spec(spec_id)

    async def advance(self, spec_id: str, new_phase: SpecPhase) -> AdvanceResult:
        """Move a spec to ``new_phase`` and run the transition's side effects.

        Args:
            spec_id: Spec to advance.
            new_phase: Target phase.

        Returns:
            AdvanceResult. Handler failures other than rollbacks are only
            reported on it.

        Raises:
            SpecNotFoundError: Unknown spec.
            InvalidTransitionError: The spec is already completed.
            PhaseTransitionError: A handler rolled the phase back.
        """
        spec = self._require_spec(spec_id)
        old_phase = spec.phase

        if old_phase == new_phase:
            logger.debug(f"Spec {spec_id} already in {new_phase.value}")
            return AdvanceResult(spec=spec, old_phase=old_phase, new_phase=new_phase, changed=False)

        if old_phase.is_terminal:
            raise InvalidTransitionError(
                f"Spec {spec_id} is {old_phase.value}; it cannot move to {new_phase.value}"
            )

        self.state.update_spec_phase(spec_id, new_phase)
        self.documents.update_phase(spec_id, new_phase)
        self.state.log_activity(spec_id, "spec.phase_changed", f"{old_phase.value} -> {new_phase.value}")
        logger.info(f"Spec {spec_id}: {old_phase.value} -> {new_phase.value}")

        report = await self.bus.publish(SpecPhaseChanged(spec_id=spec_id, old_phase=old_phase, new_phase=new_phase))

        rollbacks = report.errors_of(PhaseRollbackError)
        if rollbacks:
            rollback = rollbacks[0]
            self.notifier.transition_rolled_back(new_phase, str(rollback))
            raise PhaseTransitionError(
                f"Transition {old_phase.value} -> {new_phase.value} for spec {spec_id} was rolled back"
            ) from rollback

        return AdvanceResult(
            spec=self._require_spec(spec_id),
            old_phase=old_phase,
            new_phase=new_phase,
            changed=True,
            report=report,
        )

    # =========================================================================
    # Tasks
    # =========================================================================

    async def add_task(self, spec_id: str, title: str, description: str = "", priority: int = 3) -> Task:
        """Create a task under a spec and publish ``TaskCreated``."""
        self._require_spec(spec_id)
        task = self.state.create_task(spec_id, title, description, priority)
        self.state.log_activity(spec_id, "task.created", title)
        await self.bus.publish(TaskCreated(spec_id=spec_id, task_id=task.id, title=title))
        return task

    async def set_task_status(self, task_id: str, status: TaskStatus) -> Task:
        """Change a task's status. Moving to done goes through ``complete_task``."""
        if status == TaskStatus.DONE:
            return await self.complete_task(task_id)

        task = self._require_task(task_id)
        if task.status == status:
            return task
        if task.status == TaskStatus.DONE:
            raise InvalidTransitionError(f"Task {task_id} is done and cannot move to {status.value}")

        self.state.update_task_status(task_id, status)
        await self.bus.publish(
            TaskStatusChanged(spec_id=task.spec_id, task_id=task_id, old_status=task.status, new_status=status)
        )
        return self._require_task(task_id)

    async def complete_task(self, task_id: str) -> Task:
        """Mark a task done and publish ``TaskCompleted``. Done tasks are left alone."""
        task = self._require_task(task_id)
        if task.status == TaskStatus.DONE:
            logger.debug(f"Task {task_id} already done")
            return task

        self.state.update_task_status(task_id, TaskStatus.DONE)
        self.state.log_activity(task.spec_id, "task.completed", task.title)
        logger.info(f"Completed task {task_id} ({task.title})")

        await self.bus.publish(
            TaskCompleted(spec_id=task.spec_id, task_id=task_id, issue_number=task.github_issue_number)
        )
        return self._require_task(task_id)
