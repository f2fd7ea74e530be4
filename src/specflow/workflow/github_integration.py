"""GitHub issue handler.

Keeps each spec's issue in step with the workflow: issues are opened for new
specs, re-synced on rename and phase change, moved on the project board and
closed on completion. Task completion closes the matching sub-issue. Every
failure is reported and swallowed so local work never depends on GitHub.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from specflow.core.models import EntityType, SpecPhase
from specflow.sync.github_client import GitHubClientError
from specflow.sync.github_sync import GitHubSyncService, resolve_repository
from specflow.workflow.events import (
    EventType,
    SpecCreated,
    SpecPhaseChanged,
    SpecUpdated,
    TaskCompleted,
    TaskCreated,
)
from specflow.workflow.hints import remediation_hint

if TYPE_CHECKING:
    from pathlib import Path

    from specflow.config import Config
    from specflow.core.documents import SpecDocumentStore
    from specflow.core.state import StateManager
    from specflow.notifications.base import Notifier
    from specflow.workflow.event_bus import EventBus
    from specflow.workflow.events import WorkflowEvent

logger = logging.getLogger(__name__)

SyncFactory = Callable[[], GitHubSyncService]

COMPLETION_COMMENT = "Spec completed. Closing this issue."


def make_sync_factory(
    config: Config,
    state: StateManager,
    documents: SpecDocumentStore,
    project_root: Path,
    token: str | None = None,
) -> SyncFactory:
    """Build a factory that opens a sync service for the configured repository.

    The repository is resolved on each call so a late ``git remote add`` is picked up.
    """

    def factory() -> GitHubSyncService:
        repo = resolve_repository(config, project_root)
        return GitHubSyncService(repo, config.github, state, documents, token=token)

    return factory


class GitHubIntegrationHandler:
    """Mirrors workflow events onto GitHub issues."""

    def __init__(
        self,
        state: StateManager,
        notifier: Notifier,
        sync_factory: SyncFactory,
        enabled: bool = True,
    ) -> None:
        self.state = state
        self.notifier = notifier
        self.sync_factory = sync_factory
        self.enabled = enabled

    def register(self, bus: EventBus) -> None:
        bus.register(EventType.SPEC_CREATED, self.on_spec_created)
        bus.register(EventType.SPEC_UPDATED, self.on_spec_updated)
        bus.register(EventType.SPEC_PHASE_CHANGED, self.on_phase_changed)
        bus.register(EventType.TASK_CREATED, self.on_task_created)
        bus.register(EventType.TASK_COMPLETED, self.on_task_completed)

    def _report(self, title: str, error: Exception) -> None:
        logger.warning(f"{title}: {error}")
        self.notifier.automation_failed(title, remediation_hint(str(error)) or str(error))

    # =========================================================================
    # Spec events
    # =========================================================================

    async def on_spec_created(self, event: WorkflowEvent) -> None:
        if not self.enabled or not isinstance(event, SpecCreated):
            return
        try:
            async with self.sync_factory() as sync:
                result = await sync.sync_spec_to_issue(event.spec_id, create_if_missing=True)
        except GitHubClientError as e:
            self._report("Could not create GitHub issue", e)
            return

        if result.success:
            self.notifier.issue_synced("created", result.issue_number)
        else:
            self.notifier.automation_failed("GitHub issue not created", result.error or result.message)

    async def on_spec_updated(self, event: WorkflowEvent) -> None:
        if not self.enabled or not isinstance(event, SpecUpdated):
            return
        if not self._is_linked(event.spec_id):
            return
        try:
            async with self.sync_factory() as sync:
                result = await sync.sync_spec_to_issue(event.spec_id)
        except GitHubClientError as e:
            self._report("Could not update GitHub issue", e)
            return

        if not result.success:
            self.notifier.automation_failed("GitHub issue not updated", result.error or result.message)

    async def on_phase_changed(self, event: WorkflowEvent) -> None:
        if not self.enabled or not isinstance(event, SpecPhaseChanged):
            return

        spec = self.state.get_spec(event.spec_id)
        if spec is None or spec.phase != event.new_phase:
            logger.debug(f"Spec {event.spec_id} no longer in {event.new_phase.value}, skipping issue sync")
            return
        if not self._is_linked(spec.id):
            logger.debug(f"Spec {spec.id} has no issue, skipping issue sync")
            return

        try:
            async with self.sync_factory() as sync:
                result = await sync.sync_spec_to_issue(spec.id)
                if not result.success:
                    self.notifier.automation_failed("GitHub issue not updated", result.error or result.message)
                    return

                await self._move_on_board(sync, spec.id, event.new_phase)

                if event.new_phase == SpecPhase.COMPLETED:
                    await sync.close_spec_issue(spec.id, comment=COMPLETION_COMMENT)
                    self.notifier.issue_synced("closed", result.issue_number)
        except GitHubClientError as e:
            self._report("Could not update GitHub issue", e)

    async def _move_on_board(self, sync: GitHubSyncService, spec_id: str, phase: SpecPhase) -> None:
        try:
            await sync.update_project_status(spec_id, phase)
        except GitHubClientError as e:
            logger.warning(f"Could not update project status for spec {spec_id}: {e}")

    def _is_linked(self, spec_id: str) -> bool:
        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        return record is not None and record.is_linked

    # =========================================================================
    # Task events
    # =========================================================================

    async def on_task_created(self, event: WorkflowEvent) -> None:
        if not self.enabled or not isinstance(event, TaskCreated) or event.task_id is None:
            return
        if not self._is_linked(event.spec_id):
            return

        task = self.state.get_task(event.task_id)
        if task is None:
            return
        try:
            async with self.sync_factory() as sync:
                result = await sync.sub_issues.create_sub_issues(event.spec_id, [task])
        except GitHubClientError as e:
            self._report("Could not create sub-issue", e)
            return

        if not result.success:
            self.notifier.automation_failed("Sub-issue not created", result.error or result.message)

    async def on_task_completed(self, event: WorkflowEvent) -> None:
        if not self.enabled or not isinstance(event, TaskCompleted) or event.task_id is None:
            return
        record = self.state.get_sync_record(EntityType.SUB_ISSUE, event.task_id)
        if record is None or not record.is_linked:
            logger.debug(f"Task {event.task_id} has no sub-issue")
            return

        try:
            async with self.sync_factory() as sync:
                result = await sync.sub_issues.handle_task_completion(event.task_id)
        except GitHubClientError as e:
            self._report("Could not close sub-issue", e)
            return

        if not result.success:
            self.notifier.automation_failed("Sub-issue not closed", result.error or result.message)
        elif result.parent_closed:
            self.notifier.parent_issue_closed(result.parent_issue_number)
