"""Auto-commit handler.

Commits the spec document whenever a spec is created or changes phase, and the
whole working tree when a spec is completed. Failures never fail the event:
they are logged and surfaced through the notifier with a manual fallback.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from specflow.core.models import SpecPhase
from specflow.git.commits import DEFAULT_AUTHOR, CommitResult, commit_paths, commit_working_tree, phase_commit_message
from specflow.git.runner import GitError, is_git_repository
from specflow.workflow.events import EventType, SpecCreated, SpecPhaseChanged
from specflow.workflow.hints import COMMIT_HINT

if TYPE_CHECKING:
    from pathlib import Path

    from specflow.core.documents import SpecDocumentStore
    from specflow.core.state import StateManager
    from specflow.notifications.base import Notifier
    from specflow.workflow.event_bus import EventBus
    from specflow.workflow.events import WorkflowEvent

logger = logging.getLogger(__name__)


class GitIntegrationHandler:
    """Commits spec documents as specs move through the workflow."""

    def __init__(
        self,
        project_root: Path,
        state: StateManager,
        documents: SpecDocumentStore,
        notifier: Notifier,
        enabled: bool = True,
        author: str = DEFAULT_AUTHOR,
    ) -> None:
        self.project_root = project_root
        self.state = state
        self.documents = documents
        self.notifier = notifier
        self.enabled = enabled
        self.author = author

    def register(self, bus: EventBus) -> None:
        bus.register(EventType.SPEC_CREATED, self.on_spec_created)
        bus.register(EventType.SPEC_PHASE_CHANGED, self.on_phase_changed)

    async def on_spec_created(self, event: WorkflowEvent) -> None:
        if not isinstance(event, SpecCreated) or not self._should_commit(event.spec_id):
            return
        message = phase_commit_message(event.name, SpecPhase.REQUIREMENTS)
        self._run(event.spec_id, message, whole_tree=False)

    async def on_phase_changed(self, event: WorkflowEvent) -> None:
        if not isinstance(event, SpecPhaseChanged) or not self._should_commit(event.spec_id):
            return

        spec = self.state.get_spec(event.spec_id)
        if spec is None:
            return
        if spec.phase != event.new_phase:
            # Rolled back by another handler before this one ran
            logger.debug(f"Spec {spec.id} is back in {spec.phase.value}, skipping auto-commit")
            return

        message = phase_commit_message(spec.name, event.new_phase)
        self._run(spec.id, message, whole_tree=event.new_phase == SpecPhase.COMPLETED)

    def _should_commit(self, spec_id: str) -> bool:
        if not self.enabled:
            logger.debug(f"Auto-commit disabled, skipping spec {spec_id}")
            return False
        if not is_git_repository(self.project_root):
            logger.debug(f"{self.project_root} is not a git repository, skipping auto-commit")
            return False
        return True

    def _run(self, spec_id: str, message: str, whole_tree: bool) -> CommitResult | None:
        try:
            if whole_tree:
                result = commit_working_tree(self.project_root, message, self.author)
            else:
                result = commit_paths(
                    self.project_root,
                    [self.documents.relative_path(spec_id)],
                    message,
                    self.author,
                )
        except GitError as e:
            logger.warning(f"Auto-commit for spec {spec_id} failed: {e}")
            self.notifier.commit_skipped(COMMIT_HINT)
            return None

        if result.committed:
            self.state.log_activity(spec_id, "git.commit", message)
            self.notifier.committed(message)
        else:
            logger.debug(f"Auto-commit skipped for spec {spec_id}: {result.reason}")
        return result
