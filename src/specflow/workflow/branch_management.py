"""Branch lifecycle handler.

Entering implementation from tasks moves work off a protected branch onto a
spec branch; if that fails the phase change is undone. Completing a spec
pushes its branch and opens a pull request, best effort.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from specflow.core.models import SpecPhase
from specflow.git.branches import BranchPushError
from specflow.git.commits import commit_working_tree, phase_commit_message
from specflow.git.naming import BranchCategory, InvalidSpecIdError, UnsafeBranchNameError, infer_category
from specflow.git.runner import GitError
from specflow.sync.github_client import GitHubClientError
from specflow.workflow.events import EventType, SpecPhaseChanged
from specflow.workflow.hints import COMMIT_HINT, push_hint, remediation_hint
from specflow.workflow.orchestrator import PhaseRollbackError

if TYPE_CHECKING:
    from specflow.config import Config
    from specflow.core.documents import SpecDocumentStore
    from specflow.core.models import Spec
    from specflow.core.state import StateManager
    from specflow.git.branches import BranchManager
    from specflow.notifications.base import Notifier
    from specflow.sync.github_sync import GitHubSyncService
    from specflow.workflow.event_bus import EventBus
    from specflow.workflow.events import WorkflowEvent

logger = logging.getLogger(__name__)

PR_COMMENT_TEMPLATE = "Pull request opened: {url}"


class BranchManagementHandler:
    """Creates spec branches and opens pull requests on phase changes."""

    def __init__(
        self,
        branches: BranchManager,
        state: StateManager,
        documents: SpecDocumentStore,
        config: Config,
        notifier: Notifier,
        sync_factory: Callable[[], GitHubSyncService] | None = None,
    ) -> None:
        self.branches = branches
        self.state = state
        self.documents = documents
        self.config = config
        self.notifier = notifier
        self.sync_factory = sync_factory

    def register(self, bus: EventBus) -> None:
        bus.register(EventType.SPEC_PHASE_CHANGED, self.on_phase_changed)

    async def on_phase_changed(self, event: WorkflowEvent) -> None:
        if not isinstance(event, SpecPhaseChanged):
            return

        match (event.old_phase, event.new_phase):
            case (SpecPhase.TASKS, SpecPhase.IMPLEMENTATION):
                self.start_implementation(event)
            case (SpecPhase.IMPLEMENTATION, SpecPhase.COMPLETED):
                await self.finish_implementation(event.spec_id)
            case _:
                logger.debug(f"No branch action for {event.old_phase.value} -> {event.new_phase.value}")

    # =========================================================================
    # tasks -> implementation
    # =========================================================================

    def start_implementation(self, event: SpecPhaseChanged) -> None:
        """Put the spec on its own branch.

        Raises:
            PhaseRollbackError: After restoring ``event.old_phase`` when the branch
                could not be created.
        """
        if not self.config.branches.create_on_implementation:
            logger.debug("Branch creation on implementation is disabled")
            return

        spec = self.state.get_spec(event.spec_id)
        if spec is None:
            return

        current = self.branches.current_branch()
        if current is None:
            logger.debug("No current branch (detached HEAD or not a repository), skipping branch creation")
            return

        if not self.branches.is_protected_branch(current):
            logger.info(f"Already on working branch {current}, no spec branch needed")
            if spec.branch_name is None:
                self.state.set_spec_branch(spec.id, current)
            return

        try:
            result = self.branches.create_spec_branch(spec.id, spec.name)
        except (GitError, InvalidSpecIdError, UnsafeBranchNameError) as e:
            raise self._rollback(event, str(e)) from e

        if not result.created:
            logger.info(f"Spec branch not created: {result.reason}")
            return

        self.state.set_spec_branch(spec.id, result.branch_name)
        self.state.log_activity(spec.id, "git.branch_created", result.branch_name)
        self.notifier.branch_switched(result.branch_name or "")

    def _rollback(self, event: SpecPhaseChanged, reason: str) -> PhaseRollbackError:
        logger.warning(f"Branch creation for spec {event.spec_id} failed, restoring {event.old_phase.value}: {reason}")
        self.state.update_spec_phase(event.spec_id, event.old_phase)
        self.documents.update_phase(event.spec_id, event.old_phase)
        self.state.log_activity(event.spec_id, "spec.phase_rolled_back", reason)
        return PhaseRollbackError(event.spec_id, event.old_phase, reason)

    # =========================================================================
    # implementation -> completed
    # =========================================================================

    def pull_request_base(self, spec: Spec) -> str:
        if infer_category(spec.name) == BranchCategory.HOTFIX:
            return self.config.branches.release_branch
        return self.config.github.default_base_branch or self.config.branches.base_branch

    async def finish_implementation(self, spec_id: str) -> None:
        """Commit, push and open a pull request. Failures are reported, never raised."""
        spec = self.state.get_spec(spec_id)
        if spec is None:
            return

        branch = spec.branch_name or self.branches.current_branch()
        if branch is None:
            logger.debug(f"No branch for spec {spec_id}, skipping pull request")
            return
        if self.branches.is_protected_branch(branch):
            logger.info(f"Spec {spec_id} is on protected branch {branch}, skipping pull request")
            return

        try:
            commit_working_tree(
                self.branches.project_root,
                phase_commit_message(spec.name, SpecPhase.COMPLETED),
                self.config.commit_author,
            )
        except GitError as e:
            self._report("Auto-commit before pull request failed", e, COMMIT_HINT)

        if not self.branches.has_origin_remote():
            logger.info(f"No origin remote, leaving {branch} local and skipping pull request")
            return

        try:
            self.branches.ensure_remote_branch(branch)
        except BranchPushError as e:
            self._report(f"Could not push {branch}", e, push_hint(branch))
            return
        except (GitError, UnsafeBranchNameError) as e:
            self._report(f"Could not push {branch}", e, remediation_hint(str(e), branch))
            return

        if not self.config.github.enabled or self.sync_factory is None:
            logger.debug("GitHub integration disabled, skipping pull request")
            return

        try:
            async with self.sync_factory() as sync:
                result = await sync.create_pull_request(spec_id, head=branch, base=self.pull_request_base(spec))
                if not result.success:
                    self._report("Pull request was not created", RuntimeError(result.error or "unknown error"))
                    return
                self.notifier.pull_request_opened(result.url or "")

                try:
                    await sync.comment_on_spec_issue(spec_id, PR_COMMENT_TEMPLATE.format(url=result.url))
                except GitHubClientError as e:
                    logger.warning(f"Could not comment pull request link on spec {spec_id}: {e}")
        except GitHubClientError as e:
            self._report("Pull request was not created", e, remediation_hint(str(e), branch))

    def _report(self, title: str, error: Exception, hint: str | None = None) -> None:
        logger.warning(f"{title}: {error}")
        self.notifier.automation_failed(title, hint or str(error))
