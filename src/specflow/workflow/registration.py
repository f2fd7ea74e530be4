"""Wiring of the built-in workflow handlers onto an event bus."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from specflow.git.branches import BranchManager
from specflow.notifications.base import NullNotifier
from specflow.workflow.branch_management import BranchManagementHandler
from specflow.workflow.git_integration import GitIntegrationHandler
from specflow.workflow.github_integration import GitHubIntegrationHandler, SyncFactory, make_sync_factory
from specflow.workflow.orchestrator import WorkflowError

if TYPE_CHECKING:
    from pathlib import Path

    from specflow.config import Config
    from specflow.core.documents import SpecDocumentStore
    from specflow.core.state import StateManager
    from specflow.notifications.base import Notifier
    from specflow.workflow.event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass
class WorkflowContext:
    """Everything the built-in handlers need, built once per process."""

    project_root: Path
    config: Config
    state: StateManager
    documents: SpecDocumentStore
    notifier: Notifier = field(default_factory=NullNotifier)
    branches: BranchManager | None = None
    sync_factory: SyncFactory | None = None

    def __post_init__(self) -> None:
        if self.branches is None:
            self.branches = BranchManager(self.project_root, self.config.branches, self.config.commit_author)
        if self.sync_factory is None:
            self.sync_factory = make_sync_factory(self.config, self.state, self.documents, self.project_root)


def register_builtin_handlers(bus: EventBus, context: WorkflowContext) -> None:
    """Register branch, git and GitHub handlers.

    Branch management goes first: when a branch cannot be created it restores
    the previous phase before the other handlers look at the spec.
    """
    if context.branches is None or context.sync_factory is None:
        raise WorkflowError("WorkflowContext has no branch manager or sync factory")

    BranchManagementHandler(
        branches=context.branches,
        state=context.state,
        documents=context.documents,
        config=context.config,
        notifier=context.notifier,
        sync_factory=context.sync_factory,
    ).register(bus)

    GitIntegrationHandler(
        project_root=context.project_root,
        state=context.state,
        documents=context.documents,
        notifier=context.notifier,
        enabled=context.config.auto_commit,
        author=context.config.commit_author,
    ).register(bus)

    GitHubIntegrationHandler(
        state=context.state,
        notifier=context.notifier,
        sync_factory=context.sync_factory,
        enabled=context.config.github.enabled,
    ).register(bus)

    logger.debug(f"Registered built-in workflow handlers for {context.project_root}")
