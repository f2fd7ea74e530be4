"""Spec <-> GitHub issue synchronization.

This module keeps one GitHub issue per spec. The local spec document is the
source of truth: pushing a spec overwrites the issue's title, body and phase
label. Pulling from an issue is narrower and only carries the name, a closed
state, and checkbox ticks back into the document.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from specflow.core.models import EntityType, SpecPhase, SyncRecord, SyncStatus
from specflow.git.status import detect_github_repo
from specflow.sync.checkbox import CheckboxChange, format_change_summary, merge_checkbox_state
from specflow.sync.github_client import (
    GitHubClient,
    GitHubClientError,
    GitHubNotFoundError,
)
from specflow.sync.label_manager import LabelManager
from specflow.sync.pr_cleanup import CleanupResult, PullRequestCleanup
from specflow.sync.projects import ProjectBoard, project_status_for_phase
from specflow.sync.sub_issues import SubIssueManager, render_sub_issue_checklist

if TYPE_CHECKING:
    from pathlib import Path

    from specflow.config import Config, GitHubConfig
    from specflow.core.documents import SpecDocumentStore
    from specflow.core.models import Spec
    from specflow.core.state import StateManager
    from specflow.git.branches import BranchManager

logger = logging.getLogger(__name__)

TITLE_PATTERN = re.compile(r"^\[.*?\]\s*(.+)$")
DEFAULT_PR_BASE = "main"


class RepositoryNotConfiguredError(GitHubClientError):
    """Neither configuration nor the git remote names a GitHub repository."""


@dataclass
class SyncResult:
    """Result of a sync operation."""

    success: bool
    message: str
    issue_number: int | None = None
    created: bool = False
    labels_updated: list[str] = field(default_factory=list)
    checkbox_changes: list[CheckboxChange] = field(default_factory=list)
    error: str | None = None


@dataclass
class EnsureIssueResult:
    """Whether a spec's linked issue still exists, after recovery if needed."""

    exists: bool
    issue_number: int | None = None
    recreated: bool = False
    assumed: bool = False  # lookup failed transiently; existence was assumed
    reason: str | None = None


@dataclass
class PullRequestResult:
    """Result of opening a pull request."""

    success: bool
    url: str | None = None
    number: int | None = None
    error: str | None = None


def issue_title(spec: Spec) -> str:
    return f"[{spec.phase.value}] {spec.name}"


def spec_name_from_title(title: str) -> str:
    """Strip the ``[phase]`` prefix from an issue title."""
    match = TITLE_PATTERN.match(title.strip())
    return match.group(1).strip() if match else title.strip()


def resolve_repository(config: Config, project_root: Path) -> str:
    """Repository as 'owner/repo': configuration first, then the origin remote.

    Raises:
        RepositoryNotConfiguredError: If neither source names a repository.
    """
    slug = config.github.repo_slug
    if slug:
        return slug

    detected = detect_github_repo(project_root)
    if detected:
        return f"{detected[0]}/{detected[1]}"

    raise RepositoryNotConfiguredError("GitHub owner or repo not found")


class GitHubSyncService:
    """Synchronizes specs and tasks with GitHub issues.

    Handles:
    - Pushing spec documents to their issue (creating it on request)
    - Pulling name, closed state and checkboxes back from the issue
    - Recovering from deleted issues
    - Project board membership and status
    - Pull requests for finished specs, and their branch after merge
    - Sub-issues for tasks (via ``sub_issues``)
    """

    def __init__(
        self,
        repo: str,
        config: GitHubConfig,
        state: StateManager,
        documents: SpecDocumentStore,
        token: str | None = None,
        client: GitHubClient | None = None,
    ) -> None:
        """Initialize the sync service.

        Args:
            repo: Repository in 'owner/repo' format.
            config: GitHub configuration.
            state: State manager holding specs and sync records.
            documents: Store for spec documents.
            token: GitHub token (or uses GITHUB_TOKEN env var).
            client: Pre-built client to use instead of opening one.
        """
        self.repo = repo
        self.config = config
        self.state = state
        self.documents = documents
        self._token = token
        self._client = client
        self._owns_client = client is None
        self._label_manager: LabelManager | None = None
        self._project_board: ProjectBoard | None = None
        self._sub_issues: SubIssueManager | None = None
        if client is not None:
            self._wire(client)

    def _wire(self, client: GitHubClient) -> None:
        self._label_manager = LabelManager(
            client=client,
            config=self.config.labels,
            create_if_missing=self.config.create_labels_if_missing,
        )
        if self.config.project_number is not None:
            self._project_board = ProjectBoard(client, client.owner, self.config.project_number)
        self._sub_issues = SubIssueManager(client, self.state)

    async def __aenter__(self) -> GitHubSyncService:
        """Enter async context manager."""
        if self._owns_client:
            self._client = GitHubClient(
                repo=self.repo,
                token=self._token,
                dry_run=self.config.dry_run,
            )
            await self._client.__aenter__()
            self._wire(self._client)
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Exit async context manager."""
        if self._owns_client and self._client:
            await self._client.__aexit__(exc_type, exc_val, exc_tb)
            self._client = None

    @property
    def client(self) -> GitHubClient:
        """Get the GitHub client."""
        if self._client is None:
            raise RuntimeError("GitHubSyncService must be used as async context manager")
        return self._client

    @property
    def label_manager(self) -> LabelManager:
        if self._label_manager is None:
            raise RuntimeError("GitHubSyncService must be used as async context manager")
        return self._label_manager

    @property
    def sub_issues(self) -> SubIssueManager:
        if self._sub_issues is None:
            raise RuntimeError("GitHubSyncService must be used as async context manager")
        return self._sub_issues

    # =========================================================================
    # Spec -> Issue
    # =========================================================================

    def _issue_body(self, spec: Spec) -> str:
        if self.documents.exists(spec.id):
            body = self.documents.read(spec.id)
        else:
            body = f"# {spec.name}\n\n{spec.description}\n"

        checklist = render_sub_issue_checklist(self.state.list_tasks(spec.id))
        if checklist:
            body = f"{body.rstrip()}\n\n{checklist}\n"
        return body

    async def _create_issue(self, spec: Spec) -> SyncRecord:
        """Create the spec's issue and record the link (updating any stale record in place)."""
        await self.label_manager.ensure_labels_exist()
        issue = await self.client.create_issue(
            title=issue_title(spec),
            body=self._issue_body(spec),
            labels=[self.label_manager.label_for(spec.phase)],
        )
        record = self.state.upsert_sync_record(
            SyncRecord(
                entity_type=EntityType.SPEC,
                entity_id=spec.id,
                github_id=self.repo,
                github_number=issue.number,
                github_node_id=issue.node_id,
                sync_status=SyncStatus.SUCCESS,
            )
        )
        self.state.log_activity(spec.id, "github.issue_created", f"#{issue.number}")
        logger.info(f"Created issue #{issue.number} for spec {spec.id}")
        return record

    async def sync_spec_to_issue(self, spec_id: str, create_if_missing: bool = False) -> SyncResult:
        """Push a spec document to its GitHub issue.

        Args:
            spec_id: The spec to push.
            create_if_missing: Create the issue when the spec is not linked yet.
                An already-linked spec is then reported as a duplicate instead.

        Returns:
            SyncResult; never raises for tracker errors.
        """
        spec = self.state.get_spec(spec_id)
        if spec is None:
            return SyncResult(success=False, message=f"Spec not found: {spec_id}", error="spec not found")

        existing = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if create_if_missing and existing is not None and existing.is_linked:
            return SyncResult(
                success=False,
                message=f"Spec {spec_id} is already linked to issue #{existing.github_number}",
                issue_number=existing.github_number,
                error="duplicate issue",
            )

        try:
            ensured = await self.ensure_issue(spec_id)
            if ensured.recreated:
                return SyncResult(
                    success=True,
                    message=f"Recreated deleted issue as #{ensured.issue_number}",
                    issue_number=ensured.issue_number,
                    created=True,
                )

            if ensured.exists and ensured.issue_number is not None:
                return await self._push_existing(spec, ensured.issue_number)

            if not create_if_missing:
                return SyncResult(
                    success=False,
                    message=f"Spec {spec_id} is not linked to a GitHub issue",
                    error=ensured.reason or "not linked",
                )

            record = await self._create_issue(spec)
            if self._project_board is not None:
                await self._try_add_to_project(spec)
            return SyncResult(
                success=True,
                message=f"Created issue #{record.github_number}",
                issue_number=record.github_number,
                created=True,
                labels_updated=[self.label_manager.label_for(spec.phase)],
            )

        except GitHubClientError as e:
            logger.warning(f"Failed to sync spec {spec_id} to GitHub: {e}")
            self.state.mark_sync_status(EntityType.SPEC, spec_id, SyncStatus.FAILED, str(e))
            return SyncResult(success=False, message="Sync to GitHub failed", error=str(e))

    async def _push_existing(self, spec: Spec, issue_number: int) -> SyncResult:
        """Overwrite title, body and phase label of an existing issue."""
        await self.label_manager.ensure_labels_exist()
        current = await self.client.get_issue(issue_number)
        labels = self.label_manager.labels_for_phase(spec.phase, current.labels)

        await self.client.update_issue(
            issue_number,
            title=issue_title(spec),
            body=self._issue_body(spec),
            labels=labels,
        )

        try:
            await self.client.add_comment(issue_number, f"Synced from specflow at {datetime.now().isoformat(timespec='seconds')}")
        except GitHubClientError as e:
            logger.warning(f"Could not add sync comment to #{issue_number}: {e}")

        record = self.state.get_sync_record(EntityType.SPEC, spec.id)
        if record is not None:
            self.state.upsert_sync_record(
                record.model_copy(
                    update={
                        "sync_status": SyncStatus.SUCCESS,
                        "error_message": None,
                        "last_synced_at": datetime.now(),
                    }
                )
            )
        self.state.log_activity(spec.id, "github.issue_updated", f"#{issue_number}")

        return SyncResult(
            success=True,
            message=f"Updated issue #{issue_number}",
            issue_number=issue_number,
            labels_updated=labels,
        )

    # =========================================================================
    # Issue -> Spec
    # =========================================================================

    async def sync_issue_to_spec(self, spec_id: str) -> SyncResult:
        """Pull name, closed state and checkbox ticks from the issue into the spec.

        The document body is never replaced; only checkbox markers change.
        """
        spec = self.state.get_spec(spec_id)
        if spec is None:
            return SyncResult(success=False, message=f"Spec not found: {spec_id}", error="spec not found")

        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if record is None or record.github_number is None:
            return SyncResult(success=False, message=f"Spec {spec_id} is not linked to a GitHub issue", error="not linked")

        try:
            issue = await self.client.get_issue(record.github_number)
        except GitHubClientError as e:
            logger.warning(f"Failed to read issue #{record.github_number}: {e}")
            return SyncResult(success=False, message="Could not read issue", issue_number=record.github_number, error=str(e))

        name = spec_name_from_title(issue.title)
        if name and name != spec.name:
            self.state.update_spec_name(spec_id, name)
            logger.info(f"Renamed spec {spec_id} to '{name}' from issue title")

        if issue.is_closed and spec.phase != SpecPhase.COMPLETED:
            self.state.update_spec_phase(spec_id, SpecPhase.COMPLETED)
            self.documents.update_phase(spec_id, SpecPhase.COMPLETED)
            logger.info(f"Issue #{issue.number} is closed; spec {spec_id} marked completed")

        changes: list[CheckboxChange] = []
        if self.documents.exists(spec_id):
            document = self.documents.read(spec_id)
            updated, changes = merge_checkbox_state(document, issue.body)
            if changes:
                self.documents.write(spec_id, updated)
                logger.info(f"Applied checkbox changes to spec {spec_id}: {format_change_summary(changes)}")

        self.state.upsert_sync_record(
            record.model_copy(update={"sync_status": SyncStatus.SUCCESS, "last_synced_at": datetime.now()})
        )

        return SyncResult(
            success=True,
            message=f"Pulled issue #{issue.number}: {format_change_summary(changes)}",
            issue_number=issue.number,
            checkbox_changes=changes,
        )

    # =========================================================================
    # Recovery
    # =========================================================================

    async def ensure_issue(self, spec_id: str) -> EnsureIssueResult:
        """Verify the linked issue still exists, recreating it if it was deleted.

        A not-found/gone issue clears the stale link and triggers recreation
        plus re-adding to the project board. Any other lookup failure is taken
        to mean the issue still exists, so a flaky network never produces a
        duplicate.

        Raises:
            GitHubClientError: If recreating a deleted issue fails.
        """
        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if record is None or record.github_number is None:
            return EnsureIssueResult(exists=False, reason="not linked")

        try:
            await self.client.get_issue(record.github_number)
            return EnsureIssueResult(exists=True, issue_number=record.github_number)
        except GitHubNotFoundError:
            logger.warning(f"Issue #{record.github_number} for spec {spec_id} no longer exists, recreating")
        except GitHubClientError as e:
            logger.warning(f"Could not verify issue #{record.github_number}, assuming it exists: {e}")
            return EnsureIssueResult(exists=True, issue_number=record.github_number, assumed=True)

        self.state.clear_sync_link(EntityType.SPEC, spec_id)

        spec = self.state.get_spec(spec_id)
        if spec is None:
            return EnsureIssueResult(exists=False, reason="spec not found")

        new_record = await self._create_issue(spec)
        if self._project_board is not None:
            await self._try_add_to_project(spec)

        return EnsureIssueResult(exists=True, issue_number=new_record.github_number, recreated=True)

    # =========================================================================
    # Project board
    # =========================================================================

    async def _try_add_to_project(self, spec: Spec) -> None:
        result = await self.add_to_project(spec.id)
        if not result.success:
            logger.warning(f"Could not add spec {spec.id} to project board: {result.error}")

    async def add_to_project(self, spec_id: str) -> SyncResult:
        """Add the spec's issue to the configured project board."""
        if self._project_board is None:
            return SyncResult(success=False, message="No project board configured", error="no project")

        spec = self.state.get_spec(spec_id)
        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if spec is None or record is None or record.github_number is None:
            return SyncResult(success=False, message=f"Spec {spec_id} is not linked to a GitHub issue", error="not linked")

        try:
            node_id = record.github_node_id or (await self.client.get_issue(record.github_number)).node_id
            item_id = await self._project_board.add_item(node_id)
            project = await self._project_board.get_project()
            self.state.upsert_sync_record(
                SyncRecord(
                    entity_type=EntityType.PROJECT,
                    entity_id=spec_id,
                    github_id=project.id,
                    github_number=project.number,
                    github_node_id=item_id,
                    sync_status=SyncStatus.SUCCESS,
                )
            )
            await self._project_board.set_status(item_id, project_status_for_phase(spec.phase))
        except GitHubClientError as e:
            return SyncResult(success=False, message="Adding to project failed", issue_number=record.github_number, error=str(e))

        return SyncResult(success=True, message=f"Added issue #{record.github_number} to project", issue_number=record.github_number)

    async def update_project_status(self, spec_id: str, phase: SpecPhase) -> bool:
        """Move the spec's project item to the column for ``phase``. False if not on a board."""
        if self._project_board is None:
            return False
        record = self.state.get_sync_record(EntityType.PROJECT, spec_id)
        if record is None or not record.github_node_id:
            return False
        return await self._project_board.set_status(record.github_node_id, project_status_for_phase(phase))

    # =========================================================================
    # Issue lifecycle helpers
    # =========================================================================

    async def comment_on_spec_issue(self, spec_id: str, body: str) -> bool:
        """Comment on the spec's issue. False if the spec is not linked."""
        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if record is None or record.github_number is None:
            return False
        await self.client.add_comment(record.github_number, body)
        return True

    async def close_spec_issue(self, spec_id: str, comment: str | None = None) -> bool:
        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if record is None or record.github_number is None:
            return False
        return await self.client.close_issue(record.github_number, comment=comment)

    # =========================================================================
    # Pull requests
    # =========================================================================

    async def create_pull_request(self, spec_id: str, head: str, base: str | None = None) -> PullRequestResult:
        """Open a PR for a spec branch and remember it on the spec's sync record.

        ``base`` defaults to ``github.default_base_branch``, then the repository's ``main``.
        """
        base = base or self.config.default_base_branch or DEFAULT_PR_BASE
        spec = self.state.get_spec(spec_id)
        if spec is None:
            return PullRequestResult(success=False, error=f"Spec not found: {spec_id}")

        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        body_parts = [spec.description or f"Implements spec {spec.name}."]
        if record is not None and record.github_number is not None:
            body_parts.append(f"Closes #{record.github_number}")
        body_parts.append(f"_Opened by specflow for spec `{spec.id}`._")

        try:
            pr = await self.client.create_pull_request(
                title=spec.name,
                head=head,
                base=base,
                body="\n\n".join(body_parts),
            )
        except GitHubClientError as e:
            logger.warning(f"Failed to open pull request for {head}: {e}")
            return PullRequestResult(success=False, error=str(e))

        base_record = record or SyncRecord(
            entity_type=EntityType.SPEC,
            entity_id=spec_id,
            github_id=self.repo,
            sync_status=SyncStatus.PENDING,
        )
        self.state.upsert_sync_record(base_record.model_copy(update={"pr_number": pr.number, "pr_url": pr.url}))
        self.state.log_activity(spec_id, "github.pr_created", pr.url)
        logger.info(f"Opened pull request #{pr.number}: {pr.url}")

        return PullRequestResult(success=True, url=pr.url, number=pr.number)

    async def cleanup_merged_pull_request(self, spec_id: str, branches: BranchManager) -> CleanupResult:
        """Retire the spec's branch once its pull request has merged."""
        return await PullRequestCleanup(self.client, self.state, branches).cleanup(spec_id)
