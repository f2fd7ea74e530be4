"""Post-merge cleanup: once a spec's pull request merges, retire its branch.

The merge time is recorded on the spec's sync record and the spec loses its
``branch_name``, so later phase changes do not try to reuse the old branch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from specflow.core.models import EntityType
from specflow.git.runner import GitError
from specflow.sync.github_client import GitHubClientError

if TYPE_CHECKING:
    from specflow.core.state import StateManager
    from specflow.git.branches import BranchManager
    from specflow.sync.github_client import GitHubClient

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """Result of cleaning up after a merged pull request."""

    success: bool
    message: str
    pr_number: int | None = None
    branch_name: str | None = None
    merged_at: datetime | None = None
    local_deleted: bool = False
    remote_deleted: bool = False
    error: str | None = None


class PullRequestCleanup:
    """Deletes the branch of a spec whose pull request has merged."""

    def __init__(self, client: GitHubClient, state: StateManager, branches: BranchManager) -> None:
        self.client = client
        self.state = state
        self.branches = branches

    async def cleanup(self, spec_id: str) -> CleanupResult:
        """Verify the spec's pull request merged, then delete its branch and record the merge.

        Nothing is deleted or recorded unless GitHub reports the pull request as
        merged. A branch git refuses to delete is only logged and reflected in the
        result; a branch that must not be deleted (protected, or checked out with
        uncommitted changes) leaves the merge unrecorded so cleanup can be retried.
        """
        spec = self.state.get_spec(spec_id)
        if spec is None:
            return CleanupResult(success=False, message=f"Spec not found: {spec_id}", error="not found")

        record = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if record is None or record.pr_number is None:
            return CleanupResult(
                success=False,
                message=f"Spec {spec_id} has no pull request; complete the spec first",
                error="no pull request",
            )
        if record.pr_merged_at is not None:
            return CleanupResult(
                success=True,
                message=f"Pull request #{record.pr_number} already cleaned up",
                pr_number=record.pr_number,
                merged_at=record.pr_merged_at,
            )

        try:
            pr = await self.client.get_pull_request(record.pr_number)
        except GitHubClientError as e:
            logger.warning(f"Could not fetch pull request #{record.pr_number}: {e}")
            return CleanupResult(
                success=False,
                message=f"Could not fetch pull request #{record.pr_number}",
                pr_number=record.pr_number,
                error=str(e),
            )

        if not pr.merged:
            return CleanupResult(
                success=False,
                message=f"Pull request #{pr.number} is not merged yet; merge it on GitHub and retry",
                pr_number=pr.number,
                error="not merged",
            )

        branch = spec.branch_name or pr.head
        merged_at = pr.merged_at or datetime.now()
        result = CleanupResult(
            success=True,
            message=f"Cleaned up after pull request #{pr.number}",
            pr_number=pr.number,
            branch_name=branch,
            merged_at=merged_at,
        )

        try:
            deletion = self.branches.delete_merged_branch(branch)
        except (GitError, ValueError) as e:
            logger.warning(f"Branch {branch} not deleted: {e}")
            return CleanupResult(
                success=False,
                message=f"Branch {branch} not deleted",
                pr_number=pr.number,
                branch_name=branch,
                error=str(e),
            )
        result.local_deleted = deletion.local_deleted
        result.remote_deleted = deletion.remote_deleted

        self.state.mark_pr_merged(spec_id, merged_at)
        self.state.log_activity(spec_id, "github.pr_merged", f"#{pr.number} {branch}")
        logger.info(f"Pull request #{pr.number} merged, retired branch {branch}")
        return result
