"""Tests for cleanup after a spec's pull request merged."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import git

from specflow.config import BranchConfig, GitHubConfig
from specflow.core.documents import SpecDocumentStore
from specflow.core.models import EntityType, Spec, SyncRecord, SyncStatus
from specflow.core.state import StateManager
from specflow.git.branches import BranchManager
from specflow.sync.github_client import GitHubClientError, GitHubPullRequest
from specflow.sync.github_sync import GitHubSyncService
from specflow.sync.pr_cleanup import PullRequestCleanup

BRANCH = "feature/spec-3f2b8c1e"
MERGED_AT = datetime(2026, 3, 1, 12, 30, tzinfo=UTC)


def pull_request(merged: bool, number: int = 7) -> GitHubPullRequest:
    return GitHubPullRequest(
        number=number,
        url=f"https://github.com/owner/repo/pull/{number}",
        head=BRANCH,
        base="main",
        merged=merged,
        merged_at=MERGED_AT if merged else None,
    )


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.repo = "owner/repo"
    client.owner = "owner"
    client.get_pull_request = AsyncMock(return_value=pull_request(merged=True))
    return client


@pytest.fixture
def branches(git_repo: Path) -> BranchManager:
    return BranchManager(git_repo, BranchConfig())


@pytest.fixture
def cleanup(mock_client: MagicMock, state: StateManager, branches: BranchManager) -> PullRequestCleanup:
    return PullRequestCleanup(mock_client, state, branches)


@pytest.fixture
def spec(state: StateManager, git_repo: Path) -> Spec:
    """A completed spec with an open pull request from its own branch."""
    spec = state.create_spec("Search")
    git(git_repo, "branch", BRANCH)
    state.set_spec_branch(spec.id, BRANCH)
    state.upsert_sync_record(
        SyncRecord(
            entity_type=EntityType.SPEC,
            entity_id=spec.id,
            github_number=10,
            sync_status=SyncStatus.SUCCESS,
            pr_number=7,
            pr_url="https://github.com/owner/repo/pull/7",
        )
    )
    return spec


class TestCleanup:
    @pytest.mark.asyncio
    async def test_merged_pull_request_retires_branch(
        self, cleanup: PullRequestCleanup, spec: Spec, state: StateManager, git_repo: Path, mock_client: MagicMock
    ) -> None:
        result = await cleanup.cleanup(spec.id)

        assert result.success is True
        assert result.pr_number == 7
        assert result.branch_name == BRANCH
        assert result.local_deleted is True
        assert result.remote_deleted is False
        mock_client.get_pull_request.assert_awaited_once_with(7)

        assert git(git_repo, "branch", "--list", BRANCH) == ""
        record = state.get_sync_record(EntityType.SPEC, spec.id)
        assert record is not None
        assert record.pr_merged_at == MERGED_AT
        assert record.github_number == 10
        refreshed = state.get_spec(spec.id)
        assert refreshed is not None
        assert refreshed.branch_name is None
        assert state.get_activity(spec.id, limit=1)[0][0] == "github.pr_merged"

    @pytest.mark.asyncio
    async def test_unmerged_pull_request_changes_nothing(
        self, cleanup: PullRequestCleanup, spec: Spec, state: StateManager, git_repo: Path, mock_client: MagicMock
    ) -> None:
        mock_client.get_pull_request.return_value = pull_request(merged=False)

        result = await cleanup.cleanup(spec.id)

        assert result.success is False
        assert result.error == "not merged"
        assert "not merged yet" in result.message
        assert git(git_repo, "branch", "--list", BRANCH) != ""
        record = state.get_sync_record(EntityType.SPEC, spec.id)
        assert record is not None
        assert record.pr_merged_at is None

    @pytest.mark.asyncio
    async def test_spec_without_pull_request(
        self, cleanup: PullRequestCleanup, state: StateManager, mock_client: MagicMock
    ) -> None:
        spec = state.create_spec("Draft")

        result = await cleanup.cleanup(spec.id)

        assert result.success is False
        assert result.error == "no pull request"
        mock_client.get_pull_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_spec(self, cleanup: PullRequestCleanup) -> None:
        result = await cleanup.cleanup("missing")
        assert result.success is False
        assert result.error == "not found"

    @pytest.mark.asyncio
    async def test_api_failure_reported(
        self, cleanup: PullRequestCleanup, spec: Spec, git_repo: Path, mock_client: MagicMock
    ) -> None:
        mock_client.get_pull_request.side_effect = GitHubClientError("Resource not found")

        result = await cleanup.cleanup(spec.id)

        assert result.success is False
        assert result.error == "Resource not found"
        assert git(git_repo, "branch", "--list", BRANCH) != ""

    @pytest.mark.asyncio
    async def test_second_run_is_a_noop(
        self, cleanup: PullRequestCleanup, spec: Spec, mock_client: MagicMock
    ) -> None:
        await cleanup.cleanup(spec.id)
        mock_client.get_pull_request.reset_mock()

        result = await cleanup.cleanup(spec.id)

        assert result.success is True
        assert "already cleaned up" in result.message
        mock_client.get_pull_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dirty_branch_leaves_merge_unrecorded(
        self, cleanup: PullRequestCleanup, spec: Spec, state: StateManager, git_repo: Path
    ) -> None:
        git(git_repo, "checkout", "-q", BRANCH)
        (git_repo / "README.md").write_text("unsaved work\n")

        result = await cleanup.cleanup(spec.id)

        assert result.success is False
        assert result.error is not None
        assert "uncommitted" in result.error
        record = state.get_sync_record(EntityType.SPEC, spec.id)
        assert record is not None
        assert record.pr_merged_at is None

    @pytest.mark.asyncio
    async def test_branch_name_falls_back_to_pull_request_head(
        self, cleanup: PullRequestCleanup, spec: Spec, state: StateManager, git_repo: Path
    ) -> None:
        state.set_spec_branch(spec.id, None)

        result = await cleanup.cleanup(spec.id)

        assert result.branch_name == BRANCH
        assert result.local_deleted is True


@pytest.mark.asyncio
async def test_sync_service_delegates_cleanup(
    mock_client: MagicMock, state: StateManager, spec: Spec, branches: BranchManager, git_repo: Path
) -> None:
    service = GitHubSyncService(
        "owner/repo", GitHubConfig(enabled=True), state, SpecDocumentStore(git_repo), client=mock_client
    )

    result = await service.cleanup_merged_pull_request(spec.id, branches)

    assert result.success is True
    assert result.merged_at == MERGED_AT
