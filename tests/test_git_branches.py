"""Tests for branch management against real repositories."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import git

from specflow.config import BranchConfig
from specflow.git.branches import (
    BranchCleanupError,
    BranchManager,
    BranchNotFoundError,
    BranchPushError,
    BranchVerificationError,
    ProtectedBranchError,
)
from specflow.git.naming import BranchCategory, InvalidSpecIdError, UnsafeBranchNameError

SPEC_ID = "3f2b8c1e-1111-4222-8333-444455556666"


@pytest.fixture
def manager(git_repo: Path) -> BranchManager:
    return BranchManager(git_repo, BranchConfig())


class TestProtection:
    """Protected branch policy."""

    def test_default_without_remote(self, manager: BranchManager) -> None:
        """Without origin/HEAD, main and the base branch are protected."""
        assert manager.protected_branches() == ["main", "develop"]
        assert manager.is_protected_branch("main") is True
        assert manager.is_protected_branch("feature/x") is False

    def test_configured_list_wins(self, git_repo: Path) -> None:
        manager = BranchManager(git_repo, BranchConfig(protected=["trunk"]))
        assert manager.protected_branches() == ["trunk"]
        assert manager.is_protected_branch("main") is False

    def test_remote_default_branch(self, git_repo: Path, tmp_path: Path) -> None:
        """origin/HEAD names the remote default branch."""
        remote = tmp_path / "remote.git"
        git(tmp_path, "init", "-q", "--bare", str(remote))
        git(git_repo, "remote", "add", "origin", str(remote))
        git(git_repo, "branch", "trunk")
        git(git_repo, "push", "-q", "origin", "trunk")
        git(git_repo, "remote", "set-head", "origin", "trunk")

        manager = BranchManager(git_repo, BranchConfig())
        assert manager.protected_branches() == ["trunk", "develop"]


class TestResolveBaseBranch:
    def test_missing_base_falls_back_to_current(self, manager: BranchManager) -> None:
        """develop does not exist, so the current branch is used."""
        assert manager.resolve_base_branch(BranchCategory.FEATURE) == "main"

    def test_hotfix_uses_release_branch(self, git_repo: Path) -> None:
        git(git_repo, "branch", "develop")
        git(git_repo, "checkout", "-q", "develop")
        manager = BranchManager(git_repo, BranchConfig())

        assert manager.resolve_base_branch(BranchCategory.HOTFIX) == "main"
        assert manager.resolve_base_branch(BranchCategory.FEATURE) == "develop"


class TestCreateSpecBranch:
    """Creating spec branches."""

    def test_from_protected_branch(self, manager: BranchManager, git_repo: Path) -> None:
        """Working off main gives a feature/ branch and checks it out."""
        result = manager.create_spec_branch(SPEC_ID, "Add search")

        assert result.created is True
        assert result.existed is False
        assert result.branch_name == "feature/spec-3f2b8c1e"
        assert result.base_branch == "main"
        assert git(git_repo, "branch", "--show-current") == "feature/spec-3f2b8c1e"
        assert manager.current_branch() == "feature/spec-3f2b8c1e"

    def test_from_feature_branch(self, manager: BranchManager, git_repo: Path) -> None:
        git(git_repo, "checkout", "-q", "-b", "work")
        manager.clear_cache()

        result = manager.create_spec_branch(SPEC_ID, "Add search")
        assert result.branch_name == "spec/3f2b8c1e"

    def test_existing_branch_is_checked_out(self, manager: BranchManager, git_repo: Path) -> None:
        """Repeating creation reuses the branch."""
        git(git_repo, "branch", "feature/spec-3f2b8c1e")

        result = manager.create_spec_branch(SPEC_ID, "Add search")

        assert result.created is True
        assert result.existed is True
        assert git(git_repo, "branch", "--show-current") == "feature/spec-3f2b8c1e"

    def test_dirty_tree_committed_before_leaving_for_other_base(self, manager: BranchManager, git_repo: Path) -> None:
        """Uncommitted edits would block checkout of develop, so they are committed on main first."""
        git(git_repo, "branch", "develop")
        (git_repo / "README.md").write_text("# Test repo\n\nmain only\n")
        git(git_repo, "commit", "-q", "-am", "main change")
        (git_repo / "README.md").write_text("# Test repo\n\nmain only, edited\n")

        result = manager.create_spec_branch(SPEC_ID, "Add search")

        assert result.base_branch == "develop"
        assert git(git_repo, "branch", "--show-current") == "feature/spec-3f2b8c1e"
        assert git(git_repo, "log", "-1", "--format=%s", "main") == (
            "chore: auto-commit before switching to branch feature/spec-3f2b8c1e"
        )
        assert (git_repo / "README.md").read_text() == "# Test repo\n"
        assert git(git_repo, "status", "--porcelain") == ""

    def test_dirty_tree_carried_when_base_is_head(self, manager: BranchManager, git_repo: Path) -> None:
        """Branching from the current branch keeps edits uncommitted on the new branch."""
        (git_repo / "README.md").write_text("edited\n")

        manager.create_spec_branch(SPEC_ID, "Add search")

        assert git(git_repo, "status", "--porcelain") == "M README.md"
        assert git(git_repo, "log", "-1", "--format=%s") == "initial commit"

    def test_invalid_spec_id(self, manager: BranchManager, git_repo: Path) -> None:
        with pytest.raises(InvalidSpecIdError):
            manager.create_spec_branch("not-a-uuid", "x")
        assert git(git_repo, "branch", "--show-current") == "main"

    def test_not_a_repository(self, tmp_path: Path) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()
        result = BranchManager(plain, BranchConfig()).create_spec_branch(SPEC_ID, "x")
        assert result.created is False
        assert result.reason is not None

    def test_verification_failure_restores_original(self, manager: BranchManager, git_repo: Path) -> None:
        """If HEAD is not on the new branch afterwards, the original branch is restored."""
        with patch.object(BranchManager, "current_branch", side_effect=["main", "main", "elsewhere"]):
            with pytest.raises(BranchVerificationError):
                manager.create_spec_branch(SPEC_ID, "Add search")

        assert git(git_repo, "branch", "--show-current") == "main"


class TestSwitchBranch:
    """Switching to existing branches."""

    def test_refuses_protected(self, manager: BranchManager, git_repo: Path) -> None:
        git(git_repo, "checkout", "-q", "-b", "work")
        manager.clear_cache()

        with pytest.raises(ProtectedBranchError):
            manager.switch_branch("main")
        assert git(git_repo, "branch", "--show-current") == "work"

    def test_refuses_missing(self, manager: BranchManager) -> None:
        with pytest.raises(BranchNotFoundError):
            manager.switch_branch("does-not-exist")

    def test_refuses_unsafe_name(self, manager: BranchManager) -> None:
        with pytest.raises(UnsafeBranchNameError):
            manager.switch_branch("--orphan")

    def test_already_on_target(self, manager: BranchManager, git_repo: Path) -> None:
        git(git_repo, "checkout", "-q", "-b", "work")
        manager.clear_cache()

        result = manager.switch_branch("work")
        assert result.switched is False

    def test_auto_commits_before_switch(self, manager: BranchManager, git_repo: Path) -> None:
        """Uncommitted work stays on the branch it was made on."""
        git(git_repo, "branch", "target")
        (git_repo / "wip.txt").write_text("work in progress\n")

        result = manager.switch_branch("target")

        assert result.switched is True
        assert result.auto_committed is True
        assert git(git_repo, "branch", "--show-current") == "target"
        assert not (git_repo / "wip.txt").exists()
        assert "auto-commit before switching to branch target" in git(git_repo, "log", "-1", "--format=%s", "main")


class TestRemote:
    def test_push_failure_raises(self, manager: BranchManager) -> None:
        """No origin configured: the push error surfaces as BranchPushError."""
        with pytest.raises(BranchPushError):
            manager.ensure_remote_branch("main")

    def test_push_to_bare_remote(self, manager: BranchManager, git_repo: Path, tmp_path: Path) -> None:
        remote = tmp_path / "remote.git"
        git(tmp_path, "init", "-q", "--bare", str(remote))
        git(git_repo, "remote", "add", "origin", str(remote))

        assert manager.ensure_remote_branch("main") is True
        assert manager.ensure_remote_branch("main") is False


class TestDeleteMergedBranch:
    """Retiring a spec branch after its pull request merged."""

    BRANCH = "feature/spec-3f2b8c1e"

    @pytest.fixture
    def remote(self, git_repo: Path, tmp_path: Path) -> Path:
        remote = tmp_path / "remote.git"
        git(tmp_path, "init", "-q", "--bare", str(remote))
        git(git_repo, "remote", "add", "origin", str(remote))
        return remote

    def test_deletes_checked_out_branch_locally_and_remotely(
        self, manager: BranchManager, git_repo: Path, remote: Path
    ) -> None:
        git(git_repo, "checkout", "-q", "-b", self.BRANCH)
        git(git_repo, "push", "-q", "origin", self.BRANCH)

        result = manager.delete_merged_branch(self.BRANCH)

        assert result.switched_to == "main"
        assert result.local_deleted is True
        assert result.remote_deleted is True
        assert git(git_repo, "branch", "--show-current") == "main"
        assert git(git_repo, "branch", "--list", self.BRANCH) == ""
        assert git(remote, "branch", "--list", self.BRANCH) == ""

    def test_without_remote_only_local_deleted(self, manager: BranchManager, git_repo: Path) -> None:
        git(git_repo, "branch", self.BRANCH)

        result = manager.delete_merged_branch(self.BRANCH)

        assert result.switched_to is None
        assert result.local_deleted is True
        assert result.remote_deleted is False

    def test_remote_already_deleted(self, manager: BranchManager, git_repo: Path, remote: Path) -> None:
        """GitHub removed the head branch on merge; the local branch still goes."""
        git(git_repo, "branch", self.BRANCH)

        result = manager.delete_merged_branch(self.BRANCH)

        assert result.local_deleted is True
        assert result.remote_deleted is False

    def test_local_already_deleted(self, manager: BranchManager, git_repo: Path, remote: Path) -> None:
        git(git_repo, "branch", self.BRANCH)
        git(git_repo, "push", "-q", "origin", self.BRANCH)
        git(git_repo, "branch", "-D", self.BRANCH)

        result = manager.delete_merged_branch(self.BRANCH)

        assert result.local_deleted is False
        assert result.remote_deleted is True

    def test_refuses_protected(self, manager: BranchManager, git_repo: Path) -> None:
        git(git_repo, "branch", "develop")

        with pytest.raises(BranchCleanupError, match="protected"):
            manager.delete_merged_branch("develop")

        assert git(git_repo, "branch", "--list", "develop") != ""

    def test_refuses_dirty_checked_out_branch(self, manager: BranchManager, git_repo: Path) -> None:
        git(git_repo, "checkout", "-q", "-b", self.BRANCH)
        (git_repo / "README.md").write_text("unsaved work\n")

        with pytest.raises(BranchCleanupError, match="uncommitted"):
            manager.delete_merged_branch(self.BRANCH)

        assert git(git_repo, "branch", "--show-current") == self.BRANCH
        assert (git_repo / "README.md").read_text() == "unsaved work\n"
