"""Branch lifecycle: current branch, protection policy, creation, switching, remote push.

All git calls go through ``run_git`` with argument vectors; names coming from
users are validated before they reach git at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from specflow.git.commits import commit_working_tree
from specflow.git.naming import (
    BranchCategory,
    generate_branch_name,
    infer_category,
    validate_branch_name,
    validate_spec_id,
)
from specflow.git.runner import GitCommandError, GitError, is_git_repository, run_git
from specflow.git.status import has_uncommitted_changes

if TYPE_CHECKING:
    from specflow.config import BranchConfig

logger = logging.getLogger(__name__)

FALLBACK_PROTECTED_BRANCH = "main"
SWITCH_COMMIT_TEMPLATE = "chore: auto-commit before switching to branch {branch}"


class ProtectedBranchError(GitError):
    """Refused to move onto a protected branch."""


class BranchNotFoundError(GitError):
    """Target branch does not exist locally."""


class BranchSwitchError(GitError):
    """``git checkout`` failed."""


class BranchVerificationError(GitError):
    """After checkout the working tree is on a different branch than requested."""


class BranchPushError(GitError):
    """Pushing a branch to the remote failed."""


class BranchCleanupError(GitError):
    """A merged branch cannot be deleted safely."""


@dataclass
class BranchCreationResult:
    """Outcome of create_spec_branch."""

    created: bool
    branch_name: str | None = None
    base_branch: str | None = None
    existed: bool = False
    reason: str | None = None


@dataclass
class BranchDeletionResult:
    """Outcome of delete_merged_branch."""

    branch_name: str
    local_deleted: bool = False
    remote_deleted: bool = False
    switched_to: str | None = None


@dataclass
class SwitchResult:
    """Outcome of switch_branch."""

    switched: bool
    branch_name: str
    auto_committed: bool = False
    reason: str | None = None


class BranchManager:
    """Branch operations for one working tree.

    The current branch is cached on the instance; every operation that moves
    HEAD clears the cache.
    """

    def __init__(self, project_root: Path, config: BranchConfig, commit_author: str = "specflow") -> None:
        self.project_root = project_root
        self.config = config
        self.commit_author = commit_author
        self._current_branch: str | None = None

    # =========================================================================
    # Current branch
    # =========================================================================

    def current_branch(self) -> str | None:
        """Name of the checked-out branch, or None when detached / not a repo."""
        if self._current_branch is None:
            try:
                result = run_git(["branch", "--show-current"], self.project_root, timeout=10)
            except GitCommandError as e:
                logger.debug(f"Could not read current branch: {e}")
                return None
            self._current_branch = result.stdout.strip() or None
        return self._current_branch

    def clear_cache(self) -> None:
        self._current_branch = None

    def branch_exists(self, name: str) -> bool:
        result = run_git(
            ["rev-parse", "--verify", "--quiet", f"refs/heads/{name}"],
            self.project_root,
            check=False,
            timeout=10,
        )
        return result.returncode == 0

    # =========================================================================
    # Protection policy
    # =========================================================================

    def protected_branches(self) -> list[str]:
        """Protected branch names.

        The configured list wins. Without one, the remote default branch plus the configured base
        branch are protected; ``main`` if the remote default cannot be detected.
        """
        if self.config.protected is not None:
            return list(self.config.protected)

        detected = self._detect_remote_default_branch()
        protected = [detected or FALLBACK_PROTECTED_BRANCH]
        if self.config.base_branch not in protected:
            protected.append(self.config.base_branch)
        return protected

    def is_protected_branch(self, name: str) -> bool:
        return name in self.protected_branches()

    def _detect_remote_default_branch(self) -> str | None:
        try:
            result = run_git(
                ["symbolic-ref", "--short", "refs/remotes/origin/HEAD"],
                self.project_root,
                check=False,
                timeout=10,
            )
        except GitCommandError:
            return None

        if result.returncode != 0:
            return None
        # "origin/main" -> "main"
        ref = result.stdout.strip()
        return ref.split("/", 1)[1] if "/" in ref else ref or None

    def resolve_base_branch(self, category: BranchCategory) -> str:
        """Branch new spec branches are cut from."""
        match category:
            case BranchCategory.HOTFIX:
                base = self.config.release_branch
            case (
                BranchCategory.FIX
                | BranchCategory.REFACTOR
                | BranchCategory.DOCS
                | BranchCategory.CHORE
                | BranchCategory.FEATURE
            ):
                base = self.config.base_branch

        if self.branch_exists(base):
            return base

        current = self.current_branch()
        logger.warning(f"Base branch '{base}' does not exist locally, using '{current}'")
        return current or base

    # =========================================================================
    # Creation
    # =========================================================================

    def create_spec_branch(self, spec_id: str, spec_name: str, slug: str | None = None) -> BranchCreationResult:
        """Create (or check out) the working branch for a spec.

        Args:
            spec_id: The spec UUID.
            spec_name: Used to infer the change category (hotfix specs branch from the release branch).
            slug: Optional suffix for the branch name.

        Returns:
            BranchCreationResult. ``created`` is False with a reason outside a git repository.

        Raises:
            InvalidSpecIdError: If ``spec_id`` is not a UUID.
            AutoCommitError: If a dirty tree cannot be committed before leaving HEAD.
            GitCommandError: If checkout fails.
            BranchVerificationError: If HEAD is not on the new branch afterwards.
        """
        validate_spec_id(spec_id)

        if not is_git_repository(self.project_root):
            return BranchCreationResult(created=False, reason="Not a git repository; branch not created")

        original = self.current_branch()
        from_protected = original is not None and self.is_protected_branch(original)
        branch_name = generate_branch_name(spec_id, from_protected=from_protected, slug=slug)
        validate_branch_name(branch_name)

        if self.branch_exists(branch_name):
            logger.info(f"Branch {branch_name} already exists, checking it out")
            self._commit_before_leaving(branch_name)
            run_git(["checkout", branch_name], self.project_root)
            self.clear_cache()
            self._verify_on(branch_name, restore=original)
            return BranchCreationResult(created=True, branch_name=branch_name, existed=True)

        base = self.resolve_base_branch(infer_category(spec_name))
        if base != original:
            self._commit_before_leaving(branch_name)
        run_git(["checkout", "-b", branch_name, base], self.project_root)
        self.clear_cache()
        self._verify_on(branch_name, restore=original)

        logger.info(f"Created branch {branch_name} from {base}")
        return BranchCreationResult(created=True, branch_name=branch_name, base_branch=base)

    def _commit_before_leaving(self, target: str) -> bool:
        """Commit a dirty tree on the current branch so checkout cannot refuse or carry it.

        Raises:
            AutoCommitError: If the commit fails.
        """
        if not has_uncommitted_changes(self.project_root):
            return False
        message = SWITCH_COMMIT_TEMPLATE.format(branch=target)
        return commit_working_tree(self.project_root, message, self.commit_author).committed

    def _verify_on(self, expected: str, restore: str | None) -> None:
        actual = self.current_branch()
        if actual == expected:
            return

        if restore:
            run_git(["checkout", restore], self.project_root, check=False)
            self.clear_cache()
        raise BranchVerificationError(f"Expected to be on '{expected}' but HEAD is on '{actual}'")

    # =========================================================================
    # Switching
    # =========================================================================

    def switch_branch(self, target: str) -> SwitchResult:
        """Check out an existing, non-protected branch.

        Uncommitted changes are committed first so nothing is carried across.

        Raises:
            UnsafeBranchNameError: For names that fail validation (before any git call).
            ProtectedBranchError: If ``target`` is protected.
            BranchNotFoundError: If ``target`` does not exist.
            AutoCommitError: If the pre-switch commit fails; nothing is switched.
            BranchSwitchError: If checkout fails.
            BranchVerificationError: If HEAD ends up elsewhere.
        """
        validate_branch_name(target)

        if self.is_protected_branch(target):
            raise ProtectedBranchError(f"Refusing to switch to protected branch '{target}'")

        if not self.branch_exists(target):
            raise BranchNotFoundError(f"Branch '{target}' does not exist")

        if self.current_branch() == target:
            return SwitchResult(switched=False, branch_name=target, reason="already on target")

        auto_committed = self._commit_before_leaving(target)

        try:
            run_git(["checkout", target], self.project_root)
        except GitCommandError as e:
            raise BranchSwitchError(f"Failed to switch to '{target}': {e.stderr}") from e
        finally:
            self.clear_cache()

        self._verify_on(target, restore=None)
        logger.info(f"Switched to branch {target}")
        return SwitchResult(switched=True, branch_name=target, auto_committed=auto_committed)

    # =========================================================================
    # Remote
    # =========================================================================

    def has_origin_remote(self) -> bool:
        try:
            result = run_git(["remote", "get-url", "origin"], self.project_root, check=False, timeout=10)
        except GitCommandError:
            return False
        return result.returncode == 0

    def remote_branch_exists(self, name: str) -> bool:
        result = run_git(["ls-remote", "--heads", "origin", name], self.project_root, timeout=30)
        return bool(result.stdout.strip())

    def ensure_remote_branch(self, name: str) -> bool:
        """Push ``name`` to origin unless it is already there.

        Returns:
            True if a push happened, False if the branch was already remote.

        Raises:
            BranchPushError: If the remote query or push fails.
        """
        validate_branch_name(name)

        try:
            if self.remote_branch_exists(name):
                return False
            run_git(
                ["push", "-u", "origin", name],
                self.project_root,
                timeout=120,
                env={"GIT_TERMINAL_PROMPT": "0"},
            )
        except GitCommandError as e:
            raise BranchPushError(f"Failed to push '{name}' to origin: {e.stderr or e}") from e

        logger.info(f"Pushed {name} to origin")
        return True


    # =========================================================================
    # Cleanup
    # =========================================================================

    def delete_merged_branch(self, name: str) -> BranchDeletionResult:
        """Delete a spec branch locally and on origin after its pull request merged.

        When ``name`` is checked out, HEAD moves to the base branch first. A branch
        that is already gone (locally or remotely) is not an error; the result
        records what was actually deleted.

        Raises:
            UnsafeBranchNameError: For names that fail validation.
            BranchCleanupError: If ``name`` is protected, or is checked out with uncommitted changes.
            BranchSwitchError: If leaving ``name`` fails.
        """
        validate_branch_name(name)

        if self.is_protected_branch(name):
            raise BranchCleanupError(f"Refusing to delete protected branch '{name}'")

        result = BranchDeletionResult(branch_name=name)
        if self.current_branch() == name:
            result.switched_to = self._leave_merged_branch(name)

        if self.branch_exists(name):
            deleted = run_git(["branch", "-D", name], self.project_root, check=False, timeout=10)
            if deleted.returncode == 0:
                result.local_deleted = True
                logger.info(f"Deleted local branch {name}")
            else:
                logger.warning(f"Could not delete local branch {name}: {deleted.stderr.strip()}")
        else:
            logger.info(f"Local branch {name} already deleted")

        if not self.has_origin_remote():
            logger.debug(f"No origin remote, {name} has no remote branch to delete")
            return result

        try:
            run_git(
                ["push", "origin", "--delete", name],
                self.project_root,
                timeout=120,
                env={"GIT_TERMINAL_PROMPT": "0"},
            )
        except GitCommandError as e:
            # GitHub may already have deleted the head branch on merge
            logger.warning(f"Could not delete remote branch {name}: {e.stderr or e}")
        else:
            result.remote_deleted = True
            logger.info(f"Deleted remote branch {name}")
        return result

    def _leave_merged_branch(self, name: str) -> str:
        if has_uncommitted_changes(self.project_root):
            raise BranchCleanupError(f"Branch '{name}' has uncommitted changes; commit or stash them first")

        target = self.resolve_base_branch(BranchCategory.FEATURE)
        if target == name:
            target = self._detect_remote_default_branch() or FALLBACK_PROTECTED_BRANCH
        try:
            run_git(["checkout", target], self.project_root)
        except GitCommandError as e:
            raise BranchSwitchError(f"Failed to leave '{name}' for '{target}': {e.stderr}") from e
        finally:
            self.clear_cache()

        self._verify_on(target, restore=None)
        logger.info(f"Switched from merged branch {name} to {target}")
        return target
