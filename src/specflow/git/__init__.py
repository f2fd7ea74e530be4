"""Git integration: branch lifecycle, naming, status and auto-commits."""

from specflow.git.branches import (
    BranchCreationResult,
    BranchManager,
    BranchNotFoundError,
    BranchPushError,
    BranchSwitchError,
    BranchVerificationError,
    ProtectedBranchError,
    SwitchResult,
)
from specflow.git.commits import AutoCommitError, CommitResult, commit_paths, commit_working_tree
from specflow.git.naming import (
    BranchCategory,
    InvalidSpecIdError,
    UnsafeBranchNameError,
    generate_branch_name,
    sanitize_slug,
)
from specflow.git.runner import GitCommandError, GitError, run_git

__all__ = [
    "AutoCommitError",
    "BranchCategory",
    "BranchCreationResult",
    "BranchManager",
    "BranchNotFoundError",
    "BranchPushError",
    "BranchSwitchError",
    "BranchVerificationError",
    "CommitResult",
    "GitCommandError",
    "GitError",
    "InvalidSpecIdError",
    "ProtectedBranchError",
    "SwitchResult",
    "UnsafeBranchNameError",
    "commit_paths",
    "commit_working_tree",
    "generate_branch_name",
    "run_git",
    "sanitize_slug",
]
