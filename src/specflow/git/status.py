"""Working tree status parsing and repository introspection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from specflow.git.runner import GitCommandError, run_git

GITHUB_REMOTE_PATTERN = re.compile(r"github\.com[:/]([^/]+)/([^/]+?)(?:\.git)?/?$")


@dataclass
class GitStatusResult:
    """Result of parsing git status output.

    Attributes:
        untracked: Untracked file paths
        modified: Modified, staged, renamed or deleted tracked paths
    """

    untracked: list[str]
    modified: list[str]

    @property
    def is_clean(self) -> bool:
        """No tracked changes (untracked files are ignored)."""
        return len(self.modified) == 0

    @property
    def has_changes(self) -> bool:
        """Anything at all that a commit with ``add -A`` would pick up."""
        return bool(self.modified or self.untracked)


def parse_git_status_output(output: str) -> GitStatusResult:
    """Parse ``git status --porcelain`` output.

    Each line is ``XY path``; ``??`` marks untracked files, renames use
    ``old -> new`` and are reported under the new path.
    """
    untracked: list[str] = []
    modified: list[str] = []

    for line in output.splitlines():
        if not line or len(line) < 3:
            continue

        prefix = line[:2]
        file_path = line[3:]

        if " -> " in file_path:
            file_path = file_path.split(" -> ", 1)[1]

        if prefix == "??":
            untracked.append(file_path)
        else:
            modified.append(file_path)

    return GitStatusResult(untracked=untracked, modified=modified)


def get_git_status(project_root: Path) -> GitStatusResult | None:
    """Get the working tree status.

    Returns:
        GitStatusResult, or None when git fails (not a repo, git missing, timeout).
    """
    try:
        result = run_git(["status", "--porcelain"], project_root, check=False, timeout=10)
    except GitCommandError:
        return None

    if result.returncode != 0:
        return None

    return parse_git_status_output(result.stdout)


def has_uncommitted_changes(project_root: Path) -> bool:
    """True if the tree has tracked or untracked changes. Git failures count as clean."""
    status = get_git_status(project_root)
    return status is not None and status.has_changes


def parse_github_remote(url: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from an ssh or https GitHub remote URL."""
    match = GITHUB_REMOTE_PATTERN.search(url.strip())
    if match is None:
        return None
    return match.group(1), match.group(2)


def detect_github_repo(project_root: Path) -> tuple[str, str] | None:
    """Detect (owner, repo) from the ``origin`` remote."""
    try:
        result = run_git(["remote", "get-url", "origin"], project_root, check=False, timeout=5)
    except GitCommandError:
        return None

    if result.returncode != 0:
        return None
    return parse_github_remote(result.stdout)
