"""Automatic commits of spec documents or the whole working tree."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from specflow.core.models import SpecPhase
from specflow.git.runner import GitCommandError, GitError, is_git_repository, run_git
from specflow.git.status import get_git_status

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR = "specflow"


class AutoCommitError(GitError):
    """Staging or committing failed; anything staged has been unstaged again."""


@dataclass
class CommitResult:
    """Outcome of an auto-commit attempt."""

    committed: bool
    message: str = ""
    files: list[str] = field(default_factory=list)
    reason: str | None = None


def phase_commit_message(spec_name: str, phase: SpecPhase) -> str:
    """Commit message used when a spec enters ``phase``."""
    match phase:
        case SpecPhase.REQUIREMENTS:
            return f"feat: complete requirements for {spec_name}"
        case SpecPhase.DESIGN:
            return f"feat: complete design for {spec_name}"
        case SpecPhase.TASKS:
            return f"feat: complete task breakdown for {spec_name}"
        case SpecPhase.IMPLEMENTATION:
            return f"feat: start implementation of {spec_name}"
        case SpecPhase.COMPLETED:
            return f"feat: complete implementation of {spec_name}"


def author_string(name: str) -> str:
    return f"{name} <{name}@users.noreply.local>"


def filter_ignored(project_root: Path, paths: list[str]) -> list[str]:
    """Drop paths matched by .gitignore (``git check-ignore``)."""
    if not paths:
        return []

    result = run_git(["check-ignore", "--", *paths], project_root, check=False, timeout=10)
    # Exit 1 means nothing is ignored; 128 is a fatal error
    if result.returncode == 128:
        raise GitCommandError(["check-ignore", *paths], result.returncode, result.stderr)

    ignored = {line.strip() for line in result.stdout.splitlines() if line.strip()}
    return [p for p in paths if p not in ignored]


def _index_snapshot(project_root: Path) -> str | None:
    """Tree id of the current index, or None when it cannot be written (e.g. unmerged paths)."""
    result = run_git(["write-tree"], project_root, check=False, timeout=10)
    return result.stdout.strip() if result.returncode == 0 else None


def _restore_index(project_root: Path, snapshot: str | None, pathspec: list[str]) -> None:
    if snapshot is not None:
        run_git(["read-tree", snapshot], project_root, check=False)
    else:
        run_git(["reset", "-q", "--", *pathspec], project_root, check=False)


def _commit(project_root: Path, pathspec: list[str], message: str, author: str) -> CommitResult:
    """Stage ``pathspec`` (everything when empty) and commit it.

    On failure the index goes back to what it was before staging, so entries
    the user had staged themselves stay staged.
    """
    add_args = ["--", *pathspec] if pathspec else ["-A"]
    limit = ["--", *pathspec] if pathspec else []

    try:
        snapshot = _index_snapshot(project_root)
    except GitCommandError as e:
        raise AutoCommitError(str(e)) from e

    try:
        run_git(["add", *add_args], project_root)

        staged = run_git(["diff", "--cached", "--name-only", *limit], project_root)
        files = [line for line in staged.stdout.splitlines() if line]
        if not files:
            logger.debug("Nothing staged after add, skipping commit")
            return CommitResult(committed=False, message=message, reason="nothing to commit")

        run_git(["commit", "-m", message, f"--author={author_string(author)}", *limit], project_root)
    except GitCommandError as e:
        logger.warning(f"Auto-commit failed: {e}")
        try:
            _restore_index(project_root, snapshot, pathspec)
        except GitCommandError as reset_error:
            logger.warning(f"Could not unstage after failed commit: {reset_error}")
        raise AutoCommitError(str(e)) from e

    logger.info(f"Auto-commit successful: {message}")
    return CommitResult(committed=True, message=message, files=files)


def commit_working_tree(project_root: Path, message: str, author: str = DEFAULT_AUTHOR) -> CommitResult:
    """Stage everything (``git add -A``) and commit.

    Returns:
        CommitResult; ``committed`` is False when not a repo or the tree is clean.

    Raises:
        AutoCommitError: If staging or committing fails.
    """
    if not is_git_repository(project_root):
        return CommitResult(committed=False, message=message, reason="not a git repository")

    status = get_git_status(project_root)
    if status is None or not status.has_changes:
        logger.debug("No changes to commit, skipping")
        return CommitResult(committed=False, message=message, reason="no changes")

    return _commit(project_root, [], message, author)


def commit_paths(
    project_root: Path,
    paths: list[Path],
    message: str,
    author: str = DEFAULT_AUTHOR,
) -> CommitResult:
    """Commit only ``paths`` (relative to ``project_root``), skipping ignored ones.

    Raises:
        AutoCommitError: If staging or committing fails.
    """
    if not is_git_repository(project_root):
        return CommitResult(committed=False, message=message, reason="not a git repository")

    existing = [p.as_posix() for p in paths if (project_root / p).exists()]
    try:
        candidates = filter_ignored(project_root, existing)
    except GitCommandError as e:
        raise AutoCommitError(str(e)) from e

    if not candidates:
        logger.debug(f"No committable paths among {existing}")
        return CommitResult(committed=False, message=message, reason="paths missing or ignored")

    return _commit(project_root, candidates, message, author)
