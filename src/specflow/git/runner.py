"""Thin subprocess wrapper for invoking git with an argument vector."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 30


class GitError(Exception):
    """Base exception for git operations."""


class GitCommandError(GitError):
    """A git invocation failed, timed out, or git is not installed."""

    def __init__(self, args: list[str], returncode: int | None, stderr: str = "") -> None:
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = self.stderr or f"exit code {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


def run_git(
    args: list[str],
    cwd: Path,
    *,
    check: bool = True,
    timeout: int = DEFAULT_GIT_TIMEOUT,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run ``git <args>`` in ``cwd``.

    Args:
        args: Arguments after ``git``. Never joined into a shell string.
        cwd: Working directory.
        check: Raise GitCommandError on a non-zero exit code.
        timeout: Seconds before the command is abandoned.
        env: Extra environment variables layered over the current environment.

    Returns:
        The completed process with text stdout/stderr.

    Raises:
        GitCommandError: On failure (when ``check``), timeout, or missing git binary.
    """
    full_env = None
    if env:
        full_env = {**os.environ, **env}

    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            cwd=cwd,
            timeout=timeout,
            check=False,
            env=full_env,
        )
    except FileNotFoundError as e:
        raise GitCommandError(args, None, "git executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise GitCommandError(args, None, f"timed out after {timeout}s") from e

    if check and result.returncode != 0:
        logger.debug(f"git {args[0]} exited {result.returncode}: {result.stderr.strip()}")
        raise GitCommandError(args, result.returncode, result.stderr or result.stdout)

    return result


def is_git_repository(cwd: Path) -> bool:
    """True if ``cwd`` is inside a git work tree."""
    try:
        result = run_git(["rev-parse", "--is-inside-work-tree"], cwd, check=False, timeout=10)
    except GitCommandError:
        return False
    return result.returncode == 0 and result.stdout.strip() == "true"
