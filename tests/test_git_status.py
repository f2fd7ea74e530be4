"""Tests for git status parsing and repository introspection."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from specflow.git.runner import GitCommandError, is_git_repository, run_git
from specflow.git.status import (
    GitStatusResult,
    detect_github_repo,
    get_git_status,
    has_uncommitted_changes,
    parse_git_status_output,
    parse_github_remote,
)


class TestParseGitStatusOutput:
    """Tests for parse_git_status_output function."""

    def test_empty_output_returns_clean(self) -> None:
        """Empty output indicates clean working directory."""
        result = parse_git_status_output("")
        assert result.untracked == []
        assert result.modified == []
        assert result.is_clean is True
        assert result.has_changes is False

    def test_untracked_files_only(self) -> None:
        """Untracked files do not make the tree dirty, but are changes."""
        output = """\
?? notes/test.md
?? temp.txt
"""
        result = parse_git_status_output(output)
        assert result.untracked == ["notes/test.md", "temp.txt"]
        assert result.modified == []
        assert result.is_clean is True
        assert result.has_changes is True

    def test_renamed_file(self) -> None:
        """Renamed files show the new path."""
        result = parse_git_status_output("R  old_name.py -> new_name.py")
        assert result.modified == ["new_name.py"]

    def test_mixed_state(self) -> None:
        """Mix of untracked, modified, and staged files."""
        output = """\
?? scratch.txt
 M src/module.py
M  staged.py
A  new_feature.py
D  removed.py
"""
        result = parse_git_status_output(output)

        assert result.untracked == ["scratch.txt"]
        assert set(result.modified) == {"src/module.py", "staged.py", "new_feature.py", "removed.py"}
        assert result.is_clean is False

    def test_short_lines_ignored(self) -> None:
        """Lines too short to contain status are ignored."""
        result = parse_git_status_output("X\n\nAB")
        assert result.has_changes is False


class TestGitStatusResult:
    """Tests for GitStatusResult dataclass properties."""

    def test_has_changes_with_modified(self) -> None:
        assert GitStatusResult(untracked=[], modified=["a.py"]).has_changes is True

    def test_no_changes(self) -> None:
        assert GitStatusResult(untracked=[], modified=[]).has_changes is False


class TestGetGitStatus:
    """Tests for get_git_status function with mocked subprocess."""

    @patch("subprocess.run")
    def test_returns_parsed_result_on_success(self, mock_run: MagicMock) -> None:
        """Successful git status returns parsed result."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["git", "status", "--porcelain"],
            returncode=0,
            stdout="?? untracked.txt\n M modified.py\n",
            stderr="",
        )

        result = get_git_status(Path("."))

        assert result is not None
        assert result.untracked == ["untracked.txt"]
        assert result.modified == ["modified.py"]
        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == ["git", "status", "--porcelain"]

    @patch("subprocess.run")
    def test_returns_none_on_non_zero_exit(self, mock_run: MagicMock) -> None:
        """Non-zero exit code (not a git repo) returns None."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["git", "status", "--porcelain"],
            returncode=128,
            stdout="",
            stderr="fatal: not a git repository",
        )

        assert get_git_status(Path(".")) is None

    @patch("subprocess.run")
    def test_returns_none_when_git_missing(self, mock_run: MagicMock) -> None:
        """Missing git binary returns None."""
        mock_run.side_effect = FileNotFoundError("git not found")
        assert get_git_status(Path(".")) is None

    @patch("subprocess.run")
    def test_returns_none_on_timeout(self, mock_run: MagicMock) -> None:
        """Timeout returns None."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=10)
        assert get_git_status(Path(".")) is None

    def test_real_repository(self, git_repo: Path) -> None:
        """Untracked and modified files show up in a real repository."""
        assert has_uncommitted_changes(git_repo) is False

        (git_repo / "README.md").write_text("changed\n")
        (git_repo / "new.txt").write_text("new\n")

        status = get_git_status(git_repo)
        assert status is not None
        assert status.modified == ["README.md"]
        assert status.untracked == ["new.txt"]
        assert has_uncommitted_changes(git_repo) is True


class TestRunGit:
    """Tests for the subprocess wrapper."""

    @patch("subprocess.run")
    def test_raises_with_stderr(self, mock_run: MagicMock) -> None:
        """A failing command raises with git's stderr in the message."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["git", "checkout", "nope"], returncode=1, stdout="", stderr="error: pathspec 'nope'\n"
        )

        with pytest.raises(GitCommandError) as exc_info:
            run_git(["checkout", "nope"], Path("."))

        assert exc_info.value.returncode == 1
        assert "pathspec 'nope'" in str(exc_info.value)

    @patch("subprocess.run")
    def test_never_uses_shell(self, mock_run: MagicMock) -> None:
        """Arguments are passed as a vector."""
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")

        run_git(["log", "--oneline", "; rm -rf /"], Path("."))

        assert mock_run.call_args.args[0] == ["git", "log", "--oneline", "; rm -rf /"]
        assert mock_run.call_args.kwargs.get("shell") is not True

    def test_is_git_repository(self, git_repo: Path, tmp_path: Path) -> None:
        outside = tmp_path / "plain"
        outside.mkdir()
        assert is_git_repository(git_repo) is True
        assert is_git_repository(outside) is False


class TestGitHubRemote:
    """Parsing owner/repo from remote URLs."""

    @pytest.mark.parametrize(
        "url",
        [
            "git@github.com:acme/widgets.git",
            "https://github.com/acme/widgets.git",
            "https://github.com/acme/widgets",
            "ssh://git@github.com/acme/widgets.git\n",
        ],
    )
    def test_parse_github_remote(self, url: str) -> None:
        assert parse_github_remote(url) == ("acme", "widgets")

    def test_non_github_remote(self) -> None:
        assert parse_github_remote("https://gitlab.com/acme/widgets.git") is None

    def test_detect_from_origin(self, git_repo: Path) -> None:
        """The origin remote is used."""
        assert detect_github_repo(git_repo) is None

        subprocess.run(
            ["git", "remote", "add", "origin", "git@github.com:acme/widgets.git"],
            cwd=git_repo,
            check=True,
        )
        assert detect_github_repo(git_repo) == ("acme", "widgets")
