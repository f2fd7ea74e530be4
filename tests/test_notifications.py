"""Unit tests for notification providers."""

from __future__ import annotations

import pytest
from conftest import RecordingNotifier
from rich.console import Console

from specflow.core.models import SpecPhase
from specflow.notifications.base import ConsoleNotifier, NullNotifier


class TestNullNotifier:
    """Tests for NullNotifier."""

    def test_outcomes_produce_no_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        notifier = NullNotifier()
        notifier.committed("docs(spec): add spec")
        notifier.commit_skipped("Commit manually")
        notifier.transition_rolled_back(SpecPhase.TASKS, "checkout refused")

        assert capsys.readouterr().out == ""


class TestOutcomeLevels:
    """Each workflow outcome is reported at a fixed level."""

    def test_git_outcomes(self) -> None:
        notifier = RecordingNotifier()
        notifier.committed("chore: auto-commit")
        notifier.commit_skipped("Commit manually: git add -A && git commit")
        notifier.branch_switched("feature/spec-1-login")
        notifier.pull_request_opened("https://github.com/o/r/pull/7")

        assert notifier.messages("success") == [
            "chore: auto-commit",
            "feature/spec-1-login",
            "https://github.com/o/r/pull/7",
        ]
        assert notifier.messages("warning") == ["Commit manually: git add -A && git commit"]

    def test_rollback_is_an_error_naming_the_phase(self) -> None:
        notifier = RecordingNotifier()
        notifier.transition_rolled_back(SpecPhase.IMPLEMENTATION, "dirty tree")

        assert notifier.notices == [("error", "Could not move spec to implementation", "dirty tree")]

    def test_issue_numbers_are_prefixed(self) -> None:
        notifier = RecordingNotifier()
        notifier.issue_synced("closed", 12)
        notifier.parent_issue_closed(10)

        assert notifier.notices == [
            ("success", "GitHub issue closed", "#12"),
            ("success", "All sub-issues done", "Closed parent issue #10"),
        ]

    @pytest.mark.parametrize(
        ("local", "remote", "title"),
        [
            (True, True, "Deleted merged local and remote branch"),
            (True, False, "Deleted merged local branch"),
            (False, True, "Deleted merged remote branch"),
        ],
    )
    def test_branch_removed(self, local: bool, remote: bool, title: str) -> None:
        notifier = RecordingNotifier()
        notifier.branch_removed("feature/spec-1-login", local=local, remote=remote)
        assert notifier.notices == [("success", title, "feature/spec-1-login")]


class TestConsoleNotifier:
    """Tests for ConsoleNotifier."""

    def test_success_prints_icon_and_detail(self, capsys: pytest.CaptureFixture[str]) -> None:
        notifier = ConsoleNotifier()
        notifier.branch_switched("feature/spec-1-login")

        captured = capsys.readouterr()
        assert "[+] Switched to spec branch" in captured.out
        assert "feature/spec-1-login" in captured.out

    def test_levels_have_distinct_icons(self, capsys: pytest.CaptureFixture[str]) -> None:
        notifier = ConsoleNotifier()
        notifier.committed("msg")
        notifier.automation_failed("Could not push feature/x", "Push manually")
        notifier.transition_rolled_back(SpecPhase.TASKS, "reason")

        captured = capsys.readouterr()
        assert "[+] Auto-committed" in captured.out
        assert "[!] Could not push feature/x" in captured.out
        assert "[x] Could not move spec to tasks" in captured.out

    def test_message_is_not_markup(self) -> None:
        """Hints containing brackets are printed literally."""
        console = Console(record=True, width=120)
        notifier = ConsoleNotifier(console)

        notifier.automation_failed("Push failed", "Push manually: git push -u origin [bold]<branch>")

        assert "git push -u origin [bold]<branch>" in console.export_text()

    def test_empty_message_skipped(self) -> None:
        console = Console(record=True, width=120)
        ConsoleNotifier(console).notify("Done", "", "success")
        assert console.export_text().strip() == "[+] Done"
