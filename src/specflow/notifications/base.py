"""Workflow notices: what the automation did and what the user must do by hand.

Handlers report outcomes through the named methods below so the wording
of a notice lives in one place. A warning always carries the manual
fallback for automation that did not run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from rich.console import Console

    from specflow.core.models import SpecPhase

NotificationLevel = Literal["success", "warning", "error"]


class Notifier(ABC):
    """Abstract base class for user-facing workflow notices."""

    @abstractmethod
    def notify(self, title: str, message: str, level: NotificationLevel) -> None:
        """Show a notice.

        Args:
            title: Short headline
            message: Detail line, often a remediation hint
            level: Severity level
        """

    # =========================================================================
    # Phase outcomes
    # =========================================================================

    def transition_rolled_back(self, phase: SpecPhase, reason: str) -> None:
        self.notify(f"Could not move spec to {phase.value}", reason, "error")

    # =========================================================================
    # Git outcomes
    # =========================================================================

    def committed(self, message: str) -> None:
        self.notify("Auto-committed", message, "success")

    def commit_skipped(self, hint: str) -> None:
        self.notify("Auto-commit failed", hint, "warning")

    def branch_switched(self, branch: str) -> None:
        self.notify("Switched to spec branch", branch, "success")

    def branch_removed(self, branch: str, *, local: bool, remote: bool) -> None:
        where = " and ".join(side for side, deleted in (("local", local), ("remote", remote)) if deleted)
        self.notify(f"Deleted merged {where} branch", branch, "success")

    def pull_request_opened(self, url: str) -> None:
        self.notify("Pull request opened", url, "success")

    # =========================================================================
    # GitHub sync outcomes
    # =========================================================================

    def issue_synced(self, action: str, issue_number: int | None) -> None:
        """Report an issue that was created or closed, e.g. ``issue_synced("closed", 12)``."""
        self.notify(f"GitHub issue {action}", f"#{issue_number}", "success")

    def parent_issue_closed(self, issue_number: int | None) -> None:
        self.notify("All sub-issues done", f"Closed parent issue #{issue_number}", "success")

    def automation_failed(self, title: str, detail: str) -> None:
        """Report automation that did not run; ``detail`` says what to do instead."""
        self.notify(title, detail, "warning")


class ConsoleNotifier(Notifier):
    """Console notifier using Rich."""

    STYLES = {
        "success": "green",
        "warning": "yellow",
        "error": "red",
    }
    ICONS = {
        "success": "+",
        "warning": "!",
        "error": "x",
    }

    def __init__(self, console: Console | None = None) -> None:
        if console is None:
            from rich.console import Console

            console = Console()
        self.console = console

    def notify(self, title: str, message: str, level: NotificationLevel) -> None:
        style = self.STYLES[level]
        icon = self.ICONS[level]

        self.console.print(f"[{style}]\\[{icon}] {title}[/{style}]")
        if message:
            self.console.print(f"    {message}", markup=False)


class NullNotifier(Notifier):
    """No-op notifier for tests or quiet runs."""

    def notify(self, title: str, message: str, level: NotificationLevel) -> None:
        """Do nothing."""
