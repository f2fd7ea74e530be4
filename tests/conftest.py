"""Shared fixtures."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from specflow.core.documents import SpecDocumentStore
from specflow.core.state import StateManager
from specflow.notifications.base import NotificationLevel, Notifier
from specflow.workflow.event_bus import reset_event_bus


class RecordingNotifier(Notifier):
    """Notifier that keeps every notice for assertions."""

    def __init__(self) -> None:
        self.notices: list[tuple[NotificationLevel, str, str]] = []

    def notify(self, title: str, message: str, level: NotificationLevel) -> None:
        self.notices.append((level, title, message))

    def messages(self, level: NotificationLevel | None = None) -> list[str]:
        return [message for lvl, _, message in self.notices if level is None or lvl == level]


def git(repo: Path, *args: str) -> str:
    """Run git in ``repo`` and return stdout."""
    result = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)
    return result.stdout.strip()


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Path for a throwaway state database."""
    return tmp_path / "state.db"


@pytest.fixture
def state(temp_db: Path) -> StateManager:
    return StateManager(temp_db)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A real git repository on ``main`` with one commit."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "user.name", "Test User")
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("# Test repo\n")
    git(repo, "add", "README.md")
    git(repo, "commit", "-q", "-m", "initial commit")
    return repo


@pytest.fixture
def documents(git_repo: Path) -> SpecDocumentStore:
    return SpecDocumentStore(git_repo)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def _fresh_event_bus() -> None:
    """Every test starts with an unconfigured process bus."""
    reset_event_bus()
