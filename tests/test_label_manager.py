"""Tests for phase label management."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from specflow.config import GitHubLabelConfig
from specflow.core.models import SpecPhase
from specflow.sync.github_client import GitHubClientError
from specflow.sync.label_manager import LabelManager, phase_label_color, phase_label_description


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.ensure_label = AsyncMock()
    return client


@pytest.fixture
def label_config() -> GitHubLabelConfig:
    return GitHubLabelConfig()


class TestLabelManager:
    """Test LabelManager functionality."""

    def test_phase_labels(self, mock_client: MagicMock, label_config: GitHubLabelConfig) -> None:
        manager = LabelManager(mock_client, label_config)
        assert manager.phase_labels() == [
            "phase:requirements",
            "phase:design",
            "phase:tasks",
            "phase:implementation",
            "phase:completed",
        ]

    def test_custom_prefix(self, mock_client: MagicMock) -> None:
        manager = LabelManager(mock_client, GitHubLabelConfig(prefix="spec/"))
        assert manager.label_for(SpecPhase.DESIGN) == "spec/design"

    def test_labels_for_phase_preserves_user_labels(
        self, mock_client: MagicMock, label_config: GitHubLabelConfig
    ) -> None:
        """Only phase labels are replaced."""
        manager = LabelManager(mock_client, label_config)

        labels = manager.labels_for_phase(SpecPhase.TASKS, ["bug", "phase:design", "priority:high"])

        assert labels == ["bug", "priority:high", "phase:tasks"]

    def test_labels_for_phase_drops_stale_duplicates(
        self, mock_client: MagicMock, label_config: GitHubLabelConfig
    ) -> None:
        manager = LabelManager(mock_client, label_config)
        labels = manager.labels_for_phase(SpecPhase.COMPLETED, ["phase:design", "phase:tasks"])
        assert labels == ["phase:completed"]

    @pytest.mark.asyncio
    async def test_ensure_labels_exist_once(self, mock_client: MagicMock, label_config: GitHubLabelConfig) -> None:
        """Labels are ensured on first use only."""
        manager = LabelManager(mock_client, label_config)

        await manager.ensure_labels_exist()
        await manager.ensure_labels_exist()

        assert mock_client.ensure_label.await_count == len(SpecPhase)
        mock_client.ensure_label.assert_any_await("phase:completed", "0E8A16", "Spec is complete")

    @pytest.mark.asyncio
    async def test_ensure_labels_failure_only_warns(
        self, mock_client: MagicMock, label_config: GitHubLabelConfig
    ) -> None:
        mock_client.ensure_label.side_effect = GitHubClientError("forbidden")
        manager = LabelManager(mock_client, label_config)

        await manager.ensure_labels_exist()

        assert mock_client.ensure_label.await_count == len(SpecPhase)

    @pytest.mark.asyncio
    async def test_creation_disabled(self, mock_client: MagicMock, label_config: GitHubLabelConfig) -> None:
        manager = LabelManager(mock_client, label_config, create_if_missing=False)
        await manager.ensure_labels_exist()
        mock_client.ensure_label.assert_not_awaited()


class TestLabelAppearance:
    def test_every_phase_has_color_and_description(self) -> None:
        config = GitHubLabelConfig()
        for phase in SpecPhase:
            assert len(phase_label_color(phase, config)) == 6
            assert phase_label_description(phase)
