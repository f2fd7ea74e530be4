"""Phase label lifecycle for GitHub issues.

This module maps spec phases onto ``phase:<name>`` labels, makes sure the
labels exist, and swaps the phase label on an issue without touching the
labels users added themselves.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from specflow.core.models import SpecPhase
from specflow.sync.github_client import GitHubClientError

if TYPE_CHECKING:
    from specflow.config import GitHubLabelConfig
    from specflow.sync.github_client import GitHubClient

logger = logging.getLogger(__name__)


def phase_label_color(phase: SpecPhase, config: GitHubLabelConfig) -> str:
    match phase:
        case SpecPhase.REQUIREMENTS:
            return config.color_requirements
        case SpecPhase.DESIGN:
            return config.color_design
        case SpecPhase.TASKS:
            return config.color_tasks
        case SpecPhase.IMPLEMENTATION:
            return config.color_implementation
        case SpecPhase.COMPLETED:
            return config.color_completed


def phase_label_description(phase: SpecPhase) -> str:
    match phase:
        case SpecPhase.REQUIREMENTS:
            return "Spec is gathering requirements"
        case SpecPhase.DESIGN:
            return "Spec is in design"
        case SpecPhase.TASKS:
            return "Spec is being broken down into tasks"
        case SpecPhase.IMPLEMENTATION:
            return "Spec is being implemented"
        case SpecPhase.COMPLETED:
            return "Spec is complete"


class LabelManager:
    """Manages phase labels on GitHub issues.

    Handles:
    - Label creation if missing
    - Replacing the phase label while preserving unrelated labels
    """

    def __init__(
        self,
        client: GitHubClient,
        config: GitHubLabelConfig,
        create_if_missing: bool = True,
    ) -> None:
        """Initialize the label manager.

        Args:
            client: GitHubClient instance for API calls.
            config: Label configuration with prefix and colors.
            create_if_missing: Whether to create labels if they don't exist.
        """
        self.client = client
        self.config = config
        self.create_if_missing = create_if_missing
        self._labels_ensured = False

    def label_for(self, phase: SpecPhase) -> str:
        return f"{self.config.prefix}{phase.value}"

    def phase_labels(self) -> list[str]:
        """All phase label names, in workflow order."""
        return [self.label_for(phase) for phase in SpecPhase]

    async def ensure_labels_exist(self) -> None:
        """Create missing phase labels once per manager. Failures only warn."""
        if self._labels_ensured or not self.create_if_missing:
            return

        for phase in SpecPhase:
            name = self.label_for(phase)
            try:
                await self.client.ensure_label(
                    name,
                    phase_label_color(phase, self.config),
                    phase_label_description(phase),
                )
                logger.debug(f"Ensured label exists: {name}")
            except GitHubClientError as e:
                logger.warning(f"Failed to ensure label '{name}': {e}")

        self._labels_ensured = True

    def labels_for_phase(self, phase: SpecPhase, current_labels: list[str]) -> list[str]:
        """Label set with every phase label replaced by the one for ``phase``."""
        managed = set(self.phase_labels())
        preserved = [label for label in current_labels if label not in managed]
        return [*preserved, self.label_for(phase)]
