"""Markdown spec documents stored one per spec under .specflow/specs/."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from specflow.core.models import Spec, SpecPhase

logger = logging.getLogger(__name__)

SPECS_DIR = Path(".specflow") / "specs"

PHASE_LINE_PATTERN = re.compile(r"^\*\*Phase:\*\*\s*\S+\s*$", re.MULTILINE)

DOCUMENT_TEMPLATE = """# {name}

**Spec ID:** {spec_id}
**Phase:** {phase}

## Description

{description}

## Requirements

## Design

## Tasks
"""


class SpecDocumentStore:
    """Reads and writes spec documents relative to a project root."""

    def __init__(self, project_root: Path) -> None:
        self.project_root = project_root

    def relative_path(self, spec_id: str) -> Path:
        """Path of the document relative to the project root (as git sees it)."""
        return SPECS_DIR / f"{spec_id}.md"

    def path_for(self, spec_id: str) -> Path:
        return self.project_root / self.relative_path(spec_id)

    def exists(self, spec_id: str) -> bool:
        return self.path_for(spec_id).exists()

    def read(self, spec_id: str) -> str:
        """Return the document text.

        Raises:
            FileNotFoundError: If the spec has no document.
        """
        with self.path_for(spec_id).open(encoding="utf-8", newline="") as f:
            return f.read()

    def write(self, spec_id: str, content: str) -> Path:
        """Write the document verbatim (newline translation disabled)."""
        path = self.path_for(spec_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as f:
            f.write(content)
        return path

    def create(self, spec: Spec) -> Path:
        """Write the initial document for a new spec."""
        content = DOCUMENT_TEMPLATE.format(
            name=spec.name,
            spec_id=spec.id,
            phase=spec.phase.value,
            description=spec.description or "_No description yet._",
        )
        return self.write(spec.id, content)

    def update_phase(self, spec_id: str, phase: SpecPhase) -> bool:
        """Rewrite the ``**Phase:**`` line of a document.

        Returns:
            True if the document was changed, False if it is missing or has no phase line.
        """
        if not self.exists(spec_id):
            logger.debug(f"No document for spec {spec_id}, skipping phase update")
            return False

        content = self.read(spec_id)
        updated, count = PHASE_LINE_PATTERN.subn(f"**Phase:** {phase.value}", content, count=1)
        if count == 0:
            logger.warning(f"Spec document {spec_id} has no phase line")
            return False
        if updated != content:
            self.write(spec_id, updated)
        return True
