"""Checkbox state diffing between a spec document and an issue body.

Both documents are edited independently, so checklist items are matched by
their text rather than by line number. Applying a diff only flips the marker
character of matching lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")
CHECKBOX_PATTERN = re.compile(r"^(\s*)-\s*\[([ xX])\]\s*(.+)$")
CHECKBOX_REWRITE_PATTERN = re.compile(r"^(\s*-\s*\[)([ xX])(\]\s*)(.+)$")


@dataclass(frozen=True)
class CheckboxItem:
    """A checklist line and the heading it sits under."""

    text: str
    checked: bool
    section: str = ""
    line: int = 0  # 1-based


@dataclass(frozen=True)
class CheckboxChange:
    """A checkbox whose state differs between source and target."""

    text: str
    section: str
    old_value: bool  # state in the target document
    new_value: bool  # state in the source document


def parse_checkboxes(markdown: str) -> list[CheckboxItem]:
    """Extract checklist items in document order."""
    items: list[CheckboxItem] = []
    section = ""

    for index, line in enumerate(markdown.split("\n"), start=1):
        heading = HEADING_PATTERN.match(line)
        if heading:
            section = heading.group(2).strip()

        checkbox = CHECKBOX_PATTERN.match(line)
        if checkbox:
            items.append(
                CheckboxItem(
                    text=checkbox.group(3).strip(),
                    checked=checkbox.group(2).lower() == "x",
                    section=section,
                    line=index,
                )
            )

    return items


def diff_checkboxes(source: list[CheckboxItem], target: list[CheckboxItem]) -> list[CheckboxChange]:
    """Changes needed to make ``target`` match ``source``, matched by text.

    Items present on only one side are ignored.
    """
    target_by_text = {item.text: item for item in target}
    changes: list[CheckboxChange] = []

    for item in source:
        counterpart = target_by_text.get(item.text)
        if counterpart is not None and counterpart.checked != item.checked:
            changes.append(
                CheckboxChange(
                    text=item.text,
                    section=item.section,
                    old_value=counterpart.checked,
                    new_value=item.checked,
                )
            )

    return changes


def apply_checkbox_changes(markdown: str, changes: list[CheckboxChange]) -> str:
    """Rewrite the marker of every line whose text has a change.

    Everything else, including line endings, is returned untouched.
    """
    if not changes:
        return markdown

    wanted = {change.text: change.new_value for change in changes}
    lines = markdown.split("\n")

    for index, line in enumerate(lines):
        match = CHECKBOX_REWRITE_PATTERN.match(line)
        if not match:
            continue
        text = match.group(4).strip()
        if text not in wanted:
            continue
        marker = "x" if wanted[text] else " "
        lines[index] = f"{match.group(1)}{marker}{match.group(3)}{match.group(4)}"

    return "\n".join(lines)


def merge_checkbox_state(target_markdown: str, source_markdown: str) -> tuple[str, list[CheckboxChange]]:
    """Carry checkbox states from ``source_markdown`` onto ``target_markdown``.

    Returns:
        Tuple of (updated target, changes applied).
    """
    changes = diff_checkboxes(parse_checkboxes(source_markdown), parse_checkboxes(target_markdown))
    return apply_checkbox_changes(target_markdown, changes), changes


def format_change_summary(changes: list[CheckboxChange]) -> str:
    if not changes:
        return "no checkbox changes"

    checked = sum(1 for c in changes if c.new_value)
    unchecked = len(changes) - checked
    parts = []
    if checked:
        parts.append(f"{checked} checked")
    if unchecked:
        parts.append(f"{unchecked} unchecked")
    return ", ".join(parts)
