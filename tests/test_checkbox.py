"""Tests for checkbox parsing, diffing and merging."""

from __future__ import annotations

from specflow.sync.checkbox import (
    CheckboxChange,
    apply_checkbox_changes,
    diff_checkboxes,
    format_change_summary,
    merge_checkbox_state,
    parse_checkboxes,
)

DOCUMENT = """# Search

## Requirements

- [ ] Index documents
- [x] Tokenize queries

## Tasks

- [ ] Write tests
"""


class TestParseCheckboxes:
    """Tests for parse_checkboxes."""

    def test_items_with_sections(self) -> None:
        items = parse_checkboxes(DOCUMENT)

        assert [(i.text, i.checked, i.section) for i in items] == [
            ("Index documents", False, "Requirements"),
            ("Tokenize queries", True, "Requirements"),
            ("Write tests", False, "Tasks"),
        ]
        assert items[0].line == 5

    def test_uppercase_x_and_indentation(self) -> None:
        items = parse_checkboxes("  - [X] Nested item")
        assert items[0].checked is True
        assert items[0].text == "Nested item"

    def test_plain_list_items_ignored(self) -> None:
        assert parse_checkboxes("- just a bullet\n- [link](url)") == []


class TestDiffCheckboxes:
    """Tests for diff_checkboxes."""

    def test_matched_by_text(self) -> None:
        """Order does not matter, only text."""
        source = parse_checkboxes("- [x] B\n- [x] A")
        target = parse_checkboxes("- [ ] A\n- [x] B")

        changes = diff_checkboxes(source, target)

        assert changes == [CheckboxChange(text="A", section="", old_value=False, new_value=True)]

    def test_one_sided_items_ignored(self) -> None:
        source = parse_checkboxes("- [x] Only in source")
        target = parse_checkboxes("- [ ] Only in target")
        assert diff_checkboxes(source, target) == []


class TestApplyCheckboxChanges:
    """Tests for apply_checkbox_changes."""

    def test_only_marker_changes(self) -> None:
        """Untargeted lines come back byte for byte."""
        changes = [CheckboxChange(text="Write tests", section="Tasks", old_value=False, new_value=True)]

        updated = apply_checkbox_changes(DOCUMENT, changes)

        assert updated == DOCUMENT.replace("- [ ] Write tests", "- [x] Write tests")

    def test_crlf_preserved(self) -> None:
        text = "## Tasks\r\n- [ ] One\r\n- [ ] Two\r\n"
        changes = [CheckboxChange(text="Two", section="Tasks", old_value=False, new_value=True)]

        assert apply_checkbox_changes(text, changes) == "## Tasks\r\n- [ ] One\r\n- [x] Two\r\n"

    def test_no_changes_returns_input(self) -> None:
        assert apply_checkbox_changes(DOCUMENT, []) is DOCUMENT


class TestMergeCheckboxState:
    """Tests for merge_checkbox_state."""

    def test_issue_state_carried_to_document(self) -> None:
        """Boxes ticked on the issue get ticked in the document."""
        issue_body = "- [x] Index documents\n- [ ] Tokenize queries\n- [x] Something only on GitHub"

        merged, changes = merge_checkbox_state(DOCUMENT, issue_body)

        assert "- [x] Index documents" in merged
        assert "- [ ] Tokenize queries" in merged
        assert "Something only on GitHub" not in merged
        assert len(changes) == 2

    def test_idempotent(self) -> None:
        """Merging twice gives the same result as merging once."""
        issue_body = "- [x] Write tests"

        once, _ = merge_checkbox_state(DOCUMENT, issue_body)
        twice, changes = merge_checkbox_state(once, issue_body)

        assert twice == once
        assert changes == []


class TestFormatChangeSummary:
    def test_summary(self) -> None:
        changes = [
            CheckboxChange(text="a", section="", old_value=False, new_value=True),
            CheckboxChange(text="b", section="", old_value=False, new_value=True),
            CheckboxChange(text="c", section="", old_value=True, new_value=False),
        ]
        assert format_change_summary(changes) == "2 checked, 1 unchecked"

    def test_empty(self) -> None:
        assert format_change_summary([]) == "no checkbox changes"
