"""Tests for the sub-issue hierarchy."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from specflow.core.models import EntityType, SyncRecord, SyncStatus, TaskStatus
from specflow.core.state import StateManager
from specflow.sync.github_client import GitHubClientError, GitHubIssue
from specflow.sync.sub_issues import (
    MAX_SUB_ISSUES_PER_ISSUE,
    PARENT_CLOSE_COMMENT,
    SubIssueManager,
    check_parent_checkbox,
    render_sub_issue_checklist,
)


def issue(number: int, state: str = "open", body: str = "") -> GitHubIssue:
    return GitHubIssue(number=number, title=f"Issue {number}", state=state, body=body, node_id=f"I_{number}")


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.repo = "owner/repo"
    client.get_issue = AsyncMock()
    client.create_issue = AsyncMock()
    client.update_issue = AsyncMock()
    client.add_sub_issue = AsyncMock()
    client.close_issue = AsyncMock(return_value=True)
    client.list_sub_issues = AsyncMock()
    return client


def link_spec(state: StateManager, spec_id: str, number: int = 10) -> None:
    state.upsert_sync_record(
        SyncRecord(
            entity_type=EntityType.SPEC,
            entity_id=spec_id,
            github_number=number,
            github_node_id=f"I_{number}",
            sync_status=SyncStatus.SUCCESS,
        )
    )


class TestCheckParentCheckbox:
    """Ticking the parent checklist line for one child."""

    def test_ticks_matching_line(self) -> None:
        body = "## Sub-issues\n\n- [ ] Write parser #12\n- [ ] Write docs #13"
        updated = check_parent_checkbox(body, 12)
        assert updated == "## Sub-issues\n\n- [x] Write parser #12\n- [ ] Write docs #13"

    def test_prefix_number_does_not_match(self) -> None:
        """#12 must not tick the line for #123."""
        body = "- [ ] Other #123\n- [ ] Mine #12"
        assert check_parent_checkbox(body, 12) == "- [ ] Other #123\n- [x] Mine #12"

    def test_no_matching_line(self) -> None:
        body = "- [ ] Other #123"
        assert check_parent_checkbox(body, 12) == body

    def test_uncheck(self) -> None:
        assert check_parent_checkbox("- [x] Done #5\r\n", 5, checked=False) == "- [ ] Done #5\r\n"


class TestRenderChecklist:
    def test_only_linked_tasks(self, state: StateManager) -> None:
        spec = state.create_spec("Spec")
        done = state.create_task(spec.id, "Done task", priority=1)
        state.create_task(spec.id, "Unlinked task", priority=2)
        state.set_task_issue(done.id, 21)
        state.update_task_status(done.id, TaskStatus.DONE)

        checklist = render_sub_issue_checklist(state.list_tasks(spec.id))

        assert checklist == "## Sub-issues\n\n- [x] Done task #21"

    def test_empty(self) -> None:
        assert render_sub_issue_checklist([]) == ""


class TestCreateSubIssues:
    """Creating child issues for tasks."""

    @pytest.mark.asyncio
    async def test_creates_and_links(self, state: StateManager, mock_client: MagicMock) -> None:
        spec = state.create_spec("Spec")
        link_spec(state, spec.id)
        task = state.create_task(spec.id, "Write parser", "Parse it")
        mock_client.create_issue.return_value = issue(11)
        mock_client.get_issue.return_value = issue(10, body="# Spec")

        result = await SubIssueManager(mock_client, state).create_sub_issues(spec.id)

        assert result.success is True
        assert result.created == [11]
        mock_client.add_sub_issue.assert_awaited_once_with("I_10", "I_11")
        assert mock_client.create_issue.await_args.args[1] == "Parse it\n\nPart of #10"

        record = state.get_sync_record(EntityType.SUB_ISSUE, task.id)
        assert record is not None
        assert record.github_number == 11
        assert record.parent_issue_number == 10
        stored = state.get_task(task.id)
        assert stored is not None and stored.github_issue_number == 11

        body = mock_client.update_issue.await_args.kwargs["body"]
        assert body == "# Spec\n\n## Sub-issues\n\n- [ ] Write parser #11\n"

    @pytest.mark.asyncio
    async def test_existing_sub_issue_skipped(self, state: StateManager, mock_client: MagicMock) -> None:
        spec = state.create_spec("Spec")
        link_spec(state, spec.id)
        task = state.create_task(spec.id, "Task")
        state.upsert_sync_record(SyncRecord(entity_type=EntityType.SUB_ISSUE, entity_id=task.id, github_number=11))

        result = await SubIssueManager(mock_client, state).create_sub_issues(spec.id)

        assert result.success is True
        assert result.created == []
        mock_client.create_issue.assert_not_awaited()
        mock_client.update_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_over_limit_creates_nothing(self, state: StateManager, mock_client: MagicMock) -> None:
        spec = state.create_spec("Spec")
        link_spec(state, spec.id)
        for i in range(MAX_SUB_ISSUES_PER_ISSUE + 1):
            state.create_task(spec.id, f"Task {i}")

        result = await SubIssueManager(mock_client, state).create_sub_issues(spec.id)

        assert result.success is False
        assert result.error == "sub-issue limit exceeded"
        mock_client.create_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unlinked_spec(self, state: StateManager, mock_client: MagicMock) -> None:
        spec = state.create_spec("Spec")
        state.create_task(spec.id, "Task")

        result = await SubIssueManager(mock_client, state).create_sub_issues(spec.id)

        assert result.success is False
        assert result.error == "not linked"

    @pytest.mark.asyncio
    async def test_stale_spec_record(self, state: StateManager, mock_client: MagicMock) -> None:
        """A record whose issue link was cleared counts as unlinked."""
        spec = state.create_spec("Spec")
        state.create_task(spec.id, "Task")
        state.upsert_sync_record(SyncRecord(entity_type=EntityType.SPEC, entity_id=spec.id, github_number=10))
        state.clear_sync_link(EntityType.SPEC, spec.id)

        result = await SubIssueManager(mock_client, state).create_sub_issues(spec.id)

        assert result.error == "not linked"
        mock_client.create_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_failure_reports_created(self, state: StateManager, mock_client: MagicMock) -> None:
        spec = state.create_spec("Spec")
        link_spec(state, spec.id)
        state.create_task(spec.id, "First", priority=1)
        state.create_task(spec.id, "Second", priority=2)
        mock_client.create_issue.side_effect = [issue(11), GitHubClientError("boom")]

        result = await SubIssueManager(mock_client, state).create_sub_issues(spec.id)

        assert result.success is False
        assert result.created == [11]
        assert result.error == "boom"


class TestTaskCompletion:
    """Closing sub-issues and their parent."""

    def _linked_task(self, state: StateManager) -> str:
        spec = state.create_spec("Spec")
        link_spec(state, spec.id)
        task = state.create_task(spec.id, "Task")
        state.upsert_sync_record(
            SyncRecord(
                entity_type=EntityType.SUB_ISSUE,
                entity_id=task.id,
                github_number=12,
                parent_issue_number=10,
                parent_spec_id=spec.id,
            )
        )
        return task.id

    @pytest.mark.asyncio
    async def test_last_child_closes_parent(self, state: StateManager, mock_client: MagicMock) -> None:
        task_id = self._linked_task(state)
        mock_client.get_issue.return_value = issue(10, body="- [ ] Task #12\n- [x] Other #123")
        mock_client.list_sub_issues.return_value = [issue(12, "closed"), issue(123, "closed")]

        result = await SubIssueManager(mock_client, state).handle_task_completion(task_id)

        assert result.success is True
        assert result.parent_closed is True
        assert mock_client.close_issue.await_args_list[0].args == (12,)
        mock_client.close_issue.assert_awaited_with(10, comment=PARENT_CLOSE_COMMENT)
        mock_client.update_issue.assert_awaited_once_with(10, body="- [x] Task #12\n- [x] Other #123")

    @pytest.mark.asyncio
    async def test_open_sibling_keeps_parent_open(self, state: StateManager, mock_client: MagicMock) -> None:
        task_id = self._linked_task(state)
        mock_client.get_issue.return_value = issue(10, body="- [ ] Task #12")
        mock_client.list_sub_issues.return_value = [issue(12, "closed"), issue(13, "open")]

        result = await SubIssueManager(mock_client, state).handle_task_completion(task_id)

        assert result.success is True
        assert result.parent_closed is False
        assert mock_client.close_issue.await_count == 1

    @pytest.mark.asyncio
    async def test_lookup_failure_keeps_parent_open(self, state: StateManager, mock_client: MagicMock) -> None:
        task_id = self._linked_task(state)
        mock_client.get_issue.return_value = issue(10)
        mock_client.list_sub_issues.side_effect = GitHubClientError("timeout")

        result = await SubIssueManager(mock_client, state).handle_task_completion(task_id)

        assert result.parent_closed is False

    @pytest.mark.asyncio
    async def test_no_children_closes_parent(self, state: StateManager, mock_client: MagicMock) -> None:
        manager = SubIssueManager(mock_client, state)
        mock_client.list_sub_issues.return_value = []

        assert await manager.close_parent_if_complete(10) is True

    @pytest.mark.asyncio
    async def test_task_without_sub_issue(self, state: StateManager, mock_client: MagicMock) -> None:
        result = await SubIssueManager(mock_client, state).handle_task_completion("unknown")
        assert result.success is False
        mock_client.close_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_task_with_cleared_sub_issue(self, state: StateManager, mock_client: MagicMock) -> None:
        state.upsert_sync_record(SyncRecord(entity_type=EntityType.SUB_ISSUE, entity_id="task-1", github_number=11))
        state.clear_sync_link(EntityType.SUB_ISSUE, "task-1")

        result = await SubIssueManager(mock_client, state).handle_task_completion("task-1")

        assert result.error == "not linked"
        mock_client.close_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_failure_marks_record(self, state: StateManager, mock_client: MagicMock) -> None:
        task_id = self._linked_task(state)
        mock_client.close_issue.side_effect = GitHubClientError("forbidden")

        result = await SubIssueManager(mock_client, state).handle_task_completion(task_id)

        assert result.success is False
        record = state.get_sync_record(EntityType.SUB_ISSUE, task_id)
        assert record is not None
        assert record.sync_status == SyncStatus.FAILED
