"""Sub-issue hierarchy: one child issue per task, nested under the spec issue.

Parent issues carry a checklist with one ``- [ ] <title> #<n>`` line per child;
completing a task closes its child, ticks that line, and closes the parent
once every child is closed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from specflow.core.models import EntityType, SyncRecord, SyncStatus, Task, TaskStatus
from specflow.sync.github_client import GitHubClientError

if TYPE_CHECKING:
    from specflow.core.state import StateManager
    from specflow.sync.github_client import GitHubClient

logger = logging.getLogger(__name__)

MAX_SUB_ISSUES_PER_ISSUE = 100
SUB_ISSUE_SECTION_HEADING = "## Sub-issues"
PARENT_CLOSE_COMMENT = "All sub-issues are complete. Closing this issue automatically."


@dataclass
class SubIssueResult:
    """Result of a sub-issue operation."""

    success: bool
    message: str
    created: list[int] = field(default_factory=list)
    parent_issue_number: int | None = None
    parent_closed: bool = False
    error: str | None = None


def render_sub_issue_checklist(tasks: list[Task]) -> str:
    """Checklist section for the parent issue body. Empty when no task has a sub-issue."""
    lines = [
        f"- [{'x' if task.status == TaskStatus.DONE else ' '}] {task.title} #{task.github_issue_number}"
        for task in tasks
        if task.github_issue_number is not None
    ]
    if not lines:
        return ""
    return "\n".join([SUB_ISSUE_SECTION_HEADING, "", *lines])


def check_parent_checkbox(body: str, sub_issue_number: int, checked: bool = True) -> str:
    """Set the checklist line referencing ``#sub_issue_number`` to ``checked``.

    The number must not be followed by another digit, so #12 never matches #123.
    """
    pattern = re.compile(rf"(- \[)[ xX](\] .*#{sub_issue_number}(?:\D|$))", re.MULTILINE)
    marker = "x" if checked else " "
    return pattern.sub(lambda m: f"{m.group(1)}{marker}{m.group(2)}", body)


class SubIssueManager:
    """Creates and closes sub-issues for a spec's tasks."""

    def __init__(self, client: GitHubClient, state: StateManager) -> None:
        self.client = client
        self.state = state

    async def create_sub_issues(self, spec_id: str, tasks: list[Task] | None = None) -> SubIssueResult:
        """Create a child issue per task and link each under the spec's issue.

        Tasks that already have a sub-issue record are skipped.

        Args:
            spec_id: Spec whose linked issue becomes the parent.
            tasks: Tasks to create children for; defaults to all tasks of the spec.

        Returns:
            SubIssueResult listing the created issue numbers.
        """
        if tasks is None:
            tasks = self.state.list_tasks(spec_id)

        if len(tasks) > MAX_SUB_ISSUES_PER_ISSUE:
            return SubIssueResult(
                success=False,
                message=f"Too many tasks for one issue: {len(tasks)} (limit {MAX_SUB_ISSUES_PER_ISSUE})",
                error="sub-issue limit exceeded",
            )

        parent = self.state.get_sync_record(EntityType.SPEC, spec_id)
        if parent is None or parent.github_number is None:
            return SubIssueResult(
                success=False,
                message=f"Spec {spec_id} is not linked to an issue",
                error="not linked",
            )

        created: list[int] = []
        try:
            parent_node_id = parent.github_node_id
            if not parent_node_id:
                parent_node_id = (await self.client.get_issue(parent.github_number)).node_id

            for task in tasks:
                existing = self.state.get_sync_record(EntityType.SUB_ISSUE, task.id)
                if existing is not None and existing.is_linked:
                    logger.debug(f"Task {task.id} already has sub-issue #{existing.github_number}")
                    continue

                body = f"{task.description}\n\nPart of #{parent.github_number}".lstrip()
                child = await self.client.create_issue(task.title, body)
                await self.client.add_sub_issue(parent_node_id, child.node_id)

                self.state.upsert_sync_record(
                    SyncRecord(
                        entity_type=EntityType.SUB_ISSUE,
                        entity_id=task.id,
                        github_id=self.client.repo,
                        github_number=child.number,
                        github_node_id=child.node_id,
                        sync_status=SyncStatus.SUCCESS,
                        parent_issue_number=parent.github_number,
                        parent_spec_id=spec_id,
                    )
                )
                self.state.set_task_issue(task.id, child.number)
                created.append(child.number)
                logger.info(f"Created sub-issue #{child.number} for task '{task.title}'")

            if created:
                await self._append_checklist(spec_id, parent.github_number)

        except GitHubClientError as e:
            logger.warning(f"Sub-issue creation for spec {spec_id} failed: {e}")
            return SubIssueResult(
                success=False,
                message=f"Created {len(created)} sub-issue(s) before failing",
                created=created,
                parent_issue_number=parent.github_number,
                error=str(e),
            )

        return SubIssueResult(
            success=True,
            message=f"Created {len(created)} sub-issue(s)",
            created=created,
            parent_issue_number=parent.github_number,
        )

    async def _append_checklist(self, spec_id: str, parent_number: int) -> None:
        parent_issue = await self.client.get_issue(parent_number)
        body = parent_issue.body
        if SUB_ISSUE_SECTION_HEADING in body:
            body = body.split(SUB_ISSUE_SECTION_HEADING, 1)[0].rstrip()
        checklist = render_sub_issue_checklist(self.state.list_tasks(spec_id))
        await self.client.update_issue(parent_number, body=f"{body}\n\n{checklist}\n" if body else f"{checklist}\n")

    async def handle_task_completion(self, task_id: str) -> SubIssueResult:
        """Close a task's sub-issue, tick it on the parent, close the parent when all are done."""
        record = self.state.get_sync_record(EntityType.SUB_ISSUE, task_id)
        if record is None or record.github_number is None:
            return SubIssueResult(
                success=False,
                message=f"Task {task_id} has no sub-issue",
                error="not linked",
            )

        try:
            await self.client.close_issue(record.github_number)
            self.state.upsert_sync_record(
                record.model_copy(update={"sync_status": SyncStatus.SUCCESS, "last_synced_at": datetime.now()})
            )
            logger.info(f"Closed sub-issue #{record.github_number}")

            parent_number = record.parent_issue_number
            if parent_number is None:
                return SubIssueResult(success=True, message=f"Closed sub-issue #{record.github_number}")

            await self._tick_parent_checkbox(parent_number, record.github_number)
            parent_closed = await self.close_parent_if_complete(parent_number)

        except GitHubClientError as e:
            logger.warning(f"Completing sub-issue for task {task_id} failed: {e}")
            self.state.mark_sync_status(EntityType.SUB_ISSUE, task_id, SyncStatus.FAILED, str(e))
            return SubIssueResult(success=False, message="Sub-issue completion failed", error=str(e))

        return SubIssueResult(
            success=True,
            message=f"Closed sub-issue #{record.github_number}" + (f" and parent #{parent_number}" if parent_closed else ""),
            parent_issue_number=parent_number,
            parent_closed=parent_closed,
        )

    async def _tick_parent_checkbox(self, parent_number: int, child_number: int) -> None:
        try:
            parent = await self.client.get_issue(parent_number)
        except GitHubClientError as e:
            logger.warning(f"Could not read parent issue #{parent_number}: {e}")
            return

        updated = check_parent_checkbox(parent.body, child_number)
        if updated == parent.body:
            logger.info(f"No checklist line for #{child_number} in parent #{parent_number}")
            return

        await self.client.update_issue(parent_number, body=updated)

    async def all_sub_issues_closed(self, parent_number: int) -> bool:
        """True when every sub-issue listed under ``parent_number`` is closed.

        A failed lookup counts as not closed. No sub-issues means True.
        """
        try:
            children = await self.client.list_sub_issues(parent_number)
        except GitHubClientError as e:
            logger.warning(f"Could not list sub-issues of #{parent_number}: {e}")
            return False

        open_children = [child.number for child in children if not child.is_closed]
        if open_children:
            logger.debug(f"Parent #{parent_number} still has open sub-issues: {open_children}")
            return False
        return True

    async def close_parent_if_complete(self, parent_number: int) -> bool:
        """Close the parent issue if all of its sub-issues are closed.

        Returns:
            True if the parent was closed.
        """
        if not await self.all_sub_issues_closed(parent_number):
            return False

        await self.client.close_issue(parent_number, comment=PARENT_CLOSE_COMMENT)
        logger.info(f"Closed parent issue #{parent_number}: all sub-issues complete")
        return True
