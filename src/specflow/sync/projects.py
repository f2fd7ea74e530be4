"""GitHub Projects (v2) board integration over GraphQL."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from specflow.core.models import SpecPhase
from specflow.sync.github_client import GitHubClientError, GitHubNotFoundError

if TYPE_CHECKING:
    from specflow.sync.github_client import GitHubClient

logger = logging.getLogger(__name__)

STATUS_FIELD_NAME = "Status"

OWNER_TYPE_QUERY = """
query($owner: String!) {
    user(login: $owner) { id }
}
"""

PROJECT_QUERY = """
query($owner: String!, $number: Int!) {
    %s(login: $owner) {
        projectV2(number: $number) {
            id
            number
            title
            url
            fields(first: 20) {
                nodes {
                    ... on ProjectV2SingleSelectField { id name options { id name } }
                }
            }
        }
    }
}
"""

ADD_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
    addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
        item { id }
    }
}
"""

UPDATE_FIELD_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
    updateProjectV2ItemFieldValue(input: {
        projectId: $projectId
        itemId: $itemId
        fieldId: $fieldId
        value: {singleSelectOptionId: $optionId}
    }) {
        projectV2Item { id }
    }
}
"""


class ProjectStatus(str, Enum):
    """Values of the board's Status column."""

    TODO = "Todo"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


def project_status_for_phase(phase: SpecPhase) -> ProjectStatus:
    match phase:
        case SpecPhase.REQUIREMENTS:
            return ProjectStatus.TODO
        case SpecPhase.DESIGN | SpecPhase.TASKS | SpecPhase.IMPLEMENTATION:
            return ProjectStatus.IN_PROGRESS
        case SpecPhase.COMPLETED:
            return ProjectStatus.DONE


@dataclass
class ProjectInfo:
    """A resolved Projects v2 board."""

    id: str
    number: int
    title: str
    url: str = ""
    status_field_id: str | None = None
    status_options: dict[str, str] | None = None  # option name -> option id


class ProjectBoard:
    """Adds issues to a project board and moves them between status columns."""

    def __init__(self, client: GitHubClient, owner: str, project_number: int) -> None:
        self.client = client
        self.owner = owner
        self.project_number = project_number
        self._project: ProjectInfo | None = None

    async def _owner_type(self) -> str:
        try:
            data = await self.client.graphql(OWNER_TYPE_QUERY, {"owner": self.owner})
        except GitHubClientError:
            # Organizations fail the user lookup
            return "organization"
        return "user" if data.get("user") else "organization"

    async def get_project(self) -> ProjectInfo:
        """Resolve (and cache) the configured project.

        Raises:
            GitHubNotFoundError: If the owner has no project with that number.
        """
        if self._project is not None:
            return self._project

        owner_type = await self._owner_type()
        data = await self.client.graphql(
            PROJECT_QUERY % owner_type,
            {"owner": self.owner, "number": self.project_number},
        )
        project: dict[str, Any] | None = (data.get(owner_type) or {}).get("projectV2")
        if not project:
            raise GitHubNotFoundError(f"Project #{self.project_number} not found for {self.owner}")

        status_field = next(
            (f for f in project.get("fields", {}).get("nodes", []) if f and f.get("name") == STATUS_FIELD_NAME),
            None,
        )
        self._project = ProjectInfo(
            id=project["id"],
            number=project["number"],
            title=project["title"],
            url=project.get("url", ""),
            status_field_id=status_field["id"] if status_field else None,
            status_options={o["name"]: o["id"] for o in status_field.get("options", [])} if status_field else None,
        )
        return self._project

    async def add_item(self, content_node_id: str) -> str:
        """Add an issue (by node id) to the board.

        Returns:
            The project item id.
        """
        project = await self.get_project()
        data = await self.client.graphql(
            ADD_ITEM_MUTATION,
            {"projectId": project.id, "contentId": content_node_id},
        )
        item_id = data["addProjectV2ItemById"]["item"]["id"]
        logger.info(f"Added {content_node_id} to project #{project.number} as {item_id}")
        return item_id

    async def set_status(self, item_id: str, status: ProjectStatus) -> bool:
        """Move an item to a Status column.

        Returns:
            False if the board has no Status field or no matching option.
        """
        project = await self.get_project()
        if not project.status_field_id or not project.status_options:
            logger.warning(f"Project #{project.number} has no '{STATUS_FIELD_NAME}' field")
            return False

        option_id = project.status_options.get(status.value)
        if option_id is None:
            logger.warning(f"Project #{project.number} has no status option '{status.value}'")
            return False

        await self.client.graphql(
            UPDATE_FIELD_MUTATION,
            {
                "projectId": project.id,
                "itemId": item_id,
                "fieldId": project.status_field_id,
                "optionId": option_id,
            },
        )
        return True
