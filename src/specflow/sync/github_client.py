"""GitHub API client using httpx for spec/issue synchronization.

This module provides an async HTTP client for the GitHub REST operations the
workflow needs (issues, comments, labels, sub-issues, pull requests) plus a
GraphQL entry point. Uses GITHUB_TOKEN environment variable for authentication.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# GitHub API constants
GITHUB_API_BASE = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0
MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0  # seconds
MAX_BACKOFF = 60.0


class GitHubClientError(Exception):
    """Base exception for GitHub client errors."""


class GitHubAuthError(GitHubClientError):
    """Authentication with GitHub failed."""


class GitHubRateLimitError(GitHubClientError):
    """GitHub API rate limit exceeded."""

    def __init__(self, message: str, reset_at: int | None = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at  # Unix timestamp when rate limit resets


class GitHubNotFoundError(GitHubClientError):
    """Requested resource not found."""


class GitHubGoneError(GitHubNotFoundError):
    """Resource existed but was deleted (HTTP 410)."""


@dataclass
class GitHubIssue:
    """Represents a GitHub issue."""

    number: int
    title: str
    state: str  # "open" or "closed"
    labels: list[str] = field(default_factory=list)
    body: str = ""
    node_id: str = ""
    url: str = ""

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"


@dataclass
class GitHubLabel:
    """Represents a GitHub label."""

    name: str
    color: str
    description: str = ""


@dataclass
class GitHubPullRequest:
    """Represents a GitHub pull request."""

    number: int
    url: str
    head: str
    base: str
    merged: bool = False
    merged_at: datetime | None = None


def _parse_issue(data: dict[str, Any]) -> GitHubIssue:
    return GitHubIssue(
        number=data["number"],
        title=data["title"],
        state=data["state"],
        labels=[label["name"] for label in data.get("labels", [])],
        body=data.get("body") or "",
        node_id=data.get("node_id", ""),
        url=data.get("html_url", ""),
    )


def _parse_pull_request(data: dict[str, Any]) -> GitHubPullRequest:
    merged_at = data.get("merged_at")
    return GitHubPullRequest(
        number=data["number"],
        url=data.get("html_url", ""),
        head=data["head"]["ref"],
        base=data["base"]["ref"],
        merged=bool(data.get("merged")),
        merged_at=datetime.fromisoformat(merged_at) if merged_at else None,
    )


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"


def _retry_delay(response: httpx.Response, attempt: int) -> float:
    """Seconds to wait before the next attempt; Retry-After wins when present."""
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return max(float(retry_after), 0.0)
        except ValueError:
            logger.debug(f"Ignoring unparseable Retry-After header: {retry_after!r}")
    return min(INITIAL_BACKOFF * (2**attempt), MAX_BACKOFF)


class GitHubClient:
    """Async GitHub API client.

    Uses GITHUB_TOKEN environment variable for authentication.
    Rate-limit responses (429, or 403 with no remaining quota) are retried with
    exponential backoff up to MAX_RETRIES attempts; other errors are raised
    immediately.
    """

    def __init__(
        self,
        repo: str,
        token: str | None = None,
        dry_run: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            repo: Repository in 'owner/repo' format.
            token: GitHub token. If None, reads from GITHUB_TOKEN env var.
            dry_run: If True, log mutating operations without executing.
            timeout: Request timeout in seconds.
            max_retries: Attempts per call when rate limited.

        Raises:
            GitHubAuthError: If no token is provided or found in environment.
        """
        self.repo = repo
        self.dry_run = dry_run
        self.timeout = timeout
        self.max_retries = max_retries

        self._token = token or os.getenv("GITHUB_TOKEN")
        if not self._token:
            raise GitHubAuthError("No GitHub token provided. Set GITHUB_TOKEN environment variable or pass token parameter.")

        # Build headers - never log the token!
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        self._client: httpx.AsyncClient | None = None

    @property
    def owner(self) -> str:
        return self.repo.split("/", 1)[0]

    async def __aenter__(self) -> GitHubClient:
        """Enter async context manager."""
        self._client = httpx.AsyncClient(
            base_url=GITHUB_API_BASE,
            headers=self._headers,
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, ensuring it's initialized."""
        if self._client is None:
            raise RuntimeError("GitHubClient must be used as async context manager")
        return self._client

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an HTTP request, retrying rate-limited responses.

        Args:
            method: HTTP method (GET, POST, PATCH, etc.).
            endpoint: API endpoint (e.g., "/repos/owner/repo/issues/1").
            **kwargs: Additional arguments passed to httpx request.

        Returns:
            httpx.Response object.

        Raises:
            GitHubAuthError: If authentication fails.
            GitHubRateLimitError: If still rate limited after all attempts.
            GitHubGoneError: If the resource was deleted (410).
            GitHubNotFoundError: If resource is not found (404).
            GitHubClientError: For other API or transport errors.
        """
        for attempt in range(self.max_retries):
            try:
                response = await self.client.request(method, endpoint, **kwargs)
            except httpx.HTTPError as e:
                raise GitHubClientError(f"HTTP error calling {method} {endpoint}: {e}") from e

            if _is_rate_limited(response):
                if attempt < self.max_retries - 1:
                    wait_time = _retry_delay(response, attempt)
                    logger.warning(f"Rate limit hit, waiting {wait_time:.1f}s (attempt {attempt + 1}/{self.max_retries})")
                    await asyncio.sleep(wait_time)
                    continue
                reset_at = int(response.headers.get("X-RateLimit-Reset", "0") or 0)
                raise GitHubRateLimitError(
                    f"GitHub API rate limit exceeded after {self.max_retries} attempts. Resets at {reset_at}",
                    reset_at=reset_at,
                )

            if response.status_code == 401:
                raise GitHubAuthError("GitHub authentication failed. Check your token.")

            if response.status_code == 404:
                raise GitHubNotFoundError(f"Resource not found: {endpoint}")

            if response.status_code == 410:
                raise GitHubGoneError(f"Resource was deleted: {endpoint}")

            if response.status_code >= 400:
                error_body = response.text
                logger.error(f"GitHub API error {response.status_code}: {error_body}")
                raise GitHubClientError(f"GitHub API error {response.status_code}: {error_body[:200]}")

            return response

        raise GitHubClientError("Max retries exceeded")

    # =========================================================================
    # Issue Operations
    # =========================================================================

    async def get_issue(self, issue_number: int) -> GitHubIssue:
        """Get a single issue by number."""
        endpoint = f"/repos/{self.repo}/issues/{issue_number}"
        response = await self._request("GET", endpoint)
        return _parse_issue(response.json())

    async def create_issue(
        self,
        title: str,
        body: str,
        labels: list[str] | None = None,
    ) -> GitHubIssue:
        """Create an issue.

        Args:
            title: Issue title.
            body: Issue body (markdown).
            labels: Label names to apply.

        Returns:
            The created GitHubIssue.
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would create issue '{title}'")
            return GitHubIssue(number=0, title=title, state="open", labels=labels or [], body=body)

        endpoint = f"/repos/{self.repo}/issues"
        payload: dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = labels
        response = await self._request("POST", endpoint, json=payload)
        return _parse_issue(response.json())

    async def update_issue(
        self,
        issue_number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        labels: list[str] | None = None,
        state: str | None = None,
        state_reason: str | None = None,
    ) -> GitHubIssue | None:
        """Patch the given fields of an issue. Fields left as None are untouched."""
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if labels is not None:
            payload["labels"] = labels
        if state is not None:
            payload["state"] = state
        if state_reason is not None:
            payload["state_reason"] = state_reason

        if self.dry_run:
            logger.info(f"[DRY RUN] Would update #{issue_number}: {sorted(payload)}")
            return None

        endpoint = f"/repos/{self.repo}/issues/{issue_number}"
        response = await self._request("PATCH", endpoint, json=payload)
        return _parse_issue(response.json())

    async def close_issue(
        self,
        issue_number: int,
        comment: str | None = None,
        state_reason: str = "completed",
    ) -> bool:
        """Close an issue, optionally commenting first.

        Returns:
            True if closed successfully.
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would close #{issue_number}" + (f" with comment: {comment}" if comment else ""))
            return True

        if comment:
            await self.add_comment(issue_number, comment)

        endpoint = f"/repos/{self.repo}/issues/{issue_number}"
        await self._request(
            "PATCH",
            endpoint,
            json={"state": "closed", "state_reason": state_reason},
        )
        return True

    async def add_comment(
        self,
        issue_number: int,
        body: str,
    ) -> int:
        """Add a comment to an issue.

        Returns:
            Comment ID.
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would add comment to #{issue_number}: {body[:50]}...")
            return 0

        endpoint = f"/repos/{self.repo}/issues/{issue_number}/comments"
        response = await self._request(
            "POST",
            endpoint,
            json={"body": body},
        )
        return response.json()["id"]

    # =========================================================================
    # Sub-issue Operations
    # =========================================================================

    async def list_sub_issues(self, issue_number: int) -> list[GitHubIssue]:
        """List the sub-issues linked under a parent issue."""
        endpoint = f"/repos/{self.repo}/issues/{issue_number}/sub_issues"
        response = await self._request("GET", endpoint, params={"per_page": 100})
        return [_parse_issue(item) for item in response.json()]

    async def add_sub_issue(self, parent_node_id: str, child_node_id: str) -> None:
        """Link ``child`` under ``parent`` using their GraphQL node ids."""
        mutation = """
            mutation($issueId: ID!, $subIssueId: ID!) {
                addSubIssue(input: {issueId: $issueId, subIssueId: $subIssueId}) {
                    issue { id }
                    subIssue { id }
                }
            }
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would link sub-issue {child_node_id} under {parent_node_id}")
            return

        await self.graphql(
            mutation,
            {"issueId": parent_node_id, "subIssueId": child_node_id},
            headers={"GraphQL-Features": "sub_issues"},
        )

    # =========================================================================
    # Label Operations
    # =========================================================================

    async def get_label(self, name: str) -> GitHubLabel | None:
        """Get a label by name, or None if it does not exist."""
        endpoint = f"/repos/{self.repo}/labels/{name}"
        try:
            response = await self._request("GET", endpoint)
        except GitHubNotFoundError:
            return None
        data = response.json()
        return GitHubLabel(
            name=data["name"],
            color=data["color"],
            description=data.get("description") or "",
        )

    async def create_label(
        self,
        name: str,
        color: str,
        description: str = "",
    ) -> GitHubLabel:
        """Create a new label.

        Args:
            name: Label name.
            color: Hex color (without #).
            description: Label description.
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would create label '{name}' with color {color}")
            return GitHubLabel(name=name, color=color, description=description)

        endpoint = f"/repos/{self.repo}/labels"
        response = await self._request(
            "POST",
            endpoint,
            json={
                "name": name,
                "color": color,
                "description": description,
            },
        )
        data = response.json()
        return GitHubLabel(
            name=data["name"],
            color=data["color"],
            description=data.get("description") or "",
        )

    async def ensure_label(
        self,
        name: str,
        color: str,
        description: str = "",
    ) -> GitHubLabel:
        """Ensure a label exists, creating if necessary."""
        existing = await self.get_label(name)
        if existing:
            return existing
        return await self.create_label(name, color, description)

    # =========================================================================
    # Pull Requests
    # =========================================================================

    async def create_pull_request(
        self,
        title: str,
        head: str,
        base: str,
        body: str = "",
    ) -> GitHubPullRequest:
        """Open a pull request from ``head`` into ``base``."""
        if self.dry_run:
            logger.info(f"[DRY RUN] Would open PR {head} -> {base}: '{title}'")
            return GitHubPullRequest(number=0, url="", head=head, base=base)

        endpoint = f"/repos/{self.repo}/pulls"
        response = await self._request(
            "POST",
            endpoint,
            json={"title": title, "head": head, "base": base, "body": body},
        )
        data = response.json()
        return GitHubPullRequest(
            number=data["number"],
            url=data.get("html_url", ""),
            head=head,
            base=base,
        )

    async def get_pull_request(self, pr_number: int) -> GitHubPullRequest:
        """Get a pull request, including whether it has merged."""
        endpoint = f"/repos/{self.repo}/pulls/{pr_number}"
        response = await self._request("GET", endpoint)
        return _parse_pull_request(response.json())

    # =========================================================================
    # GraphQL
    # =========================================================================

    async def graphql(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object.

        Raises:
            GitHubRateLimitError: If GraphQL reports RATE_LIMITED.
            GitHubClientError: If the response carries errors.
        """
        response = await self._request(
            "POST",
            "/graphql",
            json={"query": query, "variables": variables or {}},
            headers=headers,
        )
        payload = response.json()

        errors = payload.get("errors") or []
        if errors:
            if any(error.get("type") == "RATE_LIMITED" for error in errors):
                raise GitHubRateLimitError("GitHub GraphQL rate limit exceeded")
            messages = "; ".join(error.get("message", "unknown error") for error in errors)
            raise GitHubClientError(f"GraphQL error: {messages}")

        return payload.get("data") or {}
