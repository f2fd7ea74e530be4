"""GitHub issue, project and pull request synchronization."""

from specflow.sync.github_client import (
    GitHubClient,
    GitHubClientError,
    GitHubGoneError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from specflow.sync.github_sync import GitHubSyncService, PullRequestResult, SyncResult
from specflow.sync.label_manager import LabelManager
from specflow.sync.pr_cleanup import CleanupResult, PullRequestCleanup
from specflow.sync.status import SyncStatusReport, build_sync_report
from specflow.sync.sub_issues import SubIssueManager, SubIssueResult

__all__ = [
    "CleanupResult",
    "GitHubClient",
    "GitHubClientError",
    "GitHubGoneError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubSyncService",
    "LabelManager",
    "PullRequestCleanup",
    "PullRequestResult",
    "SubIssueManager",
    "SubIssueResult",
    "SyncResult",
    "SyncStatusReport",
    "build_sync_report",
]
