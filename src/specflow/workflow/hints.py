"""Remediation hints shown when best-effort automation fails."""

from __future__ import annotations

INIT_HINT = "Run: specflow init --github-owner <owner> --github-repo <repo>"
TOKEN_HINT = "Export GITHUB_TOKEN with repo scope, or set github.enabled: false"
REPOSITORY_HINT = "Set github.owner/github.repo in .specflow/config.yaml or GITHUB_OWNER/GITHUB_REPO"
COMMIT_HINT = "Commit manually: git add -A && git commit"


def push_hint(branch: str | None) -> str:
    return f"Push manually: git push -u origin {branch or '<branch>'}"


def remediation_hint(error_text: str, branch: str | None = None) -> str | None:
    """Suggest a manual fix for a failure, keyed on its message. None if nothing fits."""
    text = error_text.lower()
    if "not initialized" in text:
        return INIT_HINT
    if "no github token" in text or "authentication failed" in text:
        return TOKEN_HINT
    if "owner or repo not found" in text:
        return REPOSITORY_HINT
    if "push" in text:
        return push_hint(branch)
    if "commit" in text:
        return COMMIT_HINT
    return None
