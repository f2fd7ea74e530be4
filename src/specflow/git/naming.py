"""Deterministic branch naming and branch-name validation."""

from __future__ import annotations

import re
from enum import Enum

SHORT_ID_LENGTH = 8
MAX_SLUG_LENGTH = 50
EMPTY_SLUG = "untitled"

SPEC_ID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
SAFE_BRANCH_PATTERN = re.compile(r"^[A-Za-z0-9._/-]+$")
RESERVED_REF_PREFIXES = ("refs/heads/", "refs/tags/", "refs/remotes/")


class InvalidSpecIdError(ValueError):
    """Spec id is not a well-formed UUID."""


class UnsafeBranchNameError(ValueError):
    """Branch name could be interpreted as something other than a branch."""


class BranchCategory(str, Enum):
    """Kind of change a spec represents, inferred from its name."""

    HOTFIX = "hotfix"
    FIX = "fix"
    REFACTOR = "refactor"
    DOCS = "docs"
    CHORE = "chore"
    FEATURE = "feature"


# Checked in order; first hit wins, so "critical bug" is a hotfix, not a fix.
CATEGORY_KEYWORDS: list[tuple[BranchCategory, tuple[str, ...]]] = [
    (BranchCategory.HOTFIX, ("hotfix", "critical", "urgent", "production")),
    (BranchCategory.FIX, ("fix", "bug", "error")),
    (BranchCategory.REFACTOR, ("refactor", "improve", "cleanup")),
    (BranchCategory.DOCS, ("docs", "readme", "documentation")),
    (BranchCategory.CHORE, ("chore", "update", "dependency", "dependencies")),
]


def infer_category(spec_name: str) -> BranchCategory:
    """Infer the change category from keywords in a spec name."""
    lowered = spec_name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return BranchCategory.FEATURE


def validate_spec_id(spec_id: str) -> None:
    """Raise InvalidSpecIdError unless ``spec_id`` is a UUID."""
    if not SPEC_ID_PATTERN.match(spec_id):
        raise InvalidSpecIdError(f"Invalid spec id: {spec_id!r} (expected a UUID)")


def short_id(spec_id: str) -> str:
    return spec_id[:SHORT_ID_LENGTH]


def sanitize_slug(text: str) -> str:
    """Turn arbitrary text into a branch-safe slug.

    Lowercases, replaces anything outside ``[a-z0-9_-]`` with ``-``, collapses
    runs of ``-`` and trims them from both ends. The result is never empty and
    at most MAX_SLUG_LENGTH characters.
    """
    slug = text.lower()
    slug = re.sub(r"[^a-z0-9_-]", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or EMPTY_SLUG


def generate_branch_name(spec_id: str, *, from_protected: bool, slug: str | None = None) -> str:
    """Build the branch name for a spec.

    Args:
        spec_id: The spec UUID; its first eight characters identify the branch.
        from_protected: Whether the branch is cut from a protected branch.
        slug: Optional free text appended after the short id (sanitized).

    Returns:
        ``feature/spec-<short>[-<slug>]`` off a protected branch,
        ``spec/<short>[-<slug>]`` otherwise.
    """
    base = f"feature/spec-{short_id(spec_id)}" if from_protected else f"spec/{short_id(spec_id)}"
    if slug:
        return f"{base}-{sanitize_slug(slug)}"
    return base


def validate_branch_name(name: str) -> None:
    """Reject names that are unsafe to hand to git as a branch argument.

    Raises:
        UnsafeBranchNameError: For empty names, whitespace or shell metacharacters,
            path traversal, option-like names, and reserved refs.
    """
    if not name:
        raise UnsafeBranchNameError("Branch name must not be empty")
    if not SAFE_BRANCH_PATTERN.match(name):
        raise UnsafeBranchNameError(f"Branch name contains disallowed characters: {name!r}")
    if ".." in name or "//" in name:
        raise UnsafeBranchNameError(f"Branch name contains a path traversal sequence: {name!r}")
    if name.startswith(("-", "/", ".")) or name.endswith(("/", ".", ".lock")):
        raise UnsafeBranchNameError(f"Branch name has an invalid prefix or suffix: {name!r}")
    if name == "HEAD" or name.startswith(RESERVED_REF_PREFIXES):
        raise UnsafeBranchNameError(f"Branch name is a reserved ref: {name!r}")
