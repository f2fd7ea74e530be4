"""Configuration management for specflow."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

CONFIG_DIR_NAME = ".specflow"
STATE_GITIGNORE = "state.db*\n"


class BranchConfig(BaseModel):
    """Branch policy settings."""

    protected: list[str] | None = Field(
        default=None,
        description="Branches where direct work is disallowed. None means auto-detect from origin/HEAD",
    )
    base_branch: str = Field(default="develop", description="Base for new spec branches")
    release_branch: str = Field(default="main", description="Base for hotfix spec branches")
    create_on_implementation: bool = Field(
        default=True,
        description="Create a spec branch when entering implementation from a protected branch",
    )


class GitHubLabelConfig(BaseModel):
    """Label configuration for phase labels."""

    prefix: str = Field(default="phase:", description="Prefix for phase labels")
    color_requirements: str = Field(default="C5DEF5", description="Hex color for requirements (light blue)")
    color_design: str = Field(default="BFD4F2", description="Hex color for design (lavender)")
    color_tasks: str = Field(default="FBCA04", description="Hex color for tasks (yellow)")
    color_implementation: str = Field(default="1D76DB", description="Hex color for implementation (blue)")
    color_completed: str = Field(default="0E8A16", description="Hex color for completed (green)")


class GitHubConfig(BaseModel):
    """GitHub issue sync settings."""

    enabled: bool = Field(default=False, description="Enable GitHub issue synchronization")
    owner: str | None = Field(default=None, description="Repository owner (user or organization)")
    repo: str | None = Field(default=None, description="Repository name")
    project_number: int | None = Field(default=None, description="Projects v2 board number, if any")
    default_base_branch: str | None = Field(
        default=None,
        description="Pull request base branch. Falls back to branches.base_branch",
    )
    labels: GitHubLabelConfig = Field(default_factory=GitHubLabelConfig)
    create_labels_if_missing: bool = Field(default=True, description="Create labels if they don't exist")
    dry_run: bool = Field(default=False, description="Log operations without executing")

    @property
    def repo_slug(self) -> str | None:
        """Return 'owner/repo' when both parts are configured."""
        if self.owner and self.repo:
            return f"{self.owner}/{self.repo}"
        return None


class Config(BaseModel):
    """specflow configuration.

    Environment overrides (applied by ``load``):
        PROTECTED_BRANCHES: comma-separated list for branches.protected
        BASE_BRANCH: branches.base_branch
        GITHUB_DEFAULT_BASE_BRANCH: github.default_base_branch
        GITHUB_OWNER / GITHUB_REPO: github.owner / github.repo
    """

    auto_commit: bool = Field(default=True, description="Commit spec documents on phase changes")
    commit_author: str = Field(default="specflow", description="Author name used for automatic commits")
    registration_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for workflow handlers to register before failing",
    )
    branches: BranchConfig = Field(default_factory=BranchConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """Load configuration from file or use defaults, then apply env overrides."""
        if config_path is None:
            config_path = Path(CONFIG_DIR_NAME) / "config.yaml"

        if config_path.exists():
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
            config = cls.model_validate(data)
        else:
            config = cls()

        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        """Overlay environment variables onto the loaded values."""
        protected = os.getenv("PROTECTED_BRANCHES")
        if protected:
            self.branches.protected = [b.strip() for b in protected.split(",") if b.strip()]

        base = os.getenv("BASE_BRANCH")
        if base:
            self.branches.base_branch = base

        pr_base = os.getenv("GITHUB_DEFAULT_BASE_BRANCH")
        if pr_base:
            self.github.default_base_branch = pr_base

        owner = os.getenv("GITHUB_OWNER")
        if owner:
            self.github.owner = owner

        repo = os.getenv("GITHUB_REPO")
        if repo:
            self.github.repo = repo

    def save(self, config_path: Path) -> None:
        """Save configuration to file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with config_path.open("w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)


def get_specflow_dir(project_root: Path | None = None) -> Path:
    """Get the .specflow directory, creating if needed.

    A fresh directory gets a .gitignore so the state database is never auto-committed.
    """
    if project_root is None:
        project_root = Path.cwd()
    specflow_dir = project_root / CONFIG_DIR_NAME
    specflow_dir.mkdir(parents=True, exist_ok=True)
    gitignore = specflow_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text(STATE_GITIGNORE)
    return specflow_dir
