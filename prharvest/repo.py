"""Repository detection and data path management.

Resolves owner/name from the command line, environment or git remote, and
lays out the per-repository files a run reads and writes.
"""

from __future__ import annotations

import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .config import DATA_DIR
from .errors import ConfigurationError


@dataclass
class RepoInfo:
    """Repository information."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def data_dir(self) -> Path:
        """Data directory for this repo."""
        return get_data_dir() / self.owner / self.name

    @property
    def checkpoint_file(self) -> Path:
        return self.data_dir / ".pending_state.json"

    @property
    def report_file(self) -> Path:
        return self.data_dir / "data.json"

    @property
    def stats_file(self) -> Path:
        return self.data_dir / "ui-stats.json"

    @property
    def details_file(self) -> Path:
        return self.data_dir / "ui-details.json"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "harvest.log"


def get_data_dir() -> Path:
    """Get the root data directory (PRHARVEST_DATA_DIR, default ./data)."""
    return Path(os.environ.get("PRHARVEST_DATA_DIR", DATA_DIR))


def parse_repo_arg(value: str) -> RepoInfo:
    """Parse an ``owner/name`` argument."""
    match = re.fullmatch(r"\s*([\w.-]+)/([\w.-]+?)(?:\.git)?\s*", value)
    if not match:
        raise ConfigurationError(f"Repository must look like owner/name, got {value!r}")
    return RepoInfo(owner=match.group(1), name=match.group(2))


def parse_git_remote_url(url: str) -> RepoInfo | None:
    """Parse owner/repo from git remote URL.

    Supports:
    - git@github.com:owner/repo.git
    - https://github.com/owner/repo(.git)
    - ssh://git@github.com/owner/repo.git
    """
    patterns = [
        r"git@[\w.-]+:([^/]+)/([^/]+?)(?:\.git)?$",
        r"https?://[\w.-]+/([^/]+)/([^/]+?)(?:\.git)?$",
        r"ssh://git@[\w.-]+/([^/]+)/([^/]+?)(?:\.git)?$",
    ]
    for pattern in patterns:
        match = re.match(pattern, url)
        if match:
            return RepoInfo(owner=match.group(1), name=match.group(2))
    return None


def detect_repo_from_git(remote: str = "origin") -> RepoInfo | None:
    """Detect repo from a git remote in the current directory."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", remote],
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    return parse_git_remote_url(result.stdout.strip())


def get_repo_from_env() -> RepoInfo | None:
    """Get repo from environment variables."""
    owner = os.environ.get("REPO_OWNER")
    name = os.environ.get("REPO_NAME")
    if owner and name:
        return RepoInfo(owner=owner, name=name)
    return None


def get_repo(value: str | None = None) -> RepoInfo:
    """Get repo info with fallback chain.

    Priority:
    1. Explicit ``owner/name`` value
    2. Environment variables (REPO_OWNER, REPO_NAME)
    3. Git remote detection

    Raises ConfigurationError if repo cannot be determined.
    """
    if value:
        return parse_repo_arg(value)

    repo = get_repo_from_env() or detect_repo_from_git()
    if repo:
        return repo

    raise ConfigurationError(
        "Could not determine repository. Either:\n"
        "  1. Pass --repo owner/name, or\n"
        "  2. Set REPO_OWNER and REPO_NAME env vars, or\n"
        "  3. Run from a git repo with a GitHub remote"
    )
