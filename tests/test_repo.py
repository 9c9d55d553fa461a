"""Tests for repository detection and path management."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from prharvest.errors import ConfigurationError
from prharvest.repo import (
    RepoInfo,
    get_data_dir,
    get_repo,
    get_repo_from_env,
    parse_git_remote_url,
    parse_repo_arg,
)


class TestParseGitRemoteUrl:
    """Tests for parsing git remote URLs."""

    def test_ssh_format(self):
        """Parse SSH format: git@github.com:owner/repo.git"""
        result = parse_git_remote_url("git@github.com:myorg/myrepo.git")
        assert result is not None
        assert result.owner == "myorg"
        assert result.name == "myrepo"

    def test_ssh_format_no_git_suffix(self):
        result = parse_git_remote_url("git@github.com:myorg/myrepo")
        assert result == RepoInfo(owner="myorg", name="myrepo")

    def test_https_format(self):
        """Parse HTTPS format: https://github.com/owner/repo.git"""
        result = parse_git_remote_url("https://github.com/myorg/myrepo.git")
        assert result == RepoInfo(owner="myorg", name="myrepo")

    def test_https_format_no_git_suffix(self):
        result = parse_git_remote_url("https://github.com/myorg/myrepo")
        assert result == RepoInfo(owner="myorg", name="myrepo")

    def test_ssh_url_format(self):
        """Parse ssh:// format: ssh://git@github.com/owner/repo.git"""
        result = parse_git_remote_url("ssh://git@github.com/myorg/myrepo.git")
        assert result == RepoInfo(owner="myorg", name="myrepo")

    def test_enterprise_github(self):
        result = parse_git_remote_url("https://github.mycompany.com/team/repo.git")
        assert result == RepoInfo(owner="team", name="repo")

    def test_invalid_url(self):
        """Return None for invalid URLs."""
        assert parse_git_remote_url("not-a-url") is None
        assert parse_git_remote_url("") is None
        assert parse_git_remote_url("ftp://github.com/foo/bar") is None


class TestParseRepoArg:
    def test_owner_name(self):
        assert parse_repo_arg("acme/widgets") == RepoInfo(owner="acme", name="widgets")

    def test_strips_git_suffix_and_whitespace(self):
        assert parse_repo_arg(" acme/widgets.git ") == RepoInfo(owner="acme", name="widgets")

    @pytest.mark.parametrize("value", ["acme", "acme/", "/widgets", "a/b/c", "acme widgets"])
    def test_rejects_malformed(self, value):
        with pytest.raises(ConfigurationError, match="owner/name"):
            parse_repo_arg(value)


class TestRepoInfo:
    """Tests for RepoInfo dataclass."""

    def test_full_name(self):
        repo = RepoInfo(owner="myorg", name="myrepo")
        assert repo.full_name == "myorg/myrepo"

    def test_data_paths(self, data_dir):
        """Test data path properties."""
        repo = RepoInfo(owner="myorg", name="myrepo")

        assert repo.data_dir == data_dir / "myorg" / "myrepo"
        assert repo.checkpoint_file == data_dir / "myorg" / "myrepo" / ".pending_state.json"
        assert repo.report_file == data_dir / "myorg" / "myrepo" / "data.json"
        assert repo.stats_file == data_dir / "myorg" / "myrepo" / "ui-stats.json"
        assert repo.details_file == data_dir / "myorg" / "myrepo" / "ui-details.json"
        assert repo.log_file == data_dir / "myorg" / "myrepo" / "harvest.log"


class TestGetDataDir:
    def test_default_data_dir(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_data_dir() == Path("data")

    def test_env_override(self):
        with patch.dict(os.environ, {"PRHARVEST_DATA_DIR": "/custom/data"}):
            assert get_data_dir() == Path("/custom/data")


class TestGetRepoFromEnv:
    """Tests for environment variable repo detection."""

    def test_env_vars_set(self):
        """Return RepoInfo when both env vars are set."""
        with patch.dict(os.environ, {"REPO_OWNER": "envorg", "REPO_NAME": "envrepo"}):
            repo = get_repo_from_env()
            assert repo is not None
            assert repo.owner == "envorg"
            assert repo.name == "envrepo"

    def test_env_vars_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_repo_from_env() is None

    def test_env_vars_partial(self):
        """Return None when only one env var is set."""
        with patch.dict(os.environ, {"REPO_OWNER": "myorg"}, clear=True):
            assert get_repo_from_env() is None


class TestGetRepo:
    """Tests for the main get_repo function with fallback chain."""

    def test_explicit_value_wins(self):
        with patch.dict(os.environ, {"REPO_OWNER": "envorg", "REPO_NAME": "envrepo"}):
            assert get_repo("acme/widgets").full_name == "acme/widgets"

    def test_env_takes_precedence_over_git(self):
        with (
            patch.dict(os.environ, {"REPO_OWNER": "envorg", "REPO_NAME": "envrepo"}),
            patch("prharvest.repo.detect_repo_from_git") as detect,
        ):
            repo = get_repo()
        assert repo.full_name == "envorg/envrepo"
        detect.assert_not_called()

    def test_git_fallback(self):
        with (
            patch.dict(os.environ, {}, clear=True),
            patch(
                "prharvest.repo.detect_repo_from_git",
                return_value=RepoInfo(owner="gitorg", name="gitrepo"),
            ),
        ):
            assert get_repo().full_name == "gitorg/gitrepo"

    def test_raises_when_no_repo_found(self):
        with (
            patch.dict(os.environ, {}, clear=True),
            patch("prharvest.repo.detect_repo_from_git", return_value=None),
        ):
            with pytest.raises(ConfigurationError, match="Could not determine repository"):
                get_repo()
