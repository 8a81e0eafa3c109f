"""
Tests for settings and the repository list.
"""

import json

import pytest

from pr_pulse.config import DEFAULT_DB_PATH, ConfigError, RepoConfigStore, load_settings
from pr_pulse.utils import ValidationError


@pytest.fixture
def config_store(tmp_path):
    return RepoConfigStore(str(tmp_path / "config" / "repos.json"))


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self, monkeypatch):
        """Test settings without environment overrides."""
        for name in ("GITHUB_TOKEN", "PR_PULSE_DB", "PR_PULSE_CONFIG", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings()

        assert settings.github_token is None
        assert settings.db_path == DEFAULT_DB_PATH
        assert settings.log_level == "INFO"

    def test_from_environment(self, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        monkeypatch.setenv("PR_PULSE_DB", "/tmp/cache.db")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = load_settings()

        assert settings.github_token == "ghp_test"
        assert settings.db_path == "/tmp/cache.db"
        assert settings.log_level == "DEBUG"


class TestRepoConfigStore:
    """Tests for RepoConfigStore."""

    def test_missing_file_is_empty(self, config_store):
        """Test a fresh install has no repositories."""
        assert config_store.load().repos == []

    def test_add_persists(self, config_store):
        """Test added repositories are written to disk."""
        config_store.add("owner/repo")

        with open(config_store.path, encoding="utf-8") as f:
            assert json.load(f) == {"repos": ["owner/repo"]}

    def test_add_duplicate(self, config_store):
        """Test adding a tracked repository again fails."""
        config_store.add("owner/repo")

        with pytest.raises(ConfigError, match="Repository already exists in config"):
            config_store.add("owner/repo")

    def test_add_invalid(self, config_store):
        """Test malformed identifiers are rejected."""
        with pytest.raises(ValidationError):
            config_store.add("not a repo")

    def test_add_many(self, config_store):
        """Test bulk adds skip invalid entries and duplicates, keeping order."""
        config_store.add("a/b")

        config = config_store.add_many(["c/d", "bad", "a/b", "e/f", "c/d"])

        assert config.repos == ["a/b", "c/d", "e/f"]
        assert config_store.load().repos == ["a/b", "c/d", "e/f"]

    def test_remove(self, config_store):
        """Test removing a tracked repository."""
        config_store.add_many(["a/b", "c/d"])

        assert config_store.remove("a/b").repos == ["c/d"]

    def test_remove_missing(self, config_store):
        """Test removing an untracked repository fails."""
        with pytest.raises(ConfigError, match="Repository not found in config"):
            config_store.remove("a/b")
