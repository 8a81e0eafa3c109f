"""
Configuration: environment settings and the tracked repository list.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .utils import ValidationError, get_env_var, validate_repo_slug


logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/pr-cache.db"
DEFAULT_CONFIG_PATH = "config/repos.json"


class ConfigError(ValueError):
    """Raised when the repository list cannot be changed as requested."""

    pass


@dataclass
class Settings:
    """Process settings read from the environment."""

    github_token: Optional[str]
    db_path: str = DEFAULT_DB_PATH
    config_path: str = DEFAULT_CONFIG_PATH
    log_level: str = "INFO"


def load_settings() -> Settings:
    """
    Get settings from environment variables.

    GITHUB_TOKEN is optional; without it only public data is reachable and
    rate limits are much lower.
    """
    return Settings(
        github_token=get_env_var("GITHUB_TOKEN", required=False) or None,
        db_path=get_env_var("PR_PULSE_DB", required=False, default=DEFAULT_DB_PATH),
        config_path=get_env_var("PR_PULSE_CONFIG", required=False, default=DEFAULT_CONFIG_PATH),
        log_level=get_env_var("LOG_LEVEL", required=False, default="INFO"),
    )


@dataclass
class RepoConfig:
    """Tracked repositories, in the order they were added."""

    repos: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"repos": list(self.repos)}


class RepoConfigStore:
    """Reads and writes the repository list JSON file."""

    def __init__(self, path: str = DEFAULT_CONFIG_PATH):
        self.path = Path(path)

    def load(self) -> RepoConfig:
        """Load the repository list; a missing file is an empty list."""
        if not self.path.exists():
            return RepoConfig()

        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        return RepoConfig(repos=list(data.get("repos", [])))

    def save(self, config: RepoConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)
        logger.debug(f"Saved {len(config.repos)} repositories to {self.path}")

    def add(self, repo: str) -> RepoConfig:
        """
        Add one repository.

        Raises:
            ValidationError: If the identifier is not owner/repo
            ConfigError: If the repository is already tracked
        """
        validate_repo_slug(repo)

        config = self.load()
        if repo in config.repos:
            raise ConfigError("Repository already exists in config")

        config.repos.append(repo)
        self.save(config)
        logger.info(f"Added {repo} to tracked repositories")
        return config

    def add_many(self, repos: Iterable[str]) -> RepoConfig:
        """Add several repositories, skipping invalid identifiers and duplicates."""
        config = self.load()

        for repo in repos:
            try:
                validate_repo_slug(repo)
            except ValidationError:
                logger.warning(f"Skipping invalid repo format: {repo}")
                continue

            if repo not in config.repos:
                config.repos.append(repo)

        self.save(config)
        return config

    def remove(self, repo: str) -> RepoConfig:
        """
        Stop tracking a repository.

        Raises:
            ConfigError: If the repository is not tracked
        """
        config = self.load()
        if repo not in config.repos:
            raise ConfigError("Repository not found in config")

        config.repos.remove(repo)
        self.save(config)
        logger.info(f"Removed {repo} from tracked repositories")
        return config
