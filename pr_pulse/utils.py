"""
Utility functions for pr-pulse.

Helper functions for environment variables, logging, validation and dates.
"""

import logging
import math
import os
import re
import sys
from datetime import datetime, timezone
from typing import Iterable, Optional


REPO_SLUG_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+$")


class ValidationError(ValueError):
    """Raised when user input is rejected before any fetch or aggregation work."""

    pass


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from requests library
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def get_env_var(name: str, required: bool = True, default: Optional[str] = None) -> str:
    """
    Get environment variable with validation.

    Args:
        name: Environment variable name
        required: Whether the variable is required
        default: Default value if not set

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set
    """
    value = os.getenv(name, default)

    if required and not value:
        raise ValueError(f"Required environment variable not set: {name}")

    return value or ""


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always rounding up."""
    return int(math.floor(value + 0.5))


def split_repo_slug(slug: str) -> tuple[str, str]:
    """
    Split an ``owner/name`` repository identifier.

    Raises:
        ValidationError: If the identifier is malformed
    """
    validate_repo_slug(slug)
    owner, name = slug.split("/", 1)
    return owner, name


def validate_repo_slug(slug: str) -> None:
    """Reject anything that is not ``owner/name``."""
    if not isinstance(slug, str) or not REPO_SLUG_PATTERN.match(slug):
        raise ValidationError(f"Invalid repository format: {slug!r}. Expected: owner/repo")


def validate_repositories(repositories: Iterable[str]) -> list[str]:
    """
    Validate a repository list.

    Returns:
        The repositories as a list

    Raises:
        ValidationError: If the list is empty or contains malformed identifiers
    """
    repos = list(repositories or [])
    if not repos:
        raise ValidationError("No repositories to sync")

    for repo in repos:
        validate_repo_slug(repo)

    return repos


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 datetime string.

    Naive values are taken as UTC. Returns None for empty input.

    Raises:
        ValidationError: If the string is not ISO 8601
    """
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid date format: {value!r}. Use ISO 8601 format.") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as an ISO 8601 UTC string with a ``Z`` suffix."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def validate_date_range(since: datetime, until: datetime) -> None:
    """
    Validate an analysis date window.

    Raises:
        ValidationError: If the start is after the end
    """
    if since > until:
        raise ValidationError("Start date must be before end date")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_csv(value: Optional[str]) -> list[str]:
    """Split a comma separated argument, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
