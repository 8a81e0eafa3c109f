"""
PR data collection and transformation.

Turns GitHub GraphQL pages into typed source models and source PRs into
cacheable records.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional, Protocol

from .github_client import GitHubClient
from .languages import attribute_languages
from .models import (
    PullRequestRecord,
    ReviewEvent,
    SourceFile,
    SourcePage,
    SourcePullRequest,
    SourceReview,
)


logger = logging.getLogger(__name__)

STATE_MAP = {"OPEN": "open", "CLOSED": "closed", "MERGED": "merged"}


class PullRequestSource(Protocol):
    """Anything that yields PR pages ordered by last update, newest first."""

    def fetch_page(self, owner: str, repo: str, cursor: Optional[str]) -> SourcePage:
        ...


class PullRequestCollector:
    """Collects PR pages from the GitHub GraphQL API."""

    def __init__(self, client: GitHubClient):
        """
        Initialize collector with GitHub API client.

        Args:
            client: Configured GitHubClient instance
        """
        self.client = client

    def fetch_page(self, owner: str, repo: str, cursor: Optional[str]) -> SourcePage:
        """
        Fetch and parse one page of PRs.

        Raises:
            GitHubAPIError: If API requests fail
        """
        connection = self.client.fetch_pull_requests_page(owner, repo, cursor)
        page_info = connection.get("pageInfo") or {}

        pull_requests = [self._parse_pull_request(node) for node in connection.get("nodes") or []]

        logger.debug(f"{owner}/{repo}: parsed {len(pull_requests)} PRs (has next page: {page_info.get('hasNextPage')})")

        return SourcePage(
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
            pull_requests=pull_requests,
        )

    def _parse_pull_request(self, node: dict[str, Any]) -> SourcePullRequest:
        """Transform a GraphQL PR node."""
        author = node.get("author") or {}
        reviews = node.get("reviews") or {}

        return SourcePullRequest(
            id=node["id"],
            number=node["number"],
            title=node["title"],
            state=node["state"],
            created_at=self._parse_datetime(node["createdAt"]),
            updated_at=self._parse_datetime(node["updatedAt"]),
            merged_at=self._parse_datetime(node.get("mergedAt")),
            closed_at=self._parse_datetime(node.get("closedAt")),
            additions=node.get("additions") or 0,
            deletions=node.get("deletions") or 0,
            changed_files=node.get("changedFiles") or 0,
            url=node["url"],
            author=author.get("login"),
            author_avatar=author.get("avatarUrl"),
            files=self._parse_files(node),
            reviews=self._parse_reviews(reviews.get("nodes") or []),
            review_total_count=reviews.get("totalCount") or 0,
        )

    def _parse_files(self, node: dict[str, Any]) -> list[SourceFile]:
        """Transform file nodes."""
        files = node.get("files") or {}
        return [
            SourceFile(
                path=file_data["path"],
                additions=file_data.get("additions") or 0,
                deletions=file_data.get("deletions") or 0,
            )
            for file_data in files.get("nodes") or []
        ]

    def _parse_reviews(self, review_nodes: list[dict[str, Any]]) -> list[SourceReview]:
        """Transform review nodes, keeping ones from deleted accounts as reviewer None."""
        reviews = []
        for review_data in review_nodes:
            # Reviews without a state carry no signal
            if not review_data.get("state"):
                continue

            author = review_data.get("author") or {}
            reviews.append(
                SourceReview(
                    reviewer=author.get("login"),
                    state=review_data["state"],
                    submitted_at=self._parse_datetime(review_data.get("submittedAt")),
                )
            )

        return reviews

    @staticmethod
    def _parse_datetime(dt_string: Optional[str]) -> Optional[datetime]:
        """
        Parse ISO 8601 datetime string from GitHub API.

        Args:
            dt_string: ISO 8601 datetime string or None

        Returns:
            Parsed datetime or None
        """
        if not dt_string:
            return None

        # GitHub returns ISO 8601 with Z suffix
        return datetime.fromisoformat(dt_string.replace("Z", "+00:00"))


def record_id(source_id: str, number: int) -> int:
    """
    Derive a numeric id from a GraphQL node id.

    Keeps the last ten digits found in the node id, falling back to the PR number.
    """
    digits = re.sub(r"\D", "", source_id or "")[-10:]
    return int(digits) if digits and int(digits) else number


def build_record(pr: SourcePullRequest, repository: str) -> PullRequestRecord:
    """
    Build a cacheable record from a source PR.

    Size is classified, languages attributed from the file list and reviews
    without a reviewer dropped.

    Args:
        pr: Source PR
        repository: Repository identifier (owner/name)

    Returns:
        PullRequestRecord ready for upsert
    """
    reviews = [
        ReviewEvent(reviewer=review.reviewer, state=review.state, submitted_at=review.submitted_at)
        for review in pr.reviews
        if review.reviewer
    ]

    return PullRequestRecord(
        id=record_id(pr.id, pr.number),
        number=pr.number,
        title=pr.title,
        author=pr.author or "unknown",
        author_avatar=pr.author_avatar or "",
        state=STATE_MAP.get(pr.state, "open"),
        created_at=pr.created_at,
        updated_at=pr.updated_at,
        merged_at=pr.merged_at,
        closed_at=pr.closed_at,
        additions=pr.additions,
        deletions=pr.deletions,
        changed_files=pr.changed_files,
        url=pr.url,
        repository=repository,
        languages=attribute_languages(pr.files),
        review_count=pr.review_total_count,
        reviews=reviews or None,
    )
