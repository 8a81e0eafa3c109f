"""
Data models for PR sync and analysis.

All models use dataclasses with full type annotations for type safety.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from .sizing import classify_size, empty_size_distribution
from .utils import format_datetime


PRState = Literal["open", "closed", "merged"]
ReviewState = Literal["APPROVED", "CHANGES_REQUESTED", "COMMENTED", "DISMISSED", "PENDING"]


@dataclass
class ReviewEvent:
    """A single submitted review on a PR."""

    reviewer: str
    state: ReviewState
    submitted_at: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "reviewer": self.reviewer,
            "state": self.state,
            "submittedAt": format_datetime(self.submitted_at),
        }


@dataclass
class PullRequestRecord:
    """One cached PR, unique on (repository, number)."""

    id: int
    number: int
    title: str
    author: str
    author_avatar: str
    state: PRState
    created_at: datetime
    merged_at: Optional[datetime]
    closed_at: Optional[datetime]
    additions: int
    deletions: int
    changed_files: int
    url: str
    repository: str
    size: str = field(init=False, default="")
    updated_at: Optional[datetime] = None
    languages: Optional[dict[str, int]] = None
    review_count: Optional[int] = None
    reviews: Optional[list[ReviewEvent]] = None
    complexity: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate counts and derive the size bucket."""
        for name in ("additions", "deletions", "changed_files"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative for {self.repository}#{self.number}")

        self.size = classify_size(self.additions, self.deletions, self.changed_files)

    @property
    def lines_changed(self) -> int:
        """Total lines touched by the PR."""
        return self.additions + self.deletions

    @property
    def is_merged(self) -> bool:
        """Check if the PR was merged."""
        return self.state == "merged"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "author": self.author,
            "authorAvatar": self.author_avatar,
            "state": self.state,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
            "mergedAt": format_datetime(self.merged_at),
            "closedAt": format_datetime(self.closed_at),
            "additions": self.additions,
            "deletions": self.deletions,
            "changedFiles": self.changed_files,
            "size": self.size,
            "url": self.url,
            "repo": self.repository,
            "languages": self.languages,
            "reviewCount": self.review_count,
            "reviews": [review.to_dict() for review in self.reviews] if self.reviews is not None else None,
            "complexity": self.complexity,
        }


@dataclass
class SyncStatusRecord:
    """Last successful sync of a repository."""

    repository: str
    last_synced_at: datetime
    pr_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo": self.repository,
            "lastSyncedAt": format_datetime(self.last_synced_at),
            "prCount": self.pr_count,
        }


@dataclass
class ContributorStats:
    """Aggregates for one PR author."""

    username: str
    avatar: str
    total_prs: int = 0
    merged_prs: int = 0
    size_distribution: dict[str, int] = field(default_factory=empty_size_distribution)
    additions: int = 0
    deletions: int = 0
    prs: list[PullRequestRecord] = field(default_factory=list)
    language_stats: Optional[dict[str, int]] = None
    avg_complexity: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "avatar": self.avatar,
            "totalPRs": self.total_prs,
            "mergedPRs": self.merged_prs,
            "sizeDistribution": dict(self.size_distribution),
            "additions": self.additions,
            "deletions": self.deletions,
            "prs": [pr.to_dict() for pr in self.prs],
            "languageStats": self.language_stats,
            "avgComplexity": self.avg_complexity,
        }


@dataclass
class ReviewerStats:
    """Aggregates for one reviewer; every review event counts."""

    username: str
    total_reviews: int = 0
    approvals: int = 0
    changes_requested: int = 0
    comments: int = 0
    reviewed_prs: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "totalReviews": self.total_reviews,
            "approvals": self.approvals,
            "changesRequested": self.changes_requested,
            "comments": self.comments,
            "reviewedPRs": list(self.reviewed_prs),
        }


@dataclass
class TimelineBucket:
    """PRs created within one day, week or month."""

    date: str
    count: int = 0
    sizes: dict[str, int] = field(default_factory=empty_size_distribution)

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "count": self.count, **self.sizes}


@dataclass
class AnalysisResult:
    """Full output of one analysis over a PR snapshot."""

    total_prs: int
    merged_prs: int
    open_prs: int
    closed_prs: int
    unique_contributors: int
    size_distribution: dict[str, int]
    language_distribution: dict[str, int]
    contributors: list[ContributorStats]
    reviewers: list[ReviewerStats]
    total_reviews: int
    avg_complexity: int
    prs: list[PullRequestRecord]
    timeline: list[TimelineBucket]
    repositories: list[str]
    start_date: datetime
    end_date: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPRs": self.total_prs,
            "mergedPRs": self.merged_prs,
            "openPRs": self.open_prs,
            "closedPRs": self.closed_prs,
            "uniqueContributors": self.unique_contributors,
            "sizeDistribution": dict(self.size_distribution),
            "languageDistribution": dict(self.language_distribution),
            "contributors": [c.to_dict() for c in self.contributors],
            "reviewers": [r.to_dict() for r in self.reviewers],
            "totalReviews": self.total_reviews,
            "avgComplexity": self.avg_complexity,
            "prs": [pr.to_dict() for pr in self.prs],
            "timeline": [bucket.to_dict() for bucket in self.timeline],
            "repos": list(self.repositories),
            "dateRange": {
                "start": format_datetime(self.start_date),
                "end": format_datetime(self.end_date),
            },
        }


# PR source shapes


@dataclass
class SourceFile:
    """File change as reported by the PR source."""

    path: str
    additions: int
    deletions: int


@dataclass
class SourceReview:
    """Review as reported by the PR source; reviewer may be missing for deleted accounts."""

    reviewer: Optional[str]
    state: ReviewState
    submitted_at: Optional[datetime]


@dataclass
class SourcePullRequest:
    """One PR node from a source page."""

    id: str
    number: int
    title: str
    state: Literal["OPEN", "CLOSED", "MERGED"]
    created_at: datetime
    updated_at: datetime
    merged_at: Optional[datetime]
    closed_at: Optional[datetime]
    additions: int
    deletions: int
    changed_files: int
    url: str
    author: Optional[str]
    author_avatar: Optional[str]
    files: list[SourceFile] = field(default_factory=list)
    reviews: list[SourceReview] = field(default_factory=list)
    review_total_count: int = 0


@dataclass
class SourcePage:
    """One page of PRs ordered by last update, newest first."""

    has_next_page: bool
    end_cursor: Optional[str]
    pull_requests: list[SourcePullRequest] = field(default_factory=list)


# Sync reporting


@dataclass
class SyncEvent:
    """Progress event emitted by the sync engine."""

    type: Literal[
        "start",
        "repo_start",
        "repo_progress",
        "repo_complete",
        "repo_error",
        "rate_limited",
        "complete",
        "noop",
    ]
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **self.payload}

    def to_sse(self) -> str:
        """Render as a server-sent-event frame."""
        return f"data: {json.dumps(self.to_dict())}\n\n"


@dataclass
class RepoSyncResult:
    """Outcome of syncing one repository."""

    repository: str
    synced: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"repo": self.repository, "synced": self.synced}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class SyncSummary:
    """Final tally of a sync invocation."""

    results: list[RepoSyncResult] = field(default_factory=list)
    total_synced: int = 0
    skipped: list[str] = field(default_factory=list)
    rate_limited: bool = False
    noop: bool = False
    message: Optional[str] = None

    @property
    def failed(self) -> list[RepoSyncResult]:
        return [result for result in self.results if not result.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": not self.noop,
            "results": [result.to_dict() for result in self.results],
            "totalSynced": self.total_synced,
            "skipped": list(self.skipped),
            "skippedCount": len(self.skipped),
            "rateLimited": self.rate_limited,
            "message": self.message,
        }
