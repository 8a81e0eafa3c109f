"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from pr_pulse.models import PullRequestRecord, ReviewEvent, SourcePage, SourcePullRequest
from pr_pulse.store import PullRequestStore


class FakeClock:
    """Controllable clock for sync and cache timestamps."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSource:
    """PR source serving prepared pages per repository."""

    def __init__(self, pages: Optional[dict[str, list[SourcePage]]] = None, errors: Optional[dict[str, Exception]] = None):
        self.pages = pages or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, Optional[str]]] = []

    def fetch_page(self, owner: str, repo: str, cursor: Optional[str]) -> SourcePage:
        slug = f"{owner}/{repo}"
        self.calls.append((slug, cursor))

        if slug in self.errors:
            raise self.errors[slug]

        pages = self.pages.get(slug, [SourcePage(has_next_page=False, end_cursor=None)])
        index = 0 if cursor is None else int(cursor)
        return pages[index]


def make_source_pr(number: int, updated_at: datetime, **overrides: Any) -> SourcePullRequest:
    """Build a source PR updated at the given time."""
    fields: dict[str, Any] = {
        "id": f"PR_kwDO{number:08d}",
        "number": number,
        "title": f"PR {number}",
        "state": "MERGED",
        "created_at": updated_at - timedelta(hours=2),
        "updated_at": updated_at,
        "merged_at": updated_at,
        "closed_at": updated_at,
        "additions": 10,
        "deletions": 5,
        "changed_files": 1,
        "url": f"https://github.com/owner/repo/pull/{number}",
        "author": "alice",
        "author_avatar": "https://github.com/alice.png",
    }
    fields.update(overrides)
    return SourcePullRequest(**fields)


def paged(prs: list[SourcePullRequest], page_size: int = 2) -> list[SourcePage]:
    """Split PRs into pages whose cursors are the next page index."""
    chunks = [prs[i : i + page_size] for i in range(0, len(prs), page_size)] or [[]]
    return [
        SourcePage(
            has_next_page=index < len(chunks) - 1,
            end_cursor=str(index + 1) if index < len(chunks) - 1 else None,
            pull_requests=chunk,
        )
        for index, chunk in enumerate(chunks)
    ]


def make_record(number: int, **overrides: Any) -> PullRequestRecord:
    """Build a cached PR record."""
    created_at = overrides.pop("created_at", datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc))
    fields: dict[str, Any] = {
        "id": 1000 + number,
        "number": number,
        "title": f"PR {number}",
        "author": "alice",
        "author_avatar": "https://github.com/alice.png",
        "state": "merged",
        "created_at": created_at,
        "merged_at": created_at + timedelta(hours=3),
        "closed_at": created_at + timedelta(hours=3),
        "additions": 10,
        "deletions": 5,
        "changed_files": 1,
        "url": f"https://github.com/owner/repo/pull/{number}",
        "repository": "owner/repo",
        "updated_at": created_at + timedelta(hours=3),
    }
    fields.update(overrides)
    return PullRequestRecord(**fields)


@pytest.fixture
def sample_datetime() -> datetime:
    """Provide a sample datetime for testing."""
    return datetime(2025, 10, 14, 10, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(sample_datetime) -> FakeClock:
    return FakeClock(sample_datetime)


@pytest.fixture
def store(clock):
    """In-memory PR cache driven by the fake clock."""
    pr_store = PullRequestStore(":memory:", clock=clock)
    yield pr_store
    pr_store.close()


@pytest.fixture
def sample_records() -> list[PullRequestRecord]:
    """Three PRs by two authors with languages and reviews."""
    return [
        make_record(
            1,
            additions=100,
            deletions=20,
            changed_files=3,
            languages={"TypeScript": 80, "Markdown": 20},
            review_count=2,
            reviews=[
                ReviewEvent("bob", "APPROVED", datetime(2025, 10, 1, 14, 0, tzinfo=timezone.utc)),
                ReviewEvent("carol", "COMMENTED", datetime(2025, 10, 1, 15, 0, tzinfo=timezone.utc)),
            ],
        ),
        make_record(
            2,
            author="bob",
            author_avatar="https://github.com/bob.png",
            state="open",
            merged_at=None,
            closed_at=None,
            created_at=datetime(2025, 10, 3, 9, 0, tzinfo=timezone.utc),
            additions=5,
            deletions=0,
            changed_files=1,
            languages={"Python": 100},
            review_count=1,
            reviews=[ReviewEvent("alice", "CHANGES_REQUESTED", datetime(2025, 10, 3, 10, 0, tzinfo=timezone.utc))],
        ),
        make_record(
            3,
            created_at=datetime(2025, 10, 5, 18, 0, tzinfo=timezone.utc),
            additions=600,
            deletions=300,
            changed_files=25,
            languages={"Rust": 100},
            review_count=0,
        ),
    ]


@pytest.fixture
def mock_pr_node() -> dict[str, Any]:
    """Mock GitHub GraphQL PR node."""
    return {
        "id": "PR_kwDOABCD1234567890",
        "number": 123,
        "title": "Add dark mode support",
        "state": "MERGED",
        "createdAt": "2025-10-14T10:00:00Z",
        "updatedAt": "2025-10-14T15:30:00Z",
        "mergedAt": "2025-10-14T15:30:00Z",
        "closedAt": "2025-10-14T15:30:00Z",
        "additions": 68,
        "deletions": 15,
        "changedFiles": 3,
        "url": "https://github.com/owner/repo/pull/123",
        "author": {
            "login": "testuser",
            "avatarUrl": "https://github.com/testuser.png",
        },
        "files": {
            "nodes": [
                {"path": "styles/theme.css", "additions": 50, "deletions": 10},
                {"path": "components/Button.tsx", "additions": 15, "deletions": 5},
                {"path": "README.md", "additions": 3, "deletions": 0},
            ]
        },
        "reviews": {
            "totalCount": 3,
            "nodes": [
                {"author": {"login": "reviewer1"}, "state": "APPROVED", "submittedAt": "2025-10-14T14:00:00Z"},
                {"author": None, "state": "COMMENTED", "submittedAt": "2025-10-14T14:10:00Z"},
                {"author": {"login": "reviewer2"}, "state": None, "submittedAt": None},
            ],
        },
    }


@pytest.fixture
def mock_pr_connection(mock_pr_node) -> dict[str, Any]:
    """Mock ``pullRequests`` connection holding one PR."""
    return {
        "pageInfo": {"hasNextPage": True, "endCursor": "Y3Vyc29yOjE="},
        "nodes": [mock_pr_node],
    }
