"""
SQLite cache for PR records and sync status.

Schema:
- pull_requests: one row per (repo, number); ``synced_at`` is the cache's own
  bookkeeping timestamp, distinct from the PR's native timestamps
- sync_status: last successful sync per repository
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from .models import PullRequestRecord, ReviewEvent, SyncStatusRecord
from .sizing import classify_size
from .utils import format_datetime, parse_datetime, utc_now


logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS pull_requests (
    repo TEXT NOT NULL,
    number INTEGER NOT NULL,
    id INTEGER NOT NULL,
    title TEXT NOT NULL,
    author TEXT NOT NULL,
    author_avatar TEXT,
    state TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    merged_at TEXT,
    closed_at TEXT,
    additions INTEGER NOT NULL,
    deletions INTEGER NOT NULL,
    changed_files INTEGER NOT NULL,
    size TEXT NOT NULL,
    url TEXT NOT NULL,
    languages TEXT,
    review_count INTEGER,
    reviews TEXT,
    synced_at TEXT NOT NULL,
    UNIQUE(repo, number)
);

CREATE INDEX IF NOT EXISTS idx_pr_repo ON pull_requests(repo);
CREATE INDEX IF NOT EXISTS idx_pr_author ON pull_requests(author);
CREATE INDEX IF NOT EXISTS idx_pr_created_at ON pull_requests(created_at);
CREATE INDEX IF NOT EXISTS idx_pr_repo_synced ON pull_requests(repo, synced_at);

CREATE TABLE IF NOT EXISTS sync_status (
    repo TEXT PRIMARY KEY,
    last_synced_at TEXT NOT NULL,
    pr_count INTEGER NOT NULL DEFAULT 0
);
"""

UPSERT_SQL = """
INSERT INTO pull_requests (
    repo, number, id, title, author, author_avatar, state, created_at, updated_at,
    merged_at, closed_at, additions, deletions, changed_files, size, url,
    languages, review_count, reviews, synced_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(repo, number) DO UPDATE SET
    id = excluded.id,
    title = excluded.title,
    author = excluded.author,
    author_avatar = excluded.author_avatar,
    state = excluded.state,
    created_at = excluded.created_at,
    updated_at = excluded.updated_at,
    merged_at = excluded.merged_at,
    closed_at = excluded.closed_at,
    additions = excluded.additions,
    deletions = excluded.deletions,
    changed_files = excluded.changed_files,
    size = excluded.size,
    url = excluded.url,
    languages = excluded.languages,
    review_count = excluded.review_count,
    reviews = excluded.reviews,
    synced_at = excluded.synced_at
"""

# SQLite compares ISO strings lexically, so every stored timestamp uses one format
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class PullRequestStore:
    """Persistence adapter for cached PR data."""

    def __init__(self, db_path: str = "data/pr-cache.db", clock: Optional[Callable[[], datetime]] = None):
        """
        Open (and create if needed) the cache database.

        Args:
            db_path: SQLite file path, or ":memory:"
            clock: Source of "now" for bookkeeping timestamps
        """
        self.db_path = db_path
        self.clock = clock or utc_now

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # The connection is shared by server threads; every statement runs under this lock
        self._lock = threading.Lock()
        self.conn.executescript(SCHEMA)
        logger.debug(f"Opened PR cache at {db_path}")

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def upsert(self, records: Iterable[PullRequestRecord]) -> int:
        """
        Insert or overwrite records keyed by (repository, number).

        Every mutable column is replaced and the bookkeeping timestamp set to now.

        Returns:
            Number of rows written
        """
        synced_at = _to_db_time(self.clock())
        rows = [self._to_row(record, synced_at) for record in records]

        with self._lock, self.conn:
            self.conn.executemany(UPSERT_SQL, rows)

        logger.debug(f"Upserted {len(rows)} PR records")
        return len(rows)

    def read(self, repositories: Iterable[str], since: datetime, until: datetime) -> list[PullRequestRecord]:
        """
        Read records of the given repositories whose bookkeeping timestamp lies in [since, until].

        Returns:
            Records, most recently cached first
        """
        repos = list(repositories)
        if not repos:
            return []

        placeholders = ",".join("?" for _ in repos)
        with self._lock:
            rows = self.conn.execute(
                f"""
                SELECT * FROM pull_requests
                WHERE repo IN ({placeholders})
                AND synced_at >= ?
                AND synced_at <= ?
                ORDER BY synced_at DESC, repo, number DESC
                """,
                (*repos, _to_db_time(since), _to_db_time(until)),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def record_sync_status(self, repository: str, pr_count: int) -> SyncStatusRecord:
        """Overwrite the sync status of a repository with now and the given count."""
        now = self.clock()
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT OR REPLACE INTO sync_status (repo, last_synced_at, pr_count) VALUES (?, ?, ?)",
                (repository, _to_db_time(now), pr_count),
            )
        return SyncStatusRecord(repository=repository, last_synced_at=now, pr_count=pr_count)

    def last_synced_at(self, repository: str) -> Optional[datetime]:
        with self._lock:
            row = self.conn.execute(
                "SELECT last_synced_at FROM sync_status WHERE repo = ?", (repository,)
            ).fetchone()
        return parse_datetime(row["last_synced_at"]) if row else None

    def sync_statuses(self) -> list[SyncStatusRecord]:
        """All sync status rows, ordered by repository."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT repo, last_synced_at, pr_count FROM sync_status ORDER BY repo"
            ).fetchall()
        return [
            SyncStatusRecord(
                repository=row["repo"],
                last_synced_at=parse_datetime(row["last_synced_at"]),
                pr_count=row["pr_count"],
            )
            for row in rows
        ]

    def repo_stats(self, repository: str) -> dict[str, Any]:
        """Cached PR count and newest creation date of one repository."""
        with self._lock:
            count = self.conn.execute(
                "SELECT COUNT(*) AS count FROM pull_requests WHERE repo = ?", (repository,)
            ).fetchone()["count"]
            last = self.conn.execute(
                "SELECT created_at FROM pull_requests WHERE repo = ? ORDER BY created_at DESC LIMIT 1",
                (repository,),
            ).fetchone()
        return {
            "prCount": count,
            "lastPrDate": format_datetime(parse_datetime(last["created_at"])) if last else None,
        }

    def total_cached(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) AS count FROM pull_requests").fetchone()["count"]

    def clear_repository(self, repository: str) -> None:
        """Delete every cached record and the sync status of a repository."""
        with self._lock, self.conn:
            deleted = self.conn.execute("DELETE FROM pull_requests WHERE repo = ?", (repository,)).rowcount
            self.conn.execute("DELETE FROM sync_status WHERE repo = ?", (repository,))
        logger.info(f"Cleared {deleted} cached PRs for {repository}")

    @staticmethod
    def _to_row(record: PullRequestRecord, synced_at: str) -> tuple:
        reviews = None
        if record.reviews is not None:
            reviews = json.dumps([review.to_dict() for review in record.reviews])

        return (
            record.repository,
            record.number,
            record.id,
            record.title,
            record.author,
            record.author_avatar,
            record.state,
            _to_db_time(record.created_at),
            _to_db_time(record.updated_at),
            _to_db_time(record.merged_at),
            _to_db_time(record.closed_at),
            record.additions,
            record.deletions,
            record.changed_files,
            # Derived again from the raw counts, never trusted from the caller
            classify_size(record.additions, record.deletions, record.changed_files),
            record.url,
            json.dumps(record.languages) if record.languages is not None else None,
            record.review_count,
            reviews,
            synced_at,
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> PullRequestRecord:
        reviews = None
        if row["reviews"]:
            reviews = [
                ReviewEvent(
                    reviewer=item["reviewer"],
                    state=item["state"],
                    submitted_at=parse_datetime(item.get("submittedAt")),
                )
                for item in json.loads(row["reviews"])
            ]

        return PullRequestRecord(
            id=row["id"],
            number=row["number"],
            title=row["title"],
            author=row["author"],
            author_avatar=row["author_avatar"] or "",
            state=row["state"],
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
            merged_at=parse_datetime(row["merged_at"]),
            closed_at=parse_datetime(row["closed_at"]),
            additions=row["additions"],
            deletions=row["deletions"],
            changed_files=row["changed_files"],
            url=row["url"],
            repository=row["repo"],
            languages=json.loads(row["languages"]) if row["languages"] else None,
            review_count=row["review_count"],
            reviews=reviews,
        )
