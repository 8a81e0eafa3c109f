"""
Incremental PR sync.

Pulls PR pages from a source, newest update first, until the cutoff is
reached, then upserts the records and bookkeeps the sync. Progress is a lazy
stream of SyncEvent values; SyncEngine.run collects the same stream into a
SyncSummary for batch callers.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, Optional

from .collector import PullRequestSource, build_record
from .github_client import RateLimitError
from .models import PullRequestRecord, RepoSyncResult, SyncEvent, SyncSummary
from .store import PullRequestStore
from .utils import round_half_up, split_repo_slug, utc_now, validate_repositories


logger = logging.getLogger(__name__)

# Full syncs and never-synced repositories go back to this date
SYNC_EPOCH = datetime(2025, 7, 1, tzinfo=timezone.utc)
INCREMENTAL_SAFETY_MARGIN = timedelta(hours=24)
RESUME_THRESHOLD = timedelta(hours=1)

RATE_LIMIT_PATTERN = re.compile(r"rate limit|403|RATE_LIMITED", re.IGNORECASE)


def is_rate_limit_error(error: Exception) -> bool:
    """Check whether an error means the API quota is exhausted."""
    return isinstance(error, RateLimitError) or bool(RATE_LIMIT_PATTERN.search(str(error)))


def _progress(done: int, total: int) -> int:
    return round_half_up(done / total * 100) if total else 100


class SyncEngine:
    """Syncs PRs of several repositories, one after another."""

    def __init__(
        self,
        source: PullRequestSource,
        store: PullRequestStore,
        clock: Optional[Callable[[], datetime]] = None,
        epoch: datetime = SYNC_EPOCH,
    ):
        """
        Initialize the sync engine.

        Args:
            source: PR source yielding pages ordered by last update, newest first
            store: Cache to upsert into
            clock: Source of "now" for the resume check
            epoch: Cutoff used by full syncs and first syncs
        """
        self.source = source
        self.store = store
        self.clock = clock or utc_now
        self.epoch = epoch

    def cutoff_for(self, repository: str, full_sync: bool = False) -> datetime:
        """
        Oldest update time that is still fetched for a repository.

        Incremental syncs go back to the last sync minus a safety margin so
        backdated updates and clock skew are still picked up.
        """
        if full_sync:
            return self.epoch

        last_synced = self.store.last_synced_at(repository)
        if last_synced is None:
            return self.epoch

        return last_synced - INCREMENTAL_SAFETY_MARGIN

    def plan(self, repositories: Iterable[str], resume: bool = False) -> tuple[list[str], list[str]]:
        """
        Split repositories into those to sync and those skipped.

        Under resume, repositories synced within the last hour are skipped.
        """
        repos = list(repositories)
        if not resume:
            return repos, []

        threshold = self.clock() - RESUME_THRESHOLD
        to_sync: list[str] = []
        skipped: list[str] = []
        for repo in repos:
            last_synced = self.store.last_synced_at(repo)
            if last_synced is not None and last_synced > threshold:
                skipped.append(repo)
            else:
                to_sync.append(repo)

        if skipped:
            logger.info(f"Resume: skipping {len(skipped)} recently synced repositories: {', '.join(skipped)}")

        return to_sync, skipped

    def iter_sync(
        self, repositories: Iterable[str], full_sync: bool = False, resume: bool = False
    ) -> Iterator[SyncEvent]:
        """
        Validate the request and return the event stream of the sync.

        Validation happens immediately; fetching only starts once the stream
        is consumed.

        Raises:
            ValidationError: If the repository list is empty or malformed
        """
        repos = validate_repositories(repositories)
        to_sync, skipped = self.plan(repos, resume)
        return self.events(to_sync, skipped, full_sync)

    def run(self, repositories: Iterable[str], full_sync: bool = False, resume: bool = False) -> SyncSummary:
        """Sync and return only the final tally."""
        return self.collect(self.iter_sync(repositories, full_sync=full_sync, resume=resume))

    @staticmethod
    def collect(events: Iterable[SyncEvent]) -> SyncSummary:
        """Drain an event stream into a SyncSummary."""
        summary = SyncSummary()

        for event in events:
            if event.type == "noop":
                summary.noop = True
                summary.message = event.payload["message"]
                summary.skipped = list(event.payload["skippedRepos"])
            elif event.type == "start":
                summary.skipped = list(event.payload["skippedRepos"])
            elif event.type == "repo_complete":
                summary.results.append(RepoSyncResult(event.payload["repo"], event.payload["synced"]))
            elif event.type == "repo_error":
                summary.results.append(RepoSyncResult(event.payload["repo"], 0, event.payload["error"]))
            elif event.type == "rate_limited":
                summary.rate_limited = True
                summary.message = event.payload["message"]
            elif event.type == "complete":
                summary.total_synced = event.payload["totalSynced"]

        return summary

    def events(self, repos: list[str], skipped: list[str], full_sync: bool) -> Iterator[SyncEvent]:
        """
        Event stream for an already planned sync.

        Nothing is fetched or logged until the stream is consumed. An empty
        repository list yields a single noop event.
        """
        if not repos:
            message = f"All {len(skipped)} repos were synced within the last hour. Nothing to resume."
            logger.info(message)
            yield SyncEvent("noop", {"message": message, "skippedRepos": skipped, "skippedCount": len(skipped)})
            return

        total_repos = len(repos)
        logger.info(f"Starting sync of {total_repos} repositories ({'full' if full_sync else 'incremental'})")
        yield SyncEvent(
            "start",
            {
                "totalRepos": total_repos,
                "repos": list(repos),
                "skippedRepos": list(skipped),
                "skippedCount": len(skipped),
            },
        )

        results: list[RepoSyncResult] = []
        total_synced = 0

        for index, repo in enumerate(repos):
            yield SyncEvent(
                "repo_start",
                {"repo": repo, "index": index, "totalRepos": total_repos, "progress": _progress(index, total_repos)},
            )

            cutoff = self.cutoff_for(repo, full_sync)
            logger.info(f"Syncing {repo} (PRs updated since {cutoff.isoformat()})")

            records: list[PullRequestRecord] = []
            try:
                for fetched in self._fetch_repository(repo, cutoff, records):
                    yield SyncEvent("repo_progress", {"repo": repo, "fetched": fetched})
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.error(f"Error syncing {repo}: {message}")
                results.append(RepoSyncResult(repo, 0, message))
                yield SyncEvent(
                    "repo_error",
                    {
                        "repo": repo,
                        "error": message,
                        "index": index,
                        "totalRepos": total_repos,
                        "progress": _progress(index + 1, total_repos),
                    },
                )

                if is_rate_limit_error(e):
                    logger.error(f"Rate limit reached, abandoning {total_repos - index - 1} remaining repositories")
                    yield SyncEvent("rate_limited", {"message": message})
                    break
                continue

            if records:
                self.store.upsert(records)
            self.store.record_sync_status(repo, len(records))
            logger.info(f"{repo}: saved {len(records)} PRs to cache")

            total_synced += len(records)
            results.append(RepoSyncResult(repo, len(records)))
            yield SyncEvent(
                "repo_complete",
                {
                    "repo": repo,
                    "synced": len(records),
                    "index": index,
                    "totalRepos": total_repos,
                    "progress": _progress(index + 1, total_repos),
                    "totalSynced": total_synced,
                },
            )

        logger.info(f"Sync finished: {total_synced} PRs synced")
        yield SyncEvent(
            "complete",
            {
                "results": [result.to_dict() for result in results],
                "totalSynced": total_synced,
                "totalRepos": total_repos,
            },
        )

    def _fetch_repository(
        self, repository: str, cutoff: datetime, records: list[PullRequestRecord]
    ) -> Iterator[int]:
        """
        Page through a repository until the cutoff, appending records.

        Yields the running record count after each page.
        """
        owner, name = split_repo_slug(repository)
        cursor: Optional[str] = None

        while True:
            page = self.source.fetch_page(owner, name, cursor)

            reached_cutoff = False
            for pr in page.pull_requests:
                # Pages are ordered by update time, so everything after this is older too
                if pr.updated_at < cutoff:
                    reached_cutoff = True
                    break
                records.append(build_record(pr, repository))

            logger.debug(f"{repository}: fetched {len(records)} PRs so far")
            yield len(records)

            if reached_cutoff or not page.has_next_page:
                return
            cursor = page.end_cursor
