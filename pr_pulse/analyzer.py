"""
PR analysis: turns a flat PR snapshot into aggregate views.

Every view (contributors, reviewers, size and language distributions,
timeline, totals) is derived by reduce_records, which is shared with the
filter engine so filtered and unfiltered results never diverge.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from .complexity import calculate_complexity
from .languages import lines_to_percentages
from .models import AnalysisResult, ContributorStats, PullRequestRecord, ReviewerStats, TimelineBucket
from .sizing import empty_size_distribution
from .store import PullRequestStore
from .utils import ValidationError, round_half_up, validate_date_range


logger = logging.getLogger(__name__)

DAILY_MAX_SPAN_DAYS = 31
WEEKLY_MAX_SPAN_DAYS = 180


def score_records(records: Iterable[PullRequestRecord]) -> list[PullRequestRecord]:
    """
    Copy records with a freshly computed complexity score.

    Stored scores are never trusted, so every analysis reflects the current formula.
    """
    return [replace(record, complexity=calculate_complexity(record)) for record in records]


def _language_lines(prs: Iterable[PullRequestRecord]) -> dict[str, int]:
    """Turn per-PR language percentages back into estimated line counts and sum them."""
    language_lines: dict[str, int] = {}
    for pr in prs:
        if not pr.languages:
            continue
        pr_lines = pr.lines_changed
        for language, percentage in pr.languages.items():
            lines = round_half_up(percentage / 100 * pr_lines)
            language_lines[language] = language_lines.get(language, 0) + lines
    return language_lines


def _average_complexity(prs: list[PullRequestRecord]) -> int:
    if not prs:
        return 0
    return round_half_up(sum(pr.complexity or 0 for pr in prs) / len(prs))


def aggregate_by_contributor(prs: Iterable[PullRequestRecord]) -> list[ContributorStats]:
    """
    Group PRs by author.

    Language stats are line weighted: a large PR counts for more than a
    small one. Sorted by PR count, most active first; ties keep encounter order.
    """
    contributors: dict[str, ContributorStats] = {}

    for pr in prs:
        stats = contributors.get(pr.author)
        if stats is None:
            stats = ContributorStats(username=pr.author, avatar=pr.author_avatar)
            contributors[pr.author] = stats

        stats.total_prs += 1
        if pr.state == "merged":
            stats.merged_prs += 1
        stats.size_distribution[pr.size] += 1
        stats.additions += pr.additions
        stats.deletions += pr.deletions
        stats.prs.append(pr)

    for stats in contributors.values():
        language_stats = lines_to_percentages(_language_lines(stats.prs))
        stats.language_stats = language_stats or None
        stats.avg_complexity = _average_complexity(stats.prs)

    return sorted(contributors.values(), key=lambda c: c.total_prs, reverse=True)


def aggregate_by_reviewer(prs: Iterable[PullRequestRecord]) -> list[ReviewerStats]:
    """
    Group review events by reviewer.

    Every event counts towards the totals; reviewed PRs are distinct numbers.
    """
    reviewers: dict[str, ReviewerStats] = {}

    for pr in prs:
        for review in pr.reviews or []:
            stats = reviewers.get(review.reviewer)
            if stats is None:
                stats = ReviewerStats(username=review.reviewer)
                reviewers[review.reviewer] = stats

            stats.total_reviews += 1
            if review.state == "APPROVED":
                stats.approvals += 1
            elif review.state == "CHANGES_REQUESTED":
                stats.changes_requested += 1
            elif review.state == "COMMENTED":
                stats.comments += 1

            if pr.number not in stats.reviewed_prs:
                stats.reviewed_prs.append(pr.number)

    return sorted(reviewers.values(), key=lambda r: r.total_reviews, reverse=True)


def aggregate_size_distribution(prs: Iterable[PullRequestRecord]) -> dict[str, int]:
    distribution = empty_size_distribution()
    for pr in prs:
        distribution[pr.size] += 1
    return distribution


def aggregate_language_distribution(prs: Iterable[PullRequestRecord]) -> dict[str, int]:
    """Line weighted language shares over all PRs, largest first."""
    distribution = lines_to_percentages(_language_lines(prs))
    return dict(sorted(distribution.items(), key=lambda item: item[1], reverse=True))


def _utc_date(value: datetime) -> date:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _timeline_keys(start_date: datetime, end_date: datetime) -> tuple[list[str], Callable[[date], str]]:
    """
    Bucket labels covering the window and the function placing a date in one.

    Daily up to 31 days, weekly (Monday-anchored [monday, monday + 7d)) up to
    180 days, monthly beyond.
    """
    start = _utc_date(start_date)
    end = _utc_date(end_date)
    span = (end - start).days

    if span <= DAILY_MAX_SPAN_DAYS:
        def key_for(day: date) -> str:
            return day.isoformat()

        days = [start + timedelta(days=offset) for offset in range(span + 1)]
        return [key_for(day) for day in days], key_for

    if span <= WEEKLY_MAX_SPAN_DAYS:
        def key_for(day: date) -> str:
            return _week_start(day).isoformat()

        keys = []
        week = _week_start(start)
        while week <= end:
            keys.append(week.isoformat())
            week += timedelta(days=7)
        return keys, key_for

    def key_for(day: date) -> str:
        return f"{day.year:04d}-{day.month:02d}"

    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(f"{year:04d}-{month:02d}")
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return keys, key_for


def aggregate_timeline(
    prs: Iterable[PullRequestRecord], start_date: datetime, end_date: datetime
) -> list[TimelineBucket]:
    """
    Count PRs per creation period.

    Every period in the window is present, empty or not. PRs created outside
    the window fall in no period and are left out of the timeline only.
    """
    keys, key_for = _timeline_keys(start_date, end_date)
    buckets = {key: TimelineBucket(date=key) for key in keys}

    for pr in prs:
        bucket = buckets.get(key_for(_utc_date(pr.created_at)))
        if bucket is None:
            continue
        bucket.count += 1
        bucket.sizes[pr.size] += 1

    return [buckets[key] for key in keys]


def reduce_records(
    prs: list[PullRequestRecord],
    repositories: list[str],
    start_date: datetime,
    end_date: datetime,
) -> AnalysisResult:
    """
    Derive every aggregate view from already scored records.

    Args:
        prs: Records carrying complexity scores
        repositories: Repository list echoed in the result
        start_date: Window start
        end_date: Window end

    Returns:
        AnalysisResult over exactly these records
    """
    contributors = aggregate_by_contributor(prs)

    return AnalysisResult(
        total_prs=len(prs),
        merged_prs=sum(1 for pr in prs if pr.state == "merged"),
        open_prs=sum(1 for pr in prs if pr.state == "open"),
        closed_prs=sum(1 for pr in prs if pr.state == "closed"),
        unique_contributors=len(contributors),
        size_distribution=aggregate_size_distribution(prs),
        language_distribution=aggregate_language_distribution(prs),
        contributors=contributors,
        reviewers=aggregate_by_reviewer(prs),
        total_reviews=sum(pr.review_count or 0 for pr in prs),
        avg_complexity=_average_complexity(prs),
        prs=list(prs),
        timeline=aggregate_timeline(prs, start_date, end_date),
        repositories=list(repositories),
        start_date=start_date,
        end_date=end_date,
    )


def analyze_results(
    prs: Iterable[PullRequestRecord],
    repositories: list[str],
    start_date: datetime,
    end_date: datetime,
) -> AnalysisResult:
    """
    Score and aggregate a PR snapshot.

    The input records are not modified.
    """
    return reduce_records(score_records(prs), repositories, start_date, end_date)


def run_analysis(
    store: PullRequestStore,
    repositories: list[str],
    since: datetime,
    until: datetime,
) -> Optional[AnalysisResult]:
    """
    Analyze the cached PRs of a window.

    Returns:
        The analysis, or None when nothing is cached for the window (sync first)

    Raises:
        ValidationError: If no repositories are given or the window is inverted
    """
    if not repositories:
        raise ValidationError("No repositories configured. Add repositories first.")
    validate_date_range(since, until)

    prs = store.read(repositories, since, until)
    if not prs:
        logger.info(f"No cached PRs for {len(repositories)} repositories between {since} and {until}")
        return None

    logger.info(f"Analyzing {len(prs)} cached PRs across {len(repositories)} repositories")
    return analyze_results(prs, repositories, since, until)
