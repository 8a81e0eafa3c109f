"""
Client-side narrowing of an analysis without going back to the cache.
"""

from typing import Iterable, Optional

from .analyzer import reduce_records
from .models import AnalysisResult
from .sizing import SIZE_BUCKETS
from .utils import ValidationError


def refilter(
    result: AnalysisResult,
    repositories: Optional[Iterable[str]] = None,
    contributors: Optional[Iterable[str]] = None,
    sizes: Iterable[str] = SIZE_BUCKETS,
) -> AnalysisResult:
    """
    Recompute an analysis over a subset of its PRs.

    Filters apply in order: repository, contributor (case-insensitive exact
    handle), size. Empty repository or contributor subsets select everything;
    the size subset always applies, so an empty one selects nothing.

    Args:
        result: Analysis to narrow
        repositories: Repository identifiers to keep
        contributors: Author handles to keep
        sizes: Size buckets to keep

    Returns:
        A new AnalysisResult for the same window and repository list

    Raises:
        ValidationError: If a size label is unknown
    """
    size_set = set(sizes)
    unknown = size_set - set(SIZE_BUCKETS)
    if unknown:
        raise ValidationError(f"Unknown PR sizes: {', '.join(sorted(unknown))}")

    prs = result.prs

    repo_set = set(repositories or [])
    if repo_set:
        prs = [pr for pr in prs if pr.repository in repo_set]

    handles = {handle.lower() for handle in contributors or []}
    if handles:
        prs = [pr for pr in prs if pr.author.lower() in handles]

    prs = [pr for pr in prs if pr.size in size_set]

    return reduce_records(prs, result.repositories, result.start_date, result.end_date)
