"""
PR size classification.

Buckets a change by a weighted score of lines touched and files changed.
"""

SIZE_BUCKETS = ("XS", "S", "M", "L", "XL", "XXL")

# (exclusive upper bound, bucket), ascending
SIZE_THRESHOLDS = (
    (10, "XS"),
    (50, "S"),
    (200, "M"),
    (500, "L"),
    (1000, "XL"),
)


def classify_size(additions: int, deletions: int, files_changed: int) -> str:
    """
    Classify a PR into one of the six size buckets.

    The score weighs lines 70% and files 30%, each file counting as 20 lines.

    Args:
        additions: Lines added
        deletions: Lines deleted
        files_changed: Number of changed files

    Returns:
        One of XS, S, M, L, XL, XXL
    """
    lines_changed = additions + deletions
    combined_score = lines_changed * 0.7 + (files_changed * 20) * 0.3

    for threshold, bucket in SIZE_THRESHOLDS:
        if combined_score < threshold:
            return bucket

    return "XXL"


def empty_size_distribution() -> dict[str, int]:
    """Return a zeroed histogram over all size buckets."""
    return {bucket: 0 for bucket in SIZE_BUCKETS}
