"""
Complexity scoring for PRs.

A PR scores 0-100 from four components:

1. Size (0-40): lines changed
2. File spread (0-25): number of changed files
3. Language (0-20): difficulty weight of the languages touched
4. Review intensity (0-15): number of reviews
"""

from typing import Literal, Optional

from .models import PullRequestRecord
from .utils import round_half_up


ComplexityLevel = Literal["Low", "Medium", "High", "Very High"]

LANGUAGE_COMPLEXITY_WEIGHTS = {
    # Systems languages, strict typing, manual memory management
    "C": 1.5, "C++": 1.5, "Rust": 1.5, "Go": 1.4, "Scala": 1.4, "Haskell": 1.5,
    # Strongly typed, OOP languages
    "Java": 1.2, "TypeScript": 1.2, "C#": 1.2, "Kotlin": 1.2, "Swift": 1.2, "F#": 1.3,
    # Dynamic and scripting languages
    "JavaScript": 1.0, "Python": 1.0, "Ruby": 1.0, "PHP": 1.0, "Perl": 1.0,
    "Elixir": 1.1, "Clojure": 1.2, "Erlang": 1.2, "Lua": 1.0, "R": 1.0,
    # Markup, config, documentation
    "HTML": 0.5, "CSS": 0.6, "SCSS": 0.7, "LESS": 0.7,
    "Markdown": 0.3, "JSON": 0.4, "YAML": 0.4, "TOML": 0.4, "XML": 0.5,
    # Frontend frameworks
    "Vue": 1.1, "Svelte": 1.0, "Dart": 1.1,
    "Shell": 0.8,
    "SQL": 0.9,
    "Other": 1.0,
}

DEFAULT_LANGUAGE_WEIGHT = 1.0
DEFAULT_LANGUAGE_SCORE = 10

# (inclusive upper bound, points), ascending
SIZE_STEPS = ((50, 5), (200, 15), (500, 25), (1000, 35))
FILE_STEPS = ((2, 5), (5, 10), (10, 15), (20, 20))
REVIEW_STEPS = ((0, 0), (2, 5), (5, 10))

MAX_SIZE_SCORE = 40
MAX_FILE_SCORE = 25
MAX_LANGUAGE_SCORE = 20
MAX_REVIEW_SCORE = 15


def _step(value: int, steps: tuple[tuple[int, int], ...], top: int) -> int:
    for bound, points in steps:
        if value <= bound:
            return points
    return top


def size_score(lines_changed: int) -> int:
    return _step(lines_changed, SIZE_STEPS, MAX_SIZE_SCORE)


def file_spread_score(changed_files: int) -> int:
    return _step(changed_files, FILE_STEPS, MAX_FILE_SCORE)


def review_score(review_count: int) -> int:
    return _step(review_count, REVIEW_STEPS, MAX_REVIEW_SCORE)


def language_score(languages: Optional[dict[str, int]]) -> int:
    """
    Score the language mix of a PR.

    Weight 0.3 maps to 0 points and weight 1.5 to 20 points. PRs without
    language information get the neutral default.
    """
    if not languages:
        return DEFAULT_LANGUAGE_SCORE

    weighted_sum = 0.0
    total_weight = 0
    for language, percentage in languages.items():
        weight = LANGUAGE_COMPLEXITY_WEIGHTS.get(language, DEFAULT_LANGUAGE_WEIGHT)
        weighted_sum += weight * percentage
        total_weight += percentage

    if total_weight <= 0:
        return DEFAULT_LANGUAGE_SCORE

    avg_weight = weighted_sum / total_weight
    score = round_half_up(((avg_weight - 0.3) / 1.2) * MAX_LANGUAGE_SCORE)
    return max(0, min(MAX_LANGUAGE_SCORE, score))


def calculate_complexity(pr: PullRequestRecord) -> int:
    """
    Calculate the complexity score of a PR.

    Args:
        pr: PR record with raw size, file, language and review fields

    Returns:
        Score between 0 and 100
    """
    total = (
        size_score(pr.additions + pr.deletions)
        + file_spread_score(pr.changed_files)
        + language_score(pr.languages)
        + review_score(pr.review_count or 0)
    )
    return max(0, min(100, total))


def complexity_level(score: int) -> ComplexityLevel:
    """Get the complexity label for a score."""
    if score < 25:
        return "Low"
    if score < 50:
        return "Medium"
    if score < 75:
        return "High"
    return "Very High"
