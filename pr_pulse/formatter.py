"""
Markdown report formatter for PR analyses.

Transforms an AnalysisResult into a human-readable markdown report.
"""

from datetime import datetime
from typing import Optional

from .complexity import complexity_level
from .models import AnalysisResult, SyncSummary
from .sizing import SIZE_BUCKETS


class ReportFormatter:
    """Formats analysis results into markdown reports."""

    def __init__(self, max_contributors: int = 10, max_reviewers: int = 10, max_languages: int = 8):
        """
        Initialize formatter.

        Args:
            max_contributors: Rows in the contributor table
            max_reviewers: Rows in the reviewer table
            max_languages: Languages listed before the rest is folded away
        """
        self.max_contributors = max_contributors
        self.max_reviewers = max_reviewers
        self.max_languages = max_languages

    def format(self, result: AnalysisResult) -> str:
        """
        Format a complete analysis report.

        Args:
            result: Analysis to render

        Returns:
            Formatted markdown report
        """
        sections = [
            self._format_header(result),
            self._format_summary(result),
            self._format_sizes(result),
            self._format_languages(result),
            self._format_contributors(result),
            self._format_reviewers(result),
            self._format_timeline(result),
        ]

        # Filter out empty sections and join with double newlines
        return "\n\n".join(section for section in sections if section.strip())

    def _format_header(self, result: AnalysisResult) -> str:
        repos = ", ".join(f"`{repo}`" for repo in result.repositories)
        return (
            f"# PR Analysis: {self._format_date(result.start_date)} to {self._format_date(result.end_date)}\n\n"
            f"Repositories: {repos}"
        )

    def _format_summary(self, result: AnalysisResult) -> str:
        """Format the totals section."""
        lines = [
            "## Summary",
            "",
            f"- **Total PRs:** {result.total_prs}",
            f"- **Merged:** {result.merged_prs}",
            f"- **Open:** {result.open_prs}",
            f"- **Closed:** {result.closed_prs}",
            f"- **Contributors:** {result.unique_contributors}",
            f"- **Reviews:** {result.total_reviews}",
            f"- **Average complexity:** {result.avg_complexity} ({complexity_level(result.avg_complexity)})",
        ]
        return "\n".join(lines)

    def _format_sizes(self, result: AnalysisResult) -> str:
        if not result.total_prs:
            return ""

        lines = ["## Size Distribution", "", "| Size | PRs | Share |", "|---|---|---|"]
        for size in SIZE_BUCKETS:
            count = result.size_distribution.get(size, 0)
            lines.append(f"| {size} | {count} | {count / result.total_prs:.0%} |")
        return "\n".join(lines)

    def _format_languages(self, result: AnalysisResult) -> str:
        if not result.language_distribution:
            return ""

        items = list(result.language_distribution.items())
        lines = ["## Languages", ""]
        for language, percentage in items[: self.max_languages]:
            lines.append(f"- {language}: {percentage}%")

        rest = items[self.max_languages :]
        if rest:
            lines.append(f"- _{len(rest)} more_")
        return "\n".join(lines)

    def _format_contributors(self, result: AnalysisResult) -> str:
        """Format the top contributors table."""
        if not result.contributors:
            return ""

        lines = [
            f"## Top Contributors ({len(result.contributors)})",
            "",
            "| Contributor | PRs | Merged | +/- | Avg complexity | Top language |",
            "|---|---|---|---|---|---|",
        ]
        for contributor in result.contributors[: self.max_contributors]:
            top_language = self._top_language(contributor.language_stats)
            lines.append(
                f"| @{contributor.username} | {contributor.total_prs} | {contributor.merged_prs} "
                f"| +{contributor.additions} -{contributor.deletions} "
                f"| {contributor.avg_complexity if contributor.avg_complexity is not None else '-'} "
                f"| {top_language} |"
            )
        return "\n".join(lines)

    def _format_reviewers(self, result: AnalysisResult) -> str:
        """Format the reviewer table."""
        if not result.reviewers:
            return ""

        lines = [
            f"## Reviewers ({len(result.reviewers)})",
            "",
            "| Reviewer | Reviews | ✅ Approved | ⚠️ Changes | 💬 Commented | PRs |",
            "|---|---|---|---|---|---|",
        ]
        for reviewer in result.reviewers[: self.max_reviewers]:
            lines.append(
                f"| @{reviewer.username} | {reviewer.total_reviews} | {reviewer.approvals} "
                f"| {reviewer.changes_requested} | {reviewer.comments} | {len(reviewer.reviewed_prs)} |"
            )
        return "\n".join(lines)

    def _format_timeline(self, result: AnalysisResult) -> str:
        if not result.timeline:
            return ""

        lines = ["## Timeline", "", "| Period | PRs | " + " | ".join(SIZE_BUCKETS) + " |"]
        lines.append("|---" * (len(SIZE_BUCKETS) + 2) + "|")
        for bucket in result.timeline:
            sizes = " | ".join(str(bucket.sizes[size]) for size in SIZE_BUCKETS)
            lines.append(f"| {bucket.date} | {bucket.count} | {sizes} |")
        return "\n".join(lines)

    @staticmethod
    def _top_language(language_stats: Optional[dict[str, int]]) -> str:
        if not language_stats:
            return "-"
        language, percentage = max(language_stats.items(), key=lambda item: item[1])
        return f"{language} ({percentage}%)"

    @staticmethod
    def _format_date(dt: datetime) -> str:
        return dt.strftime("%Y-%m-%d")


def format_sync_summary(summary: SyncSummary) -> str:
    """One line per repository plus a total, for terminal output."""
    if summary.noop:
        return summary.message or "Nothing to sync."

    lines = []
    for result in summary.results:
        if result.ok:
            lines.append(f"✅ {result.repository}: {result.synced} PRs synced")
        else:
            lines.append(f"❌ {result.repository}: {result.error}")

    if summary.skipped:
        lines.append(f"⏭️  Skipped {len(summary.skipped)} recently synced: {', '.join(summary.skipped)}")
    if summary.rate_limited:
        lines.append("⚠️ Stopped early: GitHub API rate limit exceeded")

    lines.append(f"Total: {summary.total_synced} PRs synced")
    return "\n".join(lines)
