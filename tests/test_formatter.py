"""
Tests for report formatting.
"""

from datetime import datetime, timezone

import pytest

from pr_pulse.analyzer import analyze_results
from pr_pulse.formatter import ReportFormatter, format_sync_summary
from pr_pulse.models import RepoSyncResult, SyncSummary


@pytest.fixture
def result(sample_records):
    return analyze_results(
        sample_records,
        ["owner/repo"],
        datetime(2025, 10, 1, tzinfo=timezone.utc),
        datetime(2025, 10, 10, tzinfo=timezone.utc),
    )


@pytest.fixture
def formatter():
    """Create a formatter instance."""
    return ReportFormatter()


class TestReportFormatter:
    """Tests for ReportFormatter."""

    def test_header(self, formatter, result):
        """Test the window and repositories are named."""
        report = formatter.format(result)

        assert report.startswith("# PR Analysis: 2025-10-01 to 2025-10-10")
        assert "Repositories: `owner/repo`" in report

    def test_summary(self, formatter, result):
        """Test totals and the complexity level."""
        report = formatter.format(result)

        assert "- **Total PRs:** 3" in report
        assert "- **Merged:** 2" in report
        assert "- **Reviews:** 3" in report
        assert "- **Average complexity:** 50 (High)" in report

    def test_sizes(self, formatter, result):
        """Test the size table lists every bucket."""
        report = formatter.format(result)

        assert "| M | 1 | 33% |" in report
        assert "| XXL | 0 | 0% |" in report

    def test_languages(self, formatter, result):
        """Test languages are listed largest first."""
        report = formatter.format(result)

        assert report.index("- Rust: 88%") < report.index("- TypeScript: 9%")

    def test_languages_folded(self, result):
        """Test languages beyond the limit are summarized."""
        report = ReportFormatter(max_languages=2).format(result)

        assert "- Markdown: 2%" not in report
        assert "- _2 more_" in report

    def test_contributors(self, formatter, result):
        """Test the contributor table."""
        report = formatter.format(result)

        assert "## Top Contributors (2)" in report
        assert "| @alice | 2 | 2 | +700 -320 | 61 | Rust (88%) |" in report
        assert "| @bob | 1 | 0 | +5 -0 | 27 | Python (100%) |" in report

    def test_reviewers(self, formatter, result):
        """Test the reviewer table."""
        report = formatter.format(result)

        assert "## Reviewers (3)" in report
        assert "| @bob | 1 | 1 | 0 | 0 | 1 |" in report

    def test_timeline(self, formatter, result):
        """Test one row per period."""
        report = formatter.format(result)

        assert "| 2025-10-01 | 1 | 0 | 0 | 1 | 0 | 0 | 0 |" in report
        assert "| 2025-10-02 | 0 | 0 | 0 | 0 | 0 | 0 | 0 |" in report

    def test_empty_sections_omitted(self, formatter):
        """Test an empty analysis only renders header, summary and timeline."""
        empty = analyze_results(
            [],
            ["owner/repo"],
            datetime(2025, 10, 1, tzinfo=timezone.utc),
            datetime(2025, 10, 2, tzinfo=timezone.utc),
        )
        report = formatter.format(empty)

        assert "## Size Distribution" not in report
        assert "## Top Contributors" not in report
        assert "## Reviewers" not in report
        assert "## Timeline" in report


class TestFormatSyncSummary:
    """Tests for format_sync_summary."""

    def test_results(self):
        """Test one line per repository and a total."""
        summary = SyncSummary(
            results=[RepoSyncResult("a/b", 4), RepoSyncResult("c/d", 0, "boom")],
            total_synced=4,
        )
        text = format_sync_summary(summary)

        assert "✅ a/b: 4 PRs synced" in text
        assert "❌ c/d: boom" in text
        assert text.endswith("Total: 4 PRs synced")

    def test_noop(self):
        """Test a noop prints its message."""
        summary = SyncSummary(noop=True, message="All 1 repos were synced within the last hour. Nothing to resume.")
        assert format_sync_summary(summary) == summary.message

    def test_rate_limited_and_skipped(self):
        """Test early stops and skipped repositories are reported."""
        summary = SyncSummary(results=[RepoSyncResult("a/b", 0, "RATE_LIMITED")], skipped=["c/d"], rate_limited=True)
        text = format_sync_summary(summary)

        assert "Skipped 1 recently synced: c/d" in text
        assert "rate limit" in text
