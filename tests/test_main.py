"""
Tests for the command line entry point.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from pr_pulse.github_client import GitHubAPIError
from pr_pulse.main import EXIT_FAILURE, EXIT_NO_DATA, EXIT_OK, main

from conftest import FakeSource, make_source_pr, paged


@pytest.fixture
def paths(tmp_path, monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    return ["--db", str(tmp_path / "cache.db"), "--config", str(tmp_path / "repos.json")]


@pytest.fixture
def fake_source():
    now = datetime.now(timezone.utc)
    source = FakeSource(pages={"owner/repo": paged([make_source_pr(1, now - timedelta(hours=1))])})
    with patch("pr_pulse.main.PullRequestCollector", return_value=source):
        yield source


class TestRepos:
    """Tests for the repos subcommand."""

    def test_add_list_remove(self, paths, capsys):
        """Test managing the repository list."""
        with patch("pr_pulse.main.GitHubClient.repository_exists", return_value=True):
            assert main(paths + ["repos", "add", "owner/repo"]) == EXIT_OK

        assert main(paths + ["repos", "list"]) == EXIT_OK
        assert "owner/repo" in capsys.readouterr().out

        assert main(paths + ["repos", "remove", "owner/repo"]) == EXIT_OK
        capsys.readouterr()
        main(paths + ["repos", "list"])
        assert capsys.readouterr().out == ""

    def test_add_unknown_repository(self, paths):
        """Test repositories GitHub does not know are refused."""
        with patch("pr_pulse.main.GitHubClient.repository_exists", return_value=False):
            assert main(paths + ["repos", "add", "owner/missing"]) == EXIT_FAILURE

    def test_add_invalid(self, paths):
        """Test malformed identifiers fail."""
        assert main(paths + ["repos", "add", "nope"]) == EXIT_FAILURE

    def test_remove_unknown(self, paths):
        """Test removing an untracked repository fails."""
        assert main(paths + ["repos", "remove", "owner/repo"]) == EXIT_FAILURE

    def test_import_org(self, paths, capsys):
        """Test an organization's repositories are added, skipping tracked ones."""
        with patch("pr_pulse.main.GitHubClient.repository_exists", return_value=True):
            main(paths + ["repos", "add", "acme/api"])
        capsys.readouterr()

        with patch("pr_pulse.main.GitHubClient.list_org_repositories", return_value=["acme/api", "acme/web"]):
            assert main(paths + ["repos", "import-org", "acme"]) == EXIT_OK
        assert "Imported 1 of 2 repositories from acme" in capsys.readouterr().out

        main(paths + ["repos", "list"])
        assert capsys.readouterr().out.splitlines() == ["acme/api", "acme/web"]

    def test_import_unknown_org(self, paths):
        """Test a missing organization fails."""
        error = GitHubAPIError("GitHub API returned 404 for /orgs/ghost/repos", status_code=404)
        with patch("pr_pulse.main.GitHubClient.list_org_repositories", side_effect=error):
            assert main(paths + ["repos", "import-org", "ghost"]) == EXIT_FAILURE


class TestSync:
    """Tests for the sync subcommand."""

    def test_sync_then_analyze(self, paths, fake_source, capsys):
        """Test a sync followed by a JSON analysis."""
        assert main(paths + ["sync", "owner/repo"]) == EXIT_OK
        assert "✅ owner/repo: 1 PRs synced" in capsys.readouterr().out

        assert main(paths + ["analyze", "--repos", "owner/repo", "--json"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["totalPRs"] == 1
        assert data["cached"] is True

    def test_stream(self, paths, fake_source, capsys):
        """Test streamed progress is printed as JSON lines."""
        assert main(paths + ["sync", "--stream", "owner/repo"]) == EXIT_OK

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert lines[0]["type"] == "start"
        assert lines[-1]["type"] == "complete"

    def test_no_repositories(self, paths, fake_source):
        """Test a sync with nothing configured fails."""
        assert main(paths + ["sync"]) == EXIT_FAILURE

    def test_repository_failure(self, paths, fake_source):
        """Test a failed repository makes the sync fail."""
        fake_source.errors["owner/repo"] = GitHubAPIError("boom")

        assert main(paths + ["sync", "owner/repo"]) == EXIT_FAILURE

    def test_rate_limited(self, paths, fake_source):
        """Test an aborted sync fails."""
        fake_source.errors["owner/repo"] = GitHubAPIError("RATE_LIMITED: quota exhausted")

        assert main(paths + ["sync", "owner/repo", "other/repo"]) == EXIT_FAILURE


class TestAnalyze:
    """Tests for the analyze subcommand."""

    def test_no_cached_data(self, paths):
        """Test an empty cache exits with the no data code."""
        assert main(paths + ["analyze", "--repos", "owner/repo"]) == EXIT_NO_DATA

    def test_invalid_date(self, paths):
        """Test malformed dates fail."""
        assert main(paths + ["analyze", "--repos", "owner/repo", "--since", "soon"]) == EXIT_FAILURE

    def test_markdown_report(self, paths, fake_source, capsys):
        """Test the default output is the markdown report."""
        main(paths + ["sync", "owner/repo"])
        capsys.readouterr()

        assert main(paths + ["analyze", "--repos", "owner/repo", "--sizes", "XS,S"]) == EXIT_OK
        assert "# PR Analysis" in capsys.readouterr().out


class TestStatus:
    """Tests for the status subcommand."""

    def test_status(self, paths, fake_source, capsys):
        """Test sync state is printed per repository."""
        with patch("pr_pulse.main.GitHubClient.repository_exists", return_value=True):
            main(paths + ["repos", "add", "owner/repo"])
            main(paths + ["repos", "add", "other/repo"])
        main(paths + ["sync", "owner/repo"])
        capsys.readouterr()

        assert main(paths + ["status"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "owner/repo: 1 PRs" in out
        assert ", newest PR " in out
        assert "other/repo: never synced" in out
        assert "Total cached PRs: 1" in out
