"""
PR Pulse dashboard - a small web server for syncing and browsing PR analyses.

Usage:
    pr-pulse serve [--host HOST] [--port PORT]

All state is passed in through create_app: the PR cache, the repository
configuration and the PR source, so tests can run the app over an
in-memory store and a fake source.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import markdown2
from flask import Flask, Response, jsonify, render_template_string, request, stream_with_context

from .analyzer import run_analysis
from .collector import PullRequestSource
from .config import ConfigError, RepoConfigStore
from .filters import refilter
from .formatter import ReportFormatter
from .github_client import GitHubAPIError, GitHubClient
from .models import AnalysisResult
from .sizing import SIZE_BUCKETS
from .store import PullRequestStore
from .sync import SyncEngine
from .utils import (
    ValidationError,
    format_datetime,
    parse_csv,
    parse_datetime,
    utc_now,
    validate_repo_slug,
    validate_repositories,
)


logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(days=30)
MIN_RATE_LIMIT_TO_SYNC = 50
NO_CACHED_DATA_MESSAGE = 'No cached data found. Click "Sync Data" to fetch PR data from GitHub first.'

INDEX_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>PR Pulse</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Helvetica, Arial, sans-serif;
               max-width: 960px; margin: 40px auto; color: #24292f; }
        table { border-collapse: collapse; width: 100%; }
        th, td { border-bottom: 1px solid #d0d7de; padding: 6px 12px; text-align: left; }
        .stale { color: #9a6700; }
    </style>
</head>
<body>
    <h1>PR Pulse</h1>
    <p>{{ total_cached }} PRs cached. <a href="/report">Last 30 days report</a></p>
    {% if repos %}
    <table>
        <tr><th>Repository</th><th>Last synced</th><th>PRs</th><th>Newest PR</th></tr>
        {% for repo in repos %}
        <tr>
            <td>{{ repo.repo }}</td>
            <td class="{{ 'stale' if repo.needsSync else '' }}">{{ repo.lastSyncedAt or 'never' }}</td>
            <td>{{ repo.prCount }}</td>
            <td>{{ repo.lastPrDate or "-" }}</td>
        </tr>
        {% endfor %}
    </table>
    {% else %}
    <p>No repositories configured yet.</p>
    {% endif %}
</body>
</html>
"""

REPORT_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>PR Pulse Report</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Helvetica, Arial, sans-serif;
               max-width: 960px; margin: 40px auto; color: #24292f; }
        table { border-collapse: collapse; }
        th, td { border: 1px solid #d0d7de; padding: 4px 10px; }
    </style>
</head>
<body>
    <p><a href="/">&larr; Back</a></p>
    {{ report_html|safe }}
</body>
</html>
"""


def create_app(
    store: PullRequestStore,
    config_store: RepoConfigStore,
    source: PullRequestSource,
    client: Optional[GitHubClient] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Flask:
    """
    Build the dashboard application.

    Args:
        store: PR cache
        config_store: Tracked repository list
        source: PR source used by syncs
        client: GitHub client for repository checks and rate limit lookups;
            both are skipped without one
        clock: Source of "now" for default analysis windows

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    now = clock or utc_now
    engine = SyncEngine(source, store, clock=now)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e: ValidationError):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(ConfigError)
    def handle_config_error(e: ConfigError):
        return jsonify({"error": str(e)}), 400

    def planned_sync() -> tuple[list[str], list[str], bool]:
        body = request.get_json(silent=True) or {}
        repos = body.get("repos")
        if not isinstance(repos, list):
            repos = config_store.load().repos

        to_sync, skipped = engine.plan(validate_repositories(repos), bool(body.get("resume", False)))
        return to_sync, skipped, bool(body.get("fullSync", False))

    def remaining_rate_limit() -> Optional[int]:
        if client is None:
            return None
        try:
            return client.get_rate_limit().get("remaining")
        except GitHubAPIError as e:
            logger.warning(f"Could not read rate limit after sync: {e}")
            return None

    def low_rate_limit_response():
        """429 response when the GraphQL quota is nearly exhausted, else None."""
        if client is None:
            return None

        try:
            rate_limit = client.get_rate_limit()
        except GitHubAPIError as e:
            logger.warning(f"Could not check rate limit: {e}")
            return None

        remaining = rate_limit.get("remaining")
        if remaining is None or remaining >= MIN_RATE_LIMIT_TO_SYNC:
            return None

        reset = datetime.fromtimestamp(rate_limit.get("reset", 0), tz=now().tzinfo)
        logger.warning(f"Refusing to sync: only {remaining} GraphQL requests left")
        body = {
            "error": f"GitHub GraphQL rate limit low ({remaining} remaining). Resets at {format_datetime(reset)}.",
            "rateLimit": {"remaining": remaining, "limit": rate_limit.get("limit"), "reset": format_datetime(reset)},
        }
        return jsonify(body), 429

    def analysis_from_request() -> Optional[AnalysisResult]:
        until = parse_datetime(request.args.get("until")) or now()
        since = parse_datetime(request.args.get("since")) or until - DEFAULT_WINDOW

        repos = parse_csv(request.args.get("repos")) or config_store.load().repos
        result = run_analysis(store, repos, since, until)
        if result is None:
            return None

        contributors = parse_csv(request.args.get("contributors"))
        sizes = request.args.get("sizes")
        if contributors or sizes is not None:
            result = refilter(
                result,
                contributors=contributors,
                sizes=parse_csv(sizes) if sizes is not None else SIZE_BUCKETS,
            )
        return result

    def repo_sync_states() -> list[dict[str, Any]]:
        statuses = {status.repository: status for status in store.sync_statuses()}
        states = []
        for repo in config_store.load().repos:
            status = statuses.get(repo)
            states.append(
                {
                    "repo": repo,
                    "lastSyncedAt": format_datetime(status.last_synced_at) if status else None,
                    "prCount": status.pr_count if status else 0,
                    "needsSync": status is None,
                    "lastPrDate": store.repo_stats(repo)["lastPrDate"],
                }
            )
        return states

    @app.route("/")
    def index():
        """Display the tracked repositories and their sync state."""
        return render_template_string(
            INDEX_TEMPLATE,
            repos=repo_sync_states(),
            total_cached=store.total_cached(),
        )

    @app.route("/api/sync", methods=["GET"])
    def api_sync_status():
        """Sync state of every configured repository."""
        return jsonify({"repos": repo_sync_states(), "totalCachedPRs": store.total_cached()})

    @app.route("/api/sync", methods=["POST"])
    def api_sync():
        """Run a sync to completion and return the tally."""
        to_sync, skipped, full_sync = planned_sync()
        if to_sync:
            too_low = low_rate_limit_response()
            if too_low is not None:
                return too_low

        summary = engine.collect(engine.events(to_sync, skipped, full_sync))
        body = summary.to_dict()
        body["success"] = True
        body["totalCached"] = store.total_cached()
        body["rateLimitRemaining"] = remaining_rate_limit()
        return jsonify(body)

    @app.route("/api/sync/stream", methods=["POST"])
    def api_sync_stream():
        """Run a sync, streaming progress as server-sent events."""
        to_sync, skipped, full_sync = planned_sync()
        events = engine.events(to_sync, skipped, full_sync)
        if not to_sync:
            return jsonify({"success": True, **next(events).to_dict()})

        too_low = low_rate_limit_response()
        if too_low is not None:
            return too_low

        def generate():
            for event in events:
                yield event.to_sse()

        return Response(
            stream_with_context(generate()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/api/analyze")
    def api_analyze():
        """Analyze cached PRs for a date window."""
        result = analysis_from_request()
        if result is None:
            return jsonify({"error": NO_CACHED_DATA_MESSAGE, "needsSync": True}), 404

        return jsonify({**result.to_dict(), "cached": True, "totalCachedPRs": store.total_cached()})

    @app.route("/report")
    def report():
        """Render the markdown report of an analysis as HTML."""
        result = analysis_from_request()
        if result is None:
            return f"<h1>No data</h1><p>{NO_CACHED_DATA_MESSAGE}</p>", 404

        html = markdown2.markdown(
            ReportFormatter().format(result),
            extras=["fenced-code-blocks", "tables", "break-on-newline"],
        )
        return render_template_string(REPORT_TEMPLATE, report_html=html)

    @app.route("/api/repos", methods=["GET"])
    def api_repos():
        return jsonify(config_store.load().to_dict())

    @app.route("/api/repos", methods=["POST"])
    def api_add_repo():
        """Add one repository, or several at once with ``{"repos": [...]}``."""
        body = request.get_json(silent=True) or {}

        if isinstance(body.get("repos"), list):
            return jsonify(config_store.add_many(body["repos"]).to_dict())

        repo = body.get("repo")
        if not repo or not isinstance(repo, str):
            return jsonify({"error": "Repository path is required (format: owner/repo)"}), 400

        validate_repo_slug(repo)
        if client is not None:
            owner, name = repo.split("/", 1)
            if not client.repository_exists(owner, name):
                return jsonify({"error": "Repository not found on GitHub or is not accessible"}), 404

        return jsonify(config_store.add(repo).to_dict())

    @app.route("/api/repos", methods=["DELETE"])
    def api_remove_repo():
        """Stop tracking a repository and drop its cached PRs."""
        body = request.get_json(silent=True) or {}
        repo = body.get("repo")
        if not repo or not isinstance(repo, str):
            return jsonify({"error": "Repository path is required"}), 400

        config = config_store.remove(repo)
        store.clear_repository(repo)
        return jsonify(config.to_dict())

    @app.route("/api/orgs/<org>/repos")
    def api_org_repos(org: str):
        """List the active repositories of an organization for bulk import."""
        if client is None:
            return jsonify({"error": "GitHub client is not configured"}), 503

        try:
            repos = client.list_org_repositories(org)
        except GitHubAPIError as e:
            if e.status_code == 404:
                return jsonify({"error": f"Organization '{org}' not found or not accessible"}), 404
            logger.error(f"Error fetching repositories of {org}: {e}")
            return jsonify({"error": str(e)}), 500

        return jsonify({"org": org, "repos": repos, "count": len(repos)})

    return app
