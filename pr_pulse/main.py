#!/usr/bin/env python3
"""
PR Pulse - Main Entry Point

Syncs PR data from GitHub into a local cache and analyzes it.
"""

import argparse
import json
import logging
import sys
from datetime import timedelta
from typing import Optional

from .analyzer import run_analysis
from .collector import PullRequestCollector
from .config import ConfigError, RepoConfigStore, Settings, load_settings
from .dashboard import DEFAULT_WINDOW, create_app
from .filters import refilter
from .formatter import ReportFormatter, format_sync_summary
from .github_client import AuthenticationError, GitHubAPIError, GitHubClient, RateLimitError
from .sizing import SIZE_BUCKETS
from .store import PullRequestStore
from .sync import SyncEngine
from .utils import (
    ValidationError,
    format_datetime,
    parse_csv,
    parse_datetime,
    setup_logging,
    split_repo_slug,
    utc_now,
)


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NO_DATA = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pr-pulse", description="Sync and analyze GitHub pull requests")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    parser.add_argument("--db", default=None, help="SQLite cache path (default: PR_PULSE_DB)")
    parser.add_argument("--config", default=None, help="Repository list path (default: PR_PULSE_CONFIG)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Fetch PRs from GitHub into the cache")
    sync.add_argument("repos", nargs="*", help="Repositories as owner/repo (default: configured list)")
    sync.add_argument("--full", action="store_true", help="Ignore the last sync and refetch everything")
    sync.add_argument("--resume", action="store_true", help="Skip repositories synced within the last hour")
    sync.add_argument("--stream", action="store_true", help="Print progress events as JSON lines")

    analyze = subparsers.add_parser("analyze", help="Analyze cached PRs")
    analyze.add_argument("--since", help="Window start, ISO 8601 (default: 30 days before --until)")
    analyze.add_argument("--until", help="Window end, ISO 8601 (default: now)")
    analyze.add_argument("--repos", help="Comma separated repositories (default: configured list)")
    analyze.add_argument("--contributors", help="Comma separated author handles to keep")
    analyze.add_argument("--sizes", help=f"Comma separated size buckets to keep ({','.join(SIZE_BUCKETS)})")
    analyze.add_argument("--json", action="store_true", help="Print JSON instead of markdown")

    subparsers.add_parser("status", help="Show the sync state of configured repositories")

    repos = subparsers.add_parser("repos", help="Manage the tracked repository list")
    repos_commands = repos.add_subparsers(dest="repos_command", required=True)
    repos_commands.add_parser("list", help="List tracked repositories")
    add = repos_commands.add_parser("add", help="Track a repository")
    add.add_argument("repo", help="Repository as owner/repo")
    remove = repos_commands.add_parser("remove", help="Stop tracking a repository and drop its cache")
    remove.add_argument("repo", help="Repository as owner/repo")
    import_org = repos_commands.add_parser("import-org", help="Track every active repository of an organization")
    import_org.add_argument("org", help="Organization login")

    serve = subparsers.add_parser("serve", help="Run the web dashboard")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=5000, help="Port to listen on (default: 5000)")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the pr-pulse CLI.

    Returns:
        Exit code (0 for success, 1 for failure, 2 when no cached data matches)
    """
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.db:
        settings.db_path = args.db
    if args.config:
        settings.config_path = args.config

    # Setup logging
    setup_logging(args.log_level or settings.log_level)

    try:
        if args.command == "sync":
            return cmd_sync(args, settings)
        if args.command == "analyze":
            return cmd_analyze(args, settings)
        if args.command == "status":
            return cmd_status(settings)
        if args.command == "repos":
            return cmd_repos(args, settings)
        return cmd_serve(args, settings)

    except AuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        return EXIT_FAILURE

    except RateLimitError as e:
        logger.error(f"Rate limit exceeded: {e}")
        return EXIT_FAILURE

    except GitHubAPIError as e:
        logger.error(f"GitHub API error: {e}")
        return EXIT_FAILURE

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_FAILURE

    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_FAILURE

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return EXIT_FAILURE


def open_store(settings: Settings) -> PullRequestStore:
    return PullRequestStore(settings.db_path)


def cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    repos = args.repos or RepoConfigStore(settings.config_path).load().repos
    store = open_store(settings)
    try:
        engine = SyncEngine(PullRequestCollector(GitHubClient(token=settings.github_token)), store)
        events = engine.iter_sync(repos, full_sync=args.full, resume=args.resume)

        if args.stream:
            summary = engine.collect(_echo_events(events))
        else:
            summary = engine.collect(events)
            print(format_sync_summary(summary))
    finally:
        store.close()

    if summary.rate_limited:
        logger.error("Sync stopped early: GitHub API rate limit exceeded")
        return EXIT_FAILURE
    if summary.failed:
        logger.error(f"{len(summary.failed)} repositories failed to sync")
        return EXIT_FAILURE
    return EXIT_OK


def _echo_events(events):
    for event in events:
        print(json.dumps(event.to_dict()), flush=True)
        yield event


def cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    until = parse_datetime(args.until) or utc_now()
    since = parse_datetime(args.since) or until - DEFAULT_WINDOW
    repos = parse_csv(args.repos) or RepoConfigStore(settings.config_path).load().repos

    store = open_store(settings)
    try:
        result = run_analysis(store, repos, since, until)
        total_cached = store.total_cached()
    finally:
        store.close()

    if result is None:
        logger.warning("No cached data found. Run `pr-pulse sync` first.")
        return EXIT_NO_DATA

    if args.contributors or args.sizes is not None:
        result = refilter(
            result,
            contributors=parse_csv(args.contributors),
            sizes=parse_csv(args.sizes) if args.sizes is not None else SIZE_BUCKETS,
        )

    if args.json:
        print(json.dumps({**result.to_dict(), "cached": True, "totalCachedPRs": total_cached}, indent=2))
    else:
        print(ReportFormatter().format(result))
    return EXIT_OK


def cmd_status(settings: Settings) -> int:
    repos = RepoConfigStore(settings.config_path).load().repos
    store = open_store(settings)
    try:
        statuses = {status.repository: status for status in store.sync_statuses()}
        for repo in repos:
            status = statuses.get(repo)
            if status is None:
                print(f"{repo}: never synced")
                continue
            age = utc_now() - status.last_synced_at
            line = (
                f"{repo}: {status.pr_count} PRs, last synced {format_datetime(status.last_synced_at)} "
                f"({_format_age(age)} ago)"
            )
            last_pr_date = store.repo_stats(repo)["lastPrDate"]
            if last_pr_date:
                line += f", newest PR {last_pr_date}"
            print(line)
        print(f"Total cached PRs: {store.total_cached()}")
    finally:
        store.close()
    return EXIT_OK


def _format_age(age: timedelta) -> str:
    minutes = int(age.total_seconds() // 60)
    if minutes < 60:
        return f"{minutes}m"
    if minutes < 60 * 24:
        return f"{minutes // 60}h"
    return f"{minutes // (60 * 24)}d"


def cmd_repos(args: argparse.Namespace, settings: Settings) -> int:
    config_store = RepoConfigStore(settings.config_path)

    if args.repos_command == "list":
        for repo in config_store.load().repos:
            print(repo)
        return EXIT_OK

    if args.repos_command == "add":
        owner, name = split_repo_slug(args.repo)
        if not GitHubClient(token=settings.github_token).repository_exists(owner, name):
            logger.error(f"Repository not found on GitHub or is not accessible: {args.repo}")
            return EXIT_FAILURE
        config_store.add(args.repo)
        print(f"Added {args.repo}")
        return EXIT_OK

    if args.repos_command == "import-org":
        before = set(config_store.load().repos)
        org_repos = GitHubClient(token=settings.github_token).list_org_repositories(args.org)
        config = config_store.add_many(org_repos)
        added = [repo for repo in config.repos if repo not in before]
        print(f"Imported {len(added)} of {len(org_repos)} repositories from {args.org}")
        return EXIT_OK

    config_store.remove(args.repo)
    store = open_store(settings)
    try:
        store.clear_repository(args.repo)
    finally:
        store.close()
    print(f"Removed {args.repo}")
    return EXIT_OK


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    client = GitHubClient(token=settings.github_token)
    app = create_app(
        store=open_store(settings),
        config_store=RepoConfigStore(settings.config_path),
        source=PullRequestCollector(client),
        client=client,
    )

    logger.info(f"Starting dashboard on http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, threaded=True)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
