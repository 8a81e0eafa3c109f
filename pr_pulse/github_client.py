"""
GitHub API client for fetching PR data.

Handles authentication, GraphQL pagination requests, rate limiting, and retries.
"""

import logging
import time
from typing import Any, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


logger = logging.getLogger(__name__)


PULL_REQUESTS_QUERY = """
query($owner: String!, $repo: String!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequests(
      first: 50
      after: $cursor
      orderBy: { field: UPDATED_AT, direction: DESC }
      states: [OPEN, CLOSED, MERGED]
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        number
        title
        state
        createdAt
        updatedAt
        mergedAt
        closedAt
        additions
        deletions
        changedFiles
        url
        author {
          login
          avatarUrl
        }
        files(first: 100) {
          nodes {
            path
            additions
            deletions
          }
        }
        reviews(first: 50) {
          totalCount
          nodes {
            author {
              login
            }
            state
            submittedAt
          }
        }
      }
    }
  }
}
"""


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded."""

    pass


class AuthenticationError(GitHubAPIError):
    """Raised when authentication fails."""

    pass


class GitHubClient:
    """Client for the GitHub GraphQL and REST APIs."""

    BASE_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"
    LOW_RATE_LIMIT_WARNING = 50
    ORG_REPOS_PAGE_SIZE = 100

    def __init__(self, token: Optional[str] = None, timeout: int = 30):
        """
        Initialize GitHub API client.

        Args:
            token: GitHub authentication token (PAT or OAuth token); GraphQL requires one
            timeout: Request timeout in seconds
        """
        self.token = token
        self.timeout = timeout

        # Create session with retry strategy
        self.session = self._create_session()

        if not self.token:
            logger.warning("No GitHub token provided. Rate limits will be much lower.")

    def _create_session(self) -> requests.Session:
        """Create requests session with retry strategy."""
        session = requests.Session()

        # Retry strategy: retry on connection errors and 5xx server errors
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        session.headers.update(headers)

        return session

    def _make_request(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        method: str = "GET",
        json_body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Make a request to the GitHub API.

        Args:
            endpoint: API endpoint (e.g., '/graphql', '/rate_limit')
            params: Query parameters
            method: HTTP method
            json_body: JSON payload for POST requests

        Returns:
            Response JSON data

        Raises:
            RateLimitError: If rate limit is exceeded
            AuthenticationError: If authentication fails
            GitHubAPIError: For other API errors
        """
        url = urljoin(self.BASE_URL, endpoint)

        logger.debug(f"{method} {url} with params: {params}")

        try:
            response = self.session.request(method, url, params=params, json=json_body, timeout=self.timeout)

            # Check rate limit
            remaining = int(response.headers.get("X-RateLimit-Remaining", 0))
            if "X-RateLimit-Remaining" in response.headers and remaining < self.LOW_RATE_LIMIT_WARNING:
                reset_time = int(response.headers.get("X-RateLimit-Reset", 0))
                logger.warning(
                    f"API rate limit low: {remaining} requests remaining. "
                    f"Resets at {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(reset_time))}"
                )

            # Handle rate limiting
            if response.status_code in (403, 429) and remaining == 0:
                reset_time = int(response.headers.get("X-RateLimit-Reset", 0))
                wait_time = max(0, reset_time - time.time())
                raise RateLimitError(
                    f"Rate limit exceeded. Resets in {wait_time:.0f} seconds",
                    status_code=response.status_code,
                    response=response.json() if response.content else None,
                )

            # Handle authentication errors
            if response.status_code == 401:
                raise AuthenticationError("Authentication failed", status_code=401)

            if response.status_code >= 400:
                raise GitHubAPIError(
                    f"GitHub API returned {response.status_code} for {endpoint}",
                    status_code=response.status_code,
                    response=response.json() if response.content else None,
                )

            return response.json()

        except requests.exceptions.Timeout as e:
            raise GitHubAPIError(f"Request timeout after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise GitHubAPIError(f"Request failed: {str(e)}") from e

    def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Run a GraphQL query.

        Args:
            query: GraphQL query string
            variables: Query variables

        Returns:
            The ``data`` member of the response

        Raises:
            RateLimitError: If GitHub reports RATE_LIMITED
            GitHubAPIError: For any other GraphQL error
        """
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        result = self._make_request("/graphql", method="POST", json_body=payload)

        errors = result.get("errors")
        if errors:
            messages = "; ".join(error.get("message", "unknown error") for error in errors)
            if any(error.get("type") == "RATE_LIMITED" for error in errors):
                raise RateLimitError(f"RATE_LIMITED: {messages}", response=result)
            raise GitHubAPIError(f"GraphQL query failed: {messages}", response=result)

        return result.get("data") or {}

    def fetch_pull_requests_page(self, owner: str, repo: str, cursor: Optional[str] = None) -> dict[str, Any]:
        """
        Fetch one page of PRs, most recently updated first.

        Args:
            owner: Repository owner
            repo: Repository name
            cursor: End cursor of the previous page, None for the first page

        Returns:
            The ``pullRequests`` connection (``pageInfo`` and ``nodes``)
        """
        logger.debug(f"Fetching PR page for {owner}/{repo} after cursor {cursor}")
        data = self.graphql(PULL_REQUESTS_QUERY, {"owner": owner, "repo": repo, "cursor": cursor})

        repository = data.get("repository")
        if repository is None:
            raise GitHubAPIError(f"Repository not found or not accessible: {owner}/{repo}", status_code=404)

        return repository["pullRequests"]

    def get_rate_limit(self) -> dict[str, Any]:
        """
        Get the GraphQL rate limit bucket.

        Returns:
            Dict with limit, remaining and reset (epoch seconds)
        """
        response = self._make_request("/rate_limit")
        return response.get("resources", {}).get("graphql", {})

    def repository_exists(self, owner: str, repo: str) -> bool:
        """Check that a repository exists and is visible with the current token."""
        try:
            self._make_request(f"/repos/{owner}/{repo}")
            return True
        except RateLimitError:
            raise
        except GitHubAPIError as e:
            logger.debug(f"Repository check failed for {owner}/{repo}: {e}")
            return False

    def list_org_repositories(self, org: str) -> list[str]:
        """
        List the active repositories of an organization.

        Pages through the REST listing; archived and disabled repositories
        are left out.

        Args:
            org: Organization login

        Returns:
            Repository identifiers as owner/repo

        Raises:
            GitHubAPIError: If the organization does not exist or is not visible (status 404)
        """
        repos: list[str] = []
        page = 1

        while True:
            batch = self._make_request(
                f"/orgs/{org}/repos",
                params={"type": "all", "per_page": self.ORG_REPOS_PAGE_SIZE, "page": page},
            )
            for repo in batch:
                if not repo.get("archived") and not repo.get("disabled"):
                    repos.append(repo["full_name"])

            if len(batch) < self.ORG_REPOS_PAGE_SIZE:
                break
            page += 1

        logger.info(f"Found {len(repos)} active repositories in {org}")
        return repos
