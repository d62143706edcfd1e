"""GitHub API client for pull request discovery.

One client serves one account. ``fetch_for_account`` tries a single GraphQL
query first and falls back to five REST search queries when GraphQL fails or
finds nothing.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import requests

from .config import Config
from .errors import (
    AuthenticationError,
    DecodeError,
    PartialRecordError,
    PRWatchError,
    TransportError,
)
from .models import DELETED_USER, CIStatus, PRStatus, PullRequest, parse_pull_request_url
from .priority import deduplicate_pull_requests
from .repo_metadata import RepositoryMetadataResolver

logger = logging.getLogger(__name__)

__all__ = [
    "GitHubClient",
    "REST_SEARCH_QUERIES",
    "normalize_graphql_node",
    "normalize_search_item",
    "parse_pull_request_url",
]

_PR_NODE_FIELDS = """
        nodes {
          number
          title
          url
          isDraft
          repository {
            name
            owner {
              login
            }
            isArchived
          }
          author {
            login
            avatarUrl
          }
          mergeable
        }"""

VIEWER_PULL_REQUESTS_QUERY = (
    """
{
  viewer {
    login
    reviewRequested: pullRequests(first: 30, states: [OPEN], filterBy: {reviewRequested: true}) {"""
    + _PR_NODE_FIELDS
    + """
    }
    authored: pullRequests(first: 30, states: [OPEN]) {"""
    + _PR_NODE_FIELDS
    + """
    }
  }
}
"""
)

GRAPHQL_BUCKETS: Tuple[Tuple[str, PRStatus], ...] = (
    ("reviewRequested", PRStatus.NEEDS_REVIEW),
    ("authored", PRStatus.YOUR_PR),
)

REST_SEARCH_QUERIES: Tuple[Tuple[str, PRStatus], ...] = (
    ("is:open is:pr review-requested:@me", PRStatus.NEEDS_REVIEW),
    ("is:open is:pr involves:@me -review-requested:@me -author:@me", PRStatus.WAITING_REVIEW),
    ("is:open is:pr author:@me", PRStatus.YOUR_PR),
    ("is:open is:pr assignee:@me -author:@me", PRStatus.ASSIGNED),
    ("is:open is:pr mentions:@me -author:@me -assignee:@me", PRStatus.MENTIONED),
)


def _required_fields(payload: Dict[str, Any]) -> Tuple[int, str]:
    number = payload.get("number")
    title = payload.get("title")
    if not isinstance(number, int) or isinstance(number, bool):
        raise PartialRecordError(f"Pull request node has no integer 'number': {payload!r}")
    if not isinstance(title, str):
        raise PartialRecordError(f"Pull request #{number} has no 'title'")
    return number, title


def normalize_graphql_node(node: Any, status: PRStatus) -> PullRequest:
    """Convert one GraphQL ``PullRequest`` node into a ``PullRequest`` record.

    Raises:
        PartialRecordError: If ``number``, ``title`` or ``url`` is missing.
    """
    if not isinstance(node, dict):
        raise PartialRecordError(f"Pull request node is not an object: {node!r}")

    number, title = _required_fields(node)
    url = node.get("url")
    if not isinstance(url, str) or not url:
        raise PartialRecordError(f"Pull request #{number} has no 'url'")

    author = node.get("author")
    if isinstance(author, dict):
        author_login = author.get("login") or "Unknown"
        author_image_url = author.get("avatarUrl") or ""
    else:
        author_login = DELETED_USER
        author_image_url = ""

    repository = node.get("repository")
    is_archived = isinstance(repository, dict) and repository.get("isArchived") is True

    return PullRequest(
        number=number,
        title=title,
        author=str(author_login),
        author_image_url=str(author_image_url),
        url=url,
        status=status,
        has_merge_conflicts=node.get("mergeable") == "CONFLICTING",
        ci_status=CIStatus.UNKNOWN,
        is_in_archived_repo=is_archived,
        is_draft=node.get("isDraft") is True,
    )


def normalize_search_item(item: Any, status: PRStatus) -> PullRequest:
    """Convert one ``/search/issues`` item into a ``PullRequest`` record.

    Archived status is left ``False``; the REST path resolves it afterwards.

    Raises:
        PartialRecordError: If ``number``, ``title`` or ``html_url`` is missing.
    """
    if not isinstance(item, dict):
        raise PartialRecordError(f"Search item is not an object: {item!r}")

    number, title = _required_fields(item)
    url = item.get("html_url")
    if not isinstance(url, str) or not url:
        raise PartialRecordError(f"Pull request #{number} has no 'html_url'")

    user = item.get("user")
    if isinstance(user, dict):
        author_login = user.get("login") or "Unknown"
        author_image_url = user.get("avatar_url") or ""
    else:
        author_login = DELETED_USER
        author_image_url = ""

    return PullRequest(
        number=number,
        title=title,
        author=str(author_login),
        author_image_url=str(author_image_url),
        url=url,
        status=status,
        is_draft=item.get("draft") is True,
    )


class GitHubClient:
    """Small, typed client for the GitHub endpoints used to discover pull requests."""

    _API_VERSION = "2022-11-28"
    _SEARCH_PAGE_SIZE = 100
    _MAX_RETRIES = 3
    _MAX_BACKOFF_SECONDS = 30

    def __init__(
        self,
        token: str,
        config: Optional[Config] = None,
        account_label: Optional[str] = None,
    ) -> None:
        """Initialize an authenticated GitHub API client.

        Args:
            token: Personal access token sent as a bearer token.
            config: Runtime configuration; defaults are used when omitted.
            account_label: Label attached to raised errors for reporting.
        """
        self._config = config or Config()
        self._timeout_seconds = self._config.request_timeout_seconds
        self._base_url = self._config.api_url.rstrip("/")
        self._account_label = account_label

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": self._API_VERSION,
            }
        )

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a path below the API root."""
        return f"{self._base_url}/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute a request with retry logic for 429/5xx responses.

        Raises:
            AuthenticationError: On HTTP 401.
            TransportError: If the request repeatedly fails or returns another
                HTTP status >= 400.
            DecodeError: If the body is not a JSON object.
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise TransportError(
                        f"GitHub request failed after retries: {method} {url}",
                        account_label=self._account_label,
                    ) from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code

            if status_code == 401:
                raise AuthenticationError(
                    f"GitHub rejected the token: {method} {url} returned 401",
                    account_label=self._account_label,
                )

            is_retryable = status_code == 429 or 500 <= status_code <= 599
            if is_retryable and attempt < self._MAX_RETRIES:
                time.sleep(self._extract_backoff_seconds(response, attempt))
                continue

            if status_code < 200 or status_code >= 300:
                raise TransportError(
                    f"GitHub API request failed: {method} {url} returned {status_code} - {response.text}",
                    status_code=status_code,
                    account_label=self._account_label,
                )

            try:
                payload = response.json()
            except ValueError as exc:
                raise DecodeError(
                    f"GitHub API returned invalid JSON: {method} {url}",
                    account_label=self._account_label,
                ) from exc

            if not isinstance(payload, dict):
                raise DecodeError(
                    f"GitHub API returned unexpected payload shape: {method} {url}",
                    account_label=self._account_label,
                )

            return payload

        raise TransportError(
            f"GitHub request failed after retries: {method} {url}",
            account_label=self._account_label,
        ) from last_error

    def fetch_viewer_login(self) -> str:
        """Return the login of the account owning the token."""
        payload = self._request_json("GET", "user")
        login = payload.get("login")
        if not isinstance(login, str) or not login:
            raise DecodeError("GitHub /user response has no 'login'", account_label=self._account_label)
        return login

    def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return self._request_json("GET", f"repos/{owner}/{repo}")

    def fetch_with_graphql(self) -> List[PullRequest]:
        """Run the viewer query and normalize both buckets.

        Raises:
            AuthenticationError, TransportError, DecodeError: On any failure of
                the request or an ``errors`` payload.
        """
        payload = self._request_json("POST", "graphql", json_body={"query": VIEWER_PULL_REQUESTS_QUERY})

        errors = payload.get("errors")
        if errors:
            if not isinstance(errors, list):
                raise DecodeError(
                    f"GitHub GraphQL returned malformed errors: {errors!r}",
                    account_label=self._account_label,
                )
            messages = [
                str(error.get("message") or "unknown error")
                for error in errors
                if isinstance(error, dict)
            ]
            raise DecodeError(
                f"GitHub GraphQL returned errors: {'; '.join(messages) or repr(errors)}",
                account_label=self._account_label,
            )

        data = payload.get("data")
        viewer = data.get("viewer") if isinstance(data, dict) else None
        if not isinstance(viewer, dict):
            raise DecodeError("GitHub GraphQL response has no 'data.viewer'", account_label=self._account_label)

        pull_requests: List[PullRequest] = []
        for bucket, status in GRAPHQL_BUCKETS:
            connection = viewer.get(bucket)
            nodes = connection.get("nodes") if isinstance(connection, dict) else None
            if not isinstance(nodes, list):
                logger.debug("GraphQL bucket missing", extra={"bucket": bucket})
                continue

            for node in nodes:
                try:
                    pull_requests.append(normalize_graphql_node(node, status))
                except PartialRecordError as exc:
                    logger.debug("Dropping unparsable GraphQL node", extra={"bucket": bucket, "error": str(exc)})

        unique = deduplicate_pull_requests(pull_requests)
        logger.debug(
            "GraphQL fetch complete",
            extra={"viewer": viewer.get("login"), "records": len(pull_requests), "unique": len(unique)},
        )
        return unique

    def search_pull_requests(self, query: str, status: PRStatus) -> List[PullRequest]:
        """Run one ``/search/issues`` query and tag every result with ``status``."""
        payload = self._request_json(
            "GET",
            "search/issues",
            params={"q": query, "per_page": self._SEARCH_PAGE_SIZE},
        )

        items = payload.get("items")
        if not isinstance(items, list):
            raise DecodeError(
                f"GitHub search response has no 'items' list for query: {query}",
                account_label=self._account_label,
            )

        pull_requests: List[PullRequest] = []
        for item in items:
            try:
                pull_requests.append(normalize_search_item(item, status))
            except PartialRecordError as exc:
                logger.debug("Dropping unparsable search item", extra={"query": query, "error": str(exc)})

        return pull_requests

    def fetch_with_rest(self) -> List[PullRequest]:
        """Run the five category searches concurrently and resolve archived repos.

        Raises:
            AuthenticationError: If any search was rejected with 401.
            TransportError, DecodeError: If any other search failed.
        """
        with ThreadPoolExecutor(max_workers=len(REST_SEARCH_QUERIES)) as executor:
            futures = [
                executor.submit(self.search_pull_requests, query, status)
                for query, status in REST_SEARCH_QUERIES
            ]

        pull_requests: List[PullRequest] = []
        failures: List[PRWatchError] = []
        for future, (query, _) in zip(futures, REST_SEARCH_QUERIES):
            try:
                pull_requests.extend(future.result())
            except PRWatchError as exc:
                logger.debug("REST search failed", extra={"query": query, "error": str(exc)})
                failures.append(exc)

        if failures:
            auth_failures = [error for error in failures if isinstance(error, AuthenticationError)]
            raise (auth_failures or failures)[0]

        return self._resolve_archived(pull_requests)

    def _resolve_archived(self, pull_requests: List[PullRequest]) -> List[PullRequest]:
        """Fill ``is_in_archived_repo`` with one concurrent lookup per repository."""
        repositories = []
        for pr in pull_requests:
            parsed = parse_pull_request_url(pr.url)
            if parsed is not None and parsed[:2] not in repositories:
                repositories.append(parsed[:2])

        if not repositories:
            return pull_requests

        resolver = RepositoryMetadataResolver(self)
        with ThreadPoolExecutor(max_workers=len(repositories)) as executor:
            archived_flags = list(
                executor.map(lambda owner_repo: resolver.is_archived(*owner_repo), repositories)
            )
        archived_by_repo = dict(zip(repositories, archived_flags))

        resolved: List[PullRequest] = []
        for pr in pull_requests:
            parsed = parse_pull_request_url(pr.url)
            archived = archived_by_repo.get(parsed[:2], False) if parsed is not None else False
            resolved.append(pr.with_archived(archived))

        return resolved

    def fetch_for_account(self) -> List[PullRequest]:
        """Return every pull request visible to this client's token.

        GraphQL is tried first. Any GraphQL failure, or an empty result, falls
        back to REST; a REST failure is what gets raised to the caller.
        """
        try:
            pull_requests = self.fetch_with_graphql()
        except PRWatchError as exc:
            logger.debug(
                "GraphQL fetch failed, falling back to REST",
                extra={"account_label": self._account_label, "error": str(exc)},
            )
            pull_requests = []

        if pull_requests:
            return pull_requests

        logger.debug("GraphQL returned no pull requests, using REST search", extra={"account_label": self._account_label})
        return self.fetch_with_rest()
