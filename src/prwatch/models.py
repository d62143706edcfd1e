"""Domain models for GitHub pull request aggregation.

These dataclasses intentionally model only the subset of API payload fields that
are required to classify and display pull requests.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

DELETED_USER = "Deleted User"


class PRStatus(str, enum.Enum):
    """Classification under which a pull request was discovered."""

    NEEDS_REVIEW = "Needs Your Review"
    APPROVED = "Approved"
    WAITING_REVIEW = "Waiting for Your Review"
    ASSIGNED = "Assigned to You"
    MENTIONED = "Mentioned You"
    YOUR_PR = "Your Pull Requests"
    DRAFT_PR = "Your Draft PRs"


class CIStatus(str, enum.Enum):
    PASSING = "passing"
    FAILING = "failing"
    RUNNING = "running"
    UNKNOWN = "unknown"


class RefreshReason(str, enum.Enum):
    MANUAL = "manual"
    TIMER = "timer"
    ACCOUNT_CHANGED = "account_changed"
    SETTINGS_CHANGED = "settings_changed"


class RefreshState(str, enum.Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


def parse_pull_request_url(url: str) -> Optional[Tuple[str, str, int]]:
    """Split ``https://host/owner/repo/pull/number`` into ``(owner, repo, number)``.

    Returns ``None`` when the URL does not have that shape.
    """
    parts = url.rstrip("/").split("/")
    if len(parts) < 5 or parts[-2] != "pull":
        return None

    try:
        number = int(parts[-1])
    except ValueError:
        return None

    owner, repo = parts[-4], parts[-3]
    if not owner or not repo:
        return None
    return owner, repo, number


@dataclass(frozen=True, slots=True)
class PullRequest:
    """A pull request as seen by one account during one fetch.

    ``url`` is the identity key across categories and accounts.
    ``account_label`` is only ever set by the aggregator.
    """

    number: int
    title: str
    author: str
    author_image_url: str
    url: str
    status: PRStatus
    has_merge_conflicts: bool = False
    ci_status: CIStatus = CIStatus.UNKNOWN
    is_in_archived_repo: bool = False
    is_draft: bool = False
    account_label: str = ""

    @property
    def repository(self) -> Optional[str]:
        """``owner/repo`` parsed from the pull request URL."""
        parsed = parse_pull_request_url(self.url)
        if parsed is None:
            return None
        owner, repo, _ = parsed
        return f"{owner}/{repo}"

    def with_account(self, label: str) -> "PullRequest":
        return replace(self, account_label=label)

    def with_archived(self, archived: bool) -> "PullRequest":
        return replace(self, is_in_archived_repo=archived)


@dataclass(frozen=True, slots=True)
class Account:
    """A configured GitHub credential."""

    label: str
    token: str = field(repr=False)
    enabled: bool = True


@dataclass(slots=True)
class RefreshCycle:
    """Bookkeeping for the refresh currently owned by the scheduler."""

    started_at: datetime
    reason: RefreshReason
    in_flight: bool = True


@dataclass(frozen=True, slots=True)
class AccountFetchResult:
    """Outcome of fetching one account: either records or an error."""

    label: str
    pull_requests: Tuple[PullRequest, ...] = ()
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class AggregateResult:
    """Consolidated records plus the per-account failures of one refresh."""

    pull_requests: List[PullRequest]
    account_errors: Dict[str, Exception]


@dataclass(frozen=True, slots=True)
class RefreshSnapshot:
    """Immutable result of a completed refresh cycle handed to presentation."""

    pull_requests: Tuple[PullRequest, ...]
    completed_at: datetime
    account_errors: Dict[str, Exception] = field(default_factory=dict)
    accounts_configured: bool = True
