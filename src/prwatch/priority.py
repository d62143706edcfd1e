"""Status priority ranking and URL-based deduplication."""

from __future__ import annotations

from typing import Dict, Iterable, List

from .models import PRStatus, PullRequest

# Lower rank wins when the same pull request is discovered more than once.
STATUS_PRIORITY: Dict[PRStatus, int] = {
    PRStatus.NEEDS_REVIEW: 1,
    PRStatus.YOUR_PR: 2,
    PRStatus.ASSIGNED: 3,
    PRStatus.MENTIONED: 4,
    PRStatus.WAITING_REVIEW: 5,
    PRStatus.APPROVED: 6,
}

UNRANKED_PRIORITY = 999


def status_rank(status: PRStatus) -> int:
    return STATUS_PRIORITY.get(status, UNRANKED_PRIORITY)


def deduplicate_pull_requests(pull_requests: Iterable[PullRequest]) -> List[PullRequest]:
    """Keep one record per ``url``, choosing the highest-priority status.

    The surviving record is kept whole, so its ``account_label`` is the account
    that discovered it under the winning status. On equal rank the record seen
    first wins. Output follows the order in which each URL was first seen.
    """
    winners: Dict[str, PullRequest] = {}

    for pr in pull_requests:
        existing = winners.get(pr.url)
        if existing is None or status_rank(pr.status) < status_rank(existing.status):
            winners[pr.url] = pr

    return list(winners.values())
