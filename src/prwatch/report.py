"""Grouping and text rendering of consolidated pull requests.

This module provides utilities for:
- Hiding pull requests from archived repositories.
- Grouping pull requests by status in display priority order.
- Formatting single pull request lines and tooltips.
- Building a human-readable report of one refresh snapshot.
"""

from __future__ import annotations

from typing import Collection, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import CIStatus, PRStatus, PullRequest, RefreshSnapshot
from .settings import Settings

DISPLAY_ORDER: Tuple[PRStatus, ...] = (
    PRStatus.NEEDS_REVIEW,
    PRStatus.WAITING_REVIEW,
    PRStatus.ASSIGNED,
    PRStatus.MENTIONED,
    PRStatus.YOUR_PR,
    PRStatus.DRAFT_PR,
    PRStatus.APPROVED,
)

TOKEN_REQUIRED_MESSAGE = "GitHub token required: configure PRWATCH_ACCOUNTS or GITHUB_TOKEN."
NO_PULL_REQUESTS_MESSAGE = "No pull requests available"

_CI_LABELS: Dict[CIStatus, str] = {
    CIStatus.PASSING: "Passing",
    CIStatus.FAILING: "Failing",
    CIStatus.RUNNING: "Running",
    CIStatus.UNKNOWN: "Unknown",
}


def filter_archived(pull_requests: Iterable[PullRequest], show_archived: bool) -> List[PullRequest]:
    if show_archived:
        return list(pull_requests)
    return [pr for pr in pull_requests if not pr.is_in_archived_repo]


def group_by_status(
    pull_requests: Sequence[PullRequest],
    visible_statuses: Optional[Collection[PRStatus]] = None,
) -> List[Tuple[PRStatus, List[PullRequest]]]:
    """Group pull requests by status in ``DISPLAY_ORDER``.

    Hidden statuses and empty groups are omitted. Within a group the input
    order is kept.
    """
    groups: List[Tuple[PRStatus, List[PullRequest]]] = []
    for status in DISPLAY_ORDER:
        if visible_statuses is not None and status not in visible_statuses:
            continue
        members = [pr for pr in pull_requests if pr.status is status]
        if members:
            groups.append((status, members))
    return groups


def format_pull_request(pr: PullRequest, settings: Settings) -> str:
    """Render one pull request as a single menu-style line."""
    title_parts = []
    if settings.display_pr_number:
        title_parts.append(f"#{pr.number}")
    if settings.display_pr_title:
        title_parts.append(pr.title)
    line = " - ".join(title_parts) or pr.url

    details = []
    if settings.display_repo_name and pr.repository:
        details.append(pr.repository)
    if settings.display_account_name and pr.account_label:
        details.append(f"@{pr.account_label}")
    if settings.display_pr_status:
        if pr.is_draft:
            details.append("draft")
        if pr.has_merge_conflicts:
            details.append("conflicts")
        if pr.ci_status is not CIStatus.UNKNOWN:
            details.append(f"CI {_CI_LABELS[pr.ci_status].lower()}")

    if details:
        line = f"{line} ({', '.join(details)})"
    return line


def format_tooltip(pr: PullRequest) -> str:
    """Describe repository, author, status, CI and merge state on separate lines."""
    lines = []
    if pr.repository:
        lines.append(f"Repository: {pr.repository}")
    lines.append(f"PR #{pr.number}: {pr.title}")
    lines.append(f"Author: {pr.author}")
    lines.append(f"Status: {pr.status.value}")
    lines.append(f"CI Checks: {_CI_LABELS[pr.ci_status]}")
    lines.append(f"Merge Conflicts: {'Yes' if pr.has_merge_conflicts else 'None'}")
    return "\n".join(lines)


def render_report(
    snapshot: Optional[RefreshSnapshot],
    settings: Optional[Settings] = None,
    show_details: bool = False,
) -> str:
    """Generate a human-readable report for one refresh snapshot.

    Returns the token-required message when no accounts are configured, and a
    distinct "no pull requests" message for an empty successful refresh.
    With ``show_details`` every pull request is followed by its tooltip text.
    Failed accounts are listed after the groups.
    """
    settings = settings or Settings()

    if snapshot is None or not snapshot.accounts_configured:
        return TOKEN_REQUIRED_MESSAGE

    visible = filter_archived(snapshot.pull_requests, settings.show_archived_repos)
    groups = group_by_status(visible, settings.visible_status_groups)

    lines: List[str] = []
    if not groups:
        lines.append(NO_PULL_REQUESTS_MESSAGE)

    for status, members in groups:
        if lines:
            lines.append("")
        lines.append(f"{status.value} ({len(members)})")
        for pr in members:
            lines.append(f"  {format_pull_request(pr, settings)}")
            if show_details:
                lines.extend(f"    {detail}" for detail in format_tooltip(pr).splitlines())

    if snapshot.account_errors:
        lines.append("")
        for label, error in sorted(snapshot.account_errors.items()):
            lines.append(f"! {label}: {type(error).__name__}: {error}")

    return "\n".join(lines)
