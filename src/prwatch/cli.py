"""Command-line argument parsing for the GitHub PR watcher."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from .config import (
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    MIN_REFRESH_INTERVAL_SECONDS,
)
from .models import PRStatus

_STATUS_CHOICES = {status.name.lower(): status for status in PRStatus}


def _positive_float(value: str) -> float:
    """Parse and validate a positive number CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be a number") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def _status(value: str) -> PRStatus:
    try:
        return _STATUS_CHOICES[value.strip().lower().replace("-", "_")]
    except KeyError as exc:
        raise argparse.ArgumentTypeError(
            f"unknown status '{value}' (choose from {', '.join(sorted(_STATUS_CHOICES))})"
        ) from exc


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the watcher.

    Returns:
        Parsed CLI arguments: run mode, polling interval, timeouts and display
        filters.
    """
    parser = argparse.ArgumentParser(
        prog="github-pr-watch",
        description=(
            "Poll GitHub for pull requests that need your attention across one or "
            "more accounts. Accounts are read from PRWATCH_ACCOUNTS (label:token,...) "
            "or GITHUB_TOKEN."
        ),
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Refresh once, print the report and exit.",
    )
    parser.add_argument(
        "--interval",
        type=_positive_float,
        default=DEFAULT_REFRESH_INTERVAL_SECONDS,
        help=(
            f"Seconds between refreshes (default: {DEFAULT_REFRESH_INTERVAL_SECONDS}, "
            f"minimum: {MIN_REFRESH_INTERVAL_SECONDS})."
        ),
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        help=f"Per-request HTTP timeout in seconds (default: {DEFAULT_REQUEST_TIMEOUT_SECONDS}).",
    )
    parser.add_argument(
        "--account-timeout",
        type=_positive_float,
        default=None,
        help="Upper bound in seconds on one account's whole fetch (default: none).",
    )
    parser.add_argument(
        "--show-archived",
        action="store_true",
        help="Include pull requests from archived repositories.",
    )
    parser.add_argument(
        "--hide-status",
        type=_status,
        action="append",
        default=[],
        metavar="STATUS",
        help="Hide a status group, e.g. 'mentioned' or 'waiting_review' (repeatable).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args(argv)
