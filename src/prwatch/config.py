"""Configuration parsing and validation for the GitHub PR watcher."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_REFRESH_INTERVAL_SECONDS = 300
MIN_REFRESH_INTERVAL_SECONDS = 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
DEFAULT_DEBOUNCE_SECONDS = 1.0


def clamp_refresh_interval(seconds: float) -> int:
    """Return ``seconds`` raised to the 60 second floor."""
    return int(max(MIN_REFRESH_INTERVAL_SECONDS, seconds))


@dataclass(frozen=True)
class Config:
    """Validated runtime settings shared by the client, aggregator and scheduler."""

    api_url: str = DEFAULT_API_URL
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    account_timeout_seconds: Optional[float] = None
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS

    @property
    def graphql_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/graphql"


def load_config(
    api_url: Optional[str] = None,
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    account_timeout_seconds: Optional[float] = None,
    refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
) -> Config:
    """Build and validate application configuration.

    Args:
        api_url: GitHub REST base URL. Falls back to ``GITHUB_API_URL`` and then
            ``https://api.github.com``.
        request_timeout_seconds: Per-HTTP-request timeout.
        account_timeout_seconds: Optional bound on one account's whole fetch.
        refresh_interval_seconds: Polling interval, clamped to at least 60.
        debounce_seconds: Quiet period before a change notification refreshes.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If a timeout is not positive or the API URL is not HTTPS.
    """
    resolved_url = (api_url or os.getenv("GITHUB_API_URL", "") or DEFAULT_API_URL).strip()
    if not resolved_url.startswith("https://"):
        raise ConfigurationError(
            f"Invalid GitHub API URL '{resolved_url}': only HTTPS endpoints are supported."
        )

    if request_timeout_seconds <= 0:
        raise ConfigurationError(
            "Invalid value for 'request_timeout_seconds': expected a number greater than 0."
        )

    if account_timeout_seconds is not None and account_timeout_seconds <= 0:
        raise ConfigurationError(
            "Invalid value for 'account_timeout_seconds': expected a number greater than 0."
        )

    if debounce_seconds < 0:
        raise ConfigurationError("Invalid value for 'debounce_seconds': must not be negative.")

    return Config(
        api_url=resolved_url.rstrip("/"),
        request_timeout_seconds=request_timeout_seconds,
        account_timeout_seconds=account_timeout_seconds,
        refresh_interval_seconds=clamp_refresh_interval(refresh_interval_seconds),
        debounce_seconds=debounce_seconds,
    )
