"""Custom exception types for the GitHub PR watcher."""

from __future__ import annotations

from typing import Optional


class PRWatchError(Exception):
    """Base exception for all recoverable PR watcher errors."""

    def __init__(self, message: str, account_label: Optional[str] = None) -> None:
        super().__init__(message)
        self.account_label = account_label


class ConfigurationError(PRWatchError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(PRWatchError):
    """Raised when GitHub rejects a token (HTTP 401)."""


class MissingCredentialsError(AuthenticationError):
    """Raised when no GitHub account or token is configured at all."""


class ApiError(PRWatchError):
    """Raised when a GitHub API request fails or returns an unexpected response."""


class TransportError(ApiError):
    """Raised on network failures, timeouts, and non-2xx responses other than 401."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        account_label: Optional[str] = None,
    ) -> None:
        super().__init__(message, account_label=account_label)
        self.status_code = status_code


class DecodeError(ApiError):
    """Raised when a response body is not valid JSON or carries GraphQL errors."""


class PartialRecordError(PRWatchError):
    """Raised when a single pull request node cannot be normalized.

    Always absorbed by the caller: the record is dropped and the fetch continues.
    """
