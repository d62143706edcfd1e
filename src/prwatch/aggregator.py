"""Multi-account pull request aggregation.

Fans out one GitHub fetch per enabled account, tags every record with the
account that produced it, and deduplicates the merged list by URL.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence

from .config import Config
from .errors import ApiError, PRWatchError, TransportError
from .github_client import GitHubClient
from .models import Account, AccountFetchResult, AggregateResult, PullRequest
from .priority import STATUS_PRIORITY, deduplicate_pull_requests, status_rank

logger = logging.getLogger(__name__)

__all__ = [
    "Aggregator",
    "ClientFactory",
    "STATUS_PRIORITY",
    "deduplicate_pull_requests",
    "status_rank",
]

ClientFactory = Callable[[Account], GitHubClient]


class Aggregator:
    """Combine per-account fetches into one deduplicated, account-tagged list."""

    def __init__(
        self,
        config: Optional[Config] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        """Create an aggregator.

        Args:
            config: Runtime configuration; ``account_timeout_seconds`` bounds
                each account's fetch when set.
            client_factory: Builds the client for one account. Defaults to a
                ``GitHubClient`` per account token.
        """
        self._config = config or Config()
        self._client_factory = client_factory or self._default_client_factory

    def _default_client_factory(self, account: Account) -> GitHubClient:
        return GitHubClient(token=account.token, config=self._config, account_label=account.label)

    def _fetch_account(self, account: Account) -> AccountFetchResult:
        try:
            client = self._client_factory(account)
            pull_requests = client.fetch_for_account()
        except PRWatchError as exc:
            if exc.account_label is None:
                exc.account_label = account.label
            logger.warning(
                "Account fetch failed",
                extra={"account_label": account.label, "error_type": type(exc).__name__, "error": str(exc)},
            )
            return AccountFetchResult(label=account.label, error=exc)
        except Exception as exc:
            error = ApiError(
                f"Unexpected failure fetching pull requests for '{account.label}': {exc}",
                account_label=account.label,
            )
            error.__cause__ = exc
            logger.warning(
                "Account fetch failed unexpectedly",
                extra={"account_label": account.label, "error_type": type(exc).__name__, "error": str(exc)},
                exc_info=True,
            )
            return AccountFetchResult(label=account.label, error=error)

        tagged = tuple(pr.with_account(account.label) for pr in pull_requests)
        return AccountFetchResult(label=account.label, pull_requests=tagged)

    def collect(self, accounts: Sequence[Account]) -> AggregateResult:
        """Fetch every enabled account concurrently and merge the results.

        Returns:
            ``AggregateResult`` with deduplicated records and a mapping of
            account label to the error that account raised.
        """
        enabled = [account for account in accounts if account.enabled]
        if not enabled:
            return AggregateResult(pull_requests=[], account_errors={})

        results: Dict[int, AccountFetchResult] = {}
        results_lock = threading.Lock()

        def run(index: int, account: Account) -> None:
            result = self._fetch_account(account)
            with results_lock:
                results[index] = result

        executor = ThreadPoolExecutor(max_workers=len(enabled), thread_name_prefix="prwatch-account")
        try:
            futures = [executor.submit(run, index, account) for index, account in enumerate(enabled)]
            done, not_done = wait(
                futures,
                timeout=self._config.account_timeout_seconds,
                return_when=ALL_COMPLETED,
            )
        finally:
            # Timed-out fetches keep running in the background; their results are discarded.
            executor.shutdown(wait=False)

        for future in done:
            future.result()

        merged: List[PullRequest] = []
        account_errors: Dict[str, Exception] = {}

        with results_lock:
            snapshot = dict(results)

        for index, account in enumerate(enabled):
            result = snapshot.get(index) if futures[index] in done else None
            if result is None:
                error = TransportError(
                    f"Fetching pull requests for '{account.label}' exceeded "
                    f"{self._config.account_timeout_seconds} seconds",
                    account_label=account.label,
                )
                logger.warning("Account fetch timed out", extra={"account_label": account.label})
                account_errors[account.label] = error
                continue

            if result.error is not None:
                account_errors[account.label] = result.error
                continue

            merged.extend(result.pull_requests)

        unique = deduplicate_pull_requests(merged)
        logger.info(
            "Aggregated pull requests",
            extra={
                "accounts": len(enabled),
                "failed_accounts": len(account_errors),
                "records": len(merged),
                "unique": len(unique),
                "timed_out": len(not_done),
            },
        )
        return AggregateResult(pull_requests=unique, account_errors=account_errors)

    def refresh_all(self, accounts: Sequence[Account]) -> List[PullRequest]:
        """Return the consolidated pull request list for ``accounts``.

        An empty ``accounts`` sequence returns immediately without any request.
        """
        return self.collect(accounts).pull_requests
