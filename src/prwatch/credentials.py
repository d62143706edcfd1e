"""In-process credential store for GitHub accounts.

The store keeps accounts in insertion order and notifies subscribers whenever
the set of accounts or their enabled flags change. Readers always receive a
copy, so a refresh cycle works on a stable snapshot.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import replace
from typing import Callable, Iterable, List, Optional

from .config import Config
from .errors import ConfigurationError, PRWatchError
from .github_client import GitHubClient
from .models import Account

logger = logging.getLogger(__name__)

LEGACY_ACCOUNT_LABEL = "Legacy Account"

AccountsListener = Callable[[], None]


class CredentialStore:
    """Ordered, thread-safe collection of ``Account`` entries."""

    def __init__(self, accounts: Optional[Iterable[Account]] = None) -> None:
        self._lock = threading.Lock()
        self._accounts: List[Account] = []
        self._listeners: List[AccountsListener] = []
        for account in accounts or ():
            self._upsert(account)

    def _upsert(self, account: Account) -> None:
        for index, existing in enumerate(self._accounts):
            if existing.label == account.label:
                self._accounts[index] = account
                return
        self._accounts.append(account)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def subscribe(self, listener: AccountsListener) -> None:
        """Register a callback invoked after every account change."""
        self._listeners.append(listener)

    def list_all_accounts(self) -> List[Account]:
        with self._lock:
            return list(self._accounts)

    def list_enabled_accounts(self) -> List[Account]:
        with self._lock:
            return [account for account in self._accounts if account.enabled]

    def has_accounts(self) -> bool:
        with self._lock:
            return bool(self._accounts)

    def add_account(self, label: str, token: str, enabled: bool = True) -> Account:
        """Add an account, replacing any existing account with the same label."""
        label = label.strip()
        token = token.strip()
        if not label:
            raise ConfigurationError("Account label must not be empty.")
        if not token:
            raise ConfigurationError(f"Token for account '{label}' must not be empty.")

        account = Account(label=label, token=token, enabled=enabled)
        with self._lock:
            self._upsert(account)
        logger.info("Stored GitHub account", extra={"account_label": label})
        self._notify()
        return account

    def update_token(self, label: str, token: str) -> bool:
        """Replace the token of an existing account. Returns False if it does not exist."""
        with self._lock:
            for index, existing in enumerate(self._accounts):
                if existing.label == label:
                    self._accounts[index] = replace(existing, token=token.strip())
                    break
            else:
                return False
        self._notify()
        return True

    def remove_account(self, label: str) -> bool:
        with self._lock:
            remaining = [account for account in self._accounts if account.label != label]
            removed = len(remaining) != len(self._accounts)
            self._accounts = remaining
        if removed:
            self._notify()
        return removed

    def set_enabled(self, label: str, enabled: bool) -> bool:
        with self._lock:
            for index, existing in enumerate(self._accounts):
                if existing.label == label:
                    if existing.enabled == enabled:
                        return True
                    self._accounts[index] = replace(existing, enabled=enabled)
                    break
            else:
                return False
        self._notify()
        return True

    def toggle_enabled(self, label: str) -> bool:
        """Flip the enabled flag of ``label``. Returns the new value."""
        with self._lock:
            current = next((a for a in self._accounts if a.label == label), None)
        if current is None:
            raise ConfigurationError(f"Unknown account '{label}'.")
        self.set_enabled(label, not current.enabled)
        return not current.enabled


def parse_accounts(raw: str, disabled: Iterable[str] = ()) -> List[Account]:
    """Parse ``label:token,label:token`` into accounts.

    Raises:
        ConfigurationError: If an entry has no label or no token.
    """
    disabled_labels = {label.strip() for label in disabled if label.strip()}
    accounts: List[Account] = []

    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        label, separator, token = entry.partition(":")
        if not separator or not label.strip() or not token.strip():
            raise ConfigurationError(
                "Invalid account entry in PRWATCH_ACCOUNTS: expected 'label:token'."
            )
        accounts.append(
            Account(
                label=label.strip(),
                token=token.strip(),
                enabled=label.strip() not in disabled_labels,
            )
        )

    return accounts


def resolve_legacy_label(token: str, config: Optional[Config] = None) -> str:
    """Return the GitHub login owning ``token``, or "Legacy Account" if it cannot be resolved."""
    try:
        return GitHubClient(token=token, config=config, account_label=LEGACY_ACCOUNT_LABEL).fetch_viewer_login()
    except PRWatchError as exc:
        logger.info(
            "Could not resolve login for GITHUB_TOKEN; using the legacy label",
            extra={"error_type": type(exc).__name__, "error": str(exc)},
        )
        return LEGACY_ACCOUNT_LABEL


def load_accounts_from_env(config: Optional[Config] = None) -> CredentialStore:
    """Build a credential store from the environment.

    ``PRWATCH_ACCOUNTS`` holds comma-separated ``label:token`` pairs and
    ``PRWATCH_DISABLED_ACCOUNTS`` lists labels to keep but not fetch. When no
    accounts are configured, a single ``GITHUB_TOKEN`` is used and labelled
    with the login it belongs to, or "Legacy Account" when that lookup fails.
    """
    raw_accounts = os.getenv("PRWATCH_ACCOUNTS", "").strip()
    disabled = os.getenv("PRWATCH_DISABLED_ACCOUNTS", "").split(",")

    if raw_accounts:
        return CredentialStore(parse_accounts(raw_accounts, disabled))

    legacy_token = os.getenv("GITHUB_TOKEN", "").strip()
    if legacy_token:
        label = resolve_legacy_label(legacy_token, config)
        return CredentialStore([Account(label=label, token=legacy_token)])

    return CredentialStore()
