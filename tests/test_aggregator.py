"""Tests for multi-account aggregation and deduplication."""

import sys
import threading
import time
from pathlib import Path
from unittest.mock import Mock, patch

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prwatch.aggregator import Aggregator, deduplicate_pull_requests, status_rank
from prwatch.config import Config
from prwatch.errors import ApiError, AuthenticationError, TransportError
from prwatch.models import Account, PRStatus, PullRequest


def _pr(url_suffix: str, status: PRStatus, account_label: str = "") -> PullRequest:
    return PullRequest(
        number=int(url_suffix),
        title=f"PR {url_suffix}",
        author="octocat",
        author_image_url="",
        url=f"https://github.com/acme/api/pull/{url_suffix}",
        status=status,
        account_label=account_label,
    )


def _client_returning(prs=None, error=None) -> Mock:
    client = Mock()
    if error is not None:
        client.fetch_for_account.side_effect = error
    else:
        client.fetch_for_account.return_value = list(prs or [])
    return client


def _aggregator_for(clients_by_label: dict, config: Config | None = None) -> Aggregator:
    return Aggregator(config=config, client_factory=lambda account: clients_by_label[account.label])


def test_status_rank_orders_known_statuses_and_puts_unranked_last():
    """Verify the fixed priority table and the 999 rank for unranked statuses."""
    assert status_rank(PRStatus.NEEDS_REVIEW) == 1
    assert status_rank(PRStatus.YOUR_PR) == 2
    assert status_rank(PRStatus.ASSIGNED) == 3
    assert status_rank(PRStatus.MENTIONED) == 4
    assert status_rank(PRStatus.WAITING_REVIEW) == 5
    assert status_rank(PRStatus.APPROVED) == 6
    assert status_rank(PRStatus.DRAFT_PR) == 999


def test_deduplicate_keeps_lowest_rank_status_per_url():
    """Verify each URL survives once with the best status among all occurrences."""
    records = [
        _pr("1", PRStatus.MENTIONED),
        _pr("2", PRStatus.YOUR_PR),
        _pr("1", PRStatus.WAITING_REVIEW),
        _pr("1", PRStatus.ASSIGNED),
        _pr("2", PRStatus.DRAFT_PR),
    ]

    unique = deduplicate_pull_requests(records)

    assert [(pr.number, pr.status) for pr in unique] == [
        (1, PRStatus.ASSIGNED),
        (2, PRStatus.YOUR_PR),
    ]


def test_deduplicate_needs_review_beats_waiting_review_in_any_order():
    """Verify NEEDS_REVIEW always wins over WAITING_REVIEW regardless of discovery order."""
    forward = deduplicate_pull_requests([_pr("3", PRStatus.WAITING_REVIEW), _pr("3", PRStatus.NEEDS_REVIEW)])
    backward = deduplicate_pull_requests([_pr("3", PRStatus.NEEDS_REVIEW), _pr("3", PRStatus.WAITING_REVIEW)])

    assert [pr.status for pr in forward] == [PRStatus.NEEDS_REVIEW]
    assert [pr.status for pr in backward] == [PRStatus.NEEDS_REVIEW]


def test_deduplicate_is_idempotent():
    """Verify deduplicating an already deduplicated list changes nothing."""
    records = [_pr("4", PRStatus.MENTIONED), _pr("4", PRStatus.NEEDS_REVIEW), _pr("5", PRStatus.APPROVED)]

    once = deduplicate_pull_requests(records)

    assert deduplicate_pull_requests(once) == once


def test_deduplicate_equal_rank_keeps_first_discovered():
    """Verify ties keep the first record, including its account label."""
    unique = deduplicate_pull_requests(
        [_pr("6", PRStatus.MENTIONED, "A"), _pr("6", PRStatus.MENTIONED, "B")]
    )

    assert [pr.account_label for pr in unique] == ["A"]


def test_refresh_all_with_no_accounts_makes_no_calls():
    """Verify an empty account list returns [] without building any client."""
    factory = Mock()
    aggregator = Aggregator(client_factory=factory)

    with patch("prwatch.aggregator.GitHubClient") as client_cls:
        assert aggregator.refresh_all([]) == []

    factory.assert_not_called()
    client_cls.assert_not_called()


def test_refresh_all_skips_disabled_accounts():
    """Verify disabled accounts are never fetched."""
    enabled_client = _client_returning([_pr("7", PRStatus.YOUR_PR)])
    disabled_client = _client_returning([_pr("8", PRStatus.YOUR_PR)])
    aggregator = _aggregator_for({"A": enabled_client, "B": disabled_client})

    prs = aggregator.refresh_all([Account("A", "ta"), Account("B", "tb", enabled=False)])

    assert [pr.number for pr in prs] == [7]
    disabled_client.fetch_for_account.assert_not_called()


def test_refresh_all_tags_every_record_with_its_account():
    """Verify each record carries the label of the account that fetched it."""
    clients = {
        "A": _client_returning([_pr("10", PRStatus.NEEDS_REVIEW), _pr("11", PRStatus.YOUR_PR)]),
        "B": _client_returning([_pr("12", PRStatus.ASSIGNED)]),
    }
    accounts = [Account("A", "ta"), Account("B", "tb")]

    prs = _aggregator_for(clients).refresh_all(accounts)

    assert {pr.number: pr.account_label for pr in prs} == {10: "A", 11: "A", 12: "B"}
    assert all(pr.account_label in {"A", "B"} for pr in prs)


def test_refresh_all_priority_holders_account_wins_across_accounts():
    """Verify the shared PR reports NEEDS_REVIEW from account A even when B lists it first."""
    clients = {
        "B": _client_returning([_pr("99", PRStatus.MENTIONED)]),
        "A": _client_returning([_pr("99", PRStatus.NEEDS_REVIEW)]),
    }

    for accounts in ([Account("A", "ta"), Account("B", "tb")], [Account("B", "tb"), Account("A", "ta")]):
        prs = _aggregator_for(clients).refresh_all(accounts)

        assert len(prs) == 1
        assert prs[0].status is PRStatus.NEEDS_REVIEW
        assert prs[0].account_label == "A"


def test_collect_reports_failed_accounts_without_affecting_others():
    """Verify one account's authentication failure leaves other accounts' records intact."""
    clients = {
        "A": _client_returning(error=AuthenticationError("bad token")),
        "B": _client_returning([_pr("13", PRStatus.MENTIONED)]),
        "C": _client_returning(error=TransportError("down", status_code=502)),
    }
    accounts = [Account("A", "ta"), Account("B", "tb"), Account("C", "tc")]

    result = _aggregator_for(clients).collect(accounts)

    assert [pr.number for pr in result.pull_requests] == [13]
    assert set(result.account_errors) == {"A", "C"}
    assert isinstance(result.account_errors["A"], AuthenticationError)
    assert result.account_errors["A"].account_label == "A"
    assert isinstance(result.account_errors["C"], TransportError)


def test_collect_isolates_unexpected_exception_in_one_account():
    """Verify a non-library exception in one account becomes that account's ApiError."""
    clients = {
        "A": _client_returning([_pr("16", PRStatus.NEEDS_REVIEW)]),
        "B": _client_returning(error=TypeError("boom")),
    }

    result = _aggregator_for(clients).collect([Account("A", "ta"), Account("B", "tb")])

    assert [(pr.number, pr.account_label) for pr in result.pull_requests] == [(16, "A")]
    error = result.account_errors["B"]
    assert isinstance(error, ApiError)
    assert error.account_label == "B"
    assert isinstance(error.__cause__, TypeError)


def test_collect_isolates_client_factory_failure():
    """Verify a failing client factory only fails its own account."""
    good = _client_returning([_pr("17", PRStatus.YOUR_PR)])

    def factory(account):
        if account.label == "broken":
            raise RuntimeError("cannot build client")
        return good

    result = Aggregator(client_factory=factory).collect([Account("broken", "tx"), Account("ok", "ty")])

    assert [pr.number for pr in result.pull_requests] == [17]
    assert set(result.account_errors) == {"broken"}


def test_collect_runs_accounts_concurrently():
    """Verify account fetches overlap instead of running one after another."""
    barrier = threading.Barrier(3, timeout=5)

    def make_client(label: str) -> Mock:
        client = Mock()

        def fetch():
            barrier.wait()
            return [_pr(str(ord(label)), PRStatus.YOUR_PR)]

        client.fetch_for_account.side_effect = fetch
        return client

    clients = {label: make_client(label) for label in "ABC"}
    accounts = [Account(label, f"t{label}") for label in "ABC"]

    result = _aggregator_for(clients).collect(accounts)

    assert result.account_errors == {}
    assert [pr.account_label for pr in result.pull_requests] == ["A", "B", "C"]


def test_collect_account_timeout_reports_transport_error_for_slow_account():
    """Verify an account exceeding the per-account bound contributes nothing and an error."""
    release = threading.Event()
    slow = Mock()

    def slow_fetch():
        release.wait(5)
        return [_pr("14", PRStatus.YOUR_PR)]

    slow.fetch_for_account.side_effect = slow_fetch
    fast = _client_returning([_pr("15", PRStatus.NEEDS_REVIEW)])
    config = Config(account_timeout_seconds=0.2)

    started = time.monotonic()
    try:
        result = _aggregator_for({"slow": slow, "fast": fast}, config).collect(
            [Account("slow", "ts"), Account("fast", "tf")]
        )
    finally:
        release.set()

    assert time.monotonic() - started < 4
    assert [pr.number for pr in result.pull_requests] == [15]
    assert isinstance(result.account_errors["slow"], TransportError)


def test_default_client_factory_builds_one_client_per_account_token():
    """Verify the default factory passes each account's token, config and label."""
    config = Config()
    aggregator = Aggregator(config=config)

    with patch("prwatch.aggregator.GitHubClient") as client_cls:
        client_cls.return_value.fetch_for_account.return_value = []
        aggregator.refresh_all([Account("A", "ta")])

    client_cls.assert_called_once_with(token="ta", config=config, account_label="A")
