"""Tests for command-line argument parsing."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prwatch.cli import parse_args
from prwatch.models import PRStatus


def test_parse_args_defaults():
    """Verify CLI parsing defaults to watch mode with a 300 second interval."""
    args = parse_args([])

    assert args.once is False
    assert args.interval == 300
    assert args.timeout == 30
    assert args.account_timeout is None
    assert args.show_archived is False
    assert args.hide_status == []
    assert args.verbose is False


def test_parse_args_with_valid_arguments():
    """Verify CLI parsing succeeds when every option is provided."""
    args = parse_args(
        [
            "--once",
            "--interval",
            "600",
            "--timeout",
            "10",
            "--account-timeout",
            "45",
            "--show-archived",
            "--verbose",
        ]
    )

    assert args.once is True
    assert args.interval == 600
    assert args.timeout == 10
    assert args.account_timeout == 45
    assert args.show_archived is True
    assert args.verbose is True


def test_parse_args_from_sys_argv(monkeypatch):
    """Verify CLI parsing falls back to sys.argv when no argv is given."""
    monkeypatch.setattr(sys, "argv", ["github-pr-watch", "--once"])

    args = parse_args()

    assert args.once is True


def test_parse_args_hide_status_is_repeatable_and_case_insensitive():
    """Verify --hide-status accepts status names in any case and with dashes."""
    args = parse_args(["--hide-status", "Mentioned", "--hide-status", "waiting-review"])

    assert args.hide_status == [PRStatus.MENTIONED, PRStatus.WAITING_REVIEW]


def test_parse_args_with_unknown_status_fails_validation():
    """Verify CLI parsing exits with an error for an unknown status group."""
    with pytest.raises(SystemExit):
        parse_args(["--hide-status", "stale"])


@pytest.mark.parametrize("option", ["--interval", "--timeout", "--account-timeout"])
@pytest.mark.parametrize("value", ["0", "-1", "soon"])
def test_parse_args_with_non_positive_numbers_fails_validation(option, value):
    """Verify numeric options reject zero, negative and non-numeric values."""
    with pytest.raises(SystemExit):
        parse_args([option, value])
