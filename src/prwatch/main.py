"""Entry point for the GitHub PR watcher."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Optional, Sequence

from .aggregator import Aggregator
from .cli import parse_args
from .config import load_config
from .credentials import load_accounts_from_env
from .errors import AuthenticationError, ConfigurationError, PRWatchError
from .models import PRStatus, RefreshReason
from .report import TOKEN_REQUIRED_MESSAGE, render_report
from .scheduler import RefreshScheduler
from .settings import Settings, SettingsRegistry

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _wait_for_interrupt(stop_event: threading.Event) -> None:
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        print("Stopping.", file=sys.stderr)


def orchestrate_watch(argv: Optional[Sequence[str]] = None, stop_event: Optional[threading.Event] = None) -> int:
    """Wire configuration, accounts, aggregator and scheduler and run them.

    Returns:
        Process exit code: 0 success, 1 unexpected error, 2 configuration
        error, 3 authentication failure or no accounts, 4 GitHub API failure.
    """
    try:
        args = parse_args(argv)
        _configure_logging(args.verbose)

        config = load_config(
            request_timeout_seconds=args.timeout,
            account_timeout_seconds=args.account_timeout,
            refresh_interval_seconds=args.interval,
        )
        credential_store = load_accounts_from_env(config)
        settings = SettingsRegistry(
            Settings(
                show_archived_repos=args.show_archived,
                visible_status_groups=frozenset(PRStatus) - frozenset(args.hide_status),
                refresh_interval_seconds=config.refresh_interval_seconds,
            )
        )

        if not credential_store.has_accounts():
            print(TOKEN_REQUIRED_MESSAGE, file=sys.stderr)
            return EXIT_AUTHENTICATION

        aggregator = Aggregator(config=config)

        if args.once:
            scheduler = RefreshScheduler(aggregator=aggregator, credential_store=credential_store, config=config)
            snapshot = scheduler.refresh_now(RefreshReason.MANUAL)
            print(render_report(snapshot, settings.current, show_details=args.verbose))

            enabled = credential_store.list_enabled_accounts()
            errors = list(snapshot.account_errors.values()) if snapshot is not None else []
            if enabled and len(errors) == len(enabled):
                if any(isinstance(error, AuthenticationError) for error in errors):
                    return EXIT_AUTHENTICATION
                return EXIT_API
            return EXIT_OK

        def on_complete(_pull_requests) -> None:
            print(render_report(scheduler.last_snapshot, settings.current, show_details=args.verbose), flush=True)

        def on_failed(error: Exception) -> None:
            logger.warning(
                "Refresh reported a failure",
                extra={"account_label": getattr(error, "account_label", None), "error": str(error)},
            )

        scheduler = RefreshScheduler(
            aggregator=aggregator,
            credential_store=credential_store,
            config=config,
            on_refresh_complete=on_complete,
            on_refresh_failed=on_failed,
        )
        scheduler.attach(credential_store=credential_store, settings=settings)
        print(
            f"Watching pull requests every {settings.refresh_interval_description()}. Press Ctrl+C to stop.",
            file=sys.stderr,
        )
        scheduler.start()
        scheduler.trigger_refresh(RefreshReason.MANUAL)
        try:
            _wait_for_interrupt(stop_event or threading.Event())
        finally:
            scheduler.stop()
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"Authentication error: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except PRWatchError as exc:
        print(f"GitHub API error: {exc}", file=sys.stderr)
        return EXIT_API
    except Exception as exc:
        logger.exception("Unexpected failure")
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED


def main() -> None:
    sys.exit(orchestrate_watch())


if __name__ == "__main__":
    main()
