"""Refresh scheduling with a single-flight guarantee.

All triggers (timer ticks, manual requests, account and settings changes) go
through ``RefreshScheduler.trigger_refresh``. A trigger that arrives while a
refresh is in flight is dropped; the next timer tick or manual request picks
up any change once the scheduler is idle again.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from .aggregator import Aggregator
from .config import Config, clamp_refresh_interval
from .credentials import CredentialStore
from .errors import MissingCredentialsError
from .models import PullRequest, RefreshCycle, RefreshReason, RefreshSnapshot, RefreshState
from .settings import SettingsRegistry

logger = logging.getLogger(__name__)

RefreshCompleteCallback = Callable[[List[PullRequest]], None]
RefreshFailedCallback = Callable[[Exception], None]
TimerFactory = Callable[..., threading.Timer]


class RefreshScheduler:
    """Own the polling cadence and the last known consolidated snapshot."""

    def __init__(
        self,
        aggregator: Aggregator,
        credential_store: CredentialStore,
        config: Optional[Config] = None,
        on_refresh_complete: Optional[RefreshCompleteCallback] = None,
        on_refresh_failed: Optional[RefreshFailedCallback] = None,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        """Create a scheduler in the ``IDLE`` state.

        Args:
            aggregator: Performs the multi-account fetch.
            credential_store: Source of the account snapshot read at the start
                of every cycle.
            config: Provides the initial interval and the debounce delay.
            on_refresh_complete: Receives the consolidated list of each cycle.
            on_refresh_failed: Receives every per-account error, and a
                ``MissingCredentialsError`` when no account is configured.
            timer_factory: ``threading.Timer`` compatible constructor.
        """
        self._aggregator = aggregator
        self._credential_store = credential_store
        self._config = config or Config()
        self._on_refresh_complete = on_refresh_complete
        self._on_refresh_failed = on_refresh_failed
        self._timer_factory = timer_factory

        self._state_lock = threading.Lock()
        self._state = RefreshState.IDLE
        self._cycle: Optional[RefreshCycle] = None
        self._snapshot: Optional[RefreshSnapshot] = None
        self._idle = threading.Event()
        self._idle.set()

        self._timer_lock = threading.Lock()
        self._interval_seconds = clamp_refresh_interval(self._config.refresh_interval_seconds)
        self._timer: Optional[threading.Timer] = None
        self._debounce_timer: Optional[threading.Timer] = None
        self._debounce_generation = 0
        self._running = False

    @property
    def state(self) -> RefreshState:
        with self._state_lock:
            return self._state

    @property
    def current_cycle(self) -> Optional[RefreshCycle]:
        with self._state_lock:
            return self._cycle

    @property
    def last_snapshot(self) -> Optional[RefreshSnapshot]:
        """Snapshot of the last completed cycle, unaffected by a refresh in flight."""
        with self._state_lock:
            return self._snapshot

    @property
    def last_pull_requests(self) -> List[PullRequest]:
        snapshot = self.last_snapshot
        return list(snapshot.pull_requests) if snapshot is not None else []

    @property
    def refresh_interval_seconds(self) -> int:
        with self._timer_lock:
            return self._interval_seconds

    def trigger_refresh(self, reason: RefreshReason = RefreshReason.MANUAL) -> bool:
        """Start a refresh cycle in the background.

        Returns:
            ``True`` when a cycle was started, ``False`` when one was already in
            flight and this trigger was dropped.
        """
        with self._state_lock:
            if self._state is RefreshState.REFRESHING:
                logger.debug("Refresh already in flight, dropping trigger", extra={"reason": reason.value})
                return False
            self._state = RefreshState.REFRESHING
            self._cycle = RefreshCycle(started_at=datetime.now(timezone.utc), reason=reason)
            self._idle.clear()

        worker = threading.Thread(
            target=self._run_cycle,
            args=(reason,),
            name=f"prwatch-refresh-{reason.value}",
            daemon=True,
        )
        worker.start()
        return True

    def refresh_now(
        self,
        reason: RefreshReason = RefreshReason.MANUAL,
        timeout: Optional[float] = None,
    ) -> Optional[RefreshSnapshot]:
        """Trigger a refresh and block until the scheduler is idle again."""
        self.trigger_refresh(reason)
        self.wait_until_idle(timeout)
        return self.last_snapshot

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def _run_cycle(self, reason: RefreshReason) -> None:
        try:
            self._perform_refresh(reason)
        except Exception as exc:
            logger.exception("Refresh cycle failed unexpectedly", extra={"reason": reason.value})
            self._emit_failure(exc)
        finally:
            with self._state_lock:
                if self._cycle is not None:
                    self._cycle.in_flight = False
                self._cycle = None
                self._state = RefreshState.IDLE
                self._idle.set()

    def _perform_refresh(self, reason: RefreshReason) -> None:
        accounts = self._credential_store.list_all_accounts()

        if not accounts:
            snapshot = RefreshSnapshot(
                pull_requests=(),
                completed_at=datetime.now(timezone.utc),
                accounts_configured=False,
            )
            with self._state_lock:
                self._snapshot = snapshot
            logger.info("No GitHub accounts configured", extra={"reason": reason.value})
            self._emit_failure(
                MissingCredentialsError("No GitHub account configured. Add a token to watch pull requests.")
            )
            return

        enabled = [account for account in accounts if account.enabled]
        result = self._aggregator.collect(enabled)

        snapshot = RefreshSnapshot(
            pull_requests=tuple(result.pull_requests),
            completed_at=datetime.now(timezone.utc),
            account_errors=dict(result.account_errors),
            accounts_configured=True,
        )
        with self._state_lock:
            self._snapshot = snapshot

        logger.info(
            "Refresh cycle complete",
            extra={
                "reason": reason.value,
                "accounts": len(enabled),
                "pull_requests": len(snapshot.pull_requests),
                "failed_accounts": sorted(snapshot.account_errors),
            },
        )

        for error in snapshot.account_errors.values():
            self._emit_failure(error)
        if self._on_refresh_complete is not None:
            self._on_refresh_complete(list(snapshot.pull_requests))

    def _emit_failure(self, error: Exception) -> None:
        if self._on_refresh_failed is not None:
            self._on_refresh_failed(error)

    def start(self) -> None:
        """Arm the periodic timer. Does not refresh immediately."""
        with self._timer_lock:
            self._running = True
            self._schedule_timer_locked()

    def stop(self) -> None:
        """Cancel the periodic and debounce timers. An in-flight cycle finishes."""
        with self._timer_lock:
            self._running = False
            for timer in (self._timer, self._debounce_timer):
                if timer is not None:
                    timer.cancel()
            self._timer = None
            self._debounce_timer = None

    def _schedule_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        timer = self._timer_factory(self._interval_seconds, self._on_timer)
        timer.daemon = True
        timer.start()
        self._timer = timer

    def _on_timer(self) -> None:
        with self._timer_lock:
            if not self._running:
                return
            self._schedule_timer_locked()
        logger.debug("Timer fired for auto-refresh")
        self.trigger_refresh(RefreshReason.TIMER)

    def set_refresh_interval_seconds(self, seconds: float) -> int:
        """Change the polling interval, clamped to 60 seconds.

        The periodic timer is cancelled and re-armed; a refresh in flight is
        left alone. Returns the effective interval.
        """
        effective = clamp_refresh_interval(seconds)
        with self._timer_lock:
            self._interval_seconds = effective
            if self._running:
                self._schedule_timer_locked()
        logger.info("Refresh interval updated", extra={"interval_seconds": effective})
        return effective

    def notify_accounts_changed(self) -> None:
        self._debounce(RefreshReason.ACCOUNT_CHANGED)

    def notify_settings_changed(self) -> None:
        self._debounce(RefreshReason.SETTINGS_CHANGED)

    def _debounce(self, reason: RefreshReason) -> None:
        """Coalesce a burst of change notifications into one trigger."""
        delay = self._config.debounce_seconds
        if delay <= 0:
            self.trigger_refresh(reason)
            return

        with self._timer_lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            self._debounce_generation += 1
            timer = self._timer_factory(delay, self._fire_debounced, args=(reason, self._debounce_generation))
            timer.daemon = True
            timer.start()
            self._debounce_timer = timer

    def _fire_debounced(self, reason: RefreshReason, generation: int) -> None:
        with self._timer_lock:
            # A superseded timer may still fire if cancel() lost the race.
            if generation != self._debounce_generation:
                return
            self._debounce_timer = None
            if not self._running:
                return
        self.trigger_refresh(reason)

    def attach(
        self,
        credential_store: Optional[CredentialStore] = None,
        settings: Optional[SettingsRegistry] = None,
    ) -> None:
        """Subscribe to account and settings changes."""
        if credential_store is not None:
            credential_store.subscribe(self.notify_accounts_changed)
        if settings is not None:
            settings.subscribe(self._on_setting_changed)

    def _on_setting_changed(self, name: str, value: Any, affects_refresh_presentation: bool) -> None:
        if name == "refresh_interval_seconds":
            self.set_refresh_interval_seconds(value)
        elif affects_refresh_presentation:
            self.notify_settings_changed()
