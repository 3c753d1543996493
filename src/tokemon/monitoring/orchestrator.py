"""Usage monitor: polls both sources and publishes one canonical snapshot."""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from tokemon.core.models import AggregateUsage, HistoryPoint, UsageSnapshot
from tokemon.core.states import MonitorError, SourceState
from tokemon.data.credentials import CredentialStore, FileCredentialStore
from tokemon.data.oauth_client import (
    InsufficientScopeError,
    NoCredentialsError,
    OAuthClient,
    OAuthError,
    TokenExpiredError,
)
from tokemon.data.reader import JSONLError, parse_recent_usage, to_snapshot
from tokemon.error_handling import report_error
from tokemon.monitoring.events import Dispatcher, EventChannel, inline_dispatcher
from tokemon.monitoring.history import HistoryStore
from tokemon.utils.time_utils import utc_now

MAX_RETRY_ATTEMPTS = 3
DEFAULT_REFRESH_INTERVAL = 60

logger = logging.getLogger(__name__)

JSONLReader = Callable[[Optional[Union[str, Path]]], AggregateUsage]


class UsageMonitor:
    """
    Single owner of the monitoring state.

    Each cycle tries the OAuth usage API first and falls back to the local
    session logs. Cycles are serialized: a timer tick that finds a cycle in
    flight is skipped, an explicit :meth:`refresh` waits for it. After each
    cycle ``usage_changed``, ``alert_check`` and ``statusline_export`` are
    published, in that order, with the canonical snapshot. Publication happens
    after the cycle lock is released, so a subscriber may call
    :meth:`refresh` or :meth:`manual_refresh`; events of a cycle superseded by
    a newer one that already published are dropped.
    """

    def __init__(
        self,
        credential_store: Optional[CredentialStore] = None,
        oauth_client: Optional[OAuthClient] = None,
        history: Optional[HistoryStore] = None,
        data_path: Optional[Union[str, Path]] = None,
        oauth_enabled: bool = True,
        jsonl_enabled: bool = True,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        dispatcher: Dispatcher = inline_dispatcher,
        jsonl_reader: Optional[JSONLReader] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the monitor.

        Parameters:
            credential_store: Store holding the active profile's OAuth credentials.
            oauth_client: Client for the usage API; one is created when omitted.
            history: History store; an in-memory one is created when omitted.
            data_path: Session log root, defaults to ``~/.claude/projects``.
            oauth_enabled / jsonl_enabled: Per-source switches.
            refresh_interval: Seconds between timer-triggered cycles.
            dispatcher: Execution context for event delivery.
            jsonl_reader: Session log aggregator, ``parse_recent_usage`` by default.
            clock: Source of "now" for history timestamps.
        """
        self.credential_store: CredentialStore = credential_store or FileCredentialStore()
        self._owns_client = oauth_client is None
        self.oauth_client = oauth_client or OAuthClient()
        self.history = history or HistoryStore()
        self.data_path = data_path
        self.oauth_enabled = oauth_enabled
        self.jsonl_enabled = jsonl_enabled
        self.refresh_interval = refresh_interval
        self._jsonl_reader = jsonl_reader or parse_recent_usage
        self._clock = clock

        self.usage_changed: EventChannel[UsageSnapshot] = EventChannel(
            "usage_changed", dispatcher
        )
        self.alert_check: EventChannel[UsageSnapshot] = EventChannel(
            "alert_check", dispatcher
        )
        self.statusline_export: EventChannel[UsageSnapshot] = EventChannel(
            "statusline_export", dispatcher
        )

        self._cycle_lock = threading.Lock()
        self._state_lock = threading.RLock()

        self._current_usage = UsageSnapshot.EMPTY
        self._error: Optional[MonitorError] = None
        self._last_updated: Optional[datetime] = None
        self._is_refreshing = False
        self._oauth_state = SourceState.available()
        self._jsonl_state = SourceState.available()
        self._requires_manual_retry = False
        self._consecutive_failures = 0
        self._cycle_count = 0
        self._published_cycle = 0
        self._last_oauth_error: Optional[MonitorError] = None
        # Set after token_expired / insufficient_scope until re-authentication
        self._auth_block: Optional[MonitorError] = None

        self._poll_thread: Optional[threading.Thread] = None
        self._poll_stop: Optional[threading.Event] = None

    # Reads

    @property
    def current_usage(self) -> UsageSnapshot:
        with self._state_lock:
            return self._current_usage

    @property
    def usage_history(self) -> Tuple[HistoryPoint, ...]:
        return self.history.points()

    @property
    def error(self) -> Optional[MonitorError]:
        with self._state_lock:
            return self._error

    @property
    def last_updated(self) -> Optional[datetime]:
        with self._state_lock:
            return self._last_updated

    @property
    def is_refreshing(self) -> bool:
        with self._state_lock:
            return self._is_refreshing

    @property
    def oauth_state(self) -> SourceState:
        with self._state_lock:
            return self._oauth_state

    @property
    def jsonl_state(self) -> SourceState:
        with self._state_lock:
            return self._jsonl_state

    @property
    def requires_manual_retry(self) -> bool:
        with self._state_lock:
            return self._requires_manual_retry

    @property
    def consecutive_failures(self) -> int:
        with self._state_lock:
            return self._consecutive_failures

    @property
    def is_polling(self) -> bool:
        return self._poll_thread is not None and self._poll_thread.is_alive()

    # Commands

    def refresh(self) -> UsageSnapshot:
        """Run one full cycle, waiting for any cycle in flight. Never raises."""
        with self._cycle_lock:
            snapshot, cycle_id = self._run_cycle()
        self._publish(snapshot, cycle_id)
        return snapshot

    def manual_refresh(self) -> UsageSnapshot:
        """Clear manual-retry mode and re-authentication blocks, then run a cycle."""
        with self._cycle_lock:
            logger.info("Manual refresh requested, resetting OAuth retry state")
            self._reset_source_state()
            snapshot, cycle_id = self._run_cycle()
        self._publish(snapshot, cycle_id)
        return snapshot

    def on_active_profile_changed(
        self, credential_store: Optional[CredentialStore] = None
    ) -> UsageSnapshot:
        """Switch to another profile's credentials and refresh."""
        with self._cycle_lock:
            if credential_store is not None:
                self.credential_store = credential_store
            logger.info("Active profile changed, refreshing usage")
            self._reset_source_state()
            snapshot, cycle_id = self._run_cycle()
        self._publish(snapshot, cycle_id)
        return snapshot

    def start_polling(self, interval: Optional[float] = None) -> None:
        """
        (Re)arm the polling timer; the first tick fires immediately.

        Restarting cancels the pending timer only. A cycle already in flight
        finishes and commits its result.
        """
        if interval is not None:
            self.refresh_interval = interval
        self.stop_polling()

        stop_event = threading.Event()
        self._poll_stop = stop_event
        self._poll_thread = threading.Thread(
            target=self._polling_loop,
            args=(stop_event, self.refresh_interval),
            name="UsageMonitorPolling",
            daemon=True,
        )
        logger.info(f"Starting polling with {self.refresh_interval}s interval")
        self._poll_thread.start()

    def stop_polling(self) -> None:
        if self._poll_stop is None:
            return
        logger.info("Stopping polling")
        self._poll_stop.set()
        self._poll_stop = None
        self._poll_thread = None

    def close(self) -> None:
        self.stop_polling()
        if self._owns_client:
            self.oauth_client.close()

    # Cycle

    def _polling_loop(self, stop_event: threading.Event, interval: float) -> None:
        logger.debug("Polling loop started")
        while not stop_event.is_set():
            self._timer_cycle()
            if stop_event.wait(timeout=interval):
                break
        logger.debug("Polling loop ended")

    def _timer_cycle(self) -> None:
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Cycle already in flight, skipping timer tick")
            return
        try:
            snapshot, cycle_id = self._run_cycle()
        finally:
            self._cycle_lock.release()
        self._publish(snapshot, cycle_id)

    def _reset_source_state(self) -> None:
        with self._state_lock:
            self._requires_manual_retry = False
            self._consecutive_failures = 0
            self._auth_block = None
            self._last_oauth_error = None
            self._oauth_state = SourceState.available()
            self._jsonl_state = SourceState.available()

    def _run_cycle(self) -> Tuple[UsageSnapshot, int]:
        with self._state_lock:
            self._is_refreshing = True
            self._cycle_count += 1
            cycle_id = self._cycle_count
        start_time = time.time()

        try:
            now = self._clock()
            oauth_snapshot, oauth_error = self._attempt_oauth()

            jsonl_snapshot: Optional[UsageSnapshot] = None
            jsonl_error: Optional[MonitorError] = None
            if oauth_snapshot is None:
                jsonl_snapshot, jsonl_error = self._attempt_jsonl()

            snapshot, error = self._select_canonical(
                oauth_snapshot, oauth_error, jsonl_snapshot, jsonl_error
            )

            if snapshot.has_percentage and oauth_snapshot is not None:
                self.history.append(HistoryPoint.from_snapshot(snapshot, now), now=now)

            with self._state_lock:
                self._current_usage = snapshot
                self._error = error
                if oauth_snapshot is not None or jsonl_snapshot is not None:
                    self._last_updated = now
        except Exception as e:
            report_error(exception=e, component="orchestrator", context_name="usage_cycle")
            with self._state_lock:
                self._error = MonitorError.both_sources_failed(f"Unexpected error: {e}")
                snapshot = self._current_usage
        finally:
            with self._state_lock:
                self._is_refreshing = False

        settled_error = self.error
        logger.debug(
            f"Cycle settled on {snapshot.source.value} in {time.time() - start_time:.3f}s"
            + (f" with {settled_error}" if settled_error else "")
        )
        return snapshot, cycle_id

    def _publish(self, snapshot: UsageSnapshot, cycle_id: int) -> None:
        # Runs after the cycle lock is released so subscribers may issue commands.
        for channel in (self.usage_changed, self.alert_check, self.statusline_export):
            with self._state_lock:
                if cycle_id < self._published_cycle:
                    logger.debug(f"Dropping events of superseded cycle {cycle_id}")
                    return
                self._published_cycle = cycle_id
            channel.publish(snapshot)

    def _attempt_oauth(self) -> Tuple[Optional[UsageSnapshot], Optional[MonitorError]]:
        if not self.oauth_enabled:
            with self._state_lock:
                self._oauth_state = SourceState.disabled()
            return None, None

        with self._state_lock:
            if self._auth_block is not None:
                logger.debug(f"OAuth blocked until re-authentication: {self._auth_block}")
                return None, self._auth_block
            if self._requires_manual_retry:
                logger.debug("OAuth paused until manual refresh")
                return None, self._last_oauth_error or MonitorError.oauth_failed(
                    "Automatic retries exhausted"
                )

        try:
            response = self.oauth_client.fetch_usage_with_token_refresh(
                self.credential_store
            )
            snapshot = response.to_snapshot()
        except TokenExpiredError as e:
            return None, self._auth_failure(MonitorError.token_expired(), str(e))
        except InsufficientScopeError as e:
            return None, self._auth_failure(MonitorError.insufficient_scope(), str(e))
        except NoCredentialsError as e:
            return None, self._oauth_failure(SourceState.not_configured(str(e)), str(e))
        except OAuthError as e:
            return None, self._oauth_failure(SourceState.failed(str(e)), str(e))
        except Exception as e:
            report_error(exception=e, component="orchestrator", context_name="oauth_fetch")
            return None, self._oauth_failure(SourceState.failed(str(e)), str(e))

        with self._state_lock:
            self._oauth_state = SourceState.available()
            self._consecutive_failures = 0
            self._last_oauth_error = None
        return snapshot, None

    def _auth_failure(self, error: MonitorError, message: str) -> MonitorError:
        logger.warning(f"OAuth needs re-authentication: {message}")
        with self._state_lock:
            self._oauth_state = SourceState.failed(message)
            self._auth_block = error
            self._last_oauth_error = error
        return error

    def _oauth_failure(self, state: SourceState, message: str) -> MonitorError:
        error = MonitorError.oauth_failed(message)
        with self._state_lock:
            self._oauth_state = state
            self._last_oauth_error = error
            self._consecutive_failures += 1
            failures = self._consecutive_failures
            if failures >= MAX_RETRY_ATTEMPTS:
                self._requires_manual_retry = True

        if failures >= MAX_RETRY_ATTEMPTS:
            logger.warning(
                f"OAuth failed {failures} consecutive times, manual retry required: {message}"
            )
        else:
            logger.info(f"OAuth fetch failed ({failures}/{MAX_RETRY_ATTEMPTS}): {message}")
        return error

    def _attempt_jsonl(self) -> Tuple[Optional[UsageSnapshot], Optional[MonitorError]]:
        if not self.jsonl_enabled:
            with self._state_lock:
                self._jsonl_state = SourceState.disabled()
            return None, None

        try:
            snapshot = to_snapshot(self._jsonl_reader(self.data_path))
        except JSONLError as e:
            message = str(e)
        except Exception as e:
            report_error(exception=e, component="orchestrator", context_name="jsonl_read")
            message = str(e)
        else:
            with self._state_lock:
                self._jsonl_state = SourceState.available()
            return snapshot, None

        logger.info(f"Session log fallback failed: {message}")
        with self._state_lock:
            self._jsonl_state = SourceState.failed(message)
        return None, MonitorError.jsonl_failed(message)

    def _select_canonical(
        self,
        oauth_snapshot: Optional[UsageSnapshot],
        oauth_error: Optional[MonitorError],
        jsonl_snapshot: Optional[UsageSnapshot],
        jsonl_error: Optional[MonitorError],
    ) -> Tuple[UsageSnapshot, Optional[MonitorError]]:
        if oauth_snapshot is not None:
            return oauth_snapshot, None
        if jsonl_snapshot is not None:
            return jsonl_snapshot, oauth_error

        reasons = []
        if oauth_error is not None:
            reasons.append(f"OAuth: {oauth_error.description}")
        elif not self.oauth_enabled:
            reasons.append("OAuth: disabled")
        if jsonl_error is not None:
            reasons.append(f"JSONL: {jsonl_error.description}")
        elif not self.jsonl_enabled:
            reasons.append("JSONL: disabled")
        return UsageSnapshot.EMPTY, MonitorError.both_sources_failed("; ".join(reasons))
