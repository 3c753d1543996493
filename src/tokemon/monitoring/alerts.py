"""Usage alert thresholds.

:class:`AlertChecker` subscribes to the monitor's ``alert_check`` event,
tracks the current alert level and asks an injected notifier to deliver a
notification once per level per usage window.
"""

import logging
import threading
from enum import IntEnum
from typing import Callable, Optional

from tokemon.core.models import DataSource, UsageSnapshot
from tokemon.error_handling import report_error

MIN_ALERT_THRESHOLD = 50
MAX_ALERT_THRESHOLD = 100
DEFAULT_ALERT_THRESHOLD = 80
CRITICAL_PERCENTAGE = 100

logger = logging.getLogger(__name__)


class AlertLevel(IntEnum):
    """Usage alert levels, ordered by severity."""

    NORMAL = 0
    WARNING = 1
    CRITICAL = 2


Notifier = Callable[[AlertLevel, int], None]


def clamp_threshold(threshold: int) -> int:
    return min(MAX_ALERT_THRESHOLD, max(MIN_ALERT_THRESHOLD, int(threshold)))


class AlertChecker:
    """Tracks alert level from snapshots and fires notifications."""

    def __init__(
        self,
        threshold: int = DEFAULT_ALERT_THRESHOLD,
        notifier: Optional[Notifier] = None,
        notifications_enabled: bool = True,
    ) -> None:
        self._threshold = clamp_threshold(threshold)
        self.notifier = notifier
        self.notifications_enabled = notifications_enabled
        self.current_level = AlertLevel.NORMAL
        self._notified_warning = False
        self._notified_critical = False
        self._last_resets_at_minute: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def threshold(self) -> int:
        return self._threshold

    @threshold.setter
    def threshold(self, value: int) -> None:
        """Clamp to 50-100; a new threshold re-arms notifications."""
        with self._lock:
            self._threshold = clamp_threshold(value)
            self._notified_warning = False
            self._notified_critical = False

    def level_for(self, percentage: int) -> AlertLevel:
        if percentage >= CRITICAL_PERCENTAGE:
            return AlertLevel.CRITICAL
        if percentage >= self._threshold:
            return AlertLevel.WARNING
        return AlertLevel.NORMAL

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()

    def _reset_locked(self) -> None:
        self._notified_warning = False
        self._notified_critical = False
        self.current_level = AlertLevel.NORMAL

    def check_usage(self, snapshot: UsageSnapshot) -> AlertLevel:
        """
        Update the alert level from a snapshot.

        Snapshots without a percentage (session log fallback, empty) leave
        the level unchanged. A changed ``resets_at`` minute marks a new usage
        window and re-arms notifications.
        """
        if not snapshot.has_percentage or snapshot.source is DataSource.NONE:
            return self.current_level

        percentage = int(snapshot.primary_percentage)
        pending: Optional[AlertLevel] = None

        with self._lock:
            if snapshot.resets_at is not None:
                resets_at_minute = int(snapshot.resets_at.timestamp() // 60)
                if resets_at_minute != self._last_resets_at_minute:
                    if self._last_resets_at_minute is not None:
                        logger.info("Usage window reset detected, clearing alert state")
                    self._reset_locked()
                    self._last_resets_at_minute = resets_at_minute

            level = self.level_for(percentage)
            self.current_level = level

            if self.notifications_enabled:
                if level is AlertLevel.CRITICAL and not self._notified_critical:
                    self._notified_critical = True
                    pending = level
                elif level is AlertLevel.WARNING and not self._notified_warning:
                    self._notified_warning = True
                    pending = level

        if pending is not None:
            self._notify(pending, percentage)
        return level

    def _notify(self, level: AlertLevel, percentage: int) -> None:
        logger.info(f"Usage alert: {level.name.lower()} at {percentage}%")
        if self.notifier is None:
            return
        try:
            self.notifier(level, percentage)
        except Exception as e:
            report_error(exception=e, component="alerts", context_name="notification")
