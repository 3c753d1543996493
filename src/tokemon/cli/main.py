"""Command line entry point for Tokemon."""

import json
import logging
import sys
import threading
import traceback
from typing import Any, Dict, List, Optional

from tokemon import __version__
from tokemon.cli.bootstrap import ensure_directories, setup_environment, setup_logging
from tokemon.core.analytics import monthly_summaries, weekly_summaries
from tokemon.core.calculations import (
    burn_rate_level,
    calculate_burn_rate,
    format_time_remaining,
    project_time_to_limit,
)
from tokemon.core.models import DataSource, PeriodSummary, UsageSnapshot
from tokemon.core.settings import Settings
from tokemon.data.credentials import FileCredentialStore
from tokemon.monitoring.alerts import AlertChecker, AlertLevel
from tokemon.monitoring.history import DEFAULT_HISTORY_PATH, HistoryStore
from tokemon.monitoring.orchestrator import UsageMonitor

BURN_RATE_WINDOW_HOURS = 1.0

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    if argv is None:
        argv = sys.argv[1:]

    if "--version" in argv or "-v" in argv:
        print(f"tokemon {__version__}")
        return 0

    try:
        settings = Settings.load_with_last_used(argv)

        setup_environment()
        ensure_directories()
        setup_logging(settings.log_level, settings.log_file)

        monitor = build_monitor(settings)
        try:
            if settings.once:
                return _run_json_output(monitor, settings.timezone)
            _run_monitoring(monitor)
        finally:
            monitor.close()
        return 0

    except KeyboardInterrupt:
        print("\n\nMonitoring stopped by user.")
        return 0
    except Exception as e:
        logger.error(f"Monitor failed: {e}", exc_info=True)
        print(f"\n\nError: {e}")
        traceback.print_exc()
        return 1


def build_monitor(settings: Settings) -> UsageMonitor:
    """Wire a monitor, its history store and the alert checker from settings."""
    history = HistoryStore(
        path=settings.history_path or DEFAULT_HISTORY_PATH,
        max_age_days=settings.history_max_age_days,
    )
    history.load()

    monitor = UsageMonitor(
        credential_store=FileCredentialStore(settings.credentials_path),
        history=history,
        data_path=settings.data_path,
        oauth_enabled=settings.oauth_enabled,
        jsonl_enabled=settings.jsonl_enabled,
        refresh_interval=settings.refresh_interval,
    )

    alerts = AlertChecker(threshold=settings.alert_threshold, notifier=_log_alert)
    monitor.alert_check.subscribe(alerts.check_usage)
    return monitor


def _log_alert(level: AlertLevel, percentage: int) -> None:
    if level is AlertLevel.CRITICAL:
        logger.warning(f"Usage limit reached: {percentage}%")
    else:
        logger.warning(f"Usage at {percentage}%, above alert threshold")


def _summary_dict(summary: PeriodSummary) -> Dict[str, Any]:
    return {
        "period": summary.period_label,
        "start": summary.period_start.isoformat(),
        "average_utilization": round(summary.average_utilization, 1),
        "peak_utilization": round(summary.peak_utilization, 1),
        "points": summary.point_count,
    }


def _status(monitor: UsageMonitor, timezone: str = "UTC") -> Dict[str, Any]:
    snapshot = monitor.current_usage
    history = monitor.usage_history
    rate = calculate_burn_rate(history, window_hours=BURN_RATE_WINDOW_HOURS)
    time_to_limit = (
        project_time_to_limit(snapshot.primary_percentage, rate)
        if snapshot.has_percentage
        else None
    )
    error = monitor.error
    last_updated = monitor.last_updated
    return {
        "usage": snapshot.to_dict(),
        "menu_bar_text": snapshot.menu_bar_text,
        "error": {"kind": error.kind.value, "message": error.description}
        if error
        else None,
        "oauth_state": str(monitor.oauth_state),
        "jsonl_state": str(monitor.jsonl_state),
        "requires_manual_retry": monitor.requires_manual_retry,
        "last_updated": last_updated.isoformat() if last_updated else None,
        "burn_rate_per_hour": rate,
        "burn_rate_level": burn_rate_level(rate).value,
        "time_to_limit_seconds": time_to_limit,
        "time_to_limit": format_time_remaining(time_to_limit),
        "weekly": [_summary_dict(s) for s in weekly_summaries(history, timezone=timezone)],
        "monthly": [
            _summary_dict(s) for s in monthly_summaries(history, timezone=timezone)
        ],
    }


def _run_json_output(monitor: UsageMonitor, timezone: str = "UTC") -> int:
    """
    Run one cycle and print the resulting status as JSON.

    Weekly and monthly summaries are bucketed by the calendar of ``timezone``.
    """
    snapshot = monitor.refresh()
    print(json.dumps(_status(monitor, timezone), indent=2))
    return 0 if snapshot.source is not DataSource.NONE else 1


def _print_snapshot(monitor: UsageMonitor, snapshot: UsageSnapshot) -> None:
    line = f"[{snapshot.source.value}] {snapshot.menu_bar_text}"
    if snapshot.model:
        line += f" ({snapshot.model})"
    error = monitor.error
    if error:
        line += f" - {error.description}"
    if monitor.requires_manual_retry:
        line += " - manual refresh required"
    print(line, flush=True)


def _run_monitoring(monitor: UsageMonitor) -> None:
    """Poll until interrupted, printing each canonical snapshot."""
    monitor.usage_changed.subscribe(lambda s: _print_snapshot(monitor, s))
    monitor.start_polling()

    stop = threading.Event()
    try:
        while not stop.wait(timeout=1.0):
            pass
    finally:
        monitor.stop_polling()


if __name__ == "__main__":
    sys.exit(main())
