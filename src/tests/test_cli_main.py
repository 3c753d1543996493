"""Tests for CLI main module."""

import json
from unittest.mock import Mock, patch

from tokemon.cli import main as cli_main
from tokemon.cli.main import _log_alert, _run_json_output, _status, build_monitor, main
from tokemon.core.models import DataSource, HistoryPoint, UsageSnapshot
from tokemon.core.settings import Settings
from tokemon.core.states import MonitorError, SourceState
from tokemon.monitoring.alerts import AlertLevel
from tokemon.utils.time_utils import utc_now


def _mock_settings(once: bool = False) -> Mock:
    settings = Mock()
    settings.once = once
    settings.log_level = "INFO"
    settings.log_file = None
    settings.timezone = "Europe/Warsaw"
    return settings


class TestMain:
    """Test cases for main function."""

    def test_version_flag(self) -> None:
        """Test --version flag returns 0 and prints version."""
        with patch("builtins.print") as mock_print:
            result = main(["--version"])
            assert result == 0
            mock_print.assert_called_once()
            assert "tokemon" in mock_print.call_args[0][0]

    def test_v_flag(self) -> None:
        """Test -v flag returns 0 and prints version."""
        with patch("builtins.print") as mock_print:
            result = main(["-v"])
            assert result == 0
            mock_print.assert_called_once()

    @patch("tokemon.core.settings.Settings.load_with_last_used")
    def test_keyboard_interrupt_handling(self, mock_load: Mock) -> None:
        """Test keyboard interrupt returns 0."""
        mock_load.side_effect = KeyboardInterrupt()
        with patch("builtins.print") as mock_print:
            result = main(["--debug"])
            assert result == 0
            mock_print.assert_called_once_with("\n\nMonitoring stopped by user.")

    @patch("tokemon.core.settings.Settings.load_with_last_used")
    def test_exception_handling(self, mock_load_settings: Mock) -> None:
        """Test exception handling returns 1."""
        mock_load_settings.side_effect = Exception("Test error")
        with patch("builtins.print"), patch("traceback.print_exc"):
            result = main(["--debug"])
            assert result == 1

    @patch("tokemon.core.settings.Settings.load_with_last_used")
    def test_json_output_mode_triggered(self, mock_load_settings: Mock) -> None:
        """Test that --once runs a single JSON cycle instead of polling."""
        mock_load_settings.return_value = _mock_settings(once=True)
        monitor = Mock()

        with (
            patch.object(cli_main, "setup_environment"),
            patch.object(cli_main, "ensure_directories"),
            patch.object(cli_main, "setup_logging"),
            patch.object(cli_main, "build_monitor", return_value=monitor),
            patch.object(cli_main, "_run_json_output", return_value=0) as mock_json_output,
            patch.object(cli_main, "_run_monitoring") as mock_monitoring,
        ):
            result = main(["--once"])

        assert result == 0
        mock_json_output.assert_called_once_with(monitor, "Europe/Warsaw")
        mock_monitoring.assert_not_called()
        monitor.close.assert_called_once()

    @patch("tokemon.core.settings.Settings.load_with_last_used")
    def test_normal_mode_polls(self, mock_load_settings: Mock) -> None:
        """Test that without --once the polling loop runs and the monitor is closed."""
        mock_load_settings.return_value = _mock_settings()
        monitor = Mock()

        with (
            patch.object(cli_main, "setup_environment"),
            patch.object(cli_main, "ensure_directories"),
            patch.object(cli_main, "setup_logging"),
            patch.object(cli_main, "build_monitor", return_value=monitor),
            patch.object(cli_main, "_run_json_output") as mock_json_output,
            patch.object(cli_main, "_run_monitoring") as mock_monitoring,
        ):
            result = main([])

        assert result == 0
        mock_monitoring.assert_called_once_with(monitor)
        mock_json_output.assert_not_called()
        monitor.close.assert_called_once()


class TestJsonOutput:
    """Test cases for the --once JSON output."""

    def _monitor(self, snapshot: UsageSnapshot, error=None) -> Mock:
        monitor = Mock()
        monitor.refresh.return_value = snapshot
        monitor.current_usage = snapshot
        monitor.usage_history = ()
        monitor.error = error
        monitor.last_updated = None
        monitor.oauth_state = SourceState.available()
        monitor.jsonl_state = SourceState.available()
        monitor.requires_manual_retry = False
        return monitor

    def test_json_output_success(self) -> None:
        snapshot = UsageSnapshot(primary_percentage=42.0, source=DataSource.OAUTH)
        monitor = self._monitor(snapshot)

        with patch("builtins.print") as mock_print:
            result = _run_json_output(monitor)

        assert result == 0
        output = json.loads(mock_print.call_args[0][0])
        assert output["usage"]["source"] == "oauth"
        assert output["menu_bar_text"] == "42%"
        assert output["error"] is None
        assert output["burn_rate_level"] == "unknown"
        assert output["time_to_limit"] == "--"

    def test_json_output_both_sources_failed(self) -> None:
        error = MonitorError.both_sources_failed("OAuth: HTTP 500; JSONL: disabled")
        monitor = self._monitor(UsageSnapshot.EMPTY, error)

        with patch("builtins.print") as mock_print:
            result = _run_json_output(monitor)

        assert result == 1
        output = json.loads(mock_print.call_args[0][0])
        assert output["error"] == {
            "kind": "both_sources_failed",
            "message": "OAuth: HTTP 500; JSONL: disabled",
        }

    def test_status_includes_burn_rate(self) -> None:
        snapshot = UsageSnapshot(primary_percentage=50.0, source=DataSource.OAUTH)
        monitor = self._monitor(snapshot)

        with patch("tokemon.cli.main.calculate_burn_rate", return_value=20.0) as mock_rate:
            status = _status(monitor)

        mock_rate.assert_called_once_with((), window_hours=1.0)

        assert status["burn_rate_per_hour"] == 20.0
        assert status["burn_rate_level"] == "elevated"
        assert status["time_to_limit_seconds"] == 2.5 * 3600
        assert status["time_to_limit"] == "2h 30m"

    def test_status_summaries_use_configured_timezone(self) -> None:
        now = utc_now()
        monitor = self._monitor(UsageSnapshot(primary_percentage=60.0, source=DataSource.OAUTH))
        monitor.usage_history = (
            HistoryPoint(timestamp=now, primary_percentage=40.0),
            HistoryPoint(timestamp=now, primary_percentage=60.0),
        )

        status = _status(monitor, "Asia/Tokyo")

        assert len(status["weekly"]) == 1
        week = status["weekly"][0]
        assert week["points"] == 2
        assert week["average_utilization"] == 50.0
        assert week["peak_utilization"] == 60.0
        assert week["start"].endswith("+09:00")
        assert status["monthly"][0]["start"].endswith("+09:00")
        json.dumps(status)


class TestFunctions:
    """Test cases for wiring helpers."""

    def test_build_monitor_wires_alerts(self, tmp_path) -> None:
        settings = Settings(
            _cli_parse_args=[],
            history_path=tmp_path / "history.json",
            credentials_path=tmp_path / "credentials.json",
            data_path=tmp_path / "projects",
            refresh_interval=120,
            alert_threshold=70,
        )

        monitor = build_monitor(settings)
        try:
            assert monitor.refresh_interval == 120
            assert monitor.data_path == tmp_path / "projects"
            assert monitor.history.path == tmp_path / "history.json"
            assert monitor.alert_check.subscriber_count == 1
        finally:
            monitor.close()

    @patch("tokemon.cli.main.logger")
    def test_log_alert(self, mock_logger) -> None:
        _log_alert(AlertLevel.CRITICAL, 100)
        _log_alert(AlertLevel.WARNING, 85)

        assert mock_logger.warning.call_count == 2
        assert "100%" in mock_logger.warning.call_args_list[0][0][0]
