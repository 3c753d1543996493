"""Tests for error handling module."""

from unittest.mock import MagicMock, Mock, patch

import pytest

from tokemon.error_handling import ErrorLevel, report_error, report_file_error


def _mock_scope(mock_sentry: Mock) -> Mock:
    """Wire ``sentry_sdk.new_scope()`` to yield a mock scope."""
    scope = Mock()
    context = MagicMock()
    context.__enter__.return_value = scope
    context.__exit__.return_value = None
    mock_sentry.new_scope.return_value = context
    return scope


class TestErrorLevel:
    """Test cases for ErrorLevel enum."""

    def test_error_level_values(self):
        """
        Test that the ErrorLevel members compare equal to Sentry's level strings.
        """
        assert ErrorLevel.INFO == "info"
        assert ErrorLevel.WARNING == "warning"
        assert ErrorLevel.ERROR == "error"


class TestReportError:
    """Test cases for report_error function."""

    @pytest.fixture
    def sample_exception(self):
        try:
            raise ValueError("Test error message")
        except ValueError as e:
            return e

    @patch("tokemon.error_handling.SENTRY_AVAILABLE", True)
    @patch("tokemon.error_handling.sentry_sdk")
    def test_report_error_with_sentry_basic(self, mock_sentry, sample_exception):
        """
        Tests that the component tag is set and the exception captured when Sentry is available.
        """
        scope = _mock_scope(mock_sentry)

        report_error(exception=sample_exception, component="oauth_client")

        mock_sentry.new_scope.assert_called_once()
        scope.set_tag.assert_called_with("component", "oauth_client")
        scope.set_level.assert_called_once_with("error")
        mock_sentry.capture_exception.assert_called_once_with(sample_exception)

    @patch("tokemon.error_handling.SENTRY_AVAILABLE", True)
    @patch("tokemon.error_handling.sentry_sdk")
    def test_report_error_with_context_and_tags(self, mock_sentry, sample_exception):
        """
        Test that extra tags are stringified and the named context is attached.
        """
        scope = _mock_scope(mock_sentry)

        report_error(
            exception=sample_exception,
            component="orchestrator",
            context_name="usage_cycle",
            context_data={"cycle": 3},
            tags={"attempt": 2},
            level=ErrorLevel.WARNING,
        )

        scope.set_tag.assert_any_call("component", "orchestrator")
        scope.set_tag.assert_any_call("attempt", "2")
        scope.set_context.assert_called_once_with("usage_cycle", {"cycle": 3})
        scope.set_level.assert_called_once_with("warning")

    @patch("tokemon.error_handling.SENTRY_AVAILABLE", True)
    @patch("tokemon.error_handling.sentry_sdk")
    def test_context_without_name_uses_component(self, mock_sentry, sample_exception):
        """
        Test that context data without a context name is filed under the component.
        """
        scope = _mock_scope(mock_sentry)

        report_error(
            exception=sample_exception, component="events", context_data={"event": "x"}
        )

        scope.set_context.assert_called_once_with("events", {"event": "x"})

    @patch("tokemon.error_handling.SENTRY_AVAILABLE", False)
    @patch("tokemon.error_handling.logging.getLogger")
    def test_report_error_without_sentry_logs(self, mock_get_logger, sample_exception):
        """
        Test that errors are logged with exc_info through the component logger when Sentry is missing.
        """
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger

        report_error(exception=sample_exception, component="reader")

        mock_get_logger.assert_called_once_with("reader")
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["exc_info"] is True

    @patch("tokemon.error_handling.SENTRY_AVAILABLE", False)
    @patch("tokemon.error_handling.logging.getLogger")
    def test_warning_level_skips_traceback(self, mock_get_logger, sample_exception):
        """
        Test that warning-level reports use logger.warning without a traceback.
        """
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger

        report_error(
            exception=sample_exception, component="reader", level=ErrorLevel.WARNING
        )

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["exc_info"] is False
        mock_logger.error.assert_not_called()

    @patch("tokemon.error_handling.SENTRY_AVAILABLE", True)
    @patch("tokemon.error_handling.sentry_sdk")
    @patch("tokemon.error_handling.logging.getLogger")
    def test_sentry_failure_is_logged_not_raised(
        self, mock_get_logger, mock_sentry, sample_exception
    ):
        """
        Test that a failure inside the Sentry SDK is logged and never propagates.
        """
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger
        mock_sentry.new_scope.side_effect = RuntimeError("sentry down")

        report_error(exception=sample_exception, component="orchestrator")

        mock_logger.warning.assert_called_once()
        assert "sentry down" in mock_logger.warning.call_args[0][0]


class TestReportFileError:
    """Test cases for report_file_error function."""

    @patch("tokemon.error_handling.report_error")
    def test_report_file_error_context(self, mock_report):
        """
        Test that file errors are reported at warning level with the path and operation.
        """
        error = OSError("Permission denied")

        report_file_error(
            error, "/tmp/session.jsonl", operation="read", additional_context={"lines": 3}
        )

        mock_report.assert_called_once()
        kwargs = mock_report.call_args.kwargs
        assert kwargs["exception"] is error
        assert kwargs["component"] == "file_handler"
        assert kwargs["level"] == ErrorLevel.WARNING
        assert kwargs["tags"] == {"operation": "read"}
        assert kwargs["context_data"] == {
            "file_path": "/tmp/session.jsonl",
            "operation": "read",
            "lines": 3,
        }
