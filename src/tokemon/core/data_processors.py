"""Record-level helpers for Claude Code session log entries.

Timestamp parsing, token extraction and model lookup shared by the session
log reader.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

import pytz

from tokemon.core.models import TokenCounts
from tokemon.utils.time_utils import TimezoneHandler

logger = logging.getLogger(__name__)

# Keys of ``message.usage`` in an assistant record
USAGE_KEYS: Dict[str, str] = {
    "input_tokens": "input_tokens",
    "output_tokens": "output_tokens",
    "cache_creation_input_tokens": "cache_creation_tokens",
    "cache_read_input_tokens": "cache_read_tokens",
}


class TimestampProcessor:
    """Timestamp parsing for log records."""

    def __init__(self, timezone_handler: Optional[TimezoneHandler] = None):
        self.timezone_handler = timezone_handler or TimezoneHandler()

    def parse_timestamp(self, timestamp_value: Any) -> Optional[datetime]:
        """
        Parse a record timestamp into a UTC-aware datetime.

        Accepts ISO 8601 strings, epoch seconds (int/float) or datetimes.
        Returns None for anything that cannot be parsed.
        """
        if timestamp_value is None:
            return None

        if isinstance(timestamp_value, datetime):
            return self.timezone_handler.ensure_utc(timestamp_value)

        if isinstance(timestamp_value, str):
            parsed = self.timezone_handler.parse_timestamp(timestamp_value)
            return self.timezone_handler.ensure_utc(parsed) if parsed else None

        if isinstance(timestamp_value, (int, float)) and not isinstance(
            timestamp_value, bool
        ):
            try:
                return datetime.fromtimestamp(timestamp_value, tz=pytz.UTC)
            except (OverflowError, OSError, ValueError):
                return None

        return None


class TokenExtractor:
    """Token and model extraction from assistant records."""

    @staticmethod
    def is_assistant_usage(record: Any) -> bool:
        """True for ``type == "assistant"`` records carrying ``message.usage``."""
        if not isinstance(record, dict) or record.get("type") != "assistant":
            return False
        message = record.get("message")
        return isinstance(message, dict) and isinstance(message.get("usage"), dict)

    @staticmethod
    def extract_tokens(record: Dict[str, Any]) -> TokenCounts:
        """
        Token counts from an assistant record's ``message.usage``.

        Missing, non-numeric or non-finite fields count as zero.
        """
        usage = record.get("message", {}).get("usage", {})
        counts = TokenCounts()
        for source_key, attr in USAGE_KEYS.items():
            value = usage.get(source_key, 0)
            if (
                isinstance(value, bool)
                or not isinstance(value, (int, float))
                or not math.isfinite(value)
            ):
                logger.debug(f"Ignoring invalid {source_key}: {value!r}")
                continue
            setattr(counts, attr, int(value))
        return counts

    @staticmethod
    def extract_model_name(record: Dict[str, Any]) -> Optional[str]:
        """Model name from ``message.model`` or a top-level ``model`` key."""
        message = record.get("message")
        candidates = [
            message.get("model") if isinstance(message, dict) else None,
            record.get("model"),
        ]
        for candidate in candidates:
            if candidate and isinstance(candidate, str):
                return candidate
        return None
