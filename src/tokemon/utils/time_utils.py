"""Time utilities: timezone handling and timestamp parsing."""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional, Union, cast

import pytz
from pytz import BaseTzInfo

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def from_epoch_millis(value: Union[int, float]) -> datetime:
    """Convert epoch milliseconds (as stored in Claude Code credentials) to UTC."""
    return datetime.fromtimestamp(value / 1000.0, tz=pytz.UTC)


def to_epoch_millis(dt: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(dt.timestamp() * 1000)


class TimezoneHandler:
    """Handles timezone conversions and timestamp parsing."""

    def __init__(self, default_tz: str = "UTC") -> None:
        """Initialize with a default timezone."""
        self.default_tz: BaseTzInfo = self._validate_and_get_tz(default_tz)

    def _validate_and_get_tz(self, tz_name: str) -> BaseTzInfo:
        """Validate and return pytz timezone object."""
        try:
            return pytz.timezone(tz_name)
        except pytz.exceptions.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone '{tz_name}', using UTC")
            return pytz.UTC

    def parse_timestamp(self, timestamp_str: str) -> Optional[datetime]:
        """Parse ISO 8601 timestamps as written by Claude Code and the usage API."""
        if not timestamp_str or not isinstance(timestamp_str, str):
            return None

        iso_tz_pattern = (
            r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})?$"
        )
        match = re.match(iso_tz_pattern, timestamp_str)
        if match:
            try:
                base_str = match.group(1)
                # fromisoformat wants exactly microsecond precision on older Pythons
                fraction = match.group(2) or ""
                if fraction:
                    fraction = (fraction + "000000")[:7]
                tz_str = match.group(3) or ""

                dt = datetime.fromisoformat(base_str + fraction)

                if tz_str == "Z":
                    return dt.replace(tzinfo=pytz.UTC)
                elif tz_str:
                    return datetime.fromisoformat(base_str + fraction + tz_str)
                else:
                    return cast(datetime, self.default_tz.localize(dt))
            except ValueError as e:
                logger.debug(f"Failed to parse ISO timestamp: {e}")

        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
            try:
                dt = datetime.strptime(timestamp_str, fmt)
                return cast(datetime, self.default_tz.localize(dt))
            except ValueError:
                continue

        return None

    def ensure_utc(self, dt: datetime) -> datetime:
        """Convert datetime to UTC."""
        if dt.tzinfo is None:
            dt = self.default_tz.localize(dt)
        return dt.astimezone(pytz.UTC)

    def to_local(self, dt: datetime) -> datetime:
        """Convert datetime into the handler's timezone."""
        return self.ensure_utc(dt).astimezone(self.default_tz)

    def localize(self, naive: datetime) -> datetime:
        """Attach the handler's timezone to a naive wall-clock datetime."""
        return cast(datetime, self.default_tz.localize(naive))

    def validate_timezone(self, tz_name: str) -> bool:
        """Check if timezone name is valid."""
        try:
            pytz.timezone(tz_name)
            return True
        except pytz.exceptions.UnknownTimeZoneError:
            return False


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from ``start`` to ``end``."""
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def start_of_day(dt: datetime, handler: TimezoneHandler) -> datetime:
    """Local midnight of the calendar day containing ``dt``."""
    local = handler.to_local(dt)
    return handler.localize(datetime(local.year, local.month, local.day))


def add_days(dt: datetime, days: int, handler: TimezoneHandler) -> datetime:
    """Add calendar days in local time, keeping the result DST-correct."""
    local = handler.to_local(dt).replace(tzinfo=None) + timedelta(days=days)
    return handler.localize(local)
