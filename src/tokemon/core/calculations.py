"""Burn rate and time-to-limit calculations for Tokemon."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Final, Optional, Sequence

from tokemon.core.models import HistoryPoint
from tokemon.utils.time_utils import SECONDS_PER_HOUR, hours_between, utc_now

logger = logging.getLogger(__name__)

ZERO_THRESHOLD: Final[float] = 1e-10
PRECISION_DECIMAL_PLACES: Final[int] = 8
# Two samples closer than ~36 seconds give a meaningless rate
MIN_ELAPSED_HOURS: Final[float] = 0.01
LIMIT_PERCENTAGE: Final[float] = 100.0
ELEVATED_RATE_PER_HOUR: Final[float] = 10.0
CRITICAL_RATE_PER_HOUR: Final[float] = 20.0


class BurnRateLevel(Enum):
    """Severity bucket for a burn rate."""

    NORMAL = "normal"
    ELEVATED = "elevated"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MathematicalPrecision:
    """Configuration for mathematical precision in calculations."""

    decimal_places: int = PRECISION_DECIMAL_PLACES
    zero_threshold: float = ZERO_THRESHOLD
    min_elapsed_hours: float = MIN_ELAPSED_HOURS

    def is_zero(self, value: float) -> bool:
        """Check if a value is effectively zero within precision threshold."""
        return abs(value) < self.zero_threshold

    def safe_divide(self, numerator: float, denominator: float) -> float:
        """Perform safe division with zero checking."""
        if self.is_zero(denominator):
            return 0.0
        return numerator / denominator

    def round_to_precision(self, value: float) -> float:
        """Round value to specified decimal places."""
        return float(
            Decimal(str(value)).quantize(
                Decimal("0." + "0" * (self.decimal_places - 1) + "1"),
                rounding=ROUND_HALF_UP,
            )
        )


# Global precision configuration
math_precision = MathematicalPrecision()


class BurnRateCalculator:
    """Calculates utilization burn rate (percent per hour) from usage history.

    The rate is the change in primary percentage between the oldest and newest
    point of the supplied window, divided by the elapsed hours. Points are
    expected in non-decreasing timestamp order, as kept by the history store.
    """

    def __init__(
        self, precision_config: Optional[MathematicalPrecision] = None
    ) -> None:
        """Initialize calculator with optional precision configuration."""
        self._precision = precision_config or math_precision
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def calculate_burn_rate(
        self,
        history: Sequence[HistoryPoint],
        window_hours: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Optional[float]:
        """Calculate burn rate in percent per hour.

        Args:
            history: Usage history points, oldest first
            window_hours: If given, only points newer than ``now - window_hours`` are used
            now: Reference time for the window (defaults to the current time)

        Returns:
            Percent per hour (negative when utilization fell, e.g. after a
            window reset), or None with fewer than two usable points

        Mathematical Notes:
            - Endpoint slope across the window, not a regression
            - Windows spanning less than ``min_elapsed_hours`` return None
        """
        points = list(history)
        if window_hours is not None:
            cutoff = (now or utc_now()) - timedelta(hours=window_hours)
            points = [p for p in points if p.timestamp > cutoff]

        if len(points) < 2:
            return None

        first, last = points[0], points[-1]
        elapsed_hours = hours_between(first.timestamp, last.timestamp)
        if elapsed_hours < self._precision.min_elapsed_hours:
            self._logger.debug(
                f"Window of {elapsed_hours * SECONDS_PER_HOUR:.0f}s too short for a burn rate"
            )
            return None

        delta = last.primary_percentage - first.primary_percentage
        rate = self._precision.safe_divide(delta, elapsed_hours)
        return self._precision.round_to_precision(rate)

    def time_to_threshold(
        self,
        current: float,
        rate_per_hour: Optional[float],
        threshold: float = LIMIT_PERCENTAGE,
    ) -> Optional[float]:
        """Hours until ``threshold`` is reached at ``rate_per_hour``.

        Returns None when the rate is not positive, 0.0 when the threshold is
        already reached.
        """
        if rate_per_hour is None or rate_per_hour <= 0:
            return None
        if current >= threshold:
            return 0.0
        return (threshold - current) / rate_per_hour

    def project_time_to_limit(
        self, current: float, rate_per_hour: Optional[float]
    ) -> Optional[float]:
        """Seconds until 100% at the current burn rate, or None if not approaching."""
        hours = self.time_to_threshold(current, rate_per_hour, LIMIT_PERCENTAGE)
        if hours is None:
            return None
        return hours * SECONDS_PER_HOUR

    @staticmethod
    def burn_rate_level(rate: Optional[float]) -> BurnRateLevel:
        """Bucket the magnitude of a burn rate."""
        if rate is None:
            return BurnRateLevel.UNKNOWN
        magnitude = abs(rate)
        if magnitude > CRITICAL_RATE_PER_HOUR:
            return BurnRateLevel.CRITICAL
        if magnitude > ELEVATED_RATE_PER_HOUR:
            return BurnRateLevel.ELEVATED
        return BurnRateLevel.NORMAL


_calculator = BurnRateCalculator()


def calculate_burn_rate(
    history: Sequence[HistoryPoint],
    window_hours: Optional[float] = None,
    now: Optional[datetime] = None,
) -> Optional[float]:
    return _calculator.calculate_burn_rate(history, window_hours, now)


def time_to_threshold(
    current: float, rate_per_hour: Optional[float], threshold: float = LIMIT_PERCENTAGE
) -> Optional[float]:
    return _calculator.time_to_threshold(current, rate_per_hour, threshold)


def project_time_to_limit(
    current: float, rate_per_hour: Optional[float]
) -> Optional[float]:
    return _calculator.project_time_to_limit(current, rate_per_hour)


def burn_rate_level(rate: Optional[float]) -> BurnRateLevel:
    return BurnRateCalculator.burn_rate_level(rate)


def format_time_remaining(seconds: Optional[float]) -> str:
    """Format a time-to-limit for display (e.g. "2h 30m", "45m", ">24h")."""
    if seconds is None or seconds <= 0:
        return "--"
    if seconds > 24 * SECONDS_PER_HOUR:
        return ">24h"

    hours = int(seconds) // 3600
    minutes = (int(seconds) % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
