"""Budget forecasting: daily spend rate, pace and projected month-end spend.

All functions are pure; callers supply the cost history and calendar position.
"""

import calendar
import logging
from datetime import date, datetime
from typing import Final, Optional, Sequence, Tuple, Union

from tokemon.core.models import ForecastResult, PaceIndicator
from tokemon.utils.time_utils import SECONDS_PER_DAY

logger = logging.getLogger(__name__)

# Projection within +/-10% of the budget counts as on track
PACE_TOLERANCE: Final[float] = 0.10

DailyCost = Tuple[Union[date, datetime], float]


def daily_spend_rate(daily_costs: Sequence[DailyCost]) -> Optional[float]:
    """
    Mean cost per day over the supplied daily buckets.

    Parameters:
        daily_costs: ``(day, cost)`` pairs, one per day with data.

    Returns:
        float or None: Average dollars per day, or None when there are no buckets.
    """
    if not daily_costs:
        return None
    total = sum(cost for _, cost in daily_costs)
    return total / len(daily_costs)


def pace_indicator(
    current_spend: float,
    monthly_budget: float,
    day_of_month: int,
    days_in_month: int,
) -> PaceIndicator:
    """
    Classify spend against a budget-proportional pace.

    The month-end projection ``current_spend / (day_of_month / days_in_month)``
    is compared with the budget: above 110% is AHEAD (spending too fast),
    below 90% is BEHIND, anything in between is ON_TRACK.
    """
    if monthly_budget <= 0 or days_in_month <= 0 or day_of_month <= 0:
        return PaceIndicator.UNKNOWN
    if day_of_month > days_in_month:
        return PaceIndicator.UNKNOWN

    projected = current_spend / (day_of_month / days_in_month)

    if projected > monthly_budget * (1 + PACE_TOLERANCE):
        return PaceIndicator.AHEAD
    if projected < monthly_budget * (1 - PACE_TOLERANCE):
        return PaceIndicator.BEHIND
    return PaceIndicator.ON_TRACK


def predicted_monthly_spend(
    current_spend: float,
    daily_rate: float,
    day_of_month: int,
    days_in_month: int,
) -> float:
    """Current spend plus the daily rate over the days left in the month."""
    remaining_days = max(days_in_month - day_of_month, 0)
    return current_spend + daily_rate * remaining_days


def time_to_limit(
    current_spend: float, monthly_budget: float, daily_rate: Optional[float]
) -> Optional[float]:
    """
    Seconds until the budget is exhausted at ``daily_rate``.

    Returns None when the rate is not positive and 0.0 when the budget is
    already spent.
    """
    if daily_rate is None or daily_rate <= 0:
        return None
    remaining = monthly_budget - current_spend
    if remaining <= 0:
        return 0.0
    return remaining / daily_rate * SECONDS_PER_DAY


def forecast(
    current_spend: float,
    monthly_budget: float,
    daily_costs: Sequence[DailyCost],
    today: Optional[date] = None,
) -> ForecastResult:
    """Combine rate, pace, projection and time-to-limit for ``today``'s month."""
    today = today or date.today()
    if isinstance(today, datetime):
        today = today.date()
    days_in_month = calendar.monthrange(today.year, today.month)[1]

    rate = daily_spend_rate(daily_costs)
    projected = (
        predicted_monthly_spend(current_spend, rate, today.day, days_in_month)
        if rate is not None
        else None
    )

    result = ForecastResult(
        daily_rate=rate,
        pace=pace_indicator(current_spend, monthly_budget, today.day, days_in_month),
        projected_spend=projected,
        time_to_limit=time_to_limit(current_spend, monthly_budget, rate),
    )
    logger.debug(f"Forecast for {today.isoformat()}: {result}")
    return result


def format_time_to_limit(seconds: Optional[float]) -> str:
    """Format a budget time-to-limit (">30d", "5d 12h", "3h 45m", "30m", "--")."""
    if seconds is None or seconds <= 0:
        return "--"

    total_seconds = int(seconds)
    days = total_seconds // SECONDS_PER_DAY
    hours = (total_seconds % SECONDS_PER_DAY) // 3600
    minutes = (total_seconds % 3600) // 60

    if days > 30:
        return ">30d"
    if days >= 1:
        return f"{days}d {hours}h"
    if hours >= 1:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return "--"
