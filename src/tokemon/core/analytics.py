"""Analytics aggregation over usage history.

Calendar-aligned period summaries of utilization history. All functions are
pure and derived fresh on every call.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from tokemon.core.models import Granularity, HistoryPoint, PeriodSummary
from tokemon.utils.time_utils import TimezoneHandler, add_days, start_of_day, utc_now

logger = logging.getLogger(__name__)

DEFAULT_PERIODS = {Granularity.WEEK: 4, Granularity.MONTH: 3}


def _period_start(dt: datetime, granularity: Granularity, handler: TimezoneHandler) -> datetime:
    """Local start of the week (Monday) or month containing ``dt``."""
    day_start = start_of_day(dt, handler)
    if granularity is Granularity.WEEK:
        return add_days(day_start, -day_start.weekday(), handler)
    return handler.localize(datetime(day_start.year, day_start.month, 1))


def _shift_periods(
    start: datetime, count: int, granularity: Granularity, handler: TimezoneHandler
) -> datetime:
    """Move a period start by ``count`` whole periods (negative moves back)."""
    if granularity is Granularity.WEEK:
        return add_days(start, 7 * count, handler)
    month_index = start.year * 12 + (start.month - 1) + count
    year, month = divmod(month_index, 12)
    return handler.localize(datetime(year, month + 1, 1))


def _period_label(start: datetime, end: datetime, granularity: Granularity) -> str:
    if granularity is Granularity.MONTH:
        return start.strftime("%B %Y")
    last_day = end - timedelta(days=1)
    if last_day.month == start.month:
        return f"{start.strftime('%b')} {start.day}-{last_day.day}"
    return f"{start.strftime('%b')} {start.day}-{last_day.strftime('%b')} {last_day.day}"


def summaries(
    history: Sequence[HistoryPoint],
    granularity: Granularity,
    now: Optional[datetime] = None,
    periods: Optional[int] = None,
    timezone: str = "UTC",
) -> List[PeriodSummary]:
    """
    Bucket history into calendar weeks or months and summarize each bucket.

    Parameters:
        history: Usage history points.
        granularity: Week (Monday-aligned) or month buckets.
        now: End of the analysed window (defaults to the current time).
        periods: Number of buckets in the window, current bucket included.
            Defaults to 4 weeks or 3 months.
        timezone: Timezone whose calendar defines bucket boundaries.

    Returns:
        List[PeriodSummary]: One entry per non-empty bucket, newest first.
        Empty buckets are omitted rather than zero-filled.
    """
    if not history:
        return []

    handler = TimezoneHandler(timezone)
    now = handler.ensure_utc(now or utc_now())
    periods = periods or DEFAULT_PERIODS[granularity]

    current_start = _period_start(now, granularity, handler)
    window_start = _shift_periods(current_start, -(periods - 1), granularity, handler)

    buckets: Dict[datetime, List[float]] = defaultdict(list)
    for point in history:
        timestamp = handler.ensure_utc(point.timestamp)
        if timestamp < window_start or timestamp > now:
            continue
        buckets[_period_start(timestamp, granularity, handler)].append(
            point.primary_percentage
        )

    results = []
    for start in sorted(buckets, reverse=True):
        values = buckets[start]
        end = _shift_periods(start, 1, granularity, handler)
        results.append(
            PeriodSummary(
                period_start=start,
                period_end=end,
                period_label=_period_label(start, end, granularity),
                average_utilization=sum(values) / len(values),
                peak_utilization=max(values),
                point_count=len(values),
            )
        )

    logger.debug(
        f"Summarized {sum(r.point_count for r in results)} points into "
        f"{len(results)} {granularity.value} buckets"
    )
    return results


def weekly_summaries(
    history: Sequence[HistoryPoint], weeks: int = 4, **kwargs
) -> List[PeriodSummary]:
    return summaries(history, Granularity.WEEK, periods=weeks, **kwargs)


def monthly_summaries(
    history: Sequence[HistoryPoint], months: int = 3, **kwargs
) -> List[PeriodSummary]:
    return summaries(history, Granularity.MONTH, periods=months, **kwargs)
