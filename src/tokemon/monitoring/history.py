"""Usage history time series with age pruning and optional JSON persistence."""

import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from tokemon.core.models import DataSource, HistoryPoint
from tokemon.error_handling import report_file_error
from tokemon.utils.time_utils import TimezoneHandler, utc_now

DEFAULT_MAX_AGE_DAYS = 30
DEFAULT_HISTORY_PATH = "~/.tokemon/usage_history.json"

logger = logging.getLogger(__name__)


class HistoryStore:
    """
    Thread-safe, timestamp-ordered store of history points.

    Points older than ``max_age_days`` are dropped on every append. When a
    ``path`` is given the series is loaded from and saved to that JSON file;
    persistence failures are reported and never raised to the caller.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    ) -> None:
        self.path = Path(path).expanduser() if path else None
        self.max_age_days = max_age_days
        self._points: List[HistoryPoint] = []
        self._lock = threading.Lock()
        self._timezone_handler = TimezoneHandler()

    def load(self) -> int:
        """Load persisted points, replacing the in-memory series.

        Returns:
            int: Number of points loaded.
        """
        if self.path is None or not self.path.exists():
            return 0

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            report_file_error(e, str(self.path), operation="load")
            return 0

        points = []
        for item in raw if isinstance(raw, list) else []:
            point = self._point_from_dict(item)
            if point is not None:
                points.append(point)
        points.sort(key=lambda p: p.timestamp)

        with self._lock:
            self._points = points
            self._prune(utc_now())
            count = len(self._points)

        logger.info(f"Loaded {count} history points from {self.path}")
        return count

    def append(self, point: HistoryPoint, now: Optional[datetime] = None) -> None:
        with self._lock:
            if self._points and point.timestamp < self._points[-1].timestamp:
                index = len(self._points)
                while index > 0 and self._points[index - 1].timestamp > point.timestamp:
                    index -= 1
                self._points.insert(index, point)
            else:
                self._points.append(point)
            self._prune(now or utc_now())
            snapshot = list(self._points)

        self._save(snapshot)

    def points(self, since: Optional[datetime] = None) -> Tuple[HistoryPoint, ...]:
        """Immutable copy of the series, optionally limited to points after ``since``."""
        with self._lock:
            if since is None:
                return tuple(self._points)
            return tuple(p for p in self._points if p.timestamp > since)

    def clear(self) -> None:
        with self._lock:
            self._points = []
        self._save([])

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def _prune(self, now: datetime) -> None:
        cutoff = now - timedelta(days=self.max_age_days)
        if self._points and self._points[0].timestamp <= cutoff:
            self._points = [p for p in self._points if p.timestamp > cutoff]

    def _save(self, points: List[HistoryPoint]) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.path.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump([p.to_dict() for p in points], f, indent=2)
            temp_file.replace(self.path)
        except OSError as e:
            report_file_error(e, str(self.path), operation="write")

    def _point_from_dict(self, item: Dict[str, Any]) -> Optional[HistoryPoint]:
        if not isinstance(item, dict):
            return None
        timestamp = self._timezone_handler.parse_timestamp(item.get("timestamp"))
        percentage = item.get("primary_percentage")
        if timestamp is None or not isinstance(percentage, (int, float)):
            logger.debug(f"Skipping malformed history entry: {item!r}")
            return None
        seven_day = item.get("seven_day_percentage")
        try:
            source = DataSource(item.get("source", DataSource.OAUTH.value))
        except ValueError:
            source = DataSource.OAUTH
        return HistoryPoint(
            timestamp=self._timezone_handler.ensure_utc(timestamp),
            primary_percentage=float(percentage),
            seven_day_percentage=float(seven_day)
            if isinstance(seven_day, (int, float))
            else None,
            source=source,
        )
