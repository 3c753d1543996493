"""Data models for Tokemon.

Core data structures for fused usage snapshots, usage history, session log
aggregates, OAuth credentials and derived-metric results.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from tokemon.utils.formatting import format_cents, format_currency, format_token_count
from tokemon.utils.time_utils import utc_now

NO_PERCENTAGE: float = -1.0


class DataSource(Enum):
    """Which source produced a snapshot."""

    OAUTH = "oauth"
    JSONL = "jsonl"
    NONE = "none"


class Granularity(Enum):
    """Calendar bucket size for analytics summaries."""

    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class UsageSnapshot:
    """One fused usage reading, canonical for a polling cycle."""

    primary_percentage: float
    source: DataSource
    five_hour_utilization: Optional[float] = None
    seven_day_utilization: Optional[float] = None
    seven_day_opus_utilization: Optional[float] = None
    seven_day_sonnet_utilization: Optional[float] = None
    resets_at: Optional[datetime] = None
    seven_day_resets_at: Optional[datetime] = None
    seven_day_sonnet_resets_at: Optional[datetime] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cache_creation_tokens: Optional[int] = None
    cache_read_tokens: Optional[int] = None
    model: Optional[str] = None
    extra_usage_enabled: bool = False
    extra_usage_monthly_limit_cents: Optional[int] = None
    extra_usage_spent_cents: Optional[float] = None
    extra_usage_utilization: Optional[float] = None

    EMPTY: ClassVar["UsageSnapshot"]

    @property
    def has_percentage(self) -> bool:
        """Whether a valid percentage is available (OAuth provides this, JSONL does not)."""
        return self.primary_percentage >= 0

    @property
    def total_tokens(self) -> int:
        """
        Returns the sum of the token fields that are present; absent fields count as zero.
        """
        return (
            (self.input_tokens or 0)
            + (self.output_tokens or 0)
            + (self.cache_creation_tokens or 0)
            + (self.cache_read_tokens or 0)
        )

    @property
    def formatted_token_count(self) -> str:
        return format_token_count(self.total_tokens)

    @property
    def menu_bar_text(self) -> str:
        """Percentage when OAuth data is available, token count for the JSONL fallback."""
        if self.source is DataSource.NONE:
            return "--"
        if self.has_percentage:
            return f"{int(self.primary_percentage)}%"
        return f"{self.formatted_token_count} tok"

    @property
    def formatted_extra_usage_spent(self) -> str:
        return format_cents(self.extra_usage_spent_cents)

    @property
    def formatted_monthly_limit(self) -> str:
        if self.extra_usage_monthly_limit_cents is None:
            return "--"
        return format_cents(self.extra_usage_monthly_limit_cents, decimals=0)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation (enums as values, datetimes as ISO strings)."""
        data = asdict(self)
        data["source"] = self.source.value
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        data["has_percentage"] = self.has_percentage
        data["total_tokens"] = self.total_tokens
        return data


UsageSnapshot.EMPTY = UsageSnapshot(primary_percentage=0.0, source=DataSource.NONE)


@dataclass(frozen=True)
class HistoryPoint:
    """A single point in the usage history time series."""

    timestamp: datetime
    primary_percentage: float
    seven_day_percentage: Optional[float] = None
    source: DataSource = DataSource.OAUTH

    @classmethod
    def from_snapshot(
        cls, snapshot: UsageSnapshot, timestamp: Optional[datetime] = None
    ) -> "HistoryPoint":
        return cls(
            timestamp=timestamp or utc_now(),
            primary_percentage=snapshot.primary_percentage,
            seven_day_percentage=snapshot.seven_day_utilization,
            source=snapshot.source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "primary_percentage": self.primary_percentage,
            "seven_day_percentage": self.seven_day_percentage,
            "source": self.source.value,
        }


@dataclass
class TokenCounts:
    """Token aggregation structure with computed totals."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """
        Returns the sum of input, output, cache creation, and cache read tokens.
        """
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    def add(self, other: "TokenCounts") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_creation_tokens += other.cache_creation_tokens
        self.cache_read_tokens += other.cache_read_tokens


@dataclass
class SessionUsage(TokenCounts):
    """Token usage taken from one session log file."""

    model: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    skipped_lines: int = 0


@dataclass
class AggregateUsage(TokenCounts):
    """Usage accumulated across all session files of one read pass."""

    session_count: int = 0
    model: Optional[str] = None
    latest_timestamp: Optional[datetime] = None


@dataclass
class ProjectUsage(TokenCounts):
    """Per-project token totals computed from session logs."""

    project_path: str = ""
    project_name: str = ""
    session_count: int = 0


@dataclass(frozen=True)
class Credentials:
    """OAuth credentials as stored by Claude Code."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    scopes: List[str] = field(default_factory=list)
    subscription_type: Optional[str] = None
    rate_limit_tier: Optional[str] = None

    def is_expired(
        self, buffer: timedelta = timedelta(0), now: Optional[datetime] = None
    ) -> bool:
        """True when the token expires within ``buffer`` from ``now``."""
        return self.expires_at < (now or utc_now()) + buffer


@dataclass(frozen=True)
class PeriodSummary:
    """Aggregated utilization over one calendar week or month."""

    period_start: datetime
    period_end: datetime
    period_label: str
    average_utilization: float
    peak_utilization: float
    point_count: int


class PaceIndicator(Enum):
    """Spending pace relative to a monthly budget."""

    AHEAD = "ahead"
    ON_TRACK = "on_track"
    BEHIND = "behind"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ForecastResult:
    """Budget projection for the current billing month."""

    daily_rate: Optional[float]
    pace: PaceIndicator
    projected_spend: Optional[float]
    time_to_limit: Optional[float]

    @property
    def formatted_daily_rate(self) -> str:
        return format_currency(self.daily_rate) if self.daily_rate is not None else "--"

    @property
    def formatted_projected_spend(self) -> str:
        if self.projected_spend is None:
            return "--"
        return format_currency(self.projected_spend)
