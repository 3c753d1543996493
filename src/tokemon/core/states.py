"""Per-source availability state and the monitor error taxonomy.

Both are tagged variants: an ``Enum`` discriminator plus an optional message.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SourceStatus(Enum):
    """Discriminator for :class:`SourceState`."""

    AVAILABLE = "available"
    FAILED = "failed"
    DISABLED = "disabled"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class SourceState:
    """Availability of one data source, written by the monitor after each attempt."""

    status: SourceStatus
    message: Optional[str] = None

    @classmethod
    def available(cls) -> "SourceState":
        return cls(SourceStatus.AVAILABLE)

    @classmethod
    def failed(cls, message: str) -> "SourceState":
        return cls(SourceStatus.FAILED, message)

    @classmethod
    def disabled(cls) -> "SourceState":
        return cls(SourceStatus.DISABLED)

    @classmethod
    def not_configured(cls, message: Optional[str] = None) -> "SourceState":
        return cls(SourceStatus.NOT_CONFIGURED, message)

    @property
    def is_usable(self) -> bool:
        """Whether this data source can be used for fetching."""
        return self.status is SourceStatus.AVAILABLE

    def __str__(self) -> str:
        if self.message:
            return f"{self.status.value}({self.message})"
        return self.status.value


class ErrorKind(Enum):
    """Discriminator for :class:`MonitorError`."""

    OAUTH_FAILED = "oauth_failed"
    JSONL_FAILED = "jsonl_failed"
    BOTH_SOURCES_FAILED = "both_sources_failed"
    TOKEN_EXPIRED = "token_expired"
    INSUFFICIENT_SCOPE = "insufficient_scope"


_DEFAULT_MESSAGES = {
    ErrorKind.TOKEN_EXPIRED: "OAuth access token has expired",
    ErrorKind.INSUFFICIENT_SCOPE: "OAuth token missing required scope for usage data",
}


@dataclass(frozen=True)
class MonitorError:
    """Outcome of the latest cycle when it was not a full success."""

    kind: ErrorKind
    message: Optional[str] = None

    @classmethod
    def oauth_failed(cls, message: str) -> "MonitorError":
        return cls(ErrorKind.OAUTH_FAILED, message)

    @classmethod
    def jsonl_failed(cls, message: str) -> "MonitorError":
        return cls(ErrorKind.JSONL_FAILED, message)

    @classmethod
    def both_sources_failed(cls, message: str) -> "MonitorError":
        return cls(ErrorKind.BOTH_SOURCES_FAILED, message)

    @classmethod
    def token_expired(cls) -> "MonitorError":
        return cls(ErrorKind.TOKEN_EXPIRED)

    @classmethod
    def insufficient_scope(cls) -> "MonitorError":
        return cls(ErrorKind.INSUFFICIENT_SCOPE)

    @property
    def is_auth_fatal(self) -> bool:
        """Requires out-of-band re-authentication; never retried automatically."""
        return self.kind in (ErrorKind.TOKEN_EXPIRED, ErrorKind.INSUFFICIENT_SCOPE)

    @property
    def is_auto_retryable(self) -> bool:
        """Only generic OAuth failures are retried by the polling loop."""
        return self.kind is ErrorKind.OAUTH_FAILED

    @property
    def description(self) -> str:
        if self.message:
            return self.message
        return _DEFAULT_MESSAGES.get(self.kind, self.kind.value.replace("_", " "))

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.description}"
