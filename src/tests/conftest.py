"""Shared pytest fixtures for Tokemon tests."""

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytz

from tokemon.core.models import Credentials, HistoryPoint
from tokemon.data.credentials import MemoryCredentialStore
from tokemon.data.oauth_client import OAuthClient
from tokemon.utils.time_utils import utc_now


@pytest.fixture
def fixed_now() -> datetime:
    """A Wednesday noon in UTC, so the current Monday-aligned week started two days earlier."""
    return datetime(2024, 1, 10, 12, 0, 0, tzinfo=pytz.UTC)


@pytest.fixture
def valid_credentials() -> Credentials:
    """
    Credentials that expire well outside the refresh buffer and carry the usage scope.
    """
    return Credentials(
        access_token="access-valid",
        refresh_token="refresh-valid",
        expires_at=utc_now() + timedelta(hours=8),
        scopes=["user:inference", "user:profile"],
        subscription_type="pro",
    )


@pytest.fixture
def credential_store(valid_credentials: Credentials) -> MemoryCredentialStore:
    return MemoryCredentialStore(valid_credentials)


@pytest.fixture
def usage_payload() -> Dict[str, Any]:
    """
    Return a usage endpoint body with five-hour, seven-day and billing sections.
    """
    return {
        "five_hour": {"utilization": 42.0, "resets_at": "2024-01-10T15:00:00.000Z"},
        "seven_day": {"utilization": 18.5, "resets_at": "2024-01-15T00:00:00Z"},
        "seven_day_opus": {"utilization": 3.0, "resets_at": None},
        "seven_day_sonnet": {"utilization": 12.0, "resets_at": "2024-01-15T00:00:00Z"},
        "extra_usage": {
            "is_enabled": True,
            "monthly_limit": 5000,
            "used_credits": 1250.0,
            "utilization": 25.0,
        },
    }


@pytest.fixture
def make_oauth_client() -> Callable[..., OAuthClient]:
    """
    Factory building an OAuthClient whose HTTP traffic goes to a handler function.

    The handler receives each ``httpx.Request`` and returns an ``httpx.Response``.
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> OAuthClient:
        transport = httpx.MockTransport(handler)
        return OAuthClient(http_client=httpx.Client(transport=transport))

    return factory


@pytest.fixture
def assistant_record() -> Callable[..., Dict[str, Any]]:
    """Factory for assistant-message session log records."""

    def factory(
        input_tokens: int = 100,
        output_tokens: int = 50,
        cache_creation: int = 10,
        cache_read: int = 5,
        model: str = "claude-sonnet-4-20250514",
        timestamp: str = "2024-01-10T11:00:00.000Z",
        session_id: str = "session-1",
    ) -> Dict[str, Any]:
        return {
            "type": "assistant",
            "sessionId": session_id,
            "timestamp": timestamp,
            "message": {
                "model": model,
                "usage": {
                    "input_tokens": input_tokens,
                    "output_tokens": output_tokens,
                    "cache_creation_input_tokens": cache_creation,
                    "cache_read_input_tokens": cache_read,
                },
            },
        }

    return factory


@pytest.fixture
def write_session() -> Callable[..., Path]:
    """Factory writing records (dicts or raw strings) as a JSONL session file."""

    def factory(path: Path, records: List[Any]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            for record in records:
                line = record if isinstance(record, str) else json.dumps(record)
                f.write(line + "\n")
        return path

    return factory


@pytest.fixture
def make_history() -> Callable[..., List[HistoryPoint]]:
    """Factory for history points given ``(hours_before_now, percentage)`` pairs."""

    def factory(
        pairs: List[Any], now: Optional[datetime] = None
    ) -> List[HistoryPoint]:
        reference = now or datetime(2024, 1, 10, 12, 0, 0, tzinfo=pytz.UTC)
        return [
            HistoryPoint(
                timestamp=reference - timedelta(hours=hours),
                primary_percentage=percentage,
            )
            for hours, percentage in pairs
        ]

    return factory
