"""httpx-based client for the Claude OAuth usage endpoint.

Fetches rate-limit utilization for the account whose credentials live in a
:class:`~tokemon.data.credentials.CredentialStore`, refreshing the access
token when it is about to expire or the server rejects it. Every failure is
raised as an :class:`OAuthError` subclass.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx

from tokemon._version import __version__
from tokemon.core.models import Credentials, DataSource, UsageSnapshot
from tokemon.data.credentials import CredentialsFormatError, CredentialStore
from tokemon.error_handling import ErrorLevel, report_error
from tokemon.utils.time_utils import TimezoneHandler, utc_now

OAUTH_USAGE_URL = "https://api.anthropic.com/api/oauth/usage"
OAUTH_TOKEN_URL = "https://console.anthropic.com/v1/oauth/token"
OAUTH_CLIENT_ID = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
OAUTH_BETA_HEADER = "oauth-2025-04-20"
REQUIRED_SCOPE = "user:profile"
TOKEN_EXPIRY_BUFFER = timedelta(minutes=10)
DEFAULT_TIMEOUT = 15.0
USER_AGENT = f"Tokemon/{__version__}"

logger = logging.getLogger(__name__)

_timestamps = TimezoneHandler()


class OAuthError(Exception):
    """Base error for the OAuth usage source."""


class TokenExpiredError(OAuthError):
    """The access token was rejected and could not be refreshed."""

    def __init__(self, message: str = "OAuth access token has expired") -> None:
        super().__init__(message)


class InsufficientScopeError(OAuthError):
    """The token lacks the scope needed to read usage."""

    def __init__(
        self, message: str = f"OAuth token missing required '{REQUIRED_SCOPE}' scope"
    ) -> None:
        super().__init__(message)


class NoCredentialsError(OAuthError):
    """No usable credentials in the store."""

    def __init__(self, message: str = "No Claude Code OAuth credentials found") -> None:
        super().__init__(message)


class OAuthHTTPError(OAuthError):
    """Unexpected HTTP status from the usage endpoint."""

    def __init__(self, status_code: int, body: Optional[str] = None) -> None:
        self.status_code = status_code
        self.body = body
        detail = f": {body}" if body else ""
        super().__init__(f"HTTP {status_code}{detail}")


class OAuthNetworkError(OAuthError):
    """Transport-level failure (DNS, TLS, timeout, connection reset)."""


class InvalidResponseError(OAuthError):
    """The usage endpoint answered 200 with a body we cannot decode."""

    def __init__(self, message: str = "Invalid response from usage API") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class UsageWindow:
    """Utilization of one rate-limit window."""

    utilization: float
    resets_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["UsageWindow"]:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise InvalidResponseError(f"Usage window is not an object: {data!r}")
        utilization = data.get("utilization")
        if isinstance(utilization, bool) or not isinstance(utilization, (int, float)):
            raise InvalidResponseError(f"Invalid utilization: {utilization!r}")
        resets_at = data.get("resets_at")
        return cls(
            utilization=float(utilization),
            resets_at=_timestamps.parse_timestamp(resets_at)
            if isinstance(resets_at, str)
            else None,
        )


@dataclass(frozen=True)
class ExtraUsage:
    """Pay-as-you-go billing beyond the plan limits."""

    is_enabled: bool = False
    monthly_limit_cents: Optional[int] = None
    used_credits_cents: Optional[float] = None
    utilization: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ExtraUsage"]:
        if not isinstance(data, dict):
            return None
        limit = data.get("monthly_limit")
        used = data.get("used_credits")
        utilization = data.get("utilization")
        return cls(
            is_enabled=bool(data.get("is_enabled", False)),
            monthly_limit_cents=int(limit) if isinstance(limit, (int, float)) else None,
            used_credits_cents=float(used) if isinstance(used, (int, float)) else None,
            utilization=float(utilization)
            if isinstance(utilization, (int, float))
            else None,
        )


@dataclass(frozen=True)
class OAuthUsageResponse:
    """Decoded body of ``GET /api/oauth/usage``."""

    five_hour: Optional[UsageWindow] = None
    seven_day: Optional[UsageWindow] = None
    seven_day_opus: Optional[UsageWindow] = None
    seven_day_sonnet: Optional[UsageWindow] = None
    seven_day_oauth_apps: Optional[UsageWindow] = None
    extra_usage: Optional[ExtraUsage] = None

    @classmethod
    def from_dict(cls, data: Any) -> "OAuthUsageResponse":
        if not isinstance(data, dict):
            raise InvalidResponseError("Usage response is not a JSON object")
        return cls(
            five_hour=UsageWindow.from_dict(data.get("five_hour")),
            seven_day=UsageWindow.from_dict(data.get("seven_day")),
            seven_day_opus=UsageWindow.from_dict(data.get("seven_day_opus")),
            seven_day_sonnet=UsageWindow.from_dict(data.get("seven_day_sonnet")),
            seven_day_oauth_apps=UsageWindow.from_dict(data.get("seven_day_oauth_apps")),
            extra_usage=ExtraUsage.from_dict(data.get("extra_usage")),
        )

    def to_snapshot(self) -> UsageSnapshot:
        """
        Map the response onto a snapshot.

        The five-hour window drives ``primary_percentage``; a response without
        it reports 0 rather than the no-percentage sentinel.
        """
        extra = self.extra_usage or ExtraUsage()
        return UsageSnapshot(
            primary_percentage=self.five_hour.utilization if self.five_hour else 0.0,
            source=DataSource.OAUTH,
            five_hour_utilization=self.five_hour.utilization if self.five_hour else None,
            seven_day_utilization=self.seven_day.utilization if self.seven_day else None,
            seven_day_opus_utilization=self.seven_day_opus.utilization
            if self.seven_day_opus
            else None,
            seven_day_sonnet_utilization=self.seven_day_sonnet.utilization
            if self.seven_day_sonnet
            else None,
            resets_at=self.five_hour.resets_at if self.five_hour else None,
            seven_day_resets_at=self.seven_day.resets_at if self.seven_day else None,
            seven_day_sonnet_resets_at=self.seven_day_sonnet.resets_at
            if self.seven_day_sonnet
            else None,
            extra_usage_enabled=extra.is_enabled,
            extra_usage_monthly_limit_cents=extra.monthly_limit_cents,
            extra_usage_spent_cents=extra.used_credits_cents,
            extra_usage_utilization=extra.utilization,
        )


class OAuthClient:
    """Synchronous httpx client for the usage and token endpoints."""

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
        usage_url: str = OAUTH_USAGE_URL,
        token_url: str = OAUTH_TOKEN_URL,
        client_id: str = OAUTH_CLIENT_ID,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)
        self._usage_url = usage_url
        self._token_url = token_url
        self._client_id = client_id

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "OAuthClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def fetch_usage(self, access_token: str) -> OAuthUsageResponse:
        """
        GET the usage endpoint with a bearer token.

        Raises:
            TokenExpiredError: 401.
            InsufficientScopeError: 403.
            OAuthHTTPError: Any other non-200 status.
            OAuthNetworkError: Transport failure.
            InvalidResponseError: 200 with an undecodable body.
        """
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "anthropic-beta": OAUTH_BETA_HEADER,
            "User-Agent": USER_AGENT,
        }
        try:
            resp = self._client.get(self._usage_url, headers=headers)
        except httpx.HTTPError as e:
            raise OAuthNetworkError(f"Network error: {e}") from e

        if resp.status_code == 401:
            raise TokenExpiredError()
        if resp.status_code == 403:
            raise InsufficientScopeError()
        if resp.status_code != 200:
            raise OAuthHTTPError(resp.status_code, resp.text or None)

        try:
            data = resp.json()
        except ValueError as e:
            raise InvalidResponseError(f"Usage response is not JSON: {e}") from e
        return OAuthUsageResponse.from_dict(data)

    def refresh_access_token(
        self, credentials: Credentials, now: Optional[datetime] = None
    ) -> Credentials:
        """
        Exchange the refresh token for a new access token.

        Any failure is raised as :class:`TokenExpiredError`; the user has to
        sign in again.
        """
        if not credentials.refresh_token:
            raise TokenExpiredError("No refresh token available")

        body = {
            "grant_type": "refresh_token",
            "refresh_token": credentials.refresh_token,
            "client_id": self._client_id,
        }
        try:
            resp = self._client.post(
                self._token_url, json=body, headers={"User-Agent": USER_AGENT}
            )
        except httpx.HTTPError as e:
            raise TokenExpiredError(f"Token refresh failed: {e}") from e

        if resp.status_code != 200:
            raise TokenExpiredError(f"Token refresh failed: HTTP {resp.status_code}")

        try:
            data: Dict[str, Any] = resp.json()
            access_token = data["access_token"]
            expires_in = int(data.get("expires_in", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise TokenExpiredError(f"Token refresh returned an invalid body: {e}") from e

        logger.info("Refreshed OAuth access token")
        return Credentials(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or credentials.refresh_token,
            expires_at=(now or utc_now()) + timedelta(seconds=expires_in),
            scopes=list(credentials.scopes),
            subscription_type=credentials.subscription_type,
            rate_limit_tier=credentials.rate_limit_tier,
        )

    def _refresh_and_store(
        self, store: CredentialStore, credentials: Credentials
    ) -> Credentials:
        refreshed = self.refresh_access_token(credentials)
        try:
            store.write(refreshed)
        except (OSError, TypeError, ValueError) as e:
            report_error(
                exception=e,
                component="oauth_client",
                context_name="credential_write",
                level=ErrorLevel.WARNING,
            )
        return refreshed

    def fetch_usage_with_token_refresh(
        self, store: CredentialStore, now: Optional[datetime] = None
    ) -> OAuthUsageResponse:
        """
        Fetch usage for the credentials in ``store``.

        Tokens expiring within ten minutes are refreshed up front. A 401 on a
        token that looked valid triggers exactly one refresh and one retry;
        a second 401 propagates as :class:`TokenExpiredError`. Refreshed
        credentials are written back to the store.
        """
        try:
            credentials = store.read()
        except CredentialsFormatError as e:
            raise NoCredentialsError(str(e)) from e
        if credentials is None:
            raise NoCredentialsError()

        if REQUIRED_SCOPE not in credentials.scopes:
            raise InsufficientScopeError()

        if credentials.is_expired(TOKEN_EXPIRY_BUFFER, now):
            logger.debug("Access token expires within buffer, refreshing first")
            credentials = self._refresh_and_store(store, credentials)
            return self.fetch_usage(credentials.access_token)

        try:
            return self.fetch_usage(credentials.access_token)
        except TokenExpiredError:
            logger.debug("Usage endpoint rejected token, refreshing once")
            credentials = self._refresh_and_store(store, credentials)
            return self.fetch_usage(credentials.access_token)
