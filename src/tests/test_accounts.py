"""Tests for combined multi-account usage."""

from datetime import timedelta
from unittest.mock import Mock, patch

import httpx

from tokemon.core.models import Credentials, DataSource, UsageSnapshot
from tokemon.data.credentials import MemoryCredentialStore
from tokemon.monitoring.accounts import Account, CombinedUsage, fetch_combined_usage
from tokemon.utils.time_utils import utc_now


def _account(name: str, token: str) -> Account:
    credentials = Credentials(
        access_token=token,
        refresh_token=f"refresh-{name}",
        expires_at=utc_now() + timedelta(hours=4),
        scopes=["user:profile"],
    )
    return Account(name=name, credential_store=MemoryCredentialStore(credentials))


def _usage_handler(request: httpx.Request) -> httpx.Response:
    token = request.headers["Authorization"].split(" ", 1)[1]
    if token == "tok-broken":
        return httpx.Response(500, text="server error")
    utilization = {"tok-work": 72.0, "tok-personal": 15.0}[token]
    return httpx.Response(200, json={"five_hour": {"utilization": utilization}})


class TestCombinedUsage:
    """Test cases for CombinedUsage."""

    def test_highest_percentage(self):
        combined = CombinedUsage(
            usages={
                "a": UsageSnapshot(primary_percentage=30.0, source=DataSource.OAUTH),
                "b": UsageSnapshot(primary_percentage=65.0, source=DataSource.OAUTH),
            }
        )
        assert combined.highest_percentage == 65.0
        assert combined.summary_label == "Highest"

    def test_single_or_empty(self):
        single = CombinedUsage(
            usages={"a": UsageSnapshot(primary_percentage=30.0, source=DataSource.OAUTH)}
        )
        assert single.summary_label == "Usage"
        assert CombinedUsage(usages={}).highest_percentage is None


class TestFetchCombinedUsage:
    """Test cases for fetch_combined_usage."""

    def test_fetches_all_accounts(self, make_oauth_client):
        work = _account("work", "tok-work")
        personal = _account("personal", "tok-personal")

        combined = fetch_combined_usage([work, personal], make_oauth_client(_usage_handler))

        assert combined.usages[work.account_id].primary_percentage == 72.0
        assert combined.usages[personal.account_id].primary_percentage == 15.0
        assert combined.failed == []
        assert combined.highest_percentage == 72.0

    def test_failed_account_is_omitted(self, make_oauth_client):
        work = _account("work", "tok-work")
        broken = _account("broken", "tok-broken")

        combined = fetch_combined_usage([work, broken], make_oauth_client(_usage_handler))

        assert list(combined.usages) == [work.account_id]
        assert combined.failed == [broken.account_id]
        assert combined.summary_label == "Usage"

    @patch("tokemon.monitoring.accounts.report_error")
    def test_unexpected_error_reported(self, mock_report):
        client = Mock()
        client.fetch_usage_with_token_refresh.side_effect = RuntimeError("boom")
        account = _account("work", "tok-work")

        combined = fetch_combined_usage([account], client)

        assert combined.usages == {}
        assert combined.failed == [account.account_id]
        mock_report.assert_called_once()
        client.close.assert_not_called()

    def test_no_accounts(self):
        assert fetch_combined_usage([]).usages == {}
