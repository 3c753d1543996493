"""Combined usage across several Claude accounts."""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from tokemon.core.models import UsageSnapshot
from tokemon.data.credentials import CredentialStore
from tokemon.data.oauth_client import OAuthClient, OAuthError
from tokemon.error_handling import ErrorLevel, report_error

MAX_WORKERS = 8

logger = logging.getLogger(__name__)


@dataclass
class Account:
    """A named account profile and the store holding its credentials."""

    name: str
    credential_store: CredentialStore
    account_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class CombinedUsage:
    """Per-account snapshots from one fan-out; failed accounts are omitted."""

    usages: Dict[str, UsageSnapshot]
    failed: List[str] = field(default_factory=list)

    @property
    def highest_percentage(self) -> Optional[float]:
        """Headline metric: the busiest account's utilization."""
        if not self.usages:
            return None
        return max(s.primary_percentage for s in self.usages.values())

    @property
    def summary_label(self) -> str:
        return "Highest" if len(self.usages) > 1 else "Usage"


def _fetch_account(client: OAuthClient, account: Account) -> UsageSnapshot:
    return client.fetch_usage_with_token_refresh(account.credential_store).to_snapshot()


def fetch_combined_usage(
    accounts: Sequence[Account],
    oauth_client: Optional[OAuthClient] = None,
    max_workers: int = MAX_WORKERS,
) -> CombinedUsage:
    """
    Fetch usage for every account concurrently and join the results.

    One fetch per account runs on a thread pool. An account whose fetch fails
    is logged and left out of the result; it never fails the whole call.
    """
    if not accounts:
        return CombinedUsage(usages={})

    client = oauth_client or OAuthClient()
    usages: Dict[str, UsageSnapshot] = {}
    failed: List[str] = []

    try:
        with ThreadPoolExecutor(
            max_workers=min(max_workers, len(accounts)),
            thread_name_prefix="tokemon-account",
        ) as executor:
            futures = {
                executor.submit(_fetch_account, client, account): account
                for account in accounts
            }
            for future in as_completed(futures):
                account = futures[future]
                try:
                    usages[account.account_id] = future.result()
                except OAuthError as e:
                    logger.warning(f"Failed to fetch usage for {account.name}: {e}")
                    failed.append(account.account_id)
                except Exception as e:
                    report_error(
                        exception=e,
                        component="accounts",
                        context_name="combined_usage",
                        context_data={"account": account.name},
                        level=ErrorLevel.WARNING,
                    )
                    failed.append(account.account_id)
    finally:
        if oauth_client is None:
            client.close()

    logger.info(f"Combined usage: {len(usages)} of {len(accounts)} accounts fetched")
    return CombinedUsage(usages=usages, failed=failed)
