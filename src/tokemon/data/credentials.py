"""OAuth credential stores.

Claude Code keeps its OAuth credentials as JSON::

    {
      "claudeAiOauth": {
        "accessToken": "sk-ant-oat01-...",
        "refreshToken": "...",
        "expiresAt": 1800000000000,
        "scopes": ["user:inference", "user:profile"],
        "subscriptionType": "pro"
      }
    }

``expiresAt`` is epoch milliseconds. Stores read and write that shape.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from tokemon.core.models import Credentials
from tokemon.error_handling import report_file_error
from tokemon.utils.time_utils import from_epoch_millis, to_epoch_millis

DEFAULT_CREDENTIALS_PATH = "~/.claude/.credentials.json"
OAUTH_KEY = "claudeAiOauth"

logger = logging.getLogger(__name__)


class CredentialsFormatError(ValueError):
    """Stored credentials exist but cannot be decoded."""


class CredentialStore(Protocol):
    """Read/write access to the active profile's OAuth credentials."""

    def read(self) -> Optional[Credentials]:
        """Current credentials, or None when none are stored."""
        ...

    def write(self, credentials: Credentials) -> None:
        """Replace the stored credentials."""
        ...


def credentials_from_dict(data: Dict[str, Any]) -> Credentials:
    """Decode a ``claudeAiOauth`` object."""
    try:
        scopes = data.get("scopes") or []
        return Credentials(
            access_token=str(data["accessToken"]),
            refresh_token=str(data.get("refreshToken") or ""),
            expires_at=from_epoch_millis(int(data["expiresAt"])),
            scopes=[str(s) for s in scopes],
            subscription_type=data.get("subscriptionType"),
            rate_limit_tier=data.get("rateLimitTier"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CredentialsFormatError(f"Malformed OAuth credentials: {e}") from e


def credentials_to_dict(credentials: Credentials) -> Dict[str, Any]:
    """Encode credentials as a ``claudeAiOauth`` object."""
    data: Dict[str, Any] = {
        "accessToken": credentials.access_token,
        "refreshToken": credentials.refresh_token,
        "expiresAt": to_epoch_millis(credentials.expires_at),
        "scopes": list(credentials.scopes),
    }
    if credentials.subscription_type is not None:
        data["subscriptionType"] = credentials.subscription_type
    if credentials.rate_limit_tier is not None:
        data["rateLimitTier"] = credentials.rate_limit_tier
    return data


class FileCredentialStore:
    """Credentials kept in Claude Code's ``.credentials.json`` file."""

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path or DEFAULT_CREDENTIALS_PATH).expanduser()

    def _load_document(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise CredentialsFormatError(f"Invalid JSON in {self.path}: {e}") from e
        except OSError as e:
            report_file_error(e, str(self.path), operation="read")
            return None
        if not isinstance(document, dict):
            raise CredentialsFormatError(f"Unexpected credentials layout in {self.path}")
        return document

    def read(self) -> Optional[Credentials]:
        document = self._load_document()
        if document is None:
            return None
        oauth = document.get(OAUTH_KEY)
        if not isinstance(oauth, dict) or not oauth.get("accessToken"):
            logger.debug(f"No {OAUTH_KEY} entry in {self.path}")
            return None
        return credentials_from_dict(oauth)

    def write(self, credentials: Credentials) -> None:
        """Write credentials back, preserving any other keys in the file."""
        try:
            document = self._load_document() or {}
        except CredentialsFormatError:
            document = {}

        existing = document.get(OAUTH_KEY)
        merged = dict(existing) if isinstance(existing, dict) else {}
        merged.update(credentials_to_dict(credentials))
        document[OAUTH_KEY] = merged

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.chmod(temp_file, 0o600)
        temp_file.replace(self.path)
        logger.debug(f"Updated OAuth credentials in {self.path}")


class MemoryCredentialStore:
    """In-memory store, used for secondary account profiles and tests."""

    def __init__(self, credentials: Optional[Credentials] = None) -> None:
        self._credentials = credentials
        self._lock = threading.Lock()
        self.write_count = 0

    def read(self) -> Optional[Credentials]:
        with self._lock:
            return self._credentials

    def write(self, credentials: Credentials) -> None:
        with self._lock:
            self._credentials = credentials
            self.write_count += 1
