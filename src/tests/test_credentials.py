"""Tests for OAuth credential stores."""

import json
import os
import stat
from datetime import datetime

import pytest
import pytz

from tokemon.core.models import Credentials
from tokemon.data.credentials import (
    OAUTH_KEY,
    CredentialsFormatError,
    FileCredentialStore,
    MemoryCredentialStore,
    credentials_from_dict,
    credentials_to_dict,
)

EXPIRES_AT = datetime(2024, 1, 10, 12, 0, tzinfo=pytz.UTC)


@pytest.fixture
def stored_document():
    return {
        OAUTH_KEY: {
            "accessToken": "sk-ant-oat01-abc",
            "refreshToken": "refresh-abc",
            "expiresAt": 1704888000000,
            "scopes": ["user:inference", "user:profile"],
            "subscriptionType": "max",
        },
        "otherTool": {"keep": True},
    }


class TestCredentialCodec:
    """Test cases for the camelCase credential codec."""

    def test_from_dict(self, stored_document):
        credentials = credentials_from_dict(stored_document[OAUTH_KEY])

        assert credentials.access_token == "sk-ant-oat01-abc"
        assert credentials.refresh_token == "refresh-abc"
        assert credentials.expires_at == EXPIRES_AT
        assert credentials.scopes == ["user:inference", "user:profile"]
        assert credentials.subscription_type == "max"
        assert credentials.rate_limit_tier is None

    def test_from_dict_missing_fields(self):
        with pytest.raises(CredentialsFormatError):
            credentials_from_dict({"accessToken": "x"})
        with pytest.raises(CredentialsFormatError):
            credentials_from_dict({"accessToken": "x", "expiresAt": "soon"})

    def test_to_dict(self):
        data = credentials_to_dict(
            Credentials(access_token="a", refresh_token="r", expires_at=EXPIRES_AT)
        )

        assert data == {
            "accessToken": "a",
            "refreshToken": "r",
            "expiresAt": 1704888000000,
            "scopes": [],
        }


class TestFileCredentialStore:
    """Test cases for FileCredentialStore."""

    def test_read(self, tmp_path, stored_document):
        path = tmp_path / ".credentials.json"
        path.write_text(json.dumps(stored_document))

        credentials = FileCredentialStore(path).read()

        assert credentials is not None
        assert credentials.access_token == "sk-ant-oat01-abc"

    def test_read_missing_file(self, tmp_path):
        assert FileCredentialStore(tmp_path / "missing.json").read() is None

    def test_read_without_oauth_entry(self, tmp_path):
        path = tmp_path / ".credentials.json"
        path.write_text(json.dumps({"something": "else"}))

        assert FileCredentialStore(path).read() is None

    def test_read_invalid_json(self, tmp_path):
        path = tmp_path / ".credentials.json"
        path.write_text("{broken")

        with pytest.raises(CredentialsFormatError):
            FileCredentialStore(path).read()

    def test_write_preserves_other_keys(self, tmp_path, stored_document):
        path = tmp_path / ".credentials.json"
        path.write_text(json.dumps(stored_document))
        store = FileCredentialStore(path)

        store.write(
            Credentials(
                access_token="new-access",
                refresh_token="new-refresh",
                expires_at=EXPIRES_AT,
                scopes=["user:profile"],
            )
        )

        document = json.loads(path.read_text())
        assert document["otherTool"] == {"keep": True}
        assert document[OAUTH_KEY]["accessToken"] == "new-access"
        assert document[OAUTH_KEY]["refreshToken"] == "new-refresh"
        # Fields not carried by the new credentials survive the merge
        assert document[OAUTH_KEY]["subscriptionType"] == "max"
        assert store.read().access_token == "new-access"

    def test_write_creates_private_file(self, tmp_path):
        path = tmp_path / "nested" / ".credentials.json"

        FileCredentialStore(path).write(
            Credentials(access_token="a", refresh_token="r", expires_at=EXPIRES_AT)
        )

        assert path.exists()
        assert not path.with_suffix(".tmp").exists()
        if os.name == "posix":
            assert stat.S_IMODE(path.stat().st_mode) == 0o600


class TestMemoryCredentialStore:
    """Test cases for MemoryCredentialStore."""

    def test_read_write(self, valid_credentials):
        store = MemoryCredentialStore()
        assert store.read() is None

        store.write(valid_credentials)

        assert store.read() is valid_credentials
        assert store.write_count == 1
