"""
Unit Tests for the Offline Credential Provider

Reliability Level: CORE TIER

Tests the OfflineSessionCredentialProvider:
- Only offline sessions are selected
- Refresh inside the skew window, rotated tokens persisted
- Expired token without refresh token → absent
- Rejected refresh → CredentialRefreshError (SEC-002)
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests
from sqlalchemy import insert, select

from app.commerce.credentials import CredentialRefreshError, OfflineSessionCredentialProvider
from app.database.tables import offline_sessions

from tests.fixtures.fakes import SHOP_DOMAIN

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _store_session(session_factory, **overrides):
    values = dict(
        id=f"offline_{SHOP_DOMAIN}",
        shop=SHOP_DOMAIN,
        is_online=False,
        access_token="shpat_current",
        expires_at=None,
        refresh_token=None,
        refresh_token_expires_at=None,
        scope="write_draft_orders,read_customers",
    )
    values.update(overrides)
    with session_factory.begin() as session:
        session.execute(insert(offline_sessions).values(**values))


def _refresh_response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = body or {}
    return response


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def provider(session_factory, http):
    return OfflineSessionCredentialProvider(
        session_factory,
        api_key="key",
        api_secret="secret",
        refresh_skew_seconds=120,
        timeout=5.0,
        http=http,
        clock=lambda: NOW,
    )


class TestSelection:

    def test_no_session_is_absent(self, provider):
        assert provider.get_credential(SHOP_DOMAIN) is None

    def test_online_sessions_are_ignored(self, provider, session_factory):
        _store_session(session_factory, id="online_1", is_online=True)

        assert provider.get_credential(SHOP_DOMAIN) is None

    def test_non_expiring_token_without_refresh(self, provider, session_factory, http):
        _store_session(session_factory)

        credential = provider.get_credential(SHOP_DOMAIN)

        assert credential.access_token == "shpat_current"
        assert credential.shop_domain == SHOP_DOMAIN
        http.post.assert_not_called()

    def test_valid_token_outside_skew(self, provider, session_factory, http):
        _store_session(
            session_factory,
            expires_at=NOW + timedelta(hours=1),
            refresh_token="refresh_1",
        )

        assert provider.get_credential(SHOP_DOMAIN).access_token == "shpat_current"
        http.post.assert_not_called()

    def test_expired_without_refresh_token_is_absent(self, provider, session_factory):
        _store_session(session_factory, expires_at=NOW - timedelta(minutes=1))

        assert provider.get_credential(SHOP_DOMAIN) is None


class TestRefresh:

    def test_refresh_inside_skew_persists_rotated_tokens(self, provider, session_factory, http):
        _store_session(
            session_factory,
            expires_at=NOW + timedelta(seconds=60),
            refresh_token="refresh_1",
        )
        http.post.return_value = _refresh_response(body={
            "access_token": "shpat_new",
            "expires_in": 3600,
            "refresh_token": "refresh_2",
            "refresh_token_expires_in": 86400,
        })

        credential = provider.get_credential(SHOP_DOMAIN)

        assert credential.access_token == "shpat_new"
        assert credential.expires_at == NOW + timedelta(seconds=3600)

        args, kwargs = http.post.call_args
        assert args[0] == f"https://{SHOP_DOMAIN}/admin/oauth/access_token"
        assert kwargs["data"]["grant_type"] == "refresh_token"
        assert kwargs["data"]["refresh_token"] == "refresh_1"

        with session_factory() as session:
            row = session.execute(select(offline_sessions)).first()
        assert row.access_token == "shpat_new"
        assert row.refresh_token == "refresh_2"

    def test_missing_expiry_with_refresh_token_triggers_refresh(self, provider, session_factory, http):
        _store_session(session_factory, refresh_token="refresh_1")
        http.post.return_value = _refresh_response(body={"access_token": "shpat_new"})

        credential = provider.get_credential(SHOP_DOMAIN)

        assert credential.access_token == "shpat_new"
        assert credential.expires_at is None

        with session_factory() as session:
            row = session.execute(select(offline_sessions)).first()
        assert row.refresh_token == "refresh_1"

    def test_rejected_refresh_raises(self, provider, session_factory, http):
        _store_session(
            session_factory,
            expires_at=NOW - timedelta(minutes=5),
            refresh_token="refresh_1",
        )
        http.post.return_value = _refresh_response(status_code=400)

        with pytest.raises(CredentialRefreshError) as exc_info:
            provider.get_credential(SHOP_DOMAIN)

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "SEC-002"

    def test_expired_refresh_token_raises_without_request(self, provider, session_factory, http):
        _store_session(
            session_factory,
            expires_at=NOW - timedelta(minutes=5),
            refresh_token="refresh_1",
            refresh_token_expires_at=NOW - timedelta(days=1),
        )

        with pytest.raises(CredentialRefreshError):
            provider.get_credential(SHOP_DOMAIN)

        http.post.assert_not_called()

    def test_refresh_without_app_credentials_raises(self, session_factory, http):
        _store_session(session_factory, refresh_token="refresh_1")
        provider = OfflineSessionCredentialProvider(
            session_factory, api_key=None, api_secret=None, http=http, clock=lambda: NOW
        )

        with pytest.raises(CredentialRefreshError):
            provider.get_credential(SHOP_DOMAIN)

    def test_transport_failure_raises(self, provider, session_factory, http):
        _store_session(session_factory, refresh_token="refresh_1")
        http.post.side_effect = requests.exceptions.ConnectionError()

        with pytest.raises(CredentialRefreshError):
            provider.get_credential(SHOP_DOMAIN)
