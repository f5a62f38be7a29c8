"""
Unit Tests for the Commerce Gateway

Reliability Level: CORE TIER

Tests the CommerceGateway against a mocked requests.Session:
- Throttle-only retry (HTTP 429 and GraphQL THROTTLED)
- Timeouts never retried
- Auth-invalid detection (HTTP 401/403, message heuristics)
- Error normalization into {gqlErrors, userErrors}
- draftOrder: null with empty userErrors tolerated
- Gateways and the credential provider share one pooled session
"""

from unittest.mock import Mock

import pytest
import requests

from app.commerce.backoff import ExponentialBackoff
from app.commerce.credentials import OfflineSessionCredentialProvider, ShopCredential
from app.commerce.gateway import CommerceGateway, MailingAddress
from app.commerce.http import close_http_session, get_http_session
from services.submission_config import SubmissionConfig
from services.submission_orchestrator import commerce_gateway_factory


def _response(status_code=200, body=None, json_error=False):
    response = Mock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def gateway(http, sleeps):
    return CommerceGateway(
        ShopCredential("demo-shop.myshopify.com", "shpat_secret"),
        api_version="2025-10",
        timeout=5.0,
        max_throttle_retries=2,
        session=http,
        backoff=ExponentialBackoff(base_delay=1.0, jitter=0.0),
        sleep=sleeps.append,
        correlation_id="sub-1",
    )


def _created(draft_id="gid://shopify/DraftOrder/1", name="#D1", user_errors=None):
    return {
        "data": {
            "draftOrderCreate": {
                "draftOrder": {"id": draft_id, "name": name} if draft_id else None,
                "userErrors": user_errors or [],
            }
        }
    }


# =============================================================================
# Request Shape
# =============================================================================

class TestRequestShape:

    def test_posts_graphql_to_admin_endpoint(self, gateway, http):
        http.post.return_value = _response(body=_created())

        gateway.create_pending_order({"lineItems": []})

        args, kwargs = http.post.call_args
        assert args[0] == "https://demo-shop.myshopify.com/admin/api/2025-10/graphql.json"
        assert kwargs["headers"]["X-Shopify-Access-Token"] == "shpat_secret"
        assert kwargs["timeout"] == 5.0
        assert kwargs["json"]["variables"] == {"input": {"lineItems": []}}
        assert "draftOrderCreate" in kwargs["json"]["query"]

    def test_tag_search_quotes_tag(self, gateway, http):
        http.post.return_value = _response(body={"data": {"draftOrders": {"nodes": []}}})

        gateway.find_pending_order_by_tag("wlsub:abc")

        variables = http.post.call_args.kwargs["json"]["variables"]
        assert variables == {"query": "tag:'wlsub:abc'"}

    def test_credential_repr_hides_token(self):
        credential = ShopCredential("demo-shop.myshopify.com", "shpat_secret")

        assert "shpat_secret" not in repr(credential)


# =============================================================================
# Draft Order Creation
# =============================================================================

class TestCreatePendingOrder:

    def test_success(self, gateway, http):
        http.post.return_value = _response(body=_created())

        result = gateway.create_pending_order({})

        assert result.draft_order_id == "gid://shopify/DraftOrder/1"
        assert result.draft_order_name == "#D1"
        assert not result.errors.has_errors
        assert result.errors.auth_invalid is False

    def test_user_errors_are_normalized(self, gateway, http):
        http.post.return_value = _response(body=_created(
            draft_id=None,
            user_errors=[{"field": ["presentmentCurrencyCode"], "message": "Currency is not enabled"}],
        ))

        result = gateway.create_pending_order({})

        assert result.draft_order_id is None
        assert result.errors.user_errors == [
            {"field": ["presentmentCurrencyCode"], "message": "Currency is not enabled"}
        ]
        assert result.errors.to_dict()["gqlErrors"] == []

    def test_null_draft_order_without_errors_is_tolerated(self, gateway, http):
        http.post.return_value = _response(body=_created(draft_id=None))

        result = gateway.create_pending_order({})

        assert result.draft_order_id is None
        assert not result.errors.has_errors

    def test_id_with_user_errors_keeps_both(self, gateway, http):
        http.post.return_value = _response(body=_created(
            user_errors=[{"field": None, "message": "Shipping line ignored"}],
        ))

        result = gateway.create_pending_order({})

        assert result.draft_order_id == "gid://shopify/DraftOrder/1"
        assert result.errors.has_errors


# =============================================================================
# Retry Policy
# =============================================================================

class TestRetryPolicy:

    def test_http_429_is_retried(self, gateway, http, sleeps):
        http.post.side_effect = [_response(429), _response(body=_created())]

        result = gateway.create_pending_order({})

        assert result.draft_order_id == "gid://shopify/DraftOrder/1"
        assert http.post.call_count == 2
        assert sleeps == [1.0]

    def test_graphql_throttled_is_retried(self, gateway, http, sleeps):
        throttled = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
        http.post.side_effect = [_response(body=throttled), _response(body=_created())]

        result = gateway.create_pending_order({})

        assert result.draft_order_id is not None
        assert not result.errors.has_errors
        assert len(sleeps) == 1

    def test_throttle_retries_are_bounded(self, gateway, http, sleeps):
        http.post.return_value = _response(429)

        result = gateway.create_pending_order({})

        assert http.post.call_count == 3
        assert sleeps == [1.0, 2.0]
        assert result.draft_order_id is None
        assert result.errors.gql_errors[0]["extensions"]["code"] == "THROTTLED"

    def test_timeout_is_never_retried(self, gateway, http, sleeps):
        http.post.side_effect = requests.exceptions.Timeout()

        result = gateway.create_pending_order({})

        assert http.post.call_count == 1
        assert sleeps == []
        assert result.errors.gql_errors[0]["extensions"]["code"] == "TIMEOUT"
        assert result.errors.auth_invalid is False

    def test_connection_error(self, gateway, http):
        http.post.side_effect = requests.exceptions.ConnectionError()

        result = gateway.create_pending_order({})

        assert http.post.call_count == 1
        assert result.errors.gql_errors[0]["extensions"]["code"] == "CONNECTION_ERROR"

    def test_server_error_is_not_retried(self, gateway, http):
        http.post.return_value = _response(502)

        result = gateway.create_pending_order({})

        assert http.post.call_count == 1
        assert result.errors.gql_errors[0]["extensions"]["status"] == 502

    def test_invalid_json(self, gateway, http):
        http.post.return_value = _response(json_error=True)

        result = gateway.create_pending_order({})

        assert result.errors.gql_errors[0]["extensions"]["code"] == "INVALID_JSON"


# =============================================================================
# Auth Detection
# =============================================================================

class TestAuthDetection:

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_status_codes(self, gateway, http, sleeps, status):
        http.post.return_value = _response(status)

        result = gateway.create_pending_order({})

        assert result.errors.auth_invalid is True
        assert http.post.call_count == 1
        assert sleeps == []

    def test_auth_message_heuristic(self, gateway, http):
        http.post.return_value = _response(body={
            "errors": [{"message": "[API] Invalid API key or access token (unrecognized login)"}]
        })

        result = gateway.create_pending_order({})

        assert result.errors.auth_invalid is True

    def test_currency_errors_are_not_auth(self, gateway, http):
        http.post.return_value = _response(body={
            "errors": [{"message": "Presentment currency is not supported"}]
        })

        result = gateway.create_pending_order({})

        assert result.errors.auth_invalid is False
        assert "not supported" in result.errors.text()


# =============================================================================
# Address Lookup
# =============================================================================

class TestAddressLookup:

    ADDRESS = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "company": None,
        "address1": "1 Main St",
        "address2": "",
        "city": "London",
        "provinceCode": None,
        "countryCodeV2": "GB",
        "zip": "N1",
        "phone": None,
    }

    def test_default_address_preferred(self, gateway, http):
        http.post.return_value = _response(body={"data": {"customer": {
            "defaultAddress": self.ADDRESS,
            "addresses": [dict(self.ADDRESS, city="Paris")],
        }}})

        result = gateway.fetch_customer_address("gid://shopify/Customer/1")

        assert result.address.city == "London"
        assert result.address.to_input() == {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "address1": "1 Main St",
            "city": "London",
            "countryCode": "GB",
            "zip": "N1",
        }

    def test_first_address_when_no_default(self, gateway, http):
        http.post.return_value = _response(body={"data": {"customer": {
            "defaultAddress": None,
            "addresses": [dict(self.ADDRESS, city="Paris")],
        }}})

        result = gateway.fetch_customer_address("gid://shopify/Customer/1")

        assert result.address.city == "Paris"

    def test_no_address(self, gateway, http):
        http.post.return_value = _response(body={"data": {"customer": None}})

        result = gateway.fetch_customer_address("gid://shopify/Customer/1")

        assert result.address is None
        assert not result.errors.has_errors

    def test_empty_address_shape(self):
        assert MailingAddress().to_input() == {}


# =============================================================================
# Tag Lookup
# =============================================================================

class TestTagLookup:

    def test_match(self, gateway, http):
        http.post.return_value = _response(body={"data": {"draftOrders": {"nodes": [
            {"id": "gid://shopify/DraftOrder/7", "name": "#D7", "tags": ["wlsub:abc"]}
        ]}}})

        result = gateway.find_pending_order_by_tag("wlsub:abc")

        assert result.draft_order_id == "gid://shopify/DraftOrder/7"
        assert result.draft_order_name == "#D7"

    def test_no_match(self, gateway, http):
        http.post.return_value = _response(body={"data": {"draftOrders": {"nodes": []}}})

        result = gateway.find_pending_order_by_tag("wlsub:abc")

        assert result.draft_order_id is None


# =============================================================================
# Shared HTTP Session
# =============================================================================

class TestSharedHttpSession:

    @pytest.fixture(autouse=True)
    def fresh_session(self):
        close_http_session()
        yield
        close_http_session()

    def test_factory_gateways_share_one_session(self):
        factory = commerce_gateway_factory(SubmissionConfig())
        credential = ShopCredential("demo-shop.myshopify.com", "shpat_secret")

        first = factory(credential, "sub-1")
        second = factory(credential, "sub-2")

        assert first._session is second._session
        assert first._session is get_http_session()

    def test_default_gateway_uses_shared_session(self):
        gateway = CommerceGateway(
            ShopCredential("demo-shop.myshopify.com", "shpat_secret"),
            api_version="2025-10",
            timeout=5.0,
            max_throttle_retries=0,
        )

        assert gateway._session is get_http_session()

    def test_close_releases_connections_and_resets(self):
        session = get_http_session()
        session.close = Mock()

        close_http_session()

        session.close.assert_called_once_with()
        assert get_http_session() is not session

    def test_close_without_session_is_a_no_op(self):
        close_http_session()
        close_http_session()

    def test_credential_provider_uses_shared_session(self, session_factory):
        provider = OfflineSessionCredentialProvider(session_factory, api_key="key", api_secret="secret")

        assert provider._http is get_http_session()
