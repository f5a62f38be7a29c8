"""
Integration fixtures: a FastAPI app with every router mounted, backed by
the in-memory database and the scripted gateway.
"""

from typing import List, Tuple

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import admin_router, submissions_router, webhook_router
from app.api.dependencies import (
    get_config,
    get_credential_provider,
    get_gateway_factory,
    get_session_factory,
)
from app.api.errors import register_exception_handlers
from app.auth.security import compute_proxy_signature

from tests.fixtures.fakes import (
    CUSTOMER_PLATFORM_ID,
    SHOP_DOMAIN,
    FakeGateway,
    FakeGatewayFactory,
)

EXTENSION_ORIGIN = "https://extensions.shopifycdn.com"


def create_test_app() -> FastAPI:
    app = FastAPI(title="Wishlist Relay Test")
    register_exception_handlers(app)
    app.include_router(submissions_router, prefix="/api/wishlists")
    app.include_router(admin_router, prefix="/api/admin")
    app.include_router(webhook_router, prefix="/webhooks")
    app.state.extension_origin = EXTENSION_ORIGIN
    return app


def proxy_params(
    secret: str,
    shop_domain: str = SHOP_DOMAIN,
    customer_id: str = CUSTOMER_PLATFORM_ID,
) -> List[Tuple[str, str]]:
    """Query parameters as the app proxy would sign them."""
    params = [
        ("shop", shop_domain),
        ("logged_in_customer_id", customer_id),
        ("path_prefix", "/apps/wishlist"),
        ("timestamp", "1750000000"),
    ]
    return params + [("signature", compute_proxy_signature(params, secret))]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def test_app(session_factory, config, credentials, gateway) -> FastAPI:
    app = create_test_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_credential_provider] = lambda: credentials
    app.dependency_overrides[get_gateway_factory] = lambda: FakeGatewayFactory(gateway)
    return app


@pytest.fixture
def client(test_app) -> TestClient:
    return TestClient(test_app, raise_server_exceptions=False)


@pytest.fixture
def signed(config) -> List[Tuple[str, str]]:
    return proxy_params(config.api_secret)


@pytest.fixture
def staff_headers(shop, config):
    return {
        "Authorization": f"Bearer {config.staff_api_token}",
        "X-Shop-Domain": shop.domain,
    }
