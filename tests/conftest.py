"""
============================================================================
Project Wishlist Relay v1.0.0
Shared Test Fixtures
============================================================================

In-memory SQLite database (one shared connection via StaticPool), store
fixtures and a seeded shop, customer and wishlist.

============================================================================
"""

import os
import sys

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.commerce.credentials import ShopCredential
from app.database.tables import create_schema
from services.money_rules import MoneyRulesStore
from services.submission_config import SubmissionConfig
from services.submission_ledger import SubmissionLedger
from services.tenant_store import TenantStore
from services.wishlist_store import WishlistStore

from tests.fixtures.fakes import (
    CUSTOMER_PLATFORM_ID,
    SHOP_DOMAIN,
    FakeCredentialProvider,
)


# ============================================================================
# Database
# ============================================================================

def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine, "connect", _enable_foreign_keys)
    create_schema(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False)


# ============================================================================
# Stores
# ============================================================================

@pytest.fixture
def tenants(session_factory) -> TenantStore:
    return TenantStore(session_factory)


@pytest.fixture
def wishlists(session_factory) -> WishlistStore:
    return WishlistStore(session_factory)


@pytest.fixture
def money_rules(session_factory) -> MoneyRulesStore:
    return MoneyRulesStore(session_factory)


@pytest.fixture
def ledger(session_factory) -> SubmissionLedger:
    return SubmissionLedger(session_factory, claim_ttl_seconds=120)


@pytest.fixture
def config() -> SubmissionConfig:
    return SubmissionConfig(
        api_key="test-key",
        api_secret="test-secret",
        staff_api_token="staff-token",
    )


# ============================================================================
# Tenants & Wishlists
# ============================================================================

@pytest.fixture
def shop(tenants):
    return tenants.upsert_shop(SHOP_DOMAIN)


@pytest.fixture
def customer(tenants, shop):
    return tenants.upsert_customer(shop, CUSTOMER_PLATFORM_ID)


@pytest.fixture
def wishlist(wishlists, shop, customer):
    """Wishlist with V1 x2 and V2 x1."""
    created = wishlists.create_wishlist(shop, customer, "Birthday")
    wishlists.add_item(shop, customer, created.id, "P1", "V1", 2)
    wishlists.add_item(shop, customer, created.id, "P2", "V2", 1)
    return wishlists.get_owned(shop, customer, created.id)


@pytest.fixture
def empty_wishlist(wishlists, shop, customer):
    return wishlists.create_wishlist(shop, customer, "Empty")


# ============================================================================
# Credentials
# ============================================================================

@pytest.fixture
def credential() -> ShopCredential:
    return ShopCredential(SHOP_DOMAIN, "shpat_test")


@pytest.fixture
def credentials(credential) -> FakeCredentialProvider:
    return FakeCredentialProvider(credential)
