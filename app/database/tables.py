"""
============================================================================
Project Wishlist Relay v1.0.0
Database Tables - SQLAlchemy Core Schema
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: Any SQLAlchemy-supported relational engine
Side Effects: create_schema() issues DDL

TABLES:
    shops                  - Tenant root (domain unique, fallback currency)
    customers              - Platform customers, unique per shop
    offline_sessions       - Shop-scoped credentials written by the install flow
    wishlists              - Customer-owned lists (soft-delete via is_archived)
    wishlist_items         - One row per (wishlist, variant)
    market_currency_rules  - (shop, country) → settlement currency
    wishlist_submissions   - Submission ledger
    submission_claims      - In-flight marker, unique per (shop, wishlist, customer)

All timestamps are stored as UTC. SQLite returns naive datetimes; readers
normalize through as_utc().

============================================================================
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine


metadata = MetaData()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from engines without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# =============================================================================
# Tenancy
# =============================================================================

shops = Table(
    "shops",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("domain", String(255), nullable=False, unique=True),
    Column("default_currency", String(3), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

customers = Table(
    "customers",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("shop_id", String(32), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False),
    Column("platform_customer_id", String(64), nullable=False),
    Column("email", String(320), nullable=True),
    Column("first_name", String(255), nullable=True),
    Column("last_name", String(255), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    UniqueConstraint("shop_id", "platform_customer_id", name="uq_customers_shop_platform"),
)

offline_sessions = Table(
    "offline_sessions",
    metadata,
    Column("id", String(255), primary_key=True),
    Column("shop", String(255), nullable=False, index=True),
    Column("is_online", Boolean, nullable=False, default=False),
    Column("access_token", Text, nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=True),
    Column("refresh_token", Text, nullable=True),
    Column("refresh_token_expires_at", DateTime(timezone=True), nullable=True),
    Column("scope", Text, nullable=True),
)


# =============================================================================
# Wishlists
# =============================================================================

wishlists = Table(
    "wishlists",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("shop_id", String(32), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False),
    Column(
        "customer_id", String(32), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    ),
    Column("name", String(80), nullable=False),
    Column("is_archived", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Index("ix_wishlists_owner", "shop_id", "customer_id"),
)

wishlist_items = Table(
    "wishlist_items",
    metadata,
    Column("id", String(32), primary_key=True),
    Column(
        "wishlist_id", String(32), ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False
    ),
    Column("product_id", String(128), nullable=False),
    Column("variant_id", String(128), nullable=False),
    Column("quantity", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    UniqueConstraint("wishlist_id", "variant_id", name="uq_wishlist_items_variant"),
)


# =============================================================================
# Money Rules
# =============================================================================

market_currency_rules = Table(
    "market_currency_rules",
    metadata,
    Column("shop_id", String(32), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False),
    Column("country_code", String(2), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    PrimaryKeyConstraint("shop_id", "country_code", name="pk_market_currency_rules"),
)


# =============================================================================
# Submission Ledger
# =============================================================================

wishlist_submissions = Table(
    "wishlist_submissions",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("shop_id", String(32), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False),
    Column("wishlist_id", String(32), nullable=False),
    Column("customer_id", String(32), nullable=False),
    Column("status", String(32), nullable=False),
    Column("remote_order_id", String(128), nullable=True),
    Column("remote_order_name", String(64), nullable=True),
    Column("note", Text, nullable=True),
    Column("country_code", String(2), nullable=True),
    Column("requested_currency", String(3), nullable=True),
    Column("currency_used", String(3), nullable=True),
    Column("recovered_by_tag", Boolean, nullable=False, default=False),
    Column("error_summary", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Index("ix_submissions_lookup", "shop_id", "wishlist_id", "customer_id", "created_at"),
)

submission_claims = Table(
    "submission_claims",
    metadata,
    Column("shop_id", String(32), nullable=False),
    Column("wishlist_id", String(32), nullable=False),
    Column("customer_id", String(32), nullable=False),
    Column("submission_id", String(32), nullable=False),
    Column("claimed_at", DateTime(timezone=True), nullable=False, default=utcnow),
    PrimaryKeyConstraint("shop_id", "wishlist_id", "customer_id", name="pk_submission_claims"),
)


def create_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    metadata.create_all(engine)


__all__ = [
    "metadata",
    "shops",
    "customers",
    "offline_sessions",
    "wishlists",
    "wishlist_items",
    "market_currency_rules",
    "wishlist_submissions",
    "submission_claims",
    "create_schema",
    "utcnow",
    "as_utc",
]
