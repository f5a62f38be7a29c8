"""
============================================================================
Project Wishlist Relay v1.0.0
Tenant Store - Shops, Customers & Offline Session Rows
============================================================================

Reliability Level: STANDARD
Side Effects: Database writes to shops, customers and offline_sessions

Identity adapters upsert shop/customer rows here after verifying a request.
The uninstall webhook removes the tenant root last.

============================================================================
"""

from typing import Optional
import logging
import uuid

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.database.tables import customers, offline_sessions, shops, utcnow
from services.submission_models import CustomerRef, ShopRef

# Configure module logger
logger = logging.getLogger(__name__)


class TenantStore:

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_shop(self, domain: str) -> Optional[ShopRef]:
        with self._session_factory() as session:
            row = session.execute(
                select(shops.c.id, shops.c.domain).where(shops.c.domain == domain)
            ).first()
        return ShopRef(id=row.id, domain=row.domain) if row is not None else None

    def upsert_shop(self, domain: str) -> ShopRef:
        existing = self.find_shop(domain)
        if existing is not None:
            return existing
        shop_id = uuid.uuid4().hex
        try:
            with self._session_factory.begin() as session:
                session.execute(
                    insert(shops).values(id=shop_id, domain=domain, created_at=utcnow())
                )
        except IntegrityError:
            # Concurrent first request for the same shop
            found = self.find_shop(domain)
            if found is None:
                raise
            return found
        logger.info(f"[TENANT] Shop registered | shop={domain} | shop_id={shop_id}")
        return ShopRef(id=shop_id, domain=domain)

    def upsert_customer(
        self,
        shop: ShopRef,
        platform_customer_id: str,
        email: Optional[str] = None,
    ) -> CustomerRef:
        query = (
            select(customers.c.id)
            .where(customers.c.shop_id == shop.id)
            .where(customers.c.platform_customer_id == platform_customer_id)
        )
        with self._session_factory() as session:
            existing = session.execute(query).scalar_one_or_none()
        if existing is not None:
            return CustomerRef(id=existing, shop_id=shop.id, platform_id=platform_customer_id)

        customer_id = uuid.uuid4().hex
        try:
            with self._session_factory.begin() as session:
                session.execute(
                    insert(customers).values(
                        id=customer_id,
                        shop_id=shop.id,
                        platform_customer_id=platform_customer_id,
                        email=email,
                        created_at=utcnow(),
                    )
                )
        except IntegrityError:
            with self._session_factory() as session:
                customer_id = session.execute(query).scalar_one()
        return CustomerRef(id=customer_id, shop_id=shop.id, platform_id=platform_customer_id)

    def purge_shop(self, shop: ShopRef) -> None:
        """Delete customers, offline sessions and the shop row itself."""
        with self._session_factory.begin() as session:
            session.execute(delete(customers).where(customers.c.shop_id == shop.id))
            session.execute(delete(offline_sessions).where(offline_sessions.c.shop == shop.domain))
            session.execute(delete(shops).where(shops.c.id == shop.id))
        logger.info(f"[TENANT] Shop removed | shop={shop.domain} | shop_id={shop.id}")


__all__ = ["TenantStore"]
