"""
============================================================================
Project Wishlist Relay v1.0.0
Wishlist Store - Owned Wishlist Reads & Data-Model Invariants
============================================================================

Reliability Level: STANDARD
Input Constraints: Verified ShopRef/CustomerRef
Side Effects: Database writes to wishlists and wishlist_items

INVARIANTS:
    - Every read and write filters by both shop and customer
    - Archived wishlists are invisible to callers
    - Name is 1..80 characters and unique per customer among active lists
    - One item per (wishlist, variant); a repeat add increments quantity
    - Quantity stays within 1..999

============================================================================
"""

from typing import Optional
import logging
import uuid

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import sessionmaker

from app.database.tables import as_utc, customers, utcnow, wishlist_items, wishlists
from services.submission_models import (
    ConflictError,
    CustomerRef,
    MAX_ITEM_QUANTITY,
    MAX_WISHLIST_NAME_LENGTH,
    MIN_ITEM_QUANTITY,
    NotFoundError,
    ShopRef,
    ValidationError,
    Wishlist,
    WishlistItem,
)

# Configure module logger
logger = logging.getLogger(__name__)


class WishlistStore:
    """Wishlist persistence scoped by (shop, customer)."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get_owned(self, shop: ShopRef, customer: CustomerRef, wishlist_id: str) -> Wishlist:
        """
        Load an active wishlist owned by (shop, customer) with items newest first.

        Raises:
            NotFoundError: If missing, archived, or owned by someone else
        """
        with self._session_factory() as session:
            row = self._owned_row(session, shop, customer, wishlist_id)
            if row is None:
                raise NotFoundError("wishlist not found", {"wishlistId": wishlist_id})

            item_rows = session.execute(
                select(wishlist_items)
                .where(wishlist_items.c.wishlist_id == wishlist_id)
                .order_by(wishlist_items.c.created_at.desc(), wishlist_items.c.id.desc())
            ).all()

        return Wishlist(
            id=row.id,
            shop_id=row.shop_id,
            customer_id=row.customer_id,
            name=row.name,
            is_archived=bool(row.is_archived),
            created_at=as_utc(row.created_at),
            items=[
                WishlistItem(
                    id=item.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    created_at=as_utc(item.created_at),
                )
                for item in item_rows
            ],
        )

    def create_wishlist(self, shop: ShopRef, customer: CustomerRef, name: str) -> Wishlist:
        """
        Raises:
            ValidationError: Empty name or longer than 80 characters
            ConflictError: Another active wishlist of this customer has the name
        """
        clean = (name or "").strip()
        if not clean or len(clean) > MAX_WISHLIST_NAME_LENGTH:
            raise ValidationError(
                f"name must be 1..{MAX_WISHLIST_NAME_LENGTH} characters",
                {"name": clean[:MAX_WISHLIST_NAME_LENGTH]},
            )

        wishlist_id = uuid.uuid4().hex
        now = utcnow()
        with self._session_factory.begin() as session:
            taken = session.execute(
                select(func.count())
                .select_from(wishlists)
                .where(wishlists.c.shop_id == shop.id)
                .where(wishlists.c.customer_id == customer.id)
                .where(wishlists.c.is_archived.is_(False))
                .where(wishlists.c.name == clean)
            ).scalar_one()
            if taken:
                raise ConflictError("wishlist name already in use", {"name": clean})

            session.execute(
                insert(wishlists).values(
                    id=wishlist_id,
                    shop_id=shop.id,
                    customer_id=customer.id,
                    name=clean,
                    is_archived=False,
                    created_at=now,
                    updated_at=now,
                )
            )

        logger.info(
            f"[WISHLIST] Created | shop_id={shop.id} | wishlist_id={wishlist_id}"
        )
        return Wishlist(
            id=wishlist_id,
            shop_id=shop.id,
            customer_id=customer.id,
            name=clean,
            is_archived=False,
            created_at=now,
        )

    def add_item(
        self,
        shop: ShopRef,
        customer: CustomerRef,
        wishlist_id: str,
        product_id: str,
        variant_id: str,
        quantity: int = 1,
    ) -> WishlistItem:
        """
        Add a variant, or merge into the existing row by incrementing quantity.

        Raises:
            NotFoundError: Wishlist not owned or archived
            ValidationError: Quantity out of range, before or after merging
        """
        if not product_id or not variant_id:
            raise ValidationError("productId and variantId are required")
        if not isinstance(quantity, int) or not (
            MIN_ITEM_QUANTITY <= quantity <= MAX_ITEM_QUANTITY
        ):
            raise ValidationError(
                f"quantity must be {MIN_ITEM_QUANTITY}..{MAX_ITEM_QUANTITY}",
                {"quantity": quantity},
            )

        now = utcnow()
        with self._session_factory.begin() as session:
            if self._owned_row(session, shop, customer, wishlist_id) is None:
                raise NotFoundError("wishlist not found", {"wishlistId": wishlist_id})

            existing = session.execute(
                select(wishlist_items)
                .where(wishlist_items.c.wishlist_id == wishlist_id)
                .where(wishlist_items.c.variant_id == variant_id)
            ).first()

            if existing is not None:
                merged = existing.quantity + quantity
                if merged > MAX_ITEM_QUANTITY:
                    raise ValidationError(
                        f"quantity must be {MIN_ITEM_QUANTITY}..{MAX_ITEM_QUANTITY}",
                        {"quantity": merged},
                    )
                session.execute(
                    update(wishlist_items)
                    .where(wishlist_items.c.id == existing.id)
                    .values(quantity=merged)
                )
                item = WishlistItem(
                    id=existing.id,
                    product_id=existing.product_id,
                    variant_id=existing.variant_id,
                    quantity=merged,
                    created_at=as_utc(existing.created_at),
                )
            else:
                item = WishlistItem(
                    id=uuid.uuid4().hex,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    created_at=now,
                )
                session.execute(
                    insert(wishlist_items).values(
                        id=item.id,
                        wishlist_id=wishlist_id,
                        product_id=product_id,
                        variant_id=variant_id,
                        quantity=quantity,
                        created_at=now,
                    )
                )

            session.execute(
                update(wishlists).where(wishlists.c.id == wishlist_id).values(updated_at=now)
            )

        return item

    def archive(self, shop: ShopRef, customer: CustomerRef, wishlist_id: str) -> None:
        """Soft-delete. Raises NotFoundError if not owned or already archived."""
        with self._session_factory.begin() as session:
            result = session.execute(
                update(wishlists)
                .where(wishlists.c.id == wishlist_id)
                .where(wishlists.c.shop_id == shop.id)
                .where(wishlists.c.customer_id == customer.id)
                .where(wishlists.c.is_archived.is_(False))
                .values(is_archived=True, updated_at=utcnow())
            )
        if result.rowcount == 0:
            raise NotFoundError("wishlist not found", {"wishlistId": wishlist_id})

    def owner_of(self, shop: ShopRef, wishlist_id: str) -> Optional[CustomerRef]:
        """
        Resolve the owning customer of an active wishlist inside a shop.

        Used by the staff surface, which acts on behalf of the owner.
        """
        with self._session_factory() as session:
            row = session.execute(
                select(customers.c.id, customers.c.platform_customer_id)
                .select_from(wishlists.join(customers, wishlists.c.customer_id == customers.c.id))
                .where(wishlists.c.id == wishlist_id)
                .where(wishlists.c.shop_id == shop.id)
                .where(wishlists.c.is_archived.is_(False))
            ).first()
        if row is None:
            return None
        return CustomerRef(id=row.id, shop_id=shop.id, platform_id=row.platform_customer_id)

    def purge_shop(self, shop: ShopRef) -> int:
        """Delete every wishlist and item of the shop. Returns wishlists removed."""
        with self._session_factory.begin() as session:
            owned = select(wishlists.c.id).where(wishlists.c.shop_id == shop.id)
            session.execute(
                delete(wishlist_items).where(wishlist_items.c.wishlist_id.in_(owned))
            )
            result = session.execute(delete(wishlists).where(wishlists.c.shop_id == shop.id))
        return result.rowcount

    @staticmethod
    def _owned_row(session, shop: ShopRef, customer: CustomerRef, wishlist_id: str):
        return session.execute(
            select(wishlists)
            .where(wishlists.c.id == wishlist_id)
            .where(wishlists.c.shop_id == shop.id)
            .where(wishlists.c.customer_id == customer.id)
            .where(wishlists.c.is_archived.is_(False))
        ).first()


__all__ = ["WishlistStore"]
