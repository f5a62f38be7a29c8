"""
============================================================================
Project Wishlist Relay v1.0.0
Webhook API - Platform Lifecycle Events
============================================================================

Reliability Level: STANDARD
Input Constraints:
    - Base64 HMAC-SHA256 of the raw body in X-Shopify-Hmac-Sha256
    - Shop domain in X-Shopify-Shop-Domain
Side Effects:
    - app/uninstalled purges every shop-owned row

FLOW:
1. Receive raw bytes
2. Verify HMAC signature (byte-perfect, before parsing)
3. Resolve shop by domain (unknown shop → acknowledged no-op)
4. Purge submissions/claims, rules, wishlists/items, customers,
   sessions and the shop row

Delivery is at-least-once; a repeated uninstall finds no shop and is a
no-op.

============================================================================
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, Header, Request

from app.api.dependencies import (
    get_config,
    get_ledger,
    get_money_rules,
    get_tenant_store,
    get_wishlist_store,
)
from app.auth.identity import normalize_shop_domain
from app.auth.security import verify_webhook_signature
from services.money_rules import MoneyRulesStore
from services.submission_config import SubmissionConfig
from services.submission_ledger import SubmissionLedger
from services.submission_models import ShopRef
from services.tenant_store import TenantStore
from services.wishlist_store import WishlistStore

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter()


def purge_shop_data(
    shop: ShopRef,
    ledger: SubmissionLedger,
    money_rules: MoneyRulesStore,
    wishlists: WishlistStore,
    tenants: TenantStore,
) -> None:
    """Delete every row owned by the shop, children before the tenant root."""
    submissions = ledger.purge_shop(shop)
    rules = money_rules.purge_shop(shop)
    lists = wishlists.purge_shop(shop)
    tenants.purge_shop(shop)
    logger.info(
        f"[WEBHOOK] Shop data purged | shop={shop.domain} | "
        f"submissions={submissions} | rules={rules} | wishlists={lists}"
    )


@router.post(
    "/app-uninstalled",
    summary="App Uninstalled",
    description="Purges all shop-owned data after the app is uninstalled.",
)
async def app_uninstalled(
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    x_shopify_shop_domain: Optional[str] = Header(None),
    config: SubmissionConfig = Depends(get_config),
    tenants: TenantStore = Depends(get_tenant_store),
    ledger: SubmissionLedger = Depends(get_ledger),
    money_rules: MoneyRulesStore = Depends(get_money_rules),
    wishlists: WishlistStore = Depends(get_wishlist_store),
) -> dict:
    raw_body = await request.body()

    # Raises HMACVerificationError → 401 via the app exception handler
    verify_webhook_signature(raw_body, x_shopify_hmac_sha256, config.api_secret)

    domain = normalize_shop_domain(x_shopify_shop_domain)
    shop = tenants.find_shop(domain) if domain else None
    if shop is None:
        logger.info(f"[WEBHOOK] Uninstall for unknown shop | shop={x_shopify_shop_domain}")
        return {"ok": True, "purged": False}

    purge_shop_data(shop, ledger, money_rules, wishlists, tenants)
    return {"ok": True, "purged": True}
