"""
============================================================================
Project Wishlist Relay v1.0.0
Identity Resolvers - Verified Shop & Customer
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: Inbound FastAPI Request
Side Effects: Upserts shop/customer rows after successful verification

Customer requests authenticate with a bearer session token from a
customer account extension, or arrive signed through the app proxy.

Resolvers fail closed: anything short of a verified identity raises
AuthError (SEC-001). Downstream code never sees an unverified tenant.

============================================================================
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple
from urllib.parse import urlsplit
import hmac
import logging
import re

from fastapi import Request
import jwt

from app.auth.security import HMACVerificationError, verify_proxy_signature
from services.submission_models import AuthError, CustomerRef, ShopRef
from services.tenant_store import TenantStore

# Configure module logger
logger = logging.getLogger(__name__)

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")
CUSTOMER_GID_PREFIX = "gid://shopify/Customer/"
SESSION_TOKEN_ALGORITHM = "HS256"
# Tolerated clock skew between the platform and this host
SESSION_TOKEN_LEEWAY_SECONDS = 5


def normalize_shop_domain(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    domain = value.strip().lower()
    domain = re.sub(r"^https?://", "", domain).rstrip("/")
    return domain if SHOP_DOMAIN_PATTERN.match(domain) else None


def shop_from_dest(dest: Any) -> Optional[str]:
    """Host part of a session token dest claim (https://shop.myshopify.com)."""
    if not dest:
        return None
    text = str(dest).strip()
    host = urlsplit(text).netloc
    return host or re.sub(r"^https?://", "", text).rstrip("/")


@dataclass(frozen=True)
class CustomerIdentity:
    shop: ShopRef
    customer: CustomerRef


@dataclass(frozen=True)
class StaffIdentity:
    shop: ShopRef


class IdentityResolver(Protocol):
    """Inbound request → verified (shop, customer), or AuthError."""

    def resolve(self, request: Request) -> CustomerIdentity:
        ...


class AppProxyIdentityResolver:
    """
    Storefront requests forwarded through the platform app proxy.

    The proxy signs every query parameter; shop and logged_in_customer_id
    are trusted only after the signature verifies.
    """

    def __init__(self, tenants: TenantStore, api_secret: Optional[str]) -> None:
        self._tenants = tenants
        self._api_secret = api_secret

    def resolve(self, request: Request) -> CustomerIdentity:
        params: list = list(request.query_params.multi_items())
        try:
            verify_proxy_signature(params, self._api_secret)
        except HMACVerificationError as e:
            logger.warning(f"[{e.error_code}] Proxy verification failed | path={request.url.path}")
            raise AuthError("invalid proxy signature") from e

        query = dict(params)
        shop_domain = normalize_shop_domain(query.get("shop"))
        if shop_domain is None:
            raise AuthError("missing shop")

        customer_id = (query.get("logged_in_customer_id") or "").strip()
        customer_id = customer_id.replace(CUSTOMER_GID_PREFIX, "")
        if not customer_id.isdigit():
            raise AuthError("not authenticated as customer")

        shop = self._tenants.upsert_shop(shop_domain)
        customer = self._tenants.upsert_customer(shop, customer_id)
        return CustomerIdentity(shop=shop, customer=customer)


class SessionTokenIdentityResolver:
    """
    Customer account extensions calling with Authorization: Bearer <session token>.

    The token is an HS256 JWT signed with the app secret and addressed to
    the app key. dest carries the shop URL and sub the customer GID; both
    are trusted only after signature, audience, exp and nbf verify.
    """

    def __init__(
        self,
        tenants: TenantStore,
        api_key: Optional[str],
        api_secret: Optional[str],
        leeway_seconds: int = SESSION_TOKEN_LEEWAY_SECONDS,
    ) -> None:
        self._tenants = tenants
        self._api_key = api_key
        self._api_secret = api_secret
        self._leeway = leeway_seconds

    def resolve(self, request: Request) -> CustomerIdentity:
        if not self._api_key or not self._api_secret:
            logger.error("[SEC-011] Session tokens cannot be verified: app credentials not configured")
            raise AuthError("session token verification not configured")

        scheme, token = _split_bearer(request.headers.get("Authorization"))
        if scheme != "bearer" or not token:
            raise AuthError("missing session token")

        try:
            claims = jwt.decode(
                token,
                self._api_secret,
                algorithms=[SESSION_TOKEN_ALGORITHM],
                audience=self._api_key,
                leeway=self._leeway,
                options={"require": ["exp"]},
            )
        except jwt.InvalidTokenError as e:
            logger.warning(
                f"[SEC-012] Session token rejected | path={request.url.path} | "
                f"reason={type(e).__name__}"
            )
            raise AuthError("invalid session token") from e

        shop_domain = normalize_shop_domain(shop_from_dest(claims.get("dest")))
        if shop_domain is None:
            raise AuthError("missing shop in token")

        subject = claims.get("sub")
        if not isinstance(subject, str):
            raise AuthError("not authenticated as customer")
        customer_id = subject.strip().replace(CUSTOMER_GID_PREFIX, "")
        if not customer_id.isdigit():
            raise AuthError("not authenticated as customer")

        shop = self._tenants.upsert_shop(shop_domain)
        customer = self._tenants.upsert_customer(shop, customer_id)
        return CustomerIdentity(shop=shop, customer=customer)


class StaffIdentityResolver:
    """
    Staff surface: Authorization: Bearer <STAFF_API_TOKEN> plus X-Shop-Domain.

    The staff identity acts as the shop; the shop must already be known.
    """

    def __init__(self, tenants: TenantStore, staff_token: Optional[str]) -> None:
        self._tenants = tenants
        self._staff_token = staff_token

    def resolve(self, request: Request) -> StaffIdentity:
        if not self._staff_token:
            logger.error("[SEC-001] Staff surface disabled: STAFF_API_TOKEN not configured")
            raise AuthError("staff surface not configured")

        scheme, token = _split_bearer(request.headers.get("Authorization"))
        if scheme != "bearer" or not hmac.compare_digest(
            token.encode("utf-8"), self._staff_token.encode("utf-8")
        ):
            raise AuthError("invalid staff token")

        shop_domain = normalize_shop_domain(request.headers.get("X-Shop-Domain"))
        if shop_domain is None:
            raise AuthError("missing X-Shop-Domain")

        shop = self._tenants.find_shop(shop_domain)
        if shop is None:
            raise AuthError("unknown shop")
        return StaffIdentity(shop=shop)


def _split_bearer(header: Optional[str]) -> Tuple[str, str]:
    if not header:
        return "", ""
    parts = header.strip().split(" ", 1)
    if len(parts) != 2:
        return "", ""
    return parts[0].lower(), parts[1].strip()


__all__ = [
    "CustomerIdentity",
    "StaffIdentity",
    "IdentityResolver",
    "AppProxyIdentityResolver",
    "SessionTokenIdentityResolver",
    "StaffIdentityResolver",
    "normalize_shop_domain",
    "shop_from_dest",
]
