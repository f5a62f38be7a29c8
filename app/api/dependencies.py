"""
============================================================================
Project Wishlist Relay v1.0.0
API Dependencies - Stores, Orchestrator & Identity Injection
============================================================================

Reliability Level: STANDARD
Side Effects: None at import; stores are built per request

Every collaborator is provided through a FastAPI dependency so tests can
swap the session factory, credential provider, gateway factory or
identity with app.dependency_overrides.

============================================================================
"""

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from app.auth.identity import (
    AppProxyIdentityResolver,
    CustomerIdentity,
    IdentityResolver,
    SessionTokenIdentityResolver,
    StaffIdentity,
    StaffIdentityResolver,
)
from app.commerce.credentials import CredentialProvider, OfflineSessionCredentialProvider
from app.commerce.http import get_http_session
from app.database.session import SessionLocal
from services.money_rules import MoneyRulesStore
from services.submission_config import SubmissionConfig, get_submission_config
from services.submission_ledger import SubmissionLedger
from services.submission_orchestrator import (
    GatewayFactory,
    SubmissionOrchestrator,
    commerce_gateway_factory,
)
from services.tenant_store import TenantStore
from services.wishlist_store import WishlistStore


# ============================================================================
# Infrastructure
# ============================================================================

def get_config() -> SubmissionConfig:
    return get_submission_config()


def get_session_factory() -> sessionmaker:
    return SessionLocal


# ============================================================================
# Stores
# ============================================================================

def get_tenant_store(session_factory: sessionmaker = Depends(get_session_factory)) -> TenantStore:
    return TenantStore(session_factory)


def get_wishlist_store(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> WishlistStore:
    return WishlistStore(session_factory)


def get_money_rules(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> MoneyRulesStore:
    return MoneyRulesStore(session_factory)


def get_ledger(
    session_factory: sessionmaker = Depends(get_session_factory),
    config: SubmissionConfig = Depends(get_config),
) -> SubmissionLedger:
    return SubmissionLedger(session_factory, claim_ttl_seconds=config.claim_ttl_seconds)


# ============================================================================
# Remote Collaborators
# ============================================================================

def get_credential_provider(
    session_factory: sessionmaker = Depends(get_session_factory),
    config: SubmissionConfig = Depends(get_config),
) -> CredentialProvider:
    return OfflineSessionCredentialProvider(
        session_factory,
        api_key=config.api_key,
        api_secret=config.api_secret,
        refresh_skew_seconds=config.refresh_skew_seconds,
        timeout=config.request_timeout_seconds,
        http=get_http_session(),
    )


def get_gateway_factory(config: SubmissionConfig = Depends(get_config)) -> GatewayFactory:
    return commerce_gateway_factory(config)


def get_orchestrator(
    wishlists: WishlistStore = Depends(get_wishlist_store),
    ledger: SubmissionLedger = Depends(get_ledger),
    money_rules: MoneyRulesStore = Depends(get_money_rules),
    credentials: CredentialProvider = Depends(get_credential_provider),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    config: SubmissionConfig = Depends(get_config),
) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        wishlists=wishlists,
        ledger=ledger,
        money_rules=money_rules,
        credentials=credentials,
        gateway_factory=gateway_factory,
        config=config,
    )


# ============================================================================
# Identity
# ============================================================================

def get_customer_identity(
    request: Request,
    tenants: TenantStore = Depends(get_tenant_store),
    config: SubmissionConfig = Depends(get_config),
) -> CustomerIdentity:
    """
    Bearer session token when an Authorization header is sent, otherwise
    the app proxy signature. Raises AuthError (401) when it does not verify.
    """
    if request.headers.get("Authorization"):
        resolver: IdentityResolver = SessionTokenIdentityResolver(
            tenants, config.api_key, config.api_secret
        )
    else:
        resolver = AppProxyIdentityResolver(tenants, config.api_secret)
    return resolver.resolve(request)


def get_staff_identity(
    request: Request,
    tenants: TenantStore = Depends(get_tenant_store),
    config: SubmissionConfig = Depends(get_config),
) -> StaffIdentity:
    return StaffIdentityResolver(tenants, config.staff_api_token).resolve(request)
