# ============================================================================
# Project Wishlist Relay v1.0.0
# Commerce Integration Module - Admin API Connectivity
# ============================================================================
#
# Reliability Level: CORE TIER (Order-Critical)
# Purpose: Commerce platform integration for pending-order creation
#
# Components:
#   - ExponentialBackoff: Delay calculation for throttled requests
#   - OfflineSessionCredentialProvider: Offline token selection and refresh
#   - CommerceGateway: Admin GraphQL client with normalized errors
#   - get_http_session: Process-wide pooled HTTP session
#
# ============================================================================

from app.commerce.backoff import ExponentialBackoff
from app.commerce.credentials import (
    CredentialProvider,
    CredentialRefreshError,
    OfflineSessionCredentialProvider,
    ShopCredential,
)
from app.commerce.gateway import (
    AddressLookupResult,
    CommerceGateway,
    DraftOrderResult,
    GatewayErrors,
    MailingAddress,
    TagLookupResult,
)
from app.commerce.http import close_http_session, get_http_session

__all__ = [
    "ExponentialBackoff",
    "CredentialProvider",
    "CredentialRefreshError",
    "OfflineSessionCredentialProvider",
    "ShopCredential",
    "AddressLookupResult",
    "CommerceGateway",
    "DraftOrderResult",
    "GatewayErrors",
    "MailingAddress",
    "TagLookupResult",
    "get_http_session",
    "close_http_session",
]
