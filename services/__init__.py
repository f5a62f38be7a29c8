"""
============================================================================
Project Wishlist Relay v1.0.0 - Services Layer
============================================================================

Wishlist-to-draft-order submission services: tenant and wishlist reads,
market currency rules, the submission ledger and the orchestrator.

Reliability Level: CORE TIER
============================================================================
"""

from services.submission_models import (
    SubmissionStatus,
    SubmissionError,
    SubmissionErrorCode,
    ValidationError,
    NotFoundError,
    EmptyStateError,
    ConflictError,
    InvalidTransitionError,
    AuthError,
    ReauthorizationRequiredError,
    MissingCredentialError,
    RemoteMutationError,
    AmbiguousResultError,
    ShopRef,
    CustomerRef,
    Wishlist,
    WishlistItem,
    Submission,
    SubmissionResult,
    CurrencyContext,
    normalize_country_code,
    normalize_currency_code,
)

from services.submission_config import (
    SubmissionConfig,
    SubmissionConfigurationError,
    get_submission_config,
    reset_submission_config,
)

from services.tenant_store import TenantStore
from services.wishlist_store import WishlistStore
from services.money_rules import MoneyRulesStore, MarketCurrencyRule
from services.submission_ledger import SubmissionLedger, new_submission_id

from services.submission_orchestrator import (
    SubmissionOrchestrator,
    build_marker_tag,
    build_note,
    is_currency_error,
    commerce_gateway_factory,
)

__all__ = [
    # Models & Errors
    "SubmissionStatus",
    "SubmissionError",
    "SubmissionErrorCode",
    "ValidationError",
    "NotFoundError",
    "EmptyStateError",
    "ConflictError",
    "InvalidTransitionError",
    "AuthError",
    "ReauthorizationRequiredError",
    "MissingCredentialError",
    "RemoteMutationError",
    "AmbiguousResultError",
    "ShopRef",
    "CustomerRef",
    "Wishlist",
    "WishlistItem",
    "Submission",
    "SubmissionResult",
    "CurrencyContext",
    "normalize_country_code",
    "normalize_currency_code",
    # Configuration
    "SubmissionConfig",
    "SubmissionConfigurationError",
    "get_submission_config",
    "reset_submission_config",
    # Stores
    "TenantStore",
    "WishlistStore",
    "MoneyRulesStore",
    "MarketCurrencyRule",
    "SubmissionLedger",
    "new_submission_id",
    # Orchestrator
    "SubmissionOrchestrator",
    "build_marker_tag",
    "build_note",
    "is_currency_error",
    "commerce_gateway_factory",
]
