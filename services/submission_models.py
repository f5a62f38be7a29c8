"""
============================================================================
Project Wishlist Relay v1.0.0
Submission Pipeline - Data Models & Error Taxonomy
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Side Effects: None (data containers and pure helpers)

SUBMISSION STATE MACHINE:
    QUEUED → CREATED                (remote id returned, no warnings)
    QUEUED → CREATED_WITH_WARNINGS  (remote id returned alongside warnings)
    QUEUED → FAILED                 (remote rejection, auth failure, crash)

    Terminal States: CREATED, CREATED_WITH_WARNINGS, FAILED

ERROR CODES:
    - SUB-VAL-001: Invalid input shape or range (400)
    - SUB-NF-001: Wishlist missing or not owned (404)
    - SUB-EMPTY-001: Wishlist has no items (400)
    - SEC-001: Identity could not be verified (401)
    - SEC-002: Remote credential invalid, reauthorization needed (401)
    - SEC-003: No stored credential for shop (500)
    - GW-MUT-001: Remote platform rejected the mutation (400)
    - GW-MUT-002: No identifier and nothing tag-recoverable (400)

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import string


# =============================================================================
# Constants
# =============================================================================

# Legacy aliases accepted on input and canonicalized before lookup
COUNTRY_ALIASES: Dict[str, str] = {"UK": "GB"}

# Wishlist item quantity bounds
MIN_ITEM_QUANTITY = 1
MAX_ITEM_QUANTITY = 999

# Wishlist display name limit
MAX_WISHLIST_NAME_LENGTH = 80

_ASCII_UPPER = set(string.ascii_uppercase)


# =============================================================================
# Error Codes
# =============================================================================

class SubmissionErrorCode:
    """Submission pipeline error codes for audit logging."""
    VALIDATION = "SUB-VAL-001"
    NOT_FOUND = "SUB-NF-001"
    EMPTY_WISHLIST = "SUB-EMPTY-001"
    CONFLICT = "SUB-CONFLICT-001"
    INVALID_TRANSITION = "SUB-STATE-001"
    LATE_REMOTE_ORDER = "SUB-STATE-002"
    AUTH_FAILED = "SEC-001"
    REAUTHORIZE = "SEC-002"
    MISSING_CREDENTIAL = "SEC-003"
    REMOTE_REJECTED = "GW-MUT-001"
    AMBIGUOUS_RESULT = "GW-MUT-002"
    INTERNAL = "SYS-500"


# =============================================================================
# Exceptions
# =============================================================================

class SubmissionError(Exception):
    """
    Base exception for the submission pipeline.

    Every subclass carries an error code and the HTTP status the API
    boundary maps it to.
    """

    error_code = SubmissionErrorCode.INTERNAL
    http_status = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context: Dict[str, Any] = context or {}
        super().__init__(f"[{self.error_code}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        body.update(self.context)
        return body


class ValidationError(SubmissionError):
    """Bad input shape or range (SUB-VAL-001)."""
    error_code = SubmissionErrorCode.VALIDATION
    http_status = 400


class NotFoundError(SubmissionError):
    """Wishlist or item missing, archived, or owned by someone else (SUB-NF-001)."""
    error_code = SubmissionErrorCode.NOT_FOUND
    http_status = 404


class EmptyStateError(SubmissionError):
    """Wishlist has no items (SUB-EMPTY-001)."""
    error_code = SubmissionErrorCode.EMPTY_WISHLIST
    http_status = 400


class ConflictError(SubmissionError):
    """Uniqueness rule violated, e.g. duplicate active wishlist name."""
    error_code = SubmissionErrorCode.CONFLICT
    http_status = 409


class InvalidTransitionError(SubmissionError):
    """Attempted to move a submission out of a terminal state."""
    error_code = SubmissionErrorCode.INVALID_TRANSITION
    http_status = 500


class AuthError(SubmissionError):
    """Identity resolution failed or the remote credential is invalid (SEC-001)."""
    error_code = SubmissionErrorCode.AUTH_FAILED
    http_status = 401
    reauthorize = False

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["reauthorize"] = self.reauthorize
        return body


class ReauthorizationRequiredError(AuthError):
    """
    The platform rejected the shop's credential (SEC-002).

    Operator-actionable: the merchant must re-open the app so a fresh
    offline token is issued. Never retried automatically.
    """
    error_code = SubmissionErrorCode.REAUTHORIZE
    reauthorize = True


class MissingCredentialError(SubmissionError):
    """No stored offline credential for the shop (SEC-003)."""
    error_code = SubmissionErrorCode.MISSING_CREDENTIAL
    http_status = 500


class RemoteMutationError(SubmissionError):
    """
    Remote platform rejected the pending-order mutation (GW-MUT-001).

    Carries the normalized {gqlErrors, userErrors} set and the currency
    context that was attempted.
    """
    error_code = SubmissionErrorCode.REMOTE_REJECTED
    http_status = 400


class AmbiguousResultError(RemoteMutationError):
    """No identifier returned and no tag-recoverable order found (GW-MUT-002)."""
    error_code = SubmissionErrorCode.AMBIGUOUS_RESULT


# =============================================================================
# Enums
# =============================================================================

class SubmissionStatus(Enum):
    """
    Submission lifecycle states.

    QUEUED is initial and transient; the other three are terminal.
    """
    QUEUED = "queued"
    CREATED = "created"
    CREATED_WITH_WARNINGS = "created_with_warnings"
    FAILED = "failed"


TERMINAL_STATUSES: Tuple[SubmissionStatus, ...] = (
    SubmissionStatus.CREATED,
    SubmissionStatus.CREATED_WITH_WARNINGS,
    SubmissionStatus.FAILED,
)

VALID_TRANSITIONS: Dict[SubmissionStatus, Tuple[SubmissionStatus, ...]] = {
    SubmissionStatus.QUEUED: TERMINAL_STATUSES,
    SubmissionStatus.CREATED: (),
    SubmissionStatus.CREATED_WITH_WARNINGS: (),
    SubmissionStatus.FAILED: (),
}

# Statuses that the idempotency guard treats as "already in progress or done"
DEDUPLICATING_STATUSES: Tuple[SubmissionStatus, ...] = (
    SubmissionStatus.QUEUED,
    SubmissionStatus.CREATED,
)


def validate_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    """Return True if current → target is allowed by the state machine."""
    return target in VALID_TRANSITIONS.get(current, ())


# =============================================================================
# Tenant References
# =============================================================================

@dataclass(frozen=True)
class ShopRef:
    """Verified shop identity (internal id + platform domain)."""
    id: str
    domain: str


@dataclass(frozen=True)
class CustomerRef:
    """
    Verified customer identity.

    id is the internal primary key; platform_id is the commerce platform's
    customer identifier (numeric string).
    """
    id: str
    shop_id: str
    platform_id: str

    @property
    def gid(self) -> str:
        if self.platform_id.startswith("gid://"):
            return self.platform_id
        return f"gid://shopify/Customer/{self.platform_id}"


# =============================================================================
# Wishlist Records
# =============================================================================

@dataclass
class WishlistItem:
    id: str
    product_id: str
    variant_id: str
    quantity: int
    created_at: Optional[datetime] = None

    @property
    def variant_gid(self) -> str:
        if self.variant_id.startswith("gid://"):
            return self.variant_id
        return f"gid://shopify/ProductVariant/{self.variant_id}"


@dataclass
class Wishlist:
    """Owned wishlist with items ordered newest first."""
    id: str
    shop_id: str
    customer_id: str
    name: str
    is_archived: bool
    items: List[WishlistItem] = field(default_factory=list)
    created_at: Optional[datetime] = None


# =============================================================================
# Submission Records
# =============================================================================

@dataclass
class Submission:
    """
    Durable record of one conversion attempt.

    Terminal rows are immutable history; a retried attempt creates a new
    Submission unless the idempotency guard returns an existing one.
    """
    id: str
    shop_id: str
    wishlist_id: str
    customer_id: str
    status: SubmissionStatus
    created_at: datetime
    updated_at: datetime
    remote_order_id: Optional[str] = None
    remote_order_name: Optional[str] = None
    note: Optional[str] = None
    country_code: Optional[str] = None
    requested_currency: Optional[str] = None
    currency_used: Optional[str] = None
    recovered_by_tag: bool = False
    error_summary: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "remoteOrderId": self.remote_order_id,
            "remoteOrderName": self.remote_order_name,
            "wishlistId": self.wishlist_id,
            "customerId": self.customer_id,
            "countryCode": self.country_code,
            "requestedCurrency": self.requested_currency,
            "currencyUsed": self.currency_used,
            "recoveredByTag": self.recovered_by_tag,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class CurrencyContext:
    """Currency negotiation state for one submission."""
    requested: Optional[str] = None
    fallback: Optional[str] = None
    attempted: List[Optional[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "fallback": self.fallback,
            "attempted": list(self.attempted),
        }


@dataclass
class SubmissionResult:
    """Outcome handed back to the caller of submit()."""
    submission: Submission
    deduplicated: bool = False
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    currency: CurrencyContext = field(default_factory=CurrencyContext)

    @property
    def status(self) -> SubmissionStatus:
        return self.submission.status

    @property
    def remote_order_id(self) -> Optional[str]:
        return self.submission.remote_order_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission": {
                "id": self.submission.id,
                "status": self.submission.status.value,
                "remoteOrderId": self.submission.remote_order_id,
                "recoveredByTag": self.submission.recovered_by_tag,
                "deduplicated": self.deduplicated,
            }
        }


# =============================================================================
# Normalization Helpers
# =============================================================================

def normalize_country_code(value: Optional[str]) -> Optional[str]:
    """
    Normalize a country code to uppercase ISO-2.

    Empty input means "no country". The legacy alias UK becomes GB.

    Raises:
        ValidationError: If the value is not two ASCII letters
    """
    if value is None:
        return None
    code = str(value).strip().upper()
    if not code:
        return None
    code = COUNTRY_ALIASES.get(code, code)
    if len(code) != 2 or not set(code) <= _ASCII_UPPER:
        raise ValidationError(
            "countryCode must be ISO-2 (e.g. CA)",
            {"countryCode": str(value)[:8]},
        )
    return code


def normalize_currency_code(value: Optional[str]) -> str:
    """
    Normalize a currency code to uppercase ISO-3.

    Raises:
        ValidationError: If the value is not three ASCII letters
    """
    code = str(value or "").strip().upper()
    if len(code) != 3 or not set(code) <= _ASCII_UPPER:
        raise ValidationError(
            "currency must be ISO-3 (e.g. USD)",
            {"currency": str(value or "")[:8]},
        )
    return code


__all__ = [
    "SubmissionErrorCode",
    "SubmissionError",
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
    "SubmissionStatus",
    "TERMINAL_STATUSES",
    "VALID_TRANSITIONS",
    "DEDUPLICATING_STATUSES",
    "validate_transition",
    "ShopRef",
    "CustomerRef",
    "WishlistItem",
    "Wishlist",
    "Submission",
    "CurrencyContext",
    "SubmissionResult",
    "normalize_country_code",
    "normalize_currency_code",
    "COUNTRY_ALIASES",
    "MIN_ITEM_QUANTITY",
    "MAX_ITEM_QUANTITY",
    "MAX_WISHLIST_NAME_LENGTH",
]
