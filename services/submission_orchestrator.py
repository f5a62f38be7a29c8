"""
============================================================================
Project Wishlist Relay v1.0.0
Submission Orchestrator - Wishlist → Pending Order Pipeline
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: Verified (shop, customer) from an identity resolver
Side Effects: Ledger writes, remote draft-order mutations

PIPELINE:
    1. Validation     wishlist owned + active, non-empty, ISO-2 country, note
    2. Guard          recent queued/created submission → return it
    3. Credential     offline token via CredentialProvider (before any write)
    4. Currency       rule for (shop, country); shop default as fallback
    5. Claim          QUEUED ledger row + in-flight claim
    6. Address        default/first address, else useCustomerDefaultAddress
    7. Attempt 1      draftOrderCreate with marker tag wlsub:<submission id>
    8. Recovery       no id → search draft orders by marker tag
    9. Attempt 2      currency rejected → retry in fallback currency
   10. Terminal       created | created_with_warnings | failed

Once QUEUED, every path ends in exactly one terminal status: remote errors
mark FAILED before raising, and unexpected exceptions are caught, marked
FAILED and re-raised.

AUTH:
    An auth-invalid response at any remote step aborts the pipeline, marks
    FAILED and raises ReauthorizationRequiredError. Attempt 2 is never made
    after an auth failure.

ERROR CODES:
    - SUB-VAL-001 / SUB-NF-001 / SUB-EMPTY-001: validation (no writes)
    - SEC-002: Reauthorization required
    - SEC-003: No offline credential
    - GW-MUT-001: Remote rejection
    - GW-MUT-002: Ambiguous result (no id, no errors, no tag match)

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Union
import logging
import re

from app.commerce.credentials import CredentialProvider, CredentialRefreshError, ShopCredential
from app.commerce.gateway import (
    AddressLookupResult,
    CommerceGateway,
    DraftOrderResult,
    GatewayErrors,
    TagLookupResult,
)
from app.commerce.http import get_http_session
from app.database.tables import utcnow
from app.observability.metrics import (
    record_currency_fallback,
    record_deduplicated,
    record_submission,
    record_tag_recovery,
)
from services.money_rules import MoneyRulesStore
from services.submission_config import SubmissionConfig
from services.submission_ledger import SubmissionLedger
from services.submission_models import (
    AmbiguousResultError,
    CurrencyContext,
    CustomerRef,
    DEDUPLICATING_STATUSES,
    EmptyStateError,
    InvalidTransitionError,
    MissingCredentialError,
    ReauthorizationRequiredError,
    RemoteMutationError,
    ShopRef,
    Submission,
    SubmissionErrorCode,
    SubmissionResult,
    SubmissionStatus,
    ValidationError,
    Wishlist,
    normalize_country_code,
)
from services.wishlist_store import WishlistStore

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MARKER_TAG_PREFIX = "wlsub:"
MAX_TAG_LENGTH = 40
TAG_PATTERN = re.compile(r"^[A-Za-z0-9_:\-]+$")

# Phrases that, together with "currency", mark a presentment currency rejection
CURRENCY_REJECTION_PHRASES = (
    "not enabled",
    "not supported",
    "invalid",
    "not available",
    "not configured",
    "isn't available",
)

ERROR_SUMMARY_LIMIT = 1000


# =============================================================================
# Pure Helpers
# =============================================================================

def build_marker_tag(submission_id: str) -> str:
    """
    Marker tag linking a draft order back to its submission.

    Raises:
        ValueError: If the tag would exceed 40 chars or use other characters
    """
    tag = f"{MARKER_TAG_PREFIX}{submission_id}"
    if len(tag) > MAX_TAG_LENGTH or not TAG_PATTERN.match(tag):
        raise ValueError(f"invalid marker tag for submission id {submission_id!r}")
    return tag


def is_currency_error(text: str) -> bool:
    """True if the error text reports a rejected presentment currency."""
    lowered = (text or "").lower()
    if "currency" not in lowered:
        return False
    return any(phrase in lowered for phrase in CURRENCY_REJECTION_PHRASES)


def build_note(
    wishlist: Wishlist,
    submission_id: str,
    country_code: Optional[str],
    requested_currency: Optional[str],
    customer_note: Optional[str],
) -> str:
    lines = [
        f"Wishlist: {wishlist.id} ({wishlist.name})",
        f"Submission: {submission_id}",
    ]
    if country_code:
        lines.append(f"Country: {country_code}")
    if requested_currency:
        lines.append(f"Requested currency: {requested_currency}")
    if customer_note:
        lines.append(f"Customer note: {customer_note}")
    return "\n".join(lines)


# =============================================================================
# Attempt Outcomes
# =============================================================================

@dataclass
class Created:
    """Identifier returned with no warnings (or recovered by tag)."""
    remote_order_id: str
    remote_order_name: Optional[str]
    recovered_by_tag: bool = False
    warnings: GatewayErrors = field(default_factory=GatewayErrors)


@dataclass
class CreatedWithWarnings:
    """Identifier returned alongside userErrors/gqlErrors."""
    remote_order_id: str
    remote_order_name: Optional[str]
    warnings: GatewayErrors


@dataclass
class Failed:
    """No identifier returned."""
    errors: GatewayErrors


AttemptOutcome = Union[Created, CreatedWithWarnings, Failed]


def classify(result: DraftOrderResult) -> AttemptOutcome:
    if result.draft_order_id:
        if result.errors.has_errors:
            return CreatedWithWarnings(
                result.draft_order_id, result.draft_order_name, result.errors
            )
        return Created(result.draft_order_id, result.draft_order_name)
    return Failed(result.errors)


# =============================================================================
# Gateway Interface
# =============================================================================

class OrderGateway(Protocol):
    def create_pending_order(self, draft_input: Dict[str, Any]) -> DraftOrderResult:
        ...

    def fetch_customer_address(self, customer_gid: str) -> AddressLookupResult:
        ...

    def find_pending_order_by_tag(self, tag: str) -> TagLookupResult:
        ...


GatewayFactory = Callable[[ShopCredential, str], OrderGateway]


def commerce_gateway_factory(config: SubmissionConfig) -> GatewayFactory:
    """Build CommerceGateway instances from configuration."""

    def factory(credential: ShopCredential, correlation_id: str) -> OrderGateway:
        return CommerceGateway(
            credential,
            api_version=config.api_version,
            timeout=config.request_timeout_seconds,
            max_throttle_retries=config.max_throttle_retries,
            session=get_http_session(),
            correlation_id=correlation_id,
        )

    return factory


# =============================================================================
# Orchestrator
# =============================================================================

@dataclass
class _InFlight:
    submission: Submission
    shop: ShopRef
    customer: CustomerRef
    currency: CurrencyContext
    errors: GatewayErrors = field(default_factory=GatewayErrors)
    terminal: bool = False


class SubmissionOrchestrator:
    """
    Converts a wishlist into a remote pending order.

    Reliability Level: CORE TIER
    Side Effects: See module docstring

    Each submit() call is an independent unit of work; no state is kept
    between calls beyond what the ledger persists.
    """

    def __init__(
        self,
        wishlists: WishlistStore,
        ledger: SubmissionLedger,
        money_rules: MoneyRulesStore,
        credentials: CredentialProvider,
        gateway_factory: GatewayFactory,
        config: Optional[SubmissionConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._wishlists = wishlists
        self._ledger = ledger
        self._money_rules = money_rules
        self._credentials = credentials
        self._gateway_factory = gateway_factory
        self._config = config or SubmissionConfig()
        self._clock = clock

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def submit(
        self,
        wishlist_id: str,
        shop: ShopRef,
        customer: CustomerRef,
        note: Optional[str] = None,
        country_code: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Submit a wishlist as a pending order.

        Returns:
            SubmissionResult (deduplicated=True when an existing submission
            is returned instead of creating a new order)

        Raises:
            NotFoundError, EmptyStateError, ValidationError: before any write
            MissingCredentialError: no offline credential (before any write)
            ReauthorizationRequiredError: credential rejected by the platform
            RemoteMutationError / AmbiguousResultError: creation failed
        """
        # 1. Validation, in order
        wishlist = self._wishlists.get_owned(shop, customer, wishlist_id)
        if not wishlist.items:
            raise EmptyStateError("wishlist is empty", {"wishlistId": wishlist_id})
        country = normalize_country_code(country_code)
        clean_note = self._clean_note(note)

        # 2. Time-window guard
        latest = self._ledger.latest_for(shop, wishlist_id, customer)
        if latest is not None and self._within_window(latest):
            logger.info(
                f"[SUB-GUARD] Recent submission returned | status={latest.status.value} | "
                f"wishlist_id={wishlist_id} | correlation_id={latest.id}"
            )
            record_deduplicated("window", latest.id)
            return SubmissionResult(submission=latest, deduplicated=True)

        # 3. Credential, before any ledger write
        credential = self._resolve_credential(shop)

        # 4. Currency
        requested = self._money_rules.lookup(shop, country) if country else None
        fallback = self._money_rules.get_default_currency(shop)
        currency = CurrencyContext(requested=requested, fallback=fallback)

        # 5. Claim + QUEUED row
        submission, created = self._ledger.create_queued(
            shop,
            customer,
            wishlist_id,
            note=clean_note,
            country_code=country,
            requested_currency=requested,
        )
        if not created:
            record_deduplicated("claim", submission.id)
            return SubmissionResult(submission=submission, deduplicated=True)

        flight = _InFlight(
            submission=submission, shop=shop, customer=customer, currency=currency
        )
        gateway = self._gateway_factory(credential, submission.id)

        try:
            return self._run(flight, gateway, wishlist, country, clean_note)
        except Exception as e:
            if not flight.terminal:
                logger.error(
                    f"[{SubmissionErrorCode.INTERNAL}] Unexpected pipeline failure | "
                    f"error={type(e).__name__} | correlation_id={submission.id}"
                )
                self._mark_failed(flight, f"internal error: {type(e).__name__}")
            raise

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _run(
        self,
        flight: _InFlight,
        gateway: OrderGateway,
        wishlist: Wishlist,
        country: Optional[str],
        customer_note: Optional[str],
    ) -> SubmissionResult:
        submission_id = flight.submission.id
        tag = build_marker_tag(submission_id)

        # 6. Address
        lookup = gateway.fetch_customer_address(flight.customer.gid)
        self._abort_if_auth_invalid(flight, lookup.errors, "address lookup")
        if lookup.errors.has_errors:
            logger.warning(
                f"[SUB-ADDR] Address lookup failed, using customer default | "
                f"errors={len(lookup.errors.gql_errors)} | correlation_id={submission_id}"
            )
        address_fields: Dict[str, Any]
        if lookup.address is not None and lookup.address.to_input():
            shaped = lookup.address.to_input()
            address_fields = {"shippingAddress": shaped, "billingAddress": dict(shaped)}
        else:
            address_fields = {"useCustomerDefaultAddress": True}

        base_note = build_note(
            wishlist, submission_id, country, flight.currency.requested, customer_note
        )
        line_items = [
            {"variantId": item.variant_gid, "quantity": item.quantity}
            for item in wishlist.items
        ]

        def build_input(currency_code: Optional[str], note_text: str) -> Dict[str, Any]:
            draft_input: Dict[str, Any] = {
                "customerId": flight.customer.gid,
                "lineItems": line_items,
                "note": note_text,
                "tags": [tag],
            }
            draft_input.update(address_fields)
            if currency_code:
                draft_input["presentmentCurrencyCode"] = currency_code
            return draft_input

        # 7-8. Attempt 1 with tag recovery
        first_currency = flight.currency.requested
        outcome = self._attempt(flight, gateway, build_input(first_currency, base_note), tag)
        if not isinstance(outcome, Failed):
            return self._succeed(flight, outcome, first_currency)

        # 9. Currency fallback
        if flight.currency.requested and is_currency_error(outcome.errors.text()):
            fallback = flight.currency.fallback
            second_currency = fallback if fallback and fallback != first_currency else None
            fallback_note = (
                f"{base_note}\nCurrency fallback: {first_currency} -> "
                f"{second_currency or 'shop default'}"
            )
            logger.warning(
                f"[SUB-CURRENCY] Requested currency rejected, retrying | "
                f"requested={first_currency} | fallback={second_currency} | "
                f"correlation_id={submission_id}"
            )
            record_currency_fallback(submission_id)
            outcome = self._attempt(
                flight, gateway, build_input(second_currency, fallback_note), tag
            )
            if not isinstance(outcome, Failed):
                return self._succeed(flight, outcome, second_currency)

        # 10. Both failed, or fallback not applicable
        return self._reject(flight)

    def _attempt(
        self,
        flight: _InFlight,
        gateway: OrderGateway,
        draft_input: Dict[str, Any],
        tag: str,
    ) -> AttemptOutcome:
        flight.currency.attempted.append(draft_input.get("presentmentCurrencyCode"))
        result = gateway.create_pending_order(draft_input)
        flight.errors.extend(result.errors)
        self._abort_if_auth_invalid(flight, result.errors, "create")

        outcome = classify(result)
        if not isinstance(outcome, Failed):
            return outcome

        # Explicit recovery branch: the create may have executed without
        # returning an id.
        found = gateway.find_pending_order_by_tag(tag)
        self._abort_if_auth_invalid(flight, found.errors, "tag recovery")
        if found.draft_order_id:
            logger.warning(
                f"[SUB-RECOVERY] Draft order recovered by tag | "
                f"correlation_id={flight.submission.id}"
            )
            record_tag_recovery(flight.submission.id)
            return Created(
                remote_order_id=found.draft_order_id,
                remote_order_name=found.draft_order_name,
                recovered_by_tag=True,
                warnings=outcome.errors,
            )
        return outcome

    # -------------------------------------------------------------------------
    # Terminal transitions
    # -------------------------------------------------------------------------

    def _succeed(
        self,
        flight: _InFlight,
        outcome: Union[Created, CreatedWithWarnings],
        currency_used: Optional[str],
    ) -> SubmissionResult:
        if isinstance(outcome, CreatedWithWarnings):
            status = SubmissionStatus.CREATED_WITH_WARNINGS
            recovered = False
        else:
            status = SubmissionStatus.CREATED
            recovered = outcome.recovered_by_tag

        warnings = outcome.warnings
        summary = warnings.text()[:ERROR_SUMMARY_LIMIT] if warnings.has_errors else None

        try:
            updated = self._ledger.mark_terminal(
                flight.submission.id,
                flight.shop,
                flight.customer,
                status,
                remote_order_id=outcome.remote_order_id,
                remote_order_name=outcome.remote_order_name,
                currency_used=currency_used,
                recovered_by_tag=recovered,
                error_summary=summary,
            )
        except InvalidTransitionError:
            # A stale-claim takeover failed this row while the create ran.
            updated = self._ledger.record_late_remote_order(
                flight.submission.id,
                flight.shop,
                flight.customer,
                outcome.remote_order_id,
                remote_order_name=outcome.remote_order_name,
                currency_used=currency_used,
                recovered_by_tag=recovered,
            )
            flight.terminal = True
            return SubmissionResult(
                submission=updated,
                deduplicated=False,
                warnings=warnings.gql_errors + warnings.user_errors,
                currency=flight.currency,
            )
        flight.terminal = True
        record_submission(status.value, updated.id)

        logger.info(
            f"[SUB-DONE] Pending order created | status={status.value} | "
            f"currency={currency_used} | recovered_by_tag={recovered} | "
            f"attempts={len(flight.currency.attempted)} | correlation_id={updated.id}"
        )

        return SubmissionResult(
            submission=updated,
            deduplicated=False,
            warnings=warnings.gql_errors + warnings.user_errors,
            currency=flight.currency,
        )

    def _reject(self, flight: _InFlight) -> SubmissionResult:
        errors = flight.errors
        if errors.has_errors:
            self._mark_failed(flight, errors.text())
            error_cls = RemoteMutationError
            message = "pending order creation failed"
        else:
            self._mark_failed(flight, "no identifier returned and no tag match")
            error_cls = AmbiguousResultError
            message = "pending order creation returned no identifier"

        logger.error(
            f"[{error_cls.error_code}] {message} | "
            f"attempted={flight.currency.attempted} | correlation_id={flight.submission.id}"
        )
        context: Dict[str, Any] = errors.to_dict()
        context["currency"] = flight.currency.to_dict()
        context["submissionId"] = flight.submission.id
        raise error_cls(message, context)

    def _abort_if_auth_invalid(self, flight: _InFlight, errors: GatewayErrors, step: str) -> None:
        if not errors.auth_invalid:
            return
        logger.error(
            f"[{SubmissionErrorCode.REAUTHORIZE}] Credential rejected during {step} | "
            f"shop={flight.shop.domain} | correlation_id={flight.submission.id}"
        )
        self._mark_failed(flight, f"credential rejected during {step}")
        raise ReauthorizationRequiredError(
            "shop authorization expired; reopen the app to reauthorize",
            {"submissionId": flight.submission.id},
        )

    def _mark_failed(self, flight: _InFlight, summary: str) -> None:
        try:
            self._ledger.mark_terminal(
                flight.submission.id,
                flight.shop,
                flight.customer,
                SubmissionStatus.FAILED,
                error_summary=summary[:ERROR_SUMMARY_LIMIT],
            )
        except InvalidTransitionError:
            # Already terminal (stale-claim takeover); keep the original error.
            logger.warning(
                f"[{SubmissionErrorCode.INVALID_TRANSITION}] Submission already terminal, "
                f"failure not recorded | summary={summary[:200]} | "
                f"correlation_id={flight.submission.id}"
            )
            flight.terminal = True
            return
        flight.terminal = True
        record_submission(SubmissionStatus.FAILED.value, flight.submission.id)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _resolve_credential(self, shop: ShopRef) -> ShopCredential:
        try:
            credential = self._credentials.get_credential(shop.domain)
        except CredentialRefreshError as e:
            raise ReauthorizationRequiredError(
                "shop authorization expired; reopen the app to reauthorize"
            ) from e
        if credential is None:
            logger.error(
                f"[{SubmissionErrorCode.MISSING_CREDENTIAL}] No offline credential | "
                f"shop={shop.domain}"
            )
            raise MissingCredentialError("no offline credential for shop")
        return credential

    def _within_window(self, submission: Submission) -> bool:
        if submission.status not in DEDUPLICATING_STATUSES:
            return False
        age = (self._clock() - submission.created_at).total_seconds()
        return age < self._config.idempotency_window_seconds

    def _clean_note(self, note: Optional[str]) -> Optional[str]:
        if note is None:
            return None
        if not isinstance(note, str):
            raise ValidationError("note must be a string")
        clean = note.strip()
        if len(clean) > self._config.max_note_length:
            raise ValidationError(
                f"note must be at most {self._config.max_note_length} characters",
                {"noteLength": len(clean)},
            )
        return clean or None


__all__ = [
    "SubmissionOrchestrator",
    "OrderGateway",
    "GatewayFactory",
    "commerce_gateway_factory",
    "Created",
    "CreatedWithWarnings",
    "Failed",
    "classify",
    "build_marker_tag",
    "build_note",
    "is_currency_error",
]
