"""
============================================================================
Project Wishlist Relay v1.0.0
Staff API Endpoints - Submission Review & Currency Rules
============================================================================

Reliability Level: STANDARD
Input Constraints:
    - Authorization: Bearer <STAFF_API_TOKEN>
    - X-Shop-Domain: shop the staff member acts for
Side Effects:
    - Manual conversions through the submission orchestrator
    - Writes to market_currency_rules and shops.default_currency

ENDPOINTS:
    GET    /api/admin/submissions                     - Shop submissions, newest first
    POST   /api/admin/wishlists/{wishlist_id}/submit  - Manual conversion for the owner
    GET    /api/admin/market-currency-rules           - Rules + shop fallback currency
    PUT    /api/admin/market-currency-rules           - Upsert a rule
    DELETE /api/admin/market-currency-rules           - Delete a rule (?countryCode=)
    PUT    /api/admin/market-currency-rules/default   - Set/clear fallback currency

============================================================================
"""

from typing import Optional
import logging

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from app.api.dependencies import (
    get_ledger,
    get_money_rules,
    get_orchestrator,
    get_staff_identity,
    get_wishlist_store,
)
from app.auth.identity import StaffIdentity
from app.schemas.submission import AdminSubmitRequest, CurrencyRuleIn, DefaultCurrencyIn
from services.money_rules import MoneyRulesStore
from services.submission_ledger import DEFAULT_LIST_LIMIT, SubmissionLedger
from services.submission_models import NotFoundError
from services.submission_orchestrator import SubmissionOrchestrator
from services.wishlist_store import WishlistStore

# Configure module logger
logger = logging.getLogger(__name__)

MANUAL_CONVERSION_NOTE = "manual conversion"

router = APIRouter()


# ============================================================================
# Submissions
# ============================================================================

@router.get("/submissions", summary="List Submissions")
def list_submissions(
    wishlist_id: Optional[str] = Query(None, alias="wishlistId"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=500),
    staff: StaffIdentity = Depends(get_staff_identity),
    ledger: SubmissionLedger = Depends(get_ledger),
) -> dict:
    submissions = ledger.list_for_shop(
        staff.shop, wishlist_id=wishlist_id, customer_id=customer_id, limit=limit
    )
    return {"submissions": [s.to_dict() for s in submissions]}


@router.post("/wishlists/{wishlist_id}/submit", summary="Manual Conversion", status_code=201)
def manual_submit(
    wishlist_id: str,
    body: Optional[AdminSubmitRequest] = Body(None),
    staff: StaffIdentity = Depends(get_staff_identity),
    wishlists: WishlistStore = Depends(get_wishlist_store),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Convert a wishlist on behalf of its owner."""
    owner = wishlists.owner_of(staff.shop, wishlist_id)
    if owner is None:
        raise NotFoundError("wishlist not found", {"wishlistId": wishlist_id})

    payload = body or AdminSubmitRequest()
    result = orchestrator.submit(
        wishlist_id,
        staff.shop,
        owner,
        note=MANUAL_CONVERSION_NOTE,
        country_code=payload.country_code,
    )

    logger.info(
        f"[API-ADMIN] Manual conversion | shop={staff.shop.domain} | "
        f"status={result.status.value} | correlation_id={result.submission.id}"
    )
    return JSONResponse(status_code=201, content=result.to_dict())


# ============================================================================
# Market Currency Rules
# ============================================================================

@router.get("/market-currency-rules", summary="List Currency Rules")
def list_rules(
    staff: StaffIdentity = Depends(get_staff_identity),
    money_rules: MoneyRulesStore = Depends(get_money_rules),
) -> dict:
    return {
        "rules": [rule.to_dict() for rule in money_rules.list_rules(staff.shop)],
        "defaultCurrency": money_rules.get_default_currency(staff.shop),
    }


@router.put("/market-currency-rules", summary="Upsert Currency Rule")
def upsert_rule(
    body: CurrencyRuleIn,
    staff: StaffIdentity = Depends(get_staff_identity),
    money_rules: MoneyRulesStore = Depends(get_money_rules),
) -> dict:
    rule = money_rules.upsert_rule(staff.shop, body.country_code, body.currency)
    return {"rule": rule.to_dict()}


@router.delete("/market-currency-rules", summary="Delete Currency Rule")
def delete_rule(
    country_code: str = Query(..., alias="countryCode"),
    staff: StaffIdentity = Depends(get_staff_identity),
    money_rules: MoneyRulesStore = Depends(get_money_rules),
) -> dict:
    return {"deleted": money_rules.delete_rule(staff.shop, country_code)}


@router.put("/market-currency-rules/default", summary="Set Fallback Currency")
def set_default_currency(
    body: DefaultCurrencyIn,
    staff: StaffIdentity = Depends(get_staff_identity),
    money_rules: MoneyRulesStore = Depends(get_money_rules),
) -> dict:
    return {"defaultCurrency": money_rules.set_default_currency(staff.shop, body.currency)}
