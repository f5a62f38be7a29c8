"""
============================================================================
Project Wishlist Relay v1.0.0
Customer Submission API Endpoints
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints:
    - Bearer session token (dest + sub) or app proxy signature
      (shop + logged_in_customer_id) required
    - Optional JSON body {note?, countryCode?}
Side Effects:
    - Ledger writes and remote draft-order creation via the orchestrator

ENDPOINTS:
    OPTIONS /api/wishlists/{wishlist_id}/submit      - CORS preflight
    POST    /api/wishlists/{wishlist_id}/submit      - Convert wishlist to pending order
    OPTIONS /api/wishlists/{wishlist_id}/submission  - CORS preflight
    GET     /api/wishlists/{wishlist_id}/submission  - Latest submission for the caller

ERROR CODES:
    SUB-VAL-001 (400), SUB-EMPTY-001 (400), SUB-NF-001 (404),
    SEC-001/SEC-002 (401), SEC-003 (500), GW-MUT-001/GW-MUT-002 (400)

============================================================================
"""

from typing import Optional
import logging

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.api.dependencies import (
    get_config,
    get_customer_identity,
    get_ledger,
    get_orchestrator,
    get_wishlist_store,
)
from app.api.errors import cors_headers
from app.auth.identity import CustomerIdentity
from app.schemas.submission import SubmitRequest
from services.submission_config import SubmissionConfig
from services.submission_ledger import SubmissionLedger
from services.submission_models import NotFoundError
from services.submission_orchestrator import SubmissionOrchestrator
from services.wishlist_store import WishlistStore

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# Router Configuration
# ============================================================================

router = APIRouter()


@router.options("/{wishlist_id}/submit", include_in_schema=False)
@router.options("/{wishlist_id}/submission", include_in_schema=False)
def preflight(
    wishlist_id: str,
    request: Request,
    config: SubmissionConfig = Depends(get_config),
) -> Response:
    return Response(status_code=204, headers=cors_headers(request, config.extension_origin))


@router.post(
    "/{wishlist_id}/submit",
    summary="Submit Wishlist",
    description=(
        "Converts the caller's wishlist into a pending order on the commerce "
        "platform. Repeated calls within the idempotency window return the "
        "existing submission with deduplicated=true."
    ),
    status_code=201,
)
def submit_wishlist(
    wishlist_id: str,
    request: Request,
    body: Optional[SubmitRequest] = Body(None),
    identity: CustomerIdentity = Depends(get_customer_identity),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
    config: SubmissionConfig = Depends(get_config),
) -> JSONResponse:
    """
    Submit a wishlist.

    Returns:
        201 {submission: {id, status, remoteOrderId, recoveredByTag, deduplicated}}

    Raises:
        SubmissionError subclasses, mapped by the app exception handlers
    """
    payload = body or SubmitRequest()
    result = orchestrator.submit(
        wishlist_id,
        identity.shop,
        identity.customer,
        note=payload.note,
        country_code=payload.country_code,
    )

    logger.info(
        f"[API-SUBMIT] Submission answered | status={result.status.value} | "
        f"deduplicated={result.deduplicated} | correlation_id={result.submission.id}"
    )

    return JSONResponse(
        status_code=201,
        content=result.to_dict(),
        headers=cors_headers(request, config.extension_origin),
    )


@router.get(
    "/{wishlist_id}/submission",
    summary="Latest Submission",
    description="Returns the caller's most recent submission for the wishlist.",
)
def latest_submission(
    wishlist_id: str,
    request: Request,
    identity: CustomerIdentity = Depends(get_customer_identity),
    wishlists: WishlistStore = Depends(get_wishlist_store),
    ledger: SubmissionLedger = Depends(get_ledger),
    config: SubmissionConfig = Depends(get_config),
) -> JSONResponse:
    # Ownership check first; archived or foreign wishlists are 404.
    wishlists.get_owned(identity.shop, identity.customer, wishlist_id)

    latest = ledger.latest_for(identity.shop, wishlist_id, identity.customer)
    if latest is None:
        raise NotFoundError("no submission for wishlist", {"wishlistId": wishlist_id})

    return JSONResponse(
        status_code=200,
        content={"submission": latest.to_dict()},
        headers=cors_headers(request, config.extension_origin, allow_any=True),
    )
