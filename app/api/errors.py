"""
============================================================================
Project Wishlist Relay v1.0.0
API Errors - Taxonomy → HTTP Mapping & CORS Headers
============================================================================

Reliability Level: STANDARD
Side Effects: Logs every mapped error

RESPONSE SHAPE:
    {"error": <message>, "error_code": <code>, ...context}

Unexpected exceptions become a generic SYS-500 body. Stack traces, raw
remote payloads and address data never reach the client.

CORS:
    - Origin equal to the extension origin: echoed with explicit allow headers
    - Any other origin: "*" on GET-style metadata endpoints only

============================================================================
"""

from typing import Dict, List, Optional
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.auth.security import HMACVerificationError
from services.submission_config import DEFAULT_EXTENSION_ORIGIN
from services.submission_models import SubmissionError, SubmissionErrorCode

# Configure module logger
logger = logging.getLogger(__name__)

CUSTOMER_PATH_PREFIX = "/api/wishlists"

ALLOW_METHODS = "GET,POST,OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"


# ============================================================================
# CORS
# ============================================================================

def cors_headers(request: Request, extension_origin: str, allow_any: bool = False) -> Dict[str, str]:
    """
    CORS headers for a customer-surface response.

    Args:
        extension_origin: Origin that receives an explicit echo
        allow_any: Whether unknown origins get "*" (metadata GETs only)
    """
    origin = request.headers.get("Origin") or ""
    if origin and origin == extension_origin:
        allowed: Optional[str] = origin
    elif allow_any:
        allowed = "*"
    else:
        allowed = None

    headers = {"Vary": "Origin"}
    if allowed is not None:
        headers.update({
            "Access-Control-Allow-Origin": allowed,
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
        })
    return headers


def _extension_origin(request: Request) -> str:
    return getattr(request.app.state, "extension_origin", DEFAULT_EXTENSION_ORIGIN)


def _error_cors(request: Request) -> Dict[str, str]:
    if not request.url.path.startswith(CUSTOMER_PATH_PREFIX):
        return {}
    return cors_headers(request, _extension_origin(request), allow_any=request.method == "GET")


# ============================================================================
# Error Responses
# ============================================================================

def create_error_response(
    request: Request,
    error_code: str,
    message: str,
    status_code: int = 400,
    context: Optional[dict] = None
) -> JSONResponse:
    """Standardized error response with customer-surface CORS headers."""
    content = {"error": message, "error_code": error_code}
    if context:
        content.update(context)
    return JSONResponse(status_code=status_code, content=content, headers=_error_cors(request))


async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        f"[{exc.error_code}] {exc.message} | method={request.method} | "
        f"path={request.url.path} | status={exc.http_status}"
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
        headers=_error_cors(request),
    )


async def signature_error_handler(request: Request, exc: HMACVerificationError) -> JSONResponse:
    logger.warning(f"[{exc.error_code}] {exc.message} | path={request.url.path}")
    return create_error_response(request, exc.error_code, "signature verification failed", 401)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: List[Dict[str, str]] = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": str(error.get("msg", "")),
        }
        for error in exc.errors()
    ]
    return create_error_response(
        request,
        SubmissionErrorCode.VALIDATION,
        "invalid request body",
        400,
        {"details": details},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.

    No silent failures: the exception is logged with its type, the client
    gets a generic body.
    """
    logger.exception(
        f"[{SubmissionErrorCode.INTERNAL}] Unhandled exception | "
        f"error={type(exc).__name__} | path={request.url.path}"
    )
    return create_error_response(
        request,
        SubmissionErrorCode.INTERNAL,
        "Internal server error. This incident has been logged.",
        500,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SubmissionError, submission_error_handler)
    app.add_exception_handler(HMACVerificationError, signature_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)
