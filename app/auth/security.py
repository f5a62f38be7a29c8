"""
============================================================================
Project Wishlist Relay v1.0.0
Security Module - Platform Signature Verification
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: Raw request body bytes / raw query parameters
Side Effects: None (pure verification)

MANDATE:
- App proxy requests verified via hex HMAC-SHA256 over the sorted,
  concatenated k=v parameter strings
- Webhooks verified via base64 HMAC-SHA256 over the exact raw body
- Timing-safe comparison for every signature check
- No silent failures - explicit error codes

Error Codes:
    SEC-010: Missing signature
    SEC-011: Missing app secret
    SEC-012: Signature mismatch

============================================================================
"""

import base64
import hashlib
import hmac
from typing import Dict, Iterable, List, Optional, Tuple


# ============================================================================
# CONSTANTS
# ============================================================================

WEBHOOK_SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"
PROXY_SIGNATURE_PARAM = "signature"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class HMACVerificationError(Exception):
    """
    Exception raised when signature verification fails.

    Error Codes:
        SEC-010: Missing signature
        SEC-011: Missing app secret
        SEC-012: Signature mismatch
    """

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


def _require_secret(secret: Optional[str]) -> str:
    if not secret:
        raise HMACVerificationError(
            "SEC-011",
            "SHOPIFY_API_SECRET is not set. Signature verification cannot proceed."
        )
    return secret


# ============================================================================
# APP PROXY SIGNATURE
# ============================================================================

def proxy_signature_message(params: Iterable[Tuple[str, str]]) -> str:
    """
    Canonical message for an app proxy request.

    Values are grouped per key in arrival order and comma-joined, each key
    becomes k=v, and the sorted strings are concatenated with no separator.
    Keys and values are used as decoded, never re-encoded. The signature
    parameter is excluded.
    """
    grouped: Dict[str, List[str]] = {}
    for key, value in params:
        if key == PROXY_SIGNATURE_PARAM:
            continue
        grouped.setdefault(key, []).append(value)

    return "".join(sorted(f"{key}={','.join(values)}" for key, values in grouped.items()))


def compute_proxy_signature(params: Iterable[Tuple[str, str]], secret: str) -> str:
    message = proxy_signature_message(params)
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=message.encode("utf-8"),
        digestmod=hashlib.sha256
    ).hexdigest()


def verify_proxy_signature(
    params: Iterable[Tuple[str, str]],
    secret: Optional[str]
) -> bool:
    """
    Verify the signature query parameter of an app proxy request.

    Args:
        params: Raw query parameters as (key, value) pairs, including signature

    Returns:
        bool: True if signature is valid

    Raises:
        HMACVerificationError: SEC-010 / SEC-011 / SEC-012
    """
    pairs = list(params)
    provided = next((v for k, v in pairs if k == PROXY_SIGNATURE_PARAM), None)
    if not provided:
        raise HMACVerificationError("SEC-010", "Missing proxy signature parameter.")

    expected = compute_proxy_signature(pairs, _require_secret(secret))

    if not hmac.compare_digest(expected.encode("utf-8"), provided.strip().lower().encode("utf-8")):
        raise HMACVerificationError("SEC-012", "Proxy signature mismatch.")

    return True


# ============================================================================
# WEBHOOK SIGNATURE
# ============================================================================

def compute_webhook_signature(payload: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw body."""
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(
    payload: bytes,
    provided_signature: Optional[str],
    secret: Optional[str]
) -> bool:
    """
    Verify a platform webhook.

    Args:
        payload: Raw request body (must be exact bytes received)
        provided_signature: Value of X-Shopify-Hmac-Sha256

    Raises:
        HMACVerificationError: SEC-010 / SEC-011 / SEC-012
    """
    if not provided_signature:
        raise HMACVerificationError(
            "SEC-010",
            f"Missing {WEBHOOK_SIGNATURE_HEADER} header."
        )

    expected = compute_webhook_signature(payload, _require_secret(secret))

    if not hmac.compare_digest(expected.encode("ascii"), provided_signature.strip().encode("utf-8")):
        raise HMACVerificationError("SEC-012", "Webhook signature mismatch.")

    return True


# ============================================================================
# END OF SECURITY MODULE
# ============================================================================
