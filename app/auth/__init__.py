# ============================================================================
# Project Wishlist Relay v1.0.0
# Authentication & Security Module
# ============================================================================

from app.auth.security import (
    verify_proxy_signature,
    verify_webhook_signature,
    HMACVerificationError,
)

__all__ = ["verify_proxy_signature", "verify_webhook_signature", "HMACVerificationError"]
