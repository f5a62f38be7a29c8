"""
============================================================================
Project Wishlist Relay v1.0.0
Observability Module - Prometheus Metrics
============================================================================

Reliability Level: STANDARD
Input Constraints: None
Side Effects: Exposes Prometheus metrics

============================================================================
"""

from app.observability.metrics import (
    SUBMISSIONS_TOTAL,
    SUBMISSIONS_DEDUPLICATED,
    GATEWAY_CALLS,
    GATEWAY_LATENCY,
    GATEWAY_THROTTLE_RETRIES,
    TAG_RECOVERIES,
    CURRENCY_FALLBACKS,
    record_submission,
    record_deduplicated,
    record_gateway_call,
    record_throttle_retry,
    record_tag_recovery,
    record_currency_fallback,
)

__all__ = [
    "SUBMISSIONS_TOTAL",
    "SUBMISSIONS_DEDUPLICATED",
    "GATEWAY_CALLS",
    "GATEWAY_LATENCY",
    "GATEWAY_THROTTLE_RETRIES",
    "TAG_RECOVERIES",
    "CURRENCY_FALLBACKS",
    "record_submission",
    "record_deduplicated",
    "record_gateway_call",
    "record_throttle_retry",
    "record_tag_recovery",
    "record_currency_fallback",
]
