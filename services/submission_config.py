"""
============================================================================
Project Wishlist Relay v1.0.0
Submission Pipeline - Configuration
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: Environment variables (optionally from .env)
Side Effects: Logs configuration on load

This module provides configuration management for the submission pipeline:
- Environment variable parsing with type safety
- Default values for optional configuration
- Validation of required configuration
- Fail-closed behavior on invalid config (CFG-001)

ENVIRONMENT VARIABLES:
    - SUBMISSION_IDEMPOTENCY_WINDOW_SECONDS: Duplicate-submit window (default: 30)
    - SUBMISSION_CLAIM_TTL_SECONDS: In-flight claim lifetime (default: 1200),
      must exceed the worst-case pipeline duration
    - SUBMISSION_MAX_NOTE_LENGTH: Customer note limit (default: 1000)
    - SHOPIFY_API_VERSION: Admin GraphQL API version (default: 2025-10)
    - SHOPIFY_REQUEST_TIMEOUT_SECONDS: HTTP timeout (default: 30)
    - SHOPIFY_MAX_THROTTLE_RETRIES: Retries on 429/THROTTLED (default: 3)
    - SHOPIFY_EXTENSION_ORIGIN: Known extension origin for CORS
    - CREDENTIAL_REFRESH_SKEW_SECONDS: Refresh tokens this early (default: 120)
    - SHOPIFY_API_KEY / SHOPIFY_API_SECRET: App credentials
    - STAFF_API_TOKEN: Bearer token for the staff surface

ERROR CODES:
    - CFG-001: Configuration invalid or missing

============================================================================
"""

from typing import Optional, List
from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv

from app.commerce.backoff import ExponentialBackoff

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class SubmissionConfigErrorCode:
    """Configuration error codes for audit logging."""
    CONFIG_INVALID = "CFG-001"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_IDEMPOTENCY_WINDOW_SECONDS = 30
DEFAULT_CLAIM_TTL_SECONDS = 1200
DEFAULT_MAX_NOTE_LENGTH = 1000
DEFAULT_API_VERSION = "2025-10"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_THROTTLE_RETRIES = 3
DEFAULT_EXTENSION_ORIGIN = "https://extensions.shopifycdn.com"
DEFAULT_REFRESH_SKEW_SECONDS = 120

# Sequential gateway calls per submission: address lookup, create and tag
# recovery for each of the two attempts.
REMOTE_CALLS_PER_SUBMISSION = 5


# =============================================================================
# Configuration Exception
# =============================================================================

class SubmissionConfigurationError(Exception):
    """
    Raised when submission configuration is invalid.

    Reliability Level: CORE TIER
    """

    def __init__(self, message: str, error_code: str = SubmissionConfigErrorCode.CONFIG_INVALID):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# SubmissionConfig
# =============================================================================

@dataclass
class SubmissionConfig:
    """
    Submission pipeline configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - idempotency_window_seconds: Recent queued/created submissions inside this
      window are returned instead of creating a new pending order
    - claim_ttl_seconds: Age after which an in-flight claim is considered stale;
      must exceed worst_case_pipeline_seconds
    - max_note_length: Maximum customer note length after trimming
    - api_version: Platform Admin API version
    - request_timeout_seconds: Per-request HTTP timeout
    - max_throttle_retries: Retries for throttled (never executed) requests
    - extension_origin: Origin that receives explicit CORS allow headers
    - refresh_skew_seconds: Refresh offline tokens this long before expiry
    - api_key / api_secret: App credentials (refresh, proxy, webhooks)
    - staff_api_token: Bearer token accepted on the staff surface
    ============================================================================

    Reliability Level: CORE TIER
    Input Constraints: Positive integers for windows and limits
    Side Effects: None
    """

    idempotency_window_seconds: int = DEFAULT_IDEMPOTENCY_WINDOW_SECONDS
    claim_ttl_seconds: int = DEFAULT_CLAIM_TTL_SECONDS
    max_note_length: int = DEFAULT_MAX_NOTE_LENGTH
    api_version: str = DEFAULT_API_VERSION
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_throttle_retries: int = DEFAULT_MAX_THROTTLE_RETRIES
    extension_origin: str = DEFAULT_EXTENSION_ORIGIN
    refresh_skew_seconds: int = DEFAULT_REFRESH_SKEW_SECONDS
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    staff_api_token: Optional[str] = None

    @property
    def worst_case_pipeline_seconds(self) -> float:
        """
        Upper bound on one submission's remote work.

        Every gateway call may time out on each throttle retry and wait the
        largest jittered backoff between them.
        """
        backoff = ExponentialBackoff()
        retries = max(self.max_throttle_retries, 0)
        per_call = (
            self.request_timeout_seconds * (retries + 1)
            + backoff.max_delay * (1 + backoff.jitter) * retries
        )
        return REMOTE_CALLS_PER_SUBMISSION * per_call

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises:
            SubmissionConfigurationError: If any value is out of range (CFG-001)
        """
        errors: List[str] = []

        if self.idempotency_window_seconds <= 0:
            errors.append(
                f"SUBMISSION_IDEMPOTENCY_WINDOW_SECONDS must be positive, "
                f"got: {self.idempotency_window_seconds}"
            )

        if self.claim_ttl_seconds < self.idempotency_window_seconds:
            errors.append(
                f"SUBMISSION_CLAIM_TTL_SECONDS must be >= the idempotency window, "
                f"got: {self.claim_ttl_seconds}"
            )

        # A live attempt must never look stale, or a takeover duplicates the order.
        if self.claim_ttl_seconds <= self.worst_case_pipeline_seconds:
            errors.append(
                f"SUBMISSION_CLAIM_TTL_SECONDS must exceed the worst-case pipeline "
                f"duration ({self.worst_case_pipeline_seconds:.0f}s for the current "
                f"timeout and retry settings), got: {self.claim_ttl_seconds}"
            )

        if self.max_note_length <= 0:
            errors.append(
                f"SUBMISSION_MAX_NOTE_LENGTH must be positive, got: {self.max_note_length}"
            )

        if self.request_timeout_seconds <= 0:
            errors.append(
                f"SHOPIFY_REQUEST_TIMEOUT_SECONDS must be positive, "
                f"got: {self.request_timeout_seconds}"
            )

        if self.max_throttle_retries < 0:
            errors.append(
                f"SHOPIFY_MAX_THROTTLE_RETRIES must be non-negative, "
                f"got: {self.max_throttle_retries}"
            )

        if not self.api_version.strip():
            errors.append("SHOPIFY_API_VERSION must not be empty")

        if errors:
            error_msg = "Submission configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{SubmissionConfigErrorCode.CONFIG_INVALID}] {error_msg}")
            raise SubmissionConfigurationError(error_msg)

        logger.info(
            f"[SUB-CONFIG] Configuration validated | "
            f"window={self.idempotency_window_seconds}s | "
            f"claim_ttl={self.claim_ttl_seconds}s | "
            f"api_version={self.api_version} | "
            f"throttle_retries={self.max_throttle_retries} | "
            f"staff_surface={'enabled' if self.staff_api_token else 'disabled'}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "SubmissionConfig":
        """
        Load configuration from environment variables.

        Invalid numeric values fall back to their defaults with a warning.

        Args:
            validate: Whether to validate configuration after loading

        Returns:
            SubmissionConfig instance with values from environment

        Raises:
            SubmissionConfigurationError: If validation fails (CFG-001)
        """
        config = cls(
            idempotency_window_seconds=_int_env(
                "SUBMISSION_IDEMPOTENCY_WINDOW_SECONDS", DEFAULT_IDEMPOTENCY_WINDOW_SECONDS
            ),
            claim_ttl_seconds=_int_env(
                "SUBMISSION_CLAIM_TTL_SECONDS", DEFAULT_CLAIM_TTL_SECONDS
            ),
            max_note_length=_int_env(
                "SUBMISSION_MAX_NOTE_LENGTH", DEFAULT_MAX_NOTE_LENGTH
            ),
            api_version=os.environ.get("SHOPIFY_API_VERSION", DEFAULT_API_VERSION).strip(),
            request_timeout_seconds=_float_env(
                "SHOPIFY_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            max_throttle_retries=_int_env(
                "SHOPIFY_MAX_THROTTLE_RETRIES", DEFAULT_MAX_THROTTLE_RETRIES
            ),
            extension_origin=os.environ.get(
                "SHOPIFY_EXTENSION_ORIGIN", DEFAULT_EXTENSION_ORIGIN
            ).strip(),
            refresh_skew_seconds=_int_env(
                "CREDENTIAL_REFRESH_SKEW_SECONDS", DEFAULT_REFRESH_SKEW_SECONDS
            ),
            api_key=os.environ.get("SHOPIFY_API_KEY") or None,
            api_secret=os.environ.get("SHOPIFY_API_SECRET") or None,
            staff_api_token=os.environ.get("STAFF_API_TOKEN") or None,
        )

        logger.info(
            f"[SUB-CONFIG] Loading configuration from environment | "
            f"SUBMISSION_IDEMPOTENCY_WINDOW_SECONDS={config.idempotency_window_seconds} | "
            f"SHOPIFY_API_VERSION={config.api_version} | "
            f"SHOPIFY_API_SECRET={'[SET]' if config.api_secret else '[MISSING]'}"
        )

        if validate:
            config.validate()

        return config


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"[SUB-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(f"[SUB-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[SubmissionConfig] = None


def get_submission_config(validate: bool = True) -> SubmissionConfig:
    """
    Get the global submission configuration, loading it on first access.

    Raises:
        SubmissionConfigurationError: If configuration is invalid (CFG-001)
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = SubmissionConfig.from_environment(validate=validate)

    return _config_instance


def reset_submission_config() -> None:
    """Clear the global configuration instance (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[SUB-CONFIG] Configuration instance reset")


__all__ = [
    "SubmissionConfig",
    "SubmissionConfigurationError",
    "SubmissionConfigErrorCode",
    "DEFAULT_IDEMPOTENCY_WINDOW_SECONDS",
    "DEFAULT_CLAIM_TTL_SECONDS",
    "DEFAULT_EXTENSION_ORIGIN",
    "get_submission_config",
    "reset_submission_config",
]
