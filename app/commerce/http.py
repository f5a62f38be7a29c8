# ============================================================================
# Project Wishlist Relay v1.0.0
# Commerce HTTP Session - Process-Wide Connection Pool
# ============================================================================
#
# Reliability Level: CORE TIER
# Purpose: One requests.Session shared by every gateway and the credential
#          provider so connections to the platform are pooled and released
#
# Access tokens travel as per-request headers, never as session state, so
# the session is safe to share across shops and worker threads.
#
# ============================================================================

import logging
import threading
from typing import Optional

import requests

logger = logging.getLogger(__name__)


_http_session: Optional[requests.Session] = None
_http_session_lock = threading.Lock()


def get_http_session() -> requests.Session:
    """
    Get the process-wide HTTP session, creating it on first access.

    Reliability Level: CORE TIER
    """
    global _http_session

    with _http_session_lock:
        if _http_session is None:
            _http_session = requests.Session()
            logger.info("[HTTP-SESSION] Shared session created")
        return _http_session


def close_http_session() -> None:
    """
    Close the shared session and release its pooled connections.

    The next get_http_session() call builds a fresh one.
    """
    global _http_session

    with _http_session_lock:
        if _http_session is None:
            return
        _http_session.close()
        _http_session = None

    logger.info("[HTTP-SESSION] Shared session closed")


__all__ = [
    "get_http_session",
    "close_http_session",
]
