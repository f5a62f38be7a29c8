"""
============================================================================
Project Wishlist Relay v1.0.0
FastAPI Application Entry Point - Wishlist Submission Service
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: Customer session tokens or app proxy requests, staff API
                   calls, platform webhooks
Side Effects: Database writes, remote draft-order creation

MANDATE:
- Fail closed on invalid configuration (CFG-001) at startup
- Every customer request verified via its bearer session token or the
  app proxy signature
- Every webhook verified via HMAC-SHA256 before parsing
- Error bodies never carry stack traces, tokens or addresses

============================================================================
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.api.admin import router as admin_router
from app.api.errors import register_exception_handlers
from app.api.submissions import router as submissions_router
from app.api.webhook import router as webhook_router
from app.commerce.http import close_http_session
from app.database.session import check_database_connection, engine
from app.database.tables import create_schema
from services.submission_config import get_submission_config

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup/shutdown events.

    Startup:
        - Load and validate configuration (fail closed)
        - Verify database connectivity
        - Create missing tables

    Shutdown:
        - Close pooled platform connections
        - Close database connections
    """
    logger.info(
        f"[STARTUP] Wishlist Relay v{APP_VERSION} | "
        f"time={datetime.now(timezone.utc).isoformat()}"
    )

    config = get_submission_config()
    app.state.extension_origin = config.extension_origin

    try:
        check_database_connection()
        create_schema(engine)
        logger.info("[STARTUP] Database connection verified, schema ready")
    except Exception as e:
        logger.critical(f"[STARTUP] Database unavailable, refusing to start | error={e}")
        raise

    yield

    close_http_session()
    engine.dispose()
    logger.info("[SHUTDOWN] Database connections closed")


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(
    title="Wishlist Relay",
    description=(
        "Converts customer wishlists into pending orders on the commerce "
        "platform and exposes a staff surface to review conversions and "
        "manage market currency rules."
    ),
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

register_exception_handlers(app)


# ============================================================================
# ROUTERS
# ============================================================================

app.include_router(
    submissions_router,
    prefix="/api/wishlists",
    tags=["Submissions"]
)

app.include_router(
    admin_router,
    prefix="/api/admin",
    tags=["Staff"]
)

app.include_router(
    webhook_router,
    prefix="/webhooks",
    tags=["Webhooks"]
)


# ============================================================================
# OPERATIONS
# ============================================================================

@app.get(
    "/health",
    summary="Health Check",
    description="Lightweight health check for load balancers and monitoring.",
    tags=["System"]
)
def health_check():
    """
    Lightweight health check endpoint.

    Side Effects: Database ping
    """
    try:
        check_database_connection()
        return {"status": "healthy", "database": "connected", "version": APP_VERSION}
    except ConnectionError:
        logger.warning("[HEALTH] Database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected"}
        )


@app.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Exposes Prometheus metrics for observability.",
    tags=["Observability"]
)
def metrics():
    """Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# ============================================================================
# END OF APPLICATION MODULE
# ============================================================================
