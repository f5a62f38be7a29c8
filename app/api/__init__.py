# ============================================================================
# Project Wishlist Relay v1.0.0
# API Routes Module
# ============================================================================

from app.api.submissions import router as submissions_router
from app.api.admin import router as admin_router
from app.api.webhook import router as webhook_router

__all__ = ["submissions_router", "admin_router", "webhook_router"]
