# ============================================================================
# Project Wishlist Relay v1.0.0
# Database Module - SQLAlchemy Session Management & Core Schema
# ============================================================================

from app.database.session import get_db, engine, SessionLocal
from app.database.tables import create_schema, metadata

__all__ = ["get_db", "engine", "SessionLocal", "create_schema", "metadata"]
