"""
============================================================================
Project Wishlist Relay v1.0.0
Database Session - SQLAlchemy Engine & Session Management
============================================================================

Reliability Level: CORE TIER (Order-Critical)
Input Constraints: DATABASE_URL (defaults to a local SQLite file)
Side Effects: Database connections

- SQLite: foreign keys enabled on every connection
- Server databases: connection pooling with pre-ping and recycle

============================================================================
"""

import os
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

DEFAULT_DATABASE_URL = "sqlite:///./wishlist_relay.db"


def get_database_url() -> str:
    """
    Resolve the database URL from the environment.

    Environment Variables:
        DATABASE_URL: SQLAlchemy URL (default: sqlite:///./wishlist_relay.db)
    """
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def build_engine(url: str) -> Engine:
    """
    Create an engine with settings appropriate for the backend.

    Reliability Level: CORE TIER
    Side Effects: Registers connection event listeners
    """
    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if url.startswith("sqlite"):
        new_engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)
        return new_engine

    return create_engine(
        url,
        pool_size=10,           # Maintain 10 connections
        max_overflow=20,        # Allow up to 20 additional connections under load
        pool_timeout=30,        # Wait up to 30s for a connection
        pool_recycle=1800,      # Recycle connections after 30 minutes
        pool_pre_ping=True,     # Verify connections before use
        echo=echo,
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ============================================================================
# SQLALCHEMY ENGINE
# ============================================================================

DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)


# ============================================================================
# SESSION FACTORY
# ============================================================================

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database session injection.

    Yields:
        Session: SQLAlchemy database session

    - Session is automatically closed after request
    - Rollback on exception
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# HEALTH CHECK
# ============================================================================

def check_database_connection() -> bool:
    """
    Verify database connectivity.

    Returns:
        bool: True if database is reachable

    Raises:
        ConnectionError: If database connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise ConnectionError(f"Database connection failed: {e}") from e


# ============================================================================
# END OF DATABASE SESSION MODULE
# ============================================================================
