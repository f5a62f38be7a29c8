#!/usr/bin/env python3
"""
============================================================================
Project Wishlist Relay v1.0.0
Service Runner - HTTP Server Entry Point
============================================================================

Reliability Level: STANDARD

USAGE:
    python main.py

ENVIRONMENT:
    HOST (default: 0.0.0.0), PORT (default: 8000), LOG_LEVEL (default: INFO)

============================================================================
"""

import logging
import os

import uvicorn
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("RUNNER")


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Starting Wishlist Relay | host={host} | port={port}")
    uvicorn.run("app.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
