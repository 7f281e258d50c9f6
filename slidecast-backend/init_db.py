#!/usr/bin/env python3
"""
Database initialization script for Docker.
Creates tables and media directories if they don't exist.
"""

import sys
import logging
from sqlalchemy.exc import SQLAlchemyError
from config import ensure_directories
from database import init_db

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def init_database():
    """Initialize the database by creating all tables."""
    try:
        logging.info("Creating database tables...")
        ensure_directories()
        init_db()
        logging.info("✅ Database tables created successfully!")
    except (SQLAlchemyError, OSError) as e:
        logging.error(f"❌ Error creating database tables: {e}")
        sys.exit(1)


if __name__ == "__main__":
    init_database()
