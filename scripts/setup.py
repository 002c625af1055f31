#!/usr/bin/env python3
"""Apply database migrations for the trip booking API."""

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

server_dir = Path(__file__).parent.parent / "server"

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database(revision: str = "head") -> None:
    """Upgrade the database configured by DATABASE_URL to ``revision``."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info(f"Running database migrations to {revision}...")
    try:
        command.upgrade(alembic_cfg, revision)
    except Exception as e:
        logger.error(f"Database migration failed: {e}")
        raise
    logger.info("Database migrations completed")


def main():
    logger.info("Starting trip booking API setup...")
    setup_database()
    logger.info("Setup completed successfully!")
    logger.info("Start the API server with: cd server && uvicorn trip_booking.main:app --reload")


if __name__ == "__main__":
    main()
