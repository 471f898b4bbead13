"""
Database initialization and table creation script.
Run this once to set up the trade tables and the import log.
"""
import argparse
import logging

from tradedb.core.database import engine, Base
from tradedb.models import trade  # noqa: F401  (registers the trade tables)
from tradedb.models import import_status  # noqa: F401

logger = logging.getLogger("tradedb.ingestion.init_db")


def init_db(bind=None):
    """Create all tables."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("All tables created successfully")


def drop_all(bind=None):
    """Drop all tables (use with caution)."""
    Base.metadata.drop_all(bind=bind or engine)
    logger.info("All tables dropped")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="tradedb schema setup")
    parser.add_argument("--drop", action="store_true", help="Drop all tables before creating them")
    args = parser.parse_args()

    if args.drop:
        drop_all()
    init_db()
    print("Database initialized successfully!")
