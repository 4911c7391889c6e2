"""Worker: create any missing tables.

Usage:
    python -m worker.init_db
"""

import structlog

from config import get_settings
from db.connection import init_database

logger = structlog.get_logger(__name__)


def main() -> None:
    settings = get_settings()
    init_database()
    logger.info("Database initialized", db=settings.database.db_info_for_logging())


if __name__ == "__main__":
    main()
