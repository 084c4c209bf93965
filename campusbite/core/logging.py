"""Logging configuration."""
import logging
import sys
from typing import Optional

from campusbite.core.config import settings

# Loggers that are chatty at INFO and only interesting when something breaks
QUIET_LOGGERS = ("httpx", "aiosqlite", "asyncpg", "uvicorn.access")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application logging.

    Everything goes to stdout. SQL statements are only logged when
    ``LOG_SQL`` is set.
    """
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.log_sql else logging.WARNING
    )
