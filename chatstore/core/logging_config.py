"""
Logging setup for processes embedding the store.
"""
import logging
from typing import Optional

from chatstore.core.config import settings

# CLI style level names to logging levels
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: One of debug/info/warn/error (defaults to settings.LOG_LEVEL)
    """
    log_level = LOG_LEVELS.get((level or settings.LOG_LEVEL).lower(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # SQL statement logging is controlled by DB_ECHO only
    if not settings.DB_ECHO:
        for logger_name in ("sqlalchemy.engine", "sqlalchemy.pool", "alembic"):
            logging.getLogger(logger_name).setLevel(logging.WARNING)
