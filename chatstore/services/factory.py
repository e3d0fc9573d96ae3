"""
Store factory.
"""
import logging
from typing import Optional

from chatstore.core.config import settings
from chatstore.db.session import Database
from chatstore.services.interfaces import UserManager
from chatstore.services.sql_user import SQLUserManager

logger = logging.getLogger(__name__)


def get_user_manager(
    backend: Optional[str] = None,
    db_file: Optional[str] = None,
) -> UserManager:
    """
    Factory function to get the configured user store.

    Args:
        backend: 'sqlite' or 'memory' (defaults to settings.STORE_BACKEND)
        db_file: Database file for the sqlite backend (defaults to settings.DATABASE_PATH)

    Returns:
        UserManager instance; call close() on it when done

    Raises:
        ValueError: Unknown backend
        StorageFailureError: If the database cannot be opened or migrated
    """
    backend = backend or settings.STORE_BACKEND

    if backend == "sqlite":
        db = Database.open(db_file)
    elif backend == "memory":
        db = Database.open_memory()
    else:
        raise ValueError(f"Unknown store backend: {backend}")

    logger.info(f"Opened {backend} chat store at {db.url}")
    return SQLUserManager(db)
