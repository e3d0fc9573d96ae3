"""
Storage engine binding.

Opens a SQLite database through SQLAlchemy, brings its schema up to date
with the bundled Alembic migrations and runs units of work inside
transactions.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from alembic import command
from alembic.config import Config
from alembic.util import CommandError
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from chatstore.core.config import settings
from chatstore.core.context import QueryContext, ensure_context
from chatstore.core.exceptions import (
    ConflictError,
    ReferentialViolationError,
    StorageFailureError,
    StoreError,
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

MEMORY_URL = "sqlite://"


def get_sqlite_url(db_file: str) -> str:
    """
    Build the SQLAlchemy URL for a SQLite database file.

    The parent directory is created if missing.

    Args:
        db_file: Path to the database file (``~`` is expanded)

    Returns:
        SQLAlchemy database URL
    """
    path = Path(db_file).expanduser().resolve()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageFailureError(
            f"Unable to prepare database directory {path.parent}", str(e)
        ) from e
    return f"sqlite:///{path}"


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # pysqlite only emits BEGIN before DML; take over so reads join the transaction
    dbapi_connection.isolation_level = None
    # SQLite ignores FOREIGN KEY clauses (and ON DELETE actions) unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_immediate(conn) -> None:
    # Hold the write lock from the first read of a unit of work
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def _translate_integrity_error(err: IntegrityError) -> StoreError:
    text = str(err.orig).lower()
    if "unique" in text:
        return ConflictError(f"Unique constraint violated: {err.orig}")
    return ReferentialViolationError(f"Integrity constraint violated: {err.orig}")


class Database:
    """
    One SQLite database shared by every manager and handle built on it.

    The engine is thread safe; each unit of work gets its own ORM session
    through ``transaction()``. Every transaction opens with BEGIN IMMEDIATE,
    so read-modify-write units on one database file run one at a time.
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        busy_timeout: float = 30.0,
    ):
        self.url = url
        engine_kwargs = {}
        if url in (MEMORY_URL, "sqlite:///:memory:"):
            # A single shared connection, otherwise every checkout sees an empty database
            engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(
            url,
            future=True,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            **engine_kwargs,
        )
        event.listen(self.engine, "connect", _configure_sqlite_connection)
        event.listen(self.engine, "begin", _begin_immediate)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        self._closed = False

    @classmethod
    def open(
        cls,
        db_file: Optional[str] = None,
        echo: Optional[bool] = None,
        busy_timeout: Optional[float] = None,
    ) -> "Database":
        """
        Open (creating if needed) a file backed database and migrate it.

        Args:
            db_file: Database file (defaults to settings.DATABASE_PATH)
            echo: Log SQL statements (defaults to settings.DB_ECHO)
            busy_timeout: Lock wait in seconds (defaults to settings.DB_BUSY_TIMEOUT)

        Returns:
            Ready to use Database

        Raises:
            StorageFailureError: If the file cannot be opened or migrated
        """
        db = cls(
            get_sqlite_url(db_file or settings.DATABASE_PATH),
            echo=settings.DB_ECHO if echo is None else echo,
            busy_timeout=settings.DB_BUSY_TIMEOUT if busy_timeout is None else busy_timeout,
        )
        db._migrate_or_close()
        return db

    @classmethod
    def open_memory(cls, echo: Optional[bool] = None) -> "Database":
        """Open a private in-memory database (lost on close)."""
        db = cls(MEMORY_URL, echo=settings.DB_ECHO if echo is None else echo)
        db._migrate_or_close()
        return db

    def _migrate_or_close(self) -> None:
        try:
            self.migrate()
        except StorageFailureError:
            self.close()
            raise

    def migrate(self) -> None:
        """
        Upgrade the schema to the latest migration.

        Raises:
            StorageFailureError: On any migration failure
        """
        cfg = Config()
        cfg.set_main_option("script_location", str(MIGRATIONS_DIR).replace("%", "%%"))
        try:
            with self.engine.begin() as connection:
                cfg.attributes["connection"] = connection
                command.upgrade(cfg, "head")
        except (SQLAlchemyError, CommandError, OSError) as e:
            logger.error(f"Schema migration failed for {self.url}: {e}")
            raise StorageFailureError("Schema migration failed", str(e)) from e
        logger.debug(f"Schema of {self.url} is up to date")

    @contextmanager
    def transaction(self, ctx: Optional[QueryContext] = None) -> Iterator[Session]:
        """
        Run a unit of work inside one transaction.

        Commits when the block exits normally and rolls back on any exception,
        including cancellation of ``ctx`` detected right before commit.

        Args:
            ctx: Query context checked before the work and before commit

        Yields:
            ORM session bound to the open transaction

        Raises:
            ConflictError: Unique constraint violated
            ReferentialViolationError: Foreign key constraint violated
            OperationCancelledError: ``ctx`` cancelled or expired
            StorageFailureError: Any other engine failure
        """
        ctx = ensure_context(ctx)
        if self._closed:
            raise StorageFailureError("Database is closed")
        ctx.raise_if_done()

        session = self.SessionLocal()
        try:
            with session.begin():
                yield session
                ctx.raise_if_done()
        except StoreError:
            raise
        except IntegrityError as e:
            raise _translate_integrity_error(e) from e
        except SQLAlchemyError as e:
            logger.error(f"{ctx.log_prefix()}Transaction failed: {e}")
            raise StorageFailureError("Database transaction failed", str(e)) from e
        finally:
            session.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Dispose the engine. The database cannot be used afterwards."""
        if not self._closed:
            self.engine.dispose()
            self._closed = True
