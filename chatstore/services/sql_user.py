"""
SQL backed user store.

SQLUserManager creates and looks up users; every user is returned as a
SQLUserHandle caching the last read ``users`` row. Handle mutations run in
their own transaction and re-read the row afterwards.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from chatstore.core.context import QueryContext, ensure_context
from chatstore.core.exceptions import (
    ConflictError,
    NotFoundError,
    ReferentialViolationError,
    StoreError,
)
from chatstore.db.base import new_uuid
from chatstore.db.session import Database
from chatstore.models.chat_session import ChatSessionRecord
from chatstore.models.user import UserRecord
from chatstore.services.interfaces import ChatSessionManager, User, UserManager
from chatstore.services.sql_chat import SQLChatSessionManager

logger = logging.getLogger(__name__)


class SQLUserHandle(User):
    """Wrapper object for working with one ``users`` row."""

    def __init__(self, manager: "SQLUserManager", record: UserRecord):
        self._manager = manager
        self._db = manager.db
        self._record = record

    def __str__(self) -> str:
        return str(self._record)

    def __repr__(self) -> str:
        return f"SQLUserHandle{self._record}"

    def _load(self, db: Session) -> UserRecord:
        record = db.get(UserRecord, self._record.id)
        if record is None:
            raise NotFoundError(f"User '{self._record.id}' not found")
        return record

    def _apply(
        self,
        ctx: Optional[QueryContext],
        action: str,
        mutate: Callable[[Session, UserRecord], None],
    ) -> None:
        """
        Change this user's row in one transaction and re-read it.

        Args:
            ctx: Query context
            action: Description used in the failure log message
            mutate: Callback applying the change to the loaded row
        """
        ctx = ensure_context(ctx)
        try:
            with self._db.transaction(ctx) as db:
                record = self._load(db)
                mutate(db, record)
                db.flush()
                db.refresh(record)
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to {action} for user {self}: {e.message}")
            raise
        self._record = record

    def get_id(self, ctx: Optional[QueryContext] = None) -> str:
        return self._record.id

    def get_name(self, ctx: Optional[QueryContext] = None) -> str:
        return self._record.name

    def set_name(self, new_name: str, ctx: Optional[QueryContext] = None) -> None:
        def mutate(db: Session, record: UserRecord) -> None:
            record.name = new_name

        try:
            self._apply(ctx, f"update name to '{new_name}'", mutate)
        except ConflictError as e:
            raise ConflictError(f"User name '{new_name}' is already taken") from e

    def get_api_token(self, ctx: Optional[QueryContext] = None) -> str:
        return self._record.api_token

    def set_api_token(self, new_token: str, ctx: Optional[QueryContext] = None) -> None:
        def mutate(db: Session, record: UserRecord) -> None:
            record.api_token = new_token

        self._apply(ctx, "update API token", mutate)

    def get_active_session_id(self, ctx: Optional[QueryContext] = None) -> Optional[str]:
        return self._record.active_session_id

    def set_active_session_id(self, session_id: str, ctx: Optional[QueryContext] = None) -> None:
        def mutate(db: Session, record: UserRecord) -> None:
            owned = (
                db.query(ChatSessionRecord.id)
                .filter(
                    ChatSessionRecord.id == session_id,
                    ChatSessionRecord.user_id == record.id,
                )
                .first()
            )
            if owned is None:
                raise ReferentialViolationError(
                    f"Session '{session_id}' does not exist or is not owned by user '{record.id}'"
                )
            record.active_session_id = session_id

        self._apply(ctx, f"update active session to '{session_id}'", mutate)

    def clear_active_session_id(self, ctx: Optional[QueryContext] = None) -> None:
        def mutate(db: Session, record: UserRecord) -> None:
            record.active_session_id = None

        self._apply(ctx, "clear active session", mutate)

    def refresh(self, ctx: Optional[QueryContext] = None) -> None:
        ctx = ensure_context(ctx)
        try:
            with self._db.transaction(ctx) as db:
                record = self._load(db)
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to refresh user {self} info: {e.message}")
            raise
        self._record = record

    def chat_session_manager(self, ctx: Optional[QueryContext] = None) -> ChatSessionManager:
        return SQLChatSessionManager(self._db, self)

    @property
    def created_at(self) -> datetime:
        return self._record.created_at

    @property
    def updated_at(self) -> datetime:
        return self._record.updated_at


# ============================================================================
# SQL User Manager implementation


class SQLUserManager(UserManager):
    """User store backed by a SQL database."""

    def __init__(self, db: Database):
        self.db = db

    def _define_user_handle(self, record: UserRecord) -> SQLUserHandle:
        return SQLUserHandle(self, record)

    def register_user(self, name: str, ctx: Optional[QueryContext] = None) -> User:
        ctx = ensure_context(ctx)
        logger.debug(f"{ctx.log_prefix()}Defining new user entry for '{name}'")
        try:
            with self.db.transaction(ctx) as db:
                record = UserRecord(id=new_uuid(), name=name, api_token="")
                db.add(record)
                db.flush()
                db.refresh(record)
        except ConflictError as e:
            logger.error(f"{ctx.log_prefix()}User name '{name}' is already taken")
            raise ConflictError(f"User '{name}' already exists") from e
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to define new entry for '{name}': {e.message}")
            raise

        logger.debug(f"{ctx.log_prefix()}Defined new user entry {record}")
        return self._define_user_handle(record)

    def list_users(self, ctx: Optional[QueryContext] = None) -> List[User]:
        ctx = ensure_context(ctx)
        try:
            with self.db.transaction(ctx) as db:
                records = db.query(UserRecord).order_by(UserRecord.created_at).all()
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to list all users: {e.message}")
            raise
        return [self._define_user_handle(record) for record in records]

    def get_user(self, user_id: str, ctx: Optional[QueryContext] = None) -> User:
        ctx = ensure_context(ctx)
        try:
            with self.db.transaction(ctx) as db:
                record = db.get(UserRecord, user_id)
                if record is None:
                    raise NotFoundError(f"User '{user_id}' not found")
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Unable to locate user '{user_id}': {e.message}")
            raise
        return self._define_user_handle(record)

    def get_user_by_name(self, name: str, ctx: Optional[QueryContext] = None) -> User:
        ctx = ensure_context(ctx)
        try:
            with self.db.transaction(ctx) as db:
                record = db.query(UserRecord).filter(UserRecord.name == name).first()
                if record is None:
                    raise NotFoundError(f"User named '{name}' not found")
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Unable to locate user named '{name}': {e.message}")
            raise
        return self._define_user_handle(record)

    def delete_user(self, user_id: str, ctx: Optional[QueryContext] = None) -> None:
        ctx = ensure_context(ctx)
        try:
            with self.db.transaction(ctx) as db:
                # Sessions and their exchanges go with the user (ON DELETE CASCADE)
                deleted = (
                    db.query(UserRecord)
                    .filter(UserRecord.id == user_id)
                    .delete(synchronize_session=False)
                )
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Unable to delete user '{user_id}': {e.message}")
            raise
        logger.debug(f"{ctx.log_prefix()}Deleted {deleted} user entry for '{user_id}'")

    def close(self) -> None:
        self.db.close()
