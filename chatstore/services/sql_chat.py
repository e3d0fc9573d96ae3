"""
SQL backed chat session store.

SQLChatSessionManager is scoped to one user: every query filters on the
owning user ID, so sessions of other users are neither visible nor
reachable. Sessions are returned as SQLChatSessionHandle objects caching the
last read ``chat_sessions`` row.
"""
import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from chatstore.core.context import QueryContext, ensure_context
from chatstore.core.exceptions import NotFoundError, StoreError, ValidationFailedError
from chatstore.db.base import new_sortable_id
from chatstore.db.session import Database
from chatstore.models.chat_exchange import ChatExchangeRecord
from chatstore.models.chat_session import ChatSessionRecord
from chatstore.schemas.chat import (
    ChatExchange,
    ChatSessionParameters,
    ChatSessionState,
    default_chat_session_params,
)
from chatstore.services.interfaces import ChatSession, ChatSessionManager, User

logger = logging.getLogger(__name__)


def _validation_errors(exc: ValidationError) -> List[str]:
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append(f"{field}: {error['msg']}")
    return errors


def _validate_parameters(
    params: Union[ChatSessionParameters, Mapping[str, Any]],
) -> ChatSessionParameters:
    """
    Validate request parameters supplied as a model or a plain mapping.

    Models are validated again, so instances built with ``model_construct``
    or mutated after creation cannot bypass the bounds.

    Raises:
        ValidationFailedError: If any field is out of bounds
    """
    raw = params.model_dump() if isinstance(params, ChatSessionParameters) else dict(params)
    try:
        return ChatSessionParameters.model_validate(raw)
    except ValidationError as e:
        raise ValidationFailedError("Chat session parameters not valid", _validation_errors(e)) from e


def _to_exchange(record: ChatExchangeRecord) -> ChatExchange:
    return ChatExchange(
        request=record.request,
        request_ts=record.request_ts,
        response=record.response,
        response_ts=record.response_ts,
    )


class SQLChatSessionHandle(ChatSession):
    """Wrapper object for working with one ``chat_sessions`` row."""

    def __init__(self, manager: "SQLChatSessionManager", record: ChatSessionRecord):
        self._manager = manager
        self._db = manager.db
        self._record = record

    def __repr__(self) -> str:
        return f"SQLChatSessionHandle({self._record.id})"

    def _load(self, db: Session) -> ChatSessionRecord:
        record = (
            db.query(ChatSessionRecord)
            .filter(
                ChatSessionRecord.id == self._record.id,
                ChatSessionRecord.user_id == self._record.user_id,
            )
            .first()
        )
        if record is None:
            raise NotFoundError(f"Chat session '{self._record.id}' not found")
        return record

    def _apply(
        self,
        ctx: Optional[QueryContext],
        action: str,
        mutate: Callable[[Session, ChatSessionRecord], None],
    ) -> None:
        ctx = ensure_context(ctx)
        try:
            with self._db.transaction(ctx) as db:
                record = self._load(db)
                mutate(db, record)
                db.flush()
                db.refresh(record)
        except StoreError as e:
            logger.error(
                f"{ctx.log_prefix()}Failed to {action} for chat session '{self._record.id}': {e.message}"
            )
            raise
        self._record = record

    def session_id(self, ctx: Optional[QueryContext] = None) -> str:
        return self._record.id

    def session_state(self, ctx: Optional[QueryContext] = None) -> ChatSessionState:
        return ChatSessionState(self._record.state)

    def close_session(self, ctx: Optional[QueryContext] = None) -> None:
        def mutate(db: Session, record: ChatSessionRecord) -> None:
            record.state = ChatSessionState.CLOSED.value

        self._apply(ctx, f"update session state to '{ChatSessionState.CLOSED.value}'", mutate)

    def user(self, ctx: Optional[QueryContext] = None) -> User:
        return self._manager.user

    def current_model(self, ctx: Optional[QueryContext] = None) -> str:
        return self._record.model

    def change_model(self, new_model: str, ctx: Optional[QueryContext] = None) -> None:
        def mutate(db: Session, record: ChatSessionRecord) -> None:
            current = ChatSessionParameters.model_validate(record.settings)
            updated = _validate_parameters({**current.model_dump(), "model": new_model})
            record.model = updated.model
            record.settings = updated.model_dump(mode="json")

        self._apply(ctx, f"update session model to '{new_model}'", mutate)

    def settings(self, ctx: Optional[QueryContext] = None) -> ChatSessionParameters:
        return ChatSessionParameters.model_validate(self._record.settings)

    def change_settings(
        self,
        new_settings: Union[ChatSessionParameters, Mapping[str, Any]],
        ctx: Optional[QueryContext] = None,
    ) -> None:
        ctx = ensure_context(ctx)
        try:
            incoming = _validate_parameters(new_settings)
        except ValidationFailedError as e:
            logger.error(f"{ctx.log_prefix()}New setting not valid: {e.detail}")
            raise

        def mutate(db: Session, record: ChatSessionRecord) -> None:
            # Merge onto the stored row, not the cached one
            current = ChatSessionParameters.model_validate(record.settings)
            merged = current.merge_with_new_settings(incoming)
            record.settings = merged.model_dump(mode="json")
            record.model = merged.model

        self._apply(ctx, "update session common settings", mutate)

    def record_one_exchange(
        self, exchange: ChatExchange, ctx: Optional[QueryContext] = None
    ) -> None:
        ctx = ensure_context(ctx)
        exchange_id = new_sortable_id()
        logger.debug(f"{ctx.log_prefix()}Define new chat exchange '{exchange_id}'")
        try:
            with self._db.transaction(ctx) as db:
                self._load(db)
                db.add(
                    ChatExchangeRecord(
                        id=exchange_id,
                        session_id=self._record.id,
                        request=exchange.request,
                        request_ts=exchange.request_ts,
                        response=exchange.response,
                        response_ts=exchange.response_ts,
                    )
                )
        except StoreError as e:
            logger.error(
                f"{ctx.log_prefix()}Failed to define new entry for chat exchange '{exchange_id}': {e.message}"
            )
            raise
        logger.debug(f"{ctx.log_prefix()}Defined new chat exchange '{exchange_id}'")

    def _ordered_exchanges(self, db: Session, latest_first: bool = False):
        query = db.query(ChatExchangeRecord).filter(
            ChatExchangeRecord.session_id == self._record.id
        )
        if latest_first:
            return query.order_by(
                ChatExchangeRecord.request_ts.desc(),
                ChatExchangeRecord.created_at.desc(),
                ChatExchangeRecord.id.desc(),
            )
        return query.order_by(
            ChatExchangeRecord.request_ts,
            ChatExchangeRecord.created_at,
            ChatExchangeRecord.id,
        )

    def first_exchange(self, ctx: Optional[QueryContext] = None) -> ChatExchange:
        ctx = ensure_context(ctx)
        try:
            with self._db.transaction(ctx) as db:
                record = self._ordered_exchanges(db).first()
                if record is None:
                    raise NotFoundError(f"Chat session '{self._record.id}' has no exchanges")
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to get first session exchange: {e.message}")
            raise
        return _to_exchange(record)

    def exchanges(self, ctx: Optional[QueryContext] = None) -> List[ChatExchange]:
        ctx = ensure_context(ctx)
        try:
            with self._db.transaction(ctx) as db:
                records = self._ordered_exchanges(db).all()
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to get session exchanges: {e.message}")
            raise
        return [_to_exchange(record) for record in records]

    def delete_latest_exchange(self, ctx: Optional[QueryContext] = None) -> None:
        ctx = ensure_context(ctx)
        try:
            with self._db.transaction(ctx) as db:
                latest = self._ordered_exchanges(db, latest_first=True).first()
                if latest is None:
                    raise NotFoundError(f"Chat session '{self._record.id}' has no exchanges")
                exchange_id = latest.id
                db.delete(latest)
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to delete latest session exchange: {e.message}")
            raise
        logger.debug(f"{ctx.log_prefix()}Deleted chat exchange '{exchange_id}'")

    def refresh(self, ctx: Optional[QueryContext] = None) -> None:
        ctx = ensure_context(ctx)
        try:
            with self._db.transaction(ctx) as db:
                record = self._load(db)
        except StoreError as e:
            logger.error(
                f"{ctx.log_prefix()}Failed to refresh chat session '{self._record.id}' info: {e.message}"
            )
            raise
        self._record = record

    @property
    def created_at(self) -> datetime:
        return self._record.created_at

    @property
    def updated_at(self) -> datetime:
        return self._record.updated_at


# ============================================================================
# SQL Chat Session Manager implementation


class SQLChatSessionManager(ChatSessionManager):
    """Chat session store of one user, backed by a SQL database."""

    def __init__(self, db: Database, user: User):
        self.db = db
        self.user = user

    def _define_session_handle(self, record: ChatSessionRecord) -> SQLChatSessionHandle:
        return SQLChatSessionHandle(self, record)

    def _resync_user(self, ctx: QueryContext) -> None:
        # The deleted session may have been the user's active session (ON DELETE SET NULL)
        try:
            self.user.refresh(QueryContext(tags=dict(ctx.tags)))
        except NotFoundError:
            # Owner deleted concurrently; the session delete itself committed
            logger.warning(
                f"{ctx.log_prefix()}User {self.user} no longer exists, skipping refresh after session delete"
            )
        except StoreError as e:
            logger.error(
                f"{ctx.log_prefix()}Failed to refresh user entry after session delete: {e.message}"
            )
            raise

    def new_session(self, model: str, ctx: Optional[QueryContext] = None) -> ChatSession:
        ctx = ensure_context(ctx)
        session_id = new_sortable_id()
        logger.debug(f"{ctx.log_prefix()}Defining new chat session '{session_id}'")
        try:
            params = default_chat_session_params(model)
        except ValidationError as e:
            logger.error(f"{ctx.log_prefix()}Model '{model}' not accepted for new session")
            raise ValidationFailedError(
                "Chat session parameters not valid", _validation_errors(e)
            ) from e

        user_id = self.user.get_id(ctx)
        try:
            with self.db.transaction(ctx) as db:
                record = ChatSessionRecord(
                    id=session_id,
                    user_id=user_id,
                    state=ChatSessionState.OPEN.value,
                    model=model,
                    settings=params.model_dump(mode="json"),
                )
                db.add(record)
                db.flush()
                db.refresh(record)
        except StoreError as e:
            logger.error(
                f"{ctx.log_prefix()}Failed to define new entry for session '{session_id}': {e.message}"
            )
            raise

        logger.debug(f"{ctx.log_prefix()}Defined new chat session '{session_id}'")
        return self._define_session_handle(record)

    def list_sessions(self, ctx: Optional[QueryContext] = None) -> List[ChatSession]:
        ctx = ensure_context(ctx)
        user_id = self.user.get_id(ctx)
        try:
            with self.db.transaction(ctx) as db:
                records = (
                    db.query(ChatSessionRecord)
                    .filter(ChatSessionRecord.user_id == user_id)
                    .order_by(ChatSessionRecord.created_at, ChatSessionRecord.id)
                    .all()
                )
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Failed to list all chat sessions: {e.message}")
            raise
        return [self._define_session_handle(record) for record in records]

    def get_session(self, session_id: str, ctx: Optional[QueryContext] = None) -> ChatSession:
        ctx = ensure_context(ctx)
        user_id = self.user.get_id(ctx)
        try:
            with self.db.transaction(ctx) as db:
                record = (
                    db.query(ChatSessionRecord)
                    .filter(
                        ChatSessionRecord.id == session_id,
                        ChatSessionRecord.user_id == user_id,
                    )
                    .first()
                )
                if record is None:
                    raise NotFoundError(f"Chat session '{session_id}' not found")
        except StoreError as e:
            logger.error(
                f"{ctx.log_prefix()}Failed to query entry for session '{session_id}': {e.message}"
            )
            raise
        return self._define_session_handle(record)

    def current_active_session(self, ctx: Optional[QueryContext] = None) -> Optional[ChatSession]:
        active_session_id = self.user.get_active_session_id(ctx)
        if active_session_id is None:
            return None
        return self.get_session(active_session_id, ctx)

    def set_active_session(self, session: ChatSession, ctx: Optional[QueryContext] = None) -> None:
        self.user.set_active_session_id(session.session_id(ctx), ctx)

    def _delete_where(self, ctx: QueryContext, description: str, *criteria) -> None:
        user_id = self.user.get_id(ctx)
        try:
            with self.db.transaction(ctx) as db:
                # Exchanges go with their session (ON DELETE CASCADE)
                deleted = (
                    db.query(ChatSessionRecord)
                    .filter(ChatSessionRecord.user_id == user_id, *criteria)
                    .delete(synchronize_session=False)
                )
        except StoreError as e:
            logger.error(f"{ctx.log_prefix()}Unable to delete {description}: {e.message}")
            raise
        logger.debug(f"{ctx.log_prefix()}Deleted {deleted} chat session(s) for {description}")
        self._resync_user(ctx)

    def delete_session(self, session_id: str, ctx: Optional[QueryContext] = None) -> None:
        ctx = ensure_context(ctx)
        self._delete_where(
            ctx, f"chat session '{session_id}'", ChatSessionRecord.id == session_id
        )

    def delete_multiple_sessions(
        self, session_ids: Sequence[str], ctx: Optional[QueryContext] = None
    ) -> None:
        ctx = ensure_context(ctx)
        self._delete_where(
            ctx,
            f"chat sessions {list(session_ids)}",
            ChatSessionRecord.id.in_(list(session_ids)),
        )

    def delete_all_sessions(self, ctx: Optional[QueryContext] = None) -> None:
        ctx = ensure_context(ctx)
        self._delete_where(ctx, "all chat sessions")
