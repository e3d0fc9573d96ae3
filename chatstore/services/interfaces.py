"""
Store interfaces.

Abstract base classes for the user and chat session stores. Callers depend
only on these, so a different backend can be swapped in without touching the
handle contracts. The SQL implementation lives in ``sql_user`` / ``sql_chat``.

Every method accepts an optional ``ctx`` (QueryContext) carrying a deadline,
a cancel flag and log tags.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Union

from chatstore.core.context import QueryContext
from chatstore.schemas.chat import ChatExchange, ChatSessionParameters, ChatSessionState


class ChatSession(ABC):
    """
    Handle on one chat session with a text generation model.

    Records the requests and responses between the user and the model.
    """

    @abstractmethod
    def session_id(self, ctx: Optional[QueryContext] = None) -> str:
        """This chat session's ID."""
        pass

    @abstractmethod
    def session_state(self, ctx: Optional[QueryContext] = None) -> ChatSessionState:
        """Session's current state."""
        pass

    @abstractmethod
    def close_session(self, ctx: Optional[QueryContext] = None) -> None:
        """Close this chat session. Closing a closed session is a no-op."""
        pass

    @abstractmethod
    def user(self, ctx: Optional[QueryContext] = None) -> "User":
        """The user owning this session (the handle bound at creation)."""
        pass

    @abstractmethod
    def current_model(self, ctx: Optional[QueryContext] = None) -> str:
        """Currently selected text model."""
        pass

    @abstractmethod
    def change_model(self, new_model: str, ctx: Optional[QueryContext] = None) -> None:
        """
        Change the model used by the session.

        Args:
            new_model: Name of the new model
        """
        pass

    @abstractmethod
    def settings(self, ctx: Optional[QueryContext] = None) -> ChatSessionParameters:
        """Current session wide request parameters."""
        pass

    @abstractmethod
    def change_settings(
        self,
        new_settings: Union[ChatSessionParameters, Mapping[str, Any]],
        ctx: Optional[QueryContext] = None,
    ) -> None:
        """
        Validate and merge new session wide request parameters.

        Args:
            new_settings: New parameters; absent optional fields keep their value

        Raises:
            ValidationFailedError: If new_settings violates a bound (nothing is changed)
        """
        pass

    @abstractmethod
    def record_one_exchange(
        self, exchange: ChatExchange, ctx: Optional[QueryContext] = None
    ) -> None:
        """
        Record a single exchange.

        Args:
            exchange: The request and its response, with caller supplied timestamps
        """
        pass

    @abstractmethod
    def first_exchange(self, ctx: Optional[QueryContext] = None) -> ChatExchange:
        """
        Earliest exchange by request timestamp.

        Raises:
            NotFoundError: If the session has no exchanges
        """
        pass

    @abstractmethod
    def exchanges(self, ctx: Optional[QueryContext] = None) -> List[ChatExchange]:
        """All exchanges, ascending by request timestamp."""
        pass

    @abstractmethod
    def delete_latest_exchange(self, ctx: Optional[QueryContext] = None) -> None:
        """
        Delete the exchange with the latest request timestamp.

        Raises:
            NotFoundError: If the session has no exchanges
        """
        pass

    @abstractmethod
    def refresh(self, ctx: Optional[QueryContext] = None) -> None:
        """Sync the handle with what is stored."""
        pass

    @property
    @abstractmethod
    def created_at(self) -> datetime:
        pass

    @property
    @abstractmethod
    def updated_at(self) -> datetime:
        pass


class ChatSessionManager(ABC):
    """Chat session management for one user."""

    @abstractmethod
    def new_session(self, model: str, ctx: Optional[QueryContext] = None) -> ChatSession:
        """
        Define a new chat session.

        Args:
            model: Model name

        Returns:
            New open session with default settings
        """
        pass

    @abstractmethod
    def list_sessions(self, ctx: Optional[QueryContext] = None) -> List[ChatSession]:
        """List all sessions of the user."""
        pass

    @abstractmethod
    def get_session(self, session_id: str, ctx: Optional[QueryContext] = None) -> ChatSession:
        """
        Fetch a session of the user.

        Raises:
            NotFoundError: Unknown ID, or the session belongs to another user
        """
        pass

    @abstractmethod
    def current_active_session(self, ctx: Optional[QueryContext] = None) -> Optional[ChatSession]:
        """The user's active session, or None if none is set."""
        pass

    @abstractmethod
    def set_active_session(self, session: ChatSession, ctx: Optional[QueryContext] = None) -> None:
        """Make ``session`` the user's active session."""
        pass

    @abstractmethod
    def delete_session(self, session_id: str, ctx: Optional[QueryContext] = None) -> None:
        """Delete one session of the user."""
        pass

    @abstractmethod
    def delete_multiple_sessions(
        self, session_ids: Sequence[str], ctx: Optional[QueryContext] = None
    ) -> None:
        """Delete several sessions of the user in one transaction."""
        pass

    @abstractmethod
    def delete_all_sessions(self, ctx: Optional[QueryContext] = None) -> None:
        """Delete every session of the user."""
        pass


class User(ABC):
    """
    One user of the system. This includes

    - User ID
    - User name
    - User API token
    - The user's active chat session
    """

    @abstractmethod
    def get_id(self, ctx: Optional[QueryContext] = None) -> str:
        pass

    @abstractmethod
    def get_name(self, ctx: Optional[QueryContext] = None) -> str:
        pass

    @abstractmethod
    def set_name(self, new_name: str, ctx: Optional[QueryContext] = None) -> None:
        """
        Rename the user.

        Raises:
            ConflictError: If another user already has ``new_name``
        """
        pass

    @abstractmethod
    def get_api_token(self, ctx: Optional[QueryContext] = None) -> str:
        pass

    @abstractmethod
    def set_api_token(self, new_token: str, ctx: Optional[QueryContext] = None) -> None:
        pass

    @abstractmethod
    def get_active_session_id(self, ctx: Optional[QueryContext] = None) -> Optional[str]:
        pass

    @abstractmethod
    def set_active_session_id(self, session_id: str, ctx: Optional[QueryContext] = None) -> None:
        """
        Change the user's active session.

        Raises:
            ReferentialViolationError: If the session does not exist or is not owned by this user
        """
        pass

    @abstractmethod
    def clear_active_session_id(self, ctx: Optional[QueryContext] = None) -> None:
        pass

    @abstractmethod
    def refresh(self, ctx: Optional[QueryContext] = None) -> None:
        """Sync the handle with what is stored."""
        pass

    @abstractmethod
    def chat_session_manager(self, ctx: Optional[QueryContext] = None) -> ChatSessionManager:
        """Chat session manager scoped to this user."""
        pass

    @property
    @abstractmethod
    def created_at(self) -> datetime:
        pass

    @property
    @abstractmethod
    def updated_at(self) -> datetime:
        pass


class UserManager(ABC):
    """User management client."""

    @abstractmethod
    def register_user(self, name: str, ctx: Optional[QueryContext] = None) -> User:
        """
        Record a new system user.

        Raises:
            ConflictError: If the name is already taken
        """
        pass

    @abstractmethod
    def list_users(self, ctx: Optional[QueryContext] = None) -> List[User]:
        pass

    @abstractmethod
    def get_user(self, user_id: str, ctx: Optional[QueryContext] = None) -> User:
        """
        Raises:
            NotFoundError: Unknown user ID
        """
        pass

    @abstractmethod
    def get_user_by_name(self, name: str, ctx: Optional[QueryContext] = None) -> User:
        """
        Raises:
            NotFoundError: Unknown user name
        """
        pass

    @abstractmethod
    def delete_user(self, user_id: str, ctx: Optional[QueryContext] = None) -> None:
        """Delete a user with all sessions. Unknown IDs are a no-op."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying storage."""
        pass
