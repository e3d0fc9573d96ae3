"""
chatstore - persistence layer for multi-user chat sessions.

Users own chat sessions; each session records the exchanges made with a text
generation model together with its request parameters.
"""
from chatstore.core.context import QueryContext  # noqa: F401
from chatstore.core.exceptions import (  # noqa: F401
    ConflictError,
    NotFoundError,
    OperationCancelledError,
    ReferentialViolationError,
    StorageFailureError,
    StoreError,
    ValidationFailedError,
)
from chatstore.core.logging_config import setup_logging  # noqa: F401
from chatstore.db import Database  # noqa: F401
from chatstore.schemas import (  # noqa: F401
    ChatExchange,
    ChatSessionParameters,
    ChatSessionState,
    default_chat_session_params,
)
from chatstore.services import (  # noqa: F401
    ChatSession,
    ChatSessionManager,
    SQLUserManager,
    User,
    UserManager,
    get_user_manager,
)

__version__ = "0.1.0"
