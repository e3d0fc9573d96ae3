from .interfaces import ChatSession, ChatSessionManager, User, UserManager  # noqa: F401
from .sql_chat import SQLChatSessionHandle, SQLChatSessionManager  # noqa: F401
from .sql_user import SQLUserHandle, SQLUserManager  # noqa: F401
from .factory import get_user_manager  # noqa: F401
