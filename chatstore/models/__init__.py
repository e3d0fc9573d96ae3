from chatstore.db.base import Base  # noqa: F401

from .user import UserRecord  # noqa: F401
from .chat_session import ChatSessionRecord  # noqa: F401
from .chat_exchange import ChatExchangeRecord  # noqa: F401
