from .chat import (  # noqa: F401
    ChatExchange,
    ChatSessionParameters,
    ChatSessionState,
    default_chat_session_params,
)
