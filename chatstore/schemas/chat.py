"""
Pydantic schemas for chat session values.

These are the value types handed across the store interface: session wide
request parameters, one recorded exchange and the session state enum.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from chatstore.core.config import settings

# Request parameter bounds
MAX_TOKENS_MIN = 10
MAX_TOKENS_MAX = 4096
TEMPERATURE_MIN = 0.0
TEMPERATURE_MAX = 2.0
TOP_P_MIN = 0.0
TOP_P_MAX = 1.0
PENALTY_MIN = -2.0
PENALTY_MAX = 2.0
MAX_STOP_SEQUENCES = 4


class ChatSessionState(str, Enum):
    """Chat session state. OPEN -> CLOSED is the only transition."""

    OPEN = "session-open"
    CLOSED = "session-close"


class ChatSessionParameters(BaseModel):
    """
    Common request parameters used for one chat session.

    ``model`` and ``max_tokens`` are required; every other field is optional
    and independently nullable.
    """

    model: str = Field(..., min_length=1, description="Target generation model")
    suffix: Optional[str] = Field(None, description="Text appended after the completion")
    max_tokens: int = Field(
        ..., ge=MAX_TOKENS_MIN, le=MAX_TOKENS_MAX, description="Maximum response tokens"
    )
    temperature: Optional[float] = Field(None, ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX)
    top_p: Optional[float] = Field(None, ge=TOP_P_MIN, le=TOP_P_MAX)
    stop: Optional[List[str]] = Field(None, max_length=MAX_STOP_SEQUENCES)
    presence_penalty: Optional[float] = Field(None, ge=PENALTY_MIN, le=PENALTY_MAX)
    frequency_penalty: Optional[float] = Field(None, ge=PENALTY_MIN, le=PENALTY_MAX)

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        allowed = settings.SUPPORTED_MODELS
        if allowed and v not in allowed:
            raise ValueError(f"Model must be one of: {', '.join(allowed)}")
        return v

    def merge_with_new_settings(self, new_settings: "ChatSessionParameters") -> "ChatSessionParameters":
        """
        Merge a new parameter set into this one.

        ``model`` and ``max_tokens`` are always taken from ``new_settings``.
        Optional fields are only taken when present in ``new_settings``
        (non-null, and non-empty for ``stop``).

        Args:
            new_settings: Incoming parameters

        Returns:
            The merged parameters (a new object, self is left untouched)
        """
        merged = self.model_copy(deep=True)
        merged.model = new_settings.model
        merged.max_tokens = new_settings.max_tokens
        for field_name in (
            "suffix",
            "temperature",
            "top_p",
            "presence_penalty",
            "frequency_penalty",
        ):
            value = getattr(new_settings, field_name)
            if value is not None:
                setattr(merged, field_name, value)
        if new_settings.stop:
            merged.stop = list(new_settings.stop)
        return merged


def default_chat_session_params(model: str) -> ChatSessionParameters:
    """Default parameters for a new session using ``model``."""
    return ChatSessionParameters(
        model=model,
        max_tokens=settings.DEFAULT_CHAT_MAX_RESPONSE_TOKENS,
    )


class ChatExchange(BaseModel):
    """One request and its associated response."""

    request: str = Field(..., min_length=1)
    request_ts: datetime
    response: str = Field(..., min_length=1)
    response_ts: datetime
