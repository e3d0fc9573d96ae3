from typing import List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "chatstore"

    # ===========================================
    # Environment Mode
    # ===========================================
    ENV: Literal["development", "production"] = "development"

    # ===========================================
    # Logging
    # ===========================================
    LOG_LEVEL: Literal["debug", "info", "warn", "error"] = "info"

    # ===========================================
    # Database
    # ===========================================
    # Backend: "sqlite" (file backed) or "memory" (in-process, non durable)
    STORE_BACKEND: Literal["sqlite", "memory"] = "sqlite"
    DATABASE_PATH: str = "~/.config/chatstore/persistence.db"
    # Echo every SQL statement through the sqlalchemy.engine logger
    DB_ECHO: bool = False
    # Seconds a writer waits on a locked database file before failing
    DB_BUSY_TIMEOUT: float = 30.0

    # ===========================================
    # Chat Session Defaults
    # ===========================================
    DEFAULT_CHAT_MAX_RESPONSE_TOKENS: int = 2048
    # Models accepted in session settings (empty = accept any model name)
    SUPPORTED_MODELS: List[str] = []

    @field_validator("DB_BUSY_TIMEOUT")
    @classmethod
    def validate_busy_timeout(cls, v: float) -> float:
        """Busy timeout must be non-negative."""
        if v < 0:
            raise ValueError("DB_BUSY_TIMEOUT must not be negative")
        return v

    class Config:
        env_file = ".env"


settings = Settings()
