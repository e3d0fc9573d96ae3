"""
Pytest configuration and fixtures for the test suite.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

# Set test environment before importing the package
os.environ["ENV"] = "development"

from chatstore.db.session import Database
from chatstore.schemas.chat import ChatExchange
from chatstore.services.interfaces import ChatSession, ChatSessionManager, User
from chatstore.services.sql_user import SQLUserManager

TEST_MODEL = "test-model"


@pytest.fixture(scope="function")
def db(tmp_path) -> Generator[Database, None, None]:
    """Create a fresh file backed database for each test."""
    database = Database.open(str(tmp_path / "test.db"))
    try:
        yield database
    finally:
        database.close()


@pytest.fixture(scope="function")
def memory_db() -> Generator[Database, None, None]:
    """Create a fresh in-memory database."""
    database = Database.open_memory()
    try:
        yield database
    finally:
        database.close()


@pytest.fixture
def user_manager(db: Database) -> SQLUserManager:
    """User store bound to the test database."""
    return SQLUserManager(db)


@pytest.fixture
def test_user(user_manager: SQLUserManager) -> User:
    """Create a test user."""
    return user_manager.register_user("testuser")


@pytest.fixture
def other_user(user_manager: SQLUserManager) -> User:
    """Create another user for isolation tests."""
    return user_manager.register_user("otheruser")


@pytest.fixture
def chat_manager(test_user: User) -> ChatSessionManager:
    """Chat session store of the test user."""
    return test_user.chat_session_manager()


@pytest.fixture
def test_session(chat_manager: ChatSessionManager) -> ChatSession:
    """Create a test chat session."""
    return chat_manager.new_session(TEST_MODEL)


@pytest.fixture
def make_exchange():
    """Factory for exchanges whose response arrives one second after the request."""

    def _make(request: str, request_ts: datetime) -> ChatExchange:
        return ChatExchange(
            request=request,
            request_ts=request_ts,
            response=f"response to {request}",
            response_ts=request_ts + timedelta(seconds=1),
        )

    return _make


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
