"""
Tests for chat session handles: state, settings and exchanges.
"""
from datetime import datetime, timedelta, timezone

import pytest

from chatstore.core.config import settings
from chatstore.core.exceptions import NotFoundError, ValidationFailedError
from chatstore.schemas.chat import ChatSessionParameters, ChatSessionState
from chatstore.services.interfaces import ChatSession, ChatSessionManager


class TestSessionState:
    """Tests for the session state machine."""

    def test_close_session(
        self, chat_manager: ChatSessionManager, test_session: ChatSession
    ):
        """Test closing a session."""
        test_session.close_session()

        assert test_session.session_state() == ChatSessionState.CLOSED
        stored = chat_manager.get_session(test_session.session_id())
        assert stored.session_state() == ChatSessionState.CLOSED

    def test_close_session_twice(self, test_session: ChatSession):
        """Test that closing a closed session is a no-op."""
        test_session.close_session()
        test_session.close_session()

        assert test_session.session_state() == ChatSessionState.CLOSED

    def test_record_on_closed_session(
        self, test_session: ChatSession, make_exchange, base_time
    ):
        """Test that exchanges can still be recorded after closing."""
        test_session.close_session()
        test_session.record_one_exchange(make_exchange("late", base_time))

        assert len(test_session.exchanges()) == 1


class TestSessionSettings:
    """Tests for session wide request parameters."""

    def test_default_settings(self, test_session: ChatSession):
        """Test the settings of a new session."""
        params = test_session.settings()

        assert params.model == "test-model"
        assert params.max_tokens == 2048
        assert params.suffix is None
        assert params.temperature is None
        assert params.top_p is None
        assert params.stop is None
        assert params.presence_penalty is None
        assert params.frequency_penalty is None

    def test_change_settings(
        self, chat_manager: ChatSessionManager, test_session: ChatSession
    ):
        """Test replacing the settings with a full parameter set."""
        new_settings = ChatSessionParameters(
            model="test-model",
            max_tokens=1024,
            temperature=0.7,
            top_p=0.9,
            stop=["\n\n"],
            presence_penalty=0.5,
            frequency_penalty=-0.5,
        )

        test_session.change_settings(new_settings)

        assert test_session.settings() == new_settings
        stored = chat_manager.get_session(test_session.session_id())
        assert stored.settings() == new_settings

    def test_change_settings_merges(self, test_session: ChatSession):
        """Test that absent optional fields keep their stored value."""
        test_session.change_settings(
            {
                "model": "test-model",
                "max_tokens": 1024,
                "top_p": 0.25,
                "stop": ["END"],
                "presence_penalty": 1.0,
            }
        )

        test_session.change_settings(
            {"model": "test-model", "max_tokens": 551, "temperature": 0.398}
        )

        params = test_session.settings()
        assert params.max_tokens == 551
        assert params.temperature == pytest.approx(0.398)
        assert params.top_p == pytest.approx(0.25)
        assert params.stop == ["END"]
        assert params.presence_penalty == pytest.approx(1.0)
        assert params.frequency_penalty is None

    def test_change_settings_invalid(
        self, chat_manager: ChatSessionManager, test_session: ChatSession
    ):
        """Test that an out of bounds value is rejected and nothing changes."""
        before = test_session.settings()

        with pytest.raises(ValidationFailedError) as exc_info:
            test_session.change_settings(
                {"model": "test-model", "max_tokens": 100, "frequency_penalty": 2.3}
            )

        assert any("frequency_penalty" in error for error in exc_info.value.errors)
        assert test_session.settings() == before
        stored = chat_manager.get_session(test_session.session_id())
        assert stored.settings() == before

    def test_change_settings_unvalidated_instance(self, test_session: ChatSession):
        """Test that an instance built without validation is still checked."""
        bad = ChatSessionParameters.model_construct(model="test-model", max_tokens=5)

        with pytest.raises(ValidationFailedError):
            test_session.change_settings(bad)

        assert test_session.settings().max_tokens == 2048

    def test_change_settings_too_many_stops(self, test_session: ChatSession):
        """Test that at most four stop sequences are accepted."""
        with pytest.raises(ValidationFailedError):
            test_session.change_settings(
                {"model": "test-model", "max_tokens": 100, "stop": ["a", "b", "c", "d", "e"]}
            )

    def test_change_settings_updates_model(self, test_session: ChatSession):
        """Test that the session model follows the settings model."""
        test_session.change_settings({"model": "other-model", "max_tokens": 100})

        assert test_session.current_model() == "other-model"

    def test_settings_returns_copy(self, test_session: ChatSession):
        """Test that modifying the returned settings does not touch the session."""
        params = test_session.settings()
        params.max_tokens = 10

        assert test_session.settings().max_tokens == 2048


class TestSessionModel:
    """Tests for changing the session model."""

    def test_change_model(
        self, chat_manager: ChatSessionManager, test_session: ChatSession
    ):
        """Test switching the model of a session."""
        test_session.change_model("other-model")

        assert test_session.current_model() == "other-model"
        assert test_session.settings().model == "other-model"
        stored = chat_manager.get_session(test_session.session_id())
        assert stored.current_model() == "other-model"

    def test_change_model_unsupported(self, monkeypatch, test_session: ChatSession):
        """Test that only configured models are accepted when a list is set."""
        monkeypatch.setattr(settings, "SUPPORTED_MODELS", ["test-model", "other-model"])

        with pytest.raises(ValidationFailedError):
            test_session.change_model("unknown-model")

        assert test_session.current_model() == "test-model"

    def test_new_session_unsupported_model(
        self, monkeypatch, chat_manager: ChatSessionManager
    ):
        """Test that a session cannot be created for an unsupported model."""
        monkeypatch.setattr(settings, "SUPPORTED_MODELS", ["test-model"])

        with pytest.raises(ValidationFailedError):
            chat_manager.new_session("unknown-model")

        assert chat_manager.list_sessions() == []


class TestExchanges:
    """Tests for recording and reading exchanges."""

    def test_no_exchanges(self, test_session: ChatSession):
        """Test an empty exchange log."""
        assert test_session.exchanges() == []
        with pytest.raises(NotFoundError):
            test_session.first_exchange()

    def test_record_exchange(self, test_session: ChatSession, make_exchange, base_time):
        """Test recording one exchange."""
        exchange = make_exchange("hello", base_time)

        test_session.record_one_exchange(exchange)

        assert test_session.exchanges() == [exchange]
        assert test_session.first_exchange() == exchange

    def test_exchanges_ordered_by_request_time(
        self, test_session: ChatSession, make_exchange, base_time
    ):
        """Test that exchanges are listed by request time, not insertion order."""
        for request, offset in (("second", 60), ("first", 0), ("third", 120)):
            test_session.record_one_exchange(
                make_exchange(request, base_time + timedelta(seconds=offset))
            )

        requests = [exchange.request for exchange in test_session.exchanges()]
        assert requests == ["first", "second", "third"]
        assert test_session.first_exchange().request == "first"

    def test_timestamps_normalized_to_utc(
        self, test_session: ChatSession, make_exchange, base_time
    ):
        """Test that timestamps in other zones are ordered by their UTC instant."""
        tokyo = timezone(timedelta(hours=9))
        # 20:00 +09:00 is 11:00 UTC, before base_time
        earlier = datetime(2024, 3, 1, 20, 0, 0, tzinfo=tokyo)
        test_session.record_one_exchange(make_exchange("utc", base_time))
        test_session.record_one_exchange(make_exchange("tokyo", earlier))

        exchanges = test_session.exchanges()
        assert [exchange.request for exchange in exchanges] == ["tokyo", "utc"]
        assert exchanges[0].request_ts == earlier
        assert exchanges[0].request_ts.utcoffset() == timedelta(0)

    def test_naive_timestamp_taken_as_utc(self, test_session: ChatSession, make_exchange):
        """Test that a naive timestamp is stored and returned as UTC."""
        naive = datetime(2024, 3, 1, 12, 0, 0)
        test_session.record_one_exchange(make_exchange("naive", naive))

        stored = test_session.first_exchange()
        assert stored.request_ts == naive.replace(tzinfo=timezone.utc)

    def test_record_same_request_twice(
        self, test_session: ChatSession, make_exchange, base_time
    ):
        """Test that an identical exchange can be recorded again."""
        exchange = make_exchange("hello", base_time)
        test_session.record_one_exchange(exchange)
        test_session.record_one_exchange(exchange)

        assert len(test_session.exchanges()) == 2

    def test_delete_latest_exchange(
        self, test_session: ChatSession, make_exchange, base_time
    ):
        """Test that the exchange with the latest request time is removed."""
        test_session.record_one_exchange(make_exchange("last", base_time + timedelta(minutes=5)))
        test_session.record_one_exchange(make_exchange("first", base_time))

        test_session.delete_latest_exchange()

        requests = [exchange.request for exchange in test_session.exchanges()]
        assert requests == ["first"]

    def test_delete_latest_until_empty(
        self, test_session: ChatSession, make_exchange, base_time
    ):
        """Test deleting every exchange one at a time."""
        test_session.record_one_exchange(make_exchange("only", base_time))

        test_session.delete_latest_exchange()

        assert test_session.exchanges() == []
        with pytest.raises(NotFoundError):
            test_session.delete_latest_exchange()

    def test_delete_latest_scoped_to_session(
        self,
        chat_manager: ChatSessionManager,
        test_session: ChatSession,
        make_exchange,
        base_time,
    ):
        """Test that deleting the latest exchange only touches this session."""
        other_session = chat_manager.new_session("test-model")
        other_session.record_one_exchange(make_exchange("newer", base_time + timedelta(hours=1)))
        test_session.record_one_exchange(make_exchange("older", base_time))

        test_session.delete_latest_exchange()

        assert test_session.exchanges() == []
        assert len(other_session.exchanges()) == 1


class TestSessionHandle:
    """Tests for generic handle behavior."""

    def test_refresh_sees_other_handle_changes(
        self, chat_manager: ChatSessionManager, test_session: ChatSession
    ):
        """Test that a session handle is a snapshot until refreshed."""
        other_handle = chat_manager.get_session(test_session.session_id())
        other_handle.close_session()

        assert test_session.session_state() == ChatSessionState.OPEN
        test_session.refresh()
        assert test_session.session_state() == ChatSessionState.CLOSED

    def test_timestamps(self, test_session: ChatSession):
        """Test the creation and update timestamps."""
        created = test_session.created_at
        assert created.tzinfo is not None

        test_session.close_session()
        assert test_session.updated_at >= created
