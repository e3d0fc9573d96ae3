"""
Tests for chat session value types.
"""
import pytest
from pydantic import ValidationError

from chatstore.schemas.chat import (
    ChatExchange,
    ChatSessionParameters,
    ChatSessionState,
    default_chat_session_params,
)


class TestChatSessionParameters:
    """Tests for parameter bounds."""

    def test_defaults(self):
        """Test the parameters of a new session."""
        params = default_chat_session_params("test-model")

        assert params.model == "test-model"
        assert params.max_tokens == 2048
        assert params.temperature is None
        assert params.stop is None

    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_tokens", 9),
            ("max_tokens", 4097),
            ("temperature", 2.1),
            ("top_p", -0.1),
            ("presence_penalty", -2.5),
            ("frequency_penalty", 2.3),
        ],
    )
    def test_out_of_bounds(self, field, value):
        """Test that values outside their range are rejected."""
        raw = {"model": "test-model", "max_tokens": 100, field: value}
        with pytest.raises(ValidationError):
            ChatSessionParameters(**raw)

    def test_empty_model(self):
        """Test that the model name is required."""
        with pytest.raises(ValidationError):
            ChatSessionParameters(model="", max_tokens=100)

    def test_state_values(self):
        """Test the persisted state names."""
        assert ChatSessionState.OPEN.value == "session-open"
        assert ChatSessionState.CLOSED.value == "session-close"


class TestMergeSettings:
    """Tests for merging new parameters into stored ones."""

    def test_merge_keeps_absent_fields(self):
        """Test that null optional fields do not overwrite stored values."""
        current = ChatSessionParameters(
            model="test-model", max_tokens=1024, top_p=0.3, suffix="!", stop=["END"]
        )
        incoming = ChatSessionParameters(model="other-model", max_tokens=551, temperature=0.398)

        merged = current.merge_with_new_settings(incoming)

        assert merged.model == "other-model"
        assert merged.max_tokens == 551
        assert merged.temperature == pytest.approx(0.398)
        assert merged.top_p == pytest.approx(0.3)
        assert merged.suffix == "!"
        assert merged.stop == ["END"]

    def test_merge_empty_stop_keeps_stored(self):
        """Test that an empty stop list is treated as absent."""
        current = ChatSessionParameters(model="test-model", max_tokens=100, stop=["END"])
        incoming = ChatSessionParameters(model="test-model", max_tokens=100, stop=[])

        merged = current.merge_with_new_settings(incoming)

        assert merged.stop == ["END"]

    def test_merge_leaves_current_untouched(self):
        """Test that the stored parameters are left untouched."""
        current = ChatSessionParameters(model="test-model", max_tokens=100, stop=["END"])
        incoming = ChatSessionParameters(model="test-model", max_tokens=200, stop=["STOP"])

        current.merge_with_new_settings(incoming)

        assert current.max_tokens == 100
        assert current.stop == ["END"]


class TestChatExchange:
    """Tests for the exchange value type."""

    @pytest.mark.parametrize("field", ["request", "response"])
    def test_empty_text_rejected(self, field, base_time):
        """Test that request and response text are required."""
        raw = {
            "request": "hello",
            "request_ts": base_time,
            "response": "hi",
            "response_ts": base_time,
            field: "",
        }
        with pytest.raises(ValidationError):
            ChatExchange(**raw)
