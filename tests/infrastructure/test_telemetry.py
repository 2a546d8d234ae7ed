"""
Tests for telemetry.py (Langfuse client mocked)
"""

import pytest
from unittest.mock import MagicMock, patch

from prompt_replay.domain.value_objects import TokenUsage
from prompt_replay.infrastructure.telemetry import Telemetry, get_telemetry, reset_telemetry
from prompt_replay.replay_config import LangfuseConfig


@pytest.fixture(autouse=True)
def _reset_singleton():
    reset_telemetry()
    yield
    reset_telemetry()


class TestTelemetry:
    """Tests for the Telemetry wrapper"""

    def test_disabled_is_noop(self):
        telemetry = Telemetry(None)
        assert not telemetry.enabled
        assert telemetry.create_run_trace("t1", "eval-run-x") == "t1"
        telemetry.update_run_trace("t1", output={})
        telemetry.record_generation("t1", "eval-a", "m", input="hi")
        telemetry.flush()

    def test_create_and_update_run_trace(self):
        client = MagicMock()
        telemetry = Telemetry(client)

        trace_id = telemetry.create_run_trace("run-1", "eval-run-x", metadata={"a": 1}, input={"b": 2})
        telemetry.update_run_trace("run-1", output={"successCount": 1}, metadata={"completed": True})

        assert trace_id == "run-1"
        assert client.trace.call_args_list[0].kwargs == {
            "id": "run-1", "name": "eval-run-x", "metadata": {"a": 1}, "input": {"b": 2},
        }
        assert client.trace.call_args_list[1].kwargs == {
            "id": "run-1", "output": {"successCount": 1}, "metadata": {"completed": True},
        }

    def test_record_generation_with_usage(self):
        client = MagicMock()
        Telemetry(client).record_generation(
            trace_id="run-1",
            name="eval-t1",
            model="gpt-4.1-mini",
            input=[{"role": "user", "content": "hi"}],
            output="hello",
            usage=TokenUsage(input=3, output=1, total=4),
            metadata={"sessionId": "t1"},
        )
        kwargs = client.generation.call_args.kwargs
        assert kwargs["usage"] == {"input": 3, "output": 1, "total": 4}
        assert kwargs["metadata"] == {"sessionId": "t1"}
        assert "level" not in kwargs

    def test_record_generation_error(self):
        client = MagicMock()
        Telemetry(client).record_generation("run-1", "eval-t1", "m", input="hi", error="rate limited")
        kwargs = client.generation.call_args.kwargs
        assert kwargs["level"] == "ERROR"
        assert kwargs["status_message"] == "rate limited"

    def test_flush(self):
        client = MagicMock()
        Telemetry(client).flush()
        client.flush.assert_called_once()


class TestGetTelemetry:
    """Tests for the process-wide handle"""

    def test_disabled_without_keys(self):
        telemetry = get_telemetry(LangfuseConfig())
        assert not telemetry.enabled

    @patch("prompt_replay.infrastructure.telemetry.Langfuse")
    def test_enabled_with_keys_and_cached(self, mock_langfuse):
        config = LangfuseConfig(public_key="pk", secret_key="sk", base_url="https://h")
        first = get_telemetry(config)
        second = get_telemetry()

        assert first is second
        assert first.enabled
        mock_langfuse.assert_called_once_with(public_key="pk", secret_key="sk", host="https://h")
