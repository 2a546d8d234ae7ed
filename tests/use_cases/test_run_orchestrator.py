"""
Tests for run_orchestrator.py
"""

import threading
import time

import pytest
from unittest.mock import MagicMock

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.domain.entities import EvalRunRequest, TraceObservationPair
from prompt_replay.domain.errors import PersistenceError
from prompt_replay.domain.value_objects import ModelResponse, ReplayInputs, TokenUsage
from prompt_replay.infrastructure.blob_store import LocalBlobStore
from prompt_replay.infrastructure.model_clients.base import ModelClient
from prompt_replay.infrastructure.steps import InMemoryCheckpointStore, StepRunner
from prompt_replay.infrastructure.telemetry import Telemetry
from prompt_replay.use_cases.run_orchestrator import (
    ReplayServices,
    build_observation_lookup,
    handle_run_event,
    results_blob_key,
    run_in_batches,
    run_traces_eval,
)


class EchoClient(ModelClient):
    provider = ModelProvider.OPENAI
    model_name = "gpt-4.1-mini"

    def generate(self, request):
        return ModelResponse(
            text=request.messages[-1].content,
            latency_ms=1,
            model_name=self.model_name,
            usage=TokenUsage(input=1, output=1, total=2),
        )


class FakeResolver:
    def __init__(self, missing=()):
        self.missing = set(missing)

    def resolve(self, trace_id, prompt_name=None, observation_id=None):
        if trace_id in self.missing:
            return None
        return ReplayInputs(variables={"name": trace_id}, source="trace:metadata")


class FailingBlobStore:
    def put(self, key, payload):
        raise PersistenceError("disk full")


def _services(tmp_path, resolver=None, blob_store=None, telemetry=None, client_factory=None):
    return ReplayServices(
        resolver=resolver or FakeResolver(),
        client_factory=client_factory or (lambda provider, model: EchoClient()),
        telemetry=telemetry or Telemetry(MagicMock()),
        blob_store=blob_store or LocalBlobStore(str(tmp_path / "results")),
        checkpoint_dir=str(tmp_path / "checkpoints"),
    )


def _request(trace_ids, **overrides):
    params = {
        "draft_prompt": "Hello {{name}}!",
        "trace_ids": trace_ids,
        "model": "gpt-4.1-mini",
        "provider": ModelProvider.OPENAI,
        "eval_name": "greet-v2",
        "original_prompt_name": "workflow/greet",
    }
    params.update(overrides)
    return EvalRunRequest(**params)


class TestRunInBatches:
    """Tests for run_in_batches()"""

    def test_batches_are_sequential_and_bounded(self):
        """23 items with batch size 10 run as 3 batches, never overlapping"""
        lock = threading.Lock()
        state = {"active": 0, "max_active": 0}
        spans = []

        def work(item):
            with lock:
                state["active"] += 1
                state["max_active"] = max(state["max_active"], state["active"])
            start = time.monotonic()
            time.sleep(0.01)
            end = time.monotonic()
            with lock:
                state["active"] -= 1
                spans.append((item, start, end))
            return item * 2

        items = list(range(23))
        results = run_in_batches(items, 10, work)

        assert results == [i * 2 for i in items]
        assert state["max_active"] <= 10

        batches = [items[0:10], items[10:20], items[20:23]]
        assert [len(b) for b in batches] == [10, 10, 3]
        by_item = {item: (start, end) for item, start, end in spans}
        for previous, following in zip(batches, batches[1:]):
            previous_end = max(by_item[i][1] for i in previous)
            following_start = min(by_item[i][0] for i in following)
            assert previous_end <= following_start

    def test_preserves_order(self):
        def slow_first(item):
            time.sleep(0.02 if item == 0 else 0)
            return item

        assert run_in_batches([0, 1, 2], 3, slow_first) == [0, 1, 2]

    def test_empty(self):
        assert run_in_batches([], 5, lambda x: x) == []

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError, match="batch_size"):
            run_in_batches([1], 0, lambda x: x)


class TestBuildObservationLookup:
    """Tests for build_observation_lookup()"""

    def test_lookup(self):
        pairs = [TraceObservationPair("t1", "o1"), TraceObservationPair("t2", "o2")]
        lookup = build_observation_lookup(pairs)
        assert lookup["t2"].observation_id == "o2"
        assert build_observation_lookup([]) == {}


class TestRunTracesEval:
    """Tests for run_traces_eval()"""

    def test_successful_run(self, tmp_path):
        telemetry_client = MagicMock()
        services = _services(tmp_path, telemetry=Telemetry(telemetry_client))

        result = run_traces_eval(_request(["a", "b"], langfuse_trace_id="run-fixed"), services)

        assert result.total_traces == 2
        assert result.success_count == 2
        assert result.failure_count == 0
        assert [r.output for r in result.results] == ["Hello a!", "Hello b!"]
        assert result.langfuse_trace_id == "run-fixed"
        assert result.results_url.startswith("file://")
        assert result.duration_ms >= 0

        stored = tmp_path / "results" / f"{results_blob_key('greet-v2', result.eval_id)}.json"
        assert stored.exists()

        create_call, update_call = telemetry_client.trace.call_args_list
        assert create_call.kwargs["id"] == "run-fixed"
        assert create_call.kwargs["name"] == "eval-run-greet-v2"
        assert create_call.kwargs["input"]["traceIds"] == ["a", "b"]
        assert update_call.kwargs["output"]["successCount"] == 2
        assert update_call.kwargs["metadata"] == {"completed": True, "resultsUrl": result.results_url}
        assert telemetry_client.generation.call_count == 2
        telemetry_client.flush.assert_called_once()

    def test_draft_prompt_is_truncated_in_run_trace(self, tmp_path):
        telemetry_client = MagicMock()
        services = _services(tmp_path, telemetry=Telemetry(telemetry_client))

        run_traces_eval(_request(["a"], draft_prompt="x" * 1500), services)

        assert len(telemetry_client.trace.call_args_list[0].kwargs["input"]["draftPrompt"]) == 1000

    def test_one_failing_trace_does_not_stop_the_run(self, tmp_path):
        services = _services(tmp_path, resolver=FakeResolver(missing={"b"}))

        result = run_traces_eval(_request(["a", "b", "c"]), services)

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.success_count + result.failure_count == result.total_traces
        failed = result.results[1]
        assert failed.trace_id == "b"
        assert not failed.success
        assert "No promptVariables found" in failed.error

    def test_many_traces_in_batches(self, tmp_path):
        trace_ids = [f"t{i}" for i in range(23)]
        result = run_traces_eval(_request(trace_ids, concurrency=10), _services(tmp_path))
        assert result.total_traces == 23
        assert [r.trace_id for r in result.results] == trace_ids

    def test_persistence_failure_leaves_url_empty(self, tmp_path):
        telemetry_client = MagicMock()
        services = _services(tmp_path, blob_store=FailingBlobStore(), telemetry=Telemetry(telemetry_client))

        result = run_traces_eval(_request(["a"]), services)

        assert result.results_url is None
        assert result.success_count == 1
        assert telemetry_client.trace.call_args_list[1].kwargs["metadata"]["resultsUrl"] is None

    def test_completed_steps_are_skipped_on_retry(self, tmp_path):
        store = InMemoryCheckpointStore()
        factory = MagicMock(side_effect=lambda provider, model: EchoClient())
        services = _services(tmp_path, client_factory=factory)

        first = run_traces_eval(_request(["a"]), services, steps=StepRunner(store))
        second = run_traces_eval(_request(["a"]), services, steps=StepRunner(store))

        assert factory.call_count == 1
        assert second.eval_id == first.eval_id
        assert second.results_url == first.results_url

    def test_disabled_telemetry(self, tmp_path):
        result = run_traces_eval(_request(["a"]), _services(tmp_path, telemetry=Telemetry(None)))
        assert result.success_count == 1
        assert result.langfuse_trace_id


class TestHandleRunEvent:
    """Tests for handle_run_event()"""

    EVENT_DATA = {
        "draftPrompt": "Hello {{name}}!",
        "traceIds": ["a"],
        "model": "gpt-4.1-mini",
        "provider": "openai",
        "evalName": "greet-v2",
    }

    def test_wrapped_event_uses_durable_steps(self, tmp_path):
        services = _services(tmp_path)
        first = handle_run_event({"id": "evt-1", "data": self.EVENT_DATA}, services)
        second = handle_run_event({"id": "evt-1", "data": self.EVENT_DATA}, services)

        assert first.success_count == 1
        assert second.eval_id == first.eval_id
        assert (tmp_path / "checkpoints" / "evt-1.json").exists()

    def test_bare_payload(self, tmp_path):
        result = handle_run_event(dict(self.EVENT_DATA), _services(tmp_path))
        assert result.total_traces == 1
        assert not (tmp_path / "checkpoints").exists()
