"""
Run Orchestration

Replays a draft prompt against a list of traces:

1. init-run           eval id and start time
2. create-eval-trace  aggregate telemetry trace (pre-assigned id allowed)
3. run-evaluations    sequential batches, traces within a batch in parallel
4. store-results-blob detailed payload to the blob store
5. update-eval-trace  summary counters on the telemetry trace, then flush

Each step goes through a StepRunner, so a re-delivered event resumes after
the last completed step.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Iterable, TypeVar

from prompt_replay.domain.constants import DRAFT_PROMPT_LOG_CHARS, ModelProvider
from prompt_replay.domain.entities import (
    EvalRunRequest,
    EvalRunResult,
    TraceEvalResult,
    TraceObservationPair,
)
from prompt_replay.domain.errors import PersistenceError
from prompt_replay.infrastructure.blob_store import BlobStore, create_blob_store
from prompt_replay.infrastructure.model_clients.base import ModelClient
from prompt_replay.infrastructure.model_clients.factory import create_client
from prompt_replay.infrastructure.steps import StepRunner, create_step_runner
from prompt_replay.infrastructure.telemetry import Telemetry, get_telemetry
from prompt_replay.infrastructure.trace_store import TraceStoreClient
from prompt_replay.replay_config import ReplayConfig
from prompt_replay.use_cases.evaluation import EvalExecutor, TraceEvaluator
from prompt_replay.use_cases.trace_resolution import TraceResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ReplayServices:
    """External collaborators of a run"""
    resolver: TraceResolver
    client_factory: Callable[[ModelProvider, str], ModelClient]
    telemetry: Telemetry
    blob_store: BlobStore
    checkpoint_dir: str = ".replay_checkpoints"

    @classmethod
    def from_config(cls, config: ReplayConfig) -> "ReplayServices":
        store = TraceStoreClient.from_config(config.langfuse)
        return cls(
            resolver=TraceResolver(store, observation_limit=config.langfuse.observation_limit),
            client_factory=partial(create_client, config=config),
            telemetry=get_telemetry(config.langfuse),
            blob_store=create_blob_store(config.storage),
            checkpoint_dir=config.run.checkpoint_dir,
        )


def run_in_batches(items: list[T], batch_size: int, fn: Callable[[T], R]) -> list[R]:
    """
    Apply fn to items in sequential batches, items of a batch in parallel

    A batch starts only after every item of the previous batch finished, so
    at most batch_size calls are in flight. Results keep the input order.

    Args:
        items: Items to process
        batch_size: Batch size (the concurrency limit)
        fn: Function applied to each item

    Returns:
        list: fn(item) for every item, in input order
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1.")

    results: list[R] = []
    total = len(items)
    for batch_number, start in enumerate(range(0, total, batch_size), start=1):
        batch = items[start:start + batch_size]
        logger.info(
            "Processing batch %d (size %d, progress %d/%d)",
            batch_number, len(batch), start, total,
        )
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            results.extend(executor.map(fn, batch))
    return results


def build_observation_lookup(pairs: Iterable[TraceObservationPair]) -> dict[str, TraceObservationPair]:
    """Trace id -> known observation (later pairs for the same trace win)"""
    return {pair.trace_id: pair for pair in pairs}


def build_results_payload(
    request: EvalRunRequest,
    result: EvalRunResult,
) -> dict:
    """Detailed payload persisted to the blob store"""
    return {
        "metadata": {
            "eval_id": result.eval_id,
            "eval_name": result.eval_name,
            "original_prompt_name": request.original_prompt_name,
            "original_prompt_version": request.original_prompt_version,
            "model": request.model,
            "provider": request.provider.value,
            "reasoning_effort": request.reasoning_effort,
            "verbosity": request.verbosity,
            "total_traces": result.total_traces,
            "success_count": result.success_count,
            "failure_count": result.failure_count,
            "started_at": result.started_at,
            "completed_at": result.completed_at,
            "duration_ms": result.duration_ms,
            "langfuse_trace_id": result.langfuse_trace_id,
        },
        "results": [r.to_dict() for r in result.results],
    }


def results_blob_key(eval_name: str, eval_id: str) -> str:
    return f"eval-results-{eval_name}-{eval_id}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def run_traces_eval(
    request: EvalRunRequest,
    services: ReplayServices,
    steps: StepRunner | None = None,
) -> EvalRunResult:
    """
    Replay a draft prompt against every trace of a request

    Args:
        request: Run request
        services: External collaborators
        steps: Step runner (a durable one keyed by request.event_id if not provided)

    Returns:
        EvalRunResult: Aggregated result; results_url is None if persistence failed
    """
    if steps is None:
        steps = create_step_runner(services.checkpoint_dir, request.event_id)

    observation_lookup = build_observation_lookup(request.trace_observation_pairs)
    if observation_lookup:
        logger.info("Using %d trace-observation pairs for direct lookup", len(observation_lookup))

    run_info = steps.run("init-run", lambda: {"eval_id": str(uuid.uuid4()), "started_at": _now_iso()})
    eval_id = run_info["eval_id"]
    started_at = run_info["started_at"]

    logger.info(
        "Starting eval run %s (%s): %d traces, model=%s, provider=%s, prompt=%s v%s",
        eval_id, request.eval_name, len(request.trace_ids), request.model,
        request.provider.value, request.original_prompt_name, request.original_prompt_version,
    )

    def _create_eval_trace() -> str:
        return services.telemetry.create_run_trace(
            trace_id=request.langfuse_trace_id or str(uuid.uuid4()),
            name=f"eval-run-{request.eval_name}",
            metadata={
                "evalId": eval_id,
                "evalName": request.eval_name,
                "originalPromptName": request.original_prompt_name,
                "originalPromptVersion": request.original_prompt_version,
                "traceCount": len(request.trace_ids),
                "model": request.model,
                "provider": request.provider.value,
                "reasoningEffort": request.reasoning_effort,
                "verbosity": request.verbosity,
            },
            input={
                "draftPrompt": request.draft_prompt[:DRAFT_PROMPT_LOG_CHARS],
                "traceIds": list(request.trace_ids),
            },
        )

    run_trace_id = steps.run("create-eval-trace", _create_eval_trace)

    def _run_evaluations() -> list[dict]:
        client = services.client_factory(request.provider, request.model)
        evaluator = TraceEvaluator(
            draft_prompt=request.draft_prompt,
            resolver=services.resolver,
            executor=EvalExecutor(client, services.telemetry),
            run_trace_id=run_trace_id,
            prompt_name=request.original_prompt_name,
            reasoning_effort=request.reasoning_effort,
            verbosity=request.verbosity,
            observation_lookup=observation_lookup,
        )
        results = run_in_batches(list(request.trace_ids), request.concurrency, evaluator.evaluate)
        return [r.to_dict() for r in results]

    results = [TraceEvalResult.from_dict(r) for r in steps.run("run-evaluations", _run_evaluations)]

    completed_at = _now_iso()
    success_count = sum(1 for r in results if r.success)
    duration_ms = int(
        (datetime.fromisoformat(completed_at) - datetime.fromisoformat(started_at)).total_seconds() * 1000
    )

    eval_result = EvalRunResult(
        eval_id=eval_id,
        eval_name=request.eval_name,
        total_traces=len(results),
        success_count=success_count,
        failure_count=len(results) - success_count,
        results=results,
        started_at=started_at,
        completed_at=completed_at,
        duration_ms=duration_ms,
        langfuse_trace_id=run_trace_id,
    )

    def _store_results() -> str | None:
        payload = build_results_payload(request, eval_result)
        try:
            url = services.blob_store.put(results_blob_key(request.eval_name, eval_id), payload)
        except PersistenceError as e:
            logger.error("Failed to store results for eval %s: %s", eval_id, e)
            return None
        logger.info("Results for eval %s stored at %s", eval_id, url)
        return url

    eval_result.results_url = steps.run("store-results-blob", _store_results)

    def _update_eval_trace() -> None:
        services.telemetry.update_run_trace(
            run_trace_id,
            output={
                "successCount": eval_result.success_count,
                "failureCount": eval_result.failure_count,
                "durationMs": eval_result.duration_ms,
                "resultsUrl": eval_result.results_url,
            },
            metadata={"completed": True, "resultsUrl": eval_result.results_url},
        )
        services.telemetry.flush()

    steps.run("update-eval-trace", _update_eval_trace)

    logger.info(
        "Eval run %s completed: %d succeeded, %d failed, %dms, results at %s",
        eval_id, eval_result.success_count, eval_result.failure_count,
        eval_result.duration_ms, eval_result.results_url,
    )
    return eval_result


def handle_run_event(event: dict, services: ReplayServices) -> EvalRunResult:
    """
    Run trigger entry point

    Args:
        event: {"id": ..., "data": {...}} or the bare camelCase payload
        services: External collaborators

    Returns:
        EvalRunResult
    """
    data = event.get("data") if isinstance(event.get("data"), dict) else event
    request = EvalRunRequest.from_event(data, event_id=event.get("id"))
    return run_traces_eval(request, services)
