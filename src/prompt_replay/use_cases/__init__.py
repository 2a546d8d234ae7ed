"""
Use Cases Layer

Trace resolution, per-trace evaluation and run orchestration called from the
runner and from the run trigger.
"""

from prompt_replay.use_cases.trace_resolution import (
    TraceStore,
    TraceResolver,
    classify_trace_metadata,
    find_matching_observation,
    extract_observation_output,
)
from prompt_replay.use_cases.evaluation import (
    EvalExecutor,
    ExecutionContext,
    TraceEvaluator,
    normalize_tool_calls,
    parse_structured_output,
)
from prompt_replay.use_cases.run_orchestrator import (
    ReplayServices,
    run_in_batches,
    run_traces_eval,
    handle_run_event,
)

__all__ = [
    # trace_resolution
    "TraceStore",
    "TraceResolver",
    "classify_trace_metadata",
    "find_matching_observation",
    "extract_observation_output",
    # evaluation
    "EvalExecutor",
    "ExecutionContext",
    "TraceEvaluator",
    "normalize_tool_calls",
    "parse_structured_output",
    # run_orchestrator
    "ReplayServices",
    "run_in_batches",
    "run_traces_eval",
    "handle_run_event",
]
