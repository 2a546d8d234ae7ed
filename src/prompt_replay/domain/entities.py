"""
Domain Entities

Defines the run request and the per-trace / per-run result records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from prompt_replay.domain.constants import (
    DEFAULT_CONCURRENCY,
    REASONING_EFFORTS,
    VERBOSITY_LEVELS,
    ModelProvider,
    PromptDialect,
)
from prompt_replay.domain.value_objects import TokenUsage, ToolCall


@dataclass(frozen=True)
class TraceObservationPair:
    """Known observation for a trace, optionally with its cached output"""
    trace_id: str
    observation_id: str
    output: Any = None


@dataclass(frozen=True)
class EvalRunRequest:
    """A request to replay a draft prompt against historical traces"""
    draft_prompt: str
    trace_ids: tuple[str, ...]
    model: str
    provider: ModelProvider
    eval_name: str
    original_prompt_name: str | None = None
    original_prompt_version: int | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    trace_observation_pairs: tuple[TraceObservationPair, ...] = ()
    reasoning_effort: str | None = None
    verbosity: str | None = None
    langfuse_trace_id: str | None = None  # Pre-assigned id of the run trace
    event_id: str | None = None  # Key for durable step checkpoints

    def __post_init__(self):
        """Post-initialization validation"""
        object.__setattr__(self, "provider", ModelProvider(self.provider))
        object.__setattr__(self, "trace_ids", tuple(self.trace_ids))
        object.__setattr__(self, "trace_observation_pairs", tuple(self.trace_observation_pairs))
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.reasoning_effort is not None and self.reasoning_effort not in REASONING_EFFORTS:
            raise ValueError(f"Invalid reasoning effort: {self.reasoning_effort}. Valid values: {list(REASONING_EFFORTS)}")
        if self.verbosity is not None and self.verbosity not in VERBOSITY_LEVELS:
            raise ValueError(f"Invalid verbosity: {self.verbosity}. Valid values: {list(VERBOSITY_LEVELS)}")

    @classmethod
    def from_event(cls, data: dict, event_id: str | None = None) -> "EvalRunRequest":
        """
        Create from a run trigger payload (camelCase keys)

        When traceIds is empty the trace ids of traceObservationPairs are used.
        """
        pairs = tuple(
            TraceObservationPair(
                trace_id=p["traceId"],
                observation_id=p["observationId"],
                output=p.get("output"),
            )
            for p in data.get("traceObservationPairs") or []
        )
        trace_ids = list(data.get("traceIds") or [])
        if not trace_ids:
            trace_ids = [p.trace_id for p in pairs]

        concurrency = data.get("concurrency")
        return cls(
            draft_prompt=data["draftPrompt"],
            trace_ids=tuple(trace_ids),
            model=data["model"],
            provider=ModelProvider(data["provider"]),
            eval_name=data["evalName"],
            original_prompt_name=data.get("originalPromptName"),
            original_prompt_version=data.get("originalPromptVersion"),
            concurrency=DEFAULT_CONCURRENCY if concurrency is None else int(concurrency),
            trace_observation_pairs=pairs,
            reasoning_effort=data.get("reasoningEffort"),
            verbosity=data.get("verbosity"),
            langfuse_trace_id=data.get("langfuseTraceId"),
            event_id=event_id or data.get("eventId"),
        )


@dataclass(frozen=True)
class TraceEvalResult:
    """Outcome of replaying one trace"""
    trace_id: str
    success: bool
    input: dict | None = None
    output: str | None = None
    original_production_output: str | None = None
    parsed: Any = None
    error: str | None = None
    latency_ms: int | None = None
    variable_source: str | None = None
    token_usage: TokenUsage | None = None
    prompt_format: PromptDialect | None = None
    schema_source: str | None = None
    tools_source: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary"""
        return {
            "trace_id": self.trace_id,
            "success": self.success,
            "input": self.input,
            "output": self.output,
            "original_production_output": self.original_production_output,
            "parsed": self.parsed,
            "error": self.error,
            "latency_ms": self.latency_ms,
            "variable_source": self.variable_source,
            "token_usage": (
                {"input": self.token_usage.input, "output": self.token_usage.output, "total": self.token_usage.total}
                if self.token_usage else None
            ),
            "prompt_format": self.prompt_format.value if self.prompt_format else None,
            "schema_source": self.schema_source,
            "tools_source": self.tools_source,
            "tool_calls": (
                [{"id": c.id, "name": c.name, "arguments": c.arguments} for c in self.tool_calls]
                if self.tool_calls is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TraceEvalResult":
        """Create from a dictionary produced by to_dict()"""
        usage = data.get("token_usage")
        calls = data.get("tool_calls")
        prompt_format = data.get("prompt_format")
        return cls(
            trace_id=data["trace_id"],
            success=data["success"],
            input=data.get("input"),
            output=data.get("output"),
            original_production_output=data.get("original_production_output"),
            parsed=data.get("parsed"),
            error=data.get("error"),
            latency_ms=data.get("latency_ms"),
            variable_source=data.get("variable_source"),
            token_usage=TokenUsage(**usage) if usage else None,
            prompt_format=PromptDialect(prompt_format) if prompt_format else None,
            schema_source=data.get("schema_source"),
            tools_source=data.get("tools_source"),
            tool_calls=tuple(ToolCall(**c) for c in calls) if calls is not None else None,
        )


@dataclass
class EvalRunResult:
    """Aggregate result of a replay run"""
    eval_id: str
    eval_name: str
    total_traces: int
    success_count: int
    failure_count: int
    results: list[TraceEvalResult] = field(default_factory=list)
    started_at: str = ""
    completed_at: str = ""
    duration_ms: int = 0
    langfuse_trace_id: str | None = None
    results_url: str | None = None

    def __post_init__(self):
        if self.success_count + self.failure_count != self.total_traces:
            raise ValueError(
                f"success_count ({self.success_count}) + failure_count ({self.failure_count}) "
                f"must equal total_traces ({self.total_traces})"
            )

    def to_dict(self) -> dict:
        return {
            "eval_id": self.eval_id,
            "eval_name": self.eval_name,
            "total_traces": self.total_traces,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "results": [r.to_dict() for r in self.results],
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
            "langfuse_trace_id": self.langfuse_trace_id,
            "results_url": self.results_url,
        }
