"""
Evaluation Execution

Replays one filled prompt against a provider (EvalExecutor) and wraps the
whole per-trace flow, resolution through execution, into a TraceEvalResult
(TraceEvaluator).
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from prompt_replay.domain.constants import SOURCE_NONE, SOURCE_OBSERVATION_METADATA, ModelProvider
from prompt_replay.domain.entities import TraceEvalResult, TraceObservationPair
from prompt_replay.domain.errors import ResolutionNotFound, SchemaValidationError
from prompt_replay.domain.schema_nodes import SchemaNode, validate
from prompt_replay.domain.value_objects import FilledPrompt, TokenUsage, ToolCall, ToolDefinition
from prompt_replay.infrastructure.model_clients.base import ModelClient, ProviderRequest
from prompt_replay.infrastructure.telemetry import Telemetry
from prompt_replay.template_engine import fill, find_missing_variables
from prompt_replay.translation.schema_translator import translate_schema
from prompt_replay.translation.tool_translator import translate_tools
from prompt_replay.use_cases.trace_resolution import TraceResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionContext:
    """Per-call tags recorded with the generation"""
    trace_id: str
    run_trace_id: str
    variables: dict = field(default_factory=dict)
    schema_source: str = SOURCE_NONE
    tools_source: str = SOURCE_NONE
    reasoning_effort: str | None = None
    verbosity: str | None = None


@dataclass(frozen=True)
class ExecutionOutput:
    """Normalized provider output"""
    text: str
    parsed: Any = None
    tool_calls: tuple[ToolCall, ...] | None = None
    token_usage: TokenUsage | None = None


def normalize_tool_calls(raw_calls: list[dict]) -> tuple[ToolCall, ...] | None:
    """
    Normalize provider tool calls to ToolCall

    Missing ids are generated, string arguments are decoded as JSON.

    Raises:
        json.JSONDecodeError: If string arguments are not valid JSON
    """
    if not raw_calls:
        return None

    calls = []
    for raw in raw_calls:
        arguments = raw.get("arguments")
        if isinstance(arguments, str):
            arguments = json.loads(arguments) if arguments.strip() else {}
        calls.append(ToolCall(
            id=raw.get("id") or str(uuid.uuid4()),
            name=raw.get("name") or "unknown",
            arguments=dict(arguments) if arguments else {},
        ))
    return tuple(calls)


def parse_structured_output(text: str, schema: SchemaNode) -> Any:
    """Parse output text as JSON and validate it; None when either step fails"""
    if not text:
        return None
    try:
        raw = json.loads(text)
    except ValueError:
        logger.debug("Output is not valid JSON, parsed output left empty")
        return None
    try:
        return validate(schema, raw)
    except SchemaValidationError as e:
        logger.info("Output failed schema validation: %s", e)
        return None


class EvalExecutor:
    """Runs a filled prompt against one model client"""

    def __init__(self, client: ModelClient, telemetry: Telemetry):
        self.client = client
        self.telemetry = telemetry

    def build_request(
        self,
        filled: FilledPrompt,
        schema: SchemaNode | None,
        tools: tuple[ToolDefinition, ...] | None,
        context: ExecutionContext,
    ) -> ProviderRequest:
        provider = self.client.provider
        native_schema = translate_schema(schema, provider) if schema is not None else None
        native_tools = translate_tools(tools, provider) if tools else None

        if self.client.accepts_messages:
            return ProviderRequest(
                messages=tuple(filled.as_messages()),
                schema=native_schema,
                tools=native_tools or None,
                reasoning_effort=context.reasoning_effort,
                verbosity=context.verbosity,
            )
        return ProviderRequest(
            prompt=filled.as_prompt_text(),
            schema=native_schema,
            tools=native_tools or None,
            reasoning_effort=context.reasoning_effort,
            verbosity=context.verbosity,
        )

    def run(
        self,
        filled: FilledPrompt,
        schema: SchemaNode | None,
        tools: tuple[ToolDefinition, ...] | None,
        context: ExecutionContext,
    ) -> ExecutionOutput:
        """
        Execute a filled prompt

        Provider errors are recorded on the telemetry generation and re-raised.

        Args:
            filled: Filled prompt
            schema: Neutral output schema (enforced where supported, always re-validated)
            tools: Neutral tools offered to the model
            context: Tags for the telemetry record

        Returns:
            ExecutionOutput: Text, validated structure, tool calls and usage
        """
        request = self.build_request(filled, schema, tools, context)
        if request.messages is not None:
            logged_input: Any = [{"role": m.role, "content": m.content} for m in request.messages]
        else:
            logged_input = request.prompt

        metadata = {
            "sessionId": context.trace_id,
            "promptFormat": filled.dialect.value,
            "messageCount": len(request.messages) if request.messages is not None else None,
            "hasSchema": schema is not None,
            "schemaSource": context.schema_source,
            "schemaEnforced": request.schema is not None and self.client.provider != ModelProvider.CLAUDE,
            "hasTools": bool(tools),
            "toolsSource": context.tools_source,
            "toolCount": len(tools) if tools else None,
            "reasoningEffort": context.reasoning_effort,
            "verbosity": context.verbosity,
            "promptVariables": context.variables,
        }
        generation_name = f"eval-{context.trace_id}"

        try:
            response = self.client.generate(request)
        except Exception as e:
            self.telemetry.record_generation(
                trace_id=context.run_trace_id,
                name=generation_name,
                model=self.client.model_name,
                input=logged_input,
                metadata=metadata,
                error=str(e),
            )
            raise

        tool_calls = normalize_tool_calls(response.tool_calls)
        parsed = parse_structured_output(response.text, schema) if schema is not None else None

        self.telemetry.record_generation(
            trace_id=context.run_trace_id,
            name=generation_name,
            model=response.model_name,
            input=logged_input,
            output=response.text,
            usage=response.usage,
            metadata={**metadata, "toolCallCount": len(tool_calls) if tool_calls else 0},
        )

        return ExecutionOutput(
            text=response.text,
            parsed=parsed,
            tool_calls=tool_calls,
            token_usage=response.usage,
        )


def _stringify_output(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False, separators=(",", ":"))


@dataclass
class TraceEvaluator:
    """Evaluates one trace at a time; safe to call from several threads"""
    draft_prompt: str
    resolver: TraceResolver
    executor: EvalExecutor
    run_trace_id: str
    prompt_name: str | None = None
    reasoning_effort: str | None = None
    verbosity: str | None = None
    observation_lookup: dict[str, TraceObservationPair] = field(default_factory=dict)

    def evaluate(self, trace_id: str) -> TraceEvalResult:
        """
        Replay the draft prompt on one trace

        Never raises: any failure becomes a failed TraceEvalResult carrying
        the error message and the latency measured so far.
        """
        start_time = time.time()
        pair = self.observation_lookup.get(trace_id)

        try:
            inputs = self.resolver.resolve(
                trace_id,
                self.prompt_name,
                observation_id=pair.observation_id if pair else None,
            )
            if inputs is None:
                raise ResolutionNotFound(
                    f"No promptVariables found for trace {trace_id} in trace metadata, "
                    "trace input or generation metadata. Ensure generations log promptVariables in their metadata."
                )

            original_output = inputs.original_output
            if pair is not None and pair.output:
                logger.info("Using directly provided original output for trace %s", trace_id)
                original_output = _stringify_output(pair.output)

            missing = find_missing_variables(self.draft_prompt, inputs.variables)
            if missing:
                logger.warning(
                    "Template references variables not found in trace %s: %s (available: %s)",
                    trace_id, missing, list(inputs.variables.keys()),
                )

            filled = fill(self.draft_prompt, inputs.variables)
            schema_source = SOURCE_OBSERVATION_METADATA if inputs.schema is not None else SOURCE_NONE
            tools_source = SOURCE_OBSERVATION_METADATA if inputs.tools else SOURCE_NONE

            output = self.executor.run(
                filled,
                inputs.schema,
                inputs.tools,
                ExecutionContext(
                    trace_id=trace_id,
                    run_trace_id=self.run_trace_id,
                    variables=inputs.variables,
                    schema_source=schema_source,
                    tools_source=tools_source,
                    reasoning_effort=self.reasoning_effort,
                    verbosity=self.verbosity,
                ),
            )

            return TraceEvalResult(
                trace_id=trace_id,
                success=True,
                input=inputs.variables,
                output=output.text,
                original_production_output=original_output or None,
                parsed=output.parsed,
                latency_ms=int((time.time() - start_time) * 1000),
                variable_source=inputs.source,
                token_usage=output.token_usage,
                prompt_format=filled.dialect,
                schema_source=schema_source,
                tools_source=tools_source,
                tool_calls=output.tool_calls,
            )
        except Exception as e:
            logger.warning("Evaluation failed for trace %s: %s", trace_id, e)
            return TraceEvalResult(
                trace_id=trace_id,
                success=False,
                error=str(e),
                latency_ms=int((time.time() - start_time) * 1000),
            )
