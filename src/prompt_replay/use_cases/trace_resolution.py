"""
Trace Resolution

Fetches a historical trace with its generation observations and extracts
what a replay needs: prompt variables, the original output, and the schema
and tools recorded on the generation.

Variable lookup order (first non-empty wins):
1. trace metadata.promptVariables
2. trace metadata itself, when it looks like a flat variable bag
3. trace input.promptVariables
4. metadata.promptVariables of the first observation carrying it
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from prompt_replay.domain.constants import (
    DEFAULT_OBSERVATION_LIMIT,
    FUNCTION_NAME_KEY,
    PROMPT_NAME_KEY,
    PROMPT_VARIABLES_KEY,
    SCHEMA_KEY,
    SOURCE_OBSERVATION_PREFIX,
    SOURCE_TRACE_INPUT,
    SOURCE_TRACE_METADATA,
    TOOLS_KEY,
)
from prompt_replay.domain.errors import StoreUnavailable
from prompt_replay.domain.schema_nodes import decode_schema
from prompt_replay.domain.value_objects import (
    Observation,
    ReplayInputs,
    TraceRecord,
    TraceSnapshot,
)
from prompt_replay.translation.tool_translator import decode_tools

logger = logging.getLogger(__name__)


class TraceStore(Protocol):
    """Read-only trace store"""

    def get_trace(self, trace_id: str) -> TraceRecord:
        ...

    def list_generations(self, trace_id: str, limit: int = DEFAULT_OBSERVATION_LIMIT) -> list[Observation]:
        ...


# ---------------------------------------------------------------------------
# Trace metadata shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NestedVariables:
    """metadata.promptVariables holds the variables"""
    variables: dict


@dataclass(frozen=True)
class FlatVariableBag:
    """metadata has no promptVariables but every value is a string or object"""
    variables: dict


@dataclass(frozen=True)
class UnrecognizedMetadata:
    """Anything else: no variables at trace-metadata level"""
    pass


MetadataShape = NestedVariables | FlatVariableBag | UnrecognizedMetadata


def classify_trace_metadata(metadata: Any) -> MetadataShape:
    """
    Classify trace-level metadata

    The flat-bag case is a heuristic: unrelated metadata made only of strings
    and objects is also taken as variables. It is kept as-is because the
    intended contract of that shape is unclear.
    """
    if not isinstance(metadata, dict) or not metadata:
        return UnrecognizedMetadata()

    nested = metadata.get(PROMPT_VARIABLES_KEY)
    if isinstance(nested, dict):
        return NestedVariables(variables=nested)

    if all(isinstance(v, (str, dict, list)) for v in metadata.values()):
        return FlatVariableBag(variables=metadata)

    return UnrecognizedMetadata()


def _input_variables(trace_input: Any) -> dict | None:
    if not isinstance(trace_input, dict):
        return None
    variables = trace_input.get(PROMPT_VARIABLES_KEY)
    return variables if isinstance(variables, dict) else None


# ---------------------------------------------------------------------------
# Observation matching
# ---------------------------------------------------------------------------

def normalize_name(name: str) -> str:
    """Lower-case with hyphens removed (camelCase vs kebab-case tolerant)"""
    return name.lower().replace("-", "")


def prompt_base_name(prompt_name: str) -> str:
    """'workflow/intake-acceptance-criteria' -> 'intake-acceptance-criteria'"""
    return prompt_name.split("/")[-1] or prompt_name


def find_matching_observation(
    observations: list[Observation] | tuple[Observation, ...],
    prompt_name: str | None,
    observation_id: str | None = None,
) -> Observation | None:
    """
    Pick the observation that corresponds to a logical prompt name

    Priority (first match wins): known observation id, exact name,
    normalized name contains the normalized base name, function-name metadata,
    promptName metadata. Falls back to the first observation.

    Args:
        observations: Observations in fetch order
        prompt_name: Logical prompt name (e.g. "workflow/intake-acceptance-criteria")
        observation_id: Observation already known to belong to the prompt

    Returns:
        Matching observation, or None when there are no observations
    """
    if not observations:
        return None

    if observation_id:
        for obs in observations:
            if obs.id == observation_id:
                return obs
        logger.warning("Observation %s not among fetched observations", observation_id)

    if not prompt_name:
        return observations[0]

    base_name = prompt_base_name(prompt_name)
    normalized = normalize_name(base_name)

    for obs in observations:
        if obs.name == prompt_name:
            logger.debug("Exact match observation: %s (%s)", obs.name, obs.id)
            return obs

    for obs in observations:
        if obs.name and normalized in normalize_name(obs.name):
            logger.debug("Normalized match observation: %s (%s)", obs.name, obs.id)
            return obs

    for obs in observations:
        function_name = obs.metadata.get(FUNCTION_NAME_KEY)
        if not isinstance(function_name, str) or not function_name:
            continue
        function_normalized = normalize_name(function_name)
        if normalized in function_normalized or function_normalized in normalized:
            logger.debug("Function-name match observation: %s (%s)", obs.name, obs.id)
            return obs

    for obs in observations:
        meta_prompt_name = obs.metadata.get(PROMPT_NAME_KEY)
        if isinstance(meta_prompt_name, str) and (
            meta_prompt_name == prompt_name or base_name in meta_prompt_name
        ):
            logger.debug("Metadata match observation: %s (%s)", obs.name, obs.id)
            return obs

    logger.warning(
        "No matching observation for prompt '%s' (available: %s), using first: %s",
        prompt_name,
        ", ".join(str(o.name) for o in observations),
        observations[0].name,
    )
    return observations[0]


def extract_observation_output(observation: Observation | None) -> str | None:
    """Original output as a string; structured output becomes compact JSON"""
    if observation is None or observation.output is None:
        return None
    if isinstance(observation.output, str):
        return observation.output
    return json.dumps(observation.output, ensure_ascii=False, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class TraceResolver:
    """Resolves replay inputs for a trace"""

    def __init__(self, store: TraceStore, observation_limit: int = DEFAULT_OBSERVATION_LIMIT):
        self._store = store
        self.observation_limit = observation_limit

    def fetch_snapshot(self, trace_id: str) -> TraceSnapshot | None:
        """
        Fetch a trace and its generations

        A trace fetch failure yields None; an observation fetch failure
        degrades to an empty observation list.
        """
        try:
            trace = self._store.get_trace(trace_id)
        except StoreUnavailable as e:
            logger.error("Failed to fetch trace %s: %s", trace_id, e)
            return None

        try:
            observations = self._store.list_generations(trace_id, limit=self.observation_limit)
        except StoreUnavailable as e:
            logger.warning("Failed to fetch observations for trace %s: %s", trace_id, e)
            observations = []

        logger.info("Found %d observations for trace %s", len(observations), trace_id)
        return TraceSnapshot(trace=trace, observations=tuple(observations))

    def resolve(
        self,
        trace_id: str,
        prompt_name: str | None = None,
        observation_id: str | None = None,
    ) -> ReplayInputs | None:
        """
        Resolve the replay inputs of a trace

        Args:
            trace_id: Trace to replay
            prompt_name: Logical prompt name used to pick the observation
            observation_id: Observation already known to belong to the prompt

        Returns:
            ReplayInputs, or None when the trace is unreachable or carries no variables
        """
        snapshot = self.fetch_snapshot(trace_id)
        if snapshot is None:
            return None

        trace = snapshot.trace
        observations = snapshot.observations

        shape = classify_trace_metadata(trace.metadata)
        if isinstance(shape, (NestedVariables, FlatVariableBag)) and shape.variables:
            logger.info(
                "Found prompt variables in trace metadata for %s (%s): %s",
                trace_id, type(shape).__name__, list(shape.variables.keys()),
            )
            matched = find_matching_observation(observations, prompt_name, observation_id)
            return self._build_inputs(shape.variables, SOURCE_TRACE_METADATA, matched)

        input_variables = _input_variables(trace.input)
        if input_variables:
            logger.info("Found prompt variables in trace input for %s: %s", trace_id, list(input_variables.keys()))
            matched = find_matching_observation(observations, prompt_name, observation_id)
            return self._build_inputs(input_variables, SOURCE_TRACE_INPUT, matched)

        for obs in observations:
            variables = obs.metadata.get(PROMPT_VARIABLES_KEY)
            if isinstance(variables, dict) and variables:
                logger.info("Found prompt variables in observation %s for %s: %s", obs.id, trace_id, list(variables.keys()))
                # The observation carrying the variables also carries the output
                return self._build_inputs(variables, f"{SOURCE_OBSERVATION_PREFIX}{obs.id}", obs)

        metadata_keys = list(trace.metadata.keys()) if isinstance(trace.metadata, dict) else None
        input_keys = list(trace.input.keys()) if isinstance(trace.input, dict) else None
        logger.warning(
            "No prompt variables found for trace %s (metadata keys: %s, input keys: %s)",
            trace_id, metadata_keys, input_keys,
        )
        return None

    def _build_inputs(self, variables: dict, source: str, observation: Observation | None) -> ReplayInputs:
        schema = None
        tools = None
        if observation is not None:
            raw_schema = observation.metadata.get(SCHEMA_KEY)
            if isinstance(raw_schema, dict):
                schema = decode_schema(raw_schema)
                logger.info("Found schema in observation %s metadata", observation.id)
            decoded_tools = decode_tools(observation.metadata.get(TOOLS_KEY))
            if decoded_tools:
                tools = decoded_tools
                logger.info("Found %d tools in observation %s metadata", len(tools), observation.id)

        return ReplayInputs(
            variables=dict(variables),
            source=source,
            original_output=extract_observation_output(observation),
            schema=schema,
            tools=tools,
            observation_id=observation.id if observation is not None else None,
        )
