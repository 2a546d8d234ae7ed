"""
Domain Layer

Defines constants, entities, value objects, errors and the neutral schema
model that form the core of the replay engine.
Has no dependencies on external libraries.
"""

from prompt_replay.domain.constants import (
    DEFAULT_CONCURRENCY,
    ModelProvider,
    PromptDialect,
)
from prompt_replay.domain.entities import (
    EvalRunRequest,
    EvalRunResult,
    TraceEvalResult,
    TraceObservationPair,
)
from prompt_replay.domain.errors import (
    PersistenceError,
    ProviderCallFailure,
    ReplayError,
    ResolutionNotFound,
    SchemaValidationError,
    StoreUnavailable,
)
from prompt_replay.domain.value_objects import (
    ChatMessage,
    FilledPrompt,
    ModelResponse,
    Observation,
    ReplayInputs,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    TraceRecord,
    TraceSnapshot,
)

__all__ = [
    # constants
    "DEFAULT_CONCURRENCY",
    "ModelProvider",
    "PromptDialect",
    # entities
    "EvalRunRequest",
    "EvalRunResult",
    "TraceEvalResult",
    "TraceObservationPair",
    # errors
    "PersistenceError",
    "ProviderCallFailure",
    "ReplayError",
    "ResolutionNotFound",
    "SchemaValidationError",
    "StoreUnavailable",
    # value objects
    "ChatMessage",
    "FilledPrompt",
    "ModelResponse",
    "Observation",
    "ReplayInputs",
    "TokenUsage",
    "ToolCall",
    "ToolDefinition",
    "TraceRecord",
    "TraceSnapshot",
]
