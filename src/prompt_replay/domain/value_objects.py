"""
Domain Value Objects

Defines immutable data structures for fetched trace data, filled prompts,
replay inputs, and model responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from prompt_replay.domain.constants import PromptDialect
from prompt_replay.domain.schema_nodes import SchemaNode


@dataclass(frozen=True)
class ChatMessage:
    """Role-tagged chat message"""
    role: str
    content: str


@dataclass(frozen=True)
class FilledPrompt:
    """Draft prompt after variable substitution"""
    dialect: PromptDialect
    messages: tuple[ChatMessage, ...] | None = None
    text: str | None = None

    @property
    def is_chat(self) -> bool:
        return self.messages is not None

    def as_messages(self) -> list[ChatMessage]:
        """Chat messages; plain text becomes a single user message"""
        if self.messages is not None:
            return list(self.messages)
        return [ChatMessage(role="user", content=self.text or "")]

    def as_prompt_text(self) -> str:
        """Single prompt string; messages are re-labelled with [ROLE] markers"""
        if self.messages is None:
            return self.text or ""
        return "\n\n".join(f"[{m.role.upper()}]\n{m.content}" for m in self.messages)


@dataclass(frozen=True)
class ToolDefinition:
    """Provider-neutral function-calling tool"""
    name: str
    description: str | None = None
    parameters: dict | None = None  # JSON Schema


@dataclass(frozen=True)
class ToolCall:
    """Tool invocation returned by a model, normalized across providers"""
    id: str
    name: str
    arguments: dict


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by a provider"""
    input: int | None = None
    output: int | None = None
    total: int | None = None


@dataclass(frozen=True)
class Observation:
    """A generation observation of a trace"""
    id: str
    name: str | None = None
    model: str | None = None
    metadata: dict = field(default_factory=dict)
    output: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "Observation":
        metadata = data.get("metadata")
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name"),
            model=data.get("model"),
            # Metadata that is not an object carries nothing we can use
            metadata=metadata if isinstance(metadata, dict) else {},
            output=data.get("output"),
        )


@dataclass(frozen=True)
class TraceRecord:
    """A trace as returned by the trace store; metadata and input are opaque bags"""
    id: str
    metadata: Any = None
    input: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "TraceRecord":
        return cls(
            id=str(data.get("id", "")),
            metadata=data.get("metadata"),
            input=data.get("input"),
        )


@dataclass(frozen=True)
class TraceSnapshot:
    """A trace plus the generation observations fetched with it"""
    trace: TraceRecord
    observations: tuple[Observation, ...] = ()


@dataclass(frozen=True)
class ReplayInputs:
    """Everything needed to replay one trace"""
    variables: dict
    source: str
    original_output: str | None = None
    schema: SchemaNode | None = None
    tools: tuple[ToolDefinition, ...] | None = None
    observation_id: str | None = None


@dataclass(frozen=True)
class ModelResponse:
    """Raw model response, before tool-call normalization and validation"""
    text: str
    latency_ms: int
    model_name: str
    tool_calls: list[dict] = field(default_factory=list)
    usage: TokenUsage | None = None
