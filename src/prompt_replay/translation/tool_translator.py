"""
Tool Translator

Decodes the function-calling tools recorded in observation metadata and maps
them onto each provider's function-declaration shape. Only the tool name is
required; absent optional fields are omitted, never defaulted.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.domain.schema_nodes import decode_schema
from prompt_replay.domain.value_objects import ToolDefinition
from prompt_replay.translation.schema_translator import to_gemini_schema

logger = logging.getLogger(__name__)


def decode_tools(data: Any) -> tuple[ToolDefinition, ...]:
    """
    Decode a tool list from metadata

    Accepts OpenAI-style entries ({"type": "function", "function": {...}})
    as well as flat {name, description, parameters} entries.
    """
    if not isinstance(data, list):
        return ()

    tools = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        spec = entry.get("function") if isinstance(entry.get("function"), dict) else entry
        name = spec.get("name")
        if not name:
            logger.warning("Skipping tool without a name: %s", list(spec.keys()))
            continue
        description = spec.get("description")
        parameters = spec.get("parameters")
        if parameters is None:
            parameters = spec.get("input_schema")
        tools.append(ToolDefinition(
            name=str(name),
            description=description if isinstance(description, str) else None,
            parameters=parameters if isinstance(parameters, dict) else None,
        ))
    return tuple(tools)


def _declaration(tool: ToolDefinition, parameters_key: str, parameters: dict | None) -> dict:
    declaration: dict = {"name": tool.name}
    if tool.description is not None:
        declaration["description"] = tool.description
    if parameters is not None:
        declaration[parameters_key] = parameters
    return declaration


def to_openai_tools(tools: Iterable[ToolDefinition]) -> list[dict]:
    return [
        {"type": "function", "function": _declaration(t, "parameters", t.parameters)}
        for t in tools
    ]


def to_gemini_tools(tools: Iterable[ToolDefinition]) -> list[dict]:
    declarations = [
        _declaration(
            t,
            "parameters",
            to_gemini_schema(decode_schema(t.parameters)) if t.parameters is not None else None,
        )
        for t in tools
    ]
    return [{"function_declarations": declarations}] if declarations else []


def to_claude_tools(tools: Iterable[ToolDefinition]) -> list[dict]:
    return [_declaration(t, "input_schema", t.parameters) for t in tools]


_TRANSLATORS = {
    ModelProvider.OPENAI: to_openai_tools,
    ModelProvider.GEMINI: to_gemini_tools,
    ModelProvider.CLAUDE: to_claude_tools,
}


def translate_tools(tools: Iterable[ToolDefinition], provider: ModelProvider) -> list[dict]:
    """
    Translate neutral tools to a provider's native tool list

    Args:
        tools: Neutral tool definitions
        provider: Target provider

    Returns:
        list[dict]: Native tool list
    """
    return _TRANSLATORS[ModelProvider(provider)](tools)
