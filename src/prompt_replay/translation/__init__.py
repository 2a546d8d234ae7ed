"""
Translation sub-package

Converts neutral schemas and tools into each provider's native format.
"""

from prompt_replay.translation.schema_translator import (
    GeminiSchemaVisitor,
    JsonSchemaVisitor,
    SchemaVisitor,
    to_gemini_schema,
    to_json_schema,
    translate_schema,
)
from prompt_replay.translation.tool_translator import (
    decode_tools,
    to_claude_tools,
    to_gemini_tools,
    to_openai_tools,
    translate_tools,
)

__all__ = [
    # schema
    "GeminiSchemaVisitor",
    "JsonSchemaVisitor",
    "SchemaVisitor",
    "to_gemini_schema",
    "to_json_schema",
    "translate_schema",
    # tools
    "decode_tools",
    "to_claude_tools",
    "to_gemini_tools",
    "to_openai_tools",
    "translate_tools",
]
