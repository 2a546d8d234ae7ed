"""
Template Engine

Parses a draft prompt and fills it with variables captured from a trace.

Dialect detection order:
- structured-array: a JSON array of {"role", "content"} objects
- marker-blocks: text split by [SYSTEM] / [USER] / [ASSISTANT] markers
- plain-text: everything else, kept as a single blob

Placeholders are {{name}} or {name}. A variable also fills the spelling with
hyphens and underscores swapped, and any placeholder left unfilled is removed.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from .domain.constants import PromptDialect
from .domain.value_objects import ChatMessage, FilledPrompt


_ROLE_MARKERS = {
    "[SYSTEM]": "system",
    "[USER]": "user",
    "[ASSISTANT]": "assistant",
}
_MARKER_RE = re.compile(r"(\[SYSTEM\]|\[USER\]|\[ASSISTANT\])", re.IGNORECASE)

# Leftover placeholders; removal repeats until the text is stable
_LEFTOVER_RE = re.compile(r"\{\{?[\w-]+\}\}?")

_DOUBLE_BRACE_NAME_RE = re.compile(r"\{\{([\w-]+)\}\}")


def stringify_value(value: Any) -> str:
    """String form of a variable value as it appears in the filled prompt"""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def _swapped_spellings(key: str) -> list[str]:
    spellings = [key]
    for alt in (key.replace("_", "-"), key.replace("-", "_")):
        if alt not in spellings:
            spellings.append(alt)
    return spellings


def fill_variables(template: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute variables into a text segment

    Substitution is a single pass, so text inserted for one variable is never
    matched by another. For keys competing for the same spelling, the key that
    comes first in the mapping wins.

    Args:
        template: Text containing placeholders
        variables: Variable values, in priority order

    Returns:
        Filled text with no remaining placeholders
    """
    replacements: dict[str, str] = {}
    for key, value in variables.items():
        # an empty key would match every literal "{}"
        if not key:
            continue
        text = stringify_value(value)
        for spelling in _swapped_spellings(str(key)):
            replacements.setdefault(spelling, text)

    result = template
    if replacements:
        names = "|".join(re.escape(s) for s in sorted(replacements, key=len, reverse=True))
        pattern = re.compile(r"\{\{(" + names + r")\}\}|\{(" + names + r")\}")
        result = pattern.sub(lambda m: replacements[m.group(1) or m.group(2)], result)

    while True:
        cleaned = _LEFTOVER_RE.sub("", result)
        if cleaned == result:
            return cleaned
        result = cleaned


def _parse_structured_array(template: str) -> list[ChatMessage] | None:
    if not template.strip().startswith("["):
        return None
    try:
        parsed = json.loads(template)
    except ValueError:
        return None

    if not isinstance(parsed, list) or not parsed:
        return None
    first = parsed[0]
    if not isinstance(first, dict) or not first.get("role") or not isinstance(first.get("content"), str):
        return None

    messages = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        if content is None:
            content = ""
        elif not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False, separators=(",", ":"))
        messages.append(ChatMessage(role=str(item.get("role", "user")), content=content))
    return messages


def _parse_marker_blocks(template: str) -> list[ChatMessage] | None:
    if not _MARKER_RE.search(template):
        return None

    messages = []
    current_role: str | None = None
    for part in _MARKER_RE.split(template):
        trimmed = part.strip()
        if not trimmed:
            continue
        role = _ROLE_MARKERS.get(trimmed.upper())
        if role is not None:
            current_role = role
        elif current_role is not None:
            messages.append(ChatMessage(role=current_role, content=trimmed))

    return messages or None


def detect_dialect(template: str) -> PromptDialect:
    """Return the dialect fill() would use for this template"""
    if _parse_structured_array(template) is not None:
        return PromptDialect.STRUCTURED_ARRAY
    if _parse_marker_blocks(template) is not None:
        return PromptDialect.MARKER_BLOCKS
    return PromptDialect.PLAIN_TEXT


def fill(template: str, variables: Mapping[str, Any]) -> FilledPrompt:
    """
    Parse a draft prompt and fill it with variables

    Args:
        template: Draft prompt in any supported dialect
        variables: Variable values captured from a trace

    Returns:
        FilledPrompt: Messages for the chat dialects, text for plain-text
    """
    messages = _parse_structured_array(template)
    dialect = PromptDialect.STRUCTURED_ARRAY
    if messages is None:
        messages = _parse_marker_blocks(template)
        dialect = PromptDialect.MARKER_BLOCKS

    if messages is None:
        return FilledPrompt(
            dialect=PromptDialect.PLAIN_TEXT,
            text=fill_variables(template, variables),
        )

    return FilledPrompt(
        dialect=dialect,
        messages=tuple(
            ChatMessage(role=m.role, content=fill_variables(m.content, variables))
            for m in messages
        ),
    )


def find_template_variables(template: str) -> list[str]:
    """Names referenced as {{name}} in a template, in first-seen order"""
    seen: list[str] = []
    for name in _DOUBLE_BRACE_NAME_RE.findall(template):
        if name not in seen:
            seen.append(name)
    return seen


def find_missing_variables(template: str, variables: Mapping[str, Any]) -> list[str]:
    """{{name}} references that no variable (in any spelling) can fill"""
    return [
        name for name in find_template_variables(template)
        if not any(s in variables for s in _swapped_spellings(name))
    ]
