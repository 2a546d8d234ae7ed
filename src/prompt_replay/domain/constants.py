"""
Domain Constants

Centrally manages constants shared across the replay engine.
"""

from enum import Enum


class ModelProvider(str, Enum):
    """Model provider a replay can target."""
    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"


class PromptDialect(str, Enum):
    """Template dialect detected for a draft prompt."""
    STRUCTURED_ARRAY = "structured-array"
    MARKER_BLOCKS = "marker-blocks"
    PLAIN_TEXT = "plain-text"


REASONING_EFFORTS = ("minimal", "low", "medium", "high")
VERBOSITY_LEVELS = ("low", "medium", "high")

DEFAULT_CONCURRENCY = 10
DEFAULT_OBSERVATION_LIMIT = 10
DEFAULT_LANGFUSE_BASE_URL = "https://us.cloud.langfuse.com"

# Metadata keys written by production generations
PROMPT_VARIABLES_KEY = "promptVariables"
PROMPT_NAME_KEY = "promptName"
FUNCTION_NAME_KEY = "function-name"
SCHEMA_KEY = "schema"
TOOLS_KEY = "tools"

# Provenance tags
SOURCE_TRACE_METADATA = "trace:metadata"
SOURCE_TRACE_INPUT = "trace:input"
SOURCE_OBSERVATION_PREFIX = "observation:"
SOURCE_OBSERVATION_METADATA = "observation-metadata"
SOURCE_NONE = "none"

# Truncation applied to the draft prompt when it is logged on the run trace
DRAFT_PROMPT_LOG_CHARS = 1000
