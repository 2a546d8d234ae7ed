"""
Anthropic Claude model client
"""

import logging
import os
import time

from anthropic import Anthropic, APIConnectionError, InternalServerError, RateLimitError

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.domain.value_objects import ModelResponse, TokenUsage
from prompt_replay.infrastructure.model_clients.base import (
    ModelClient,
    ProviderRequest,
    RetryMixin,
    elapsed_ms,
)

logger = logging.getLogger(__name__)


class ClaudeClient(RetryMixin, ModelClient):
    """Claude client using the Anthropic Messages API"""

    provider = ModelProvider.CLAUDE

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        timeout_seconds: int = 120,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ):
        """
        Args:
            model_name: Model name (e.g. claude-sonnet-4-5-20250929)
            api_key: Anthropic API key (falls back to environment variable if not specified)
            timeout_seconds: Timeout in seconds (default: 120)
            max_retries: Maximum number of retries (default: 3)
            retry_delay_seconds: Base delay of the exponential backoff (default: 1.0)
            max_tokens: Maximum number of output tokens (default: 4096)
            temperature: Sampling temperature (provider default if not specified)
        """
        self.model_name = model_name
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature

        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY is not set")

        # Initialize the Anthropic client; retries are handled by RetryMixin
        self.client = Anthropic(api_key=self.api_key, timeout=timeout_seconds, max_retries=0)

    def build_params(self, request: ProviderRequest) -> dict:
        """Messages API parameters; system messages move to the system prompt"""
        messages = request.messages or ()
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        turns = [{"role": m.role, "content": m.content} for m in messages if m.role != "system"]
        if not turns:
            # The API needs at least one user turn
            turns = [{"role": "user", "content": system}]
            system = ""

        params: dict = {
            "model": self.model_name,
            "max_tokens": self.max_tokens,
            "messages": turns,
        }
        if system:
            params["system"] = system
        if request.tools:
            params["tools"] = request.tools
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if request.schema is not None:
            logger.debug("Claude has no schema enforcement here; output is only re-validated")
        return params

    def generate(self, request: ProviderRequest) -> ModelResponse:
        """
        Send a request and retrieve the response

        Args:
            request: Provider request (messages and native tools)

        Returns:
            ModelResponse: The model's response

        Raises:
            Exception: If the maximum number of retries is exceeded
        """
        params = self.build_params(request)

        def _call():
            start_time = time.time()
            response = self.client.messages.create(**params)
            latency_ms = elapsed_ms(start_time)

            text_parts = []
            tool_calls = []
            for block in response.content:
                if block.type == "text":
                    text_parts.append(block.text)
                elif block.type == "tool_use":
                    tool_calls.append({"id": block.id, "name": block.name, "arguments": block.input})

            # Retrieve token usage
            input_tokens = getattr(response.usage, "input_tokens", 0) or 0
            output_tokens = getattr(response.usage, "output_tokens", 0) or 0

            return ModelResponse(
                text="".join(text_parts).strip(),
                latency_ms=latency_ms,
                model_name=self.model_name,
                tool_calls=tool_calls,
                usage=TokenUsage(
                    input=input_tokens,
                    output=output_tokens,
                    total=input_tokens + output_tokens,
                ),
            )

        return self._with_retry(
            _call,
            retryable_exceptions=(APIConnectionError, RateLimitError, InternalServerError),
        )
