"""
OpenAI (Chat Completions API) model client
"""

import os
import time

import openai
from openai import OpenAI

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.domain.errors import ProviderCallFailure
from prompt_replay.domain.value_objects import ModelResponse, TokenUsage
from prompt_replay.infrastructure.model_clients.base import (
    ModelClient,
    ProviderRequest,
    RetryMixin,
    elapsed_ms,
)

# Name given to the response_format schema; OpenAI requires one
RESPONSE_SCHEMA_NAME = "replay_output"


class OpenAIClient(RetryMixin, ModelClient):
    """Client using the OpenAI Chat Completions API"""

    provider = ModelProvider.OPENAI

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
            model_name: Model name (e.g. gpt-4.1, gpt-5-mini)
            api_key: OpenAI API key (falls back to environment variable if not specified)
            timeout_seconds: Timeout in seconds (default: 120)
            max_retries: Maximum number of retries (default: 3)
            retry_delay_seconds: Base delay of the exponential backoff (default: 1.0)
            max_tokens: Maximum number of completion tokens (default: 4096)
            temperature: Sampling temperature (provider default if not specified)
        """
        self.model_name = model_name
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature

        if not self.api_key:
            raise ValueError("OPENAI_API_KEY is not set")

        # Retries are handled by RetryMixin
        self.client = OpenAI(api_key=self.api_key, timeout=timeout_seconds, max_retries=0)

    def build_params(self, request: ProviderRequest) -> dict:
        """Chat completion parameters for a request"""
        params: dict = {
            "model": self.model_name,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages or ()],
            "max_completion_tokens": self.max_tokens,
        }
        if request.schema is not None:
            params["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": RESPONSE_SCHEMA_NAME,
                    "schema": request.schema,
                    "strict": False,
                },
            }
        if request.tools:
            params["tools"] = request.tools
        if request.reasoning_effort:
            params["reasoning_effort"] = request.reasoning_effort
        if request.verbosity:
            params["verbosity"] = request.verbosity
        if self.temperature is not None:
            params["temperature"] = self.temperature
        return params

    def generate(self, request: ProviderRequest) -> ModelResponse:
        """
        Send a request and retrieve the response

        Args:
            request: Provider request (messages, native schema and tools)

        Returns:
            ModelResponse: The model's response

        Raises:
            Exception: If the maximum number of retries is exceeded
        """
        params = self.build_params(request)

        def _call():
            start_time = time.time()
            response = self.client.chat.completions.create(**params)
            latency_ms = elapsed_ms(start_time)

            if not response.choices:
                raise ProviderCallFailure(f"OpenAI returned no choices for model {self.model_name}")
            message = response.choices[0].message
            tool_calls = [
                {
                    "id": tc.id,
                    "name": tc.function.name if tc.function else None,
                    "arguments": tc.function.arguments if tc.function else None,
                }
                for tc in (message.tool_calls or [])
            ]

            usage = None
            if response.usage:
                usage = TokenUsage(
                    input=response.usage.prompt_tokens,
                    output=response.usage.completion_tokens,
                    total=response.usage.total_tokens,
                )

            return ModelResponse(
                text=(message.content or "").strip(),
                latency_ms=latency_ms,
                model_name=self.model_name,
                tool_calls=tool_calls,
                usage=usage,
            )

        return self._with_retry(
            _call,
            retryable_exceptions=(
                openai.APIConnectionError,
                openai.RateLimitError,
                openai.InternalServerError,
            ),
        )
