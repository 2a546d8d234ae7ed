"""
Gemini (Google GenAI SDK) model client
"""

import logging
import os
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai.types import GenerateContentConfig, HttpOptions

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.domain.value_objects import ModelResponse, TokenUsage
from prompt_replay.infrastructure.model_clients.base import (
    ModelClient,
    ProviderRequest,
    RetryMixin,
    elapsed_ms,
)

logger = logging.getLogger(__name__)


class GeminiClient(RetryMixin, ModelClient):
    """Model client using Google GenAI SDK (Gemini API key or Vertex AI)"""

    provider = ModelProvider.GEMINI

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        project_id: str | None = None,
        location: str | None = None,
        timeout_seconds: int = 120,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ):
        """
        Args:
            model_name: Model name (e.g. gemini-2.5-pro, gemini-2.5-flash)
            api_key: Gemini API key; when absent Vertex AI is used
            project_id: GCP project ID for Vertex AI (falls back to environment variable if not specified)
            location: Vertex AI region (default: global)
            timeout_seconds: Timeout in seconds (default: 120)
            max_retries: Maximum number of retries (default: 3)
            retry_delay_seconds: Base delay of the exponential backoff (default: 1.0)
            max_tokens: Maximum number of output tokens (default: 4096)
            temperature: Sampling temperature (provider default if not specified)
        """
        self.model_name = model_name
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature

        api_key = api_key or os.environ.get("GEMINI_API_KEY")
        # Timeout is configured via HttpOptions (milliseconds)
        http_options = HttpOptions(timeout=timeout_seconds * 1000)

        if api_key:
            self.client = genai.Client(api_key=api_key, http_options=http_options)
        else:
            self.project_id = project_id or os.environ.get("GCP_PROJECT_ID")
            self.location = location or os.environ.get("GCP_LOCATION") or "global"
            if not self.project_id:
                raise ValueError("Neither GEMINI_API_KEY nor GCP_PROJECT_ID is set")
            self.client = genai.Client(
                vertexai=True,
                project=self.project_id,
                location=self.location,
                http_options=http_options,
            )

    @property
    def accepts_messages(self) -> bool:
        return False

    def build_config(self, request: ProviderRequest) -> GenerateContentConfig:
        """Generation config for a request"""
        kwargs: dict = {"max_output_tokens": self.max_tokens}
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if request.schema is not None:
            # Enforced at generation time; output is re-validated by the caller
            kwargs["response_mime_type"] = "application/json"
            kwargs["response_schema"] = request.schema
        if request.tools:
            kwargs["tools"] = request.tools
        return GenerateContentConfig(**kwargs)

    def generate(self, request: ProviderRequest) -> ModelResponse:
        """
        Send a request and retrieve the response

        Args:
            request: Provider request (prompt text, native schema and tools)

        Returns:
            ModelResponse: The model's response

        Raises:
            Exception: If the maximum number of retries is exceeded
        """
        config = self.build_config(request)
        if request.reasoning_effort or request.verbosity:
            logger.debug("Reasoning/verbosity hints are not sent to Gemini; recorded in telemetry only")

        def _call():
            start_time = time.time()
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=request.prompt or "",
                config=config,
            )
            latency_ms = elapsed_ms(start_time)

            tool_calls = [
                {"id": fc.id, "name": fc.name, "arguments": fc.args}
                for fc in (response.function_calls or [])
            ]

            # Retrieve token usage
            usage = None
            if getattr(response, "usage_metadata", None):
                usage = TokenUsage(
                    input=response.usage_metadata.prompt_token_count,
                    output=response.usage_metadata.candidates_token_count,
                    total=response.usage_metadata.total_token_count,
                )

            return ModelResponse(
                text=(response.text or "").strip(),
                latency_ms=latency_ms,
                model_name=self.model_name,
                tool_calls=tool_calls,
                usage=usage,
            )

        return self._with_retry(
            _call,
            retryable_exceptions=(genai_errors.ServerError,),
        )
