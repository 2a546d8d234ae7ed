"""
Model client base class and retry mixin

Defines the abstract base class inherited by all model clients,
the provider-level request they accept, and the RetryMixin that
consolidates shared retry logic.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.domain.value_objects import ChatMessage, ModelResponse


@dataclass(frozen=True)
class ProviderRequest:
    """
    One provider call, already in native form.

    Chat-family clients read `messages`, prompt-family clients read `prompt`.
    `schema` and `tools` are the translated native structures.
    """
    messages: tuple[ChatMessage, ...] | None = None
    prompt: str | None = None
    schema: dict | None = None
    tools: list[dict] | None = None
    reasoning_effort: str | None = None
    verbosity: str | None = None


class RetryMixin:
    """Exponential backoff retry. Subclasses set self.max_retries and self.retry_delay_seconds."""

    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    def _with_retry(self, fn, retryable_exceptions=(Exception,)):
        """
        Execute with exponential backoff retry.

        Args:
            fn: The function to retry (a callable with no arguments)
            retryable_exceptions: Tuple of exception types eligible for retry

        Returns:
            The return value of fn()

        Raises:
            ValueError: If max_retries is less than 1
            Exception: The last exception if max retries are exceeded
        """
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1.")

        last_exception: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                return fn()
            except retryable_exceptions as e:
                last_exception = e
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay_seconds * (2 ** attempt))

        assert last_exception is not None
        raise last_exception


class ModelClient(ABC):
    """Abstract base class for model clients"""

    provider: ModelProvider
    model_name: str

    @property
    def accepts_messages(self) -> bool:
        """True for chat-family clients, False for prompt-family clients"""
        return True

    @abstractmethod
    def generate(self, request: ProviderRequest) -> ModelResponse:
        """Send a request and retrieve the response"""
        pass


def elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)
