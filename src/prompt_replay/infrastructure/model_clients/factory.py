"""
Model client factory

Creates the appropriate client instance based on the provider.
"""

from __future__ import annotations

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.replay_config import ReplayConfig, load_config
from prompt_replay.infrastructure.model_clients.base import ModelClient
from prompt_replay.infrastructure.model_clients.claude import ClaudeClient
from prompt_replay.infrastructure.model_clients.gemini import GeminiClient
from prompt_replay.infrastructure.model_clients.openai_client import OpenAIClient


def create_client(
    provider: ModelProvider | str,
    model_name: str,
    config: ReplayConfig | None = None,
) -> ModelClient:
    """
    Create the appropriate client based on the provider

    Args:
        provider: Target provider
        model_name: Model name
        config: ReplayConfig (loads from env if not provided)

    Returns:
        ModelClient: The appropriate client instance
    """
    if config is None:
        config = load_config()

    provider = ModelProvider(provider)
    common = {
        "timeout_seconds": config.client.timeout_seconds,
        "max_retries": config.client.max_retries,
        "retry_delay_seconds": config.client.retry_delay_seconds,
        "max_tokens": config.client.max_tokens,
        "temperature": config.client.temperature,
    }
    creds = config.credentials

    if provider == ModelProvider.OPENAI:
        return OpenAIClient(model_name, api_key=creds.openai_api_key or None, **common)
    elif provider == ModelProvider.CLAUDE:
        return ClaudeClient(model_name, api_key=creds.anthropic_api_key or None, **common)
    else:
        return GeminiClient(
            model_name,
            api_key=creds.gemini_api_key or None,
            project_id=creds.gcp_project_id or None,
            location=creds.gcp_location or None,
            **common,
        )
