"""
Model client package

Provides a unified interface to each LLM provider.
"""

from prompt_replay.infrastructure.model_clients.base import ModelClient, ProviderRequest
from prompt_replay.infrastructure.model_clients.factory import create_client
from prompt_replay.domain.value_objects import ModelResponse

__all__ = ["ModelClient", "ModelResponse", "ProviderRequest", "create_client"]
