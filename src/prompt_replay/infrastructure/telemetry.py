"""
Telemetry (Langfuse)

Process-wide handle used to record one trace per replay run and one
generation per provider call. Without Langfuse credentials every call is a
no-op. Runs must call flush() before returning so buffered events are
delivered even when the process is torn down right after.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from langfuse import Langfuse

from prompt_replay.domain.value_objects import TokenUsage
from prompt_replay.replay_config import LangfuseConfig

logger = logging.getLogger(__name__)


class Telemetry:
    """Thin wrapper over the Langfuse client"""

    def __init__(self, client: Langfuse | None = None):
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def create_run_trace(
        self,
        trace_id: str,
        name: str,
        metadata: dict | None = None,
        input: Any = None,
    ) -> str:
        """Create (or upsert) the aggregate trace of a run and return its id"""
        if self._client is not None:
            self._client.trace(id=trace_id, name=name, metadata=metadata, input=input)
        return trace_id

    def update_run_trace(
        self,
        trace_id: str,
        output: Any = None,
        metadata: dict | None = None,
    ) -> None:
        if self._client is not None:
            self._client.trace(id=trace_id, output=output, metadata=metadata)

    def record_generation(
        self,
        trace_id: str,
        name: str,
        model: str,
        input: Any,
        output: Any = None,
        usage: TokenUsage | None = None,
        metadata: dict | None = None,
        error: str | None = None,
    ) -> None:
        """Record one provider call as a generation on the run trace"""
        if self._client is None:
            return
        kwargs: dict[str, Any] = {
            "trace_id": trace_id,
            "name": name,
            "model": model,
            "input": input,
            "output": output,
            "metadata": metadata,
        }
        if usage is not None:
            kwargs["usage"] = {"input": usage.input, "output": usage.output, "total": usage.total}
        if error is not None:
            kwargs["level"] = "ERROR"
            kwargs["status_message"] = error
        self._client.generation(**kwargs)

    def flush(self) -> None:
        if self._client is not None:
            self._client.flush()


_telemetry: Telemetry | None = None
_telemetry_lock = threading.Lock()


def get_telemetry(config: LangfuseConfig | None = None) -> Telemetry:
    """
    Return the process-wide telemetry handle, creating it on first use

    Args:
        config: Langfuse configuration (loads from env if not provided)
    """
    global _telemetry
    with _telemetry_lock:
        if _telemetry is None:
            if config is None:
                from prompt_replay.replay_config import load_config
                config = load_config().langfuse
            if config.enabled:
                client = Langfuse(
                    public_key=config.public_key,
                    secret_key=config.secret_key,
                    host=config.base_url,
                )
                _telemetry = Telemetry(client)
            else:
                logger.info("Langfuse credentials not set, telemetry disabled")
                _telemetry = Telemetry(None)
        return _telemetry


def reset_telemetry() -> None:
    """Drop the process-wide handle (used by tests and after reconfiguration)"""
    global _telemetry
    with _telemetry_lock:
        _telemetry = None
