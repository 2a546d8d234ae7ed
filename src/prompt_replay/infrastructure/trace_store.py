"""
Trace store client

Read-only access to the Langfuse public API: one trace by id, and the
generation observations of a trace.
"""

from __future__ import annotations

import logging

import requests
from requests.auth import HTTPBasicAuth

from prompt_replay.domain.constants import DEFAULT_LANGFUSE_BASE_URL, DEFAULT_OBSERVATION_LIMIT
from prompt_replay.domain.errors import StoreUnavailable
from prompt_replay.domain.value_objects import Observation, TraceRecord
from prompt_replay.replay_config import LangfuseConfig

logger = logging.getLogger(__name__)


class TraceStoreClient:
    """Client for GET /api/public/traces and /api/public/observations"""

    def __init__(
        self,
        public_key: str,
        secret_key: str,
        base_url: str = DEFAULT_LANGFUSE_BASE_URL,
        timeout_seconds: int = 30,
        session: requests.Session | None = None,
    ):
        """
        Args:
            public_key: Langfuse public key
            secret_key: Langfuse secret key
            base_url: Langfuse host
            timeout_seconds: Per-request timeout
            session: Optional requests session (a new one is created otherwise)
        """
        if not public_key or not secret_key:
            raise ValueError("LANGFUSE_PUBLIC_KEY and LANGFUSE_SECRET_KEY must be set")
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._session.auth = HTTPBasicAuth(public_key, secret_key)
        self._session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_config(cls, config: LangfuseConfig) -> "TraceStoreClient":
        return cls(
            public_key=config.public_key,
            secret_key=config.secret_key,
            base_url=config.base_url,
            timeout_seconds=config.request_timeout_seconds,
        )

    def _get(self, path: str, params: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.get(url, params=params, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise StoreUnavailable(f"Request to {path} failed: {e}") from e

        if not resp.ok:
            raise StoreUnavailable(
                f"Request to {path} returned status {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise StoreUnavailable(f"Response from {path} is not valid JSON") from e
        if not isinstance(data, dict):
            raise StoreUnavailable(f"Response from {path} is not a JSON object")
        return data

    def get_trace(self, trace_id: str) -> TraceRecord:
        """
        Fetch one trace

        Raises:
            StoreUnavailable: On transport errors or non-2xx responses
        """
        data = self._get(f"/api/public/traces/{trace_id}")
        record = TraceRecord.from_dict(data)
        if not record.id:
            record = TraceRecord(id=trace_id, metadata=record.metadata, input=record.input)
        return record

    def list_generations(self, trace_id: str, limit: int = DEFAULT_OBSERVATION_LIMIT) -> list[Observation]:
        """
        Fetch up to `limit` generation observations of a trace

        Raises:
            StoreUnavailable: On transport errors or non-2xx responses
        """
        data = self._get(
            "/api/public/observations",
            params={"traceId": trace_id, "type": "GENERATION", "limit": limit},
        )
        items = data.get("data") or []
        return [Observation.from_dict(item) for item in items if isinstance(item, dict)]
