"""
Results payload storage: local filesystem or S3.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from prompt_replay.domain.errors import PersistenceError
from prompt_replay.replay_config import StorageConfig

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_key(key: str) -> str:
    """Restrict a blob key to characters valid in file names and S3 keys"""
    return _UNSAFE_KEY_CHARS.sub("-", key).strip("-") or "results"


@runtime_checkable
class BlobStore(Protocol):
    """Interface for results payload persistence."""

    def put(self, key: str, payload: Any) -> str:
        """Store a JSON-serializable payload under key and return a URL to it.
        Writing the same key again overwrites the previous payload."""
        ...


class LocalBlobStore:
    """Container deployment: JSON files under results_dir."""

    def __init__(self, results_dir: str) -> None:
        self._dir = Path(results_dir)

    def _path(self, key: str) -> Path:
        return self._dir / f"{safe_key(key)}.json"

    def put(self, key: str, payload: Any) -> str:
        path = self._path(key)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
        except (OSError, TypeError) as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e
        return path.resolve().as_uri()


class S3BlobStore:
    """Lambda deployment: S3 bucket with presigned URLs."""

    def __init__(
        self,
        bucket_name: str,
        prefix: str = "eval-results",
        region: str = "us-west-2",
        url_expiry_seconds: int = 7 * 24 * 3600,
    ) -> None:
        import boto3

        self._bucket = bucket_name
        self._prefix = prefix.strip("/")
        self._expiry = url_expiry_seconds
        self._s3 = boto3.client("s3", region_name=region)

    def _key(self, key: str) -> str:
        name = f"{safe_key(key)}.json"
        return f"{self._prefix}/{name}" if self._prefix else name

    def put(self, key: str, payload: Any) -> str:
        s3_key = self._key(key)
        try:
            body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
            self._s3.put_object(
                Bucket=self._bucket,
                Key=s3_key,
                Body=body,
                ContentType="application/json",
            )
            return self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": s3_key},
                ExpiresIn=self._expiry,
            )
        except Exception as e:
            raise PersistenceError(f"Failed to store s3://{self._bucket}/{s3_key}: {e}") from e


def create_blob_store(config: StorageConfig) -> BlobStore:
    """Create the blob store selected by the storage backend setting."""
    if config.backend == "s3":
        if not config.s3_bucket:
            raise ValueError("REPLAY_S3_BUCKET must be set when REPLAY_STORAGE_BACKEND=s3")
        return S3BlobStore(
            config.s3_bucket,
            prefix=config.s3_prefix,
            region=config.aws_region,
            url_expiry_seconds=config.url_expiry_seconds,
        )
    if config.backend == "local":
        return LocalBlobStore(config.results_dir)
    raise ValueError(f"Unknown storage backend: {config.backend}. Valid values: ['local', 's3']")
