"""
Replay Engine Configuration

Manages loading from environment variables and default values.
"""

import os
from dataclasses import dataclass, field, asdict

from prompt_replay.domain.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_LANGFUSE_BASE_URL,
    DEFAULT_OBSERVATION_LIMIT,
)


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_optional_float(key: str) -> float | None:
    """Convert an environment variable to float, None when unset or empty"""
    if not os.environ.get(key):
        return None
    return _env_float(key, 0.0)


def _env_str(key: str, default: str) -> str:
    """Get an environment variable as a string"""
    return os.environ.get(key, default)


@dataclass
class LangfuseConfig:
    """Trace store and telemetry (Langfuse) configuration"""
    public_key: str = ""
    secret_key: str = ""
    base_url: str = DEFAULT_LANGFUSE_BASE_URL
    observation_limit: int = DEFAULT_OBSERVATION_LIMIT
    request_timeout_seconds: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.public_key and self.secret_key)


@dataclass
class ClientConfig:
    """Model client configuration"""
    timeout_seconds: int = 120
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    max_tokens: int = 4096
    temperature: float | None = None  # None keeps the provider default


@dataclass
class ProviderCredentials:
    """Provider credentials (empty values fall back to each SDK's own lookup)"""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    gcp_project_id: str = ""
    gcp_location: str = "global"


@dataclass
class RunConfig:
    """Run orchestration configuration"""
    default_concurrency: int = DEFAULT_CONCURRENCY
    checkpoint_dir: str = ".replay_checkpoints"


@dataclass
class StorageConfig:
    """Results payload storage configuration"""
    backend: str = "local"  # local / s3
    results_dir: str = "results"
    s3_bucket: str = ""
    s3_prefix: str = "eval-results"
    aws_region: str = "us-west-2"
    url_expiry_seconds: int = 7 * 24 * 3600


@dataclass
class ReplayConfig:
    """Overall replay engine configuration"""
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    credentials: ProviderCredentials = field(default_factory=ProviderCredentials)
    run: RunConfig = field(default_factory=RunConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = "INFO"

    def to_dict(self) -> dict:
        """Convert to dictionary format (secrets are masked)"""
        data = asdict(self)
        for section, key in (
            ("langfuse", "secret_key"),
            ("credentials", "openai_api_key"),
            ("credentials", "anthropic_api_key"),
            ("credentials", "gemini_api_key"),
        ):
            if data[section][key]:
                data[section][key] = "***"
        return {"replay_config": data}

    @classmethod
    def from_dict(cls, data: dict) -> "ReplayConfig":
        """Create from dictionary (handles presence/absence of replay_config key)"""
        config_data = data.get("replay_config", data)
        return cls(
            langfuse=LangfuseConfig(**config_data.get("langfuse", {})),
            client=ClientConfig(**config_data.get("client", {})),
            credentials=ProviderCredentials(**config_data.get("credentials", {})),
            run=RunConfig(**config_data.get("run", {})),
            storage=StorageConfig(**config_data.get("storage", {})),
            log_level=config_data.get("log_level", "INFO"),
        )


def load_config() -> ReplayConfig:
    """
    Load configuration from environment variables

    Uses default values when environment variables are not set.

    Returns:
        ReplayConfig
    """
    langfuse = LangfuseConfig(
        public_key=_env_str("LANGFUSE_PUBLIC_KEY", ""),
        secret_key=_env_str("LANGFUSE_SECRET_KEY", ""),
        base_url=_env_str("LANGFUSE_BASE_URL", DEFAULT_LANGFUSE_BASE_URL),
        observation_limit=_env_int("REPLAY_OBSERVATION_LIMIT", DEFAULT_OBSERVATION_LIMIT),
        request_timeout_seconds=_env_int("REPLAY_TRACE_STORE_TIMEOUT_SECONDS", 30),
    )
    client = ClientConfig(
        timeout_seconds=_env_int("REPLAY_CLIENT_TIMEOUT_SECONDS", 120),
        max_retries=_env_int("REPLAY_CLIENT_MAX_RETRIES", 3),
        retry_delay_seconds=_env_float("REPLAY_CLIENT_RETRY_DELAY_SECONDS", 1.0),
        max_tokens=_env_int("REPLAY_CLIENT_MAX_TOKENS", 4096),
        temperature=_env_optional_float("REPLAY_CLIENT_TEMPERATURE"),
    )
    credentials = ProviderCredentials(
        openai_api_key=_env_str("OPENAI_API_KEY", ""),
        anthropic_api_key=_env_str("ANTHROPIC_API_KEY", ""),
        gemini_api_key=_env_str("GEMINI_API_KEY", ""),
        gcp_project_id=_env_str("GCP_PROJECT_ID", ""),
        gcp_location=_env_str("GCP_LOCATION", "global"),
    )
    run = RunConfig(
        default_concurrency=_env_int("REPLAY_DEFAULT_CONCURRENCY", DEFAULT_CONCURRENCY),
        checkpoint_dir=_env_str("REPLAY_CHECKPOINT_DIR", ".replay_checkpoints"),
    )
    storage = StorageConfig(
        backend=_env_str("REPLAY_STORAGE_BACKEND", "local"),
        results_dir=_env_str("REPLAY_RESULTS_DIR", "results"),
        s3_bucket=_env_str("REPLAY_S3_BUCKET", ""),
        s3_prefix=_env_str("REPLAY_S3_PREFIX", "eval-results"),
        aws_region=_env_str("AWS_REGION", "us-west-2"),
        url_expiry_seconds=_env_int("REPLAY_RESULTS_URL_EXPIRY_SECONDS", 7 * 24 * 3600),
    )
    if run.default_concurrency < 1:
        raise ValueError("REPLAY_DEFAULT_CONCURRENCY must be at least 1.")
    return ReplayConfig(
        langfuse=langfuse,
        client=client,
        credentials=credentials,
        run=run,
        storage=storage,
        log_level=_env_str("REPLAY_LOG_LEVEL", "INFO"),
    )
