"""
Tests for replay_config.py
"""

import pytest
from unittest.mock import patch

from prompt_replay.replay_config import (
    ClientConfig,
    LangfuseConfig,
    ReplayConfig,
    RunConfig,
    StorageConfig,
    load_config,
)


class TestDefaults:
    """Default values of the config dataclasses"""

    def test_langfuse(self):
        config = LangfuseConfig()
        assert config.observation_limit == 10
        assert config.request_timeout_seconds == 30
        assert not config.enabled

    def test_langfuse_enabled_needs_both_keys(self):
        assert not LangfuseConfig(public_key="pk").enabled
        assert LangfuseConfig(public_key="pk", secret_key="sk").enabled

    def test_client(self):
        config = ClientConfig()
        assert config.timeout_seconds == 120
        assert config.max_retries == 3
        assert config.retry_delay_seconds == 1.0
        assert config.temperature is None

    def test_run_and_storage(self):
        assert RunConfig().default_concurrency == 10
        assert StorageConfig().backend == "local"


class TestReplayConfigDict:
    """Tests for to_dict() / from_dict()"""

    def test_secrets_are_masked(self):
        config = ReplayConfig(langfuse=LangfuseConfig(public_key="pk", secret_key="sk"))
        data = config.to_dict()
        assert data["replay_config"]["langfuse"]["public_key"] == "pk"
        assert data["replay_config"]["langfuse"]["secret_key"] == "***"
        assert data["replay_config"]["credentials"]["openai_api_key"] == ""

    def test_from_dict_with_and_without_wrapper(self):
        data = {"run": {"default_concurrency": 4}, "log_level": "DEBUG"}
        assert ReplayConfig.from_dict(data).run.default_concurrency == 4
        wrapped = ReplayConfig.from_dict({"replay_config": data})
        assert wrapped.log_level == "DEBUG"
        assert wrapped.storage == StorageConfig()


class TestLoadConfig:
    """Tests for load_config()"""

    @patch.dict("os.environ", {}, clear=True)
    def test_defaults(self):
        config = load_config()
        assert config == ReplayConfig()

    @patch.dict("os.environ", {
        "LANGFUSE_PUBLIC_KEY": "pk",
        "LANGFUSE_SECRET_KEY": "sk",
        "LANGFUSE_BASE_URL": "https://cloud.langfuse.com",
        "REPLAY_OBSERVATION_LIMIT": "25",
        "REPLAY_CLIENT_MAX_RETRIES": "5",
        "REPLAY_CLIENT_RETRY_DELAY_SECONDS": "0.25",
        "REPLAY_CLIENT_TEMPERATURE": "0.7",
        "OPENAI_API_KEY": "ok",
        "REPLAY_DEFAULT_CONCURRENCY": "3",
        "REPLAY_STORAGE_BACKEND": "s3",
        "REPLAY_S3_BUCKET": "bucket",
        "REPLAY_LOG_LEVEL": "debug",
    }, clear=True)
    def test_from_environment(self):
        config = load_config()
        assert config.langfuse.enabled
        assert config.langfuse.base_url == "https://cloud.langfuse.com"
        assert config.langfuse.observation_limit == 25
        assert config.client.max_retries == 5
        assert config.client.retry_delay_seconds == 0.25
        assert config.client.temperature == 0.7
        assert config.credentials.openai_api_key == "ok"
        assert config.run.default_concurrency == 3
        assert config.storage.backend == "s3"
        assert config.storage.s3_bucket == "bucket"
        assert config.log_level == "debug"

    @patch.dict("os.environ", {"REPLAY_CLIENT_MAX_RETRIES": "many"}, clear=True)
    def test_invalid_int(self):
        with pytest.raises(ValueError, match="REPLAY_CLIENT_MAX_RETRIES"):
            load_config()

    @patch.dict("os.environ", {"REPLAY_CLIENT_TEMPERATURE": "warm"}, clear=True)
    def test_invalid_float(self):
        with pytest.raises(ValueError, match="REPLAY_CLIENT_TEMPERATURE"):
            load_config()

    @patch.dict("os.environ", {"REPLAY_DEFAULT_CONCURRENCY": "0"}, clear=True)
    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError, match="REPLAY_DEFAULT_CONCURRENCY"):
            load_config()
