"""Unit tests for configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from forge_orchestrator.core.config import (
    EngineConfig,
    ForgeConfig,
    LLMConfig,
    ServerConfig,
    StateConfig,
)


def test_llm_config_defaults() -> None:
    """Test LLM config default values."""
    config = LLMConfig(api_key="test-key")

    assert config.provider == "openai"
    assert config.model == "gpt-4o-mini"
    assert config.temperature == 0.7
    assert config.max_tokens == 2048
    assert config.timeout_seconds is None


def test_llm_config_rejects_unknown_provider() -> None:
    with pytest.raises(ValidationError):
        LLMConfig(provider="llama")


def test_state_config_records_file(tmp_path: Path) -> None:
    config = StateConfig(storage_path=tmp_path / "state")

    assert config.records_file == tmp_path / "state" / "records.json"


def test_engine_config_defaults() -> None:
    config = EngineConfig()

    assert config.max_retries == 2
    assert config.retry_backoff_seconds == 5.0
    assert config.record_transcripts is True


def test_server_config_parses_cors_origins() -> None:
    config = ServerConfig(cors_origins=" http://a.test , ,http://b.test")

    assert config.parsed_cors_origins() == ["http://a.test", "http://b.test"]


def test_forge_config_composition() -> None:
    """Test forge config with nested configs."""
    config = ForgeConfig(log_level="DEBUG", debug=True)

    assert config.log_level == "DEBUG"
    assert config.debug is True
    assert isinstance(config.llm, LLMConfig)
    assert isinstance(config.state, StateConfig)
    assert isinstance(config.engine, EngineConfig)
    assert isinstance(config.server, ServerConfig)


def test_nested_configs_read_their_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORGE_LLM_PROVIDER", "gateway")
    monkeypatch.setenv("FORGE_LLM_BASE_URL", "https://gateway.test/v1")
    monkeypatch.setenv("FORGE_ENGINE_MAX_RETRIES", "4")
    monkeypatch.setenv("FORGE_LOG_FORMAT", "plain")

    config = ForgeConfig()

    assert config.llm.provider == "gateway"
    assert config.llm.base_url == "https://gateway.test/v1"
    assert config.engine.max_retries == 4
    assert config.log_format == "plain"
