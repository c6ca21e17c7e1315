"""Core configuration for the orchestrator."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from forge_orchestrator.orchestrator.logging import configure_logging


class LLMConfig(BaseSettings):
    """Configuration for the completion service."""

    provider: Literal["openai", "gateway"] = Field(
        default="openai",
        description="Completion provider to use",
    )
    api_key: str | None = Field(
        default=None,
        description="API key for the completion service",
    )
    base_url: str | None = Field(
        default=None,
        description="OpenAI-compatible base URL (required for the gateway provider)",
    )
    model: str = Field(
        default="gpt-4o-mini",
        description="Model to request",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    max_tokens: int = Field(
        default=2048,
        gt=0,
        description="Maximum tokens per completion",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Request timeout; expiry surfaces as a transport error (None = no timeout)",
    )

    model_config = SettingsConfigDict(
        env_prefix="FORGE_LLM_",
        env_file=".env",
        extra="ignore",
    )


class StateConfig(BaseSettings):
    """Configuration for the record store."""

    storage_path: Path = Field(
        default=Path(".forge"),
        description="Directory holding the persisted records",
    )

    model_config = SettingsConfigDict(
        env_prefix="FORGE_STATE_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def records_file(self) -> Path:
        """Path of the JSON document holding all records."""

        return self.storage_path / "records.json"


class EngineConfig(BaseSettings):
    """Configuration for run execution."""

    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries for rate-limited or transport failures before a task is marked errored",
    )
    retry_backoff_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Base delay between retries; grows linearly with the attempt number",
    )
    record_transcripts: bool = Field(
        default=True,
        description="Append interactive exchanges to the chat transcript",
    )

    model_config = SettingsConfigDict(
        env_prefix="FORGE_ENGINE_",
        env_file=".env",
        extra="ignore",
    )


class ServerConfig(BaseSettings):
    """Configuration for the REST server."""

    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(
        env_prefix="FORGE_SERVER_",
        env_file=".env",
        extra="ignore",
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class ForgeConfig(BaseSettings):
    """Main configuration for the orchestrator."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "plain"] = Field(
        default="json",
        description="Structured JSON lines or plain text logs",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="Completion service configuration",
    )
    state: StateConfig = Field(
        default_factory=StateConfig,
        description="Record store configuration",
    )
    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Run execution configuration",
    )
    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="REST server configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="FORGE_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(self.log_level, fmt=self.log_format)

        if self.debug:
            logging.getLogger("forge_orchestrator").setLevel(logging.DEBUG)
