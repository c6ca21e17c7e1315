"""OpenAI SDK provider implementation."""

import logging
from collections.abc import Iterator
from contextlib import ExitStack
from typing import Any

import httpx
import openai
from openai import OpenAI

from forge_orchestrator.core.config import LLMConfig
from forge_orchestrator.llm.errors import (
    CompletionError,
    QuotaExhaustedError,
    RateLimitedError,
    ServiceError,
    TransportError,
    error_for_status,
)
from forge_orchestrator.llm.provider import CompletionProvider, CompletionStream, InstructionPayload

logger = logging.getLogger(__name__)


def _map_error(exc: openai.APIError) -> CompletionError:
    if isinstance(exc, openai.APIConnectionError):
        # Includes APITimeoutError.
        return TransportError(str(exc))
    if isinstance(exc, openai.RateLimitError):
        if exc.code == "insufficient_quota":
            return QuotaExhaustedError(str(exc))
        return RateLimitedError(str(exc))
    if isinstance(exc, openai.APIStatusError):
        return error_for_status(exc.status_code, str(exc))
    return ServiceError(str(exc))


class OpenAIProvider(CompletionProvider):
    """Completion provider for the OpenAI API or any OpenAI-compatible endpoint."""

    def __init__(self, config: LLMConfig, client: OpenAI | None = None) -> None:
        """Initialize the OpenAI provider.

        Args:
            config: LLM configuration.
            client: Pre-built client (tests inject a mock here).

        Raises:
            ValueError: If API key is not provided.
        """
        if client is None and not config.api_key:
            raise ValueError("API key is required for the openai provider")

        self.config = config
        # Retries are owned by the run engine, not the SDK.
        self.client = client or OpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            max_retries=0,
        )
        self.model = config.model

        logger.info(f"OpenAI provider initialized with model: {self.model}")

    def _request_args(self, payload: InstructionPayload) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": payload.to_messages(),
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }

    def complete(self, payload: InstructionPayload) -> str:
        logger.debug(f"Requesting completion with {len(payload.messages)} messages")

        try:
            response = self.client.chat.completions.create(**self._request_args(payload))
        except openai.APIError as e:
            raise _map_error(e) from e

        if not response.choices:
            raise ServiceError("Completion response carried no choices")
        content = response.choices[0].message.content or ""
        logger.debug(f"Generated {len(content)} characters")

        return content

    def stream(self, payload: InstructionPayload) -> CompletionStream:
        logger.debug(f"Opening completion stream with {len(payload.messages)} messages")

        stack = ExitStack()
        try:
            response = stack.enter_context(
                self.client.chat.completions.with_streaming_response.create(
                    stream=True, **self._request_args(payload)
                )
            )
        except openai.APIError as e:
            stack.close()
            raise _map_error(e) from e

        def chunks() -> Iterator[bytes]:
            try:
                yield from response.iter_bytes()
            except httpx.HTTPError as e:
                raise TransportError(str(e)) from e

        return CompletionStream(chunks(), close=stack.close)
