"""Plain-HTTP provider for OpenAI-compatible gateways.

Talks to ``{base_url}/chat/completions`` with ``requests`` and hands the raw
server-sent-event body to the caller without interpreting it.
"""

import logging
from collections.abc import Iterator
from typing import Any

import requests

from forge_orchestrator.core.config import LLMConfig
from forge_orchestrator.llm.errors import ServiceError, TransportError, error_for_status
from forge_orchestrator.llm.provider import CompletionProvider, CompletionStream, InstructionPayload

logger = logging.getLogger(__name__)


class GatewayProvider(CompletionProvider):
    """Completion provider speaking the chat-completions wire format over HTTP."""

    def __init__(self, config: LLMConfig, session: requests.Session | None = None) -> None:
        """Initialize the gateway provider.

        Args:
            config: LLM configuration.
            session: HTTP session to reuse (tests inject a mock here).

        Raises:
            ValueError: If API key or base URL is not provided.
        """
        if not config.api_key:
            raise ValueError("API key is required for the gateway provider")
        if not config.base_url:
            raise ValueError("Base URL is required for the gateway provider")

        self.config = config
        self.url = config.base_url.rstrip("/") + "/chat/completions"
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            }
        )

        logger.info(f"Gateway provider initialized: {self.url} ({config.model})")

    def _post(self, payload: InstructionPayload, *, stream: bool) -> requests.Response:
        body: dict[str, Any] = {
            "model": self.config.model,
            "messages": payload.to_messages(),
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "stream": stream,
        }
        try:
            response = self._session.post(
                self.url,
                json=body,
                stream=stream,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise TransportError(str(e)) from e

        if not response.ok:
            detail = response.text[:500]
            response.close()
            logger.warning(
                "Completion request rejected",
                extra={"status_code": response.status_code, "detail": detail},
            )
            raise error_for_status(
                response.status_code, f"Gateway error {response.status_code}: {detail}"
            )
        return response

    def complete(self, payload: InstructionPayload) -> str:
        response = self._post(payload, stream=False)
        try:
            data = response.json()
        except ValueError as e:
            raise ServiceError("Gateway returned a non-JSON body") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise ServiceError("Completion response carried no choices")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise ServiceError("Completion choice carried no message")
        content = message.get("content") or ""
        if not isinstance(content, str):
            raise ServiceError(f"Completion content is {type(content).__name__}, not text")
        logger.debug(f"Generated {len(content)} characters")
        return content

    def stream(self, payload: InstructionPayload) -> CompletionStream:
        response = self._post(payload, stream=True)

        def chunks() -> Iterator[bytes]:
            try:
                for chunk in response.iter_content(chunk_size=None):
                    if chunk:
                        yield chunk
            except requests.RequestException as e:
                raise TransportError(str(e)) from e

        return CompletionStream(chunks(), close=response.close)
