"""Chooses the completion backend named by ``FORGE_LLM_PROVIDER``."""

import logging
from collections.abc import Callable

from forge_orchestrator.core.config import LLMConfig
from forge_orchestrator.llm.gateway_provider import GatewayProvider
from forge_orchestrator.llm.openai_provider import OpenAIProvider
from forge_orchestrator.llm.provider import CompletionProvider

logger = logging.getLogger(__name__)

_BACKENDS: dict[str, Callable[[LLMConfig], CompletionProvider]] = {
    "openai": OpenAIProvider,
    "gateway": GatewayProvider,
}


class LLMFactory:
    """Builds the provider shared by the run engine and interactive sessions."""

    @staticmethod
    def create(config: LLMConfig) -> CompletionProvider:
        """Build the backend for ``config.provider``.

        ``openai`` goes through the official SDK; ``gateway`` posts to any
        OpenAI-compatible ``/chat/completions`` endpoint at ``config.base_url``.

        Raises:
            ValueError: For an unknown backend name, or when the chosen backend
                is missing its credentials or base URL.
        """
        backend = _BACKENDS.get(config.provider)
        if backend is None:
            known = ", ".join(sorted(_BACKENDS))
            raise ValueError(f"Unknown completion backend {config.provider!r} (expected {known})")

        logger.info(f"Using {config.provider} completion backend with model {config.model}")
        return backend(config)
