"""Completion provider package initialization."""

from forge_orchestrator.llm.errors import (
    CompletionError,
    QuotaExhaustedError,
    RateLimitedError,
    ServiceError,
    TransportError,
)
from forge_orchestrator.llm.factory import LLMFactory
from forge_orchestrator.llm.provider import CompletionProvider, CompletionStream, InstructionPayload

__all__ = [
    "CompletionError",
    "CompletionProvider",
    "CompletionStream",
    "InstructionPayload",
    "LLMFactory",
    "QuotaExhaustedError",
    "RateLimitedError",
    "ServiceError",
    "TransportError",
]
