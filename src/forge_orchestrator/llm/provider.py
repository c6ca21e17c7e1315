"""Abstract base class for completion providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Literal

Mode = Literal["blocking", "streaming"]


@dataclass(frozen=True, slots=True)
class InstructionPayload:
    """Everything sent to the completion service for one invocation.

    ``system`` is the composed context; ``messages`` are the conversation turns
    that follow it.
    """

    system: str
    messages: tuple[dict[str, str], ...] = field(default_factory=tuple)

    def to_messages(self) -> list[dict[str, str]]:
        return [{"role": "system", "content": self.system}, *self.messages]


class CompletionStream:
    """An open stream of raw response bytes.

    Iterate to receive chunks in arrival order; chunk boundaries are arbitrary.
    Closing releases the underlying connection and may happen at any time.
    """

    def __init__(self, chunks: Iterable[bytes], close: Callable[[], None] | None = None) -> None:
        self._chunks = chunks
        self._close = close
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._chunks)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            self._close()

    def __enter__(self) -> CompletionStream:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


class CompletionProvider(ABC):
    """Abstract base class for completion providers.

    This interface allows pluggable backends (OpenAI SDK, raw HTTP gateway, etc.)
    Implementations raise the failure kinds from ``forge_orchestrator.llm.errors``.
    """

    @abstractmethod
    def complete(self, payload: InstructionPayload) -> str:
        """Generate a finished completion.

        Args:
            payload: System context and conversation turns.

        Returns:
            The generated text.
        """
        pass

    @abstractmethod
    def stream(self, payload: InstructionPayload) -> CompletionStream:
        """Open a streaming completion.

        The request is issued before this returns, so failures reported by the
        service surface here rather than during iteration.

        Args:
            payload: System context and conversation turns.

        Returns:
            Open stream of server-sent-event bytes.
        """
        pass

    def invoke(self, payload: InstructionPayload, mode: Mode = "blocking") -> str | CompletionStream:
        if mode == "blocking":
            return self.complete(payload)
        if mode == "streaming":
            return self.stream(payload)
        raise ValueError(f"Unsupported invocation mode: {mode}")
