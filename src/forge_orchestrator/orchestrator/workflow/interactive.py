"""Single-task interactive invocation with incremental text delivery."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence

from forge_orchestrator.llm.provider import CompletionProvider, CompletionStream, InstructionPayload
from forge_orchestrator.orchestrator.workflow.composer import ContextComposer
from forge_orchestrator.orchestrator.workflow.streaming import StreamConsumer, consume_stream

logger = logging.getLogger(__name__)

CONVERSATION_ROLES = ("user", "assistant")


def normalise_conversation(conversation: Sequence[Mapping[str, str]]) -> tuple[dict[str, str], ...]:
    turns: list[dict[str, str]] = []
    for turn in conversation:
        role = turn.get("role")
        if role not in CONVERSATION_ROLES:
            raise ValueError(f"Unsupported conversation role: {role!r}")
        turns.append({"role": role, "content": str(turn.get("content") or "")})
    return tuple(turns)


class InteractiveSession:
    """Streaming handle for one interactive task invocation.

    Iterating yields the text produced so far, growing with every fragment.
    Once iteration ends, ``text`` is the finished reply and can be handed to
    the demand extractor. A caller that loses interest just stops iterating
    and calls ``close()``.
    """

    def __init__(
        self,
        *,
        task_id: str,
        project_id: str,
        conversation: tuple[dict[str, str], ...],
        stream: CompletionStream,
        on_complete: Callable[[InteractiveSession], None] | None = None,
    ) -> None:
        self.task_id = task_id
        self.project_id = project_id
        self.conversation = conversation
        self._stream = stream
        self._consumer = StreamConsumer()
        self._on_complete = on_complete
        self._started = False
        self.completed = False

    @property
    def text(self) -> str:
        return self._consumer.text

    @property
    def done(self) -> bool:
        """True once the stream signalled termination or ran out."""

        return self._consumer.done

    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("An interactive session can only be consumed once")
        self._started = True
        try:
            yield from consume_stream(self._stream, self._consumer)
        finally:
            self.close()

        self.completed = True
        logger.info(
            "Interactive task finished",
            extra={"task_id": self.task_id, "project_id": self.project_id, "chars": len(self.text)},
        )
        if self._on_complete is not None:
            self._on_complete(self)

    def read(self) -> str:
        """Consume the whole stream and return the finished text."""

        for _ in self:
            pass
        return self.text

    def close(self) -> None:
        self._stream.close()


def open_session(
    *,
    composer: ContextComposer,
    provider: CompletionProvider,
    task_id: str,
    project_id: str,
    conversation: Sequence[Mapping[str, str]],
    on_complete: Callable[[InteractiveSession], None] | None = None,
) -> InteractiveSession:
    """Compose context and open the stream.

    The request is issued here, so a failure before any text exists raises its
    failure kind to the caller directly.
    """

    turns = normalise_conversation(conversation)
    payload = InstructionPayload(system=composer.compose(task_id, project_id), messages=turns)
    stream = provider.stream(payload)
    return InteractiveSession(
        task_id=task_id,
        project_id=project_id,
        conversation=turns,
        stream=stream,
        on_complete=on_complete,
    )
