"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from forge_orchestrator.core.config import EngineConfig, ForgeConfig, LLMConfig, StateConfig
from forge_orchestrator.llm.provider import CompletionProvider, CompletionStream, InstructionPayload
from forge_orchestrator.orchestrator.workflow.composer import ContextComposer
from forge_orchestrator.orchestrator.workflow.runner import RunRunner
from forge_orchestrator.orchestrator.workflow.tasks import TaskDefinition, TaskGraph
from forge_orchestrator.state.json_store import JsonRecordStore

Reply = str | Exception
Responder = Callable[[InstructionPayload], Reply]


class ScriptedProvider(CompletionProvider):
    """Completion provider double that replays scripted replies and records payloads."""

    def __init__(
        self,
        replies: Iterable[Reply] = (),
        *,
        responder: Responder | None = None,
        streams: Iterable[list[bytes] | Exception] = (),
    ) -> None:
        self.replies = list(replies)
        self.responder = responder
        self.streams = list(streams)
        self.payloads: list[InstructionPayload] = []
        self.closed_streams = 0

    def complete(self, payload: InstructionPayload) -> str:
        self.payloads.append(payload)
        reply = self.responder(payload) if self.responder else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def stream(self, payload: InstructionPayload) -> CompletionStream:
        self.payloads.append(payload)
        chunks = self.streams.pop(0)
        if isinstance(chunks, Exception):
            raise chunks

        def _close() -> None:
            self.closed_streams += 1

        return CompletionStream(iter(chunks), close=_close)


def task_of(payload: InstructionPayload) -> str:
    """Task id of a payload composed from ``small_graph`` instructions."""

    first_line = payload.system.splitlines()[0]
    return first_line.removeprefix("task-")


@pytest.fixture
def store(tmp_path: Path) -> JsonRecordStore:
    """Provide an empty record store in a temporary directory."""
    return JsonRecordStore(tmp_path / ".forge" / "records.json")


@pytest.fixture
def small_graph() -> TaskGraph:
    """A -> B -> C, with C also depending on A directly."""
    return TaskGraph.from_definitions(
        [
            TaskDefinition(id="A", instructions="task-A", label="First"),
            TaskDefinition(id="B", depends_on=frozenset({"A"}), instructions="task-B"),
            TaskDefinition(id="C", depends_on=frozenset({"A", "B"}), instructions="task-C"),
        ]
    )


@pytest.fixture
def composer(small_graph: TaskGraph, store: JsonRecordStore) -> ContextComposer:
    return ContextComposer(graph=small_graph, store=store)


@pytest.fixture
def sleeps() -> list[float]:
    """Collects the delays a runner asked to sleep for."""
    return []


@pytest.fixture
def make_runner(
    small_graph: TaskGraph,
    composer: ContextComposer,
    store: JsonRecordStore,
    sleeps: list[float],
) -> Callable[..., RunRunner]:
    def _make(provider: CompletionProvider, **engine: object) -> RunRunner:
        return RunRunner(
            graph=small_graph,
            composer=composer,
            provider=provider,
            outputs=store,
            runs=store,
            config=EngineConfig(**engine),
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def forge_config(tmp_path: Path) -> ForgeConfig:
    """Provide a test configuration rooted in a temporary directory."""
    return ForgeConfig(
        log_level="DEBUG",
        log_format="plain",
        llm=LLMConfig(provider="openai", api_key="test-key"),
        state=StateConfig(storage_path=tmp_path / ".forge"),
        engine=EngineConfig(max_retries=0, retry_backoff_seconds=0.0),
    )


@pytest.fixture
def scripted() -> type[ScriptedProvider]:
    """The scripted provider double; call it with replies or streams."""
    return ScriptedProvider


@pytest.fixture
def task_id_of() -> Callable[[InstructionPayload], str]:
    return task_of
