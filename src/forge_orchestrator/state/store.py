"""Storage interfaces consumed by the engine.

The engine only talks to these protocols. ``JsonRecordStore`` is the bundled
implementation; a database-backed adapter only has to honour the same
contracts, in particular that version allocation is atomic.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from forge_orchestrator.state.models import (
    ChatMessage,
    Demand,
    InstructionPrompt,
    KnowledgeItem,
    Output,
    OutputType,
    ProjectMetadata,
    Run,
)


class RunNotFoundError(KeyError):
    pass


class OutputNotFoundError(KeyError):
    pass


class OutputStore(Protocol):
    def latest_approved(self, project_id: str, task_id: str) -> Output | None: ...

    def next_version(self, project_id: str, task_id: str) -> int: ...

    def insert_output(
        self,
        project_id: str,
        task_id: str,
        payload: str,
        *,
        approved: bool = False,
        version: int | None = None,
        run_id: str | None = None,
        output_type: OutputType = "draft",
    ) -> Output: ...

    def set_approved(self, output_id: str) -> Output: ...

    def get_output(self, output_id: str) -> Output: ...

    def list_outputs(
        self, project_id: str, task_id: str | None = None, run_id: str | None = None
    ) -> list[Output]: ...

    def revert_output(self, output_id: str) -> Output: ...

    def list_active_knowledge(self, task_id: str) -> list[KnowledgeItem]: ...

    def add_knowledge(self, item: KnowledgeItem) -> KnowledgeItem: ...

    def active_prompt(self, task_id: str) -> InstructionPrompt | None: ...

    def add_prompt(self, task_id: str, text: str) -> InstructionPrompt: ...

    def get_project(self, project_id: str) -> ProjectMetadata | None: ...

    def save_project(self, project: ProjectMetadata) -> None: ...

    def append_message(self, message: ChatMessage) -> None: ...

    def list_messages(self, project_id: str, task_id: str) -> list[ChatMessage]: ...

    def insert_demands(self, demands: list[Demand]) -> list[Demand]: ...

    def list_demands(self, project_id: str) -> list[Demand]: ...


class RunStore(Protocol):
    def load_run(self, run_id: str) -> Run: ...

    def save_run(self, run: Run) -> None: ...

    def update_run(self, run_id: str, apply: Callable[[Run], Run]) -> Run: ...
