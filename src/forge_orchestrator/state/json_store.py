"""Local JSON-file record store.

All records live in one JSON document. Every public method runs its
read-modify-write cycle under a single lock, which is what makes version
allocation atomic for concurrent writers inside one process.

This is intentionally simple. Multi-process deployments need a database-backed
adapter implementing the same protocols.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field

from forge_orchestrator.state.models import (
    ChatMessage,
    Demand,
    InstructionPrompt,
    KnowledgeItem,
    Output,
    OutputType,
    ProjectMetadata,
    Run,
    utc_now,
)
from forge_orchestrator.state.store import OutputNotFoundError, RunNotFoundError

logger = logging.getLogger(__name__)


class _Document(BaseModel):
    projects: dict[str, ProjectMetadata] = Field(default_factory=dict)
    outputs: list[Output] = Field(default_factory=list)
    knowledge: list[KnowledgeItem] = Field(default_factory=list)
    prompts: list[InstructionPrompt] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)
    demands: list[Demand] = Field(default_factory=list)
    runs: dict[str, Run] = Field(default_factory=dict)


def _max_version(doc: _Document, project_id: str, task_id: str) -> int:
    versions = [
        o.version for o in doc.outputs if o.project_id == project_id and o.task_id == task_id
    ]
    return max(versions, default=0)


@dataclass
class JsonRecordStore:
    """Implements both ``OutputStore`` and ``RunStore`` over one JSON file."""

    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> _Document:
        if not self.path.exists():
            return _Document()
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Record store is not a JSON object: {self.path}")
        return _Document.model_validate(raw)

    def _save_unlocked(self, doc: _Document) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(
            json.dumps(doc.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        os.replace(tmp, self.path)

    # Outputs

    def latest_approved(self, project_id: str, task_id: str) -> Output | None:
        with self._lock:
            doc = self._load_unlocked()
        approved = [
            o
            for o in doc.outputs
            if o.project_id == project_id and o.task_id == task_id and o.is_approved
        ]
        if not approved:
            return None
        return max(approved, key=lambda o: o.version)

    def next_version(self, project_id: str, task_id: str) -> int:
        with self._lock:
            return _max_version(self._load_unlocked(), project_id, task_id) + 1

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
    ) -> Output:
        with self._lock:
            doc = self._load_unlocked()
            expected = _max_version(doc, project_id, task_id) + 1
            if version is None:
                version = expected
            elif version != expected:
                raise ValueError(
                    f"Version {version} for {project_id}/{task_id} is stale; next is {expected}"
                )
            output = Output(
                project_id=project_id,
                task_id=task_id,
                version=version,
                payload=payload,
                is_approved=approved,
                output_type=output_type,
                run_id=run_id,
            )
            doc.outputs.append(output)
            self._save_unlocked(doc)

        logger.info(
            "Stored output",
            extra={
                "output_id": output.output_id,
                "project_id": project_id,
                "task_id": task_id,
                "version": version,
                "chars": len(payload),
            },
        )
        return output

    def set_approved(self, output_id: str) -> Output:
        with self._lock:
            doc = self._load_unlocked()
            for idx, output in enumerate(doc.outputs):
                if output.output_id != output_id:
                    continue
                approved = output.model_copy(update={"is_approved": True})
                doc.outputs[idx] = approved
                self._save_unlocked(doc)
                return approved
        raise OutputNotFoundError(output_id)

    def get_output(self, output_id: str) -> Output:
        with self._lock:
            doc = self._load_unlocked()
        for output in doc.outputs:
            if output.output_id == output_id:
                return output
        raise OutputNotFoundError(output_id)

    def list_outputs(
        self, project_id: str, task_id: str | None = None, run_id: str | None = None
    ) -> list[Output]:
        with self._lock:
            doc = self._load_unlocked()
        outputs = [
            o
            for o in doc.outputs
            if o.project_id == project_id
            and (task_id is None or o.task_id == task_id)
            and (run_id is None or o.run_id == run_id)
        ]
        return sorted(outputs, key=lambda o: (o.task_id, o.version))

    def revert_output(self, output_id: str) -> Output:
        """Append a new, unapproved version carrying an older version's payload."""

        with self._lock:
            doc = self._load_unlocked()
            source = next((o for o in doc.outputs if o.output_id == output_id), None)
            if source is None:
                raise OutputNotFoundError(output_id)
            reverted = Output(
                project_id=source.project_id,
                task_id=source.task_id,
                version=_max_version(doc, source.project_id, source.task_id) + 1,
                payload=source.payload,
                output_type="revert",
                run_id=source.run_id,
            )
            doc.outputs.append(reverted)
            self._save_unlocked(doc)

        logger.info(
            "Reverted output",
            extra={"source": output_id, "output_id": reverted.output_id, "version": reverted.version},
        )
        return reverted

    # Knowledge and instructions

    def list_active_knowledge(self, task_id: str) -> list[KnowledgeItem]:
        with self._lock:
            doc = self._load_unlocked()
        return [k for k in doc.knowledge if k.task_id == task_id and k.is_active]

    def add_knowledge(self, item: KnowledgeItem) -> KnowledgeItem:
        with self._lock:
            doc = self._load_unlocked()
            doc.knowledge.append(item)
            self._save_unlocked(doc)
        return item

    def active_prompt(self, task_id: str) -> InstructionPrompt | None:
        with self._lock:
            doc = self._load_unlocked()
        active = [p for p in doc.prompts if p.task_id == task_id and p.is_active]
        return max(active, key=lambda p: p.version, default=None)

    def add_prompt(self, task_id: str, text: str) -> InstructionPrompt:
        with self._lock:
            doc = self._load_unlocked()
            version = max((p.version for p in doc.prompts if p.task_id == task_id), default=0) + 1
            prompt = InstructionPrompt(task_id=task_id, version=version, text=text)
            doc.prompts.append(prompt)
            self._save_unlocked(doc)
        return prompt

    # Projects

    def get_project(self, project_id: str) -> ProjectMetadata | None:
        with self._lock:
            return self._load_unlocked().projects.get(project_id)

    def save_project(self, project: ProjectMetadata) -> None:
        with self._lock:
            doc = self._load_unlocked()
            doc.projects[project.project_id] = project
            self._save_unlocked(doc)

    # Transcripts and demands

    def append_message(self, message: ChatMessage) -> None:
        with self._lock:
            doc = self._load_unlocked()
            doc.messages.append(message)
            self._save_unlocked(doc)

    def list_messages(self, project_id: str, task_id: str) -> list[ChatMessage]:
        with self._lock:
            doc = self._load_unlocked()
        return [m for m in doc.messages if m.project_id == project_id and m.task_id == task_id]

    def insert_demands(self, demands: list[Demand]) -> list[Demand]:
        if not demands:
            return []
        with self._lock:
            doc = self._load_unlocked()
            doc.demands.extend(demands)
            self._save_unlocked(doc)
        logger.info("Stored demands", extra={"count": len(demands)})
        return demands

    def list_demands(self, project_id: str) -> list[Demand]:
        with self._lock:
            doc = self._load_unlocked()
        return [d for d in doc.demands if d.project_id == project_id]

    # Runs

    def load_run(self, run_id: str) -> Run:
        with self._lock:
            run = self._load_unlocked().runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def save_run(self, run: Run) -> None:
        with self._lock:
            doc = self._load_unlocked()
            doc.runs[run.run_id] = run.model_copy(update={"updated_at": utc_now()})
            self._save_unlocked(doc)

    def update_run(self, run_id: str, apply: Callable[[Run], Run]) -> Run:
        """Replace a run with ``apply(current)`` inside one locked cycle.

        ``apply`` sees the freshest stored record, so a concurrent ``cancel``
        can never be overwritten by a stale copy. Whatever it raises propagates
        and nothing is written.
        """

        with self._lock:
            doc = self._load_unlocked()
            current = doc.runs.get(run_id)
            if current is None:
                raise RunNotFoundError(run_id)
            updated = apply(current).model_copy(update={"updated_at": utc_now()})
            doc.runs[run_id] = updated
            self._save_unlocked(doc)
            return updated
