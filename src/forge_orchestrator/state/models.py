"""Persisted record models.

Every record is a pydantic model so it can be dumped to JSON with
``model_dump(mode="json")`` and validated on load.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from forge_orchestrator.orchestrator.workflow.state_machine import RunStatus

Priority = Literal["low", "medium", "high"]
OutputType = Literal["draft", "summary", "revert", "manual"]
Role = Literal["user", "assistant"]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class ProjectMetadata(BaseModel):
    """Descriptive fields of one project, rendered into every task context."""

    project_id: str
    name: str | None = None
    niche: str | None = None
    target_audience: str | None = None
    goal: str | None = None
    revenue: str | None = None
    product_description: str | None = None


class Output(BaseModel):
    """A versioned artefact produced by one task for one project."""

    output_id: str = Field(default_factory=lambda: new_id("out"))
    project_id: str
    task_id: str
    version: int = Field(ge=1)
    payload: str
    is_approved: bool = False
    output_type: OutputType = "draft"
    run_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class KnowledgeItem(BaseModel):
    """Static reference text scoped to one task."""

    item_id: str = Field(default_factory=lambda: new_id("kb"))
    task_id: str
    category: str = "general"
    title: str
    content: str
    is_active: bool = True


class InstructionPrompt(BaseModel):
    """A versioned override of a task's base instructions."""

    task_id: str
    version: int = Field(ge=1)
    text: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class ChatMessage(BaseModel):
    project_id: str
    task_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=utc_now)


class Demand(BaseModel):
    """A routing directive extracted from one task's text, addressed to another task.

    Demands are write-once; status transitions after creation belong to whoever
    works the demand queue.
    """

    demand_id: str = Field(default_factory=lambda: new_id("dm"))
    project_id: str | None = None
    from_task: str
    to_task: str
    reason: str
    suggestion: str = ""
    priority: Priority = "medium"
    demand_type: str = "optimization"
    status: Literal["pending"] = "pending"
    created_at: datetime = Field(default_factory=utc_now)


class Run(BaseModel):
    """One execution attempt over the full task list for one project."""

    run_id: str = Field(default_factory=lambda: new_id("run"))
    project_id: str
    status: RunStatus = RunStatus.PENDING
    current_step_index: int = 0
    current_task: str | None = None
    per_task_result: dict[str, str] = Field(default_factory=dict)
    goal: str = ""
    collected_inputs: dict[str, object] = Field(default_factory=dict)
    summary: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utc_now)
