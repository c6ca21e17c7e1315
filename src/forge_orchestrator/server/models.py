"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class CreateRunRequest(BaseModel):
    project_id: str = Field(min_length=1)
    goal: str = ""
    collected_inputs: dict[str, object] = Field(default_factory=dict)


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    conversation: list[ChatTurn] = Field(min_length=1)


class DemandsRequest(BaseModel):
    text: str


class ApiTask(BaseModel):
    task_id: str
    label: str
    depends_on: list[str]


class RunJob(BaseModel):
    run_id: str
    status: str
    accepted: bool
