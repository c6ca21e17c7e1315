"""FastAPI app factory.

Endpoints are thin wrappers over the orchestrator facade.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse

from forge_orchestrator import __version__
from forge_orchestrator.core.orchestrator import Orchestrator
from forge_orchestrator.llm.errors import (
    CompletionError,
    QuotaExhaustedError,
    RateLimitedError,
    TransportError,
)
from forge_orchestrator.llm.provider import CompletionProvider
from forge_orchestrator.orchestrator.workflow.interactive import InteractiveSession
from forge_orchestrator.orchestrator.workflow.state_machine import (
    IllegalTransitionError,
    is_terminal,
)
from forge_orchestrator.orchestrator.workflow.streaming import DONE_EVENT, encode_event
from forge_orchestrator.orchestrator.workflow.tasks import UnknownTaskError
from forge_orchestrator.server.models import (
    ApiTask,
    ChatRequest,
    CreateRunRequest,
    DemandsRequest,
    RunJob,
)
from forge_orchestrator.server.run_worker import RunWorker
from forge_orchestrator.state.models import ChatMessage, Demand, Output, Run
from forge_orchestrator.state.store import OutputNotFoundError, RunNotFoundError

logger = logging.getLogger(__name__)


def _status_for(error: CompletionError) -> int:
    if isinstance(error, RateLimitedError):
        return 429
    if isinstance(error, QuotaExhaustedError):
        return 402
    if isinstance(error, TransportError):
        return 502
    return 500


def _load_run(orchestrator: Orchestrator, run_id: str) -> Run:
    try:
        return orchestrator.get_run(run_id)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail="Run not found") from None


def _require_provider(orchestrator: Orchestrator) -> CompletionProvider:
    try:
        return orchestrator.provider
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


def _event_stream(session: InteractiveSession) -> Iterator[str]:
    printed = 0
    try:
        for text in session:
            yield encode_event(text[printed:])
            printed = len(text)
    except CompletionError as e:
        # Headers are already sent; report the failure in-band as a comment.
        logger.warning(
            "Interactive stream failed after the first byte",
            extra={"task_id": session.task_id, "kind": e.kind},
        )
        yield f": error {e.kind}\n\n"
        return
    finally:
        session.close()
    yield DONE_EVENT


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    orchestrator = orchestrator or Orchestrator()
    settings = orchestrator.config.server

    app = FastAPI(
        title="Forge Orchestrator",
        version=__version__,
        description="REST API over the forge-orchestrator run engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.state.orchestrator = orchestrator
    worker = RunWorker(orchestrator)
    app.state.worker = worker

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/tasks", response_model=list[ApiTask])
    def list_tasks() -> list[ApiTask]:
        return [
            ApiTask(
                task_id=task.id,
                label=task.label,
                depends_on=orchestrator.graph.dependencies(task.id),
            )
            for task in orchestrator.graph
        ]

    @app.post("/api/runs", response_model=Run, status_code=201)
    def create_run(req: CreateRunRequest) -> Run:
        return orchestrator.create_run(req.project_id, req.goal, req.collected_inputs)

    @app.get("/api/runs/{run_id}", response_model=Run)
    def get_run(run_id: str) -> Run:
        return _load_run(orchestrator, run_id)

    @app.post("/api/runs/{run_id}/start", response_model=RunJob, status_code=202)
    def start_run(run_id: str) -> RunJob:
        run = _load_run(orchestrator, run_id)
        if is_terminal(run.status):
            return RunJob(run_id=run_id, status=run.status.value, accepted=False)
        _require_provider(orchestrator)
        thread = worker.start(run_id)
        if thread is None:
            raise HTTPException(status_code=409, detail="Run is already executing")
        return RunJob(run_id=run_id, status=run.status.value, accepted=True)

    @app.post("/api/runs/{run_id}/cancel", response_model=Run)
    def cancel_run(run_id: str) -> Run:
        _load_run(orchestrator, run_id)
        try:
            return orchestrator.cancel_run(run_id)
        except IllegalTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

    @app.post("/api/runs/{run_id}/approve", response_model=list[Output])
    def approve_run(run_id: str) -> list[Output]:
        _load_run(orchestrator, run_id)
        return orchestrator.approve_run(run_id)

    @app.get("/api/runs/{run_id}/export", response_class=PlainTextResponse)
    def export_run(run_id: str) -> PlainTextResponse:
        _load_run(orchestrator, run_id)
        return PlainTextResponse(
            orchestrator.export_run(run_id), media_type="text/markdown; charset=utf-8"
        )

    @app.get("/api/projects/{project_id}/outputs", response_model=list[Output])
    def list_outputs(project_id: str, task_id: str | None = None) -> list[Output]:
        return orchestrator.store.list_outputs(project_id, task_id=task_id)

    @app.post("/api/outputs/{output_id}/approve", response_model=Output)
    def approve_output(output_id: str) -> Output:
        try:
            return orchestrator.store.set_approved(output_id)
        except OutputNotFoundError:
            raise HTTPException(status_code=404, detail="Output not found") from None

    @app.post("/api/outputs/{output_id}/revert", response_model=Output)
    def revert_output(output_id: str) -> Output:
        try:
            return orchestrator.store.revert_output(output_id)
        except OutputNotFoundError:
            raise HTTPException(status_code=404, detail="Output not found") from None

    @app.get(
        "/api/projects/{project_id}/tasks/{task_id}/messages", response_model=list[ChatMessage]
    )
    def list_messages(project_id: str, task_id: str) -> list[ChatMessage]:
        return orchestrator.store.list_messages(project_id, task_id)

    @app.post("/api/projects/{project_id}/tasks/{task_id}/chat", response_model=None)
    def chat(project_id: str, task_id: str, req: ChatRequest) -> Response:
        if task_id not in orchestrator.graph:
            raise HTTPException(status_code=404, detail="Unknown task")
        _require_provider(orchestrator)
        conversation = [turn.model_dump() for turn in req.conversation]
        try:
            session = orchestrator.run_interactive_task(task_id, project_id, conversation)
        except UnknownTaskError:
            raise HTTPException(status_code=404, detail="Unknown task") from None
        except CompletionError as e:
            logger.warning(
                "Interactive task failed before streaming",
                extra={"task_id": task_id, "project_id": project_id, "kind": e.kind},
            )
            raise HTTPException(
                status_code=_status_for(e), detail={"kind": e.kind, "message": str(e)}
            ) from e

        return StreamingResponse(
            _event_stream(session),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.post(
        "/api/projects/{project_id}/tasks/{task_id}/demands", response_model=list[Demand]
    )
    def record_demands(project_id: str, task_id: str, req: DemandsRequest) -> list[Demand]:
        if task_id not in orchestrator.graph:
            raise HTTPException(status_code=404, detail="Unknown task")
        return orchestrator.record_demands(project_id, task_id, req.text)

    @app.get("/api/projects/{project_id}/demands", response_model=list[Demand])
    def list_demands(project_id: str) -> list[Demand]:
        return orchestrator.store.list_demands(project_id)

    return app
