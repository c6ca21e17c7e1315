"""Sequential, resumable execution of a run over the task graph.

Tasks execute strictly one at a time in the declared order. The run record is
persisted after every task, so calling ``start`` again on an interrupted run
picks up at the first task without a stored result and never re-invokes the
completion service for finished ones.

A task that fails is recorded with an error marker and the run moves on;
downstream tasks simply see no approved output for it. Cancellation is
cooperative: it is observed between tasks, and a task already in flight is
allowed to finish and have its result stored. Every write goes through
``RunStore.update_run``, so a cancel issued from another thread is never
overwritten by the runner.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping

from forge_orchestrator.core.config import EngineConfig
from forge_orchestrator.llm.errors import CompletionError
from forge_orchestrator.llm.provider import CompletionProvider, InstructionPayload
from forge_orchestrator.orchestrator.logging import bind_context
from forge_orchestrator.orchestrator.workflow.composer import (
    ContextComposer,
    error_marker,
    is_error_marker,
)
from forge_orchestrator.orchestrator.workflow.state_machine import (
    RunStatus,
    is_terminal,
    transition,
)
from forge_orchestrator.orchestrator.workflow.tasks import TaskDefinition, TaskGraph
from forge_orchestrator.state.models import Output, Run, utc_now
from forge_orchestrator.state.store import OutputStore, RunStore

logger = logging.getLogger(__name__)


def render_run_document(graph: TaskGraph, run: Run) -> str:
    """Markdown document of every task result in execution order."""

    lines = [f"# Complete plan for project {run.project_id}", ""]
    if run.goal:
        lines += [f"**Big idea:** {run.goal}", ""]
    lines += [f"**Run:** {run.run_id} ({run.status.value})", "", "---", ""]

    for task in graph:
        heading = f"## {task.id}"
        if task.label:
            heading += f": {task.label.rstrip('.')}"
        lines += [heading, ""]
        result = run.per_task_result.get(task.id)
        if result is None:
            lines.append("_Not processed_")
        elif is_error_marker(result):
            lines.append(f"**Errored, needs a manual re-run.** {result}")
        else:
            lines.append(result.strip())
        lines += ["", "---", ""]
    return "\n".join(lines)


class RunRunner:
    """Drives runs through ``pending -> running -> completed | cancelled | failed``."""

    def __init__(
        self,
        *,
        graph: TaskGraph,
        composer: ContextComposer,
        provider: CompletionProvider | None = None,
        outputs: OutputStore,
        runs: RunStore,
        config: EngineConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.graph = graph
        self.composer = composer
        self.provider = provider
        self.outputs = outputs
        self.runs = runs
        self.config = config or EngineConfig()
        self._sleep = sleep

    def create_run(
        self,
        project_id: str,
        goal: str = "",
        collected_inputs: Mapping[str, object] | None = None,
    ) -> Run:
        run = Run(project_id=project_id, goal=goal, collected_inputs=dict(collected_inputs or {}))
        self.runs.save_run(run)
        logger.info("Run created", extra={"run_id": run.run_id, "project_id": project_id})
        return run

    def start(self, run_id: str) -> Run:
        """Start or resume a run. Safe to call again on an interrupted run."""

        if self.provider is None:
            raise ValueError("A completion provider is required to execute runs")
        run = self.runs.load_run(run_id)
        if is_terminal(run.status):
            logger.info(f"Run {run_id} is {run.status.value}; nothing to do")
            return run

        with bind_context(run_id=run_id, project_id=run.project_id):
            return self._drive(run_id, self.provider)

    def _drive(self, run_id: str, provider: CompletionProvider) -> Run:
        try:
            run = self.runs.update_run(run_id, _begin)
            if run.status == RunStatus.CANCELLED:
                return run

            for index, task in enumerate(self.graph):
                if task.id in run.per_task_result:
                    continue

                run = self.runs.update_run(run_id, _step(index, task.id))
                if run.status == RunStatus.CANCELLED:
                    logger.info(f"Run {run_id} cancelled before task {task.id}")
                    return run
                logger.info(f"Executing task {task.id} ({index + 1}/{len(self.graph)})")

                with bind_context(task_id=task.id):
                    result = self._execute_task(provider, run, task)
                    run = self.runs.update_run(run_id, _record(index, task.id, result))
                if run.status == RunStatus.CANCELLED:
                    logger.info(f"Run {run_id} cancelled while task {task.id} was in flight")
                    return run

            return self._complete(run_id)
        except Exception as e:
            self._mark_failed(run_id, e)
            raise

    def cancel(self, run_id: str) -> Run:
        def apply(run: Run) -> Run:
            if run.status == RunStatus.CANCELLED:
                return run
            return run.model_copy(
                update={
                    "status": transition(current=run.status, to=RunStatus.CANCELLED),
                    "current_task": None,
                }
            )

        run = self.runs.update_run(run_id, apply)
        logger.info("Run cancelled", extra={"run_id": run_id})
        return run

    def approve_outputs(self, run_id: str) -> list[Output]:
        """Approve the newest output each task produced during ``run_id``."""

        run = self.runs.load_run(run_id)
        latest: dict[str, Output] = {}
        for output in self.outputs.list_outputs(run.project_id, run_id=run_id):
            current = latest.get(output.task_id)
            if current is None or output.version > current.version:
                latest[output.task_id] = output

        approved = [
            o if o.is_approved else self.outputs.set_approved(o.output_id)
            for o in latest.values()
        ]
        logger.info("Approved run outputs", extra={"run_id": run_id, "count": len(approved)})
        return approved

    def _payload(self, run: Run, task: TaskDefinition) -> InstructionPayload:
        context = self.composer.compose(
            task.id,
            run.project_id,
            goal=run.goal,
            collected_inputs=run.collected_inputs,
        )
        directive = task.directive.replace("{goal}", run.goal)
        return InstructionPayload(system=context, messages=({"role": "user", "content": directive},))

    def _execute_task(self, provider: CompletionProvider, run: Run, task: TaskDefinition) -> str:
        payload = self._payload(run, task)

        attempt = 0
        while True:
            try:
                text = provider.complete(payload)
                break
            except CompletionError as e:
                if e.retryable and attempt < self.config.max_retries:
                    attempt += 1
                    delay = self.config.retry_backoff_seconds * attempt
                    logger.warning(
                        f"Task {task.id} hit {e.kind}; retrying in {delay:.1f}s",
                        extra={"run_id": run.run_id, "attempt": attempt},
                    )
                    self._sleep(delay)
                    continue
                logger.error(
                    f"Task {task.id} failed: {e}",
                    extra={"run_id": run.run_id, "kind": e.kind, "attempts": attempt + 1},
                )
                return error_marker(e.kind, str(e))

        self.outputs.insert_output(run.project_id, task.id, text, run_id=run.run_id)
        return text

    def _complete(self, run_id: str) -> Run:
        def apply(run: Run) -> Run:
            if run.status == RunStatus.CANCELLED:
                return run
            run = run.model_copy(
                update={
                    "status": transition(current=run.status, to=RunStatus.COMPLETED),
                    "current_step_index": len(self.graph),
                    "current_task": None,
                    "completed_at": utc_now(),
                }
            )
            return run.model_copy(update={"summary": render_run_document(self.graph, run)})

        run = self.runs.update_run(run_id, apply)
        if run.status != RunStatus.COMPLETED:
            return run

        errored = [t for t, r in run.per_task_result.items() if is_error_marker(r)]
        logger.info(
            "Run completed",
            extra={"run_id": run_id, "tasks": len(run.per_task_result), "errored": errored},
        )
        return run

    def _mark_failed(self, run_id: str, exc: Exception) -> None:
        logger.exception("Run failed", extra={"run_id": run_id})

        def apply(run: Run) -> Run:
            if is_terminal(run.status):
                return run
            return run.model_copy(
                update={
                    "status": transition(current=run.status, to=RunStatus.FAILED),
                    "error": str(exc),
                    "current_task": None,
                    "completed_at": utc_now(),
                }
            )

        try:
            self.runs.update_run(run_id, apply)
        except Exception:
            logger.exception("Could not record run failure", extra={"run_id": run_id})


# Run updates applied under the store lock. A cancelled run stays cancelled.


def _begin(run: Run) -> Run:
    if run.status == RunStatus.CANCELLED:
        return run
    return run.model_copy(
        update={
            "status": transition(current=run.status, to=RunStatus.RUNNING),
            "started_at": run.started_at or utc_now(),
        }
    )


def _step(index: int, task_id: str) -> Callable[[Run], Run]:
    def apply(run: Run) -> Run:
        if run.status == RunStatus.CANCELLED:
            return run
        return run.model_copy(
            update={
                "status": transition(current=run.status, to=RunStatus.RUNNING),
                "current_step_index": index,
                "current_task": task_id,
            }
        )

    return apply


def _record(index: int, task_id: str, result: str) -> Callable[[Run], Run]:
    # The result is kept even when a cancel landed while the task was in flight.
    def apply(run: Run) -> Run:
        return run.model_copy(
            update={
                "per_task_result": {**run.per_task_result, task_id: result},
                "current_step_index": index + 1,
            }
        )

    return apply
