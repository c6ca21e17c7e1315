"""Unit tests for the orchestrator facade."""

from __future__ import annotations

import json

import pytest

from forge_orchestrator.core.orchestrator import Orchestrator
from forge_orchestrator.orchestrator.workflow.state_machine import RunStatus
from forge_orchestrator.orchestrator.workflow.tasks import UnknownTaskError


def _event(text: str) -> bytes:
    fragment = {"choices": [{"delta": {"content": text}}]}
    return f"data: {json.dumps(fragment)}\n\n".encode()


def test_run_management_without_credentials(forge_config, small_graph) -> None:
    config = forge_config.model_copy(
        update={"llm": forge_config.llm.model_copy(update={"api_key": None})}
    )
    orchestrator = Orchestrator(config, graph=small_graph)

    run = orchestrator.create_run("p1", goal="g", collected_inputs={"niche": "tea"})
    cancelled = orchestrator.cancel_run(run.run_id)

    assert cancelled.status == RunStatus.CANCELLED
    assert orchestrator.get_run(run.run_id).collected_inputs == {"niche": "tea"}
    assert "_Not processed_" in orchestrator.export_run(run.run_id)
    with pytest.raises(ValueError, match="API key"):
        orchestrator.start_or_resume_run(run.run_id)


def test_start_or_resume_and_approve(forge_config, small_graph, scripted, task_id_of) -> None:
    provider = scripted(responder=lambda p: f"{task_id_of(p)} done")
    orchestrator = Orchestrator(forge_config, graph=small_graph, provider=provider)
    run = orchestrator.create_run("p1")

    finished = orchestrator.start_or_resume_run(run.run_id)
    approved = orchestrator.approve_run(run.run_id)

    assert finished.status == RunStatus.COMPLETED
    assert len(approved) == 3
    latest = orchestrator.store.latest_approved("p1", "B")
    assert latest is not None
    assert latest.payload == "B done"


def test_interactive_task_records_transcript_and_demands(
    forge_config, small_graph, scripted
) -> None:
    reply = 'Done.\n{"target_agent": "C", "reason": "Use the new personas"}'
    provider = scripted(streams=[[_event(reply), b"data: [DONE]\n\n"]])
    orchestrator = Orchestrator(forge_config, graph=small_graph, provider=provider)

    session = orchestrator.run_interactive_task(
        "A", "p1", [{"role": "user", "content": "Personas please"}]
    )
    text = session.read()
    demands = orchestrator.record_demands("p1", "A", text)

    assert text == reply
    messages = orchestrator.store.list_messages("p1", "A")
    assert [(m.role, m.content) for m in messages] == [
        ("user", "Personas please"),
        ("assistant", reply),
    ]
    assert [(d.project_id, d.from_task, d.to_task) for d in demands] == [("p1", "A", "C")]
    assert orchestrator.store.list_demands("p1") == demands


def test_transcripts_can_be_disabled(forge_config, small_graph, scripted) -> None:
    config = forge_config.model_copy(
        update={"engine": forge_config.engine.model_copy(update={"record_transcripts": False})}
    )
    provider = scripted(streams=[[_event("hi")]])
    orchestrator = Orchestrator(config, graph=small_graph, provider=provider)

    orchestrator.run_interactive_task("A", "p1", [{"role": "user", "content": "x"}]).read()

    assert orchestrator.store.list_messages("p1", "A") == []


def test_interactive_task_rejects_unknown_task(forge_config, small_graph, scripted) -> None:
    orchestrator = Orchestrator(forge_config, graph=small_graph, provider=scripted())

    with pytest.raises(UnknownTaskError):
        orchestrator.run_interactive_task("NOPE", "p1", [{"role": "user", "content": "x"}])
