"""Unit tests for the local JSON record store."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from forge_orchestrator.state.json_store import JsonRecordStore
from forge_orchestrator.state.models import (
    ChatMessage,
    Demand,
    KnowledgeItem,
    ProjectMetadata,
    Run,
)
from forge_orchestrator.state.store import OutputNotFoundError, RunNotFoundError


def test_empty_store_has_no_records(store: JsonRecordStore) -> None:
    assert store.latest_approved("p1", "A") is None
    assert store.next_version("p1", "A") == 1
    assert store.list_outputs("p1") == []
    assert not store.path.exists()


def test_versions_are_monotonic_per_project_and_task(store: JsonRecordStore) -> None:
    first = store.insert_output("p1", "A", "one")
    second = store.insert_output("p1", "A", "two")
    other_task = store.insert_output("p1", "B", "b")
    other_project = store.insert_output("p2", "A", "x")

    assert (first.version, second.version) == (1, 2)
    assert other_task.version == 1
    assert other_project.version == 1
    assert store.next_version("p1", "A") == 3


def test_stale_explicit_version_is_rejected(store: JsonRecordStore) -> None:
    store.insert_output("p1", "A", "one")

    with pytest.raises(ValueError, match="stale"):
        store.insert_output("p1", "A", "again", version=1)
    assert store.insert_output("p1", "A", "two", version=2).version == 2


def test_concurrent_inserts_allocate_distinct_versions(store: JsonRecordStore) -> None:
    def _insert(n: int) -> None:
        store.insert_output("p1", "A", f"payload {n}")

    threads = [threading.Thread(target=_insert, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    versions = sorted(o.version for o in store.list_outputs("p1", task_id="A"))
    assert versions == list(range(1, 9))


def test_only_approved_outputs_are_latest_approved(store: JsonRecordStore) -> None:
    v1 = store.insert_output("p1", "A", "one")
    store.insert_output("p1", "A", "two")

    assert store.latest_approved("p1", "A") is None

    store.set_approved(v1.output_id)
    latest = store.latest_approved("p1", "A")
    assert latest is not None
    assert latest.payload == "one"

    v3 = store.insert_output("p1", "A", "three", approved=True)
    latest = store.latest_approved("p1", "A")
    assert latest is not None
    assert latest.output_id == v3.output_id


def test_revert_appends_a_new_version(store: JsonRecordStore) -> None:
    v1 = store.insert_output("p1", "A", "original")
    store.insert_output("p1", "A", "edited", approved=True)

    reverted = store.revert_output(v1.output_id)

    assert reverted.version == 3
    assert reverted.payload == "original"
    assert reverted.output_type == "revert"
    assert reverted.is_approved is False
    assert [o.version for o in store.list_outputs("p1", task_id="A")] == [1, 2, 3]
    assert store.get_output(v1.output_id).payload == "original"


def test_missing_output_raises(store: JsonRecordStore) -> None:
    with pytest.raises(OutputNotFoundError):
        store.set_approved("out-missing")
    with pytest.raises(OutputNotFoundError):
        store.revert_output("out-missing")


def test_list_outputs_filters_by_run(store: JsonRecordStore) -> None:
    store.insert_output("p1", "A", "manual")
    store.insert_output("p1", "A", "from run", run_id="run-1")

    outputs = store.list_outputs("p1", run_id="run-1")

    assert [o.payload for o in outputs] == ["from run"]


def test_run_roundtrip_survives_a_new_store_instance(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    run = Run(project_id="p1", goal="ship", per_task_result={"A": "done"})
    JsonRecordStore(path).save_run(run)

    loaded = JsonRecordStore(path).load_run(run.run_id)

    assert loaded.project_id == "p1"
    assert loaded.per_task_result == {"A": "done"}
    assert loaded.updated_at >= run.updated_at


def test_missing_run_raises(store: JsonRecordStore) -> None:
    with pytest.raises(RunNotFoundError):
        store.load_run("run-missing")


def test_update_run_applies_to_the_stored_record(store: JsonRecordStore) -> None:
    run = Run(project_id="p1", per_task_result={"A": "done"})
    store.save_run(run)
    stale = run.model_copy(update={"goal": "stale copy"})
    store.save_run(run.model_copy(update={"goal": "fresh"}))

    updated = store.update_run(
        stale.run_id,
        lambda r: r.model_copy(update={"per_task_result": {**r.per_task_result, "B": "also"}}),
    )

    assert updated.goal == "fresh"
    assert store.load_run(run.run_id).per_task_result == {"A": "done", "B": "also"}
    assert updated.updated_at >= run.updated_at


def test_update_run_writes_nothing_when_apply_raises(store: JsonRecordStore) -> None:
    run = Run(project_id="p1")
    store.save_run(run)

    def refuse(current: Run) -> Run:
        raise ValueError("no")

    with pytest.raises(ValueError, match="no"):
        store.update_run(run.run_id, refuse)
    with pytest.raises(RunNotFoundError):
        store.update_run("run-missing", lambda r: r)
    assert store.load_run(run.run_id).goal == ""


def test_knowledge_prompts_projects_messages_and_demands(store: JsonRecordStore) -> None:
    store.add_knowledge(KnowledgeItem(task_id="A", title="Active", content="x"))
    store.add_knowledge(KnowledgeItem(task_id="A", title="Off", content="y", is_active=False))
    assert [k.title for k in store.list_active_knowledge("A")] == ["Active"]

    assert store.active_prompt("A") is None
    store.add_prompt("A", "first")
    store.add_prompt("A", "second")
    prompt = store.active_prompt("A")
    assert prompt is not None
    assert (prompt.version, prompt.text) == (2, "second")

    store.save_project(ProjectMetadata(project_id="p1", name="Acme"))
    project = store.get_project("p1")
    assert project is not None
    assert project.name == "Acme"

    store.append_message(ChatMessage(project_id="p1", task_id="A", role="user", content="hi"))
    assert [m.content for m in store.list_messages("p1", "A")] == ["hi"]
    assert store.list_messages("p1", "B") == []

    assert store.insert_demands([]) == []
    store.insert_demands([Demand(project_id="p1", from_task="A", to_task="B", reason="r")])
    assert [d.to_task for d in store.list_demands("p1")] == ["B"]


def test_non_object_document_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(ValueError, match="not a JSON object"):
        JsonRecordStore(path).load_run("run-1")
