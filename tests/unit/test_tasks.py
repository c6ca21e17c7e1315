"""Unit tests for the task catalog and its validation."""

from __future__ import annotations

import pytest

from forge_orchestrator.orchestrator.workflow.tasks import (
    DEFAULT_TASKS,
    TaskDefinition,
    TaskGraph,
    TaskGraphError,
    UnknownTaskError,
    default_graph,
)


def _graph(*tasks: tuple[str, set[str]]) -> TaskGraph:
    return TaskGraph.from_definitions(
        TaskDefinition(id=task_id, depends_on=frozenset(deps)) for task_id, deps in tasks
    )


def test_default_graph_order_and_final_task() -> None:
    graph = default_graph()

    assert graph.ids == [
        "AA-D100",
        "AO-GO",
        "AJ-AF",
        "AM-CC",
        "AC-DC",
        "AE-C",
        "AT-GP",
        "ACO",
    ]
    assert graph.final.id == "ACO"
    assert set(graph.dependencies("ACO")) == set(graph.ids) - {"ACO"}
    assert len(graph) == len(DEFAULT_TASKS)


def test_dependencies_follow_execution_order() -> None:
    graph = default_graph()

    assert graph.dependencies("AE-C") == ["AA-D100", "AO-GO", "AJ-AF", "AM-CC"]
    assert ("AM-CC", "AC-DC") in graph.edges


def test_every_dependency_precedes_its_dependent() -> None:
    graph = default_graph()

    for dependency, dependent in graph.edges:
        assert graph.index(dependency) < graph.index(dependent)


def test_rejects_cycle() -> None:
    with pytest.raises(TaskGraphError, match="cycle"):
        _graph(("A", {"B"}), ("B", {"A"}))


def test_rejects_dependency_declared_later() -> None:
    with pytest.raises(TaskGraphError, match="before its dependencies"):
        _graph(("B", {"A"}), ("A", set()))


def test_rejects_unknown_dependency() -> None:
    with pytest.raises(TaskGraphError, match="unknown"):
        _graph(("A", {"Z"}))


def test_rejects_duplicates_and_self_dependency() -> None:
    with pytest.raises(TaskGraphError, match="Duplicate"):
        _graph(("A", set()), ("A", set()))
    with pytest.raises(TaskGraphError, match="itself"):
        _graph(("A", {"A"}))


def test_rejects_empty_graph() -> None:
    with pytest.raises(TaskGraphError):
        TaskGraph.from_definitions([])


def test_unknown_task_lookup() -> None:
    graph = default_graph()

    assert "ACO" in graph
    assert "NOPE" not in graph
    with pytest.raises(UnknownTaskError):
        graph.get("NOPE")
