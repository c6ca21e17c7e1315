"""Unit tests for demand extraction."""

from __future__ import annotations

from forge_orchestrator.orchestrator.workflow.demands import extract_demands


def test_fenced_object_yields_one_demand() -> None:
    text = (
        "Here is my analysis.\n\n"
        "```json\n"
        '{"target_agent": "AM-CC", "reason": "Headlines are weak", '
        '"suggestion": "Test three variants", "priority": "HIGH"}\n'
        "```\n"
    )

    demands = extract_demands(text, "AA-D100")

    assert len(demands) == 1
    demand = demands[0]
    assert (demand.from_task, demand.to_task) == ("AA-D100", "AM-CC")
    assert demand.reason == "Headlines are weak"
    assert demand.suggestion == "Test three variants"
    assert demand.priority == "high"
    assert demand.demand_type == "optimization"
    assert demand.status == "pending"


def test_fenced_list_yields_one_demand_per_qualifying_element() -> None:
    text = (
        "```\n"
        "[\n"
        '  {"target_agent": "AO-GO", "reason": "Price too low", "type": "pricing"},\n'
        '  {"target_agent": "AT-GP"},\n'
        '  {"target_agent": "AC-DC", "reason": "Off brand", "priority": "urgent"}\n'
        "]\n"
        "```"
    )

    demands = extract_demands(text, "ACO")

    assert [d.to_task for d in demands] == ["AO-GO", "AC-DC"]
    assert demands[0].demand_type == "pricing"
    assert demands[1].priority == "medium"


def test_fenced_blocks_take_precedence_over_inline_records() -> None:
    text = (
        'Inline: {"target_agent": "AE-C", "reason": "inline"}\n'
        "```json\n"
        '{"target_agent": "AJ-AF", "reason": "fenced"}\n'
        "```\n"
    )

    demands = extract_demands(text, "ACO")

    assert [d.reason for d in demands] == ["fenced"]


def test_inline_records_are_used_when_no_fenced_block_qualifies() -> None:
    text = (
        'First {"target_agent": "AE-C", "reason": "one"} and then '
        '{"target_agent": "AM-CC", "reason": "two", "priority": "low"} end.\n'
        "```json\n"
        '{"note": "not a demand"}\n'
        "```\n"
    )

    demands = extract_demands(text, "ACO")

    assert [(d.to_task, d.priority) for d in demands] == [("AE-C", "medium"), ("AM-CC", "low")]


def test_malformed_candidates_are_dropped() -> None:
    text = (
        "```json\n"
        '{"target_agent": "AM-CC", "reason": "broken",\n'
        "```\n"
        '{"target_agent": "AO-GO", "reason": trailing}\n'
    )

    assert extract_demands(text, "ACO") == []


def test_text_without_directives_yields_nothing() -> None:
    assert extract_demands("", "ACO") == []
    assert extract_demands("No routing needed here.", "ACO") == []
