"""Static task definitions and the validated execution graph.

The execution order is declared, never computed. Loading a catalog checks the
declared order against the dependency edges so the two cannot drift apart.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter


class TaskGraphError(ValueError):
    pass


class UnknownTaskError(KeyError):
    pass


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """One specialised generation task.

    ``directive`` is the request sent as the user turn during a run and may
    reference ``{goal}``.
    """

    id: str
    depends_on: frozenset[str] = field(default_factory=frozenset)
    label: str = ""
    instructions: str = ""
    directive: str = (
        "Carry out your complete mission for this project. Goal: \"{goal}\". "
        "Use every project detail provided in the context. "
        "Deliver a complete, structured and actionable result."
    )


@dataclass(frozen=True, slots=True)
class TaskGraph:
    """Validated nodes, edges and the fixed total order over them."""

    order: tuple[TaskDefinition, ...]

    def __post_init__(self) -> None:
        validate_order(self.order)

    @classmethod
    def from_definitions(cls, definitions: Iterable[TaskDefinition]) -> TaskGraph:
        return cls(order=tuple(definitions))

    def __iter__(self) -> Iterator[TaskDefinition]:
        return iter(self.order)

    def __len__(self) -> int:
        return len(self.order)

    def __contains__(self, task_id: object) -> bool:
        return any(t.id == task_id for t in self.order)

    @property
    def ids(self) -> list[str]:
        return [t.id for t in self.order]

    @property
    def edges(self) -> list[tuple[str, str]]:
        """(dependency, dependent) pairs in declared order."""

        return [(dep, t.id) for t in self.order for dep in self.dependencies(t.id)]

    def get(self, task_id: str) -> TaskDefinition:
        for task in self.order:
            if task.id == task_id:
                return task
        raise UnknownTaskError(task_id)

    def index(self, task_id: str) -> int:
        for idx, task in enumerate(self.order):
            if task.id == task_id:
                return idx
        raise UnknownTaskError(task_id)

    def dependencies(self, task_id: str) -> list[str]:
        """Dependencies of ``task_id`` in execution order."""

        deps = self.get(task_id).depends_on
        return [t.id for t in self.order if t.id in deps]

    @property
    def final(self) -> TaskDefinition:
        return self.order[-1]


def validate_order(order: Sequence[TaskDefinition]) -> None:
    """Reject duplicate ids, unknown dependencies, cycles and ordering violations."""

    if not order:
        raise TaskGraphError("Task graph is empty")

    ids = [t.id for t in order]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise TaskGraphError(f"Duplicate task ids: {', '.join(duplicates)}")

    known = set(ids)
    for task in order:
        unknown = sorted(task.depends_on - known)
        if unknown:
            raise TaskGraphError(f"Task {task.id} depends on unknown tasks: {', '.join(unknown)}")
        if task.id in task.depends_on:
            raise TaskGraphError(f"Task {task.id} depends on itself")

    sorter = TopologicalSorter({t.id: set(t.depends_on) for t in order})
    try:
        sorter.prepare()
    except CycleError as e:
        cycle = " -> ".join(e.args[1]) if len(e.args) > 1 else "?"
        raise TaskGraphError(f"Dependency cycle: {cycle}") from e

    seen: set[str] = set()
    for task in order:
        late = sorted(task.depends_on - seen)
        if late:
            raise TaskGraphError(
                f"Task {task.id} is declared before its dependencies: {', '.join(late)}"
            )
        seen.add(task.id)


DEFAULT_TASKS: tuple[TaskDefinition, ...] = (
    TaskDefinition(
        id="AA-D100",
        label="Analysing the audience and building personas...",
        instructions=(
            "You are AA-D100, the audience analysis agent. Build detailed micro-personas, "
            "a Dream 100 list of channels and influencers in the niche, and a map of "
            "pains against desires."
        ),
    ),
    TaskDefinition(
        id="AO-GO",
        depends_on=frozenset({"AA-D100"}),
        label="Designing the core offer...",
        instructions=(
            "You are AO-GO, the offer design agent. Build a five-step value ladder, the "
            "value equation for the main offer and a pricing strategy."
        ),
    ),
    TaskDefinition(
        id="AJ-AF",
        depends_on=frozenset({"AA-D100", "AO-GO"}),
        label="Mapping the funnel journey...",
        instructions=(
            "You are AJ-AF, the funnel journey agent. Map the lead journey from awareness "
            "to decision, its automation triggers, nurturing sequences and lead scoring."
        ),
    ),
    TaskDefinition(
        id="AM-CC",
        depends_on=frozenset({"AA-D100", "AO-GO"}),
        label="Writing copy and strategic content...",
        instructions=(
            "You are AM-CC, the marketing content agent. Write sales pages, email "
            "sequences, social hooks, video scripts, headlines and calls to action."
        ),
    ),
    TaskDefinition(
        id="AC-DC",
        depends_on=frozenset({"AA-D100", "AO-GO", "AM-CC"}),
        label="Defining creative briefs...",
        instructions=(
            "You are AC-DC, the design agent. Produce visual briefs, image generation "
            "prompts, per-platform specs and brand guidelines."
        ),
    ),
    TaskDefinition(
        id="AE-C",
        depends_on=frozenset({"AA-D100", "AO-GO", "AM-CC", "AJ-AF"}),
        label="Writing sales and engagement scripts...",
        instructions=(
            "You are AE-C, the conversational engagement agent. Write transformation "
            "stories, sales conversation flows, qualification scripts and live-event scripts."
        ),
    ),
    TaskDefinition(
        id="AT-GP",
        depends_on=frozenset({"AA-D100", "AO-GO", "AM-CC", "AC-DC"}),
        label="Planning paid traffic...",
        instructions=(
            "You are AT-GP, the paid traffic agent. Plan campaigns, audiences, budgets "
            "and the testing calendar."
        ),
    ),
    TaskDefinition(
        id="ACO",
        depends_on=frozenset({"AA-D100", "AO-GO", "AJ-AF", "AE-C", "AM-CC", "AC-DC", "AT-GP"}),
        label="Compiling the complete business plan...",
        instructions=(
            "You are ACO, the central orchestrator. Check the coherence of every other "
            "agent's output, find gaps and inconsistencies, and build a prioritised "
            "action plan with a timeline."
        ),
        directive=(
            "Based on ALL the agent outputs above, compile a COMPLETE BUSINESS PLAN with: "
            "executive summary, main personas, offer and pricing, funnel map, content "
            "calendar, creative briefs, sales scripts, traffic plan with budget and "
            "revenue projection. Be detailed and practical."
        ),
    ),
)


def default_graph() -> TaskGraph:
    return TaskGraph.from_definitions(DEFAULT_TASKS)
