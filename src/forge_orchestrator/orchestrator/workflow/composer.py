"""Context composition for one task invocation.

The composed text is the system context the completion service reads. It is
assembled in a fixed order:

1. the task's base instructions
2. active knowledge items scoped to the task
3. project metadata, with absent fields spelled out as ``not provided``
4. the latest approved output of every declared dependency

Composition is a pure function of stored state: identical records give
byte-identical text. Dependencies without an approved output are left out
rather than placeholdered.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from forge_orchestrator.orchestrator.workflow.tasks import TaskGraph
from forge_orchestrator.state.models import KnowledgeItem, ProjectMetadata
from forge_orchestrator.state.store import OutputStore

logger = logging.getLogger(__name__)

NOT_PROVIDED = "not provided"
ERROR_MARKER_PREFIX = "[error: "

PROJECT_FIELDS: tuple[tuple[str, str], ...] = (
    ("name", "Project"),
    ("niche", "Niche"),
    ("target_audience", "Target audience"),
    ("goal", "Objective"),
    ("revenue", "Revenue"),
    ("product_description", "Product"),
)


def error_marker(kind: str, message: str) -> str:
    return f"{ERROR_MARKER_PREFIX}{kind}: {message}]"


def is_error_marker(payload: str | None) -> bool:
    return bool(payload) and payload.startswith(ERROR_MARKER_PREFIX)


def _format_knowledge(items: list[KnowledgeItem]) -> str:
    ordered = sorted(items, key=lambda k: (k.category, k.title, k.item_id))
    blocks = [f"### [{k.category}] {k.title}\n{k.content.strip()}" for k in ordered]
    return "## Reference knowledge\n\n" + "\n\n".join(blocks)


def _format_project(
    project: ProjectMetadata | None,
    goal: str | None,
    collected_inputs: Mapping[str, object] | None,
) -> str:
    inputs = collected_inputs or {}
    lines = ["## Project"]
    for key, label in PROJECT_FIELDS:
        value = getattr(project, key, None) if project is not None else None
        if not value:
            fallback = inputs.get(key)
            value = str(fallback) if fallback else None
        lines.append(f"{label}: {value.strip() if value else NOT_PROVIDED}")
    if goal is not None:
        lines.append(f"Big idea: {goal.strip() or NOT_PROVIDED}")
    if collected_inputs is not None:
        rendered = json.dumps(dict(collected_inputs), indent=2, sort_keys=True, ensure_ascii=False)
        lines.append(f"Collected inputs:\n{rendered}")
    return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class ContextComposer:
    graph: TaskGraph
    store: OutputStore

    def base_instructions(self, task_id: str) -> str:
        prompt = self.store.active_prompt(task_id)
        if prompt is not None:
            return prompt.text.strip()
        task = self.graph.get(task_id)
        return (task.instructions or f"You are the {task_id} agent.").strip()

    def compose(
        self,
        task_id: str,
        project_id: str,
        *,
        goal: str | None = None,
        collected_inputs: Mapping[str, object] | None = None,
    ) -> str:
        sections = [self.base_instructions(task_id)]

        knowledge = self.store.list_active_knowledge(task_id)
        if knowledge:
            sections.append(_format_knowledge(knowledge))

        sections.append(
            _format_project(self.store.get_project(project_id), goal, collected_inputs)
        )

        included: list[str] = []
        for dep in self.graph.dependencies(task_id):
            output = self.store.latest_approved(project_id, dep)
            # A failed dependency carries no real content.
            if output is None or is_error_marker(output.payload):
                continue
            sections.append(
                f"## Output from task {dep} (version {output.version})\n\n{output.payload.strip()}"
            )
            included.append(dep)

        payload = "\n\n".join(sections) + "\n"
        logger.debug(
            "Composed context",
            extra={
                "task_id": task_id,
                "project_id": project_id,
                "knowledge_items": len(knowledge),
                "dependencies_included": included,
                "chars": len(payload),
            },
        )
        return payload
