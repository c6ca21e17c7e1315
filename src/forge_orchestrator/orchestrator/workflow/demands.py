"""Best-effort extraction of routing directives from generated text.

Generated text may embed JSON records addressed to another task, e.g.::

    ```json
    {"target_agent": "AM-CC", "reason": "...", "suggestion": "...", "priority": "high"}
    ```

Extraction runs two passes and the first one to yield anything wins:

1. fenced blocks, each parsed whole (a single record or a list of records)
2. bare inline objects whose first key is ``target_agent``

Every candidate becomes a ``ParseAttempt``; failed attempts are dropped. This
is not a validating parser and it will miss directives the model formats
creatively.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from forge_orchestrator.state.models import Demand

logger = logging.getLogger(__name__)

TARGET_KEY = "target_agent"
REASON_KEY = "reason"
PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"
DEFAULT_DEMAND_TYPE = "optimization"

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n(.*?)```", re.DOTALL)
_INLINE_RECORD = re.compile(r'\{\s*"' + TARGET_KEY + r'"\s*:[^{}]*\}')


@dataclass(frozen=True, slots=True)
class ParseAttempt:
    source: str
    ok: bool
    value: object = None
    error: str = ""


def _attempt(source: str) -> ParseAttempt:
    try:
        return ParseAttempt(source=source, ok=True, value=json.loads(source))
    except json.JSONDecodeError as e:
        return ParseAttempt(source=source, ok=False, error=str(e))


def _text(value: object) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value).strip()


def _to_demand(record: object, from_task: str) -> Demand | None:
    if not isinstance(record, dict):
        return None
    target = _text(record.get(TARGET_KEY))
    reason = _text(record.get(REASON_KEY))
    if not target or not reason:
        return None

    priority = _text(record.get("priority")).lower()
    if priority not in PRIORITIES:
        priority = DEFAULT_PRIORITY
    demand_type = _text(record.get("demand_type") or record.get("type")) or DEFAULT_DEMAND_TYPE

    return Demand(
        from_task=from_task,
        to_task=target,
        reason=reason,
        suggestion=_text(record.get("suggestion")),
        priority=priority,  # type: ignore[arg-type]
        demand_type=demand_type,
    )


def _from_fenced_blocks(text: str, from_task: str) -> list[Demand]:
    demands: list[Demand] = []
    for match in _FENCED_BLOCK.finditer(text):
        attempt = _attempt(match.group(1).strip())
        if not attempt.ok:
            logger.debug("Skipping unparseable fenced block", extra={"error": attempt.error})
            continue
        records = attempt.value if isinstance(attempt.value, list) else [attempt.value]
        for record in records:
            demand = _to_demand(record, from_task)
            if demand is not None:
                demands.append(demand)
    return demands


def _from_inline_records(text: str, from_task: str) -> list[Demand]:
    demands: list[Demand] = []
    for match in _INLINE_RECORD.finditer(text):
        attempt = _attempt(match.group(0))
        if not attempt.ok:
            logger.debug("Skipping unparseable inline record", extra={"error": attempt.error})
            continue
        demand = _to_demand(attempt.value, from_task)
        if demand is not None:
            demands.append(demand)
    return demands


def extract_demands(text: str, from_task: str) -> list[Demand]:
    """Extract unsaved demands from ``text`` produced by ``from_task``.

    An empty list means nothing was found; that is not an error.
    """

    if not text:
        return []
    demands = _from_fenced_blocks(text, from_task)
    if not demands:
        demands = _from_inline_records(text, from_task)
    if demands:
        logger.info(
            "Extracted demands",
            extra={"from_task": from_task, "targets": [d.to_task for d in demands]},
        )
    return demands
