from __future__ import annotations

from enum import Enum


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.CANCELLED, RunStatus.FAILED},
    # running -> running is the per-task checkpoint.
    RunStatus.RUNNING: {
        RunStatus.RUNNING,
        RunStatus.COMPLETED,
        RunStatus.CANCELLED,
        RunStatus.FAILED,
    },
    RunStatus.COMPLETED: set(),
    RunStatus.CANCELLED: set(),
    RunStatus.FAILED: set(),
}

TERMINAL_STATUSES: frozenset[RunStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


class IllegalTransitionError(ValueError):
    pass


def is_terminal(status: RunStatus) -> bool:
    return status in TERMINAL_STATUSES


def transition(*, current: RunStatus, to: RunStatus) -> RunStatus:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to
