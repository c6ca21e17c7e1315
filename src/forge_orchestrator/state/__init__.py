"""Record models and storage adapters."""

from forge_orchestrator.state.json_store import JsonRecordStore
from forge_orchestrator.state.store import (
    OutputNotFoundError,
    OutputStore,
    RunNotFoundError,
    RunStore,
)

__all__ = [
    "JsonRecordStore",
    "OutputNotFoundError",
    "OutputStore",
    "RunNotFoundError",
    "RunStore",
]
