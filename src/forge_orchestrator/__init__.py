"""Forge Orchestrator.

Runs a fixed catalog of dependent instruction tasks against an OpenAI-compatible
completion service:
- configuration loaded from `.env`
- structured logging
- resumable, cancellable runs persisted to a local JSON record store
- single-task interactive sessions with incremental streaming
"""

__version__ = "0.1.0"

from forge_orchestrator.core.config import ForgeConfig

__all__ = ["__version__", "ForgeConfig"]
