"""FastAPI server adapter for forge-orchestrator.

This module exposes a REST API over the orchestrator facade.

Design intent:
- Keep business logic in `forge_orchestrator.core` and `forge_orchestrator.orchestrator.*`
- Keep server-specific concerns (routing, CORS, background runs, SSE framing) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from forge_orchestrator.server.app import create_app
