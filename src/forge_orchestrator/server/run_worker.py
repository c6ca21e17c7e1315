"""Background execution of runs for the REST server."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from forge_orchestrator.core.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


@dataclass
class RunWorker:
    """Starts runs on daemon threads, at most one thread per run id."""

    orchestrator: Orchestrator
    _active: set[str] = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def is_active(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._active

    def start(self, run_id: str) -> threading.Thread | None:
        """Start or resume ``run_id`` in the background.

        Returns None when a thread for the run is already executing.
        """
        with self._lock:
            if run_id in self._active:
                return None
            self._active.add(run_id)

        thread = threading.Thread(
            target=self._run,
            name=f"forge-run-{run_id}",
            daemon=True,
            kwargs={"run_id": run_id},
        )
        thread.start()
        return thread

    def _run(self, *, run_id: str) -> None:
        try:
            run = self.orchestrator.start_or_resume_run(run_id)
            logger.info(
                "Background run finished",
                extra={"run_id": run_id, "status": run.status.value},
            )
        except Exception:
            # The runner has already marked the run failed.
            logger.exception("Background run failed", extra={"run_id": run_id})
        finally:
            with self._lock:
                self._active.discard(run_id)
