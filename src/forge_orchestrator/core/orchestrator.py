"""Main orchestrator implementation."""

import logging
from collections.abc import Mapping, Sequence

from forge_orchestrator.core.config import ForgeConfig
from forge_orchestrator.llm.factory import LLMFactory
from forge_orchestrator.llm.provider import CompletionProvider
from forge_orchestrator.orchestrator.workflow.composer import ContextComposer
from forge_orchestrator.orchestrator.workflow.demands import extract_demands
from forge_orchestrator.orchestrator.workflow.interactive import InteractiveSession, open_session
from forge_orchestrator.orchestrator.workflow.runner import RunRunner, render_run_document
from forge_orchestrator.orchestrator.workflow.tasks import TaskGraph, default_graph
from forge_orchestrator.state.json_store import JsonRecordStore
from forge_orchestrator.state.models import ChatMessage, Demand, Output, Run

logger = logging.getLogger(__name__)


class Orchestrator:
    """Entry point for callers: runs, interactive tasks, approvals and demands.

    Wires the task graph, the record store and the completion provider. Every
    collaborator can be injected; anything omitted is built from configuration.
    """

    def __init__(
        self,
        config: ForgeConfig | None = None,
        *,
        graph: TaskGraph | None = None,
        store: JsonRecordStore | None = None,
        provider: CompletionProvider | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Configuration object. If None, loads from environment.
            graph: Task catalog. Defaults to the built-in catalog.
            store: Record store. Defaults to the JSON store under the state path.
            provider: Completion provider. Defaults to the configured provider.
        """
        self.config = config or ForgeConfig()

        self.graph = graph or default_graph()
        self.store = store or JsonRecordStore(self.config.state.records_file)
        self._provider = provider
        self.composer = ContextComposer(graph=self.graph, store=self.store)

        logger.info(
            "Orchestrator initialized",
            extra={"tasks": self.graph.ids, "store": str(getattr(self.store, "path", ""))},
        )

    @property
    def provider(self) -> CompletionProvider:
        # Built lazily so read-only commands work without credentials.
        if self._provider is None:
            self._provider = LLMFactory.create(self.config.llm)
        return self._provider

    @property
    def runner(self) -> RunRunner:
        return self._runner(self.provider)

    def _runner(self, provider: CompletionProvider | None) -> RunRunner:
        return RunRunner(
            graph=self.graph,
            composer=self.composer,
            provider=provider,
            outputs=self.store,
            runs=self.store,
            config=self.config.engine,
        )

    def create_run(
        self,
        project_id: str,
        goal: str = "",
        collected_inputs: Mapping[str, object] | None = None,
    ) -> Run:
        return self.store_runner().create_run(project_id, goal, collected_inputs)

    def start_or_resume_run(self, run_id: str) -> Run:
        return self.runner.start(run_id)

    def cancel_run(self, run_id: str) -> Run:
        return self.store_runner().cancel(run_id)

    def approve_run(self, run_id: str) -> list[Output]:
        return self.store_runner().approve_outputs(run_id)

    def get_run(self, run_id: str) -> Run:
        return self.store.load_run(run_id)

    def export_run(self, run_id: str) -> str:
        return render_run_document(self.graph, self.store.load_run(run_id))

    def store_runner(self) -> RunRunner:
        """A runner for operations that never reach the completion service."""

        return self._runner(self._provider)

    def run_interactive_task(
        self,
        task_id: str,
        project_id: str,
        conversation: Sequence[Mapping[str, str]],
    ) -> InteractiveSession:
        """Open a streaming invocation of one task outside of any run."""

        self.graph.get(task_id)
        on_complete = self._record_transcript if self.config.engine.record_transcripts else None
        return open_session(
            composer=self.composer,
            provider=self.provider,
            task_id=task_id,
            project_id=project_id,
            conversation=conversation,
            on_complete=on_complete,
        )

    def record_demands(self, project_id: str, from_task: str, text: str) -> list[Demand]:
        demands = [
            d.model_copy(update={"project_id": project_id})
            for d in extract_demands(text, from_task)
        ]
        return self.store.insert_demands(demands)

    def _record_transcript(self, session: InteractiveSession) -> None:
        user_turns = [t for t in session.conversation if t["role"] == "user"]
        if user_turns:
            self.store.append_message(
                ChatMessage(
                    project_id=session.project_id,
                    task_id=session.task_id,
                    role="user",
                    content=user_turns[-1]["content"],
                )
            )
        self.store.append_message(
            ChatMessage(
                project_id=session.project_id,
                task_id=session.task_id,
                role="assistant",
                content=session.text,
            )
        )
