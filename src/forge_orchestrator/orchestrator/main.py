"""CLI entrypoint for the forge orchestrator.

Creates and drives runs against the local record store and opens interactive
single-task sessions.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from forge_orchestrator import __version__
from forge_orchestrator.core.config import ForgeConfig
from forge_orchestrator.core.orchestrator import Orchestrator
from forge_orchestrator.llm.errors import CompletionError
from forge_orchestrator.orchestrator.workflow.state_machine import IllegalTransitionError
from forge_orchestrator.orchestrator.workflow.tasks import UnknownTaskError
from forge_orchestrator.state.models import KnowledgeItem, ProjectMetadata
from forge_orchestrator.state.store import OutputNotFoundError, RunNotFoundError

logger = logging.getLogger(__name__)


def _parse_inputs(values: list[str] | None) -> dict[str, object]:
    inputs: dict[str, object] = {}
    for value in values or []:
        key, sep, raw = value.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected key=value, got {value!r}")
        inputs[key.strip()] = raw.strip()
    return inputs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forge",
        description="Run a catalog of dependent generation tasks for a project",
    )
    parser.add_argument("--version", action="version", version=f"forge-orchestrator {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create_run = subparsers.add_parser("create-run", help="Create a pending run for a project")
    create_run.add_argument("--project", required=True, help="Project id")
    create_run.add_argument("--goal", default="", help="The big idea the run works towards")
    create_run.add_argument(
        "--input",
        dest="inputs",
        action="append",
        metavar="KEY=VALUE",
        help="Collected input; repeat for several. Fills project fields that are not set",
    )

    start_run = subparsers.add_parser(
        "start-run", help="Start a run, or resume it from the first unfinished task"
    )
    start_run.add_argument("run_id", help="Run id")

    cancel_run = subparsers.add_parser("cancel-run", help="Cancel a run between tasks")
    cancel_run.add_argument("run_id", help="Run id")

    approve_run = subparsers.add_parser(
        "approve-run", help="Approve the latest output of every task the run produced"
    )
    approve_run.add_argument("run_id", help="Run id")

    show_run = subparsers.add_parser("show-run", help="Print the run record as JSON")
    show_run.add_argument("run_id", help="Run id")

    export_run = subparsers.add_parser("export-run", help="Export run results as markdown")
    export_run.add_argument("run_id", help="Run id")
    export_run.add_argument("--out", default=None, help="Write to this file instead of stdout")

    set_project = subparsers.add_parser("set-project", help="Create or update project metadata")
    set_project.add_argument("--project", required=True, help="Project id")
    set_project.add_argument("--name", default=None)
    set_project.add_argument("--niche", default=None)
    set_project.add_argument("--target-audience", default=None)
    set_project.add_argument("--goal", default=None)
    set_project.add_argument("--revenue", default=None)
    set_project.add_argument("--product-description", default=None)

    add_knowledge = subparsers.add_parser(
        "add-knowledge", help="Add a reference knowledge item scoped to one task"
    )
    add_knowledge.add_argument("--task", required=True, help="Task id")
    add_knowledge.add_argument("--title", required=True)
    add_knowledge.add_argument("--category", default="general")
    add_knowledge.add_argument(
        "--file", required=True, help="File holding the knowledge text (use - for stdin)"
    )

    set_prompt = subparsers.add_parser(
        "set-prompt", help="Store a new active version of a task's base instructions"
    )
    set_prompt.add_argument("--task", required=True, help="Task id")
    set_prompt.add_argument(
        "--file", required=True, help="File holding the instructions (use - for stdin)"
    )

    chat = subparsers.add_parser(
        "chat", help="Send one message to a single task and stream the reply"
    )
    chat.add_argument("--project", required=True, help="Project id")
    chat.add_argument("--task", required=True, help="Task id")
    chat.add_argument("--message", required=True, help="User message")
    chat.add_argument(
        "--no-history",
        action="store_true",
        help="Do not replay the stored transcript for this project and task",
    )
    chat.add_argument(
        "--no-demands",
        action="store_true",
        help="Do not extract and store demands from the reply",
    )

    return parser


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ForgeConfig()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    settings.setup_logging()

    try:
        orchestrator = Orchestrator(settings)

        if args.command == "create-run":
            try:
                inputs = _parse_inputs(args.inputs)
            except argparse.ArgumentTypeError as e:
                print(str(e), file=sys.stderr)
                return 2
            run = orchestrator.create_run(args.project, args.goal, inputs)
            print(run.run_id)
            return 0

        if args.command == "start-run":
            run = orchestrator.start_or_resume_run(args.run_id)
            done = len(run.per_task_result)
            total = len(orchestrator.graph)
            print(f"Run {run.run_id} is {run.status.value} ({done}/{total} tasks)")
            return 0

        if args.command == "cancel-run":
            run = orchestrator.cancel_run(args.run_id)
            print(f"Run {run.run_id} is {run.status.value}")
            return 0

        if args.command == "approve-run":
            approved = orchestrator.approve_run(args.run_id)
            for output in approved:
                print(f"Approved {output.task_id} v{output.version} ({output.output_id})")
            return 0

        if args.command == "show-run":
            run = orchestrator.get_run(args.run_id)
            print(json.dumps(run.model_dump(mode="json"), indent=2, ensure_ascii=False))
            return 0

        if args.command == "export-run":
            document = orchestrator.export_run(args.run_id)
            if args.out:
                out = Path(args.out)
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(document, encoding="utf-8")
                logger.info("Run exported", extra={"run_id": args.run_id, "path": str(out)})
                print(f"Wrote {out}")
            else:
                print(document)
            return 0

        if args.command == "set-project":
            existing = orchestrator.store.get_project(args.project)
            project = existing or ProjectMetadata(project_id=args.project)
            updates = {
                key: value
                for key, value in {
                    "name": args.name,
                    "niche": args.niche,
                    "target_audience": args.target_audience,
                    "goal": args.goal,
                    "revenue": args.revenue,
                    "product_description": args.product_description,
                }.items()
                if value is not None
            }
            orchestrator.store.save_project(project.model_copy(update=updates))
            print(f"Saved project {args.project}")
            return 0

        if args.command == "add-knowledge":
            orchestrator.graph.get(args.task)
            item = orchestrator.store.add_knowledge(
                KnowledgeItem(
                    task_id=args.task,
                    category=args.category,
                    title=args.title,
                    content=_read_text(args.file),
                )
            )
            print(f"Added knowledge item {item.item_id} to {args.task}")
            return 0

        if args.command == "set-prompt":
            orchestrator.graph.get(args.task)
            prompt = orchestrator.store.add_prompt(args.task, _read_text(args.file))
            print(f"Stored instructions for {args.task} as version {prompt.version}")
            return 0

        if args.command == "chat":
            conversation: list[dict[str, str]] = []
            if not args.no_history:
                conversation = [
                    {"role": m.role, "content": m.content}
                    for m in orchestrator.store.list_messages(args.project, args.task)
                ]
            conversation.append({"role": "user", "content": args.message})

            session = orchestrator.run_interactive_task(args.task, args.project, conversation)
            printed = 0
            try:
                for text in session:
                    sys.stdout.write(text[printed:])
                    sys.stdout.flush()
                    printed = len(text)
            finally:
                session.close()
            sys.stdout.write("\n")

            if not args.no_demands:
                demands = orchestrator.record_demands(args.project, args.task, session.text)
                for demand in demands:
                    print(
                        f"Demand for {demand.to_task} ({demand.priority}): {demand.reason}",
                        file=sys.stderr,
                    )
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except (RunNotFoundError, OutputNotFoundError, UnknownTaskError) as e:
        print(f"Not found: {e.args[0] if e.args else e}", file=sys.stderr)
        return 3

    except IllegalTransitionError as e:
        print(str(e), file=sys.stderr)
        return 3

    except CompletionError as e:
        logger.error("Completion failed", extra={"kind": e.kind})
        print(f"{e.kind}: {e}", file=sys.stderr)
        return 1

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
