#!/usr/bin/env python3
"""Programmatic run example.

This demonstrates using the orchestrator facade directly:

* load settings from `.env`
* describe a project and create a run for it
* execute every task, then approve and export the results

The project id and goal are passed as arguments (not read from `.env`).
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from forge_orchestrator.core.config import ForgeConfig
from forge_orchestrator.core.orchestrator import Orchestrator
from forge_orchestrator.state.models import ProjectMetadata


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the full task catalog for one project.")
    parser.add_argument("--project", required=True, help="Project id")
    parser.add_argument("--name", default="", help="Project name")
    parser.add_argument("--goal", required=True, help="The big idea the run works towards")
    parser.add_argument("--out", default="plan.md", help="Where to write the exported plan")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = ForgeConfig()
    settings.setup_logging()

    orchestrator = Orchestrator(settings)
    if args.name:
        orchestrator.store.save_project(ProjectMetadata(project_id=args.project, name=args.name))

    run = orchestrator.create_run(args.project, goal=args.goal)
    print(f"Created {run.run_id}; executing {len(orchestrator.graph)} tasks")

    run = orchestrator.start_or_resume_run(run.run_id)
    print(f"Run finished as {run.status.value}")

    approved = orchestrator.approve_run(run.run_id)
    print(f"Approved {len(approved)} outputs")

    Path(args.out).write_text(orchestrator.export_run(run.run_id), encoding="utf-8")
    print(f"Wrote {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
