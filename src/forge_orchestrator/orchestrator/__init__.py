"""Orchestration components: task catalog, context composition, run execution.

Also holds the CLI entrypoint and logging setup.
"""
