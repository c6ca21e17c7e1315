"""Run workflow: task graph, context composer, stream consumer, runner."""
