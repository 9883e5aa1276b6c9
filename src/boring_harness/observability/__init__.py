"""Stderr diagnostics for worker processes, tagged with the running test.

Call ``configure_logging`` once per worker process before starting the
``WorkerRunner``; see ``boring_harness.observability.logging``.
"""

from .logging import configure_logging, get_logger, test_id_ctx

__all__ = [
    "configure_logging",
    "get_logger",
    "test_id_ctx",
]
