"""Structured diagnostics for harness worker processes.

Reporters write the run's human-readable output to stdout, so harness
diagnostics (fixture teardown failures, scratch files that could not be
promoted, trace chunks that failed to export) go to stderr through
structlog. Entries logged while a test runs carry that test's id; with
``worker_index`` set, every entry also carries the worker it came from.

A worker process calls ``configure_logging`` once, at startup, before
it builds its ``WorkerRunner`` and calls ``start()``::

    from boring_harness.observability import configure_logging

    configure_logging(worker_index=3)
    runner = WorkerRunner(registry, worker_index=3, project=project)
    await runner.start()

Library modules only ever call ``get_logger(__name__)``; without
``configure_logging`` their entries fall through to structlog's defaults.

Environment:
    HARNESS_LOG_LEVEL: Level name; WARNING when unset.
    HARNESS_LOG_FORMAT: ``json`` for JSON lines, anything else for
        plain console lines.
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar

import structlog

# Id of the test the worker is currently driving; set by WorkerRunner.
test_id_ctx: ContextVar[str | None] = ContextVar("test_id", default=None)

_configured = False


def _add_test_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    tid = test_id_ctx.get()
    if tid is not None:
        event_dict["test_id"] = tid
    return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    worker_index: int | None = None,
) -> None:
    """Route structlog and stdlib logging to stderr.

    Only the first call in a process has an effect.

    Args:
        level: Log level name. Defaults to ``HARNESS_LOG_LEVEL`` or
            WARNING, so routine fixture setup stays quiet next to the
            reporter.
        json_output: Emit JSON lines instead of console lines. Defaults
            to ``HARNESS_LOG_FORMAT == "json"``.
        worker_index: Bound into every entry logged by this process.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("HARNESS_LOG_LEVEL", "WARNING")
    if json_output is None:
        json_output = os.environ.get("HARNESS_LOG_FORMAT", "console") == "json"
    if worker_index is not None:
        structlog.contextvars.bind_contextvars(worker_index=worker_index)

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_test_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        # stderr is often interleaved with colored reporter output.
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # Fixture bodies run on the event loop; its debug chatter is noise.
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
