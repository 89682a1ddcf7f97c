"""structlog setup and per-run log context."""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO

import structlog


def configure_logging(
    *,
    json_output: bool = False,
    level: int = logging.INFO,
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog for the detector and CLI.

    Log lines go to stderr by default so stdout stays free for results.

    Args:
        json_output: Emit one JSON object per event instead of console output.
        level: Minimum level to emit.
        stream: Output stream, defaults to sys.stderr.
    """
    out = stream or sys.stderr
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_output:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=out.isatty())]

    structlog.configure(
        processors=[*shared_processors, *renderers],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def run_context(run_id: str | None = None, **context: object) -> Iterator[str]:
    """Tag every event logged inside the block with a detection run id.

    Concurrent runs each get their own context, since contextvars are
    per-task.

    Yields:
        The run id in use.
    """
    rid = run_id or new_run_id()
    with structlog.contextvars.bound_contextvars(run_id=rid, **context):
        yield rid
