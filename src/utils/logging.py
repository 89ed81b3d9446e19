"""structlog setup shared by the API server and assembly runs.

Every record, whether it comes from a structlog logger or a plain
``logging.getLogger(__name__)``, passes through one processor chain. While an
assembly run is active, that chain stamps the record with the run's project.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

import structlog

current_project_id: ContextVar[str | None] = ContextVar("current_project_id", default=None)

# Chatty at INFO: per-request S3 calls, SQLite statements, access lines
QUIET_LOGGERS = (
    "botocore",
    "boto3",
    "s3transfer",
    "urllib3.connectionpool",
    "aiosqlite",
    "uvicorn.access",
)


def add_project_id(_logger, _method_name, event_dict):
    """Add ``project_id`` to the event while a project context is active."""
    project_id = current_project_id.get()
    if project_id:
        event_dict["project_id"] = project_id
    return event_dict


@contextmanager
def project_context(project_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``project_id``.

    The previous value is restored on exit, so nested or concurrent runs
    (each task has its own context copy) never leak ids into each other.
    """
    token = current_project_id.set(project_id)
    try:
        yield
    finally:
        current_project_id.reset(token)


def _pre_chain() -> list:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_project_id,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Install the structlog formatter on the root logger.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR)
        json_output: One JSON object per line instead of the colored console format
    """
    if json_output:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    ))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
