"""Structured logging setup shared by the sync engine and its scripts."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog

# Third-party loggers that are too chatty at INFO during a full sync
NOISY_LOGGERS: tuple[str, ...] = ("urllib3", "requests", "asyncio")

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _event_processors() -> list[Any]:
    """Processors run for every event before rendering."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]


def _renderer(json_logs: bool) -> Any:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.plain_traceback,
    )


def _install_stdlib_handlers(level: int, log_file: str | None) -> None:
    # Replaces handlers installed by an earlier call
    logging.basicConfig(format="%(message)s", level=level, stream=sys.stdout, force=True)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        file_handler.setLevel(level)
        logging.root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Route structlog events through the standard library root logger.

    Scheduled runs use one JSON object per line; local runs can switch to the
    coloured console renderer. Values bound with :func:`bind_run_context`
    (the run id, for instance) appear on every event until cleared.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown names fall back to INFO)
        json_logs: Render JSON when True, console output otherwise
        log_file: Also write to this rotating file when given

    Example:
        >>> configure_logging(log_level="DEBUG", json_logs=False)
        >>> bind_run_context(run_id="incremental_all")
        >>> structlog.stdlib.get_logger().info("sync_started", groups=42)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    _install_stdlib_handlers(level, log_file)

    structlog.configure(
        processors=[*_event_processors(), _renderer(json_logs)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_run_context(**values: Any) -> None:
    """Attach ``values`` to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)
