"""Logging configuration for seaweed-up.

The plugin core never configures logging on import; the embedding application
calls configure_logging() once. Structured events go through structlog on top
of the standard logging handlers, rendered as JSON for machine consumption or
as console lines otherwise.
"""

import logging
import sys
from pathlib import Path

import structlog

NOISY_LOGGERS = ("httpx", "httpcore")

# Applied to every event before rendering
SHARED_PROCESSORS: tuple[structlog.types.Processor, ...] = (
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
)


def _handler(log_file: str | Path | None, log_level: int) -> logging.Handler:
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(str(log_file))
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    return handler


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure standard logging and structlog together.

    Args:
        level: Log level name (debug, info, warning, error, critical);
            unknown names fall back to warning
        log_file: Write to this file instead of stderr
        json_output: Render events as JSON lines
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    logging.basicConfig(
        level=log_level,
        handlers=[_handler(log_file, log_level)],
        format="%(message)s",
        force=True,
    )

    structlog.configure(
        processors=[*SHARED_PROCESSORS, _renderer(json_output)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx logs each request at INFO.
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def plugin_logger(
    name: str, plugin: str, operation: str | None = None
) -> structlog.stdlib.BoundLogger:
    """Get a logger with the plugin (and optionally the operation) bound.

    Args:
        name: Logger name (typically __name__)
        plugin: Plugin name bound to every event
        operation: Operation kind bound to every event, if any
    """
    logger = get_logger(name).bind(plugin=plugin)
    if operation is not None:
        logger = logger.bind(operation=operation)
    return logger
