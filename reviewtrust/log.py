"""structlog setup shared by the API and the import CLI."""

import logging
import sys

import structlog

from .config import LOG_JSON, LOG_LEVEL

_configured = False


def configure_logging(level: str = LOG_LEVEL, json_output: bool = LOG_JSON) -> None:
    """Configure stdlib logging and structlog once per process.

    Console rendering by default; JSON lines when `json_output` is set, for
    log shipping in deployed environments.

    Args:
        level: log level name, e.g. "INFO".
        json_output: render events as JSON instead of the console format.
    """
    global _configured
    if _configured:
        return

    log_level = getattr(logging, level, logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True
