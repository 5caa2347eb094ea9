# app/log.py
# Role: structlog setup shared by the API process and the jobs CLI.

import logging
import sys

import structlog

from app import config

_configured = False


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Route structlog through the stdlib logging module.

    JSON lines in production (or when LOG_JSON is set), a readable console
    renderer otherwise. Safe to call more than once.
    """
    global _configured

    level_name = (level or config.LOG_LEVEL).upper()
    use_json = config.LOG_JSON if json_output is None else json_output

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=not _configured,
    )
    _configured = True
