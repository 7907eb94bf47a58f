"""
structlog over the stdlib root logger.

Every record, ours or a library's, goes through one ProcessorFormatter: JSON
lines when ENVIRONMENT=production, console rendering otherwise (colored only
in development, so test and CI output stays plain).
"""

import logging
import sys
from typing import Optional

import structlog
from seathold.core.config import get_settings

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def _processors(production: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if production:
        processors.append(structlog.processors.format_exc_info)
    return processors


def _renderer(environment: str):
    if environment == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=environment == "development")


def _replace_root_handler(handler: logging.Handler) -> logging.Logger:
    root = logging.getLogger()
    # The lifespan can run more than once per process (tests, --reload)
    for existing in list(root.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(existing)
    root.addHandler(handler)
    return root


def setup_logging(level: Optional[str] = None) -> None:
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"

    structlog.configure(
        processors=[*_processors(production), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.ENVIRONMENT),
            ]
        )
    )

    root = _replace_root_handler(handler)
    level_name = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
