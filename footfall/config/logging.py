"""
Logging Configuration for the Footfall Rollup Service

Every record, whether emitted through structlog or a plain stdlib logger
(uvicorn, SQLAlchemy, httpx), goes through one handler and one renderer.
Lines carry the service name and environment so output from the API and its
background refresh loop can be told apart once shipped.
"""

import logging
import sys
from typing import Any, Dict, List, Optional, TextIO

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter
from structlog.types import Processor

from footfall.config.settings import Settings, get_settings

# Loggers that install their own handlers and must be routed through ours
ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

# Chatty below WARNING: one line per HTTP request or SQL statement
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")


def service_context(app_name: str, environment: str) -> Processor:
    """Processor stamping every event with the service and its environment"""

    def add_service(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", app_name)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service


def select_renderer(log_format: str) -> Processor:
    if log_format == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
    settings: Optional[Settings] = None,
) -> logging.Handler:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        log_format: Override output format ("json", anything else is console)
        stream: Where lines are written, stdout by default
        settings: Settings to read defaults from

    Returns:
        The handler installed on the root logger
    """
    settings = settings or get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    log_format = log_format or settings.monitoring.log_format
    numeric_level = getattr(logging, level, logging.INFO)

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        service_context(settings.app_name, settings.app_env),
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        processor=select_renderer(log_format),
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    for logger_name in ROUTED_LOGGERS:
        routed = logging.getLogger(logger_name)
        routed.handlers = [handler]
        routed.propagate = False
        routed.setLevel(numeric_level)

    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(numeric_level, logging.WARNING))

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=log_format,
    )
    return handler
