"""
Logging

structlog on top of the standard library handlers. Pipeline runs and API
requests write to one handler, and every event is stamped with the service
name, environment and version so several deployments can share a log sink.
"""

import logging
import sys
from typing import Any, List, Optional, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter
from structlog.types import EventDict, Processor

from manufacturing_analytics.config.settings import Settings, get_settings

# Third-party loggers sent through our handler instead of their own
ROUTED_LOGGERS = ["uvicorn", "uvicorn.error", "uvicorn.access"]

# Minimum level for libraries that are noisy at INFO
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def service_context(settings: Settings) -> Processor:
    """Processor adding service, environment and version to every event"""
    context = {
        "service": settings.app_name,
        "environment": settings.app_env,
        "version": settings.version,
    }

    def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_context


def build_processors(settings: Settings) -> List[Processor]:
    """Processors shared by structlog events and foreign stdlib records"""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        service_context(settings),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(log_level: Optional[str] = None, stream: Optional[TextIO] = None) -> logging.Handler:
    """
    Route structlog and stdlib logging through a single handler.

    Args:
        log_level: Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
        stream: Where to write, stdout by default

    Returns:
        The installed handler
    """
    settings = get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    level = _level(level_name)
    processors = build_processors(settings)

    structlog.configure(
        processors=processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if settings.monitoring.log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=(stream or sys.stdout).isatty())

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ProcessorFormatter(
        processors=[ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=processors,
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in ROUTED_LOGGERS:
        routed = logging.getLogger(name)
        routed.handlers = [handler]
        routed.propagate = False
        routed.setLevel(level)

    for name, floor in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, floor))

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level_name,
        format=settings.monitoring.log_format,
    )
    return handler
