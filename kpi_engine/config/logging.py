"""
Logging Configuration for the Business Metrics Engine

Structured logging through structlog, rendered as JSON in production and as
colored console output for local debugging. Every event is tagged with the
service name, and events logged while a metrics operation runs also carry the
operation and the timeframe it was asked for.
"""

import logging
import sys
from typing import Any, ContextManager, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from kpi_engine.config.settings import get_settings


def add_service_info(service: str, version: str):
    """Processor stamping the service name and version on every event."""
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        event_dict.setdefault("version", version)
        return event_dict
    return processor


def metrics_context(operation: str, **fields: Any) -> ContextManager:
    """
    Bind a metrics operation to the structlog context for the enclosed block.

    Args:
        operation: Composer entry point (dashboard, summary, top_products, ...)
        **fields: Request parameters such as timeframe or group_by; None values are skipped

    Returns:
        Context manager restoring the previous context on exit
    """
    bound = {key: value for key, value in fields.items() if value is not None}
    return structlog.contextvars.bound_contextvars(metrics_operation=operation, **bound)


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
    """
    settings = get_settings()
    level = log_level or settings.monitoring.log_level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Shared by structlog loggers and foreign stdlib records (uvicorn, sqlalchemy)
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        add_service_info(settings.app_name, settings.version),
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if settings.monitoring.log_format == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False
        uvicorn_logger.setLevel(numeric_level)

    # SQL echo goes through the same handler when enabled
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
        environment=settings.app_env,
    )
