"""Structured logging configuration using structlog with async context propagation."""

import logging
import os

import structlog

SERVICE_NAME = "termspread"


def service_context(asset_symbol: str | None = None) -> structlog.types.Processor:
    """Build a processor stamping every event with the service and tracked asset.

    Fields already set on the event (e.g. a per-call ``asset``) win.
    """

    def _add_service_context(logger, method_name, event_dict):  # type: ignore[no-untyped-def]
        event_dict.setdefault("service", SERVICE_NAME)
        if asset_symbol:
            event_dict.setdefault("asset", asset_symbol)
        return event_dict

    return _add_service_context


def setup_logging(log_level: str = "INFO", asset_symbol: str | None = None) -> None:
    """Configure structlog with JSON or console rendering.

    Every event carries ``service`` and, when given, the tracked ``asset`` so
    log lines from several deployments can be told apart.

    Uses structlog.contextvars so a snapshot run can bind its date once
    and have it appear on every event emitted during that run.
    Rendering format is controlled by the LOG_FORMAT environment variable:
    - "json" for production (machine-readable)
    - "console" for development (human-readable, default)
    """
    log_format = os.environ.get("LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        service_context(asset_symbol),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # httpx logs every request at INFO; keep the feed quiet unless debugging
    logging.getLogger("httpx").setLevel(
        logging.DEBUG if log_level.upper() == "DEBUG" else logging.WARNING
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
