"""Logging setup module using structlog."""

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.stdlib import BoundLogger

from chatbridge.config.models import LoggingConfig

REDACTED = "***"

SECRET_KEYS = frozenset(
    {
        "webhook_secret",
        "access_token",
        "api_key",
        "token",
        "conversation_reference_json",
    }
)


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if key in SECRET_KEYS else _redact(item)
            for key, item in value.items()
        }
    return value


def redact_secrets(
    logger: Any, method_name: str, event_dict: structlog.typing.EventDict
) -> structlog.typing.EventDict:
    """Replace secret values in the event dict, including nested mappings."""
    for key, value in list(event_dict.items()):
        if key in SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, Mapping):
            event_dict[key] = _redact(value)
    return event_dict


def setup_logging(config: LoggingConfig) -> None:
    """Initialize logging configuration.

    Args:
        config: Logging configuration specifying level and format.
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    # aiohttp logs every request at INFO
    logging.getLogger("aiohttp.access").setLevel(max(log_level, logging.WARNING))

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if config.format == "json":
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler.setFormatter(formatter)


def bind_delivery_context(delivery_id: str, platform: str, mapping_id: str) -> None:
    """Bind webhook delivery identifiers to every log line of the current task.

    Args:
        delivery_id: ID of the inbound delivery being processed.
        platform: Platform the delivery came from.
        mapping_id: Mapping the delivery targets.
    """
    structlog.contextvars.bind_contextvars(
        delivery_id=delivery_id,
        platform=platform,
        mapping_id=mapping_id,
    )


def get_logger(name: str | None = None) -> BoundLogger:
    """Get a logger instance.

    Args:
        name: Logger name, typically the module name (__name__).

    Returns:
        A bound logger instance that can be used for logging.
    """
    return structlog.stdlib.get_logger(name)
