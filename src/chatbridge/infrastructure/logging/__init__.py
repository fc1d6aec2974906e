"""Logging infrastructure module."""

from chatbridge.infrastructure.logging.setup import (
    REDACTED,
    bind_delivery_context,
    get_logger,
    redact_secrets,
    setup_logging,
)

__all__ = [
    "REDACTED",
    "bind_delivery_context",
    "get_logger",
    "redact_secrets",
    "setup_logging",
]
