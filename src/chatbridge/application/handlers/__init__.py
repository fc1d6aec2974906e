"""Webhook payload parsers."""

from typing import Any, Protocol, runtime_checkable

from chatbridge.domain.entities.inbound_delivery import InboundMessage


@runtime_checkable
class WebhookPayloadParser(Protocol):
    """Protocol for parsers turning a platform webhook body into a message."""

    def parse(self, payload: Any) -> InboundMessage | None:
        """Parse a decoded JSON webhook body.

        Args:
            payload: The decoded JSON body.

        Returns:
            The normalized message, or None if the delivery carries no
            chat message (for example a Teams typing activity).

        Raises:
            ValidationError: If the payload is malformed.
        """
        ...
