"""Processing of queued webhook deliveries."""

import structlog
from structlog.stdlib import BoundLogger

from chatbridge.application.services.external_bridge_service import (
    ExternalBridgeService,
)
from chatbridge.domain.entities.inbound_delivery import InboundDelivery
from chatbridge.domain.entities.transfer import ChatMessageDto
from chatbridge.infrastructure.logging import bind_delivery_context


class WebhookProcessor:
    """Hands each accepted delivery to the bridge.

    The HTTP layer has already acknowledged the delivery, so a failure here
    is only logged by the caller; the platform will not redeliver.
    """

    def __init__(self, bridge: ExternalBridgeService, logger: BoundLogger) -> None:
        """Initialize the processor.

        Args:
            bridge: Bridge service that ingests inbound messages.
            logger: Logger instance.
        """
        self._bridge = bridge
        self._logger = logger

    async def process(self, delivery: InboundDelivery) -> ChatMessageDto | None:
        """Process one delivery.

        Args:
            delivery: The delivery to process.

        Returns:
            The stored message, or None if the delivery was dropped.

        Raises:
            Exception: If ingestion fails.
        """
        bind_delivery_context(
            delivery_id=delivery.id,
            platform=delivery.platform.value,
            mapping_id=delivery.mapping_id,
        )
        try:
            self._logger.info("Processing webhook delivery")
            stored = await self._bridge.process_inbound_webhook(
                delivery.mapping_id, delivery.message, delivery.platform
            )
            self._logger.info(
                "Webhook delivery processed",
                stored=stored is not None,
                message_id=stored.id if stored else None,
            )
            return stored
        except Exception as e:
            self._logger.error(
                "Error processing webhook delivery",
                error=str(e),
                exc_info=True,
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars(
                "delivery_id", "platform", "mapping_id"
            )
