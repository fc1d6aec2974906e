"""Tests for WebhookProcessor."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from chatbridge.application.services.webhook_processor import WebhookProcessor
from chatbridge.domain.entities.external_channel_mapping import ExternalPlatform
from chatbridge.domain.entities.inbound_delivery import InboundDelivery, InboundMessage


@pytest.fixture
def delivery() -> InboundDelivery:
    return InboundDelivery(
        platform=ExternalPlatform.GROUPME,
        mapping_id="map-1",
        message=InboundMessage(
            external_group_id="g-1",
            external_message_id="m-1",
            sender_name="Jordan",
            text="hello",
        ),
    )


@pytest.fixture
def bridge() -> MagicMock:
    bridge = MagicMock()
    bridge.process_inbound_webhook = AsyncMock(return_value=None)
    return bridge


class TestWebhookProcessor:
    """Tests for WebhookProcessor class."""

    def setup_method(self) -> None:
        structlog.contextvars.clear_contextvars()

    async def test_hands_delivery_to_bridge(
        self, bridge: MagicMock, delivery: InboundDelivery
    ) -> None:
        """The mapping, message and platform are passed through."""
        processor = WebhookProcessor(bridge, MagicMock())

        result = await processor.process(delivery)

        assert result is None
        bridge.process_inbound_webhook.assert_awaited_once_with(
            "map-1", delivery.message, ExternalPlatform.GROUPME
        )

    async def test_context_bound_during_processing(
        self, bridge: MagicMock, delivery: InboundDelivery
    ) -> None:
        """Delivery identifiers are bound while processing and cleared after."""
        seen: dict[str, object] = {}

        async def capture(*args: object) -> None:
            seen.update(structlog.contextvars.get_contextvars())
            return None

        bridge.process_inbound_webhook = AsyncMock(side_effect=capture)
        processor = WebhookProcessor(bridge, MagicMock())

        await processor.process(delivery)

        assert seen["delivery_id"] == delivery.id
        assert seen["platform"] == "groupme"
        assert seen["mapping_id"] == "map-1"
        assert "delivery_id" not in structlog.contextvars.get_contextvars()

    async def test_error_logged_and_reraised(
        self, bridge: MagicMock, delivery: InboundDelivery
    ) -> None:
        """Failures are logged and propagate; the context is still cleared."""
        bridge.process_inbound_webhook = AsyncMock(side_effect=RuntimeError("db down"))
        logger = MagicMock()
        processor = WebhookProcessor(bridge, logger)

        with pytest.raises(RuntimeError):
            await processor.process(delivery)

        logger.error.assert_called_once()
        assert structlog.contextvars.get_contextvars() == {}
