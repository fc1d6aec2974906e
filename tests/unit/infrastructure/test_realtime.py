"""Tests for RealtimeBroadcaster.

Test cases:
- TC-08-001: Notification shape
- TC-08-002: Group isolation
- TC-08-003: Full viewer queue drops for that viewer only
- TC-08-004: Unsubscribe
- TC-08-005: Typed helpers
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from chatbridge.domain.entities.chat_message import ChatMessage
from chatbridge.domain.entities.transfer import ChatMessageDto
from chatbridge.infrastructure.realtime import (
    CHANNEL_ARCHIVED,
    MESSAGE_RECEIVED,
    RealtimeBroadcaster,
)


@pytest.fixture
def broadcaster() -> RealtimeBroadcaster:
    return RealtimeBroadcaster(logger=MagicMock(), queue_size=2)


class TestNotificationShape:
    """TC-08-001: Notification shape."""

    async def test_publish_dict_payload(self, broadcaster: RealtimeBroadcaster) -> None:
        """Notifications carry type, event_id and payload."""
        subscription = broadcaster.subscribe("evt-1")

        delivered = broadcaster.publish("evt-1", CHANNEL_ARCHIVED, {"channel_id": "c1"})

        assert delivered == 1
        notification = await asyncio.wait_for(subscription.get(), timeout=1)
        assert notification == {
            "type": CHANNEL_ARCHIVED,
            "event_id": "evt-1",
            "payload": {"channel_id": "c1"},
        }

    async def test_publish_without_subscribers(
        self, broadcaster: RealtimeBroadcaster
    ) -> None:
        """Publishing to an event nobody follows delivers nothing."""
        assert broadcaster.publish("evt-none", CHANNEL_ARCHIVED, {}) == 0


class TestGroupIsolation:
    """TC-08-002: Group isolation."""

    async def test_other_event_not_notified(
        self, broadcaster: RealtimeBroadcaster
    ) -> None:
        """Viewers only see notifications for the event they follow."""
        first = broadcaster.subscribe("evt-1")
        second = broadcaster.subscribe("evt-2")

        broadcaster.publish("evt-1", CHANNEL_ARCHIVED, {"channel_id": "c1"})

        assert first.queue.qsize() == 1
        assert second.queue.empty()

    async def test_every_viewer_of_event_notified(
        self, broadcaster: RealtimeBroadcaster
    ) -> None:
        """All viewers of the same event get the notification."""
        viewers = [broadcaster.subscribe("evt-1") for _ in range(3)]

        delivered = broadcaster.publish("evt-1", CHANNEL_ARCHIVED, {"channel_id": "c1"})

        assert delivered == 3
        assert all(v.queue.qsize() == 1 for v in viewers)
        assert broadcaster.subscriber_count("evt-1") == 3


class TestSlowViewer:
    """TC-08-003: Full viewer queue drops for that viewer only."""

    async def test_full_queue_drops_without_affecting_others(
        self, broadcaster: RealtimeBroadcaster
    ) -> None:
        """A full inbox loses the notification; other viewers still get it."""
        slow = broadcaster.subscribe("evt-1")
        broadcaster.publish("evt-1", CHANNEL_ARCHIVED, {"channel_id": "a"})
        broadcaster.publish("evt-1", CHANNEL_ARCHIVED, {"channel_id": "b"})
        fast = broadcaster.subscribe("evt-1")

        delivered = broadcaster.publish("evt-1", CHANNEL_ARCHIVED, {"channel_id": "c"})

        assert delivered == 1
        assert slow.dropped == 1
        assert slow.queue.qsize() == 2
        notification = await asyncio.wait_for(fast.get(), timeout=1)
        assert notification["payload"] == {"channel_id": "c"}


class TestUnsubscribe:
    """TC-08-004: Unsubscribe."""

    async def test_unsubscribed_viewer_not_notified(
        self, broadcaster: RealtimeBroadcaster
    ) -> None:
        """A viewer that left receives nothing further."""
        subscription = broadcaster.subscribe("evt-1")
        broadcaster.unsubscribe(subscription)

        delivered = broadcaster.publish("evt-1", CHANNEL_ARCHIVED, {})

        assert delivered == 0
        assert subscription.queue.empty()
        assert broadcaster.subscriber_count("evt-1") == 0

    async def test_unsubscribe_twice_is_ignored(
        self, broadcaster: RealtimeBroadcaster
    ) -> None:
        """Unsubscribing an unknown subscription does nothing."""
        subscription = broadcaster.subscribe("evt-1")
        broadcaster.unsubscribe(subscription)
        broadcaster.unsubscribe(subscription)

        assert broadcaster.subscriber_count("evt-1") == 0


class TestTypedHelpers:
    """TC-08-005: Typed helpers."""

    async def test_message_received_serializes_dto(
        self, broadcaster: RealtimeBroadcaster
    ) -> None:
        """Transfer objects are dumped to JSON-compatible dicts."""
        subscription = broadcaster.subscribe("evt-1")
        message = ChatMessage(
            channel_id="ch-1",
            message="Hello",
            sender_display_name="Alex",
            created_by="alex@example.com",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        await broadcaster.message_received("evt-1", ChatMessageDto.from_entity(message))

        notification = subscription.queue.get_nowait()
        assert notification["type"] == MESSAGE_RECEIVED
        assert notification["payload"]["message"] == "Hello"
        assert notification["payload"]["channel_id"] == "ch-1"
        assert isinstance(notification["payload"]["created_at"], str)
