"""Per-event realtime fan-out to connected viewers."""

import asyncio
from typing import Any

from pydantic import BaseModel
from structlog.stdlib import BoundLogger

from chatbridge.domain.entities.transfer import (
    ChannelDto,
    ChatMessageDto,
    ExternalChannelMappingDto,
)

MESSAGE_RECEIVED = "message.received"
CHANNEL_CREATED = "channel.created"
CHANNEL_ARCHIVED = "channel.archived"
CHANNEL_RESTORED = "channel.restored"
CHANNEL_DELETED = "channel.deleted"
EXTERNAL_CONNECTED = "external.connected"
EXTERNAL_DISCONNECTED = "external.disconnected"


def group_name(event_id: str) -> str:
    """Return the subscriber group name for an event."""
    return f"event-{event_id}"


class Subscription:
    """A viewer's bounded inbox for one event's notifications."""

    def __init__(self, event_id: str, maxsize: int) -> None:
        self.event_id = event_id
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def get(self) -> dict[str, Any]:
        """Wait for the next notification."""
        return await self.queue.get()


class RealtimeBroadcaster:
    """Best-effort pub/sub scoped per event.

    Each notification is a dict ``{"type", "event_id", "payload"}`` pushed to
    every subscription in the event's group. A subscriber whose inbox is full
    misses that notification; other subscribers are unaffected. Viewers
    reconcile by refreshing after a reconnect.
    """

    def __init__(self, logger: BoundLogger, queue_size: int = 100) -> None:
        """Initialize the broadcaster.

        Args:
            logger: Logger for delivery diagnostics.
            queue_size: Maximum notifications buffered per subscription.
        """
        self._logger = logger
        self._queue_size = queue_size
        self._groups: dict[str, set[Subscription]] = {}

    def subscribe(self, event_id: str) -> Subscription:
        """Join the event's group.

        Args:
            event_id: The event to follow.

        Returns:
            A new subscription; pass it to unsubscribe() when the viewer leaves.
        """
        subscription = Subscription(event_id, self._queue_size)
        self._groups.setdefault(group_name(event_id), set()).add(subscription)
        self._logger.debug("Viewer subscribed", event_id=event_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Leave the event's group. Unknown subscriptions are ignored."""
        name = group_name(subscription.event_id)
        members = self._groups.get(name)
        if members is None:
            return
        members.discard(subscription)
        if not members:
            del self._groups[name]
        self._logger.debug("Viewer unsubscribed", event_id=subscription.event_id)

    def subscriber_count(self, event_id: str) -> int:
        return len(self._groups.get(group_name(event_id), ()))

    def publish(
        self, event_id: str, notification_type: str, payload: BaseModel | dict[str, Any]
    ) -> int:
        """Push a notification to every viewer of an event.

        Args:
            event_id: The event whose viewers are notified.
            notification_type: Wire name such as "channel.created".
            payload: Transfer object or plain dict.

        Returns:
            Number of subscribers the notification was queued for.
        """
        members = self._groups.get(group_name(event_id))
        if not members:
            return 0

        body = (
            payload.model_dump(mode="json")
            if isinstance(payload, BaseModel)
            else payload
        )
        notification = {
            "type": notification_type,
            "event_id": event_id,
            "payload": body,
        }

        delivered = 0
        for subscription in list(members):
            try:
                subscription.queue.put_nowait(notification)
                delivered += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                self._logger.warning(
                    "Viewer queue full, notification dropped",
                    event_id=event_id,
                    type=notification_type,
                    dropped=subscription.dropped,
                )
        return delivered

    async def message_received(self, event_id: str, message: ChatMessageDto) -> None:
        self.publish(event_id, MESSAGE_RECEIVED, message)

    async def channel_created(self, event_id: str, channel: ChannelDto) -> None:
        self.publish(event_id, CHANNEL_CREATED, channel)

    async def channel_archived(self, event_id: str, channel_id: str) -> None:
        self.publish(event_id, CHANNEL_ARCHIVED, {"channel_id": channel_id})

    async def channel_restored(self, event_id: str, channel: ChannelDto) -> None:
        self.publish(event_id, CHANNEL_RESTORED, channel)

    async def channel_deleted(self, event_id: str, channel_id: str) -> None:
        self.publish(event_id, CHANNEL_DELETED, {"channel_id": channel_id})

    async def external_connected(
        self, event_id: str, mapping: ExternalChannelMappingDto
    ) -> None:
        self.publish(event_id, EXTERNAL_CONNECTED, mapping)

    async def external_disconnected(self, event_id: str, mapping_id: str) -> None:
        self.publish(event_id, EXTERNAL_DISCONNECTED, {"mapping_id": mapping_id})
