"""In-memory queue of accepted webhook deliveries."""

import asyncio

from chatbridge.domain.entities.inbound_delivery import InboundDelivery


class InboundDeliveryQueue:
    """In-memory delivery queue with in-flight deduplication.

    Platforms redeliver webhooks they consider unacknowledged, so the same
    external message can arrive several times in quick succession. A
    delivery whose identity key is already pending or being processed is
    not queued again; the persistence layer's unique constraint covers
    redeliveries that arrive after processing finished.
    """

    def __init__(self) -> None:
        """Initialize the delivery queue."""
        self._queue: asyncio.Queue[InboundDelivery] = asyncio.Queue()
        self._pending: dict[str, InboundDelivery] = {}
        self._processing: dict[str, InboundDelivery] = {}

    @property
    def pending_count(self) -> int:
        """Return the number of deliveries waiting to be processed."""
        return len(self._pending)

    @property
    def processing_count(self) -> int:
        """Return the number of deliveries being processed."""
        return len(self._processing)

    def is_in_flight(self, delivery: InboundDelivery) -> bool:
        """Return True if an equivalent delivery is pending or processing."""
        key = delivery.get_identity_key()
        return key in self._pending or key in self._processing

    async def enqueue(self, delivery: InboundDelivery) -> bool:
        """Add a delivery to the queue.

        Args:
            delivery: The delivery to enqueue.

        Returns:
            True if queued, False if an equivalent delivery is already in flight.
        """
        if self.is_in_flight(delivery):
            return False

        self._pending[delivery.get_identity_key()] = delivery
        await self._queue.put(delivery)
        return True

    async def dequeue(self) -> InboundDelivery:
        """Get the next delivery and mark it as processing.

        Returns:
            The next delivery to process.
        """
        delivery = await self._queue.get()
        key = delivery.get_identity_key()
        self._pending.pop(key, None)
        self._processing[key] = delivery
        return delivery

    def dequeue_nowait(self) -> InboundDelivery | None:
        """Get the next delivery without waiting.

        Returns:
            The next delivery, marked as processing, or None if the queue is empty.
        """
        try:
            delivery = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        key = delivery.get_identity_key()
        self._pending.pop(key, None)
        self._processing[key] = delivery
        return delivery

    def mark_done(self, delivery: InboundDelivery) -> None:
        """Mark a delivery as processed.

        Args:
            delivery: The delivery that has been processed.
        """
        self._processing.pop(delivery.get_identity_key(), None)
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued delivery has been marked done."""
        await self._queue.join()
