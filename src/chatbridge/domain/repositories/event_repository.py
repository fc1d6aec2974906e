"""EventRepository and PositionRepository protocols."""

from typing import Protocol

from chatbridge.domain.entities.event import Event, Position


class EventRepository(Protocol):
    """Read access to operational events."""

    async def get_by_id(self, event_id: str) -> Event | None:
        """Get an event by ID.

        Args:
            event_id: The event ID.

        Returns:
            The event if found, None otherwise.
        """
        ...

    async def save(self, event: Event) -> None:
        """Save an event (upsert)."""
        ...


class PositionRepository(Protocol):
    """Read access to organisational positions."""

    async def list_active(self) -> list[Position]:
        """Get active positions sorted by display_order.

        Returns:
            List of positions.
        """
        ...

    async def save(self, position: Position) -> None:
        """Save a position (upsert)."""
        ...
