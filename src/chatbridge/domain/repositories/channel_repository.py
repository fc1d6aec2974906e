"""ChannelRepository protocol."""

from typing import Protocol

from chatbridge.domain.entities.channel import Channel, ChannelState, ChannelType


class ChannelRepository(Protocol):
    """Repository protocol for channels.

    Defines the interface for persisting and retrieving event channels.
    """

    async def add(self, channel: Channel) -> None:
        """Insert a new channel.

        Args:
            channel: The channel to insert.
        """
        ...

    async def save(self, channel: Channel) -> None:
        """Persist changes to an existing channel.

        Args:
            channel: The channel to update.
        """
        ...

    async def get_by_id(self, channel_id: str) -> Channel | None:
        """Get a channel by ID regardless of its state.

        Args:
            channel_id: The channel ID.

        Returns:
            The channel if found, None otherwise.
        """
        ...

    async def list_by_state(self, event_id: str, state: ChannelState) -> list[Channel]:
        """Get the channels of an event in a given state.

        Returns channels sorted by display_order, then created_at.

        Args:
            event_id: The event ID.
            state: Lifecycle state to filter on.

        Returns:
            List of channels.
        """
        ...

    async def list_by_type(
        self, event_id: str, channel_type: ChannelType
    ) -> list[Channel]:
        """Get all channels of a type in an event, in any state.

        Args:
            event_id: The event ID.
            channel_type: Channel type to filter on.

        Returns:
            List of channels.
        """
        ...

    async def get_default_channel(self, event_id: str) -> Channel | None:
        """Get the event's default Internal channel, in any state.

        Args:
            event_id: The event ID.

        Returns:
            The default channel if one exists, None otherwise.
        """
        ...

    async def get_by_mapping(self, mapping_id: str) -> Channel | None:
        """Get the External channel backed by a mapping, in any state.

        Args:
            mapping_id: The external channel mapping ID.

        Returns:
            The channel if found, None otherwise.
        """
        ...

    async def max_display_order(self, event_id: str) -> int:
        """Get the highest display_order among the event's active channels.

        Args:
            event_id: The event ID.

        Returns:
            The maximum display_order, or -1 if the event has no active channel.
        """
        ...

    async def set_display_orders(self, orders: dict[str, int]) -> None:
        """Assign display_order values in a single transaction.

        Args:
            orders: Mapping of channel ID to its new display_order.
        """
        ...
