"""ChatMessageRepository protocol."""

from datetime import datetime
from typing import Protocol

from chatbridge.domain.entities.chat_message import ChatMessage
from chatbridge.domain.entities.transfer import ChannelSummary


class ChatMessageRepository(Protocol):
    """Repository protocol for chat messages."""

    async def add(self, message: ChatMessage) -> None:
        """Insert a locally composed message.

        Args:
            message: The message to insert.
        """
        ...

    async def add_external(self, message: ChatMessage) -> bool:
        """Insert an ingested message unless its external ID is already stored.

        The check is enforced by the store's unique constraint, so concurrent
        deliveries of the same external message insert exactly one row.

        Args:
            message: The message to insert. Must carry external_message_id.

        Returns:
            True if inserted, False if it was a duplicate.
        """
        ...

    async def exists_external(self, channel_id: str, external_message_id: str) -> bool:
        """Check whether an external message was already ingested on a channel.

        Args:
            channel_id: The channel ID.
            external_message_id: The platform message ID.

        Returns:
            True if a message with that external ID exists.
        """
        ...

    async def list_active(
        self, channel_id: str, skip: int, take: int
    ) -> list[ChatMessage]:
        """Get active messages of a channel, oldest first.

        Args:
            channel_id: The channel ID.
            skip: Number of messages to skip.
            take: Maximum number of messages to return.

        Returns:
            List of messages.
        """
        ...

    async def count_active(self, channel_id: str) -> int:
        """Count active messages of a channel.

        Args:
            channel_id: The channel ID.

        Returns:
            Number of active messages.
        """
        ...

    async def summarize_channels(
        self, channel_ids: list[str]
    ) -> dict[str, ChannelSummary]:
        """Compute message count and latest message for several channels.

        Args:
            channel_ids: Channels to summarise.

        Returns:
            Summary per channel ID; channels without messages are omitted.
        """
        ...

    async def archive_all(self, channel_id: str) -> int:
        """Archive every active message of a channel.

        Args:
            channel_id: The channel ID.

        Returns:
            Number of messages archived.
        """
        ...

    async def archive_older_than(self, channel_id: str, cutoff: datetime) -> int:
        """Archive active messages created before a cutoff.

        Args:
            channel_id: The channel ID.
            cutoff: Messages created strictly before this time are archived.

        Returns:
            Number of messages archived.
        """
        ...
