"""Platform adapter protocol and its result types."""

from dataclasses import dataclass
from typing import Protocol

from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)


@dataclass
class ExternalGroup:
    """A group created on an external platform."""

    group_id: str
    name: str
    share_url: str | None = None


@dataclass
class Connector:
    """A bot or connector registered in an external group."""

    bot_id: str
    callback_url: str | None = None


@dataclass
class PlatformResponse:
    """Outcome of an outbound HTTP call to a platform."""

    status: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class PlatformAdapter(Protocol):
    """Capabilities the bridge needs from an external platform.

    Adapters raise for failed group and connector management calls and
    return a PlatformResponse from post_message so that the caller's retry
    policy can classify the status code.
    """

    platform: ExternalPlatform

    async def create_group(self, name: str, description: str | None = None) -> ExternalGroup:
        """Create a group on the platform.

        Args:
            name: Group display name.
            description: Optional group description.

        Returns:
            The created group.
        """
        ...

    async def register_connector(
        self, group_id: str, callback_url: str
    ) -> Connector:
        """Register the bridge's bot in a group.

        Args:
            group_id: The platform group ID.
            callback_url: URL the platform pushes new messages to.

        Returns:
            The registered connector.
        """
        ...

    async def post_message(
        self,
        mapping: ExternalChannelMapping,
        text: str,
        sender_name: str | None = None,
    ) -> PlatformResponse:
        """Post a message into the mapped group.

        Args:
            mapping: The mapping identifying group, bot and conversation.
            text: Fully formatted message text.
            sender_name: Original sender, for platforms that show it separately.

        Returns:
            The platform's response.
        """
        ...

    async def destroy_connector(self, mapping: ExternalChannelMapping) -> None:
        """Remove the bridge's bot from the mapped group."""
        ...

    async def archive_group(self, mapping: ExternalChannelMapping) -> None:
        """Archive or destroy the mapped group on the platform."""
        ...
