"""Local chat composition and history."""

import asyncio

from structlog.stdlib import BoundLogger

from chatbridge.application.services.external_bridge_service import (
    ExternalBridgeService,
)
from chatbridge.domain.entities.caller import Caller
from chatbridge.domain.entities.channel import Channel, ChannelType
from chatbridge.domain.entities.chat_message import ChatMessage
from chatbridge.domain.entities.transfer import ChatMessageDto
from chatbridge.domain.errors import NotFoundError, UnauthorizedError, ValidationError
from chatbridge.domain.repositories import ChannelRepository, ChatMessageRepository
from chatbridge.infrastructure.realtime import RealtimeBroadcaster

DEFAULT_PAGE_SIZE = 50


class ChatService:
    """Reads channel history and posts messages written by local users.

    Messages posted to the event's default channel or to an External
    channel are relayed to the event's external groups in the background.
    """

    def __init__(
        self,
        channels: ChannelRepository,
        messages: ChatMessageRepository,
        bridge: ExternalBridgeService,
        broadcaster: RealtimeBroadcaster,
        logger: BoundLogger,
    ) -> None:
        self._channels = channels
        self._messages = messages
        self._bridge = bridge
        self._broadcaster = broadcaster
        self._logger = logger
        self._relays: set[asyncio.Task[None]] = set()

    @property
    def pending_relays(self) -> int:
        return len(self._relays)

    async def get_messages(
        self, channel_id: str, skip: int | None = None, take: int | None = None
    ) -> list[ChatMessageDto]:
        """Get active messages of a channel, oldest first.

        Without skip, the window ends at the newest message.

        Args:
            channel_id: The channel ID.
            skip: Messages to skip from the oldest.
            take: Maximum messages to return, 50 by default.

        Returns:
            The messages in the window.
        """
        if (skip is not None and skip < 0) or (take is not None and take < 1):
            raise ValidationError("skip must be >= 0 and take must be >= 1")

        take_count = take if take is not None else DEFAULT_PAGE_SIZE
        if skip is None:
            total = await self._messages.count_active(channel_id)
            skip = max(0, total - take_count)

        messages = await self._messages.list_active(channel_id, skip, take_count)
        return [ChatMessageDto.from_entity(m) for m in messages]

    async def send_message(
        self, channel_id: str, text: str, caller: Caller | None
    ) -> ChatMessageDto:
        """Post a message to an active channel.

        Raises:
            UnauthorizedError: If no caller is given.
            ValidationError: If the text is blank.
            NotFoundError: If the channel is missing or not active.
        """
        if caller is None:
            raise UnauthorizedError()
        if not text or not text.strip():
            raise ValidationError("Message text is required")

        channel = await self._channels.get_by_id(channel_id)
        if channel is None or not channel.is_active:
            raise NotFoundError("Channel", channel_id)

        message = ChatMessage(
            channel_id=channel.id,
            message=text,
            sender_display_name=caller.full_name,
            created_by=caller.email,
        )
        await self._messages.add(message)

        self._logger.info(
            "Message sent",
            message_id=message.id,
            channel_id=channel.id,
            event_id=channel.event_id,
            sender=caller.email,
        )
        dto = ChatMessageDto.from_entity(message)
        await self._broadcaster.message_received(channel.event_id, dto)

        if self._relays_externally(channel):
            self._schedule_relay(channel.event_id, caller.full_name, text)
        return dto

    def _relays_externally(self, channel: Channel) -> bool:
        return (
            channel.is_default_event_thread
            or channel.channel_type == ChannelType.EXTERNAL
        )

    def _schedule_relay(self, event_id: str, sender: str, text: str) -> None:
        task = asyncio.create_task(self._relay(event_id, sender, text))
        self._relays.add(task)
        task.add_done_callback(self._relays.discard)

    async def _relay(self, event_id: str, sender: str, text: str) -> None:
        try:
            await self._bridge.broadcast_to_external_channels(event_id, sender, text)
        except Exception as e:
            self._logger.error(
                "Failed to relay message to external channels",
                event_id=event_id,
                error=str(e),
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for every scheduled relay to finish."""
        while self._relays:
            await asyncio.gather(*list(self._relays), return_exceptions=True)
