"""Bridge between event channels and external messaging platforms."""

import asyncio
import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar

import ulid
from jinja2 import Template
from structlog.stdlib import BoundLogger

from chatbridge.application.services.channel_service import ChannelService
from chatbridge.config.models import BridgeConfig
from chatbridge.domain.entities.caller import Caller
from chatbridge.domain.entities.channel import Channel, ChannelType
from chatbridge.domain.entities.chat_message import ChatMessage
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.domain.entities.inbound_delivery import InboundMessage
from chatbridge.domain.entities.transfer import (
    ChatMessageDto,
    CreateChannelRequest,
    DeliveryOutcome,
    ExternalChannelMappingDto,
)
from chatbridge.domain.errors import (
    ChatBridgeError,
    ExternalPlatformError,
    NotFoundError,
    UnauthorizedError,
)
from chatbridge.domain.repositories import (
    ChannelRepository,
    ChatMessageRepository,
    EventRepository,
    ExternalChannelMappingRepository,
)
from chatbridge.infrastructure.platforms.base import PlatformAdapter
from chatbridge.infrastructure.platforms.registry import PlatformRegistry
from chatbridge.infrastructure.realtime import RealtimeBroadcaster
from chatbridge.infrastructure.retry import RetryPolicy, RetryResult

EXTERNAL_AUTHOR = "system"
WEBHOOK_SECRET_BYTES = 32

T = TypeVar("T")


def generate_webhook_secret() -> str:
    return secrets.token_urlsafe(WEBHOOK_SECRET_BYTES)


class ExternalBridgeService:
    """Connects events to external groups and moves messages across.

    Outbound platform calls go through the retry policy. Inbound webhook
    deliveries are filtered defensively and deduplicated by the message
    store's unique constraint.
    """

    def __init__(
        self,
        mappings: ExternalChannelMappingRepository,
        channels: ChannelRepository,
        messages: ChatMessageRepository,
        events: EventRepository,
        channel_service: ChannelService,
        platforms: PlatformRegistry,
        retry_policy: RetryPolicy,
        broadcaster: RealtimeBroadcaster,
        config: BridgeConfig,
        webhook_base_url: str,
        logger: BoundLogger,
    ) -> None:
        self._mappings = mappings
        self._channels = channels
        self._messages = messages
        self._events = events
        self._channel_service = channel_service
        self._platforms = platforms
        self._retry = retry_policy
        self._broadcaster = broadcaster
        self._webhook_base_url = webhook_base_url.rstrip("/")
        self._logger = logger
        self._outbound_template = Template(config.outbound_template)
        self._group_name_template = Template(config.group_name_template)
        self._announcement_template = Template(config.announcement_template)

    def callback_url(self, platform: ExternalPlatform, mapping_id: str) -> str:
        """Return the webhook URL a platform pushes a mapping's messages to."""
        return f"{self._webhook_base_url}/webhooks/{platform.value}/{mapping_id}"

    def format_outbound(self, sender_display_name: str, text: str) -> str:
        return self._outbound_template.render(sender=sender_display_name, text=text)

    async def _call(
        self, operation: Callable[[], Awaitable[T]], operation_name: str
    ) -> RetryResult[T]:
        """Run a platform management call through the retry policy.

        Raises:
            ChatBridgeError: Domain errors raised by the adapter, unchanged.
            ExternalPlatformError: For any other failure.
        """
        result = await self._retry.execute(operation, operation_name=operation_name)
        if result.success:
            return result
        if isinstance(result.last_exception, ChatBridgeError):
            raise result.last_exception
        raise ExternalPlatformError(
            f"{operation_name} failed after {result.attempts} attempt(s)"
        ) from result.last_exception

    async def _ensure_backing_channel(
        self, mapping: ExternalChannelMapping, caller: Caller
    ) -> None:
        """Make sure an active External channel exists for a linked mapping."""
        if mapping.event_id is None:
            return
        channel = await self._channels.get_by_mapping(mapping.id)
        if channel is not None and channel.event_id != mapping.event_id:
            channel = None
        if channel is not None and channel.is_active:
            return
        if channel is not None and await self._channel_service.restore_channel(
            channel.id
        ):
            return
        await self._channel_service.create_channel(
            CreateChannelRequest(
                event_id=mapping.event_id,
                name=mapping.external_group_name,
                description=f"Bridged to {mapping.platform.value}",
                channel_type=ChannelType.EXTERNAL,
                external_channel_mapping_id=mapping.id,
                icon_name=mapping.platform.value,
            ),
            caller,
        )

    async def _activate(
        self,
        mapping: ExternalChannelMapping,
        caller: Caller,
        event_id: str,
    ) -> ExternalChannelMappingDto:
        mapping.event_id = event_id
        mapping.is_active = True
        mapping.last_modified_by = caller.email
        mapping.last_modified_at = datetime.now(timezone.utc)
        await self._mappings.save(mapping)
        await self._ensure_backing_channel(mapping, caller)

        dto = ExternalChannelMappingDto.from_entity(mapping)
        await self._broadcaster.external_connected(event_id, dto)
        return dto

    async def create_external_channel(
        self,
        event_id: str,
        platform: ExternalPlatform,
        caller: Caller | None,
        custom_name: str | None = None,
    ) -> ExternalChannelMappingDto:
        """Connect an event to a new or previously used external group.

        Returns the event's active mapping for the platform if one exists
        and reactivates an inactive one before creating anything on the
        platform. A created group whose ID is already mapped reuses that
        mapping.

        Args:
            event_id: The event ID.
            platform: Target platform.
            caller: The requesting user.
            custom_name: Group name overriding the configured template.

        Returns:
            The active mapping.

        Raises:
            NotFoundError: If the event does not exist.
            UnauthorizedError: If no caller is given.
            UnsupportedPlatformError: If the platform has no adapter or
                cannot create groups.
            ExternalPlatformError: If the platform calls fail after retries.
        """
        event = await self._events.get_by_id(event_id)
        if event is None:
            raise NotFoundError("Event", event_id)
        if caller is None:
            raise UnauthorizedError()

        active = await self._mappings.get_for_event_platform(event_id, platform, True)
        if active is not None:
            self._logger.info(
                "External channel already connected",
                event_id=event_id,
                platform=platform.value,
                mapping_id=active.id,
            )
            return ExternalChannelMappingDto.from_entity(active)

        inactive = await self._mappings.get_for_event_platform(
            event_id, platform, False
        )
        if inactive is not None:
            self._logger.info(
                "Reactivating external channel",
                event_id=event_id,
                platform=platform.value,
                mapping_id=inactive.id,
            )
            return await self._activate(inactive, caller, event_id)

        adapter: PlatformAdapter = self._platforms.get(platform)
        group_name = custom_name or self._group_name_template.render(
            event_name=event.name
        )
        group_result = await self._call(
            lambda: adapter.create_group(group_name),
            f"{platform.value}.create_group",
        )
        group = group_result.value

        existing = await self._mappings.get_by_group(platform, group.group_id)
        if existing is not None:
            self._logger.info(
                "Reusing mapping for existing group",
                mapping_id=existing.id,
                group_id=group.group_id,
            )
            return await self._activate(existing, caller, event_id)

        mapping_id = str(ulid.new())
        callback_url = self.callback_url(platform, mapping_id)
        connector_result = await self._call(
            lambda: adapter.register_connector(group.group_id, callback_url),
            f"{platform.value}.register_connector",
        )

        mapping = ExternalChannelMapping(
            id=mapping_id,
            event_id=event_id,
            platform=platform,
            external_group_id=group.group_id,
            external_group_name=group.name,
            bot_id=connector_result.value.bot_id,
            webhook_secret=generate_webhook_secret(),
            share_url=group.share_url,
            created_by=caller.email,
        )
        await self._mappings.add(mapping)
        await self._ensure_backing_channel(mapping, caller)

        self._logger.info(
            "External channel created",
            mapping_id=mapping.id,
            event_id=event_id,
            platform=platform.value,
            group_id=group.group_id,
        )
        dto = ExternalChannelMappingDto.from_entity(mapping)
        await self._broadcaster.external_connected(event_id, dto)
        return dto

    async def list_channel_mappings(self, event_id: str) -> list[ExternalChannelMappingDto]:
        """List the event's active mappings."""
        mappings = await self._mappings.list_active_for_event(event_id)
        return [ExternalChannelMappingDto.from_entity(m) for m in mappings]

    async def link_mapping(
        self, mapping: ExternalChannelMapping, event_id: str, caller: Caller
    ) -> ExternalChannelMappingDto:
        """Attach an existing mapping to an event, moving it off its old one."""
        if mapping.event_id is not None and mapping.event_id != event_id:
            await self._detach(mapping)
        return await self._activate(mapping, caller, event_id)

    async def unlink_mapping(
        self, mapping: ExternalChannelMapping, caller: Caller
    ) -> ExternalChannelMappingDto:
        """Detach a mapping from its event; the mapping itself stays active."""
        if mapping.event_id is not None:
            await self._detach(mapping)
        mapping.event_id = None
        mapping.last_modified_by = caller.email
        mapping.last_modified_at = datetime.now(timezone.utc)
        await self._mappings.save(mapping)
        return ExternalChannelMappingDto.from_entity(mapping)

    async def _detach(self, mapping: ExternalChannelMapping) -> None:
        await self._channel_service.archive_external_channel(mapping.id)
        if mapping.event_id is not None:
            await self._broadcaster.external_disconnected(mapping.event_id, mapping.id)

    async def deactivate_channel(
        self,
        mapping_id: str,
        caller: Caller | None,
        archive_external_group: bool = False,
    ) -> None:
        """Disconnect a mapping.

        The mapping is marked inactive and its External channel archived.
        With archive_external_group, the platform bot and group are removed
        as well; failures there are logged and do not undo the local change.

        Raises:
            UnauthorizedError: If no caller is given.
            NotFoundError: If the mapping does not exist.
        """
        if caller is None:
            raise UnauthorizedError()
        mapping = await self._mappings.get_by_id(mapping_id)
        if mapping is None:
            raise NotFoundError("ExternalChannelMapping", mapping_id)
        await self.disconnect_mapping(mapping, caller.email, archive_external_group)

    async def disconnect_mapping(
        self,
        mapping: ExternalChannelMapping,
        modified_by: str,
        archive_external_group: bool = False,
    ) -> None:
        """Mark a mapping inactive and archive its External channel.

        Args:
            mapping: The mapping to disconnect.
            modified_by: Author recorded on the mapping.
            archive_external_group: Also remove the platform bot and group.
        """
        mapping.is_active = False
        mapping.last_modified_by = modified_by
        mapping.last_modified_at = datetime.now(timezone.utc)
        await self._mappings.save(mapping)
        await self._channel_service.archive_external_channel(mapping.id)

        if archive_external_group:
            await self._remove_platform_side(mapping)

        self._logger.info(
            "External channel deactivated",
            mapping_id=mapping.id,
            modified_by=modified_by,
            archived_group=archive_external_group,
        )
        if mapping.event_id is not None:
            await self._broadcaster.external_disconnected(mapping.event_id, mapping.id)

    async def reactivate_mapping(
        self, mapping: ExternalChannelMapping, caller: Caller
    ) -> ExternalChannelMappingDto:
        """Mark a mapping active again.

        A linked mapping gets its External channel restored, or recreated,
        and viewers are told it is connected.
        """
        if mapping.event_id is not None:
            return await self._activate(mapping, caller, mapping.event_id)
        mapping.is_active = True
        mapping.last_modified_by = caller.email
        mapping.last_modified_at = datetime.now(timezone.utc)
        await self._mappings.save(mapping)
        return ExternalChannelMappingDto.from_entity(mapping)

    async def _remove_platform_side(self, mapping: ExternalChannelMapping) -> None:
        try:
            adapter = self._platforms.get(mapping.platform)
            await self._call(
                lambda: adapter.destroy_connector(mapping),
                f"{mapping.platform.value}.destroy_connector",
            )
            await self._call(
                lambda: adapter.archive_group(mapping),
                f"{mapping.platform.value}.archive_group",
            )
        except ChatBridgeError as e:
            self._logger.warning(
                "Failed to archive external group",
                mapping_id=mapping.id,
                error=str(e),
            )

    async def _resolve_channel(self, mapping: ExternalChannelMapping) -> Channel | None:
        channel = await self._channels.get_by_mapping(mapping.id)
        if channel is not None and channel.is_active:
            return channel
        if mapping.event_id is None:
            return None
        default = await self._channels.get_default_channel(mapping.event_id)
        if default is not None and default.is_active:
            return default
        return None

    async def process_inbound_webhook(
        self,
        mapping_id: str,
        message: InboundMessage,
        platform: ExternalPlatform | None = None,
    ) -> ChatMessageDto | None:
        """Ingest one message pushed by an external platform.

        Deliveries are dropped, with a log line and a None result, when the
        mapping is missing, inactive or unlinked, when the sender is a bot,
        when the group or platform does not match the mapping, and when the
        message was already ingested.

        Args:
            mapping_id: The mapping named in the webhook URL.
            message: The parsed message.
            platform: The platform named in the webhook URL, if known.

        Returns:
            The stored message, or None if the delivery was dropped.
        """
        log = self._logger.bind(
            mapping_id=mapping_id, external_message_id=message.external_message_id
        )

        mapping = await self._mappings.get_by_id(mapping_id)
        if mapping is None or not mapping.is_active or not mapping.is_linked:
            log.warning("Dropping webhook for missing or inactive mapping")
            return None
        if platform is not None and platform != mapping.platform:
            log.warning(
                "Dropping webhook for wrong platform",
                expected=mapping.platform.value,
                actual=platform.value,
            )
            return None
        if message.is_from_bot or (
            mapping.bot_id and message.sender_id == mapping.bot_id
        ):
            log.debug("Dropping bot message")
            return None
        if message.external_group_id != mapping.external_group_id:
            log.warning(
                "Dropping webhook for mismatched group",
                expected=mapping.external_group_id,
                actual=message.external_group_id,
            )
            return None

        channel = await self._resolve_channel(mapping)
        if channel is None:
            log.warning("No active channel for mapping", event_id=mapping.event_id)
            return None
        if await self._messages.exists_external(channel.id, message.external_message_id):
            log.debug("Dropping duplicate message")
            return None

        chat_message = ChatMessage(
            channel_id=channel.id,
            message=message.display_text,
            sender_display_name=message.sender_name,
            external_source=mapping.platform,
            external_message_id=message.external_message_id,
            external_sender_id=message.sender_id,
            external_timestamp=message.sent_at,
            external_attachment_url=message.attachment_url,
            external_channel_mapping_id=mapping.id,
            created_by=EXTERNAL_AUTHOR,
        )
        if not await self._messages.add_external(chat_message):
            log.debug("Dropping duplicate message rejected by store")
            return None

        mapping.last_activity_at = datetime.now(timezone.utc)
        await self._mappings.save(mapping)

        log.info(
            "Inbound message stored",
            message_id=chat_message.id,
            channel_id=channel.id,
            platform=mapping.platform.value,
        )
        dto = ChatMessageDto.from_entity(chat_message)
        await self._broadcaster.message_received(channel.event_id, dto)
        return dto

    async def _send(
        self, mapping: ExternalChannelMapping, text: str, sender_display_name: str
    ) -> DeliveryOutcome:
        try:
            adapter = self._platforms.get(mapping.platform)
            result = await self._retry.execute_http(
                lambda: adapter.post_message(mapping, text, sender_display_name),
                operation_name=f"{mapping.platform.value}.post_message",
            )
        except Exception as e:
            self._logger.error(
                "Outbound send failed",
                mapping_id=mapping.id,
                platform=mapping.platform.value,
                error=str(e),
            )
            return DeliveryOutcome(
                mapping_id=mapping.id,
                platform=mapping.platform,
                delivered=False,
                error=str(e),
            )

        response = result.value
        delivered = result.success and response is not None and response.ok
        error = None
        if not delivered:
            if result.last_exception is not None:
                error = str(result.last_exception)
            elif response is not None:
                error = f"HTTP {response.status}"
            else:
                error = result.outcome.value
            self._logger.error(
                "Outbound send failed",
                mapping_id=mapping.id,
                platform=mapping.platform.value,
                outcome=result.outcome.value,
                attempts=result.attempts,
                error=error,
            )
        return DeliveryOutcome(
            mapping_id=mapping.id,
            platform=mapping.platform,
            delivered=delivered,
            attempts=result.attempts,
            error=error,
        )

    async def broadcast_to_external_channels(
        self, event_id: str, sender_display_name: str, text: str
    ) -> list[DeliveryOutcome]:
        """Relay a message to every active mapping of an event.

        Sends run concurrently; a failure on one mapping does not affect
        the others.

        Args:
            event_id: The event ID.
            sender_display_name: Name of the local author.
            text: Message text.

        Returns:
            One outcome per active mapping.
        """
        mappings = await self._mappings.list_active_for_event(event_id)
        if not mappings:
            return []

        formatted = self.format_outbound(sender_display_name, text)
        outcomes = await self._send_all(mappings, formatted, sender_display_name)
        self._logger.info(
            "Message relayed to external channels",
            event_id=event_id,
            mappings=len(outcomes),
            delivered=sum(1 for o in outcomes if o.delivered),
        )
        return outcomes

    async def _send_all(
        self,
        mappings: list[ExternalChannelMapping],
        text: str,
        sender_display_name: str,
    ) -> list[DeliveryOutcome]:
        outcomes = await asyncio.gather(
            *(self._send(mapping, text, sender_display_name) for mapping in mappings)
        )
        return list(outcomes)

    async def broadcast_announcement(
        self,
        event_id: str,
        title: str,
        message: str,
        sender_display_name: str,
        priority: str = "normal",
        platform: ExternalPlatform = ExternalPlatform.TEAMS,
    ) -> list[DeliveryOutcome]:
        """Send an announcement to an event's active mappings on one platform.

        Args:
            event_id: The event ID.
            title: Announcement title.
            message: Announcement body.
            sender_display_name: Name shown as the announcer.
            priority: "normal" or "urgent".
            platform: Platform whose mappings receive the announcement.

        Returns:
            One outcome per targeted mapping.
        """
        mappings = [
            m
            for m in await self._mappings.list_active_for_event(event_id)
            if m.platform == platform
        ]
        if not mappings:
            self._logger.info(
                "No active mappings for announcement",
                event_id=event_id,
                platform=platform.value,
            )
            return []

        text = self._announcement_template.render(
            title=title, message=message, sender=sender_display_name, priority=priority
        )
        outcomes = await self._send_all(mappings, text, sender_display_name)
        self._logger.info(
            "Announcement broadcast",
            event_id=event_id,
            platform=platform.value,
            mappings=len(outcomes),
            delivered=sum(1 for o in outcomes if o.delivered),
        )
        return outcomes
