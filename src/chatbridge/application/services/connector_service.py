"""Teams connector registration and maintenance."""

from datetime import datetime, timedelta, timezone

from structlog.stdlib import BoundLogger

from chatbridge.application.services.external_bridge_service import (
    ExternalBridgeService,
    generate_webhook_secret,
)
from chatbridge.domain.entities.caller import Caller
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.domain.entities.transfer import (
    DeliveryOutcome,
    ExternalChannelMappingDto,
)
from chatbridge.domain.errors import NotFoundError, UnauthorizedError, ValidationError
from chatbridge.domain.repositories import (
    EventRepository,
    ExternalChannelMappingRepository,
)

TEAMS_BOT_AUTHOR = "TeamsBot"
BOT_REMOVED_AUTHOR = "TeamsBot:BotRemoved"
STALE_CLEANUP_AUTHOR = "StaleCleanup"
EMULATOR_CLEANUP_AUTHOR = "EmulatorCleanup"
DEFAULT_STALE_DAYS = 30
DEFAULT_ANNOUNCER = "COBRA"
ANNOUNCEMENT_PRIORITIES = frozenset({"normal", "urgent"})

TEAMS_BOT_CALLER = Caller(email=TEAMS_BOT_AUTHOR, full_name="Teams Bot")


class ConnectorService:
    """Manages Teams connectors.

    The Teams bot reports every conversation it is installed in. Each report
    upserts an unlinked mapping carrying the conversation reference needed
    for proactive sends; an administrator then links it to an event.
    """

    def __init__(
        self,
        mappings: ExternalChannelMappingRepository,
        events: EventRepository,
        bridge: ExternalBridgeService,
        logger: BoundLogger,
    ) -> None:
        self._mappings = mappings
        self._events = events
        self._bridge = bridge
        self._logger = logger

    async def store_conversation_reference(
        self,
        conversation_id: str,
        conversation_reference_json: str | None,
        tenant_id: str | None = None,
        channel_name: str | None = None,
        installed_by_name: str | None = None,
        is_emulator: bool = False,
    ) -> tuple[ExternalChannelMapping, bool]:
        """Create or refresh the connector for a Teams conversation.

        Args:
            conversation_id: Teams conversation ID.
            conversation_reference_json: Serialized conversation reference,
                stored verbatim.
            tenant_id: Teams tenant ID.
            channel_name: Display name for a new connector.
            installed_by_name: Name of the installing user; kept once set.
            is_emulator: Whether the conversation comes from the Bot Framework
                Emulator.

        Returns:
            The mapping and whether it was created by this call.
        """
        if not conversation_id:
            raise ValidationError("conversation_id is required")

        now = datetime.now(timezone.utc)
        mapping = await self._mappings.get_by_group(
            ExternalPlatform.TEAMS, conversation_id
        )
        is_new = mapping is None
        was_inactive = mapping is not None and not mapping.is_active
        if mapping is None:
            mapping = ExternalChannelMapping(
                platform=ExternalPlatform.TEAMS,
                external_group_id=conversation_id,
                external_group_name=channel_name
                or f"Teams {'Emulator' if is_emulator else 'Channel'}",
                webhook_secret=generate_webhook_secret(),
                created_by=TEAMS_BOT_AUTHOR,
            )

        mapping.conversation_reference_json = conversation_reference_json
        mapping.is_active = True
        mapping.tenant_id = tenant_id
        mapping.last_activity_at = now
        mapping.is_emulator = is_emulator
        mapping.last_modified_by = TEAMS_BOT_AUTHOR
        mapping.last_modified_at = now
        if not mapping.installed_by_name and installed_by_name:
            mapping.installed_by_name = installed_by_name

        if is_new:
            await self._mappings.add(mapping)
            self._logger.info(
                "Unlinked Teams connector registered",
                mapping_id=mapping.id,
                conversation_id=conversation_id,
                is_emulator=is_emulator,
            )
        elif was_inactive:
            await self._bridge.reactivate_mapping(mapping, TEAMS_BOT_CALLER)
            self._logger.info(
                "Teams connector reactivated by conversation report",
                mapping_id=mapping.id,
                event_id=mapping.event_id,
            )
        else:
            await self._mappings.save(mapping)
            self._logger.debug(
                "Teams conversation reference refreshed", mapping_id=mapping.id
            )
        return mapping, is_new

    async def get_by_conversation(
        self, conversation_id: str
    ) -> ExternalChannelMapping | None:
        return await self._mappings.get_by_group(ExternalPlatform.TEAMS, conversation_id)

    async def list_connectors(
        self,
        is_emulator: bool | None = None,
        is_active: bool | None = None,
        stale_days: int | None = None,
    ) -> list[ExternalChannelMappingDto]:
        """List Teams connectors, most recently active first."""
        inactive_since = (
            datetime.now(timezone.utc) - timedelta(days=stale_days)
            if stale_days is not None
            else None
        )
        mappings = await self._mappings.list_by_platform(
            ExternalPlatform.TEAMS,
            is_active=is_active,
            is_emulator=is_emulator,
            inactive_since=inactive_since,
        )
        return [ExternalChannelMappingDto.from_entity(m) for m in mappings]

    async def _get_connector(self, mapping_id: str) -> ExternalChannelMapping:
        mapping = await self._mappings.get_by_id(mapping_id)
        if mapping is None or mapping.platform != ExternalPlatform.TEAMS:
            raise NotFoundError("Connector", mapping_id)
        return mapping

    async def link_connector(
        self, mapping_id: str, event_id: str, caller: Caller | None
    ) -> ExternalChannelMappingDto:
        """Attach a connector to an event and give it an External channel.

        Raises:
            UnauthorizedError: If no caller is given.
            NotFoundError: If the connector or the event does not exist.
        """
        if caller is None:
            raise UnauthorizedError()
        mapping = await self._get_connector(mapping_id)
        event = await self._events.get_by_id(event_id)
        if event is None:
            raise NotFoundError("Event", event_id)

        previous_event_id = mapping.event_id
        dto = await self._bridge.link_mapping(mapping, event_id, caller)
        self._logger.info(
            "Teams connector linked",
            mapping_id=mapping_id,
            event_id=event_id,
            previous_event_id=previous_event_id,
        )
        return dto

    async def unlink_connector(
        self, mapping_id: str, caller: Caller | None
    ) -> ExternalChannelMappingDto:
        """Detach a connector from its event; the connector stays registered.

        Raises:
            UnauthorizedError: If no caller is given.
            NotFoundError: If the connector does not exist.
        """
        if caller is None:
            raise UnauthorizedError()
        mapping = await self._get_connector(mapping_id)
        dto = await self._bridge.unlink_mapping(mapping, caller)
        self._logger.info("Teams connector unlinked", mapping_id=mapping_id)
        return dto

    async def rename_connector(
        self, mapping_id: str, display_name: str, caller: Caller | None
    ) -> ExternalChannelMappingDto:
        if caller is None:
            raise UnauthorizedError()
        name = display_name.strip()
        if not name:
            raise ValidationError("display_name is required")
        mapping = await self._get_connector(mapping_id)
        mapping.external_group_name = name
        mapping.last_modified_by = caller.email
        mapping.last_modified_at = datetime.now(timezone.utc)
        await self._mappings.save(mapping)
        self._logger.info("Teams connector renamed", mapping_id=mapping_id)
        return ExternalChannelMappingDto.from_entity(mapping)

    async def deactivate_connector(self, mapping_id: str, caller: Caller | None) -> None:
        """Deactivate a connector and archive its External channel."""
        if caller is None:
            raise UnauthorizedError()
        await self._get_connector(mapping_id)
        await self._bridge.deactivate_channel(mapping_id, caller)

    async def get_conversation_reference(
        self, conversation_id: str
    ) -> ExternalChannelMapping:
        """Return the connector for a conversation, active or not.

        Raises:
            NotFoundError: If no connector was ever registered for it.
        """
        mapping = await self.get_by_conversation(conversation_id)
        if mapping is None:
            raise NotFoundError("Connector", conversation_id)
        return mapping

    async def notify_bot_removed(
        self, conversation_id: str, removed_by: str | None = None
    ) -> ExternalChannelMapping:
        """Disconnect a connector after the bot was removed from its conversation.

        The stored conversation reference is cleared; a later installation
        reports a fresh one.

        Raises:
            NotFoundError: If no connector exists for the conversation.
        """
        mapping = await self.get_conversation_reference(conversation_id)
        mapping.conversation_reference_json = None
        await self._bridge.disconnect_mapping(mapping, BOT_REMOVED_AUTHOR)
        self._logger.info(
            "Teams connector deactivated after bot removal",
            mapping_id=mapping.id,
            conversation_id=conversation_id,
            removed_by=removed_by or "unknown",
        )
        return mapping

    async def reactivate_connector(
        self, mapping_id: str, caller: Caller | None
    ) -> ExternalChannelMappingDto:
        """Reactivate a deactivated connector, restoring its External channel."""
        if caller is None:
            raise UnauthorizedError()
        mapping = await self._get_connector(mapping_id)
        dto = await self._bridge.reactivate_mapping(mapping, caller)
        self._logger.info(
            "Teams connector reactivated", mapping_id=mapping_id, event_id=dto.event_id
        )
        return dto

    async def broadcast_announcement(
        self,
        event_id: str,
        title: str,
        message: str,
        sender_name: str | None = None,
        priority: str = "normal",
    ) -> list[DeliveryOutcome]:
        """Send an announcement to every active Teams connector of an event.

        Args:
            event_id: The event ID.
            title: Announcement title.
            message: Announcement body.
            sender_name: Announcer shown in Teams, "COBRA" when omitted.
            priority: "normal" or "urgent".

        Returns:
            One outcome per connector.

        Raises:
            ValidationError: If the title or message is blank, or the
                priority is unknown.
            NotFoundError: If the event does not exist.
        """
        if not title.strip() or not message.strip():
            raise ValidationError("title and message are required")
        if priority not in ANNOUNCEMENT_PRIORITIES:
            raise ValidationError(f"Unknown priority: {priority}")
        if await self._events.get_by_id(event_id) is None:
            raise NotFoundError("Event", event_id)
        return await self._bridge.broadcast_announcement(
            event_id,
            title.strip(),
            message.strip(),
            sender_name or DEFAULT_ANNOUNCER,
            priority=priority,
        )

    async def _deactivate_all(
        self, mappings: list[ExternalChannelMapping], author: str
    ) -> list[str]:
        for mapping in mappings:
            await self._bridge.disconnect_mapping(mapping, author)
        return [m.id for m in mappings]

    async def cleanup_stale_connectors(
        self, inactive_days: int = DEFAULT_STALE_DAYS
    ) -> list[str]:
        """Deactivate connectors with no activity for inactive_days.

        Returns:
            IDs of the deactivated connectors.
        """
        if inactive_days < 0:
            raise ValidationError("inactive_days must not be negative")
        cutoff = datetime.now(timezone.utc) - timedelta(days=inactive_days)
        stale = await self._mappings.list_by_platform(
            ExternalPlatform.TEAMS, is_active=True, inactive_since=cutoff
        )
        ids = await self._deactivate_all(stale, STALE_CLEANUP_AUTHOR)
        self._logger.info(
            "Stale Teams connectors cleaned up", count=len(ids), days=inactive_days
        )
        return ids

    async def cleanup_emulator_connectors(self) -> list[str]:
        """Deactivate every active emulator connector.

        Returns:
            IDs of the deactivated connectors.
        """
        emulators = await self._mappings.list_by_platform(
            ExternalPlatform.TEAMS, is_active=True, is_emulator=True
        )
        ids = await self._deactivate_all(emulators, EMULATOR_CLEANUP_AUTHOR)
        self._logger.info("Emulator Teams connectors cleaned up", count=len(ids))
        return ids
