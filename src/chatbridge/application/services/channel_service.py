"""Channel lifecycle management."""

from datetime import datetime, timedelta, timezone

from structlog.stdlib import BoundLogger

from chatbridge.domain.entities.caller import Caller
from chatbridge.domain.entities.channel import (
    DELETED_NAME_PREFIX,
    Channel,
    ChannelState,
    ChannelType,
)
from chatbridge.domain.entities.transfer import (
    ChannelDto,
    CreateChannelRequest,
    UpdateChannelRequest,
)
from chatbridge.domain.errors import NotFoundError, UnauthorizedError, ValidationError
from chatbridge.domain.repositories import (
    ChannelRepository,
    ChatMessageRepository,
    ExternalChannelMappingRepository,
    PositionRepository,
)
from chatbridge.infrastructure.realtime import RealtimeBroadcaster

DEFAULT_CHANNEL_NAME = "Event Chat"
DEFAULT_CHANNEL_DESCRIPTION = "General event discussion for all participants"
ANNOUNCEMENTS_NAME = "Announcements"
ANNOUNCEMENTS_DESCRIPTION = "Important announcements from event leadership"


class ChannelService:
    """Creates, lists, orders and retires the channels of an event.

    Refusals (archiving a protected channel, restoring an active one) are
    returned as False or None. A channel ID that does not exist raises
    NotFoundError.
    """

    def __init__(
        self,
        channels: ChannelRepository,
        messages: ChatMessageRepository,
        mappings: ExternalChannelMappingRepository,
        positions: PositionRepository,
        broadcaster: RealtimeBroadcaster,
        logger: BoundLogger,
    ) -> None:
        self._channels = channels
        self._messages = messages
        self._mappings = mappings
        self._positions = positions
        self._broadcaster = broadcaster
        self._logger = logger

    async def _densify(self, event_id: str) -> list[Channel]:
        """Renumber the event's active channels 0..n-1 keeping their order."""
        active = await self._channels.list_by_state(event_id, ChannelState.ACTIVE)
        return await self._apply_order(active)

    async def _apply_order(self, ordered: list[Channel]) -> list[Channel]:
        changes = {}
        for index, channel in enumerate(ordered):
            if channel.display_order != index:
                changes[channel.id] = index
                channel.display_order = index
        if changes:
            await self._channels.set_display_orders(changes)
        return ordered

    async def _to_dtos(self, channels: list[Channel]) -> list[ChannelDto]:
        summaries = await self._messages.summarize_channels([c.id for c in channels])
        dtos = []
        for channel in channels:
            mapping = None
            if channel.external_channel_mapping_id:
                mapping = await self._mappings.get_by_id(
                    channel.external_channel_mapping_id
                )
            dtos.append(
                ChannelDto.from_entity(channel, summaries.get(channel.id), mapping)
            )
        return dtos

    async def _get_existing(self, channel_id: str) -> Channel:
        channel = await self._channels.get_by_id(channel_id)
        if channel is None:
            raise NotFoundError("Channel", channel_id)
        return channel

    async def list_active_channels(self, event_id: str) -> list[ChannelDto]:
        """List an event's active channels with their message summaries.

        Args:
            event_id: The event ID.

        Returns:
            Channels ordered by display_order.
        """
        return await self._to_dtos(await self._densify(event_id))

    async def list_visible_channels(
        self, event_id: str, viewer: Caller
    ) -> list[ChannelDto]:
        """List the active channels a viewer may see.

        A Position channel is visible to holders of its position and to its
        creator; every other channel is visible to all viewers.

        Args:
            event_id: The event ID.
            viewer: The viewing user.

        Returns:
            Visible channels ordered by display_order.
        """
        channels = await self._densify(event_id)
        visible = [
            channel
            for channel in channels
            if channel.channel_type != ChannelType.POSITION
            or viewer.holds_position(channel.position_id)
            or channel.created_by.lower() == viewer.email.lower()
        ]
        return await self._to_dtos(visible)

    async def list_archived_channels(self, event_id: str) -> list[ChannelDto]:
        """List archived channels; purged channels are never included."""
        archived = await self._channels.list_by_state(event_id, ChannelState.ARCHIVED)
        return await self._to_dtos(archived)

    async def list_all_channels(
        self, event_id: str, include_archived: bool = False
    ) -> list[ChannelDto]:
        channels = await self._densify(event_id)
        if include_archived:
            channels = channels + await self._channels.list_by_state(
                event_id, ChannelState.ARCHIVED
            )
        return await self._to_dtos(channels)

    async def get_channel(self, channel_id: str) -> ChannelDto | None:
        """Get an active channel, or None if it is missing or not active."""
        channel = await self._channels.get_by_id(channel_id)
        if channel is None or not channel.is_active:
            return None
        return (await self._to_dtos([channel]))[0]

    async def _validate_links(self, request: CreateChannelRequest) -> None:
        if request.channel_type == ChannelType.POSITION:
            if not request.position_id:
                raise ValidationError("Position channels require a position_id")
        elif request.position_id:
            raise ValidationError("Only Position channels may have a position_id")

        if request.channel_type == ChannelType.EXTERNAL:
            if not request.external_channel_mapping_id:
                raise ValidationError(
                    "External channels require an external_channel_mapping_id"
                )
            mapping = await self._mappings.get_by_id(request.external_channel_mapping_id)
            if mapping is None:
                raise NotFoundError(
                    "ExternalChannelMapping", request.external_channel_mapping_id
                )
        elif request.external_channel_mapping_id:
            raise ValidationError(
                "Only External channels may have an external_channel_mapping_id"
            )

    async def create_channel(
        self, request: CreateChannelRequest, caller: Caller | None
    ) -> ChannelDto:
        """Create a channel at the end of the event's ordering.

        Args:
            request: Channel attributes.
            caller: The creating user.

        Returns:
            The created channel.

        Raises:
            UnauthorizedError: If no caller is given.
            ValidationError: If the name is blank or type and links disagree.
            NotFoundError: If the referenced mapping does not exist.
        """
        if caller is None:
            raise UnauthorizedError()
        name = (request.name or "").strip()
        if not name:
            raise ValidationError("Channel name is required")
        await self._validate_links(request)

        active = await self._densify(request.event_id)
        channel = Channel(
            event_id=request.event_id,
            name=name,
            description=request.description,
            channel_type=request.channel_type,
            display_order=len(active),
            position_id=request.position_id,
            external_channel_mapping_id=request.external_channel_mapping_id,
            icon_name=request.icon_name,
            color=request.color,
            created_by=caller.email,
        )
        await self._channels.add(channel)

        self._logger.info(
            "Channel created",
            channel_id=channel.id,
            event_id=channel.event_id,
            channel_type=channel.channel_type.value,
            created_by=caller.email,
        )
        dto = ChannelDto.from_entity(channel)
        await self._broadcaster.channel_created(channel.event_id, dto)
        return dto

    async def create_default_channels(self, event_id: str, created_by: str) -> None:
        """Create the event's "Event Chat" and "Announcements" channels.

        Existing default channels are kept, so repeated calls create nothing.
        The two channels are moved to positions 0 and 1.

        Args:
            event_id: The event ID.
            created_by: Email recorded as creator.
        """
        default = await self._channels.get_default_channel(event_id)
        announcements = [
            c
            for c in await self._channels.list_by_type(
                event_id, ChannelType.ANNOUNCEMENTS
            )
            if c.state != ChannelState.PURGED
        ]
        created: list[Channel] = []

        if default is None:
            default = Channel(
                event_id=event_id,
                name=DEFAULT_CHANNEL_NAME,
                description=DEFAULT_CHANNEL_DESCRIPTION,
                channel_type=ChannelType.INTERNAL,
                display_order=0,
                is_default_event_thread=True,
                icon_name="comments",
                created_by=created_by,
            )
            await self._channels.add(default)
            created.append(default)

        if not announcements:
            announcement = Channel(
                event_id=event_id,
                name=ANNOUNCEMENTS_NAME,
                description=ANNOUNCEMENTS_DESCRIPTION,
                channel_type=ChannelType.ANNOUNCEMENTS,
                display_order=1,
                icon_name="bullhorn",
                created_by=created_by,
            )
            await self._channels.add(announcement)
            created.append(announcement)
            announcements = [announcement]

        if not created:
            return

        leading = [default, announcements[0]]
        leading_ids = {c.id for c in leading}
        active = await self._channels.list_by_state(event_id, ChannelState.ACTIVE)
        await self._apply_order(
            [c for c in leading if c.is_active]
            + [c for c in active if c.id not in leading_ids]
        )

        self._logger.info(
            "Default channels created",
            event_id=event_id,
            created=[c.name for c in created],
        )
        for channel in created:
            await self._broadcaster.channel_created(
                event_id, ChannelDto.from_entity(channel)
            )

    async def create_position_channels(
        self, event_id: str, created_by: str
    ) -> list[ChannelDto]:
        """Create one Position channel for every active position lacking one.

        New channels follow the existing ones, in position order, and take
        the position's name, icon and color.

        Args:
            event_id: The event ID.
            created_by: Email recorded as creator.

        Returns:
            The channels created by this call.
        """
        existing = {
            c.position_id
            for c in await self._channels.list_by_type(event_id, ChannelType.POSITION)
            if c.state != ChannelState.PURGED
        }
        positions = [
            p for p in await self._positions.list_active() if p.id not in existing
        ]
        if not positions:
            return []

        next_order = len(await self._densify(event_id))
        created = []
        for position in positions:
            channel = Channel(
                event_id=event_id,
                name=position.name,
                description=f"Channel for {position.name}",
                channel_type=ChannelType.POSITION,
                display_order=next_order,
                position_id=position.id,
                icon_name=position.icon_name,
                color=position.color,
                created_by=created_by,
            )
            await self._channels.add(channel)
            created.append(channel)
            next_order += 1

        self._logger.info(
            "Position channels created", event_id=event_id, count=len(created)
        )
        dtos = [ChannelDto.from_entity(c) for c in created]
        for dto in dtos:
            await self._broadcaster.channel_created(event_id, dto)
        return dtos

    async def update_channel(
        self, channel_id: str, patch: UpdateChannelRequest
    ) -> ChannelDto:
        """Apply the fields set in patch to an active channel.

        Raises:
            NotFoundError: If the channel is missing or not active.
            ValidationError: If the new name is blank.
        """
        channel = await self._channels.get_by_id(channel_id)
        if channel is None or not channel.is_active:
            raise NotFoundError("Channel", channel_id)

        fields = patch.model_dump(exclude_unset=True)
        if "name" in fields:
            name = (fields["name"] or "").strip()
            if not name:
                raise ValidationError("Channel name cannot be blank")
            fields["name"] = name
        for key, value in fields.items():
            setattr(channel, key, value)

        await self._channels.save(channel)
        self._logger.info(
            "Channel updated", channel_id=channel_id, fields=sorted(fields)
        )
        return (await self._to_dtos([channel]))[0]

    async def reorder_channels(self, event_id: str, ordered_ids: list[str]) -> None:
        """Renumber active channels to follow the given order.

        IDs that are unknown, repeated or not active in the event are
        ignored. Active channels left out keep their relative order after
        the named ones.

        Args:
            event_id: The event ID.
            ordered_ids: Channel IDs in the desired order.
        """
        active = await self._channels.list_by_state(event_id, ChannelState.ACTIVE)
        by_id = {c.id: c for c in active}
        named: list[Channel] = []
        for channel_id in ordered_ids:
            channel = by_id.pop(channel_id, None)
            if channel is not None:
                named.append(channel)
        rest = [c for c in active if c.id in by_id]
        await self._apply_order(named + rest)
        self._logger.info("Channels reordered", event_id=event_id, count=len(named))

    async def archive_channel(self, channel_id: str) -> bool:
        """Archive a channel.

        Returns:
            False for the default channel, Announcements channels, External
            channels and channels that are not active; True otherwise.

        Raises:
            NotFoundError: If the channel does not exist.
        """
        channel = await self._get_existing(channel_id)
        if (
            channel.is_protected
            or channel.channel_type == ChannelType.EXTERNAL
            or not channel.is_active
        ):
            self._logger.info(
                "Archive refused",
                channel_id=channel_id,
                channel_type=channel.channel_type.value,
                state=channel.state.value,
            )
            return False

        await self._archive(channel)
        return True

    async def _archive(self, channel: Channel) -> None:
        channel.state = ChannelState.ARCHIVED
        await self._channels.save(channel)
        await self._densify(channel.event_id)
        self._logger.info(
            "Channel archived", channel_id=channel.id, event_id=channel.event_id
        )
        await self._broadcaster.channel_archived(channel.event_id, channel.id)

    async def archive_external_channel(self, mapping_id: str) -> bool:
        """Archive the active External channel backed by a mapping.

        Used when the mapping is disconnected; the regular archive path
        refuses External channels.

        Returns:
            True if a channel was archived.
        """
        channel = await self._channels.get_by_mapping(mapping_id)
        if channel is None or not channel.is_active:
            return False
        await self._archive(channel)
        return True

    async def _mapping_is_live(self, channel: Channel) -> bool:
        if channel.external_channel_mapping_id is None:
            return False
        mapping = await self._mappings.get_by_id(channel.external_channel_mapping_id)
        return (
            mapping is not None
            and mapping.is_active
            and mapping.event_id == channel.event_id
        )

    async def restore_channel(self, channel_id: str) -> ChannelDto | None:
        """Restore an archived channel at the end of the ordering.

        Returns:
            The restored channel, or None if it was not archived, or if it
            is an External channel whose mapping is no longer active for the
            channel's event.

        Raises:
            NotFoundError: If the channel does not exist.
        """
        channel = await self._get_existing(channel_id)
        if channel.state != ChannelState.ARCHIVED:
            return None
        if (
            channel.channel_type == ChannelType.EXTERNAL
            and not await self._mapping_is_live(channel)
        ):
            self._logger.info(
                "Restore refused for disconnected External channel",
                channel_id=channel_id,
                mapping_id=channel.external_channel_mapping_id,
            )
            return None

        active = await self._densify(channel.event_id)
        channel.state = ChannelState.ACTIVE
        channel.display_order = len(active)
        await self._channels.save(channel)

        self._logger.info(
            "Channel restored",
            channel_id=channel_id,
            display_order=channel.display_order,
        )
        dto = (await self._to_dtos([channel]))[0]
        await self._broadcaster.channel_restored(channel.event_id, dto)
        return dto

    async def permanently_delete_channel(
        self, channel_id: str, caller: Caller | None
    ) -> bool:
        """Purge an archived channel.

        The row is kept for its messages: the state becomes PURGED, the name
        gains a "[DELETED]" prefix and an audit line is appended to the
        description.

        Returns:
            False if the channel is not archived, is protected or is an
            External channel; True otherwise.

        Raises:
            UnauthorizedError: If no caller is given.
            NotFoundError: If the channel does not exist.
        """
        if caller is None:
            raise UnauthorizedError()
        channel = await self._get_existing(channel_id)
        if (
            channel.state != ChannelState.ARCHIVED
            or channel.is_protected
            or channel.channel_type == ChannelType.EXTERNAL
        ):
            self._logger.info(
                "Permanent delete refused",
                channel_id=channel_id,
                state=channel.state.value,
            )
            return False

        now = datetime.now(timezone.utc)
        audit = f"[Permanently deleted by {caller.email} at {now.isoformat()}]"
        channel.state = ChannelState.PURGED
        channel.name = f"{DELETED_NAME_PREFIX} {channel.name}"
        channel.description = (
            f"{channel.description}\n{audit}" if channel.description else audit
        )
        await self._channels.save(channel)

        self._logger.info(
            "Channel permanently deleted", channel_id=channel_id, deleted_by=caller.email
        )
        await self._broadcaster.channel_deleted(channel.event_id, channel.id)
        return True

    async def archive_all_messages(self, channel_id: str) -> int:
        """Archive every active message of a channel; returns the count."""
        count = await self._messages.archive_all(channel_id)
        self._logger.info("Messages archived", channel_id=channel_id, count=count)
        return count

    async def archive_messages_older_than(self, channel_id: str, days: int) -> int:
        """Archive messages older than the given number of days.

        Raises:
            ValidationError: If days is negative.
        """
        if days < 0:
            raise ValidationError("days must not be negative")
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        count = await self._messages.archive_older_than(channel_id, cutoff)
        self._logger.info(
            "Old messages archived", channel_id=channel_id, days=days, count=count
        )
        return count
