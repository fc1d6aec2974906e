"""Transfer objects returned by services and pushed to realtime viewers."""

from datetime import datetime

from pydantic import BaseModel, Field

from chatbridge.domain.entities.channel import Channel, ChannelState, ChannelType
from chatbridge.domain.entities.chat_message import ChatMessage
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)


class ExternalChannelMappingDto(BaseModel):
    """Public view of an external channel mapping (secrets excluded)."""

    id: str
    event_id: str | None
    platform: ExternalPlatform
    external_group_id: str
    external_group_name: str
    share_url: str | None = None
    is_active: bool
    is_emulator: bool = False
    last_activity_at: datetime | None = None
    installed_by_name: str | None = None
    has_conversation_reference: bool = False
    created_at: datetime

    @classmethod
    def from_entity(cls, mapping: ExternalChannelMapping) -> "ExternalChannelMappingDto":
        return cls(
            id=mapping.id,
            event_id=mapping.event_id,
            platform=mapping.platform,
            external_group_id=mapping.external_group_id,
            external_group_name=mapping.external_group_name,
            share_url=mapping.share_url,
            is_active=mapping.is_active,
            is_emulator=mapping.is_emulator,
            last_activity_at=mapping.last_activity_at,
            installed_by_name=mapping.installed_by_name,
            has_conversation_reference=bool(mapping.conversation_reference_json),
            created_at=mapping.created_at,
        )


class ChannelDto(BaseModel):
    """Channel with its message summary."""

    id: str
    event_id: str
    name: str
    description: str | None = None
    channel_type: ChannelType
    display_order: int
    state: ChannelState
    is_active: bool
    is_default_event_thread: bool
    position_id: str | None = None
    external_channel_mapping_id: str | None = None
    icon_name: str | None = None
    color: str | None = None
    created_by: str
    created_at: datetime
    message_count: int = 0
    last_message_at: datetime | None = None
    last_message_sender: str | None = None
    external_channel: ExternalChannelMappingDto | None = None

    @classmethod
    def from_entity(
        cls,
        channel: Channel,
        summary: "ChannelSummary | None" = None,
        mapping: ExternalChannelMapping | None = None,
    ) -> "ChannelDto":
        summary = summary or ChannelSummary()
        return cls(
            id=channel.id,
            event_id=channel.event_id,
            name=channel.name,
            description=channel.description,
            channel_type=channel.channel_type,
            display_order=channel.display_order,
            state=channel.state,
            is_active=channel.is_active,
            is_default_event_thread=channel.is_default_event_thread,
            position_id=channel.position_id,
            external_channel_mapping_id=channel.external_channel_mapping_id,
            icon_name=channel.icon_name,
            color=channel.color,
            created_by=channel.created_by,
            created_at=channel.created_at,
            message_count=summary.message_count,
            last_message_at=summary.last_message_at,
            last_message_sender=summary.last_message_sender,
            external_channel=(
                ExternalChannelMappingDto.from_entity(mapping) if mapping else None
            ),
        )


class ChannelSummary(BaseModel):
    """Aggregate message statistics for one channel."""

    message_count: int = 0
    last_message_at: datetime | None = None
    last_message_sender: str | None = None


class ChatMessageDto(BaseModel):
    """Chat message as shown to viewers."""

    id: str
    channel_id: str
    message: str
    sender_display_name: str
    created_by: str
    created_at: datetime
    is_external_message: bool = False
    external_source: ExternalPlatform | None = None
    external_attachment_url: str | None = None

    @classmethod
    def from_entity(cls, message: ChatMessage) -> "ChatMessageDto":
        return cls(
            id=message.id,
            channel_id=message.channel_id,
            message=message.message,
            sender_display_name=message.sender_display_name,
            created_by=message.created_by,
            created_at=message.created_at,
            is_external_message=message.is_external_message,
            external_source=message.external_source,
            external_attachment_url=message.external_attachment_url,
        )


class CreateChannelRequest(BaseModel):
    """Request to create a channel in an event."""

    event_id: str
    name: str | None = None
    description: str | None = None
    channel_type: ChannelType = ChannelType.CUSTOM
    position_id: str | None = None
    external_channel_mapping_id: str | None = None
    icon_name: str | None = None
    color: str | None = None


class UpdateChannelRequest(BaseModel):
    """Partial update of a channel; unset fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    icon_name: str | None = None
    color: str | None = None


class DeliveryOutcome(BaseModel):
    """Result of relaying one message to one external mapping."""

    mapping_id: str
    platform: ExternalPlatform
    delivered: bool
    attempts: int = Field(default=0)
    error: str | None = None
