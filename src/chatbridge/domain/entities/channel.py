"""Channel entity for event-scoped chat streams."""

from datetime import datetime, timezone
from enum import Enum

import ulid
from sqlalchemy import Index
from sqlmodel import Field, SQLModel

DELETED_NAME_PREFIX = "[DELETED]"


class ChannelType(str, Enum):
    """Kind of channel within an event."""

    INTERNAL = "internal"
    ANNOUNCEMENTS = "announcements"
    EXTERNAL = "external"
    POSITION = "position"
    CUSTOM = "custom"


class ChannelState(str, Enum):
    """Lifecycle state of a channel.

    ACTIVE channels are listed and writable. ARCHIVED channels are hidden but
    restorable. PURGED channels are kept only so historical messages keep
    their parent row; they are never listed or restored.
    """

    ACTIVE = "active"
    ARCHIVED = "archived"
    PURGED = "purged"


class Channel(SQLModel, table=True):
    """Channel entity.

    Attributes:
        id: ULID of the channel.
        event_id: Owning event.
        name: Display name.
        description: Optional free text; purge audit lines are appended here.
        channel_type: Kind of channel.
        display_order: Dense per-event ordering among active channels.
        state: Lifecycle state.
        is_default_event_thread: True for the single protected Internal channel.
        position_id: Restricting position, only for POSITION channels.
        external_channel_mapping_id: Linked mapping, only for EXTERNAL channels.
        icon_name: Presentation hint.
        color: Presentation hint.
        created_by: Email of the creator.
        created_at: Creation time.
    """

    __tablename__ = "channels"
    __table_args__ = (
        Index("idx_channel_event_state_order", "event_id", "state", "display_order"),
    )

    id: str = Field(default_factory=lambda: str(ulid.new()), primary_key=True)
    event_id: str = Field(index=True)
    name: str
    description: str | None = None
    channel_type: ChannelType = Field(default=ChannelType.CUSTOM)
    display_order: int = Field(default=0)
    state: ChannelState = Field(default=ChannelState.ACTIVE)
    is_default_event_thread: bool = Field(default=False)
    position_id: str | None = Field(default=None, index=True)
    external_channel_mapping_id: str | None = Field(default=None, index=True)
    icon_name: str | None = None
    color: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        """Return True if the channel is in the ACTIVE state."""
        return self.state == ChannelState.ACTIVE

    @property
    def is_protected(self) -> bool:
        """Return True if the channel can never be archived or purged."""
        return (
            self.is_default_event_thread
            or self.channel_type == ChannelType.ANNOUNCEMENTS
        )
