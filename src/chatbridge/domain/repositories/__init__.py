"""Repository protocols."""

from chatbridge.domain.repositories.channel_repository import ChannelRepository
from chatbridge.domain.repositories.chat_message_repository import (
    ChatMessageRepository,
)
from chatbridge.domain.repositories.event_repository import (
    EventRepository,
    PositionRepository,
)
from chatbridge.domain.repositories.external_channel_mapping_repository import (
    ExternalChannelMappingRepository,
)

__all__ = [
    "ChannelRepository",
    "ChatMessageRepository",
    "EventRepository",
    "ExternalChannelMappingRepository",
    "PositionRepository",
]
