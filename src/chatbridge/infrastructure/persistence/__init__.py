"""Persistence infrastructure."""

from chatbridge.infrastructure.persistence.channel_repository import (
    SqliteChannelRepository,
)
from chatbridge.infrastructure.persistence.chat_message_repository import (
    SqliteChatMessageRepository,
)
from chatbridge.infrastructure.persistence.database import Database
from chatbridge.infrastructure.persistence.event_repository import (
    SqliteEventRepository,
    SqlitePositionRepository,
)
from chatbridge.infrastructure.persistence.external_channel_mapping_repository import (
    SqliteExternalChannelMappingRepository,
)

__all__ = [
    "Database",
    "SqliteChannelRepository",
    "SqliteChatMessageRepository",
    "SqliteEventRepository",
    "SqliteExternalChannelMappingRepository",
    "SqlitePositionRepository",
]
