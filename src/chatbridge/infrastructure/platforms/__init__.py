"""External platform adapters."""

from chatbridge.infrastructure.platforms.base import (
    Connector,
    ExternalGroup,
    PlatformAdapter,
    PlatformResponse,
)
from chatbridge.infrastructure.platforms.groupme import GroupMeAdapter
from chatbridge.infrastructure.platforms.mock import InMemoryPlatformAdapter, SentMessage
from chatbridge.infrastructure.platforms.registry import (
    PlatformRegistry,
    create_platform_registry,
)
from chatbridge.infrastructure.platforms.teams import TeamsAdapter

__all__ = [
    "Connector",
    "ExternalGroup",
    "GroupMeAdapter",
    "InMemoryPlatformAdapter",
    "PlatformAdapter",
    "PlatformRegistry",
    "PlatformResponse",
    "SentMessage",
    "TeamsAdapter",
    "create_platform_registry",
]
