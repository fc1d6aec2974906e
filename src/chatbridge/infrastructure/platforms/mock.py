"""In-memory platform adapter for development and tests."""

from collections import deque
from dataclasses import dataclass

from structlog.stdlib import BoundLogger

from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.infrastructure.platforms.base import (
    Connector,
    ExternalGroup,
    PlatformResponse,
)


@dataclass
class SentMessage:
    """A message recorded by the in-memory adapter."""

    mapping_id: str
    group_id: str
    text: str
    sender_name: str | None = None


class InMemoryPlatformAdapter:
    """Platform adapter that records calls instead of making them.

    Statuses queued with queue_statuses() are returned by successive
    post_message() calls before falling back to 202.
    """

    def __init__(
        self, platform: ExternalPlatform, logger: BoundLogger | None = None
    ) -> None:
        self.platform = platform
        self._logger = logger
        self._counter = 0
        self._statuses: deque[int] = deque()
        self.groups: dict[str, ExternalGroup] = {}
        self.connectors: dict[str, Connector] = {}
        self.sent: list[SentMessage] = []
        self.destroyed_connectors: list[str] = []
        self.archived_groups: list[str] = []

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self.platform.value}-{self._counter}"

    def queue_statuses(self, *statuses: int) -> None:
        self._statuses.extend(statuses)

    async def create_group(self, name: str, description: str | None = None) -> ExternalGroup:
        group_id = self._next_id("group")
        group = ExternalGroup(
            group_id=group_id,
            name=name,
            share_url=f"https://example.invalid/join/{group_id}",
        )
        self.groups[group_id] = group
        if self._logger is not None:
            self._logger.info("Mock group created", group_id=group_id, group_name=name)
        return group

    async def register_connector(self, group_id: str, callback_url: str) -> Connector:
        connector = Connector(bot_id=self._next_id("bot"), callback_url=callback_url)
        self.connectors[connector.bot_id] = connector
        return connector

    async def post_message(
        self,
        mapping: ExternalChannelMapping,
        text: str,
        sender_name: str | None = None,
    ) -> PlatformResponse:
        status = self._statuses.popleft() if self._statuses else 202
        if 200 <= status < 300:
            self.sent.append(
                SentMessage(
                    mapping_id=mapping.id,
                    group_id=mapping.external_group_id,
                    text=text,
                    sender_name=sender_name,
                )
            )
        return PlatformResponse(status=status)

    async def destroy_connector(self, mapping: ExternalChannelMapping) -> None:
        self.connectors.pop(mapping.bot_id, None)
        self.destroyed_connectors.append(mapping.bot_id)

    async def archive_group(self, mapping: ExternalChannelMapping) -> None:
        self.groups.pop(mapping.external_group_id, None)
        self.archived_groups.append(mapping.external_group_id)
