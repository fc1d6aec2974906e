"""Tests for ExternalBridgeService.

Test cases:
- TC-11-001: External channel creation
- TC-11-002: Reactivation and reuse
- TC-11-003: Deactivation
- TC-11-004: Inbound ingestion
- TC-11-005: Inbound drop rules
- TC-11-006: Inbound deduplication
- TC-11-007: Outbound fan-out
"""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from chatbridge.application.services.channel_service import ChannelService
from chatbridge.application.services.external_bridge_service import (
    ExternalBridgeService,
)
from chatbridge.config.models import BridgeConfig
from chatbridge.domain.entities.caller import Caller
from chatbridge.domain.entities.channel import ChannelState, ChannelType
from chatbridge.domain.entities.event import Event
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.domain.entities.inbound_delivery import InboundMessage
from chatbridge.domain.errors import (
    ExternalPlatformError,
    NotFoundError,
    UnauthorizedError,
    UnsupportedPlatformError,
)
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
from chatbridge.infrastructure.platforms.base import ExternalGroup
from chatbridge.infrastructure.platforms.mock import InMemoryPlatformAdapter
from chatbridge.infrastructure.platforms.registry import PlatformRegistry
from chatbridge.infrastructure.realtime import (
    EXTERNAL_CONNECTED,
    EXTERNAL_DISCONNECTED,
    MESSAGE_RECEIVED,
    RealtimeBroadcaster,
)
from chatbridge.infrastructure.retry import (
    PlatformHTTPError,
    RetryOptions,
    RetryPolicy,
    TransientHTTPError,
)

EVENT_ID = "evt-1"
BASE_URL = "https://bridge.example.com"


async def no_sleep(delay: float) -> None:
    return None


class FailingGroupMeAdapter(InMemoryPlatformAdapter):
    """In-memory adapter whose management calls keep failing."""

    def __init__(self, error: Exception) -> None:
        super().__init__(ExternalPlatform.GROUPME)
        self.error = error
        self.create_calls = 0

    async def create_group(
        self, name: str, description: str | None = None
    ) -> ExternalGroup:
        self.create_calls += 1
        raise self.error

    async def archive_group(self, mapping: ExternalChannelMapping) -> None:
        raise self.error


@pytest.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def channels(database: Database) -> SqliteChannelRepository:
    return SqliteChannelRepository(database)


@pytest.fixture
def messages(database: Database) -> SqliteChatMessageRepository:
    return SqliteChatMessageRepository(database)


@pytest.fixture
def mappings(database: Database) -> SqliteExternalChannelMappingRepository:
    return SqliteExternalChannelMappingRepository(database)


@pytest.fixture
async def events(database: Database) -> SqliteEventRepository:
    repository = SqliteEventRepository(database)
    await repository.save(Event(id=EVENT_ID, name="Flood Response"))
    return repository


@pytest.fixture
def broadcaster() -> RealtimeBroadcaster:
    return RealtimeBroadcaster(logger=MagicMock())


@pytest.fixture
def groupme() -> InMemoryPlatformAdapter:
    return InMemoryPlatformAdapter(ExternalPlatform.GROUPME)


@pytest.fixture
def teams() -> InMemoryPlatformAdapter:
    return InMemoryPlatformAdapter(ExternalPlatform.TEAMS)


@pytest.fixture
def platforms(
    groupme: InMemoryPlatformAdapter, teams: InMemoryPlatformAdapter
) -> PlatformRegistry:
    registry = PlatformRegistry()
    registry.register(ExternalPlatform.GROUPME, groupme)
    registry.register(ExternalPlatform.TEAMS, teams)
    return registry


@pytest.fixture
def channel_service(
    database: Database,
    channels: SqliteChannelRepository,
    messages: SqliteChatMessageRepository,
    mappings: SqliteExternalChannelMappingRepository,
    broadcaster: RealtimeBroadcaster,
) -> ChannelService:
    return ChannelService(
        channels=channels,
        messages=messages,
        mappings=mappings,
        positions=SqlitePositionRepository(database),
        broadcaster=broadcaster,
        logger=MagicMock(),
    )


@pytest.fixture
def service(
    channels: SqliteChannelRepository,
    messages: SqliteChatMessageRepository,
    mappings: SqliteExternalChannelMappingRepository,
    events: SqliteEventRepository,
    channel_service: ChannelService,
    platforms: PlatformRegistry,
    broadcaster: RealtimeBroadcaster,
) -> ExternalBridgeService:
    return ExternalBridgeService(
        mappings=mappings,
        channels=channels,
        messages=messages,
        events=events,
        channel_service=channel_service,
        platforms=platforms,
        retry_policy=RetryPolicy(
            logger=MagicMock(),
            options=RetryOptions(max_retries=2, initial_delay=0, add_jitter=False),
            sleep=no_sleep,
        ),
        broadcaster=broadcaster,
        config=BridgeConfig(),
        webhook_base_url=BASE_URL + "/",
        logger=MagicMock(),
    )


@pytest.fixture
def caller() -> Caller:
    return Caller(email="lead@example.com", full_name="Casey Lead")


def inbound(
    group_id: str,
    message_id: str = "m-1",
    text: str | None = "Road closed",
    sender_type: str = "user",
    sender_id: str | None = "u-1",
) -> InboundMessage:
    return InboundMessage(
        external_group_id=group_id,
        external_message_id=message_id,
        sender_name="Jordan",
        sender_id=sender_id,
        sender_type=sender_type,
        text=text,
    )


class TestCreateExternalChannel:
    """TC-11-001: External channel creation."""

    async def test_creates_group_connector_and_channel(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        channels: SqliteChannelRepository,
        caller: Caller,
        broadcaster: RealtimeBroadcaster,
    ) -> None:
        """A new mapping gets a group, a bot and a backing External channel."""
        subscription = broadcaster.subscribe(EVENT_ID)

        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )

        assert dto.is_active
        assert dto.event_id == EVENT_ID
        group = groupme.groups[dto.external_group_id]
        assert group.name == "COBRA: Flood Response"
        assert dto.share_url == group.share_url
        (connector,) = groupme.connectors.values()
        assert connector.callback_url == f"{BASE_URL}/webhooks/groupme/{dto.id}"

        channel = await channels.get_by_mapping(dto.id)
        assert channel is not None
        assert channel.channel_type == ChannelType.EXTERNAL
        assert channel.event_id == EVENT_ID
        assert channel.is_active

        types = [subscription.queue.get_nowait()["type"] for _ in range(2)]
        assert EXTERNAL_CONNECTED in types

    async def test_custom_name(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """A custom group name overrides the template."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller, custom_name="Field Team"
        )

        assert dto.external_group_name == "Field Team"

    async def test_active_mapping_returned(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """A second request returns the existing mapping without a new group."""
        first = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        second = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )

        assert second.id == first.id
        assert len(groupme.groups) == 1

    async def test_unknown_event(
        self, service: ExternalBridgeService, caller: Caller
    ) -> None:
        """Connecting a missing event raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await service.create_external_channel(
                "missing", ExternalPlatform.GROUPME, caller
            )

    async def test_requires_caller(self, service: ExternalBridgeService) -> None:
        """Connecting without an identity is unauthorized."""
        with pytest.raises(UnauthorizedError):
            await service.create_external_channel(
                EVENT_ID, ExternalPlatform.GROUPME, None
            )

    async def test_unsupported_platform(
        self, service: ExternalBridgeService, caller: Caller
    ) -> None:
        """A platform without an adapter is rejected."""
        with pytest.raises(UnsupportedPlatformError):
            await service.create_external_channel(
                EVENT_ID, ExternalPlatform.SIGNAL, caller
            )

    async def test_transient_failures_become_platform_error(
        self,
        service: ExternalBridgeService,
        platforms: PlatformRegistry,
        mappings: SqliteExternalChannelMappingRepository,
        caller: Caller,
    ) -> None:
        """Retries are spent before an ExternalPlatformError is raised."""
        failing = FailingGroupMeAdapter(TransientHTTPError(503))
        platforms.register(ExternalPlatform.GROUPME, failing)

        with pytest.raises(ExternalPlatformError):
            await service.create_external_channel(
                EVENT_ID, ExternalPlatform.GROUPME, caller
            )

        assert failing.create_calls == 3
        assert await mappings.list_active_for_event(EVENT_ID) == []

    async def test_non_transient_failure_not_retried(
        self,
        service: ExternalBridgeService,
        platforms: PlatformRegistry,
        caller: Caller,
    ) -> None:
        """A 401 from the platform fails on the first attempt."""
        failing = FailingGroupMeAdapter(PlatformHTTPError(401))
        platforms.register(ExternalPlatform.GROUPME, failing)

        with pytest.raises(ExternalPlatformError):
            await service.create_external_channel(
                EVENT_ID, ExternalPlatform.GROUPME, caller
            )

        assert failing.create_calls == 1


class TestReactivation:
    """TC-11-002: Reactivation and reuse."""

    async def test_inactive_mapping_reactivated(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        channels: SqliteChannelRepository,
        caller: Caller,
    ) -> None:
        """Reconnecting reuses the mapping and restores its channel."""
        first = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        channel = await channels.get_by_mapping(first.id)
        await service.deactivate_channel(first.id, caller)

        second = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )

        assert second.id == first.id
        assert second.is_active
        assert len(groupme.groups) == 1
        restored = await channels.get_by_mapping(first.id)
        assert restored is not None
        assert channel is not None
        assert restored.id == channel.id
        assert restored.is_active

    async def test_existing_group_mapping_reused(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """A created group that is already mapped reuses that mapping."""
        existing = ExternalChannelMapping(
            platform=ExternalPlatform.GROUPME,
            external_group_id="group-groupme-1",
            external_group_name="Old",
            webhook_secret="s",
            is_active=False,
            created_by="old@example.com",
        )
        await mappings.add(existing)

        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )

        assert dto.id == existing.id
        assert dto.event_id == EVENT_ID
        assert groupme.connectors == {}

    async def test_reactivate_mapping_restores_channel(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
        channels: SqliteChannelRepository,
        caller: Caller,
        broadcaster: RealtimeBroadcaster,
    ) -> None:
        """Reactivating a linked mapping restores its channel and notifies viewers."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        await service.deactivate_channel(dto.id, caller)
        mapping = await mappings.get_by_id(dto.id)
        assert mapping is not None
        subscription = broadcaster.subscribe(EVENT_ID)

        reactivated = await service.reactivate_mapping(mapping, caller)

        assert reactivated.is_active
        channel = await channels.get_by_mapping(dto.id)
        assert channel is not None
        assert channel.state == ChannelState.ACTIVE
        types = []
        while not subscription.queue.empty():
            types.append(subscription.queue.get_nowait()["type"])
        assert EXTERNAL_CONNECTED in types


class TestDeactivation:
    """TC-11-003: Deactivation."""

    async def test_deactivate_archives_channel(
        self,
        service: ExternalBridgeService,
        channels: SqliteChannelRepository,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
        broadcaster: RealtimeBroadcaster,
    ) -> None:
        """The mapping goes inactive and its channel is archived."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        subscription = broadcaster.subscribe(EVENT_ID)

        await service.deactivate_channel(dto.id, caller)

        assert await service.list_channel_mappings(EVENT_ID) == []
        channel = await channels.get_by_mapping(dto.id)
        assert channel is not None
        assert channel.state == ChannelState.ARCHIVED
        assert groupme.archived_groups == []
        types = []
        while not subscription.queue.empty():
            types.append(subscription.queue.get_nowait()["type"])
        assert types[-1] == EXTERNAL_DISCONNECTED

    async def test_archive_external_group(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """The platform bot and group are removed on request."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )

        await service.deactivate_channel(dto.id, caller, archive_external_group=True)

        assert groupme.archived_groups == [dto.external_group_id]
        assert len(groupme.destroyed_connectors) == 1

    async def test_platform_failure_does_not_undo(
        self,
        service: ExternalBridgeService,
        platforms: PlatformRegistry,
        mappings: SqliteExternalChannelMappingRepository,
        caller: Caller,
    ) -> None:
        """Failing to archive the group leaves the local deactivation in place."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        platforms.register(
            ExternalPlatform.GROUPME, FailingGroupMeAdapter(PlatformHTTPError(500))
        )

        await service.deactivate_channel(dto.id, caller, archive_external_group=True)

        mapping = await mappings.get_by_id(dto.id)
        assert mapping is not None
        assert not mapping.is_active

    async def test_missing_mapping(
        self, service: ExternalBridgeService, caller: Caller
    ) -> None:
        """Deactivating an unknown mapping raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await service.deactivate_channel("missing", caller)

    async def test_requires_caller(self, service: ExternalBridgeService) -> None:
        """Deactivating without an identity is unauthorized."""
        with pytest.raises(UnauthorizedError):
            await service.deactivate_channel("any", None)


class TestInboundIngestion:
    """TC-11-004: Inbound ingestion."""

    async def test_message_stored_in_external_channel(
        self,
        service: ExternalBridgeService,
        channels: SqliteChannelRepository,
        messages: SqliteChatMessageRepository,
        mappings: SqliteExternalChannelMappingRepository,
        caller: Caller,
        broadcaster: RealtimeBroadcaster,
    ) -> None:
        """An inbound message lands in the mapping's channel and is broadcast."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        channel = await channels.get_by_mapping(dto.id)
        assert channel is not None
        subscription = broadcaster.subscribe(EVENT_ID)

        stored = await service.process_inbound_webhook(
            dto.id, inbound(dto.external_group_id), ExternalPlatform.GROUPME
        )

        assert stored is not None
        assert stored.channel_id == channel.id
        assert stored.message == "Road closed"
        assert stored.sender_display_name == "Jordan"
        assert stored.is_external_message
        assert stored.external_source == ExternalPlatform.GROUPME
        assert await messages.count_active(channel.id) == 1
        notification = subscription.queue.get_nowait()
        assert notification["type"] == MESSAGE_RECEIVED
        assert notification["payload"]["id"] == stored.id
        mapping = await mappings.get_by_id(dto.id)
        assert mapping is not None
        assert mapping.last_activity_at is not None

    async def test_image_only_message(
        self, service: ExternalBridgeService, caller: Caller
    ) -> None:
        """Image-only posts are stored with an image marker."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        message = inbound(dto.external_group_id, text=None)
        message.attachment_url = "https://i.groupme.com/a.png"

        stored = await service.process_inbound_webhook(dto.id, message)

        assert stored is not None
        assert stored.message == "[Image]"
        assert stored.external_attachment_url == "https://i.groupme.com/a.png"

    async def test_falls_back_to_default_channel(
        self,
        service: ExternalBridgeService,
        channel_service: ChannelService,
        channels: SqliteChannelRepository,
        caller: Caller,
    ) -> None:
        """Without an active External channel, messages go to the default channel."""
        await channel_service.create_default_channels(EVENT_ID, "system@example.com")
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        await channel_service.archive_external_channel(dto.id)
        default = await channels.get_default_channel(EVENT_ID)
        assert default is not None

        stored = await service.process_inbound_webhook(
            dto.id, inbound(dto.external_group_id)
        )

        assert stored is not None
        assert stored.channel_id == default.id


class TestInboundDropRules:
    """TC-11-005: Inbound drop rules."""

    @pytest.fixture
    async def mapping_id(
        self, service: ExternalBridgeService, caller: Caller
    ) -> str:
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )
        return dto.id

    async def group_of(
        self, mappings: SqliteExternalChannelMappingRepository, mapping_id: str
    ) -> ExternalChannelMapping:
        mapping = await mappings.get_by_id(mapping_id)
        assert mapping is not None
        return mapping

    async def test_unknown_mapping(self, service: ExternalBridgeService) -> None:
        """Deliveries for unknown mappings are dropped."""
        assert await service.process_inbound_webhook("missing", inbound("g")) is None

    async def test_inactive_mapping(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
        mapping_id: str,
        caller: Caller,
    ) -> None:
        """Deliveries for deactivated mappings are dropped."""
        mapping = await self.group_of(mappings, mapping_id)
        await service.deactivate_channel(mapping_id, caller)

        result = await service.process_inbound_webhook(
            mapping_id, inbound(mapping.external_group_id)
        )

        assert result is None

    async def test_unlinked_mapping(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
    ) -> None:
        """Deliveries for mappings without an event are dropped."""
        mapping = ExternalChannelMapping(
            platform=ExternalPlatform.TEAMS,
            external_group_id="19:conv",
            external_group_name="Teams",
            webhook_secret="s",
            created_by="TeamsBot",
        )
        await mappings.add(mapping)

        assert await service.process_inbound_webhook(mapping.id, inbound("19:conv")) is None

    async def test_wrong_platform(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
        mapping_id: str,
    ) -> None:
        """A delivery posted to another platform's URL is dropped."""
        mapping = await self.group_of(mappings, mapping_id)

        result = await service.process_inbound_webhook(
            mapping_id, inbound(mapping.external_group_id), ExternalPlatform.TEAMS
        )

        assert result is None

    async def test_bot_sender_type(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
        mapping_id: str,
    ) -> None:
        """Messages flagged as bot messages are dropped."""
        mapping = await self.group_of(mappings, mapping_id)

        result = await service.process_inbound_webhook(
            mapping_id, inbound(mapping.external_group_id, sender_type="bot")
        )

        assert result is None

    async def test_own_bot_echo(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
        mapping_id: str,
    ) -> None:
        """Messages sent by the mapping's own bot are dropped."""
        mapping = await self.group_of(mappings, mapping_id)

        result = await service.process_inbound_webhook(
            mapping_id, inbound(mapping.external_group_id, sender_id=mapping.bot_id)
        )

        assert result is None

    async def test_group_mismatch(
        self, service: ExternalBridgeService, mapping_id: str
    ) -> None:
        """A delivery naming another group is dropped."""
        result = await service.process_inbound_webhook(
            mapping_id, inbound("some-other-group")
        )

        assert result is None


class TestInboundDeduplication:
    """TC-11-006: Inbound deduplication."""

    async def test_redelivery_stored_once(
        self,
        service: ExternalBridgeService,
        messages: SqliteChatMessageRepository,
        channels: SqliteChannelRepository,
        caller: Caller,
    ) -> None:
        """A redelivered message is dropped."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )

        first = await service.process_inbound_webhook(
            dto.id, inbound(dto.external_group_id)
        )
        second = await service.process_inbound_webhook(
            dto.id, inbound(dto.external_group_id)
        )

        assert first is not None
        assert second is None
        channel = await channels.get_by_mapping(dto.id)
        assert channel is not None
        assert await messages.count_active(channel.id) == 1

    async def test_concurrent_deliveries_stored_once(
        self,
        service: ExternalBridgeService,
        messages: SqliteChatMessageRepository,
        channels: SqliteChannelRepository,
        caller: Caller,
    ) -> None:
        """Concurrent deliveries of one message store exactly one row."""
        dto = await service.create_external_channel(
            EVENT_ID, ExternalPlatform.GROUPME, caller
        )

        results = await asyncio.gather(
            *(
                service.process_inbound_webhook(dto.id, inbound(dto.external_group_id))
                for _ in range(5)
            )
        )

        assert sum(1 for r in results if r is not None) == 1
        channel = await channels.get_by_mapping(dto.id)
        assert channel is not None
        assert await messages.count_active(channel.id) == 1


class TestOutboundFanOut:
    """TC-11-007: Outbound fan-out."""

    async def test_no_mappings(self, service: ExternalBridgeService) -> None:
        """An event without mappings relays nowhere."""
        assert await service.broadcast_to_external_channels(EVENT_ID, "Casey", "hi") == []

    async def test_delivered_to_every_mapping(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        teams: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """Every active mapping receives the formatted message."""
        await service.create_external_channel(EVENT_ID, ExternalPlatform.GROUPME, caller)
        await service.create_external_channel(EVENT_ID, ExternalPlatform.TEAMS, caller)

        outcomes = await service.broadcast_to_external_channels(
            EVENT_ID, "Casey Lead", "Evacuate zone B"
        )

        assert len(outcomes) == 2
        assert all(o.delivered for o in outcomes)
        assert [m.text for m in groupme.sent] == ["[Casey Lead] Evacuate zone B"]
        assert [m.text for m in teams.sent] == ["[Casey Lead] Evacuate zone B"]
        assert teams.sent[0].sender_name == "Casey Lead"

    async def test_failure_isolated(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        teams: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """A rejected send on one mapping does not affect the others."""
        await service.create_external_channel(EVENT_ID, ExternalPlatform.GROUPME, caller)
        await service.create_external_channel(EVENT_ID, ExternalPlatform.TEAMS, caller)
        groupme.queue_statuses(400)

        outcomes = await service.broadcast_to_external_channels(EVENT_ID, "Casey", "hi")

        by_platform = {o.platform: o for o in outcomes}
        assert not by_platform[ExternalPlatform.GROUPME].delivered
        assert by_platform[ExternalPlatform.GROUPME].error == "HTTP 400"
        assert by_platform[ExternalPlatform.GROUPME].attempts == 1
        assert by_platform[ExternalPlatform.TEAMS].delivered
        assert len(teams.sent) == 1

    async def test_transient_status_retried(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """A 503 is retried and the message delivered."""
        await service.create_external_channel(EVENT_ID, ExternalPlatform.GROUPME, caller)
        groupme.queue_statuses(503)

        (outcome,) = await service.broadcast_to_external_channels(EVENT_ID, "Casey", "hi")

        assert outcome.delivered
        assert outcome.attempts == 2
        assert len(groupme.sent) == 1

    async def test_persistent_transient_status_exhausted(
        self,
        service: ExternalBridgeService,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """A status that stays 503 is reported undelivered after all attempts."""
        await service.create_external_channel(EVENT_ID, ExternalPlatform.GROUPME, caller)
        groupme.queue_statuses(503, 503, 503)

        (outcome,) = await service.broadcast_to_external_channels(EVENT_ID, "Casey", "hi")

        assert not outcome.delivered
        assert outcome.attempts == 3
        assert outcome.error == "HTTP 503"
        assert groupme.sent == []

    async def test_unsupported_platform_isolated(
        self,
        service: ExternalBridgeService,
        mappings: SqliteExternalChannelMappingRepository,
        groupme: InMemoryPlatformAdapter,
        caller: Caller,
    ) -> None:
        """A mapping whose platform has no adapter fails alone."""
        await service.create_external_channel(EVENT_ID, ExternalPlatform.GROUPME, caller)
        await mappings.add(
            ExternalChannelMapping(
                event_id=EVENT_ID,
                platform=ExternalPlatform.SIGNAL,
                external_group_id="sig-1",
                external_group_name="Signal",
                webhook_secret="s",
                created_by="lead@example.com",
            )
        )

        outcomes = await service.broadcast_to_external_channels(EVENT_ID, "Casey", "hi")

        by_platform = {o.platform: o for o in outcomes}
        assert by_platform[ExternalPlatform.GROUPME].delivered
        assert not by_platform[ExternalPlatform.SIGNAL].delivered
        assert len(groupme.sent) == 1
