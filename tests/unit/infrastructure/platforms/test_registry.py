"""Tests for PlatformRegistry and InMemoryPlatformAdapter."""

from unittest.mock import MagicMock

import pytest

from chatbridge.config.models import AppConfig, GroupMeConfig
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.domain.errors import UnsupportedPlatformError
from chatbridge.infrastructure.platforms.groupme import GroupMeAdapter
from chatbridge.infrastructure.platforms.mock import InMemoryPlatformAdapter
from chatbridge.infrastructure.platforms.registry import (
    PlatformRegistry,
    create_platform_registry,
)


class TestPlatformRegistry:
    """Tests for PlatformRegistry."""

    def test_get_unregistered_raises(self) -> None:
        """Looking up a platform without an adapter raises."""
        registry = PlatformRegistry()

        with pytest.raises(UnsupportedPlatformError):
            registry.get(ExternalPlatform.SIGNAL)

    def test_register_and_get(self) -> None:
        """A registered adapter is returned for its platform."""
        registry = PlatformRegistry()
        adapter = InMemoryPlatformAdapter(ExternalPlatform.GROUPME)

        registry.register(ExternalPlatform.GROUPME, adapter)

        assert registry.get(ExternalPlatform.GROUPME) is adapter
        assert registry.supports(ExternalPlatform.GROUPME)
        assert not registry.supports(ExternalPlatform.TEAMS)

    def test_mock_registry_serves_groupme_and_teams(self) -> None:
        """use_mock registers in-memory adapters regardless of configuration."""
        registry = create_platform_registry(
            AppConfig(), session=MagicMock(), logger=MagicMock(), use_mock=True
        )

        assert set(registry.platforms) == {
            ExternalPlatform.GROUPME,
            ExternalPlatform.TEAMS,
        }
        assert isinstance(
            registry.get(ExternalPlatform.TEAMS), InMemoryPlatformAdapter
        )

    def test_only_configured_platforms_registered(self) -> None:
        """Without mocks only configured platforms get adapters."""
        config = AppConfig(groupme=GroupMeConfig(access_token="t"))

        registry = create_platform_registry(
            config, session=MagicMock(), logger=MagicMock()
        )

        assert isinstance(registry.get(ExternalPlatform.GROUPME), GroupMeAdapter)
        assert not registry.supports(ExternalPlatform.TEAMS)


class TestInMemoryPlatformAdapter:
    """Tests for InMemoryPlatformAdapter."""

    @pytest.fixture
    def adapter(self) -> InMemoryPlatformAdapter:
        return InMemoryPlatformAdapter(ExternalPlatform.GROUPME)

    async def test_create_group_and_connector(
        self, adapter: InMemoryPlatformAdapter
    ) -> None:
        """Groups and connectors get distinct generated IDs."""
        group = await adapter.create_group("COBRA: Flood")
        connector = await adapter.register_connector(group.group_id, "https://cb")

        assert group.group_id in adapter.groups
        assert group.share_url is not None
        assert connector.bot_id in adapter.connectors
        assert connector.bot_id != group.group_id

    async def test_queued_statuses_then_default(
        self, adapter: InMemoryPlatformAdapter
    ) -> None:
        """Queued statuses are returned in order; only successes are recorded."""
        mapping = ExternalChannelMapping(
            platform=ExternalPlatform.GROUPME,
            external_group_id="g1",
            external_group_name="G",
            webhook_secret="s",
            created_by="a@example.com",
        )
        adapter.queue_statuses(503, 400)

        statuses = [
            (await adapter.post_message(mapping, f"m{i}")).status for i in range(3)
        ]

        assert statuses == [503, 400, 202]
        assert [m.text for m in adapter.sent] == ["m2"]
