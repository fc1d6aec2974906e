"""Tests for SqliteChannelRepository.

Test cases:
- TC-04-001: チャンネル保存と取得
- TC-04-002: 更新時に作成情報を維持
- TC-04-003: 状態別一覧（表示順）
- TC-04-004: 種別一覧
- TC-04-005: デフォルトチャンネル取得
- TC-04-006: マッピング経由の取得（アクティブ優先）
- TC-04-007: 最大表示順
- TC-04-008: 表示順の一括更新
"""

from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from chatbridge.domain.entities.channel import Channel, ChannelState, ChannelType
from chatbridge.infrastructure.persistence.channel_repository import (
    SqliteChannelRepository,
)
from chatbridge.infrastructure.persistence.database import Database


@pytest.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    """Create a test database."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def repository(database: Database) -> SqliteChannelRepository:
    """Create a repository instance."""
    return SqliteChannelRepository(database)


def create_channel(
    event_id: str = "evt-1",
    name: str = "Logistics",
    channel_type: ChannelType = ChannelType.CUSTOM,
    display_order: int = 0,
    state: ChannelState = ChannelState.ACTIVE,
    is_default_event_thread: bool = False,
    external_channel_mapping_id: str | None = None,
    created_at: datetime | None = None,
) -> Channel:
    """Helper to create a Channel."""
    return Channel(
        event_id=event_id,
        name=name,
        channel_type=channel_type,
        display_order=display_order,
        state=state,
        is_default_event_thread=is_default_event_thread,
        external_channel_mapping_id=external_channel_mapping_id,
        created_by="creator@example.com",
        created_at=created_at or datetime.now(timezone.utc),
    )


class TestAddAndGet:
    """TC-04-001: チャンネル保存と取得."""

    async def test_add_and_get_by_id(self, repository: SqliteChannelRepository) -> None:
        """保存したチャンネルを ID で取得できる."""
        channel = create_channel(name="Operations")

        await repository.add(channel)
        saved = await repository.get_by_id(channel.id)

        assert saved is not None
        assert saved.name == "Operations"
        assert saved.state == ChannelState.ACTIVE
        assert saved.channel_type == ChannelType.CUSTOM

    async def test_get_missing_returns_none(
        self, repository: SqliteChannelRepository
    ) -> None:
        """存在しない ID は None."""
        assert await repository.get_by_id("missing") is None


class TestSave:
    """TC-04-002: 更新時に作成情報を維持."""

    async def test_save_updates_fields_and_keeps_creator(
        self, repository: SqliteChannelRepository
    ) -> None:
        """更新しても created_by は変わらない."""
        channel = create_channel()
        await repository.add(channel)

        channel.name = "Renamed"
        channel.state = ChannelState.ARCHIVED
        channel.created_by = "someone-else@example.com"
        await repository.save(channel)

        saved = await repository.get_by_id(channel.id)
        assert saved is not None
        assert saved.name == "Renamed"
        assert saved.state == ChannelState.ARCHIVED
        assert saved.created_by == "creator@example.com"


class TestListByState:
    """TC-04-003: 状態別一覧（表示順）."""

    async def test_ordered_by_display_order(
        self, repository: SqliteChannelRepository
    ) -> None:
        """表示順、作成日時の順に並ぶ."""
        now = datetime.now(timezone.utc)
        await repository.add(create_channel(name="c", display_order=2))
        await repository.add(create_channel(name="a", display_order=0))
        await repository.add(
            create_channel(name="b2", display_order=1, created_at=now)
        )
        await repository.add(
            create_channel(
                name="b1", display_order=1, created_at=now - timedelta(minutes=1)
            )
        )

        result = await repository.list_by_state("evt-1", ChannelState.ACTIVE)

        assert [c.name for c in result] == ["a", "b1", "b2", "c"]

    async def test_filters_by_state_and_event(
        self, repository: SqliteChannelRepository
    ) -> None:
        """他の状態や他のイベントのチャンネルは含まれない."""
        await repository.add(create_channel(name="active"))
        await repository.add(create_channel(name="archived", state=ChannelState.ARCHIVED))
        await repository.add(create_channel(name="purged", state=ChannelState.PURGED))
        await repository.add(create_channel(name="other", event_id="evt-2"))

        active = await repository.list_by_state("evt-1", ChannelState.ACTIVE)
        archived = await repository.list_by_state("evt-1", ChannelState.ARCHIVED)

        assert [c.name for c in active] == ["active"]
        assert [c.name for c in archived] == ["archived"]


class TestListByType:
    """TC-04-004: 種別一覧."""

    async def test_list_by_type(self, repository: SqliteChannelRepository) -> None:
        """指定した種別のみ返る."""
        await repository.add(create_channel(name="pos", channel_type=ChannelType.POSITION))
        await repository.add(create_channel(name="custom"))

        result = await repository.list_by_type("evt-1", ChannelType.POSITION)

        assert [c.name for c in result] == ["pos"]


class TestGetDefaultChannel:
    """TC-04-005: デフォルトチャンネル取得."""

    async def test_returns_default(self, repository: SqliteChannelRepository) -> None:
        """デフォルトフラグのチャンネルが返る."""
        await repository.add(create_channel(name="custom"))
        await repository.add(
            create_channel(
                name="Event Chat",
                channel_type=ChannelType.INTERNAL,
                is_default_event_thread=True,
            )
        )

        result = await repository.get_default_channel("evt-1")

        assert result is not None
        assert result.name == "Event Chat"

    async def test_none_when_missing(self, repository: SqliteChannelRepository) -> None:
        """デフォルトチャンネルがなければ None."""
        assert await repository.get_default_channel("evt-1") is None


class TestGetByMapping:
    """TC-04-006: マッピング経由の取得（アクティブ優先）."""

    async def test_prefers_active_channel(
        self, repository: SqliteChannelRepository
    ) -> None:
        """アーカイブ済みより新しくなくてもアクティブを優先する."""
        now = datetime.now(timezone.utc)
        active = create_channel(
            name="active",
            channel_type=ChannelType.EXTERNAL,
            external_channel_mapping_id="map-1",
            created_at=now - timedelta(hours=1),
        )
        archived = create_channel(
            name="archived",
            channel_type=ChannelType.EXTERNAL,
            external_channel_mapping_id="map-1",
            state=ChannelState.ARCHIVED,
            created_at=now,
        )
        await repository.add(active)
        await repository.add(archived)

        result = await repository.get_by_mapping("map-1")

        assert result is not None
        assert result.id == active.id

    async def test_falls_back_to_latest(
        self, repository: SqliteChannelRepository
    ) -> None:
        """アクティブがなければ最新のチャンネルを返す."""
        channel = create_channel(
            channel_type=ChannelType.EXTERNAL,
            external_channel_mapping_id="map-1",
            state=ChannelState.ARCHIVED,
        )
        await repository.add(channel)

        result = await repository.get_by_mapping("map-1")

        assert result is not None
        assert result.id == channel.id
        assert await repository.get_by_mapping("map-2") is None


class TestDisplayOrder:
    """TC-04-007, TC-04-008: 表示順."""

    async def test_max_display_order_without_channels(
        self, repository: SqliteChannelRepository
    ) -> None:
        """チャンネルがなければ -1."""
        assert await repository.max_display_order("evt-1") == -1

    async def test_max_display_order_ignores_archived(
        self, repository: SqliteChannelRepository
    ) -> None:
        """アーカイブ済みは最大表示順の計算に含まれない."""
        await repository.add(create_channel(display_order=3))
        await repository.add(
            create_channel(display_order=9, state=ChannelState.ARCHIVED)
        )

        assert await repository.max_display_order("evt-1") == 3

    async def test_set_display_orders(self, repository: SqliteChannelRepository) -> None:
        """表示順を一括で更新できる."""
        first = create_channel(name="first", display_order=0)
        second = create_channel(name="second", display_order=1)
        await repository.add(first)
        await repository.add(second)

        await repository.set_display_orders({first.id: 1, second.id: 0})

        result = await repository.list_by_state("evt-1", ChannelState.ACTIVE)
        assert [c.name for c in result] == ["second", "first"]
