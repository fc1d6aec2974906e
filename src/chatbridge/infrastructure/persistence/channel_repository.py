"""SQLite implementation of ChannelRepository."""

from sqlalchemy import func, update
from sqlmodel import select

from chatbridge.domain.entities.channel import Channel, ChannelState, ChannelType
from chatbridge.infrastructure.persistence.database import Database


class SqliteChannelRepository:
    """SQLite implementation of ChannelRepository.

    Every method runs in its own session; returned channels are detached
    copies that callers mutate and hand back to save().
    """

    def __init__(self, database: Database) -> None:
        """Initialize the repository.

        Args:
            database: Database instance for session management.
        """
        self._database = database

    async def add(self, channel: Channel) -> None:
        async with self._database.get_session() as session:
            session.add(channel)

    async def save(self, channel: Channel) -> None:
        """Persist changes to an existing channel.

        created_at and created_by are never overwritten.

        Args:
            channel: The channel to update.
        """
        async with self._database.get_session() as session:
            existing = await session.get(Channel, channel.id)
            if existing is None:
                session.add(channel)
                return

            existing.name = channel.name
            existing.description = channel.description
            existing.channel_type = channel.channel_type
            existing.display_order = channel.display_order
            existing.state = channel.state
            existing.is_default_event_thread = channel.is_default_event_thread
            existing.position_id = channel.position_id
            existing.external_channel_mapping_id = channel.external_channel_mapping_id
            existing.icon_name = channel.icon_name
            existing.color = channel.color
            session.add(existing)

    async def get_by_id(self, channel_id: str) -> Channel | None:
        async with self._database.get_session() as session:
            return await session.get(Channel, channel_id)

    async def list_by_state(self, event_id: str, state: ChannelState) -> list[Channel]:
        async with self._database.get_session() as session:
            statement = (
                select(Channel)
                .where(Channel.event_id == event_id)
                .where(Channel.state == state)
                .order_by(
                    Channel.display_order.asc(),  # type: ignore[attr-defined]
                    Channel.created_at.asc(),  # type: ignore[attr-defined]
                )
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def list_by_type(
        self, event_id: str, channel_type: ChannelType
    ) -> list[Channel]:
        async with self._database.get_session() as session:
            statement = (
                select(Channel)
                .where(Channel.event_id == event_id)
                .where(Channel.channel_type == channel_type)
                .order_by(Channel.created_at.asc())  # type: ignore[attr-defined]
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def get_default_channel(self, event_id: str) -> Channel | None:
        async with self._database.get_session() as session:
            statement = (
                select(Channel)
                .where(Channel.event_id == event_id)
                .where(Channel.is_default_event_thread == True)  # noqa: E712
                .order_by(Channel.created_at.asc())  # type: ignore[attr-defined]
                .limit(1)
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def get_by_mapping(self, mapping_id: str) -> Channel | None:
        """Get the External channel backed by a mapping.

        An active channel is preferred over archived or purged ones.

        Args:
            mapping_id: The external channel mapping ID.

        Returns:
            The channel if found, None otherwise.
        """
        async with self._database.get_session() as session:
            statement = (
                select(Channel)
                .where(Channel.external_channel_mapping_id == mapping_id)
                .order_by(Channel.created_at.desc())  # type: ignore[attr-defined]
            )
            result = await session.execute(statement)
            channels = list(result.scalars().all())

        for channel in channels:
            if channel.is_active:
                return channel
        return channels[0] if channels else None

    async def max_display_order(self, event_id: str) -> int:
        async with self._database.get_session() as session:
            statement = (
                select(func.max(Channel.display_order))
                .where(Channel.event_id == event_id)
                .where(Channel.state == ChannelState.ACTIVE)
            )
            result = await session.execute(statement)
            value = result.scalar()
            return value if value is not None else -1

    async def set_display_orders(self, orders: dict[str, int]) -> None:
        if not orders:
            return

        async with self._database.get_session() as session:
            for channel_id, display_order in orders.items():
                await session.execute(
                    update(Channel)
                    .where(Channel.id == channel_id)  # type: ignore[arg-type]
                    .values(display_order=display_order)
                )
