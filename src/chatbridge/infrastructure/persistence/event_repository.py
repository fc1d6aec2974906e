"""SQLite implementations of EventRepository and PositionRepository."""

from sqlmodel import select

from chatbridge.domain.entities.event import Event, Position
from chatbridge.infrastructure.persistence.database import Database


class SqliteEventRepository:
    """SQLite implementation of EventRepository."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get_by_id(self, event_id: str) -> Event | None:
        async with self._database.get_session() as session:
            return await session.get(Event, event_id)

    async def save(self, event: Event) -> None:
        async with self._database.get_session() as session:
            await session.merge(event)


class SqlitePositionRepository:
    """SQLite implementation of PositionRepository."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def list_active(self) -> list[Position]:
        async with self._database.get_session() as session:
            statement = (
                select(Position)
                .where(Position.is_active == True)  # noqa: E712
                .order_by(
                    Position.display_order.asc(),  # type: ignore[attr-defined]
                    Position.name.asc(),  # type: ignore[attr-defined]
                )
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def save(self, position: Position) -> None:
        async with self._database.get_session() as session:
            await session.merge(position)
