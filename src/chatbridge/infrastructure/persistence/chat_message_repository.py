"""SQLite implementation of ChatMessageRepository."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from chatbridge.domain.entities.chat_message import ChatMessage
from chatbridge.domain.entities.transfer import ChannelSummary
from chatbridge.infrastructure.persistence.database import Database


class SqliteChatMessageRepository:
    """SQLite implementation of ChatMessageRepository."""

    def __init__(self, database: Database) -> None:
        """Initialize the repository.

        Args:
            database: Database instance for session management.
        """
        self._database = database

    async def add(self, message: ChatMessage) -> None:
        async with self._database.get_session() as session:
            session.add(message)

    async def add_external(self, message: ChatMessage) -> bool:
        """Insert an ingested message unless its external ID is already stored.

        Relies on the (channel_id, external_message_id) unique constraint:
        a concurrent insert of the same message fails on flush and is
        reported as a duplicate.

        Args:
            message: The message to insert.

        Returns:
            True if inserted, False if it was a duplicate.
        """
        if message.external_message_id is None:
            raise ValueError("external_message_id is required for ingested messages")

        try:
            async with self._database.get_session() as session:
                session.add(message)
                await session.flush()
        except IntegrityError:
            return False
        return True

    async def exists_external(self, channel_id: str, external_message_id: str) -> bool:
        async with self._database.get_session() as session:
            statement = (
                select(ChatMessage.id)
                .where(ChatMessage.channel_id == channel_id)
                .where(ChatMessage.external_message_id == external_message_id)
                .limit(1)
            )
            result = await session.execute(statement)
            return result.first() is not None

    async def list_active(
        self, channel_id: str, skip: int, take: int
    ) -> list[ChatMessage]:
        async with self._database.get_session() as session:
            statement = (
                select(ChatMessage)
                .where(ChatMessage.channel_id == channel_id)
                .where(ChatMessage.is_active == True)  # noqa: E712
                .order_by(
                    ChatMessage.created_at.asc(),  # type: ignore[attr-defined]
                    ChatMessage.id.asc(),  # type: ignore[attr-defined]
                )
                .offset(skip)
                .limit(take)
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def count_active(self, channel_id: str) -> int:
        async with self._database.get_session() as session:
            statement = (
                select(func.count())
                .select_from(ChatMessage)
                .where(ChatMessage.channel_id == channel_id)
                .where(ChatMessage.is_active == True)  # noqa: E712
            )
            result = await session.execute(statement)
            count = result.scalar()
            return count if count else 0

    async def summarize_channels(
        self, channel_ids: list[str]
    ) -> dict[str, ChannelSummary]:
        """Compute message count and latest message for several channels.

        Uses a single windowed query: per channel, the count of active
        messages plus the newest one's timestamp and sender.

        Args:
            channel_ids: Channels to summarise.

        Returns:
            Summary per channel ID; channels without messages are omitted.
        """
        if not channel_ids:
            return {}

        ranked = (
            select(
                ChatMessage.channel_id,
                ChatMessage.created_at,
                ChatMessage.sender_display_name,
                func.count()
                .over(partition_by=ChatMessage.channel_id)
                .label("message_count"),
                func.row_number()
                .over(
                    partition_by=ChatMessage.channel_id,
                    order_by=(
                        ChatMessage.created_at.desc(),  # type: ignore[attr-defined]
                        ChatMessage.id.desc(),  # type: ignore[attr-defined]
                    ),
                )
                .label("recency"),
            )
            .where(ChatMessage.channel_id.in_(channel_ids))  # type: ignore[attr-defined]
            .where(ChatMessage.is_active == True)  # noqa: E712
            .subquery()
        )
        statement = select(
            ranked.c.channel_id,
            ranked.c.message_count,
            ranked.c.created_at,
            ranked.c.sender_display_name,
        ).where(ranked.c.recency == 1)

        async with self._database.get_session() as session:
            result = await session.execute(statement)
            rows = result.all()

        return {
            row.channel_id: ChannelSummary(
                message_count=row.message_count,
                last_message_at=row.created_at,
                last_message_sender=row.sender_display_name,
            )
            for row in rows
        }

    async def archive_all(self, channel_id: str) -> int:
        async with self._database.get_session() as session:
            result: Any = await session.execute(
                update(ChatMessage)
                .where(ChatMessage.channel_id == channel_id)  # type: ignore[arg-type]
                .where(ChatMessage.is_active == True)  # type: ignore[arg-type]  # noqa: E712
                .values(is_active=False)
            )
            return result.rowcount

    async def archive_older_than(self, channel_id: str, cutoff: datetime) -> int:
        async with self._database.get_session() as session:
            result: Any = await session.execute(
                update(ChatMessage)
                .where(ChatMessage.channel_id == channel_id)  # type: ignore[arg-type]
                .where(ChatMessage.is_active == True)  # type: ignore[arg-type]  # noqa: E712
                .where(ChatMessage.created_at < cutoff)  # type: ignore[arg-type]
                .values(is_active=False)
            )
            return result.rowcount
