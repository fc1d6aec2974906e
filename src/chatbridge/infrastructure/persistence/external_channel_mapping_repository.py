"""SQLite implementation of ExternalChannelMappingRepository."""

from datetime import datetime

from sqlmodel import or_, select

from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.infrastructure.persistence.database import Database


class SqliteExternalChannelMappingRepository:
    """SQLite implementation of ExternalChannelMappingRepository."""

    def __init__(self, database: Database) -> None:
        """Initialize the repository.

        Args:
            database: Database instance for session management.
        """
        self._database = database

    async def add(self, mapping: ExternalChannelMapping) -> None:
        async with self._database.get_session() as session:
            session.add(mapping)

    async def save(self, mapping: ExternalChannelMapping) -> None:
        """Persist changes to an existing mapping.

        The creation stamp and the webhook secret are preserved.

        Args:
            mapping: The mapping to update.
        """
        async with self._database.get_session() as session:
            existing = await session.get(ExternalChannelMapping, mapping.id)
            if existing is None:
                session.add(mapping)
                return

            existing.event_id = mapping.event_id
            existing.external_group_id = mapping.external_group_id
            existing.external_group_name = mapping.external_group_name
            existing.bot_id = mapping.bot_id
            existing.share_url = mapping.share_url
            existing.is_active = mapping.is_active
            existing.conversation_reference_json = mapping.conversation_reference_json
            existing.tenant_id = mapping.tenant_id
            existing.last_activity_at = mapping.last_activity_at
            existing.installed_by_name = mapping.installed_by_name
            existing.is_emulator = mapping.is_emulator
            existing.last_modified_by = mapping.last_modified_by
            existing.last_modified_at = mapping.last_modified_at
            session.add(existing)

    async def get_by_id(self, mapping_id: str) -> ExternalChannelMapping | None:
        async with self._database.get_session() as session:
            return await session.get(ExternalChannelMapping, mapping_id)

    async def list_active_for_event(self, event_id: str) -> list[ExternalChannelMapping]:
        async with self._database.get_session() as session:
            statement = (
                select(ExternalChannelMapping)
                .where(ExternalChannelMapping.event_id == event_id)
                .where(ExternalChannelMapping.is_active == True)  # noqa: E712
                .order_by(ExternalChannelMapping.created_at.asc())  # type: ignore[attr-defined]
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def get_for_event_platform(
        self, event_id: str, platform: ExternalPlatform, is_active: bool
    ) -> ExternalChannelMapping | None:
        async with self._database.get_session() as session:
            statement = (
                select(ExternalChannelMapping)
                .where(ExternalChannelMapping.event_id == event_id)
                .where(ExternalChannelMapping.platform == platform)
                .where(ExternalChannelMapping.is_active == is_active)
                .order_by(ExternalChannelMapping.created_at.desc())  # type: ignore[attr-defined]
                .limit(1)
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def get_by_group(
        self, platform: ExternalPlatform, external_group_id: str
    ) -> ExternalChannelMapping | None:
        async with self._database.get_session() as session:
            statement = (
                select(ExternalChannelMapping)
                .where(ExternalChannelMapping.platform == platform)
                .where(ExternalChannelMapping.external_group_id == external_group_id)
                .order_by(
                    ExternalChannelMapping.is_active.desc(),  # type: ignore[attr-defined]
                    ExternalChannelMapping.created_at.desc(),  # type: ignore[attr-defined]
                )
                .limit(1)
            )
            result = await session.execute(statement)
            return result.scalars().first()

    async def list_by_platform(
        self,
        platform: ExternalPlatform,
        *,
        is_active: bool | None = None,
        is_emulator: bool | None = None,
        inactive_since: datetime | None = None,
    ) -> list[ExternalChannelMapping]:
        statement = select(ExternalChannelMapping).where(
            ExternalChannelMapping.platform == platform
        )
        if is_active is not None:
            statement = statement.where(ExternalChannelMapping.is_active == is_active)
        if is_emulator is not None:
            statement = statement.where(ExternalChannelMapping.is_emulator == is_emulator)
        if inactive_since is not None:
            statement = statement.where(
                or_(
                    ExternalChannelMapping.last_activity_at.is_(None),  # type: ignore[union-attr]
                    ExternalChannelMapping.last_activity_at < inactive_since,  # type: ignore[operator]
                )
            )
        statement = statement.order_by(
            ExternalChannelMapping.last_activity_at.desc(),  # type: ignore[union-attr]
            ExternalChannelMapping.created_at.desc(),  # type: ignore[attr-defined]
        )

        async with self._database.get_session() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())
