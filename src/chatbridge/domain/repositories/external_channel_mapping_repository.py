"""ExternalChannelMappingRepository protocol."""

from datetime import datetime
from typing import Protocol

from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)


class ExternalChannelMappingRepository(Protocol):
    """Repository protocol for external channel mappings."""

    async def add(self, mapping: ExternalChannelMapping) -> None:
        """Insert a new mapping.

        Args:
            mapping: The mapping to insert.
        """
        ...

    async def save(self, mapping: ExternalChannelMapping) -> None:
        """Persist changes to an existing mapping.

        Args:
            mapping: The mapping to update.
        """
        ...

    async def get_by_id(self, mapping_id: str) -> ExternalChannelMapping | None:
        """Get a mapping by ID regardless of its state.

        Args:
            mapping_id: The mapping ID.

        Returns:
            The mapping if found, None otherwise.
        """
        ...

    async def list_active_for_event(self, event_id: str) -> list[ExternalChannelMapping]:
        """Get the active mappings of an event, oldest first.

        Args:
            event_id: The event ID.

        Returns:
            List of mappings.
        """
        ...

    async def get_for_event_platform(
        self, event_id: str, platform: ExternalPlatform, is_active: bool
    ) -> ExternalChannelMapping | None:
        """Get the most recent mapping of an event on a platform.

        Args:
            event_id: The event ID.
            platform: The platform.
            is_active: Whether to look for an active or an inactive mapping.

        Returns:
            The mapping if found, None otherwise.
        """
        ...

    async def get_by_group(
        self, platform: ExternalPlatform, external_group_id: str
    ) -> ExternalChannelMapping | None:
        """Get the mapping for a platform group, preferring an active one.

        Args:
            platform: The platform.
            external_group_id: The platform's group or conversation ID.

        Returns:
            The mapping if found, None otherwise.
        """
        ...

    async def list_by_platform(
        self,
        platform: ExternalPlatform,
        *,
        is_active: bool | None = None,
        is_emulator: bool | None = None,
        inactive_since: datetime | None = None,
    ) -> list[ExternalChannelMapping]:
        """Get the mappings of a platform, most recently active first.

        Args:
            platform: The platform.
            is_active: Filter on the active flag when given.
            is_emulator: Filter on the emulator flag when given.
            inactive_since: Keep only mappings whose last activity is missing
                or older than this time.

        Returns:
            List of mappings.
        """
        ...
