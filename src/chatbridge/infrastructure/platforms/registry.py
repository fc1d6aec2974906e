"""Lookup of platform adapters by platform."""

import aiohttp
from structlog.stdlib import BoundLogger

from chatbridge.config.models import AppConfig
from chatbridge.domain.entities.external_channel_mapping import ExternalPlatform
from chatbridge.domain.errors import UnsupportedPlatformError
from chatbridge.infrastructure.platforms.base import PlatformAdapter
from chatbridge.infrastructure.platforms.groupme import GroupMeAdapter
from chatbridge.infrastructure.platforms.mock import InMemoryPlatformAdapter
from chatbridge.infrastructure.platforms.teams import TeamsAdapter


class PlatformRegistry:
    """Registry of platform adapters.

    Example:
        >>> registry = PlatformRegistry()
        >>> registry.register(ExternalPlatform.GROUPME, adapter)
        >>> registry.get(ExternalPlatform.GROUPME)
    """

    def __init__(self) -> None:
        self._adapters: dict[ExternalPlatform, PlatformAdapter] = {}

    def register(self, platform: ExternalPlatform, adapter: PlatformAdapter) -> None:
        """Register the adapter for a platform, replacing any previous one."""
        self._adapters[platform] = adapter

    def get(self, platform: ExternalPlatform) -> PlatformAdapter:
        """Get the adapter for a platform.

        Raises:
            UnsupportedPlatformError: If no adapter is registered.
        """
        adapter = self._adapters.get(platform)
        if adapter is None:
            raise UnsupportedPlatformError(f"Platform {platform.value} is not supported")
        return adapter

    def supports(self, platform: ExternalPlatform) -> bool:
        return platform in self._adapters

    @property
    def platforms(self) -> list[ExternalPlatform]:
        return list(self._adapters)


def create_platform_registry(
    config: AppConfig,
    session: aiohttp.ClientSession,
    logger: BoundLogger,
    use_mock: bool = False,
) -> PlatformRegistry:
    """Build the registry from configuration.

    With use_mock, GroupMe and Teams are served by in-memory adapters
    regardless of configuration. Otherwise only configured platforms are
    registered.

    Args:
        config: Application configuration.
        session: Shared HTTP client session for real adapters.
        logger: Logger instance.
        use_mock: Whether to use in-memory adapters.

    Returns:
        The populated registry.
    """
    registry = PlatformRegistry()
    if use_mock:
        for platform in (ExternalPlatform.GROUPME, ExternalPlatform.TEAMS):
            registry.register(platform, InMemoryPlatformAdapter(platform, logger))
        logger.warning("Using in-memory platform adapters")
        return registry

    if config.groupme is not None:
        registry.register(
            ExternalPlatform.GROUPME, GroupMeAdapter(config.groupme, session, logger)
        )
    if config.teams is not None:
        registry.register(
            ExternalPlatform.TEAMS, TeamsAdapter(config.teams, session, logger)
        )
    logger.info(
        "Platform adapters registered",
        platforms=[platform.value for platform in registry.platforms],
    )
    return registry
