"""Microsoft Teams adapter backed by the Teams bot service."""

import aiohttp
from structlog.stdlib import BoundLogger

from chatbridge.config.models import TeamsConfig
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.domain.errors import UnsupportedPlatformError
from chatbridge.infrastructure.platforms.base import (
    Connector,
    ExternalGroup,
    PlatformResponse,
)

SEND_PATH = "/api/internal/send"
ERROR_BODY_LIMIT = 500


class TeamsAdapter:
    """Teams adapter.

    Teams conversations cannot be created from here: the bot registers a
    connector when it is installed in a conversation, and an administrator
    links it to an event. Outbound messages are proactive sends through the
    bot service, which is handed the stored conversation reference so that
    it keeps no state of its own.
    """

    platform = ExternalPlatform.TEAMS

    def __init__(
        self,
        config: TeamsConfig,
        session: aiohttp.ClientSession,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._session = session
        self._logger = logger
        self._send_url = config.bot_base_url.rstrip("/") + SEND_PATH

    async def create_group(self, name: str, description: str | None = None) -> ExternalGroup:
        raise UnsupportedPlatformError(
            "Teams conversations are registered by the Teams bot, not created"
        )

    async def register_connector(self, group_id: str, callback_url: str) -> Connector:
        raise UnsupportedPlatformError(
            "Teams connectors are registered by the Teams bot on installation"
        )

    async def post_message(
        self,
        mapping: ExternalChannelMapping,
        text: str,
        sender_name: str | None = None,
    ) -> PlatformResponse:
        headers = {"X-Api-Key": self._config.api_key} if self._config.api_key else {}
        payload = {
            "conversationId": mapping.external_group_id,
            "conversationReferenceJson": mapping.conversation_reference_json,
            "message": text,
            "senderName": sender_name,
        }
        async with self._session.post(
            self._send_url, json=payload, headers=headers
        ) as response:
            body = await response.text()
            if response.status >= 400:
                self._logger.warning(
                    "Teams bot rejected send",
                    mapping_id=mapping.id,
                    status=response.status,
                    response=body[:ERROR_BODY_LIMIT],
                )
            return PlatformResponse(status=response.status, body=body[:ERROR_BODY_LIMIT])

    async def destroy_connector(self, mapping: ExternalChannelMapping) -> None:
        # The bot service owns the installation; deactivating the mapping suffices.
        self._logger.debug("Teams connector removal is local only", mapping_id=mapping.id)

    async def archive_group(self, mapping: ExternalChannelMapping) -> None:
        self._logger.debug("Teams conversations are not archived", mapping_id=mapping.id)
