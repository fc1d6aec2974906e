"""GroupMe v3 API adapter."""

from typing import Any

import aiohttp
from structlog.stdlib import BoundLogger

from chatbridge.config.models import GroupMeConfig
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.domain.errors import ExternalPlatformError
from chatbridge.infrastructure.platforms.base import (
    Connector,
    ExternalGroup,
    PlatformResponse,
)
from chatbridge.infrastructure.retry import PlatformHTTPError

ERROR_BODY_LIMIT = 500


class GroupMeAdapter:
    """GroupMe adapter using the bot API for posting.

    Group and bot management calls authenticate with the account access
    token passed as a query parameter; bot posts authenticate with the
    bot ID alone.
    """

    platform = ExternalPlatform.GROUPME

    def __init__(
        self,
        config: GroupMeConfig,
        session: aiohttp.ClientSession,
        logger: BoundLogger,
    ) -> None:
        """Initialize the adapter.

        Args:
            config: GroupMe configuration.
            session: Shared HTTP client session.
            logger: Logger instance.
        """
        self._config = config
        self._session = session
        self._logger = logger
        self._base_url = config.base_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def _token_params(self) -> dict[str, str]:
        if not self._config.access_token:
            raise ExternalPlatformError("GroupMe access token is not configured")
        return {"token": self._config.access_token}

    async def _post_json(
        self,
        path: str,
        payload: dict[str, Any],
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        async with self._session.post(
            self._url(path), json=payload, params=params
        ) as response:
            if response.status >= 400:
                body = await response.text()
                self._logger.error(
                    "GroupMe API error",
                    path=path,
                    status=response.status,
                    response=body[:ERROR_BODY_LIMIT],
                )
                raise PlatformHTTPError(
                    response.status, f"GroupMe API error on {path}: {response.status}"
                )
            if response.content_length == 0:
                return {}
            data = await response.json(content_type=None)
            return data if isinstance(data, dict) else {}

    async def create_group(self, name: str, description: str | None = None) -> ExternalGroup:
        self._logger.info("Creating GroupMe group", group_name=name)
        data = await self._post_json(
            "groups",
            {
                "name": name,
                "description": description or f"COBRA Event: {name}",
                "share": True,
            },
            params=self._token_params(),
        )
        group = data.get("response") or {}
        group_id = group.get("id") or group.get("group_id")
        if not group_id:
            raise ExternalPlatformError("Failed to parse GroupMe group response")

        self._logger.info("Created GroupMe group", group_id=group_id, group_name=name)
        return ExternalGroup(
            group_id=str(group_id),
            name=group.get("name") or name,
            share_url=group.get("share_url"),
        )

    async def register_connector(self, group_id: str, callback_url: str) -> Connector:
        self._logger.info("Creating GroupMe bot", group_id=group_id)
        data = await self._post_json(
            "bots",
            {
                "bot": {
                    "name": self._config.bot_name,
                    "group_id": group_id,
                    "callback_url": callback_url,
                    "avatar_url": None,
                }
            },
            params=self._token_params(),
        )
        bot = (data.get("response") or {}).get("bot") or {}
        bot_id = bot.get("bot_id")
        if not bot_id:
            raise ExternalPlatformError("Failed to parse GroupMe bot response")

        self._logger.info("Created GroupMe bot", bot_id=bot_id, group_id=group_id)
        return Connector(bot_id=str(bot_id), callback_url=callback_url)

    async def post_message(
        self,
        mapping: ExternalChannelMapping,
        text: str,
        sender_name: str | None = None,
    ) -> PlatformResponse:
        async with self._session.post(
            self._url("bots/post"),
            json={"bot_id": mapping.bot_id, "text": text},
        ) as response:
            # Success is 202 Accepted with an empty body.
            body = "" if response.status < 400 else await response.text()
            return PlatformResponse(status=response.status, body=body[:ERROR_BODY_LIMIT])

    async def destroy_connector(self, mapping: ExternalChannelMapping) -> None:
        if not mapping.bot_id:
            return
        self._logger.info("Destroying GroupMe bot", bot_id=mapping.bot_id)
        await self._post_json(
            "bots/destroy",
            {"bot_id": mapping.bot_id},
            params=self._token_params(),
        )

    async def archive_group(self, mapping: ExternalChannelMapping) -> None:
        self._logger.info("Archiving GroupMe group", group_id=mapping.external_group_id)
        await self._post_json(
            f"groups/{mapping.external_group_id}/destroy",
            {},
            params=self._token_params(),
        )
