"""Admin JSON API over the application services."""

import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import pydantic
import structlog
from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field

from chatbridge.application.services.channel_service import ChannelService
from chatbridge.application.services.chat_service import ChatService
from chatbridge.application.services.connector_service import ConnectorService
from chatbridge.application.services.external_bridge_service import (
    ExternalBridgeService,
)
from chatbridge.domain.entities.caller import Caller
from chatbridge.domain.entities.channel import ChannelType
from chatbridge.domain.entities.external_channel_mapping import ExternalPlatform
from chatbridge.domain.entities.transfer import (
    CreateChannelRequest,
    UpdateChannelRequest,
)
from chatbridge.domain.errors import (
    ChatBridgeError,
    ExternalPlatformError,
    NotFoundError,
    UnauthorizedError,
    UnsupportedPlatformError,
    ValidationError,
)
from chatbridge.presentation.http.identity import get_caller

M = TypeVar("M", bound=BaseModel)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ERROR_STATUS: list[tuple[type[ChatBridgeError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (UnauthorizedError, 401),
    (UnsupportedPlatformError, 400),
    (ExternalPlatformError, 502),
]


def error_middleware(
    logger: structlog.BoundLogger,
) -> Callable[..., Awaitable[web.StreamResponse]]:
    """Create middleware translating domain errors into JSON error responses."""

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except ChatBridgeError as e:
            status = next(
                (code for kind, code in ERROR_STATUS if isinstance(e, kind)), 500
            )
            logger.info(
                "Request failed",
                method=request.method,
                path=request.path,
                status=status,
                error=str(e),
            )
            return web.json_response(
                {"error": str(e), "type": type(e).__name__}, status=status
            )

    return middleware


class CreateChannelBody(BaseModel):
    name: str | None = None
    description: str | None = None
    channel_type: ChannelType = ChannelType.CUSTOM
    position_id: str | None = None
    external_channel_mapping_id: str | None = None
    icon_name: str | None = None
    color: str | None = None


class ReorderBody(BaseModel):
    channel_ids: list[str]


class SendMessageBody(BaseModel):
    message: str


class CreateExternalChannelBody(BaseModel):
    platform: ExternalPlatform
    custom_group_name: str | None = None


class ConversationReferenceBody(BaseModel):
    """Conversation report posted by the Teams bot service."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId", min_length=1)
    conversation_reference_json: str | None = Field(
        default=None, alias="conversationReferenceJson"
    )
    tenant_id: str | None = Field(default=None, alias="tenantId")
    channel_name: str | None = Field(default=None, alias="channelName")
    installed_by_name: str | None = Field(default=None, alias="installedByName")
    is_emulator: bool = Field(default=False, alias="isEmulator")


class LinkConnectorBody(BaseModel):
    event_id: str = Field(min_length=1)


class RenameConnectorBody(BaseModel):
    display_name: str


class BotRemovedBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    removed_by: str | None = Field(default=None, alias="removedBy")


class AnnouncementBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId", min_length=1)
    title: str
    message: str
    sender_name: str | None = Field(default=None, alias="senderName")
    priority: str = "normal"


async def read_body(request: web.Request, model: type[M]) -> M:
    """Decode and validate a JSON request body.

    Raises:
        ValidationError: If the body is not JSON or does not match the model.
    """
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Invalid JSON") from e
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(str(e)) from e


def query_bool(request: web.Request, name: str) -> bool | None:
    value = request.query.get(name)
    if value is None or value == "":
        return None
    return value.lower() in ("1", "true", "yes")


def query_int(request: web.Request, name: str) -> int | None:
    value = request.query.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer") from e


def require_caller(request: web.Request) -> Caller:
    caller = get_caller(request)
    if caller is None:
        raise UnauthorizedError()
    return caller


def dump(value: BaseModel | list[Any] | None) -> Any:
    if isinstance(value, list):
        return [item.model_dump(mode="json") for item in value]
    if value is None:
        return None
    return value.model_dump(mode="json")


def refused(message: str) -> web.Response:
    return web.json_response({"error": message}, status=409)


class AdminApi:
    """Route handlers for channel, message, bridge and connector administration.

    Domain errors propagate to error_middleware; business refusals are
    answered with 409 Conflict here.
    """

    def __init__(
        self,
        channels: ChannelService,
        chat: ChatService,
        bridge: ExternalBridgeService,
        connectors: ConnectorService,
        logger: structlog.BoundLogger,
    ) -> None:
        self._channels = channels
        self._chat = chat
        self._bridge = bridge
        self._connectors = connectors
        self._logger = logger

    def register(self, router: web.UrlDispatcher) -> None:
        """Add the admin routes to a router."""
        # Channels
        router.add_get("/api/events/{event_id}/channels", self.list_channels)
        router.add_post("/api/events/{event_id}/channels", self.create_channel)
        router.add_get(
            "/api/events/{event_id}/channels/archived", self.list_archived_channels
        )
        router.add_post(
            "/api/events/{event_id}/channels/defaults", self.create_default_channels
        )
        router.add_post(
            "/api/events/{event_id}/channels/positions", self.create_position_channels
        )
        router.add_put("/api/events/{event_id}/channels/order", self.reorder_channels)
        router.add_get("/api/channels/{channel_id}", self.get_channel)
        router.add_patch("/api/channels/{channel_id}", self.update_channel)
        router.add_delete("/api/channels/{channel_id}", self.delete_channel)
        router.add_post("/api/channels/{channel_id}/archive", self.archive_channel)
        router.add_post("/api/channels/{channel_id}/restore", self.restore_channel)

        # Messages
        router.add_get("/api/channels/{channel_id}/messages", self.get_messages)
        router.add_post("/api/channels/{channel_id}/messages", self.send_message)
        router.add_post(
            "/api/channels/{channel_id}/messages/archive", self.archive_messages
        )

        # External channels
        router.add_get(
            "/api/events/{event_id}/external-channels", self.list_external_channels
        )
        router.add_post(
            "/api/events/{event_id}/external-channels", self.create_external_channel
        )
        router.add_delete(
            "/api/external-channels/{mapping_id}", self.deactivate_external_channel
        )

        # Teams connectors
        router.add_post("/api/teams/conversations", self.store_conversation)
        router.add_get(
            "/api/teams/conversations/{conversation_id}",
            self.get_conversation_reference,
        )
        router.add_post(
            "/api/teams/conversations/{conversation_id}/bot-removed",
            self.bot_removed,
        )
        router.add_post(
            "/api/teams/announcements/broadcast", self.broadcast_announcement
        )
        router.add_get("/api/teams/connectors", self.list_connectors)
        router.add_post("/api/teams/connectors/cleanup", self.cleanup_stale)
        router.add_post(
            "/api/teams/connectors/cleanup-emulators", self.cleanup_emulators
        )
        router.add_patch("/api/teams/connectors/{mapping_id}", self.rename_connector)
        router.add_delete(
            "/api/teams/connectors/{mapping_id}", self.deactivate_connector
        )
        router.add_post("/api/teams/connectors/{mapping_id}/link", self.link_connector)
        router.add_post(
            "/api/teams/connectors/{mapping_id}/unlink", self.unlink_connector
        )
        router.add_post(
            "/api/teams/connectors/{mapping_id}/reactivate", self.reactivate_connector
        )

    async def list_channels(self, request: web.Request) -> web.Response:
        """List channels of an event.

        Query parameters:
            include_archived: Also list archived channels.
            visible: Only channels the caller may see.
        """
        event_id = request.match_info["event_id"]
        if query_bool(request, "visible"):
            channels = await self._channels.list_visible_channels(
                event_id, require_caller(request)
            )
        else:
            channels = await self._channels.list_all_channels(
                event_id, include_archived=bool(query_bool(request, "include_archived"))
            )
        return web.json_response(dump(channels))

    async def list_archived_channels(self, request: web.Request) -> web.Response:
        channels = await self._channels.list_archived_channels(
            request.match_info["event_id"]
        )
        return web.json_response(dump(channels))

    async def create_channel(self, request: web.Request) -> web.Response:
        body = await read_body(request, CreateChannelBody)
        payload = body.model_dump()
        payload["event_id"] = request.match_info["event_id"]
        channel = await self._channels.create_channel(
            CreateChannelRequest(**payload), get_caller(request)
        )
        return web.json_response(dump(channel), status=201)

    async def create_default_channels(self, request: web.Request) -> web.Response:
        caller = require_caller(request)
        event_id = request.match_info["event_id"]
        await self._channels.create_default_channels(event_id, caller.email)
        channels = await self._channels.list_active_channels(event_id)
        return web.json_response(dump(channels), status=201)

    async def create_position_channels(self, request: web.Request) -> web.Response:
        caller = require_caller(request)
        created = await self._channels.create_position_channels(
            request.match_info["event_id"], caller.email
        )
        return web.json_response(dump(created), status=201)

    async def reorder_channels(self, request: web.Request) -> web.Response:
        body = await read_body(request, ReorderBody)
        await self._channels.reorder_channels(
            request.match_info["event_id"], body.channel_ids
        )
        return web.Response(status=204)

    async def get_channel(self, request: web.Request) -> web.Response:
        channel_id = request.match_info["channel_id"]
        channel = await self._channels.get_channel(channel_id)
        if channel is None:
            raise NotFoundError("Channel", channel_id)
        return web.json_response(dump(channel))

    async def update_channel(self, request: web.Request) -> web.Response:
        patch = await read_body(request, UpdateChannelRequest)
        channel = await self._channels.update_channel(
            request.match_info["channel_id"], patch
        )
        return web.json_response(dump(channel))

    async def archive_channel(self, request: web.Request) -> web.Response:
        if not await self._channels.archive_channel(request.match_info["channel_id"]):
            return refused("Channel cannot be archived")
        return web.Response(status=204)

    async def restore_channel(self, request: web.Request) -> web.Response:
        channel = await self._channels.restore_channel(request.match_info["channel_id"])
        if channel is None:
            return refused("Channel is not archived")
        return web.json_response(dump(channel))

    async def delete_channel(self, request: web.Request) -> web.Response:
        deleted = await self._channels.permanently_delete_channel(
            request.match_info["channel_id"], get_caller(request)
        )
        if not deleted:
            return refused("Channel cannot be deleted")
        return web.Response(status=204)

    async def get_messages(self, request: web.Request) -> web.Response:
        messages = await self._chat.get_messages(
            request.match_info["channel_id"],
            skip=query_int(request, "skip"),
            take=query_int(request, "take"),
        )
        return web.json_response(dump(messages))

    async def send_message(self, request: web.Request) -> web.Response:
        body = await read_body(request, SendMessageBody)
        message = await self._chat.send_message(
            request.match_info["channel_id"], body.message, get_caller(request)
        )
        return web.json_response(dump(message), status=201)

    async def archive_messages(self, request: web.Request) -> web.Response:
        """Archive a channel's messages, all of them or those older_than_days."""
        channel_id = request.match_info["channel_id"]
        days = query_int(request, "older_than_days")
        if days is None:
            count = await self._channels.archive_all_messages(channel_id)
        else:
            count = await self._channels.archive_messages_older_than(
                channel_id, days
            )
        return web.json_response({"archived": count})

    async def list_external_channels(self, request: web.Request) -> web.Response:
        mappings = await self._bridge.list_channel_mappings(
            request.match_info["event_id"]
        )
        return web.json_response(dump(mappings))

    async def create_external_channel(self, request: web.Request) -> web.Response:
        body = await read_body(request, CreateExternalChannelBody)
        mapping = await self._bridge.create_external_channel(
            request.match_info["event_id"],
            body.platform,
            get_caller(request),
            custom_name=body.custom_group_name,
        )
        return web.json_response(dump(mapping), status=201)

    async def deactivate_external_channel(self, request: web.Request) -> web.Response:
        await self._bridge.deactivate_channel(
            request.match_info["mapping_id"],
            get_caller(request),
            archive_external_group=bool(
                query_bool(request, "archive_external_group")
            ),
        )
        return web.Response(status=204)

    async def store_conversation(self, request: web.Request) -> web.Response:
        """Record the conversation reference reported by the Teams bot."""
        body = await read_body(request, ConversationReferenceBody)
        mapping, is_new = await self._connectors.store_conversation_reference(
            conversation_id=body.conversation_id,
            conversation_reference_json=body.conversation_reference_json,
            tenant_id=body.tenant_id,
            channel_name=body.channel_name,
            installed_by_name=body.installed_by_name,
            is_emulator=body.is_emulator,
        )
        return web.json_response(
            {
                "mapping_id": mapping.id,
                "event_id": mapping.event_id,
                "is_new": is_new,
            },
            status=201 if is_new else 200,
        )

    async def list_connectors(self, request: web.Request) -> web.Response:
        connectors = await self._connectors.list_connectors(
            is_emulator=query_bool(request, "is_emulator"),
            is_active=query_bool(request, "is_active"),
            stale_days=query_int(request, "stale_days"),
        )
        return web.json_response(dump(connectors))

    async def link_connector(self, request: web.Request) -> web.Response:
        body = await read_body(request, LinkConnectorBody)
        mapping = await self._connectors.link_connector(
            request.match_info["mapping_id"], body.event_id, get_caller(request)
        )
        return web.json_response(dump(mapping))

    async def unlink_connector(self, request: web.Request) -> web.Response:
        mapping = await self._connectors.unlink_connector(
            request.match_info["mapping_id"], get_caller(request)
        )
        return web.json_response(dump(mapping))

    async def rename_connector(self, request: web.Request) -> web.Response:
        body = await read_body(request, RenameConnectorBody)
        mapping = await self._connectors.rename_connector(
            request.match_info["mapping_id"], body.display_name, get_caller(request)
        )
        return web.json_response(dump(mapping))

    async def deactivate_connector(self, request: web.Request) -> web.Response:
        await self._connectors.deactivate_connector(
            request.match_info["mapping_id"], get_caller(request)
        )
        return web.Response(status=204)

    async def cleanup_stale(self, request: web.Request) -> web.Response:
        days = query_int(request, "inactive_days")
        if days is None:
            ids = await self._connectors.cleanup_stale_connectors()
        else:
            ids = await self._connectors.cleanup_stale_connectors(days)
        return web.json_response({"deactivated": ids})

    async def cleanup_emulators(self, request: web.Request) -> web.Response:
        ids = await self._connectors.cleanup_emulator_connectors()
        return web.json_response({"deactivated": ids})

    async def get_conversation_reference(self, request: web.Request) -> web.Response:
        """Return the stored conversation reference for the Teams bot service."""
        mapping = await self._connectors.get_conversation_reference(
            request.match_info["conversation_id"]
        )
        return web.json_response(
            {
                "mapping_id": mapping.id,
                "conversation_reference_json": mapping.conversation_reference_json,
                "is_active": mapping.is_active,
            }
        )

    async def bot_removed(self, request: web.Request) -> web.Response:
        """Deactivate the connector of a conversation the bot was removed from."""
        removed_by = None
        if request.can_read_body:
            removed_by = (await read_body(request, BotRemovedBody)).removed_by
        conversation_id = request.match_info["conversation_id"]
        mapping = await self._connectors.notify_bot_removed(conversation_id, removed_by)
        return web.json_response(
            {"mapping_id": mapping.id, "conversation_id": conversation_id}
        )

    async def reactivate_connector(self, request: web.Request) -> web.Response:
        mapping = await self._connectors.reactivate_connector(
            request.match_info["mapping_id"], get_caller(request)
        )
        return web.json_response(dump(mapping))

    async def broadcast_announcement(self, request: web.Request) -> web.Response:
        """Send an announcement to the event's Teams connectors.

        The announcer defaults to the caller's full name.
        """
        body = await read_body(request, AnnouncementBody)
        caller = get_caller(request)
        outcomes = await self._connectors.broadcast_announcement(
            body.event_id,
            body.title,
            body.message,
            sender_name=body.sender_name or (caller.full_name if caller else None),
            priority=body.priority,
        )
        sent = sum(1 for outcome in outcomes if outcome.delivered)
        return web.json_response(
            {
                "success": sent > 0,
                "channels_sent": sent,
                "outcomes": dump(outcomes),
            }
        )
