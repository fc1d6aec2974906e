"""Webhook payload parser implementations."""

from datetime import datetime, timezone
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from chatbridge.application.handlers import WebhookPayloadParser
from chatbridge.domain.entities.external_channel_mapping import ExternalPlatform
from chatbridge.domain.entities.inbound_delivery import InboundMessage
from chatbridge.domain.errors import ValidationError

TEAMS_MESSAGE_ACTIVITY = "message"


class GroupMeAttachment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    url: str | None = None


class GroupMeWebhookPayload(BaseModel):
    """Message callback body posted by a GroupMe bot."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str = Field(min_length=1)
    group_id: str = Field(min_length=1)
    user_id: str = ""
    name: str = ""
    text: str | None = None
    created_at: int = 0
    sender_type: str = "user"
    attachments: list[GroupMeAttachment] = Field(default_factory=list)


class TeamsWebhookPayload(BaseModel):
    """Message relay body posted by the Teams bot service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: str = Field(alias="messageId", min_length=1)
    conversation_id: str = Field(alias="conversationId", min_length=1)
    sender_id: str = Field(default="", alias="senderId")
    sender_name: str = Field(default="", alias="senderName")
    text: str | None = None
    timestamp: datetime | None = None
    activity_type: str = Field(default=TEAMS_MESSAGE_ACTIVITY, alias="activityType")
    image_url: str | None = Field(default=None, alias="imageUrl")


def _validate(model: type[BaseModel], payload: Any) -> Any:
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid webhook payload: {e.error_count()} error(s)") from e


class GroupMePayloadParser:
    """Parser for GroupMe bot callbacks."""

    def parse(self, payload: Any) -> InboundMessage | None:
        body: GroupMeWebhookPayload = _validate(GroupMeWebhookPayload, payload)
        image = next(
            (a.url for a in body.attachments if a.type == "image" and a.url), None
        )
        return InboundMessage(
            external_group_id=body.group_id,
            external_message_id=body.id,
            sender_name=body.name or "GroupMe user",
            sender_id=body.user_id or None,
            sender_type=body.sender_type or "user",
            text=body.text,
            attachment_url=image,
            sent_at=(
                datetime.fromtimestamp(body.created_at, tz=timezone.utc)
                if body.created_at
                else None
            ),
        )


class TeamsPayloadParser:
    """Parser for messages relayed by the Teams bot service.

    Only message activities produce a message; other activity types
    (conversation updates, typing) are acknowledged and ignored.
    """

    def parse(self, payload: Any) -> InboundMessage | None:
        body: TeamsWebhookPayload = _validate(TeamsWebhookPayload, payload)
        if body.activity_type.lower() != TEAMS_MESSAGE_ACTIVITY:
            return None
        return InboundMessage(
            external_group_id=body.conversation_id,
            external_message_id=body.message_id,
            sender_name=body.sender_name or "Teams user",
            sender_id=body.sender_id or None,
            text=body.text,
            attachment_url=body.image_url,
            sent_at=body.timestamp,
        )


class PayloadParserRegistry:
    """Registry for webhook payload parsers."""

    def __init__(self) -> None:
        """Initialize the registry."""
        self._parsers: dict[ExternalPlatform, WebhookPayloadParser] = {}

    def register(self, platform: ExternalPlatform, parser: WebhookPayloadParser) -> None:
        """Register a parser for a platform.

        Args:
            platform: The platform whose webhooks the parser understands.
            parser: The parser to register.
        """
        self._parsers[platform] = parser

    def get_parser(self, platform: ExternalPlatform) -> WebhookPayloadParser | None:
        """Get the parser for a platform.

        Args:
            platform: The platform.

        Returns:
            The parser if registered, None otherwise.
        """
        return self._parsers.get(platform)


def create_parser_registry() -> PayloadParserRegistry:
    """Create a registry with the parsers of every webhook-capable platform."""
    registry = PayloadParserRegistry()
    registry.register(ExternalPlatform.GROUPME, GroupMePayloadParser())
    registry.register(ExternalPlatform.TEAMS, TeamsPayloadParser())
    return registry
