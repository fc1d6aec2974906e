"""Inbound webhook delivery entities."""

from datetime import datetime, timezone

import ulid
from pydantic import BaseModel, Field

from chatbridge.domain.entities.external_channel_mapping import ExternalPlatform

BOT_SENDER_TYPE = "bot"


class InboundMessage(BaseModel):
    """Platform-neutral view of a message pushed by an external platform.

    Attributes:
        external_group_id: Group or conversation the platform says it belongs to.
        external_message_id: Platform message id, the deduplication key.
        sender_name: Display name of the sender on the platform.
        sender_id: Platform user id of the sender.
        sender_type: "user" or "bot".
        text: Message text, possibly empty when only an attachment was sent.
        attachment_url: URL of the first image attachment, if any.
        sent_at: Time the platform recorded the message.
    """

    external_group_id: str
    external_message_id: str
    sender_name: str
    sender_id: str | None = None
    sender_type: str = "user"
    text: str | None = None
    attachment_url: str | None = None
    sent_at: datetime | None = None

    @property
    def is_from_bot(self) -> bool:
        """Return True if the platform flagged the sender as a bot."""
        return self.sender_type.lower() == BOT_SENDER_TYPE

    @property
    def display_text(self) -> str:
        """Return the text to store, substituting a marker for image-only posts."""
        if self.text:
            return self.text
        if self.attachment_url:
            return "[Image]"
        return ""


class InboundDelivery(BaseModel):
    """A webhook delivery accepted by the HTTP layer and awaiting processing."""

    id: str = Field(default_factory=lambda: str(ulid.new()))
    platform: ExternalPlatform
    mapping_id: str
    message: InboundMessage
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def get_identity_key(self) -> str:
        """Return the identity key used to collapse redelivered webhooks."""
        return (
            f"{self.platform.value}:{self.mapping_id}:"
            f"{self.message.external_message_id}"
        )
