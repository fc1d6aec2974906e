"""ChatMessage entity for channel messages."""

from datetime import datetime, timezone

import ulid
from sqlalchemy import Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from chatbridge.domain.entities.external_channel_mapping import ExternalPlatform


class ChatMessage(SQLModel, table=True):
    """Chat message entity.

    Messages ingested from a bridge carry ``external_source`` and
    ``external_message_id``. The unique constraint on
    ``(channel_id, external_message_id)`` is the deduplication guard for
    concurrent webhook deliveries; locally composed messages leave the
    external id NULL and are unaffected.

    Attributes:
        id: ULID of the message.
        channel_id: Owning channel.
        message: Message text.
        sender_display_name: Name shown to viewers.
        is_active: False once archived.
        external_source: Platform the message was ingested from.
        external_message_id: Platform message id.
        external_sender_id: Platform user id of the sender.
        external_timestamp: Time the platform recorded the message.
        external_attachment_url: First image attachment, if any.
        external_channel_mapping_id: Mapping the message arrived through.
        created_by: Email of the author, or "system" for ingested messages.
        created_at: Record creation time.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint(
            "channel_id", "external_message_id", name="uq_chat_message_external"
        ),
        Index("idx_message_channel_created", "channel_id", "is_active", "created_at"),
    )

    id: str = Field(default_factory=lambda: str(ulid.new()), primary_key=True)
    channel_id: str = Field(index=True)
    message: str
    sender_display_name: str
    is_active: bool = Field(default=True)

    external_source: ExternalPlatform | None = None
    external_message_id: str | None = None
    external_sender_id: str | None = None
    external_timestamp: datetime | None = None
    external_attachment_url: str | None = None
    external_channel_mapping_id: str | None = None

    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_external_message(self) -> bool:
        """Return True if the message was ingested from an external platform."""
        return self.external_source is not None
