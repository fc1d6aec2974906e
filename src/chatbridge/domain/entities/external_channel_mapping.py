"""ExternalChannelMapping entity linking an event to an external platform group."""

from datetime import datetime, timezone
from enum import Enum

import ulid
from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel


class ExternalPlatform(str, Enum):
    """External messaging platforms known to the bridge."""

    GROUPME = "groupme"
    SIGNAL = "signal"
    TEAMS = "teams"
    SLACK = "slack"


class ExternalChannelMapping(SQLModel, table=True):
    """Mapping between an event and a group on an external platform.

    ``external_group_id`` is the platform's idempotency anchor: at most one
    active mapping may exist per ``(platform, external_group_id)``. The partial
    unique index enforces this in the store.

    ``conversation_reference_json`` is an opaque descriptor owned by the
    platform adapter (Teams proactive messaging). It is persisted and handed
    back verbatim, never parsed here.
    """

    __tablename__ = "external_channel_mappings"
    __table_args__ = (
        Index(
            "uq_mapping_active_group",
            "platform",
            "external_group_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_mapping_event_platform", "event_id", "platform", "is_active"),
    )

    id: str = Field(default_factory=lambda: str(ulid.new()), primary_key=True)
    event_id: str | None = Field(default=None, index=True)
    platform: ExternalPlatform
    external_group_id: str
    external_group_name: str
    bot_id: str = Field(default="")
    webhook_secret: str
    share_url: str | None = None
    is_active: bool = Field(default=True)

    conversation_reference_json: str | None = None
    tenant_id: str | None = None
    last_activity_at: datetime | None = None
    installed_by_name: str | None = None
    is_emulator: bool = Field(default=False)

    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_modified_by: str | None = None
    last_modified_at: datetime | None = None

    @property
    def is_linked(self) -> bool:
        """Return True if the mapping is attached to an event."""
        return self.event_id is not None
