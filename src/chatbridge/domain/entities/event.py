"""Operational event and position entities.

Both are owned by the incident-management side of the application; the bridge
reads them to name external groups and to build position channels.
"""

from sqlmodel import Field, SQLModel


class Event(SQLModel, table=True):
    """Operational event that channels belong to."""

    __tablename__ = "events"

    id: str = Field(primary_key=True)
    name: str


class Position(SQLModel, table=True):
    """Organisational role used to restrict Position channels."""

    __tablename__ = "positions"

    id: str = Field(primary_key=True)
    name: str
    icon_name: str | None = None
    color: str | None = None
    display_order: int = Field(default=0)
    is_active: bool = Field(default=True)
