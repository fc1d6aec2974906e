"""Caller identity value object."""

from pydantic import BaseModel, Field


class Caller(BaseModel):
    """Identity of the user on whose behalf a service call runs.

    Passed explicitly to every operation that records authorship or checks
    visibility.
    """

    email: str
    full_name: str
    position_ids: frozenset[str] = Field(default_factory=frozenset)

    def holds_position(self, position_id: str | None) -> bool:
        """Return True if the caller currently holds the given position."""
        return position_id is not None and position_id in self.position_ids
