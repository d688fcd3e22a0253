from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match import Match
    from app.models.tournament import Tournament


class Venue(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    address: Optional[str] = None

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="venues")
    pitches: List["Pitch"] = Relationship(back_populates="venue")


class Pitch(SQLModel, table=True):
    """A single playing surface within a venue."""

    __table_args__ = (SAUniqueConstraint("venue_id", "name", name="uq_venue_pitch_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    venue_id: int = Field(foreign_key="venue.id", index=True)
    name: str
    number: Optional[int] = Field(default=None)

    # Relationships
    venue: "Venue" = Relationship(back_populates="pitches")
    matches: List["Match"] = Relationship(back_populates="pitch")
