from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match import Match
    from app.models.team import Team
    from app.models.tournament import Tournament


class Division(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "name", name="uq_tournament_division_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    match_duration: Optional[int] = Field(default=None)  # minutes; overrides tournament default

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="divisions")
    groups: List["Group"] = Relationship(back_populates="division")
    teams: List["Team"] = Relationship(back_populates="division")
    matches: List["Match"] = Relationship(back_populates="division")


class Group(SQLModel, table=True):
    """Sub-grouping of a division (e.g. "Group A"). Never relevant to conflicts."""

    __table_args__ = (SAUniqueConstraint("division_id", "name", name="uq_division_group_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    division_id: int = Field(foreign_key="division.id", index=True)
    name: str

    division: "Division" = Relationship(back_populates="groups")
