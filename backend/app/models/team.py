from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.division import Division
    from app.models.match import Match
    from app.models.tournament import Tournament


class Team(SQLModel, table=True):
    __table_args__ = (
        # Team names are unique within a division
        SAUniqueConstraint("division_id", "name", name="uq_division_team_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    division_id: Optional[int] = Field(default=None, foreign_key="division.id", index=True)
    name: str
    short_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")
    division: Optional["Division"] = Relationship(back_populates="teams")
    home_matches: List["Match"] = Relationship(
        back_populates="home_team", sa_relationship_kwargs={"foreign_keys": "Match.home_team_id"}
    )
    away_matches: List["Match"] = Relationship(
        back_populates="away_team", sa_relationship_kwargs={"foreign_keys": "Match.away_team_id"}
    )
