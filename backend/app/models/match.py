from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.division import Division
    from app.models.team import Team
    from app.models.tournament import Tournament
    from app.models.venue import Pitch


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    division_id: Optional[int] = Field(default=None, foreign_key="division.id")
    group_id: Optional[int] = Field(default=None, foreign_key="group.id")

    # Teams are nullable until a bracket position is resolved
    home_team_id: Optional[int] = Field(default=None, foreign_key="team.id", index=True)
    away_team_id: Optional[int] = Field(default=None, foreign_key="team.id", index=True)

    # Placement (all UTC, stored naive)
    venue_id: Optional[int] = Field(default=None, foreign_key="venue.id")
    pitch_id: Optional[int] = Field(default=None, foreign_key="pitch.id", index=True)
    start_time: Optional[datetime] = Field(default=None, index=True)
    end_time: Optional[datetime] = Field(default=None)
    duration_minutes: Optional[int] = Field(default=None)

    status: str = Field(default="unscheduled")  # "unscheduled" | "scheduled"
    assignment_type: Optional[str] = Field(default=None)  # "MANUAL" | None
    scheduled_at: Optional[datetime] = Field(default=None)
    scheduled_by: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    division: Optional["Division"] = Relationship(back_populates="matches")
    pitch: Optional["Pitch"] = Relationship(back_populates="matches")
    home_team: Optional["Team"] = Relationship(
        back_populates="home_matches", sa_relationship_kwargs={"foreign_keys": "Match.home_team_id"}
    )
    away_team: Optional["Team"] = Relationship(
        back_populates="away_matches", sa_relationship_kwargs={"foreign_keys": "Match.away_team_id"}
    )
