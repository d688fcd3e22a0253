from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.division import Division
    from app.models.match import Match
    from app.models.team import Team
    from app.models.venue import Venue


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    location: Optional[str] = None
    timezone: str = Field(default="UTC")
    start_date: date
    end_date: date
    notes: Optional[str] = None
    default_match_duration: Optional[int] = Field(default=None)  # minutes; falls back to 90

    # Bumped by every applied schedule batch (optimistic concurrency guard)
    schedule_revision: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    divisions: List["Division"] = Relationship(back_populates="tournament")
    teams: List["Team"] = Relationship(back_populates="tournament")
    venues: List["Venue"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
