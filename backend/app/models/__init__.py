from app.models.division import Division, Group
from app.models.match import Match
from app.models.team import Team
from app.models.tournament import Tournament
from app.models.venue import Pitch, Venue

__all__ = [
    "Tournament",
    "Division",
    "Group",
    "Team",
    "Venue",
    "Pitch",
    "Match",
]
