"""
Services Layer

Pure business logic services that:
- Accept domain inputs (IDs, sessions, etc.)
- Return domain outputs (models, dicts, etc.)
- Do NOT depend on HTTP request/response objects
- Do NOT mutate data unless explicitly designed to
"""

# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from app.models.division import Division, Group  # noqa: F401
from app.models.match import Match  # noqa: F401
from app.models.team import Team  # noqa: F401
from app.models.tournament import Tournament  # noqa: F401
from app.models.venue import Pitch, Venue  # noqa: F401
