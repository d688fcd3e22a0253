from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.database import get_session
from app.main import app

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables dropped after every test so scenarios never leak into each other
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on fresh tables"""
    # Import all models to ensure they're registered BEFORE create_all
    from app.models.division import Division, Group  # noqa: F401
    from app.models.match import Match  # noqa: F401
    from app.models.team import Team  # noqa: F401
    from app.models.tournament import Tournament  # noqa: F401
    from app.models.venue import Pitch, Venue  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place
    for the entire duration. This ensures the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()




@pytest.fixture
def schedule_setup(session: Session):
    """
    One tournament with two divisions, four teams, one venue with two pitches
    and a second tournament to test membership checks.

    Returns plain ids so tests never depend on expired ORM state.
    """
    from app.models.division import Division, Group
    from app.models.team import Team
    from app.models.tournament import Tournament
    from app.models.venue import Pitch, Venue

    tournament = Tournament(
        name="Spring Cup",
        location="Helsinki",
        timezone="Europe/Helsinki",
        start_date=date(2026, 3, 15),
        end_date=date(2026, 3, 16),
    )
    other_tournament = Tournament(
        name="Other Cup",
        location="Espoo",
        start_date=date(2026, 3, 15),
        end_date=date(2026, 3, 16),
    )
    session.add(tournament)
    session.add(other_tournament)
    session.commit()
    session.refresh(tournament)
    session.refresh(other_tournament)

    u12 = Division(tournament_id=tournament.id, name="U12")
    u14 = Division(tournament_id=tournament.id, name="U14", match_duration=60)
    session.add(u12)
    session.add(u14)
    session.commit()
    session.refresh(u12)
    session.refresh(u14)

    group_a = Group(division_id=u12.id, name="Group A")
    session.add(group_a)

    teams = {}
    for name, division in (("T1", u12), ("T2", u12), ("T3", u12), ("T4", u14), ("T5", u14)):
        team = Team(tournament_id=tournament.id, division_id=division.id, name=name)
        session.add(team)
        teams[name] = team

    venue = Venue(tournament_id=tournament.id, name="Central Park")
    session.add(venue)
    session.commit()
    session.refresh(venue)
    session.refresh(group_a)

    pitch_1 = Pitch(venue_id=venue.id, name="Pitch 1", number=1)
    pitch_2 = Pitch(venue_id=venue.id, name="Pitch 2", number=2)
    session.add(pitch_1)
    session.add(pitch_2)
    session.commit()
    session.refresh(pitch_1)
    session.refresh(pitch_2)
    for team in teams.values():
        session.refresh(team)

    return {
        "tournament_id": tournament.id,
        "other_tournament_id": other_tournament.id,
        "divisions": {"U12": u12.id, "U14": u14.id},
        "group_a": group_a.id,
        "teams": {name: team.id for name, team in teams.items()},
        "venue_id": venue.id,
        "pitch_1": pitch_1.id,
        "pitch_2": pitch_2.id,
    }


@pytest.fixture
def make_match(session: Session, schedule_setup):
    """Factory: create a match in the setup tournament and return its id."""
    from app.models.match import Match

    def _make(
        home="T1",
        away="T2",
        pitch=None,
        start=None,
        end=None,
        division="U12",
        duration=None,
        tournament_id=None,
    ) -> int:
        match = Match(
            tournament_id=tournament_id or schedule_setup["tournament_id"],
            division_id=schedule_setup["divisions"][division] if division else None,
            home_team_id=schedule_setup["teams"][home] if home else None,
            away_team_id=schedule_setup["teams"][away] if away else None,
            venue_id=schedule_setup["venue_id"] if pitch else None,
            pitch_id=schedule_setup[pitch] if pitch else None,
            start_time=start,
            end_time=end,
            duration_minutes=duration,
            status="scheduled" if pitch and start else "unscheduled",
        )
        session.add(match)
        session.commit()
        session.refresh(match)
        return match.id

    return _make
