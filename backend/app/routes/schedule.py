"""
Match schedule endpoints: batch placement with conflict detection.

POST   /tournaments/{id}/matches/schedule        apply a batch (all-or-nothing)
POST   /tournaments/{id}/matches/schedule/check  dry run, conflict report only
GET    /tournaments/{id}/matches                 current placements
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_serializer, field_validator
from sqlmodel import Session

from app.database import get_session
from app.models.match import Match
from app.models.tournament import Tournament
from app.services.match_store import find_matches_by_tournament, teams_label
from app.services.schedule_update import (
    BatchMembershipError,
    BatchShapeError,
    MatchPlacement,
    ScheduleApplyError,
    ScheduleConcurrencyError,
    TournamentNotFoundError,
    check_match_batch,
    schedule_match_batch,
)
from app.utils.utc import format_utc, is_valid_time_string, parse_utc

router = APIRouter()


# ============================================================================
# Request / Response Models
# ============================================================================


class MatchPlacementRequest(BaseModel):
    id: int
    venue_id: Optional[int] = None
    pitch_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_as_utc(cls, v):
        """Timestamps without a zone marker are UTC, never server-local."""
        if v is None or v == "":
            return None
        if not isinstance(v, (str, datetime)) or (isinstance(v, str) and not is_valid_time_string(v)):
            raise ValueError(f"{v!r} is not an ISO-8601 timestamp (e.g. 2026-03-15T14:00:00Z)")
        return parse_utc(v)

    def to_placement(self) -> MatchPlacement:
        return MatchPlacement(
            id=self.id,
            pitch_id=self.pitch_id,
            venue_id=self.venue_id,
            start_time=self.start_time,
            end_time=self.end_time,
        )


class ScheduleBatchRequest(BaseModel):
    matches: List[MatchPlacementRequest]
    scheduled_by: Optional[str] = None


class ScheduledMatchResponse(BaseModel):
    id: int
    tournament_id: int
    division_id: Optional[int] = None
    group_id: Optional[int] = None
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    teams: str
    venue_id: Optional[int] = None
    pitch_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: str
    assignment_type: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    scheduled_by: Optional[str] = None

    @field_serializer("start_time", "end_time", "scheduled_at")
    def serialize_utc(self, v: Optional[datetime]) -> Optional[str]:
        return format_utc(v)


class ScheduleBatchResponse(BaseModel):
    message: str
    schedule_revision: int
    matches: List[ScheduledMatchResponse]


class ScheduleCheckResponse(BaseModel):
    ok: bool
    conflicts: List[Dict[str, Any]]


def _to_response(m: Match) -> ScheduledMatchResponse:
    return ScheduledMatchResponse(
        id=m.id,
        tournament_id=m.tournament_id,
        division_id=m.division_id,
        group_id=m.group_id,
        home_team_id=m.home_team_id,
        away_team_id=m.away_team_id,
        teams=teams_label(m),
        venue_id=m.venue_id,
        pitch_id=m.pitch_id,
        start_time=m.start_time,
        end_time=m.end_time,
        status=m.status,
        assignment_type=m.assignment_type,
        scheduled_at=m.scheduled_at,
        scheduled_by=m.scheduled_by,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/tournaments/{tournament_id}/matches/schedule", response_model=ScheduleBatchResponse)
def schedule_matches(
    tournament_id: int,
    body: ScheduleBatchRequest,
    session: Session = Depends(get_session),
):
    """Apply a batch of match placements; any conflict rejects the whole batch (409)."""
    placements = [m.to_placement() for m in body.matches]
    try:
        result = schedule_match_batch(session, tournament_id, placements, scheduled_by=body.scheduled_by)
    except TournamentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (BatchShapeError, BatchMembershipError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScheduleConcurrencyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ScheduleApplyError as e:
        raise HTTPException(status_code=500, detail=f"SCHEDULE_APPLY_FAILED: {e}")

    if result.rejected:
        return JSONResponse(
            status_code=409,
            content={
                "error": "Scheduling conflicts detected",
                "conflicts": [p.to_dict() for p in result.rejected],
            },
        )

    return ScheduleBatchResponse(
        message=f"Updated {len(result.applied)} matches",
        schedule_revision=result.schedule_revision,
        matches=[_to_response(m) for m in result.applied],
    )


@router.post("/tournaments/{tournament_id}/matches/schedule/check", response_model=ScheduleCheckResponse)
def check_schedule(
    tournament_id: int,
    body: ScheduleBatchRequest,
    session: Session = Depends(get_session),
):
    """Report every conflict a batch would cause without writing anything."""
    placements = [m.to_placement() for m in body.matches]
    try:
        result = check_match_batch(session, tournament_id, placements)
    except TournamentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (BatchShapeError, BatchMembershipError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ScheduleCheckResponse(ok=not result.rejected, conflicts=[p.to_dict() for p in result.rejected])


@router.get("/tournaments/{tournament_id}/matches", response_model=List[ScheduledMatchResponse])
def list_matches(
    tournament_id: int,
    pitch_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")

    return [_to_response(m) for m in find_matches_by_tournament(session, tournament_id, pitch_id)]
