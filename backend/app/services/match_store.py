"""
Match store: the persistence side of schedule conflict checking.

Queries return Match rows; to_time_slot() converts them into the pure
MatchTimeSlot shape used by conflict_detection. Candidate queries prefilter
with the general interval-overlap condition and never filter by division or
group. apply_batch() only stages writes in the caller's transaction; the
caller owns commit/rollback.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from sqlalchemy import or_, update
from sqlmodel import Session, select

from app.models.match import Match
from app.models.tournament import Tournament
from app.services.conflict_detection import DEFAULT_MATCH_DURATION_MINUTES, MatchTimeSlot, get_match_end_time
from app.utils.utc import ensure_utc, to_naive_utc

if TYPE_CHECKING:
    from app.services.schedule_update import MatchPlacement

ASSIGNMENT_TYPE_MANUAL = "MANUAL"
STATUS_SCHEDULED = "scheduled"
STATUS_UNSCHEDULED = "unscheduled"


class StaleScheduleError(Exception):
    """The tournament schedule changed since it was read (revision mismatch)"""
    pass


# ============================================================================
# Conversions
# ============================================================================


def effective_duration(match: Match) -> int:
    """Match duration, else division duration, else tournament default, else 90."""
    if match.duration_minutes:
        return match.duration_minutes
    if match.division is not None and match.division.match_duration:
        return match.division.match_duration
    if match.tournament is not None and match.tournament.default_match_duration:
        return match.tournament.default_match_duration
    return DEFAULT_MATCH_DURATION_MINUTES


def to_time_slot(match: Match) -> MatchTimeSlot:
    return MatchTimeSlot(
        id=match.id,
        start_time=ensure_utc(match.start_time),
        end_time=ensure_utc(match.end_time),
        pitch_id=match.pitch_id,
        home_team_id=match.home_team_id,
        away_team_id=match.away_team_id,
        division_id=match.division_id,
        match_duration=effective_duration(match),
    )


def placement_time_slot(match: Match, placement: "MatchPlacement") -> MatchTimeSlot:
    """
    The slot a match would occupy once the placement is applied.

    Teams, division and duration come from the stored match. Pitch always
    comes from the placement (None clears it). A placement without a start
    keeps the stored window; a new start without an end drops the stored end
    so it is re-derived from the duration.
    """
    if placement.start_time is not None:
        start_time = ensure_utc(placement.start_time)
        end_time = ensure_utc(placement.end_time)
    else:
        start_time = ensure_utc(match.start_time)
        end_time = ensure_utc(placement.end_time) if placement.end_time is not None else ensure_utc(match.end_time)

    return MatchTimeSlot(
        id=match.id,
        start_time=start_time,
        end_time=end_time,
        pitch_id=placement.pitch_id,
        home_team_id=match.home_team_id,
        away_team_id=match.away_team_id,
        division_id=match.division_id,
        match_duration=effective_duration(match),
    )


def teams_label(match: Match) -> str:
    home = match.home_team.name if match.home_team else "TBD"
    away = match.away_team.name if match.away_team else "TBD"
    return f"{home} vs {away}"


# ============================================================================
# Queries
# ============================================================================


def _where_window_may_overlap(query, window_start: Optional[datetime], window_end: Optional[datetime]):
    """Coarse SQL prefilter for [window_start, window_end); exact check happens in Python."""
    if window_end is not None:
        query = query.where(Match.start_time < to_naive_utc(window_end))
    if window_start is not None:
        # Rows without an end_time derive it from duration later, keep them
        query = query.where(or_(Match.end_time.is_(None), Match.end_time > to_naive_utc(window_start)))  # type: ignore[union-attr]
    return query


def get_tournament_for_update(session: Session, tournament_id: int) -> Optional[Tournament]:
    """Load the tournament row, locking it where the backend supports FOR UPDATE."""
    return session.exec(select(Tournament).where(Tournament.id == tournament_id).with_for_update()).first()


def find_matches_by_tournament_and_ids(session: Session, tournament_id: int, ids: Iterable[int]) -> List[Match]:
    ids = list(ids)
    if not ids:
        return []
    return list(
        session.exec(
            select(Match).where(
                Match.tournament_id == tournament_id,
                Match.id.in_(ids),  # type: ignore[union-attr]
            )
        ).all()
    )


def find_matches_by_tournament_and_pitch(
    session: Session,
    tournament_id: int,
    pitch_id: int,
    exclude_id: Optional[int] = None,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> List[Match]:
    """Timed matches on a pitch whose window can overlap the given window."""
    query = select(Match).where(
        Match.tournament_id == tournament_id,
        Match.pitch_id == pitch_id,
        Match.start_time.is_not(None),  # type: ignore[union-attr]
    )
    if exclude_id is not None:
        query = query.where(Match.id != exclude_id)
    query = _where_window_may_overlap(query, window_start, window_end)
    return list(session.exec(query.order_by(Match.start_time, Match.id)).all())


def find_matches_by_tournament_and_teams(
    session: Session,
    tournament_id: int,
    team_ids: Iterable[int],
    exclude_id: Optional[int] = None,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> List[Match]:
    """Timed matches involving any of team_ids (either side), on any pitch."""
    team_ids = [t for t in team_ids if t is not None]
    if not team_ids:
        return []
    query = select(Match).where(
        Match.tournament_id == tournament_id,
        Match.start_time.is_not(None),  # type: ignore[union-attr]
        or_(
            Match.home_team_id.in_(team_ids),  # type: ignore[union-attr]
            Match.away_team_id.in_(team_ids),  # type: ignore[union-attr]
        ),
    )
    if exclude_id is not None:
        query = query.where(Match.id != exclude_id)
    query = _where_window_may_overlap(query, window_start, window_end)
    return list(session.exec(query.order_by(Match.start_time, Match.id)).all())


def find_matches_by_tournament(session: Session, tournament_id: int, pitch_id: Optional[int] = None) -> List[Match]:
    query = select(Match).where(Match.tournament_id == tournament_id)
    if pitch_id is not None:
        query = query.where(Match.pitch_id == pitch_id)
    return list(session.exec(query.order_by(Match.start_time, Match.id)).all())


# ============================================================================
# Writes
# ============================================================================


def bump_schedule_revision(session: Session, tournament_id: int, expected_revision: int) -> int:
    """
    Compare-and-set the tournament's schedule_revision.

    Raises:
        StaleScheduleError: another batch was applied after expected_revision was read
    """
    result = session.connection().execute(
        update(Tournament)
        .where(Tournament.id == tournament_id, Tournament.schedule_revision == expected_revision)
        .values(schedule_revision=expected_revision + 1)
    )
    if result.rowcount != 1:
        raise StaleScheduleError(
            f"Tournament {tournament_id} schedule changed (expected revision {expected_revision})"
        )
    return expected_revision + 1


def apply_batch(
    session: Session,
    tournament_id: int,
    placements: List["MatchPlacement"],
    expected_revision: int,
    scheduled_by: Optional[str] = None,
) -> List[Match]:
    """
    Stage every placement plus the revision bump in the current transaction.

    Nothing is committed here. Raises StaleScheduleError before any match row
    is touched if the revision moved.
    """
    bump_schedule_revision(session, tournament_id, expected_revision)

    matches: Dict[int, Match] = {
        m.id: m for m in find_matches_by_tournament_and_ids(session, tournament_id, [p.id for p in placements])
    }
    now = datetime.utcnow()
    updated: List[Match] = []

    for placement in placements:
        match = matches[placement.id]
        slot = placement_time_slot(match, placement)

        match.venue_id = placement.venue_id
        match.pitch_id = placement.pitch_id
        if slot.start_time is not None:
            match.start_time = to_naive_utc(slot.start_time)
            match.end_time = to_naive_utc(get_match_end_time(slot))
        match.status = STATUS_SCHEDULED if match.pitch_id is not None and match.start_time is not None else STATUS_UNSCHEDULED
        match.assignment_type = ASSIGNMENT_TYPE_MANUAL
        match.scheduled_at = now
        match.scheduled_by = scheduled_by
        session.add(match)
        updated.append(match)

    session.flush()
    return updated
