"""
Schedule Update Orchestrator - batch placement of matches on pitches

Takes a batch of proposed placements for one tournament and either applies
all of them or none:

1. RECEIVED: batch shape checked (unique ids, sane windows)
2. VALIDATED: every match id belongs to the tournament and every window,
   merged with the stored match, ends after it starts
3. CHECKED: every placement checked against stored matches and against the
   other placements of the same batch (pitch + team double-booking)
4. REJECTED: at least one conflict, nothing written, full report returned
5. APPLIED: all placements written in one transaction

Check-then-act is guarded by the tournament's schedule_revision: the apply
step only succeeds if no other batch was applied since the check read it.
On a lost race the whole check is re-run.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.models.match import Match
from app.services.conflict_detection import (
    ConflictType,
    MatchTimeSlot,
    find_all_match_conflicts,
    get_match_end_time,
)
from app.services.match_store import (
    StaleScheduleError,
    apply_batch,
    find_matches_by_tournament_and_ids,
    find_matches_by_tournament_and_pitch,
    find_matches_by_tournament_and_teams,
    get_tournament_for_update,
    placement_time_slot,
    teams_label,
    to_time_slot,
)
from app.utils.utc import ensure_utc, format_utc

logger = logging.getLogger(__name__)

SCHEDULE_MAX_ATTEMPTS = int(os.getenv("SCHEDULE_MAX_ATTEMPTS", "3"))


# ============================================================================
# Errors
# ============================================================================


class ScheduleBatchError(Exception):
    """Base exception for schedule batch errors"""
    pass


class TournamentNotFoundError(ScheduleBatchError):
    pass


class BatchShapeError(ScheduleBatchError):
    """The batch is not a well-formed list of placements"""
    pass


class BatchMembershipError(ScheduleBatchError):
    """One or more placements reference matches outside the tournament"""

    def __init__(self, message: str, missing_ids: Sequence[int]):
        super().__init__(message)
        self.missing_ids = list(missing_ids)


class ScheduleConcurrencyError(ScheduleBatchError):
    """Concurrent batches kept changing the schedule; retries exhausted"""
    pass


class ScheduleApplyError(ScheduleBatchError):
    """A valid, conflict-free batch could not be written"""
    pass


# ============================================================================
# Batch types
# ============================================================================


class ScheduleState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    CHECKED = "checked"
    REJECTED = "rejected"
    APPLIED = "applied"


@dataclass
class MatchPlacement:
    """Proposed pitch + time window for one match. Times are UTC."""
    id: int
    pitch_id: Optional[int] = None
    venue_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


@dataclass
class ConflictingMatch:
    id: int
    conflict_type: ConflictType
    teams_label: str
    start_time: datetime
    end_time: datetime

    def to_dict(self):
        return {
            "id": self.id,
            "conflict_type": self.conflict_type.value,
            "teams": self.teams_label,
            "start_time": format_utc(self.start_time),
            "end_time": format_utc(self.end_time),
        }


@dataclass
class PlacementConflicts:
    match_id: int
    conflicting_matches: List[ConflictingMatch] = field(default_factory=list)

    def to_dict(self):
        return {
            "match_id": self.match_id,
            "conflicting_matches": [c.to_dict() for c in self.conflicting_matches],
        }


class ScheduleBatchResult:
    """Outcome of one schedule batch"""

    def __init__(self, tournament_id: int):
        self.tournament_id = tournament_id
        self.state = ScheduleState.RECEIVED
        self.applied: List[Match] = []
        self.rejected: List[PlacementConflicts] = []
        self.schedule_revision: Optional[int] = None
        self.attempts = 0

    @property
    def conflict_count(self) -> int:
        return sum(len(p.conflicting_matches) for p in self.rejected)

    def to_dict(self):
        return {
            "tournament_id": self.tournament_id,
            "state": self.state.value,
            "applied_match_ids": [m.id for m in self.applied],
            "conflicts": [p.to_dict() for p in self.rejected],
            "schedule_revision": self.schedule_revision,
        }


# ============================================================================
# Steps
# ============================================================================


def validate_batch_shape(placements: Sequence[MatchPlacement]) -> None:
    """
    Raises:
        BatchShapeError: not a list of placements, duplicate ids, or end <= start
    """
    if not isinstance(placements, (list, tuple)):
        raise BatchShapeError("Matches must be an array")

    seen = set()
    for placement in placements:
        if not isinstance(placement, MatchPlacement) or placement.id is None:
            raise BatchShapeError("Every placement needs a match id")
        if placement.id in seen:
            raise BatchShapeError(f"Match {placement.id} appears more than once in the batch")
        seen.add(placement.id)
        if placement.start_time and placement.end_time and ensure_utc(placement.end_time) <= ensure_utc(placement.start_time):
            raise BatchShapeError(f"Match {placement.id}: end_time must be after start_time")


def validate_batch_membership(
    session: Session, tournament_id: int, placements: Sequence[MatchPlacement]
) -> Dict[int, Match]:
    """
    Raises:
        BatchMembershipError: an id is unknown or belongs to another tournament
    """
    ids = [p.id for p in placements]
    matches = {m.id: m for m in find_matches_by_tournament_and_ids(session, tournament_id, ids)}
    missing = [i for i in ids if i not in matches]
    if missing:
        raise BatchMembershipError("One or more matches do not belong to this tournament", missing)
    return matches


def validate_resolved_windows(placements: Sequence[MatchPlacement], matches_by_id: Dict[int, Match]) -> None:
    """
    Check each placement's window once merged with its stored match.

    A placement may send only one side of the window; the other side then
    comes from the stored row (or from the duration for the end).

    Raises:
        BatchShapeError: end_time with no start anywhere, or a resolved end <= start
    """
    for placement in placements:
        slot = placement_time_slot(matches_by_id[placement.id], placement)
        if slot.start_time is None:
            if placement.end_time is not None:
                raise BatchShapeError(f"Match {placement.id}: end_time given but the match has no start_time")
            continue
        if get_match_end_time(slot) <= slot.start_time:
            raise BatchShapeError(f"Match {placement.id}: end_time must be after start_time")


def _candidate_rows(session: Session, tournament_id: int, candidate: MatchTimeSlot) -> List[Match]:
    window_start = candidate.start_time
    window_end = get_match_end_time(candidate)

    rows: Dict[int, Match] = {}
    for row in find_matches_by_tournament_and_pitch(
        session, tournament_id, candidate.pitch_id, candidate.id, window_start, window_end
    ):
        rows[row.id] = row
    for row in find_matches_by_tournament_and_teams(
        session,
        tournament_id,
        [candidate.home_team_id, candidate.away_team_id],
        candidate.id,
        window_start,
        window_end,
    ):
        rows.setdefault(row.id, row)
    return list(rows.values())


def find_batch_conflicts(
    session: Session,
    tournament_id: int,
    placements: Sequence[MatchPlacement],
    matches_by_id: Dict[int, Match],
) -> List[PlacementConflicts]:
    """
    Every conflict of every placement, in batch order.

    A stored match that is itself part of the batch is judged at its proposed
    placement, not where it currently sits.
    """
    proposed: Dict[int, MatchTimeSlot] = {
        p.id: placement_time_slot(matches_by_id[p.id], p) for p in placements
    }
    report: List[PlacementConflicts] = []

    for placement in placements:
        candidate = proposed[placement.id]
        # Placements without pitch or start (e.g. unscheduling) are exempt
        if candidate.pitch_id is None or candidate.start_time is None:
            continue

        rows: Dict[int, Match] = dict(matches_by_id)
        existing: Dict[int, MatchTimeSlot] = {}
        for row in _candidate_rows(session, tournament_id, candidate):
            rows.setdefault(row.id, row)
            existing[row.id] = to_time_slot(row)
        for other_id, other_slot in proposed.items():
            if other_id != candidate.id:
                existing[other_id] = other_slot

        conflicts = find_all_match_conflicts(candidate, existing.values())
        if not conflicts:
            continue

        report.append(
            PlacementConflicts(
                match_id=candidate.id,
                conflicting_matches=[
                    ConflictingMatch(
                        id=c.conflicting_match_id,
                        conflict_type=c.conflict_type,
                        teams_label=teams_label(rows[c.conflicting_match_id]),
                        start_time=c.conflicting_match.start_time,
                        end_time=get_match_end_time(c.conflicting_match),
                    )
                    for c in conflicts
                ],
            )
        )

    return report


def _check(
    session: Session,
    tournament_id: int,
    placements: Sequence[MatchPlacement],
    result: ScheduleBatchResult,
) -> int:
    """Run RECEIVED -> CHECKED (or REJECTED). Returns the revision the check saw."""
    tournament = get_tournament_for_update(session, tournament_id)
    if tournament is None:
        raise TournamentNotFoundError(f"Tournament {tournament_id} not found")
    expected_revision = tournament.schedule_revision

    matches_by_id = validate_batch_membership(session, tournament_id, placements)
    validate_resolved_windows(placements, matches_by_id)
    result.state = ScheduleState.VALIDATED

    result.rejected = find_batch_conflicts(session, tournament_id, placements, matches_by_id)
    result.state = ScheduleState.REJECTED if result.rejected else ScheduleState.CHECKED
    return expected_revision


# ============================================================================
# Entry points
# ============================================================================


def check_match_batch(
    session: Session, tournament_id: int, placements: Sequence[MatchPlacement]
) -> ScheduleBatchResult:
    """Dry run: validation and full conflict report, never writes."""
    validate_batch_shape(placements)
    result = ScheduleBatchResult(tournament_id)
    result.attempts = 1
    try:
        result.schedule_revision = _check(session, tournament_id, placements, result)
    finally:
        session.rollback()
    return result


def schedule_match_batch(
    session: Session,
    tournament_id: int,
    placements: Sequence[MatchPlacement],
    scheduled_by: Optional[str] = None,
    max_attempts: int = SCHEDULE_MAX_ATTEMPTS,
) -> ScheduleBatchResult:
    """
    Apply a batch of placements all-or-nothing.

    Returns:
        ScheduleBatchResult in state APPLIED (result.applied) or REJECTED
        (result.rejected, nothing written)

    Raises:
        BatchShapeError, TournamentNotFoundError, BatchMembershipError: invalid input
        ScheduleConcurrencyError: schedule kept changing underneath the check
        ScheduleApplyError: the store failed while writing a valid batch
    """
    validate_batch_shape(placements)

    for attempt in range(1, max_attempts + 1):
        result = ScheduleBatchResult(tournament_id)
        result.attempts = attempt
        try:
            expected_revision = _check(session, tournament_id, placements, result)
            if result.state == ScheduleState.REJECTED:
                session.rollback()
                logger.info(
                    "Schedule batch rejected for tournament %d: %d placements, %d conflicts",
                    tournament_id,
                    len(result.rejected),
                    result.conflict_count,
                )
                return result

            applied = apply_batch(session, tournament_id, list(placements), expected_revision, scheduled_by)
            session.commit()
        except StaleScheduleError:
            session.rollback()
            logger.warning(
                "Schedule of tournament %d changed during check (attempt %d/%d), retrying",
                tournament_id,
                attempt,
                max_attempts,
            )
            continue
        except ScheduleBatchError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            if result.state != ScheduleState.CHECKED:
                raise
            logger.exception("Applying schedule batch for tournament %d failed, transaction rolled back", tournament_id)
            raise ScheduleApplyError(f"Could not apply schedule batch: {e}") from e

        for match in applied:
            session.refresh(match)
        result.applied = applied
        result.schedule_revision = expected_revision + 1
        result.state = ScheduleState.APPLIED
        logger.info(
            "Applied schedule batch for tournament %d: %d matches (revision %d)",
            tournament_id,
            len(applied),
            result.schedule_revision,
        )
        return result

    raise ScheduleConcurrencyError(
        f"SCHEDULE_CONCURRENT_MODIFICATION: tournament {tournament_id} schedule changed "
        f"during {max_attempts} attempts"
    )
