"""
Conflict Detection for Match Scheduling

Pure functions deciding whether a proposed match placement collides with
another match:

1. **Pitch conflicts**: two matches on the same pitch with overlapping times
2. **Team double-booking**: a team playing two matches with overlapping times

Windows are half-open [start, end), so back-to-back matches never collide.
Division and group membership are deliberately ignored: a pitch or a team
cannot be in two places at once regardless of the bracket it belongs to.

Nothing here touches the database; see schedule_update for the orchestration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional

DEFAULT_MATCH_DURATION_MINUTES = 90


class ConflictType(str, Enum):
    PITCH = "pitch"
    TEAM = "team"


@dataclass(frozen=True)
class MatchTimeSlot:
    """Placement of one match in time and space (UTC instants)."""
    id: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    pitch_id: Optional[int] = None
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    division_id: Optional[int] = None
    match_duration: Optional[int] = None  # minutes, only used without end_time


@dataclass(frozen=True)
class ConflictResult:
    has_conflict: bool
    conflict_type: Optional[ConflictType] = None
    conflicting_match_id: Optional[int] = None
    conflicting_match: Optional[MatchTimeSlot] = None


NO_CONFLICT = ConflictResult(has_conflict=False)


def times_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Half-open overlap test: [start1, end1) vs [start2, end2)."""
    return start1 < end2 and end1 > start2


def get_match_end_time(match: MatchTimeSlot, match_duration: Optional[int] = None) -> datetime:
    """
    Effective end instant of a match.

    An explicit end_time wins. Otherwise start_time plus the first duration
    available: the override, the match's own duration, then 90 minutes.
    Must only be called for matches with a start_time.
    """
    if match.end_time is not None:
        return match.end_time

    duration = match_duration or match.match_duration or DEFAULT_MATCH_DURATION_MINUTES
    return match.start_time + timedelta(minutes=duration)


def _windows_overlap(new_match: MatchTimeSlot, existing_match: MatchTimeSlot, match_duration: Optional[int]) -> bool:
    # Duration override applies to the match being scheduled only
    new_end = get_match_end_time(new_match, match_duration)
    existing_end = get_match_end_time(existing_match)
    return times_overlap(new_match.start_time, new_end, existing_match.start_time, existing_end)


def check_pitch_conflict(
    new_match: MatchTimeSlot,
    existing_match: MatchTimeSlot,
    match_duration: Optional[int] = None,
) -> ConflictResult:
    """Same pitch, overlapping windows, different matches."""
    if new_match.pitch_id is None or existing_match.pitch_id is None:
        return NO_CONFLICT

    if new_match.pitch_id != existing_match.pitch_id:
        return NO_CONFLICT

    if new_match.start_time is None or existing_match.start_time is None:
        return NO_CONFLICT

    if new_match.id == existing_match.id:
        return NO_CONFLICT

    if not _windows_overlap(new_match, existing_match, match_duration):
        return NO_CONFLICT

    return ConflictResult(
        has_conflict=True,
        conflict_type=ConflictType.PITCH,
        conflicting_match_id=existing_match.id,
        conflicting_match=existing_match,
    )


def _team_ids(match: MatchTimeSlot) -> Optional[tuple]:
    if match.home_team_id is None or match.away_team_id is None:
        return None
    return (match.home_team_id, match.away_team_id)


def check_team_double_booking(
    new_match: MatchTimeSlot,
    existing_match: MatchTimeSlot,
    match_duration: Optional[int] = None,
) -> ConflictResult:
    """A shared team (home or away, either side) in overlapping windows."""
    if new_match.start_time is None or existing_match.start_time is None:
        return NO_CONFLICT

    if new_match.id == existing_match.id:
        return NO_CONFLICT

    new_teams = _team_ids(new_match)
    existing_teams = _team_ids(existing_match)
    if new_teams is None or existing_teams is None:
        return NO_CONFLICT

    if not any(team in existing_teams for team in new_teams):
        return NO_CONFLICT

    if not _windows_overlap(new_match, existing_match, match_duration):
        return NO_CONFLICT

    return ConflictResult(
        has_conflict=True,
        conflict_type=ConflictType.TEAM,
        conflicting_match_id=existing_match.id,
        conflicting_match=existing_match,
    )


def check_pair_conflict(
    new_match: MatchTimeSlot,
    existing_match: MatchTimeSlot,
    match_duration: Optional[int] = None,
) -> ConflictResult:
    """Pitch conflict if any, otherwise team conflict if any."""
    pitch_conflict = check_pitch_conflict(new_match, existing_match, match_duration)
    if pitch_conflict.has_conflict:
        return pitch_conflict
    return check_team_double_booking(new_match, existing_match, match_duration)


def check_match_conflicts(
    new_match: MatchTimeSlot,
    existing_matches: Iterable[MatchTimeSlot],
    match_duration: Optional[int] = None,
) -> ConflictResult:
    """First conflict found against existing_matches, for fast-fail validation."""
    for existing_match in existing_matches:
        conflict = check_pair_conflict(new_match, existing_match, match_duration)
        if conflict.has_conflict:
            return conflict
    return NO_CONFLICT


def find_all_match_conflicts(
    new_match: MatchTimeSlot,
    existing_matches: Iterable[MatchTimeSlot],
    match_duration: Optional[int] = None,
) -> List[ConflictResult]:
    """
    Every conflict against existing_matches.

    Pitch and team checks run independently, so one existing match can
    contribute both a pitch and a team conflict.
    """
    conflicts: List[ConflictResult] = []

    for existing_match in existing_matches:
        pitch_conflict = check_pitch_conflict(new_match, existing_match, match_duration)
        if pitch_conflict.has_conflict:
            conflicts.append(pitch_conflict)

        team_conflict = check_team_double_booking(new_match, existing_match, match_duration)
        if team_conflict.has_conflict:
            conflicts.append(team_conflict)

    return conflicts
