"""
Score tallying, validation and the match status transitions that record results.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from league.exceptions import InvalidScoreError, InvalidTransitionError
from league.models import MatchResult, MatchStatus

SETS_PER_MATCH = 3


def tally_sets(sets: List) -> Tuple[int, int, int, int]:
    """Tally per-set game scores. Returns (sets_a, sets_b, games_a, games_b)."""
    sets_a = sets_b = games_a = games_b = 0
    for set_score in sets:
        if not isinstance(set_score, (list, tuple)) or len(set_score) < 2:
            raise InvalidScoreError(f"Malformed set score: {set_score!r}")
        a, b = set_score[0], set_score[1]
        if a is None or b is None or a == '' or b == '':
            raise InvalidScoreError('Both scores must be filled for every set')
        a, b = _non_negative_int(a), _non_negative_int(b)
        if a == b:
            raise InvalidScoreError(f"Set {a}-{b} has no winner")
        games_a += a
        games_b += b
        if a > b:
            sets_a += 1
        else:
            sets_b += 1
    return sets_a, sets_b, games_a, games_b


def validate_set_count(sets_a, sets_b, sets_per_match: int = SETS_PER_MATCH) -> Tuple[int, int]:
    """Check that a set tally is a decided match where every set was played."""
    sets_a, sets_b = _non_negative_int(sets_a), _non_negative_int(sets_b)
    if sets_a == sets_b:
        raise InvalidScoreError('Draws are not allowed')
    if sets_a + sets_b != sets_per_match:
        raise InvalidScoreError(
            f"Score {sets_a}-{sets_b} is not a valid outcome over {sets_per_match} sets"
        )
    return sets_a, sets_b


def parse_result(result: dict, sets_per_match: int = SETS_PER_MATCH) -> dict:
    """Normalize a submitted result into MatchResult score fields.

    Accepts either ``{'sets': [[6, 3], [4, 6], [6, 2]]}`` or explicit set counts
    ``{'sets_a': 2, 'sets_b': 1, 'games_a': 16, 'games_b': 11}``.
    """
    if not result:
        raise InvalidScoreError('Missing result')
    sets = result.get('sets')
    if sets:
        sets_a, sets_b, games_a, games_b = tally_sets(sets)
        validate_set_count(sets_a, sets_b, sets_per_match)
        return {
            'sets_a': sets_a,
            'sets_b': sets_b,
            'games_a': games_a,
            'games_b': games_b,
            'sets': [[int(s[0]), int(s[1])] for s in sets],
        }
    if result.get('sets_a') is None or result.get('sets_b') is None:
        raise InvalidScoreError('Result needs per-set scores or both set counts')
    sets_a, sets_b = validate_set_count(result['sets_a'], result['sets_b'], sets_per_match)
    games_a = result.get('games_a')
    games_b = result.get('games_b')
    if (games_a is None) != (games_b is None):
        raise InvalidScoreError('Both game totals must be filled or both must be empty')
    return {
        'sets_a': sets_a,
        'sets_b': sets_b,
        'games_a': _non_negative_int(games_a) if games_a is not None else None,
        'games_b': _non_negative_int(games_b) if games_b is not None else None,
        'sets': None,
    }


def apply_result(match: MatchResult, fields: dict, completed_at: Optional[str] = None):
    for key, value in fields.items():
        setattr(match, key, value)
    match.status = MatchStatus.COMPLETED
    match.completed_at = completed_at or datetime.now().isoformat()
    return match


def confirm_match(match: MatchResult, place: str, date: str, time: str) -> MatchResult:
    """Move a scheduled match to confirmed once its players agree on place, date and time."""
    if match.status != MatchStatus.SCHEDULED:
        raise InvalidTransitionError(
            f"Match {match.id} is {match.status.value}; only scheduled matches can be confirmed"
        )
    if not place or not date or not time:
        raise InvalidTransitionError('Place, date and time are required')
    match.place = place.strip()
    match.date = date.strip()
    match.time = time.strip()
    match.status = MatchStatus.CONFIRMED
    return match


def record_result(match: MatchResult, result: dict, sets_per_match: int = SETS_PER_MATCH,
                  completed_at: Optional[str] = None) -> MatchResult:
    """Record the result of a scheduled or confirmed match.

    Matches in recovery go through ``recovery.resolve_recovery_match`` instead,
    so the guard can lift the freeze on their matchday.
    """
    if match.status == MatchStatus.TO_RECOVER:
        raise InvalidTransitionError(f"Match {match.id} is frozen; resolve it as a recovery match")
    if match.status == MatchStatus.PLACEHOLDER or not match.team_a or not match.team_b:
        raise InvalidTransitionError(f"Match {match.id} does not have both teams yet")
    if match.status == MatchStatus.COMPLETED:
        raise InvalidTransitionError(f"Match {match.id} is already completed")
    fields = parse_result(result, sets_per_match)
    return apply_result(match, fields, completed_at)


def _non_negative_int(value) -> int:
    if isinstance(value, bool):
        raise InvalidScoreError(f"Invalid score value: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidScoreError(f"Invalid score value: {value!r}")
    if number < 0 or number != float(value):
        raise InvalidScoreError(f"Invalid score value: {value!r}")
    return number
