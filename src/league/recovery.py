"""
Consistency guard for round-robin matchdays.

A matchday with unresolved matches can be frozen: all of its matches move to
``to-recover`` and their scores are parked in ``original_data``. While any match
of a matchday is in recovery, no match of that matchday reaches the standings.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from league.exceptions import InvalidTransitionError, MatchNotFoundError
from league.models import MatchPhase, MatchResult, MatchStatus, Outcome, RejectionReason
from league.scoring import SETS_PER_MATCH, apply_result, parse_result, validate_set_count

logger = logging.getLogger(__name__)


def round_robin_matches(match_log: Iterable[MatchResult]) -> List[MatchResult]:
    return [m for m in match_log if m.phase == MatchPhase.ROUND_ROBIN]


def frozen_matchdays(match_log: Iterable[MatchResult]) -> Set[int]:
    """Matchdays with at least one match still in recovery."""
    return {
        m.matchday for m in round_robin_matches(match_log)
        if m.status == MatchStatus.TO_RECOVER
    }


def is_matchday_frozen(match_log: Iterable[MatchResult], matchday: int) -> bool:
    return matchday in frozen_matchdays(match_log)


def filter_for_standings(match_log: Iterable[MatchResult]) -> List[MatchResult]:
    """Round-robin matches eligible for the standings: frozen matchdays are dropped whole."""
    matches = round_robin_matches(match_log)
    frozen = frozen_matchdays(matches)
    return [m for m in matches if m.matchday not in frozen]


def freeze_matchday(match_log: Iterable[MatchResult], matchday: int,
                    frozen_at: Optional[str] = None) -> Outcome:
    """
    Suspend an incomplete matchday from the standings.

    Every match of the matchday, completed ones included, moves to ``to-recover``
    with its score copied into ``original_data`` and then cleared. Nothing is
    modified when the request is rejected.
    """
    targets = [m for m in round_robin_matches(match_log) if m.matchday == matchday]
    if not targets:
        return Outcome.rejected(RejectionReason.NOT_FOUND, f"No matches found for matchday {matchday}")
    if any(m.status == MatchStatus.TO_RECOVER for m in targets):
        return Outcome.rejected(
            RejectionReason.ALREADY_FROZEN,
            f"Matchday {matchday} already has recovery matches"
        )
    if all(m.is_completed for m in targets):
        return Outcome.rejected(
            RejectionReason.ALREADY_FULLY_COMPLETED,
            f"Cannot freeze matchday {matchday}: all {len(targets)} matches are completed"
        )

    frozen_at = frozen_at or datetime.now().isoformat()
    with_results = 0
    for match in targets:
        if match.has_score:
            with_results += 1
        match.original_data = match.score_snapshot()
        match.clear_score()
        match.status = MatchStatus.TO_RECOVER
        match.frozen_at = frozen_at
        match.original_matchday = matchday

    logger.info("Froze matchday %s: %d matches set to recovery (%d results parked)",
                matchday, len(targets), with_results)
    return Outcome(records=targets)


def find_match(match_log: Iterable[MatchResult], match_id: str) -> MatchResult:
    for match in match_log:
        if match.id == match_id:
            return match
    raise MatchNotFoundError(f"Match {match_id} not found")


def resolve_recovery_match(match_log: List[MatchResult], match_id: str, result: Optional[dict] = None,
                           sets_per_match: int = SETS_PER_MATCH) -> MatchResult:
    """
    Bring a recovery match back to ``completed``.

    With ``result`` the late score is recorded directly; without it the score
    parked in ``original_data`` is restored. The matchday re-enters the
    standings once its last recovery match is resolved.
    """
    match = find_match(match_log, match_id)
    if match.status == MatchStatus.COMPLETED and match.frozen_at and not result:
        # Already brought back when its matchday was unfrozen
        return match
    if match.status != MatchStatus.TO_RECOVER:
        raise InvalidTransitionError(f"Match {match_id} is not in recovery")

    if result:
        fields = parse_result(result, sets_per_match)
        apply_result(match, fields)
    else:
        if not has_stored_result(match):
            raise InvalidTransitionError(
                f"Match {match_id} has no stored result to restore; a late result is required"
            )
        _restore_original(match, sets_per_match)

    matchday = match.matchday
    pending = [
        m for m in round_robin_matches(match_log)
        if m.matchday == matchday and m.status == MatchStatus.TO_RECOVER
    ]
    if pending and not any(not has_stored_result(m) for m in pending):
        for other in pending:
            _restore_original(other, sets_per_match)
        pending = []

    if pending:
        logger.info("Resolved recovery match %s; matchday %s still has %d outstanding",
                    match_id, matchday, len(pending))
    else:
        logger.info("Resolved recovery match %s; matchday %s unfrozen", match_id, matchday)
    return match


def has_stored_result(match: MatchResult) -> bool:
    original = match.original_data or {}
    return original.get('sets_a') is not None and original.get('sets_b') is not None


def outstanding_recovery_matches(match_log: Iterable[MatchResult], matchday: int) -> List[MatchResult]:
    """Recovery matches of ``matchday`` that still need a late result."""
    return [
        m for m in round_robin_matches(match_log)
        if m.matchday == matchday and m.status == MatchStatus.TO_RECOVER and not has_stored_result(m)
    ]


def _restore_original(match: MatchResult, sets_per_match: int):
    original = match.original_data
    validate_set_count(original['sets_a'], original['sets_b'], sets_per_match)
    fields = {k: v for k, v in original.items() if k not in ('status', 'completed_at')}
    apply_result(match, fields, completed_at=original.get('completed_at'))


def recovery_matches(match_log: Iterable[MatchResult]) -> Dict[int, List[MatchResult]]:
    """Matches in recovery grouped by matchday."""
    grouped: Dict[int, List[MatchResult]] = {}
    for match in round_robin_matches(match_log):
        if match.status == MatchStatus.TO_RECOVER:
            grouped.setdefault(match.matchday, []).append(match)
    return {md: sorted(ms, key=lambda m: m.id) for md, ms in sorted(grouped.items())}
