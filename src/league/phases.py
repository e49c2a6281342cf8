"""
Tournament phase state machine.

round-robin-open -> round-robin-completed -> knockout-active -> knockout-completed

Closing the round-robin freezes a snapshot of the standings; the bracket is
seeded from that snapshot only, so later corrections to round-robin matches
never reopen the final table.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from league.elimination import (
    DEFAULT_BRACKET_SIZE, advance_bracket, bracket_champion,
    close_round_robin_and_seed_bracket, knockout_matches,
)
from league.exceptions import InvalidTransitionError, PhaseError
from league.matchday import MatchdayGenerator
from league.models import BracketMatch, MatchPhase, MatchResult, Player, StandingRow
from league.recovery import find_match, frozen_matchdays
from league.scoring import SETS_PER_MATCH, record_result
from league.standings import compute_standings

logger = logging.getLogger(__name__)


class TournamentPhase(str, Enum):
    ROUND_ROBIN_OPEN = 'round-robin-open'
    ROUND_ROBIN_COMPLETED = 'round-robin-completed'
    KNOCKOUT_ACTIVE = 'knockout-active'
    KNOCKOUT_COMPLETED = 'knockout-completed'


ALLOWED_TRANSITIONS = {
    TournamentPhase.ROUND_ROBIN_OPEN: {TournamentPhase.ROUND_ROBIN_COMPLETED},
    TournamentPhase.ROUND_ROBIN_COMPLETED: {TournamentPhase.KNOCKOUT_ACTIVE},
    TournamentPhase.KNOCKOUT_ACTIVE: {TournamentPhase.KNOCKOUT_COMPLETED, TournamentPhase.ROUND_ROBIN_COMPLETED},
    TournamentPhase.KNOCKOUT_COMPLETED: {TournamentPhase.ROUND_ROBIN_COMPLETED},
}


class TournamentState:
    """Persisted tournament-level state: phase, frozen final table, champion and standings backups."""

    def __init__(self, phase=TournamentPhase.ROUND_ROBIN_OPEN, final_standings=None,
                 closed_at=None, champion=None, completed_at=None, standings_backups=None):
        self.phase = TournamentPhase(phase)
        self.final_standings: Optional[List[StandingRow]] = final_standings
        self.closed_at = closed_at
        self.champion: Optional[Tuple[str, str]] = tuple(champion) if champion else None
        self.completed_at = completed_at
        self.standings_backups: Dict[int, Dict] = standings_backups or {}

    def transition(self, target: TournamentPhase):
        target = TournamentPhase(target)
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise PhaseError(f"Cannot move from {self.phase.value} to {target.value}")
        logger.info("Tournament phase %s -> %s", self.phase.value, target.value)
        self.phase = target

    def require(self, *phases: TournamentPhase):
        if self.phase not in phases:
            expected = ', '.join(p.value for p in phases)
            raise PhaseError(f"Tournament is {self.phase.value}; expected {expected}")

    def save_standings_backup(self, matchday: int, rows: List[StandingRow], reason: str,
                              created_at: Optional[str] = None):
        self.standings_backups[matchday] = {
            'reason': reason,
            'created_at': created_at or datetime.now().isoformat(),
            'standings': [row.to_dict() for row in rows],
        }

    def to_dict(self):
        return {
            'phase': self.phase.value,
            'final_standings': [row.to_dict() for row in self.final_standings]
            if self.final_standings is not None else None,
            'closed_at': self.closed_at,
            'champion': list(self.champion) if self.champion else None,
            'completed_at': self.completed_at,
            'standings_backups': self.standings_backups,
        }

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        final = data.get('final_standings')
        return cls(
            phase=data.get('phase', TournamentPhase.ROUND_ROBIN_OPEN.value),
            final_standings=[StandingRow.from_dict(r) for r in final] if final is not None else None,
            closed_at=data.get('closed_at'),
            champion=data.get('champion'),
            completed_at=data.get('completed_at'),
            standings_backups={int(k): v for k, v in (data.get('standings_backups') or {}).items()},
        )

    def __repr__(self):
        return f"TournamentState(phase={self.phase.value}, champion={self.champion})"


class PhaseController:
    """Guarded phase transitions over a tournament state and the match log."""

    def __init__(self, state: TournamentState):
        self.state = state

    def close_round_robin(self, players: List[Player], match_log: List[MatchResult],
                          force: bool = False, closed_at: Optional[str] = None) -> List[StandingRow]:
        """
        Freeze the final round-robin table.

        The round must be consistent (no pending or frozen matchdays). Unless
        ``force`` is set, the completion criterion of the generator must hold.
        """
        self.state.require(TournamentPhase.ROUND_ROBIN_OPEN)
        generator = MatchdayGenerator(players, match_log)
        incomplete = generator.incomplete_matches()
        if incomplete:
            raise PhaseError(f"{len(incomplete)} round-robin matches are still without a result")
        frozen = frozen_matchdays(match_log)
        if frozen:
            raise PhaseError(f"Matchdays {sorted(frozen)} are frozen; resolve them before closing")
        if not force and not generator.is_round_robin_complete():
            raise PhaseError('The round-robin is not complete yet')

        snapshot = compute_standings(match_log, players)
        self.state.final_standings = snapshot
        self.state.closed_at = closed_at or datetime.now().isoformat()
        self.state.transition(TournamentPhase.ROUND_ROBIN_COMPLETED)
        logger.info("Round-robin closed with %d players in the final table", len(snapshot))
        return snapshot

    def seed_bracket(self, match_log: List[MatchResult], bracket_size: int = DEFAULT_BRACKET_SIZE,
                     created_at: Optional[str] = None) -> List[BracketMatch]:
        self.state.require(TournamentPhase.ROUND_ROBIN_COMPLETED)
        if knockout_matches(match_log):
            raise PhaseError('A bracket already exists; reset it before seeding again')
        bracket = close_round_robin_and_seed_bracket(self.state.final_standings or [], bracket_size, created_at)
        self.state.transition(TournamentPhase.KNOCKOUT_ACTIVE)
        logger.info("Seeded bracket with %d slots", len(bracket))
        return bracket

    def record_knockout_result(self, match_log: List[MatchResult], match_id: str, result: dict,
                               sets_per_match: int = SETS_PER_MATCH,
                               completed_at: Optional[str] = None) -> Tuple[BracketMatch, Optional[BracketMatch]]:
        """Record a bracket result and advance its winner. Completing the final ends the tournament."""
        self.state.require(TournamentPhase.KNOCKOUT_ACTIVE)
        match = find_match(match_log, match_id)
        if match.phase != MatchPhase.KNOCKOUT:
            raise InvalidTransitionError(f"Match {match_id} is not a knockout match")
        record_result(match, result, sets_per_match, completed_at)

        bracket = knockout_matches(match_log)
        updated = advance_bracket(bracket, match)
        if updated is None:
            self.state.champion = bracket_champion(bracket)
            self.state.completed_at = match.completed_at
            self.state.transition(TournamentPhase.KNOCKOUT_COMPLETED)
            logger.info("Final %s completed; champions %s", match.id, self.state.champion)
        else:
            logger.info("Match %s completed; winner advances to %s", match.id, updated.id)
        return match, updated

    def reset_bracket(self, match_log: List[MatchResult]) -> List[MatchResult]:
        """Drop every knockout match and return to the closed round-robin. Returns the remaining log."""
        self.state.require(TournamentPhase.KNOCKOUT_ACTIVE, TournamentPhase.KNOCKOUT_COMPLETED)
        self.state.champion = None
        self.state.completed_at = None
        self.state.transition(TournamentPhase.ROUND_ROBIN_COMPLETED)
        return [m for m in match_log if m.phase != MatchPhase.KNOCKOUT]
