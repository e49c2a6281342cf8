"""
Matchday generation for the doubles round-robin.

Each matchday splits the roster into partner pairs that have never played
together, then pits those pairs against each other so that contests are as
balanced as possible and opponents vary. When no fresh partner matching
exists the generator degrades to a greedy, penalty-minimizing split instead
of failing.

Priorities, highest first:
1. no repeated partnership
2. balanced contests (points, then games won)
3. opponent variety
Residual ties go to the lexicographically smallest player ids.
"""
import logging
from datetime import datetime
from itertools import combinations
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from league.exceptions import MatchNotFoundError
from league.history import Pair, PairHistory, build_pair_history, pair_key
from league.models import MatchPhase, MatchResult, MatchStatus, Outcome, Player, RejectionReason, StandingRow
from league.recovery import round_robin_matches
from league.standings import compute_standings

logger = logging.getLogger(__name__)

PLAYERS_PER_MATCH = 4

IMBALANCE_WEIGHT = 10
OPPONENT_REPEAT_PENALTY = 50
PARTNER_REPEAT_PENALTY = 10000

# Above this many teams the exact grouping search is replaced by a greedy one
MAX_EXACT_TEAMS = 16
MATCHING_SEARCH_BUDGET = 50000

Cost = Tuple[int, int]


class PairingWeights:
    """Penalty weights of the match cost. Opponent repeats sit between point imbalance and partner repeats."""

    def __init__(self, imbalance_weight: int = IMBALANCE_WEIGHT,
                 opponent_repeat_penalty: int = OPPONENT_REPEAT_PENALTY,
                 partner_repeat_penalty: int = PARTNER_REPEAT_PENALTY):
        self.imbalance_weight = imbalance_weight
        self.opponent_repeat_penalty = opponent_repeat_penalty
        self.partner_repeat_penalty = partner_repeat_penalty

    @classmethod
    def from_settings(cls, settings: Optional[Dict]) -> 'PairingWeights':
        settings = settings or {}
        return cls(
            imbalance_weight=int(settings.get('imbalance_weight', IMBALANCE_WEIGHT)),
            opponent_repeat_penalty=int(settings.get('opponent_repeat_penalty', OPPONENT_REPEAT_PENALTY)),
            partner_repeat_penalty=int(settings.get('partner_repeat_penalty', PARTNER_REPEAT_PENALTY)),
        )

    def __repr__(self):
        return (f"PairingWeights(imbalance={self.imbalance_weight}, "
                f"opponent_repeat={self.opponent_repeat_penalty}, "
                f"partner_repeat={self.partner_repeat_penalty})")


def circle_rounds(player_ids: Sequence[str]) -> List[List[Pair]]:
    """
    Circle-method rounds over an even number of players.

    The last player stays fixed while the others rotate; the n-1 rounds use
    every partnership exactly once.
    """
    n = len(player_ids)
    if n < 2 or n % 2:
        return []
    fixed = player_ids[-1]
    rotating = list(player_ids[:-1])
    m = n - 1
    rounds = []
    for r in range(m):
        pairs = [pair_key(fixed, rotating[r])]
        for i in range(1, n // 2):
            pairs.append(pair_key(rotating[(r + i) % m], rotating[(r - i) % m]))
        rounds.append(sorted(pairs))
    return rounds


class _SearchExhausted(Exception):
    pass


class MatchdayGenerator:
    def __init__(self, players: Iterable[Player], match_log: Iterable[MatchResult],
                 standings: Optional[Iterable[StandingRow]] = None,
                 weights: Optional[PairingWeights] = None):
        self.players = sorted(players, key=lambda p: p.id)
        self.player_ids = [p.id for p in self.players]
        self.match_log = list(match_log)
        self.round_robin = round_robin_matches(self.match_log)
        self.history: PairHistory = build_pair_history(self.round_robin)
        self.weights = weights or PairingWeights()
        if standings is None:
            standings = compute_standings(self.match_log, self.players)
        rows = {row.player_id: row for row in standings}
        self.points = {pid: rows[pid].points if pid in rows else 0 for pid in self.player_ids}
        self.games = {pid: rows[pid].games_won if pid in rows else 0 for pid in self.player_ids}
        self.used_fallback = False

    @property
    def matches_per_matchday(self) -> int:
        return len(self.player_ids) // PLAYERS_PER_MATCH

    @property
    def next_matchday_number(self) -> int:
        numbers = [m.matchday for m in self.round_robin if m.matchday is not None]
        return max(numbers) + 1 if numbers else 1

    def incomplete_matches(self) -> List[MatchResult]:
        return [
            m for m in self.round_robin
            if m.status in (MatchStatus.SCHEDULED, MatchStatus.CONFIRMED)
            or (m.status == MatchStatus.COMPLETED and not m.has_score)
        ]

    def is_round_robin_complete(self) -> bool:
        """Every partnership used once, or as many matchdays as an even roster needs."""
        if self.history.all_partnerships_used(self.player_ids):
            return True
        return len(self.history.matchdays) >= len(self.player_ids) - 1

    def check_preconditions(self) -> Optional[Outcome]:
        if len(self.player_ids) < PLAYERS_PER_MATCH:
            return Outcome.rejected(
                RejectionReason.NOT_ENOUGH_PLAYERS,
                f"At least {PLAYERS_PER_MATCH} players are needed, found {len(self.player_ids)}"
            )
        incomplete = self.incomplete_matches()
        if incomplete:
            return Outcome.rejected(
                RejectionReason.INCOMPLETE_PREVIOUS_ROUND,
                f"{len(incomplete)} matches still have no result; enter every result "
                f"before generating a new matchday"
            )
        if self.is_round_robin_complete():
            return Outcome.rejected(
                RejectionReason.ROUND_ROBIN_COMPLETE,
                f"Round-robin complete after {len(self.history.matchdays)} matchdays"
            )
        return None

    def generate(self, created_at: Optional[str] = None) -> Outcome:
        rejection = self.check_preconditions()
        if rejection is not None:
            return rejection

        pairings = self.plan_matchday()

        matchday = self.next_matchday_number
        created_at = created_at or datetime.now().isoformat()
        created = []
        for number, (team_a, team_b) in enumerate(pairings, start=1):
            created.append(MatchResult(
                id=f"rr-{matchday}-{number}",
                team_a=team_a,
                team_b=team_b,
                matchday=matchday,
                phase=MatchPhase.ROUND_ROBIN,
                status=MatchStatus.SCHEDULED,
                created_at=created_at,
            ))
        logger.info("Generated matchday %s with %d matches", matchday, len(created))
        return Outcome(records=created)

    def candidate_active_sets(self) -> Iterator[List[str]]:
        """
        Possible sets of players taking part this matchday, preferred first.

        Players are ranked by appearances, then id; the preferred set benches the
        lowest-ranked (most played) players. Further sets bench players ranked
        progressively higher, so a roster that is not a multiple of four can still
        find sit-outs that leave a fresh partner matching.
        """
        ranked = sorted(self.player_ids, key=lambda pid: (self.history.appearances[pid], pid))
        sit_out = len(ranked) - self.matches_per_matchday * PLAYERS_PER_MATCH
        benches = sorted(combinations(range(len(ranked)), sit_out),
                         key=lambda bench: sorted(-i for i in bench))
        for bench in benches:
            yield sorted(pid for i, pid in enumerate(ranked) if i not in bench)

    def select_active_players(self) -> List[str]:
        """Players taking part this matchday when partnerships do not decide it; the ones who played most sit out."""
        return next(self.candidate_active_sets())

    def plan_matchday(self) -> List[Tuple[Pair, Pair]]:
        """Pairings of the first active set with a fresh partner matching, else the fallback."""
        for active in self.candidate_active_sets():
            teams = self.find_partner_matching(active)
            if teams is not None:
                return self.group_teams(teams)
        active = self.select_active_players()
        self.used_fallback = True
        logger.warning("No fresh partner matching for %d players; using fallback pairing", len(active))
        return self.fallback_pairings(active)

    def find_partner_matching(self, active: List[str]) -> Optional[List[Pair]]:
        """Perfect matching of ``active`` over partnerships not used yet, or None."""
        if active == self.player_ids:
            for pairs in circle_rounds(active):
                if not any(p in self.history.partnered_with for p in pairs):
                    return pairs
        try:
            return self._search_matching(active)
        except _SearchExhausted:
            logger.info("Partner matching search gave up after %d steps", MATCHING_SEARCH_BUDGET)
            return None

    def _search_matching(self, active: List[str]) -> Optional[List[Pair]]:
        options = {
            pid: [q for q in active if q != pid and not self.history.has_partnered(pid, q)]
            for pid in active
        }
        steps = 0

        def extend(remaining: frozenset, chosen: List[Pair]) -> Optional[List[Pair]]:
            nonlocal steps
            if not remaining:
                return sorted(chosen)
            steps += 1
            if steps > MATCHING_SEARCH_BUDGET:
                raise _SearchExhausted()
            # Most constrained player first
            first = min(remaining, key=lambda pid: (sum(1 for q in options[pid] if q in remaining), pid))
            for partner in options[first]:
                if partner not in remaining:
                    continue
                found = extend(remaining - {first, partner}, chosen + [pair_key(first, partner)])
                if found is not None:
                    return found
            return None

        return extend(frozenset(active), [])

    def match_cost(self, team_a: Pair, team_b: Pair) -> Cost:
        """Cost of one contest as (penalty, games imbalance); lower is better, compared in order."""
        penalty = 0
        for team in (team_a, team_b):
            if self.history.has_partnered(*team):
                penalty += self.weights.partner_repeat_penalty
        points_a = sum(self.points.get(pid, 0) for pid in team_a)
        points_b = sum(self.points.get(pid, 0) for pid in team_b)
        penalty += abs(points_a - points_b) * self.weights.imbalance_weight
        repeats = sum(1 for a in team_a for b in team_b if self.history.has_faced(a, b))
        penalty += repeats * self.weights.opponent_repeat_penalty

        games_a = sum(self.games.get(pid, 0) for pid in team_a)
        games_b = sum(self.games.get(pid, 0) for pid in team_b)
        return penalty, abs(games_a - games_b)

    def group_teams(self, teams: List[Pair]) -> List[Tuple[Pair, Pair]]:
        """Pit fixed partner pairs against each other at the lowest total cost."""
        teams = sorted(teams)
        if len(teams) > MAX_EXACT_TEAMS:
            return self._group_teams_greedy(teams)

        size = len(teams)
        costs = {
            (i, j): self.match_cost(teams[i], teams[j])
            for i in range(size) for j in range(i + 1, size)
        }
        memo: Dict[int, Tuple[Cost, Tuple[Tuple[int, int], ...]]] = {}

        def best(mask: int):
            if mask == 0:
                return (0, 0), ()
            if mask in memo:
                return memo[mask]
            i = (mask & -mask).bit_length() - 1
            rest = mask & ~(1 << i)
            result = None
            for j in range(i + 1, size):
                if not rest & (1 << j):
                    continue
                sub_cost, sub_plan = best(rest & ~(1 << j))
                cost = costs[(i, j)]
                total = (cost[0] + sub_cost[0], cost[1] + sub_cost[1])
                if result is None or total < result[0]:
                    result = (total, ((i, j),) + sub_plan)
            memo[mask] = result
            return result

        _, plan = best((1 << size) - 1)
        return [(teams[i], teams[j]) for i, j in plan]

    def _group_teams_greedy(self, teams: List[Pair]) -> List[Tuple[Pair, Pair]]:
        remaining = list(teams)
        matches = []
        while len(remaining) >= 2:
            first = remaining.pop(0)
            index = min(range(len(remaining)), key=lambda k: (self.match_cost(first, remaining[k]), k))
            matches.append((first, remaining.pop(index)))
        return matches

    def fallback_pairings(self, active: List[str]) -> List[Tuple[Pair, Pair]]:
        """
        Greedy split used once fresh partnerships run out.

        Takes the four players with the fewest matches, picks the cheapest of the
        three possible 2v2 splits, and repeats. A split that repeats a partnership
        is still taken if it is the cheapest, it only carries the worst penalty.
        """
        remaining = sorted(active, key=lambda pid: (self.history.appearances[pid], pid))
        matches = []
        while len(remaining) >= PLAYERS_PER_MATCH:
            q = sorted(remaining[:PLAYERS_PER_MATCH])
            remaining = remaining[PLAYERS_PER_MATCH:]
            splits = [
                (pair_key(q[0], q[1]), pair_key(q[2], q[3])),
                (pair_key(q[0], q[2]), pair_key(q[1], q[3])),
                (pair_key(q[0], q[3]), pair_key(q[1], q[2])),
            ]
            matches.append(min(splits, key=lambda split: self.match_cost(*split)))
        return matches


def generate_next_matchday(players: Iterable[Player], match_log: Iterable[MatchResult],
                           standings: Optional[Iterable[StandingRow]] = None,
                           weights: Optional[PairingWeights] = None,
                           created_at: Optional[str] = None) -> Outcome:
    """Create the next round-robin matchday, or return a typed rejection without creating anything."""
    generator = MatchdayGenerator(players, match_log, standings, weights)
    return generator.generate(created_at)


def delete_last_matchday(match_log: Iterable[MatchResult]) -> Tuple[List[MatchResult], List[MatchResult]]:
    """
    Remove the highest round-robin matchday from the log.

    Returns (remaining log, removed matches). Removing nothing is an error.
    """
    match_log = list(match_log)
    numbers = [m.matchday for m in round_robin_matches(match_log) if m.matchday is not None]
    if not numbers:
        raise MatchNotFoundError('There is no matchday to delete')
    last = max(numbers)
    removed = [m for m in match_log if m.phase == MatchPhase.ROUND_ROBIN and m.matchday == last]
    remaining = [m for m in match_log if not (m.phase == MatchPhase.ROUND_ROBIN and m.matchday == last)]
    logger.info("Deleted matchday %s (%d matches)", last, len(removed))
    return remaining, removed
