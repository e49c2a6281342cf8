"""
Partner and opponent history derived from the round-robin match log.
"""
from collections import Counter
from itertools import combinations, product
from typing import Iterable, List, Set, Tuple

from league.models import MatchPhase, MatchResult

Pair = Tuple[str, str]


def pair_key(a: str, b: str) -> Pair:
    """Unordered pair of player ids as a sorted tuple."""
    return (a, b) if a <= b else (b, a)


class PairHistory:
    """Which partnerships and which opponent pairs have already occurred.

    ``partner_counts`` and ``appearances`` keep multiplicities so repeats and
    uneven schedules can be reported; membership checks use the sets.
    """

    def __init__(self):
        self.partnered_with: Set[Pair] = set()
        self.faced_against: Set[Pair] = set()
        self.partner_counts: Counter = Counter()
        self.opponent_counts: Counter = Counter()
        self.appearances: Counter = Counter()
        self.matchdays: Set[int] = set()

    def add_match(self, match: MatchResult):
        team_a = match.team_a or ()
        team_b = match.team_b or ()
        for team in (team_a, team_b):
            if len(team) == 2:
                key = pair_key(*team)
                self.partnered_with.add(key)
                self.partner_counts[key] += 1
        for a, b in product(team_a, team_b):
            key = pair_key(a, b)
            self.faced_against.add(key)
            self.opponent_counts[key] += 1
        for player_id in match.players:
            self.appearances[player_id] += 1
        if match.matchday is not None:
            self.matchdays.add(match.matchday)

    def has_partnered(self, a: str, b: str) -> bool:
        return pair_key(a, b) in self.partnered_with

    def has_faced(self, a: str, b: str) -> bool:
        return pair_key(a, b) in self.faced_against

    def repeated_partnerships(self) -> List[Tuple[Pair, int]]:
        return sorted((pair, n) for pair, n in self.partner_counts.items() if n > 1)

    def unused_partnerships(self, player_ids: Iterable[str]) -> List[Pair]:
        return [
            pair_key(a, b) for a, b in combinations(sorted(player_ids), 2)
            if pair_key(a, b) not in self.partnered_with
        ]

    def all_partnerships_used(self, player_ids: Iterable[str]) -> bool:
        return not self.unused_partnerships(player_ids)

    def __repr__(self):
        return (f"PairHistory(partnerships={len(self.partnered_with)}, "
                f"opponent_pairs={len(self.faced_against)}, matchdays={len(self.matchdays)})")


def build_pair_history(match_log: Iterable[MatchResult]) -> PairHistory:
    """
    Rebuild the history from the authoritative log.

    Every round-robin match counts, whatever its status: a pairing that has been
    issued stays used even while its matchday is frozen.
    """
    history = PairHistory()
    for match in match_log:
        if match.phase != MatchPhase.ROUND_ROBIN:
            continue
        history.add_match(match)
    return history


def audit_pairings(match_log: Iterable[MatchResult], player_ids: Iterable[str]) -> dict:
    """Summary of partnership coverage and repeats for the round-robin schedule."""
    player_ids = sorted(player_ids)
    history = build_pair_history(match_log)
    total = len(player_ids) * (len(player_ids) - 1) // 2
    roster = set(player_ids)
    used = [p for p in history.partnered_with if p[0] in roster and p[1] in roster]
    return {
        'total_partnerships': total,
        'used_partnerships': len(used),
        'remaining_partnerships': total - len(used),
        'matchdays': len(history.matchdays),
        'duplicates': [
            {'players': list(pair), 'count': count}
            for pair, count in history.repeated_partnerships()
        ],
        'is_valid': not history.repeated_partnerships(),
    }
