"""
Standings calculation for the round-robin phase.

Every set won is worth one point to each player of the winning side.
Ranking: points -> set difference -> game difference -> fewest played -> name.
"""
from typing import Dict, Iterable, List, Optional

from league.models import MatchResult, Player, StandingRow
from league.recovery import filter_for_standings


def calculate_standings(matches: Iterable[MatchResult], players: Optional[Iterable[Player]] = None) -> List[StandingRow]:
    """
    Build the ranked table from matches already filtered by the consistency guard.

    Players from the roster appear even with no match played. Players found only
    in the matches are ranked under their id.
    """
    rows: Dict[str, StandingRow] = {}
    for player in players or []:
        rows[player.id] = StandingRow(player.id, player.name)

    for match in sorted(matches, key=lambda m: m.sort_key()):
        if not match.is_completed:
            continue
        if len(match.team_a or ()) != 2 or len(match.team_b or ()) != 2:
            continue

        games_a = match.games_a or 0
        games_b = match.games_b or 0
        sides = (
            (match.team_a, match.sets_a, match.sets_b, games_a, games_b),
            (match.team_b, match.sets_b, match.sets_a, games_b, games_a),
        )
        for team, sets_won, sets_lost, games_won, games_lost in sides:
            for player_id in team:
                row = rows.get(player_id)
                if row is None:
                    row = rows[player_id] = StandingRow(player_id)
                row.points += sets_won
                row.sets_won += sets_won
                row.sets_lost += sets_lost
                row.games_won += games_won
                row.games_lost += games_lost
                row.played += 1

    return sorted(rows.values(), key=lambda r: r.sort_key())


def compute_standings(match_log: Iterable[MatchResult], players: Optional[Iterable[Player]] = None) -> List[StandingRow]:
    """Standings over the whole log, with frozen matchdays and knockout matches left out."""
    return calculate_standings(filter_for_standings(match_log), players)


def standings_before_matchday(match_log: Iterable[MatchResult], matchday: int,
                              players: Optional[Iterable[Player]] = None) -> List[StandingRow]:
    """Standings as they were before ``matchday``: every match of that matchday is excluded."""
    remaining = [m for m in match_log if m.matchday != matchday]
    return compute_standings(remaining, players)


def points_by_player(rows: Iterable[StandingRow]) -> Dict[str, StandingRow]:
    return {row.player_id: row for row in rows}
