"""
Single elimination bracket generation and advancement for the knockout stage.

The top of the frozen final table is cut into groups of four consecutive
ranks. Each group plays one first-round match (1st and 4th against 2nd and
3rd), and later rounds are created up front as placeholders that winners
are written into.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from league.exceptions import InvalidTransitionError, MatchNotFoundError, NotEnoughPlayersError
from league.models import BracketMatch, MatchPhase, MatchResult, MatchStatus, StandingRow

PLAYERS_PER_GROUP = 4
DEFAULT_BRACKET_SIZE = 16

ROUND_ID_PREFIXES = {
    'Final': 'final',
    'Semifinal': 'semi',
    'Quarterfinal': 'quarter',
}


def get_round_name(matches_in_round: int) -> str:
    """Get the name of a round based on how many matches it holds."""
    if matches_in_round == 1:
        return "Final"
    elif matches_in_round == 2:
        return "Semifinal"
    elif matches_in_round == 4:
        return "Quarterfinal"
    else:
        return f"Round of {matches_in_round * 2} pairs"


def _round_id_prefix(round_name: str) -> str:
    return ROUND_ID_PREFIXES.get(round_name, round_name.lower().replace(' ', '_'))


def calculate_group_count(num_players: int, bracket_size: int = DEFAULT_BRACKET_SIZE) -> int:
    """
    Number of first-round groups of four for the available players.

    The count is a power of two so every round halves cleanly: with 16 players
    there are 4 groups, with 8 to 15 there are 2, with 4 to 7 a single final.
    """
    available = min(num_players, bracket_size)
    if available < PLAYERS_PER_GROUP:
        raise NotEnoughPlayersError(
            f"A bracket needs at least {PLAYERS_PER_GROUP} players, {num_players} available"
        )
    groups = 1
    while groups * 2 * PLAYERS_PER_GROUP <= available:
        groups *= 2
    return groups


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 4 groups: [1, 4, 2, 3]
    Semifinals: group 1 v group 4 and group 2 v group 3
    """
    if bracket_size <= 1:
        return [1]
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def seed_groups(standings_snapshot: Sequence[StandingRow],
                bracket_size: int = DEFAULT_BRACKET_SIZE) -> List[List[StandingRow]]:
    """Cut the top of the table into groups of four consecutive ranks."""
    groups = calculate_group_count(len(standings_snapshot), bracket_size)
    seeded = list(standings_snapshot)[:groups * PLAYERS_PER_GROUP]
    return [seeded[i:i + PLAYERS_PER_GROUP] for i in range(0, len(seeded), PLAYERS_PER_GROUP)]


def close_round_robin_and_seed_bracket(standings_snapshot: Sequence[StandingRow],
                                       bracket_size: int = DEFAULT_BRACKET_SIZE,
                                       created_at: Optional[str] = None) -> List[BracketMatch]:
    """
    Build every slot of the knockout bracket from the frozen final table.

    First-round slots are ``scheduled`` with both pairs set; every later slot is
    a placeholder that records in ``winner_advances_to`` where its own winner goes.
    """
    groups = seed_groups(standings_snapshot, bracket_size)
    created_at = created_at or datetime.now().isoformat()

    num_groups = len(groups)
    round_sizes = []
    matches_in_round = num_groups
    while matches_in_round >= 1:
        round_sizes.append(matches_in_round)
        matches_in_round //= 2

    round_ids = [_round_id_prefix(get_round_name(size)) for size in round_sizes]
    bracket = []
    for round_idx, size in enumerate(round_sizes):
        round_name = get_round_name(size)
        next_prefix = round_ids[round_idx + 1] if round_idx + 1 < len(round_sizes) else None
        for i in range(size):
            match_number = i + 1
            advances_to = f"{next_prefix}_{(match_number + 1) // 2}" if next_prefix else None
            team_a = team_b = None
            if round_idx == 0:
                group = groups[_generate_bracket_order(num_groups)[i] - 1]
                team_a = (group[0].player_id, group[3].player_id)
                team_b = (group[1].player_id, group[2].player_id)
            bracket.append(BracketMatch(
                id=f"{round_ids[round_idx]}_{match_number}",
                round=round_idx + 1,
                match_number=match_number,
                team_a=team_a,
                team_b=team_b,
                winner_advances_to=advances_to,
                round_name=round_name,
                created_at=created_at,
            ))
    return bracket


def knockout_matches(match_log: Iterable[MatchResult]) -> List[BracketMatch]:
    return sorted(
        (m for m in match_log if m.phase == MatchPhase.KNOCKOUT),
        key=lambda m: (m.round, m.match_number)
    )


def advance_bracket(bracket: Iterable[BracketMatch], completed_match: BracketMatch) -> Optional[BracketMatch]:
    """
    Write the winner of ``completed_match`` into the slot it feeds.

    Odd match numbers fill side A of the target slot, even ones side B. Returns
    the updated slot, or None when the completed match was the final.
    """
    if not completed_match.is_completed:
        raise InvalidTransitionError(f"Match {completed_match.id} has no result to advance")
    if completed_match.winner_advances_to is None:
        return None

    target = None
    for slot in bracket:
        if slot.id == completed_match.winner_advances_to:
            target = slot
            break
    if target is None:
        raise MatchNotFoundError(f"Bracket slot {completed_match.winner_advances_to} not found")
    if target.status == MatchStatus.COMPLETED:
        raise InvalidTransitionError(f"Bracket slot {target.id} is already completed")

    winner = completed_match.winning_team
    if completed_match.match_number % 2 == 1:
        target.team_a = winner
    else:
        target.team_b = winner
    target.status = MatchStatus.SCHEDULED
    return target


def bracket_champion(bracket: Iterable[BracketMatch]):
    """Winning pair of the completed final, or None."""
    for slot in bracket:
        if slot.is_final and slot.is_completed:
            return slot.winning_team
    return None


def get_bracket_display(bracket: Iterable[BracketMatch]) -> Dict:
    """
    Get bracket data grouped by round for display.
    """
    slots = sorted(bracket, key=lambda m: (m.round, m.match_number))
    rounds: Dict[str, List[Dict]] = {}
    for slot in slots:
        entry = slot.to_dict()
        entry['awaiting_teams'] = slot.awaiting_teams
        rounds.setdefault(slot.round_name or f"Round {slot.round}", []).append(entry)
    champion = bracket_champion(slots)
    return {
        'rounds': rounds,
        'total_rounds': max((s.round for s in slots), default=0),
        'champion': list(champion) if champion else None,
    }
