import os
import sys

from league.matchday import PairingWeights, generate_next_matchday
from league.storage import load_matches, load_players, load_settings


def format_matchday(matches, players):
    """Render generated matches as printable lines, one per match."""
    names = {p.id: p.name for p in players}
    lines = []
    if matches:
        lines.append(f"# Matchday {matches[0].matchday}")
    for match in matches:
        team_a = ' & '.join(names.get(pid, pid) for pid in match.team_a)
        team_b = ' & '.join(names.get(pid, pid) for pid in match.team_b)
        lines.append(f"{match.id}: {team_a} vs {team_b}")
    return lines


def preview_matchday(data_dir):
    """Run the generator over the stored league without writing anything."""
    players = load_players(data_dir)
    matches = load_matches(data_dir)
    weights = PairingWeights.from_settings(load_settings(data_dir))
    return players, generate_next_matchday(players, matches, weights=weights)


def main():
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    # Use command line argument if provided, otherwise use default path
    data_dir = sys.argv[1] if len(sys.argv) > 1 else os.environ.get(
        'TOURNAMENT_DATA_DIR', os.path.join(base_dir, 'data')
    )

    players, outcome = preview_matchday(data_dir)
    if not outcome.ok:
        print(f"Cannot generate: {outcome.reason.value} ({outcome.message})")
        return 1

    for line in format_matchday(outcome.records, players):
        print(line)
    return 0


if __name__ == '__main__':
    sys.exit(main())
