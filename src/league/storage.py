"""
YAML persistence for the league: roster, match log, tournament state and settings.

Every file lives in one data directory. Missing or empty files load as empty
defaults so a fresh directory is a valid, empty league.
"""
import os
import re
from typing import Dict, List

import yaml

from league.exceptions import DuplicatePlayerError, LeagueError
from league.models import MatchResult, Player
from league.phases import TournamentState

PLAYERS_FILE = 'players.yaml'
MATCHES_FILE = 'matches.yaml'
STATE_FILE = 'state.yaml'
SETTINGS_FILE = 'settings.yaml'
LOCK_FILE = '.lock'


def get_default_settings():
    """Return default settings."""
    return {
        'league_name': 'Padel League',
        'sets_per_match': 3,
        'bracket_size': 16,
        'imbalance_weight': 10,
        'opponent_repeat_penalty': 50,
        'partner_repeat_penalty': 10000,
        'lock_timeout_seconds': 10,
    }


def _read_yaml(path: str):
    if not os.path.exists(path):
        return None
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f)


def _write_yaml(path: str, data):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def load_players(data_dir: str) -> List[Player]:
    """Load the roster from YAML file."""
    data = _read_yaml(os.path.join(data_dir, PLAYERS_FILE))
    if not data:
        return []
    return [Player.from_dict(p) for p in data.get('players', [])]


def save_players(data_dir: str, players: List[Player]):
    _write_yaml(os.path.join(data_dir, PLAYERS_FILE), {'players': [p.to_dict() for p in players]})


def load_matches(data_dir: str) -> List[MatchResult]:
    """Load the match log (round-robin and knockout) from YAML file."""
    data = _read_yaml(os.path.join(data_dir, MATCHES_FILE))
    if not data:
        return []
    return [MatchResult.from_dict(m) for m in data.get('matches', [])]


def save_matches(data_dir: str, matches: List[MatchResult]):
    _write_yaml(os.path.join(data_dir, MATCHES_FILE), {'matches': [m.to_dict() for m in matches]})


def load_state(data_dir: str) -> TournamentState:
    return TournamentState.from_dict(_read_yaml(os.path.join(data_dir, STATE_FILE)))


def save_state(data_dir: str, state: TournamentState):
    _write_yaml(os.path.join(data_dir, STATE_FILE), state.to_dict())


def load_settings(data_dir: str) -> Dict:
    """Load settings from YAML file, merging with defaults."""
    defaults = get_default_settings()
    data = _read_yaml(os.path.join(data_dir, SETTINGS_FILE))
    if not data:
        return defaults
    # Merge with defaults to ensure all keys exist
    for key, value in defaults.items():
        if key not in data:
            data[key] = value
    return data


def save_settings(data_dir: str, settings: Dict):
    _write_yaml(os.path.join(data_dir, SETTINGS_FILE), settings)


def update_settings(settings: Dict, changes: Dict) -> Dict:
    """Apply known keys from ``changes``; integer settings must stay positive integers."""
    defaults = get_default_settings()
    for key, value in (changes or {}).items():
        if key not in defaults:
            raise LeagueError(f"Unknown setting: {key}")
        if isinstance(defaults[key], int):
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise LeagueError(f"Setting {key} must be an integer")
            if value < 1:
                raise LeagueError(f"Setting {key} must be positive")
        settings[key] = value
    return settings


def data_file_mtimes(data_dir: str, names=(PLAYERS_FILE, MATCHES_FILE)) -> Dict[str, float]:
    """Return modification times for the given data files, 0.0 when missing."""
    files = [os.path.join(data_dir, n) for n in names]
    return {f: os.path.getmtime(f) if os.path.exists(f) else 0.0 for f in files}


def reset_league(data_dir: str):
    """Clear matches and tournament state. Players and settings are kept."""
    for fname in (MATCHES_FILE, STATE_FILE):
        fpath = os.path.join(data_dir, fname)
        if os.path.exists(fpath):
            os.remove(fpath)


def slugify(name: str) -> str:
    """Convert a player name to an id-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'player'


def add_player(players: List[Player], name: str, player_id: str = None) -> Player:
    """Register a player on the roster. The id defaults to a slug of the name."""
    name = (name or '').strip()
    if not name:
        raise LeagueError('Player name is required')
    player_id = (player_id or '').strip() or slugify(name)
    if any(p.id == player_id for p in players):
        raise DuplicatePlayerError(f"Player {player_id} already exists")
    player = Player(player_id, name)
    players.append(player)
    return player
