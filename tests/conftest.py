"""
Shared pytest fixtures for league tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset (skips full-tournament simulations)
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from league.models import MatchResult, Player
from league.scoring import record_result


def _roster(n):
    return [Player(f"p{i:02d}", f"Player {i:02d}") for i in range(1, n + 1)]


@pytest.fixture
def make_players():
    """Factory for rosters of ``n`` players with ids p01, p02, ..."""
    return _roster


@pytest.fixture
def four_players():
    return [Player('A', 'Alice'), Player('B', 'Bruno'), Player('C', 'Carla'), Player('D', 'Dario')]


@pytest.fixture
def eight_players():
    return _roster(8)


@pytest.fixture
def sixteen_players():
    return _roster(16)


@pytest.fixture
def complete_matches():
    """Record a result on every open match of ``matchday``.

    Team A wins 2-1 (games 14-11) unless ``results`` maps a match id to another result.
    """
    def _complete(matches, matchday, results=None):
        results = results or {}
        for match in matches:
            if match.matchday != matchday or match.is_completed:
                continue
            result = results.get(match.id, {'sets_a': 2, 'sets_b': 1, 'games_a': 14, 'games_b': 11})
            record_result(match, result, completed_at='2026-05-01T20:00:00')
        return matches
    return _complete


@pytest.fixture
def make_match():
    """Factory for a round-robin match between two pairs."""
    def _make(match_id, team_a, team_b, matchday=1, **kwargs):
        return MatchResult(match_id, team_a, team_b, matchday=matchday, **kwargs)
    return _make


@pytest.fixture
def client():
    """Create a test client."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at an empty temporary data directory."""
    import app as app_module

    data_dir = tmp_path / "league"
    data_dir.mkdir()
    monkeypatch.setattr(app_module, 'DATA_DIR', str(data_dir))
    app_module.invalidate_standings_cache()
    return str(data_dir)
