"""
Unit tests for the Flask JSON API.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from filelock import Timeout


ROSTER = ['Alice', 'Bruno', 'Carla', 'Dario']


def _add_players(client, names=ROSTER):
    for name in names:
        response = client.post('/api/players', json={'name': name})
        assert response.status_code == 201


def _generate(client):
    return client.post('/api/matchdays/generate')


def _play_matchday(client, matchday, result=None):
    result = result or {'sets_a': 2, 'sets_b': 1, 'games_a': 15, 'games_b': 12}
    matches = client.get(f'/api/matches?matchday={matchday}').get_json()['matches']
    for match in matches:
        response = client.post(f"/api/matches/{match['id']}/result", json=result)
        assert response.status_code == 200


class TestPlayers:
    """Tests for roster routes."""

    def test_empty_roster(self, client, temp_data_dir):
        """Test a fresh data directory has no players."""
        response = client.get('/api/players')
        assert response.status_code == 200
        assert response.get_json() == {'players': []}

    def test_add_player(self, client, temp_data_dir):
        """Test a player id defaults to a slug of the name."""
        response = client.post('/api/players', json={'name': 'María José'})
        assert response.status_code == 201
        assert response.get_json()['player'] == {'id': 'mara-jos', 'name': 'María José'}

        with open(os.path.join(temp_data_dir, 'players.yaml'), encoding='utf-8') as f:
            stored = yaml.safe_load(f)
        assert stored['players'][0]['id'] == 'mara-jos'

    def test_duplicate_player(self, client, temp_data_dir):
        """Test a duplicate id is refused."""
        client.post('/api/players', json={'name': 'Alice'})
        response = client.post('/api/players', json={'name': 'alice'})
        assert response.status_code == 409
        assert response.get_json()['success'] is False

    def test_missing_name(self, client, temp_data_dir):
        """Test a player needs a name."""
        response = client.post('/api/players', json={})
        assert response.status_code == 400


class TestMatchdays:
    """Tests for matchday generation routes."""

    def test_not_enough_players(self, client, temp_data_dir):
        """Test generation with three players is rejected."""
        _add_players(client, ROSTER[:3])
        response = _generate(client)
        assert response.status_code == 409
        assert response.get_json()['reason'] == 'not-enough-players'

    def test_generate_and_list(self, client, temp_data_dir):
        """Test a generated matchday is stored."""
        _add_players(client)
        response = _generate(client)
        assert response.status_code == 201
        data = response.get_json()
        assert data['matchday'] == 1
        assert len(data['matches']) == 1

        matches = client.get('/api/matches').get_json()['matches']
        assert [m['id'] for m in matches] == ['rr-1-1']
        assert matches[0]['status'] == 'scheduled'

    def test_incomplete_previous_round(self, client, temp_data_dir):
        """Test an unplayed matchday blocks the next one and writes nothing."""
        _add_players(client)
        _generate(client)
        response = _generate(client)
        assert response.status_code == 409
        assert response.get_json()['reason'] == 'incomplete-previous-round'
        assert len(client.get('/api/matches').get_json()['matches']) == 1

    def test_completion_closes_round_robin(self, client, temp_data_dir):
        """Test the generator's completion report closes the round-robin."""
        _add_players(client)
        for matchday in (1, 2, 3):
            assert _generate(client).status_code == 201
            _play_matchday(client, matchday)

        response = _generate(client)
        assert response.status_code == 409
        assert response.get_json()['reason'] == 'round-robin-complete'
        assert response.get_json()['phase'] == 'round-robin-completed'

        tournament = client.get('/api/tournament').get_json()
        assert tournament['phase'] == 'round-robin-completed'
        assert len(tournament['final_standings']) == 4

    def test_delete_last_matchday(self, client, temp_data_dir):
        """Test the last generated matchday can be undone."""
        _add_players(client)
        _generate(client)
        response = client.post('/api/matchdays/delete-last')
        assert response.status_code == 200
        assert response.get_json()['matchday'] == 1
        assert client.get('/api/matches').get_json()['matches'] == []

    def test_delete_without_matchdays(self, client, temp_data_dir):
        """Test deleting from an empty log is a 404."""
        assert client.post('/api/matchdays/delete-last').status_code == 404


class TestMatches:
    """Tests for confirm and result routes."""

    def test_confirm_then_result(self, client, temp_data_dir):
        """Test a match moves through confirmed to completed."""
        _add_players(client)
        _generate(client)
        response = client.post('/api/matches/rr-1-1/confirm',
                               json={'place': 'Club Norte', 'date': '2026-05-04', 'time': '19:30'})
        assert response.status_code == 200
        assert response.get_json()['match']['status'] == 'confirmed'

        response = client.post('/api/matches/rr-1-1/result', json={'sets': [[6, 3], [6, 4], [6, 1]]})
        assert response.status_code == 200
        match = response.get_json()['match']
        assert match['status'] == 'completed'
        assert (match['sets_a'], match['sets_b'], match['games_a'], match['games_b']) == (3, 0, 18, 8)

    def test_invalid_score(self, client, temp_data_dir):
        """Test a drawn result is a 400 and leaves the match scheduled."""
        _add_players(client)
        _generate(client)
        response = client.post('/api/matches/rr-1-1/result', json={'sets_a': 1, 'sets_b': 1})
        assert response.status_code == 400
        assert client.get('/api/matches').get_json()['matches'][0]['status'] == 'scheduled'

    def test_unknown_match(self, client, temp_data_dir):
        """Test an unknown id is a 404."""
        response = client.post('/api/matches/rr-9-9/result', json={'sets_a': 3, 'sets_b': 0})
        assert response.status_code == 404

    def test_standings_follow_results(self, client, temp_data_dir):
        """Test standings are recomputed after a write."""
        _add_players(client)
        _generate(client)
        before = client.get('/api/standings').get_json()['standings']
        assert all(row['points'] == 0 for row in before)

        client.post('/api/matches/rr-1-1/result', json={'sets_a': 3, 'sets_b': 0, 'games_a': 9, 'games_b': 4})
        rows = {row['player_id']: row for row in client.get('/api/standings').get_json()['standings']}
        assert rows['alice']['points'] == 3
        assert rows['alice']['games_won'] == 9
        assert rows['bruno']['points'] == 0


class TestRecovery:
    """Tests for freeze and recovery routes."""

    def test_freeze_and_resolve(self, client, temp_data_dir):
        """Test freezing a matchday and resolving its match."""
        _add_players(client)
        _generate(client)

        response = client.post('/api/matchdays/1/freeze')
        assert response.status_code == 200
        assert len(response.get_json()['frozen']) == 1

        recovery = client.get('/api/recovery').get_json()
        assert recovery['frozen_matchdays'] == [1]
        assert [m['id'] for m in recovery['matchdays']['1']] == ['rr-1-1']
        assert client.get('/api/standings').get_json()['frozen_matchdays'] == [1]

        response = client.post('/api/recovery/rr-1-1/resolve', json={'result': {'sets_a': 0, 'sets_b': 3}})
        assert response.status_code == 200
        assert response.get_json()['matchday_frozen'] is False
        assert client.get('/api/recovery').get_json()['frozen_matchdays'] == []

    def test_freeze_saves_standings_backup(self, client, temp_data_dir):
        """Test the table before the frozen matchday is kept in the state."""
        _add_players(client)
        _generate(client)
        client.post('/api/matchdays/1/freeze')
        state = client.get('/api/tournament').get_json()
        assert '1' in {str(k) for k in state['standings_backups']}

    def test_freeze_completed_matchday(self, client, temp_data_dir):
        """Test a fully completed matchday cannot be frozen."""
        _add_players(client)
        _generate(client)
        _play_matchday(client, 1)
        response = client.post('/api/matchdays/1/freeze')
        assert response.status_code == 409
        assert response.get_json()['reason'] == 'already-fully-completed'

    def test_freeze_unknown_matchday(self, client, temp_data_dir):
        """Test freezing a missing matchday is a 404."""
        response = client.post('/api/matchdays/7/freeze')
        assert response.status_code == 404
        assert response.get_json()['reason'] == 'not-found'

    def test_result_on_frozen_match_refused(self, client, temp_data_dir):
        """Test frozen matches are resolved through the recovery route only."""
        _add_players(client)
        _generate(client)
        client.post('/api/matchdays/1/freeze')
        response = client.post('/api/matches/rr-1-1/result', json={'sets_a': 3, 'sets_b': 0})
        assert response.status_code == 409


class TestKnockout:
    """Tests for bracket routes."""

    def _finish_round_robin(self, client):
        _add_players(client)
        for matchday in (1, 2, 3):
            _generate(client)
            _play_matchday(client, matchday)

    def test_seed_play_and_reset(self, client, temp_data_dir):
        """Test seeding the bracket, playing the final and resetting."""
        self._finish_round_robin(client)
        response = client.post('/api/bracket/seed')
        assert response.status_code == 201
        bracket = response.get_json()['bracket']
        assert [slot['id'] for slot in bracket] == ['final_1']

        response = client.post('/api/matches/final_1/result', json={'sets_a': 2, 'sets_b': 1})
        assert response.status_code == 200
        data = response.get_json()
        assert data['advanced_to'] is None
        assert data['phase'] == 'knockout-completed'
        assert data['champion'] == bracket[0]['team_a']

        display = client.get('/api/bracket').get_json()
        assert display['champion'] == bracket[0]['team_a']

        response = client.post('/api/bracket/reset')
        assert response.status_code == 200
        assert response.get_json()['phase'] == 'round-robin-completed'
        assert client.get('/api/matches?phase=knockout').get_json()['matches'] == []

    def test_seed_early_needs_force(self, client, temp_data_dir):
        """Test seeding before completion requires force."""
        _add_players(client)
        _generate(client)
        _play_matchday(client, 1)
        assert client.post('/api/bracket/seed').status_code == 409
        assert client.post('/api/bracket/seed', json={'force': True}).status_code == 201

    def test_generate_after_close_refused(self, client, temp_data_dir):
        """Test no matchday is generated once the round-robin is closed."""
        _add_players(client)
        _generate(client)
        _play_matchday(client, 1)
        client.post('/api/round-robin/close', json={'force': True})
        response = _generate(client)
        assert response.status_code == 409


class TestSettingsAndReset:
    """Tests for settings and reset routes."""

    def test_default_settings(self, client, temp_data_dir):
        """Test defaults are served without a settings file."""
        settings = client.get('/api/settings').get_json()
        assert settings['sets_per_match'] == 3
        assert settings['partner_repeat_penalty'] == 10000

    def test_update_settings(self, client, temp_data_dir):
        """Test known keys are stored."""
        response = client.post('/api/settings', json={'league_name': 'Liga Martes', 'imbalance_weight': '5'})
        assert response.status_code == 200
        settings = client.get('/api/settings').get_json()
        assert settings['league_name'] == 'Liga Martes'
        assert settings['imbalance_weight'] == 5

    def test_unknown_setting(self, client, temp_data_dir):
        """Test unknown keys are refused."""
        response = client.post('/api/settings', json={'colour': 'blue'})
        assert response.status_code == 400

    def test_reset_keeps_players(self, client, temp_data_dir):
        """Test reset clears matches and state only."""
        _add_players(client)
        _generate(client)
        assert client.post('/api/reset').status_code == 200
        assert client.get('/api/matches').get_json()['matches'] == []
        assert len(client.get('/api/players').get_json()['players']) == 4
        assert client.get('/api/tournament').get_json()['phase'] == 'round-robin-open'

    def test_pairing_audit(self, client, temp_data_dir):
        """Test the audit reports coverage."""
        _add_players(client)
        _generate(client)
        report = client.get('/api/pairings/audit').get_json()
        assert report['total_partnerships'] == 6
        assert report['used_partnerships'] == 2
        assert report['is_valid']

    def test_lock_timeout(self, client, temp_data_dir, monkeypatch):
        """Test a busy lock answers 503."""
        import app as app_module

        class BusyLock:
            def __enter__(self):
                raise Timeout(os.path.join(temp_data_dir, '.lock'))

            def __exit__(self, *args):
                return False

        monkeypatch.setattr(app_module, '_data_lock', lambda: BusyLock())
        response = client.post('/api/players', json={'name': 'Alice'})
        assert response.status_code == 503
