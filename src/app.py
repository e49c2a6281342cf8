"""
Flask web application for the doubles league.

JSON API over the league core. Every write runs as one transaction under a
file lock on the data directory; reads take no lock.
"""
import os
from functools import wraps
from datetime import datetime
from filelock import FileLock, Timeout
from flask import Flask, request, jsonify
from league.elimination import get_bracket_display, knockout_matches
from league.exceptions import (
    DuplicatePlayerError, InvalidTransitionError, LeagueError,
    MatchNotFoundError, PhaseError,
)
from league.history import audit_pairings
from league.matchday import MatchdayGenerator, PairingWeights, delete_last_matchday, generate_next_matchday
from league.models import MatchPhase, RejectionReason
from league.phases import PhaseController, TournamentPhase
from league.recovery import find_match, freeze_matchday, frozen_matchdays, recovery_matches, resolve_recovery_match
from league.scoring import confirm_match, record_result
from league.standings import compute_standings, standings_before_matchday
from league.storage import (
    LOCK_FILE, add_player, data_file_mtimes, load_matches, load_players, load_settings,
    load_state, reset_league, save_matches, save_players, save_settings, save_state,
    update_settings,
)

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))

# Standings cache: {'key': mtimes tuple, 'rows': [StandingRow]}
_standings_cache = {}


def _data_lock() -> FileLock:
    """Lock guarding every read-modify-write of the league data."""
    settings = load_settings(DATA_DIR)
    os.makedirs(DATA_DIR, exist_ok=True)
    return FileLock(os.path.join(DATA_DIR, LOCK_FILE), timeout=settings['lock_timeout_seconds'])


def invalidate_standings_cache():
    _standings_cache.clear()


def get_cached_standings():
    """Standings of the current log, recomputed whenever the data files change."""
    key = tuple(sorted(data_file_mtimes(DATA_DIR).items()))
    if _standings_cache.get('key') == key:
        return _standings_cache['rows']
    rows = compute_standings(load_matches(DATA_DIR), load_players(DATA_DIR))
    _standings_cache['key'] = key
    _standings_cache['rows'] = rows
    return rows


def write_transaction(f):
    """Run a write route under the data lock and drop cached reads afterwards."""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            with _data_lock():
                return f(*args, **kwargs)
        except Timeout:
            app.logger.error(f'Timed out waiting for the data lock in {f.__name__}')
            return jsonify({'success': False, 'error': 'League data is busy, try again'}), 503
        finally:
            invalidate_standings_cache()
    return decorated


def _error_status(error: LeagueError) -> int:
    if isinstance(error, MatchNotFoundError):
        return 404
    if isinstance(error, (InvalidTransitionError, PhaseError, DuplicatePlayerError)):
        return 409
    return 400


@app.errorhandler(LeagueError)
def handle_league_error(error):
    status = _error_status(error)
    app.logger.warning(f'{request.method} {request.path} failed: {error}')
    return jsonify({'success': False, 'error': str(error)}), status


def _rejection_response(outcome, **extra):
    app.logger.warning(f'{request.path} rejected: {outcome.reason.value} ({outcome.message})')
    body = {'success': False, 'error': outcome.message, 'reason': outcome.reason.value}
    body.update(extra)
    status = 404 if outcome.reason == RejectionReason.NOT_FOUND else 409
    return jsonify(body), status


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _settings():
    return load_settings(DATA_DIR)


@app.route('/api/players', methods=['GET'])
def api_players():
    return jsonify({'players': [p.to_dict() for p in load_players(DATA_DIR)]})


@app.route('/api/players', methods=['POST'])
@write_transaction
def api_add_player():
    """Register a player. Body: {name, id?}."""
    data = _json_body()
    players = load_players(DATA_DIR)
    player = add_player(players, data.get('name', ''), data.get('id'))
    save_players(DATA_DIR, players)
    app.logger.info(f'Added player {player.id}')
    return jsonify({'success': True, 'player': player.to_dict()}), 201


@app.route('/api/matches', methods=['GET'])
def api_matches():
    """Match log, optionally filtered by ?matchday= and ?phase=."""
    matches = load_matches(DATA_DIR)
    matchday = request.args.get('matchday', type=int)
    phase = request.args.get('phase')
    if matchday is not None:
        matches = [m for m in matches if m.matchday == matchday]
    if phase:
        matches = [m for m in matches if m.phase.value == phase]
    return jsonify({'matches': [m.to_dict() for m in matches]})


@app.route('/api/matchdays/generate', methods=['POST'])
@write_transaction
def api_generate_matchday():
    """Create the next matchday, or report why it cannot be created."""
    players = load_players(DATA_DIR)
    matches = load_matches(DATA_DIR)
    state = load_state(DATA_DIR)
    state.require(TournamentPhase.ROUND_ROBIN_OPEN)

    outcome = generate_next_matchday(
        players, matches, weights=PairingWeights.from_settings(_settings())
    )
    if not outcome.ok:
        if outcome.reason == RejectionReason.ROUND_ROBIN_COMPLETE:
            try:
                PhaseController(state).close_round_robin(players, matches)
                save_state(DATA_DIR, state)
            except PhaseError as e:
                app.logger.warning(f'Round-robin complete but could not be closed: {e}')
        return _rejection_response(outcome, phase=state.phase.value)

    matches.extend(outcome.records)
    save_matches(DATA_DIR, matches)
    matchday = outcome.records[0].matchday
    app.logger.info(f'Generated matchday {matchday} with {len(outcome.records)} matches')
    return jsonify({
        'success': True,
        'matchday': matchday,
        'matches': [m.to_dict() for m in outcome.records],
    }), 201


@app.route('/api/matchdays/delete-last', methods=['POST'])
@write_transaction
def api_delete_last_matchday():
    state = load_state(DATA_DIR)
    state.require(TournamentPhase.ROUND_ROBIN_OPEN)
    remaining, removed = delete_last_matchday(load_matches(DATA_DIR))
    matchday = removed[0].matchday
    state.standings_backups.pop(matchday, None)
    save_matches(DATA_DIR, remaining)
    save_state(DATA_DIR, state)
    app.logger.info(f'Deleted matchday {matchday}')
    return jsonify({'success': True, 'matchday': matchday, 'deleted': len(removed)})


@app.route('/api/matchdays/<int:matchday>/freeze', methods=['POST'])
@write_transaction
def api_freeze_matchday(matchday):
    """Move every match of an incomplete matchday into recovery."""
    players = load_players(DATA_DIR)
    matches = load_matches(DATA_DIR)
    state = load_state(DATA_DIR)
    backup = standings_before_matchday(matches, matchday, players)

    outcome = freeze_matchday(matches, matchday)
    if not outcome.ok:
        return _rejection_response(outcome)

    state.save_standings_backup(matchday, backup, reason=f'before freezing matchday {matchday}')
    save_matches(DATA_DIR, matches)
    save_state(DATA_DIR, state)
    app.logger.info(f'Froze matchday {matchday} ({len(outcome.records)} matches)')
    return jsonify({
        'success': True,
        'matchday': matchday,
        'frozen': [m.to_dict() for m in outcome.records],
    })


@app.route('/api/recovery', methods=['GET'])
def api_recovery():
    matches = load_matches(DATA_DIR)
    grouped = recovery_matches(matches)
    return jsonify({
        'frozen_matchdays': sorted(frozen_matchdays(matches)),
        'matchdays': {str(md): [m.to_dict() for m in ms] for md, ms in grouped.items()},
    })


@app.route('/api/recovery/<match_id>/resolve', methods=['POST'])
@write_transaction
def api_resolve_recovery(match_id):
    """Resolve a recovery match with a late result, or restore its parked score when no body is sent."""
    data = _json_body()
    matches = load_matches(DATA_DIR)
    match = resolve_recovery_match(
        matches, match_id, data.get('result'), sets_per_match=_settings()['sets_per_match']
    )
    save_matches(DATA_DIR, matches)
    still_frozen = match.matchday in frozen_matchdays(matches)
    app.logger.info(f'Resolved recovery match {match_id}')
    return jsonify({'success': True, 'match': match.to_dict(), 'matchday_frozen': still_frozen})


@app.route('/api/matches/<match_id>/confirm', methods=['POST'])
@write_transaction
def api_confirm_match(match_id):
    """Confirm place, date and time of a scheduled match."""
    data = _json_body()
    matches = load_matches(DATA_DIR)
    match = find_match(matches, match_id)
    confirm_match(match, data.get('place', ''), data.get('date', ''), data.get('time', ''))
    save_matches(DATA_DIR, matches)
    app.logger.info(f'Confirmed match {match_id} at {match.place} on {match.date} {match.time}')
    return jsonify({'success': True, 'match': match.to_dict()})


@app.route('/api/matches/<match_id>/result', methods=['POST'])
@write_transaction
def api_record_result(match_id):
    """
    Record a result. Body: {'sets': [[6, 3], ...]} or {'sets_a', 'sets_b', 'games_a'?, 'games_b'?}.

    Knockout results advance the winner; the final completes the tournament.
    """
    data = _json_body()
    sets_per_match = _settings()['sets_per_match']
    matches = load_matches(DATA_DIR)
    match = find_match(matches, match_id)

    if match.phase == MatchPhase.KNOCKOUT:
        state = load_state(DATA_DIR)
        match, advanced = PhaseController(state).record_knockout_result(
            matches, match_id, data, sets_per_match=sets_per_match
        )
        save_matches(DATA_DIR, matches)
        save_state(DATA_DIR, state)
        app.logger.info(f'Recorded knockout result for {match_id}')
        return jsonify({
            'success': True,
            'match': match.to_dict(),
            'advanced_to': advanced.to_dict() if advanced else None,
            'phase': state.phase.value,
            'champion': list(state.champion) if state.champion else None,
        })

    record_result(match, data, sets_per_match=sets_per_match)
    save_matches(DATA_DIR, matches)
    app.logger.info(f'Recorded result {match.sets_a}-{match.sets_b} for {match_id}')
    return jsonify({'success': True, 'match': match.to_dict()})


@app.route('/api/standings', methods=['GET'])
def api_standings():
    """Current standings, or the table before a matchday with ?before=<n>."""
    before = request.args.get('before', type=int)
    if before is not None:
        rows = standings_before_matchday(load_matches(DATA_DIR), before, load_players(DATA_DIR))
    else:
        rows = get_cached_standings()
    return jsonify({
        'standings': [row.to_dict() for row in rows],
        'frozen_matchdays': sorted(frozen_matchdays(load_matches(DATA_DIR))),
    })


@app.route('/api/pairings/audit', methods=['GET'])
def api_audit_pairings():
    players = load_players(DATA_DIR)
    return jsonify(audit_pairings(load_matches(DATA_DIR), [p.id for p in players]))


@app.route('/api/tournament', methods=['GET'])
def api_tournament():
    """Phase, frozen final table, champion and round-robin progress."""
    players = load_players(DATA_DIR)
    matches = load_matches(DATA_DIR)
    state = load_state(DATA_DIR)
    generator = MatchdayGenerator(players, matches)
    data = state.to_dict()
    data.update({
        'league_name': _settings()['league_name'],
        'players': len(players),
        'matchdays_played': len(generator.history.matchdays),
        'next_matchday': generator.next_matchday_number,
        'round_robin_complete': len(players) >= 4 and generator.is_round_robin_complete(),
    })
    return jsonify(data)


@app.route('/api/round-robin/close', methods=['POST'])
@write_transaction
def api_close_round_robin():
    """Freeze the final table. Body: {force?} closes before the completion criterion holds."""
    data = _json_body()
    state = load_state(DATA_DIR)
    snapshot = PhaseController(state).close_round_robin(
        load_players(DATA_DIR), load_matches(DATA_DIR), force=bool(data.get('force'))
    )
    save_state(DATA_DIR, state)
    app.logger.info(f'Round-robin closed with {len(snapshot)} players')
    return jsonify({
        'success': True,
        'phase': state.phase.value,
        'final_standings': [row.to_dict() for row in snapshot],
    })


@app.route('/api/bracket/seed', methods=['POST'])
@write_transaction
def api_seed_bracket():
    """Seed the knockout bracket from the frozen final table, closing the round-robin first if needed."""
    data = _json_body()
    matches = load_matches(DATA_DIR)
    state = load_state(DATA_DIR)
    controller = PhaseController(state)
    if state.phase == TournamentPhase.ROUND_ROBIN_OPEN:
        controller.close_round_robin(load_players(DATA_DIR), matches, force=bool(data.get('force')))
    bracket = controller.seed_bracket(matches, bracket_size=_settings()['bracket_size'])
    matches.extend(bracket)
    save_matches(DATA_DIR, matches)
    save_state(DATA_DIR, state)
    app.logger.info(f'Seeded bracket with {len(bracket)} slots')
    return jsonify({
        'success': True,
        'phase': state.phase.value,
        'bracket': [m.to_dict() for m in bracket],
    }), 201


@app.route('/api/bracket', methods=['GET'])
def api_bracket():
    return jsonify(get_bracket_display(knockout_matches(load_matches(DATA_DIR))))


@app.route('/api/bracket/reset', methods=['POST'])
@write_transaction
def api_reset_bracket():
    state = load_state(DATA_DIR)
    remaining = PhaseController(state).reset_bracket(load_matches(DATA_DIR))
    save_matches(DATA_DIR, remaining)
    save_state(DATA_DIR, state)
    app.logger.info('Bracket reset')
    return jsonify({'success': True, 'phase': state.phase.value})


@app.route('/api/reset', methods=['POST'])
@write_transaction
def api_reset_all():
    """Reset matches and tournament state. Players and settings are kept."""
    reset_league(DATA_DIR)
    app.logger.info(f'League reset at {datetime.now().isoformat()}')
    return jsonify({'success': True})


@app.route('/api/settings', methods=['GET'])
def api_get_settings():
    return jsonify(_settings())


@app.route('/api/settings', methods=['POST'])
@write_transaction
def api_update_settings():
    """Update settings. Only known keys are accepted."""
    settings = update_settings(_settings(), _json_body())
    save_settings(DATA_DIR, settings)
    return jsonify({'success': True, 'settings': settings})


if __name__ == '__main__':
    app.run(debug=True, port=5000)
