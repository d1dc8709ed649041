from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from charades.services.charades import actions, sync
from charades.services.charades.errors import CharadesError
from charades.services.charades.scoring import standings
from charades.services.charades.state import Session


lobbies = Blueprint('lobbies', __name__)


def _session() -> Session:
    return Session(player_id=current_user.id, nickname=current_user.nickname)


def _fail(exc: CharadesError):
    return jsonify(exc.to_dict()), exc.status


def _run(action: str, code: str, **params):
    """Run a game action for the logged-in player and map failures to HTTP."""
    try:
        result = actions.ACTIONS[action](_session(), code, **params)
    except CharadesError as exc:
        current_app.logger.info(f"[action-rejected] action={action} code={code} by={current_user.id} error={exc.code}")
        return _fail(exc)
    if isinstance(result, dict):
        return jsonify(dict(result, ok=True))
    return jsonify({'ok': True, 'lobby': actions.lobby_payload(result)})


@lobbies.route('/create', methods=['POST'])
@login_required
def create_lobby():
    data = request.get_json(silent=True) or {}
    try:
        lobby = actions.create_lobby(
            _session(),
            tasks_per_player=data.get('tasks_per_player'),
            round_time=data.get('round_time_seconds'),
            categories=data.get('selected_categories') or [],
        )
    except CharadesError as exc:
        return _fail(exc)
    return jsonify({
        'ok': True,
        'message': 'New lobby created!',
        'code': lobby.code,
        'lobby': actions.lobby_payload(lobby),
    }), 201


@lobbies.route('/join', methods=['POST'])
@login_required
def join_lobby():
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    if not code:
        return jsonify({'ok': False, 'error': 'invalid_request', 'message': 'Lobby code is required'}), 400
    try:
        lobby = actions.join_lobby(_session(), code)
    except CharadesError as exc:
        return _fail(exc)
    return jsonify({'ok': True, 'lobby': actions.lobby_payload(lobby)}), 201


@lobbies.route('/<string:code>/state', methods=['GET'])
def get_lobby_state(code):
    try:
        lobby = sync.find_lobby(code)
    except CharadesError as exc:
        return _fail(exc)
    payload = actions.lobby_payload(lobby)
    payload['standings'] = standings(lobby.id)
    return jsonify(payload)


@lobbies.route('/<string:code>/start', methods=['POST'])
@login_required
def start_game(code):
    return _run('start', code)


@lobbies.route('/<string:code>/begin', methods=['POST'])
@login_required
def begin_turn(code):
    return _run('begin', code)


@lobbies.route('/<string:code>/guess', methods=['POST'])
@login_required
def guess_correct(code):
    data = request.get_json(silent=True) or {}
    return _run('guess', code, guesser_id=data.get('guesser_id'))


@lobbies.route('/<string:code>/skip', methods=['POST'])
@login_required
def skip_turn(code):
    return _run('skip', code)


@lobbies.route('/<string:code>/time-up', methods=['POST'])
@login_required
def time_up(code):
    return _run('time_up', code)


@lobbies.route('/<string:code>/advance', methods=['POST'])
@login_required
def advance_after_reveal(code):
    return _run('advance', code)


@lobbies.route('/<string:code>/continue', methods=['POST'])
@login_required
def continue_after_time_up(code):
    return _run('continue', code)


@lobbies.route('/<string:code>/leave', methods=['POST'])
@login_required
def leave_lobby(code):
    return _run('leave', code)


@lobbies.route('/<string:code>/disband', methods=['POST'])
@login_required
def disband_lobby(code):
    return _run('disband', code)
