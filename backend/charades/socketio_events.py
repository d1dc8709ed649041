from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from flask_login import current_user
from charades import db
from charades.models import Player
from charades.services.charades import actions, sync
from charades.services.charades.errors import CharadesError
from charades.services.charades.state import Session
from typing import Dict, Any, Optional

NAMESPACE = '/ws'

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    return request.sid  # type: ignore


def _identity() -> Optional[Session]:
    """The player behind this socket: the Flask-Login user, or whoever
    authenticated with nickname/PIN when connecting."""
    if current_user and current_user.is_authenticated:
        return Session(player_id=current_user.id, nickname=current_user.nickname)
    ctx = _sid_to_ctx.get(_get_sid()) or {}
    if ctx.get('player_id'):
        return Session(player_id=ctx['player_id'], nickname=ctx.get('nickname', ''))
    return None


def handle_connect(auth=None):
    ctx = {}
    if isinstance(auth, dict) and auth.get('nickname'):
        player = Player.query.filter_by(nickname=auth.get('nickname')).first()
        if player and player.check_pin(auth.get('pin', '')):
            ctx = {'player_id': str(player.id), 'nickname': player.nickname}
        else:
            current_app.logger.info(f"[ws-auth-failed] nickname={auth.get('nickname')}")
    _sid_to_ctx[_get_sid()] = ctx
    emit('connected', {'message': 'Connected to /ws', 'player_id': ctx.get('player_id')})


def handle_disconnect(*args):
    _sid_to_ctx.pop(_get_sid(), None)


def handle_join_lobby(data):
    code = (data or {}).get('code')
    if not code:
        emit('error', {'message': 'code is required'})
        return
    try:
        lobby = sync.find_lobby(code)
    except CharadesError as exc:
        emit('error', exc.to_dict())
        return
    room = sync.lobby_room(lobby.id)
    join_room(room)
    _sid_to_ctx.setdefault(_get_sid(), {})['lobby_id'] = lobby.id
    emit('joined', {'room': room, 'lobby': actions.lobby_payload(lobby)})


def handle_leave_lobby(data):
    lobby_id = (data or {}).get('lobby_id')
    if lobby_id is None:
        emit('error', {'message': 'lobby_id is required'})
        return
    room = sync.lobby_room(lobby_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_get_lobby(data):
    """Acknowledged read used by the polling fallback and the watchdog."""
    data = data or {}
    try:
        lobby_id = int(data['lobby_id']) if data.get('lobby_id') is not None else None
    except (TypeError, ValueError):
        return {'ok': False, 'error': 'invalid_request', 'message': f"Invalid lobby_id: {data['lobby_id']!r}"}
    try:
        if lobby_id is not None:
            lobby = sync.get_lobby(lobby_id)
        else:
            lobby = sync.find_lobby(data.get('code'))
    except CharadesError as exc:
        return exc.to_dict()
    return {'ok': True, 'lobby': actions.lobby_payload(lobby)}


def handle_game_action(data):
    data = dict(data or {})
    session = _identity()
    if session is None:
        return {'ok': False, 'error': 'not_authenticated', 'message': 'Log in first'}
    action = data.pop('action', None)
    code = data.pop('code', None)
    params = {}
    if action == 'guess':
        params['guesser_id'] = data.get('guesser_id')
    try:
        return actions.dispatch(action, session, code, **params)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"[ws-action-error] action={action} code={code}")
        return {'ok': False, 'error': 'sync_failed', 'message': 'Unexpected server error'}


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    from charades import socketio

    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_lobby', handle_join_lobby, namespace=NAMESPACE)
    socketio.on_event('leave_lobby', handle_leave_lobby, namespace=NAMESPACE)
    socketio.on_event('get_lobby', handle_get_lobby, namespace=NAMESPACE)
    socketio.on_event('game_action', handle_game_action, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
