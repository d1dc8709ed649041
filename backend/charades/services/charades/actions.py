"""Lobby and game actions, shared by the HTTP routes and the socket handlers.

Each action takes the acting ``Session`` explicitly, runs the matching pure
transition from ``state`` against the current document and writes the result
through ``sync``. Failures are raised as CharadesError subclasses;
``dispatch`` turns them into ``{"ok": False, "error": ...}`` results.
"""

import random
from typing import Any, Callable, Dict, Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from charades import db
from charades.models import (
    CharadesTask,
    Lobby,
    LobbyPlayer,
    Player,
    LOBBY_FINISHED,
    LOBBY_PLAYING,
    LOBBY_WAITING,
)
from . import state as sm
from . import sync
from .errors import (
    AuthorizationError,
    CharadesError,
    ConfigurationError,
    InvalidGuessError,
    InvalidPhaseError,
    NotHostError,
    NotMemberError,
)
from .queue import build_task_queue
from .scoring import award_correct_guess


def _config(key, default):
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return default


def lobby_payload(lobby: Lobby) -> Dict[str, Any]:
    payload = lobby.to_dict()
    payload['players'] = sync.players_payload(lobby.id)
    return payload


def parse_round_time(value) -> int:
    if value is None or value == '':
        return int(_config('DEFAULT_ROUND_TIME_SEC', 60))
    if str(value).strip().lower() == 'infinite':
        return int(_config('INFINITE_ROUND_TIME_SEC', 9999))
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'Invalid round time: {value!r}')
    if seconds < 5:
        raise ConfigurationError('Round time must be at least 5 seconds')
    return seconds


def parse_tasks_per_player(value) -> int:
    if value is None or value == '':
        return int(_config('DEFAULT_TASKS_PER_PLAYER', 3))
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'Invalid task count: {value!r}')
    if not 1 <= count <= 20:
        raise ConfigurationError('Tasks per player must be between 1 and 20')
    return count


def _membership(lobby: Lobby, session: sm.Session) -> Optional[LobbyPlayer]:
    return LobbyPlayer.query.filter_by(lobby_id=lobby.id, player_id=int(session.player_id)).first()


# ---- Lobby lifecycle ----

def create_lobby(session: sm.Session, tasks_per_player=None, round_time=None, categories: Iterable[str] = ()) -> Lobby:
    lobby = Lobby(
        host_id=int(session.player_id),
        tasks_per_player=parse_tasks_per_player(tasks_per_player),
        round_time_seconds=parse_round_time(round_time),
        selected_categories=[c for c in (categories or []) if c],
        status=LOBBY_WAITING,
    )
    db.session.add(lobby)
    db.session.commit()

    db.session.add(LobbyPlayer(lobby_id=lobby.id, player_id=int(session.player_id), score=0))
    db.session.commit()
    current_app.logger.info(f"[lobby-create] lobby={lobby.id} code={lobby.code} host={session.player_id}")
    return lobby


def join_lobby(session: sm.Session, code: str) -> Lobby:
    lobby = sync.find_lobby(code)
    if lobby.status == LOBBY_FINISHED:
        raise InvalidPhaseError('join', lobby.status)
    if _membership(lobby, session) is None:
        db.session.add(LobbyPlayer(lobby_id=lobby.id, player_id=int(session.player_id), score=0))
        try:
            db.session.commit()
        except IntegrityError:
            # A concurrent join by the same player landed first
            db.session.rollback()
            current_app.logger.info(f"[lobby-join] lobby={lobby.id} player={session.player_id} already joined")
        else:
            current_app.logger.info(f"[lobby-join] lobby={lobby.id} player={session.player_id}")
            sync.emit_players_update(lobby.id)
    return lobby


def start_game(session: sm.Session, code: str, rng: Optional[random.Random] = None) -> Lobby:
    """Host action: fix the rotation and the task queue, enter waiting_for_start."""
    lobby = sync.find_lobby(code)
    if str(lobby.host_id) != session.player_id:
        raise NotHostError('Only the host may start the game')
    if lobby.status != LOBBY_WAITING:
        raise InvalidPhaseError('start', lobby.status)

    member_ids = lobby.member_ids()
    min_players = int(_config('MIN_PLAYERS', 2))
    if len(member_ids) < min_players:
        raise ConfigurationError(f'At least {min_players} players are required to start')

    query = CharadesTask.query
    if lobby.selected_categories:
        query = query.filter(CharadesTask.category.in_(lobby.selected_categories))
    pool = query.all()

    rng = rng or random
    player_order = rng.sample(member_ids, len(member_ids))
    # Raises InsufficientTasksError; nothing is written in that case
    task_queue = build_task_queue(player_order, pool, lobby.tasks_per_player, rng=rng)
    game_state = sm.create_initial_game_state(
        player_order, task_queue, lobby.tasks_per_player, lobby.round_time_seconds, session.player_id, sm.now_ms()
    )
    current_app.logger.info(
        f"[start] lobby={lobby.id} players={len(player_order)} turns={len(task_queue)} duration={lobby.round_time_seconds}s"
    )
    return sync.write_game_state(lobby, game_state, expected_version=lobby.state_version or 0, status=LOBBY_PLAYING)


def _transition(code: str, action: str, apply: Callable[[Lobby, sm.GameState], sm.GameState]) -> Lobby:
    lobby = sync.find_lobby(code)
    current = sync.read_game_state(lobby)
    if current is None:
        raise InvalidPhaseError(action, lobby.status)
    new_state = apply(lobby, current)
    status = LOBBY_FINISHED if new_state.is_terminal else None
    current_app.logger.info(
        f"[transition] lobby={lobby.id} action={action} {current.phase}->{new_state.phase} "
        f"turn={new_state.turn.global_turn_index} by={new_state.last_action_by}"
    )
    return sync.write_game_state(lobby, new_state, expected_version=current.version, status=status)


def begin_turn(session: sm.Session, code: str) -> Lobby:
    return _transition(code, 'begin', lambda lobby, st: sm.begin_turn(st, session, sm.now_ms()))


def time_up(session: sm.Session, code: str) -> Lobby:
    return _transition(code, 'time_up', lambda lobby, st: sm.mark_time_up(st, session, sm.now_ms()))


def guess_correct(session: sm.Session, code: str, guesser_id) -> Lobby:
    try:
        guesser_id = int(guesser_id)
    except (TypeError, ValueError):
        raise InvalidGuessError('guesser_id is required')
    reveal_ms = int(float(_config('REVEAL_DURATION_SEC', 4)) * 1000)

    def apply(lobby, st):
        guesser = db.session.get(Player, guesser_id)
        if guesser is None or str(guesser.id) not in lobby.member_ids():
            raise InvalidGuessError(f'Player {guesser_id} is not in this lobby')
        return sm.mark_correct_guess(st, session, str(guesser.id), guesser.nickname, sm.now_ms(), reveal_ms)

    lobby = _transition(code, 'guess', apply)
    # Only a transition that actually landed scores
    score = award_correct_guess(lobby.id, guesser_id)
    current_app.logger.info(f"[score] lobby={lobby.id} player={guesser_id} score={score}")
    sync.emit_players_update(lobby.id)
    return lobby


def skip(session: sm.Session, code: str) -> Lobby:
    return _transition(
        code, 'skip',
        lambda lobby, st: sm.skip_turn(st, session, sm.now_ms(), member_ids=lobby.member_ids(), host_id=str(lobby.host_id)),
    )


def advance_after_reveal(session: sm.Session, code: str) -> Lobby:
    return _transition(
        code, 'advance',
        lambda lobby, st: sm.advance_after_reveal(st, session, sm.now_ms(), member_ids=lobby.member_ids()),
    )


def continue_after_time_up(session: sm.Session, code: str) -> Lobby:
    return _transition(
        code, 'continue',
        lambda lobby, st: sm.continue_after_time_up(st, session, sm.now_ms(), member_ids=lobby.member_ids()),
    )


def disband(session: sm.Session, code: str) -> Dict[str, Any]:
    """Host action: mark the game canceled, then remove the lobby."""
    lobby = sync.find_lobby(code)
    if str(lobby.host_id) != session.player_id:
        raise NotHostError('Only the host may disband the lobby')
    current = sync.read_game_state(lobby)
    lobby_id = lobby.id
    if current is not None and current.phase != sm.CANCELED:
        canceled = sm.cancel_game(current, session, str(lobby.host_id), sm.now_ms())
        # Observers of the still-existing row see "canceled" rather than a plain 404
        sync.write_game_state(lobby, canceled, expected_version=current.version, status=LOBBY_FINISHED)
    sync.delete_lobby(lobby)
    current_app.logger.info(f"[disband] lobby={lobby_id} by={session.player_id}")
    return {'id': lobby_id, 'deleted': True}


def leave(session: sm.Session, code: str) -> Dict[str, Any]:
    lobby = sync.find_lobby(code)
    membership = _membership(lobby, session)
    if membership is None:
        raise NotMemberError('You are not in this lobby')
    if str(lobby.host_id) == session.player_id and lobby.status != LOBBY_FINISHED:
        raise AuthorizationError('The host disbands the lobby instead of leaving')

    current = sync.read_game_state(lobby)
    if current is not None and sm.is_narrator(current, session) and not current.is_terminal:
        _hand_off_turn(lobby, current, session)

    lobby_id = lobby.id
    db.session.delete(membership)
    db.session.commit()
    current_app.logger.info(f"[lobby-leave] lobby={lobby_id} player={session.player_id}")
    sync.emit_players_update(lobby_id)
    return {'id': lobby_id, 'left': True}


def _hand_off_turn(lobby: Lobby, current: sm.GameState, session: sm.Session) -> None:
    """The narrator is leaving: move past their turns before they go."""
    remaining = [m for m in lobby.member_ids() if m != session.player_id]
    now = sm.now_ms()
    if current.phase == sm.REVEAL:
        new_state = sm.advance_after_reveal(current, session, now, member_ids=remaining)
    else:
        st = current
        if st.phase == sm.WAITING_FOR_START:
            st = sm.begin_turn(st, session, now)
        new_state = sm.skip_turn(st, session, now, member_ids=remaining)
    status = LOBBY_FINISHED if new_state.is_terminal else None
    current_app.logger.info(f"[narrator-left] lobby={lobby.id} player={session.player_id} -> {new_state.phase}")
    sync.write_game_state(lobby, new_state, expected_version=current.version, status=status)


ACTIONS = {
    'start': start_game,
    'begin': begin_turn,
    'time_up': time_up,
    'guess': guess_correct,
    'skip': skip,
    'advance': advance_after_reveal,
    'continue': continue_after_time_up,
    'disband': disband,
    'leave': leave,
}


def dispatch(action: str, session: sm.Session, code: str, **params) -> Dict[str, Any]:
    """Run an action and fold the outcome into a result dict."""
    handler = ACTIONS.get(action)
    if handler is None:
        return {'ok': False, 'error': 'unknown_action', 'message': f'Unknown action {action!r}'}
    try:
        result = handler(session, code, **params)
    except CharadesError as exc:
        current_app.logger.info(f"[action-rejected] action={action} code={code} by={session.player_id} error={exc.code}")
        return exc.to_dict()
    if isinstance(result, Lobby):
        return {'ok': True, 'lobby': lobby_payload(result)}
    return dict(result, ok=True)
