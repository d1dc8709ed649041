"""Read models for the three screens (lobby, game, results).

These are plain dicts derived from the synced lobby row; rendering is left to
whatever front end consumes them.
"""

from typing import Any, Dict, List, Optional

from charades.services.charades.state import (
    CANCELED,
    REVEAL,
    TIME_UP,
    WAITING_FOR_START,
    GameState,
    Session,
    remaining_seconds,
)


def _names(players: List[Dict[str, Any]]) -> Dict[str, str]:
    return {str(p['player_id']): p.get('nickname') or '?' for p in players}


def build_view(
    lobby: Optional[Dict[str, Any]],
    players: List[Dict[str, Any]],
    session: Session,
    now: int,
    deleted: bool = False,
    min_players: int = 2,
) -> Dict[str, Any]:
    if deleted:
        return {'screen': 'disbanded'}
    if not lobby:
        return {'screen': 'loading'}

    is_host = str(lobby.get('host_id')) == session.player_id
    raw = lobby.get('current_game_state')
    state = GameState.from_dict(raw) if raw else None

    if lobby.get('status') == 'waiting':
        return {
            'screen': 'lobby',
            'code': lobby.get('code'),
            'is_host': is_host,
            'players': [dict(p, is_host=str(p['player_id']) == str(lobby.get('host_id'))) for p in players],
            'can_start': is_host and len(players) >= min_players,
        }

    if lobby.get('status') == 'finished':
        if state is not None and state.phase == CANCELED:
            return {'screen': 'disbanded'}
        ranked = sorted(players, key=lambda p: -int(p.get('score') or 0))
        return {
            'screen': 'results',
            'is_host': is_host,
            'standings': [dict(p, rank=i + 1) for i, p in enumerate(ranked)],
        }

    if state is None:
        return {'screen': 'invalid'}
    return _game_view(state, players, session, now, is_host)


def _game_view(state: GameState, players, session: Session, now: int, is_host: bool) -> Dict[str, Any]:
    names = _names(players)
    narrating = state.turn.narrator_id == session.player_id
    overlay = None
    if state.phase == TIME_UP:
        overlay = {'kind': 'time_up', 'can_continue': narrating}
    elif state.phase == REVEAL and state.reveal is not None:
        overlay = {
            'kind': 'reveal',
            'task_content': state.reveal.task_content,
            'correct_player_id': state.reveal.correct_player_id,
            'correct_player_name': state.reveal.correct_player_name,
        }
    total = len(state.task_queue)
    current = state.turn.global_turn_index + 1
    return {
        'screen': 'game',
        'phase': state.phase,
        'overlay': overlay,
        'is_host': is_host,
        'is_narrator': narrating,
        'narrator_name': names.get(state.turn.narrator_id, '?'),
        # Only the narrator sees the prompt
        'task_content': state.turn.task_content if narrating else None,
        'remaining_sec': remaining_seconds(state, now),
        'turn_number': current,
        'total_turns': total,
        'progress': current / total if total else 0.0,
        'can_begin': narrating and state.phase == WAITING_FOR_START,
        'guess_candidates': [
            {'player_id': pid, 'nickname': nick} for pid, nick in names.items() if pid != session.player_id
        ] if narrating else [],
    }
