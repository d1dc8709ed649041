"""Store side of the shared game document.

Every write replaces the lobby's whole ``current_game_state`` and then pushes
the full row to everyone in the lobby room. Writes compare-and-swap on
``state_version`` so a transition computed from an outdated copy is refused
instead of silently overwriting a newer one.
"""

from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from charades import db, socketio
from charades.models import Lobby, LobbyPlayer, LOBBY_FINISHED
from .errors import LobbyGoneError, StaleStateError, SyncError
from .state import GameState, validate_state

NAMESPACE = '/ws'


def lobby_room(lobby_id) -> str:
    return f"lobby:{lobby_id}"


def players_payload(lobby_id: int) -> list:
    rows = LobbyPlayer.query.filter_by(lobby_id=lobby_id).order_by(LobbyPlayer.joined_at.asc(), LobbyPlayer.id.asc()).all()
    return [r.to_dict() for r in rows]


def emit_lobby_update(lobby: Lobby) -> None:
    socketio.emit('lobby_update', lobby.to_dict(), to=lobby_room(lobby.id), namespace=NAMESPACE)


def emit_players_update(lobby_id: int) -> None:
    socketio.emit(
        'players_update',
        {'lobby_id': lobby_id, 'players': players_payload(lobby_id)},
        to=lobby_room(lobby_id),
        namespace=NAMESPACE,
    )


def emit_lobby_deleted(lobby_id: int) -> None:
    socketio.emit('lobby_deleted', {'lobby_id': lobby_id}, to=lobby_room(lobby_id), namespace=NAMESPACE)


def find_lobby(code: str) -> Lobby:
    """Newest lobby with this code, preferring live ones over finished ones."""
    code = (code or '').strip()
    lobby = (
        Lobby.query.filter(Lobby.code == code, Lobby.status != LOBBY_FINISHED)
        .order_by(Lobby.id.desc())
        .first()
    )
    if lobby is None:
        lobby = Lobby.query.filter_by(code=code).order_by(Lobby.id.desc()).first()
    if lobby is None:
        raise LobbyGoneError(f'Lobby {code} not found')
    return lobby


def get_lobby(lobby_id: int) -> Lobby:
    lobby = db.session.get(Lobby, lobby_id)
    if lobby is None:
        raise LobbyGoneError(f'Lobby {lobby_id} not found')
    return lobby


def read_game_state(lobby: Lobby) -> Optional[GameState]:
    if not lobby.current_game_state:
        return None
    return GameState.from_dict(lobby.current_game_state)


def write_game_state(lobby: Lobby, new_state: GameState, expected_version: int, status: Optional[str] = None) -> Lobby:
    """Replace the game document if nobody else wrote since ``expected_version``."""
    validate_state(new_state)
    values = {
        Lobby.current_game_state: new_state.to_dict(),
        Lobby.state_version: new_state.version,
    }
    if status:
        values[Lobby.status] = status

    lobby_id = lobby.id
    try:
        updated = Lobby.query.filter_by(id=lobby_id, state_version=expected_version).update(
            values, synchronize_session=False
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[sync-error] lobby={lobby_id} write failed: {exc}")
        raise SyncError('Could not save the game state') from exc

    db.session.expire(lobby)
    if not updated:
        current = db.session.get(Lobby, lobby_id)
        if current is None:
            raise LobbyGoneError(f'Lobby {lobby_id} disappeared')
        current_app.logger.info(
            f"[sync-stale] lobby={lobby_id} expected_version={expected_version} actual_version={current.state_version}"
        )
        raise StaleStateError(expected_version, current.state_version)

    current_app.logger.info(
        f"[sync-write] lobby={lobby_id} version={new_state.version} phase={new_state.phase} status={status or lobby.status}"
    )
    emit_lobby_update(lobby)
    return lobby


def delete_lobby(lobby: Lobby) -> None:
    lobby_id = lobby.id
    try:
        # memberships go with the lobby (cascade)
        db.session.delete(lobby)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[sync-error] lobby={lobby_id} delete failed: {exc}")
        raise SyncError('Could not delete the lobby') from exc
    emit_lobby_deleted(lobby_id)
