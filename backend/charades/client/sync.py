"""Client side of the shared game document.

Rows reach a client from two independent producers: the push feed
(``lobby_update``) and a fallback poll. Both feed one ``StateSink`` which
keeps only the newest row it has seen, so arrival order does not matter.
``LobbyWatchdog`` runs on a slower cadence and turns a vanished or canceled
lobby into a single terminal "disbanded" outcome.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from charades.services.charades.state import CANCELED, GameState, Session

logger = logging.getLogger(__name__)

STATUS_RANK = {'waiting': 0, 'playing': 1, 'finished': 2}


def row_key(row: Dict[str, Any]) -> Tuple[int, int, int]:
    state = row.get('current_game_state') or {}
    return (
        int(state.get('version') or 0),
        STATUS_RANK.get(row.get('status'), 0),
        int(state.get('lastActionAt') or 0),
    )


class StateSink:
    def __init__(self, on_change: Optional[Callable[['StateSink'], None]] = None):
        self.lobby: Optional[Dict[str, Any]] = None
        self.players: List[Dict[str, Any]] = []
        self.deleted = False
        self._key = None
        self._on_change = on_change

    @property
    def lobby_id(self):
        return self.lobby['id'] if self.lobby else None

    @property
    def state(self) -> Optional[GameState]:
        raw = (self.lobby or {}).get('current_game_state')
        return GameState.from_dict(raw) if raw else None

    def apply(self, row: Optional[Dict[str, Any]], source: str = 'push') -> bool:
        """Take ``row`` if it is newer than what we hold. Returns True if applied."""
        if not row or self.deleted:
            return False
        if self.lobby is not None and row.get('id') != self.lobby.get('id'):
            logger.info(f"[sink-ignore] source={source} foreign lobby={row.get('id')}")
            return False
        key = row_key(row)
        if self._key is not None and key <= self._key:
            return False
        self._key = key
        self.lobby = {k: v for k, v in row.items() if k != 'players'}
        if 'players' in row:
            self.players = list(row['players'])
        logger.debug(f"[sink-apply] source={source} lobby={row.get('id')} key={key}")
        self._changed()
        return True

    def apply_players(self, players: List[Dict[str, Any]]) -> None:
        if self.deleted:
            return
        self.players = list(players or [])
        self._changed()

    def mark_deleted(self) -> None:
        if not self.deleted:
            self.deleted = True
            self._changed()

    def _changed(self):
        if self._on_change:
            self._on_change(self)


class LobbyWatchdog:
    """Detects that the lobby is gone.

    ``fetch`` returns the current lobby row, or None when the store reports
    it missing. Transport failures are transient and do not count.
    """

    def __init__(self, session: Session, fetch: Callable[[], Optional[Dict[str, Any]]],
                 on_disbanded: Callable[[], None]):
        self.session = session
        self._fetch = fetch
        self._on_disbanded = on_disbanded
        self.triggered = False

    def check(self) -> bool:
        if self.triggered:
            return True
        try:
            row = self._fetch()
        except Exception as exc:
            logger.warning(f"[watchdog-error] {exc}")
            return False
        if row is None:
            return self._trigger('missing')
        state = row.get('current_game_state') or {}
        if (
            row.get('status') == 'finished'
            and state.get('phase') == CANCELED
            and str(row.get('host_id')) != self.session.player_id
        ):
            return self._trigger('canceled')
        return False

    def _trigger(self, reason: str) -> bool:
        self.triggered = True
        logger.info(f"[watchdog] lobby disbanded ({reason}) player={self.session.player_id}")
        self._on_disbanded()
        return True
