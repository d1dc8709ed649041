"""A Silent Cinema client over Socket.IO.

Wires the sink, the watchdog and the turn coordinator to a live connection:
pushes arrive as ``lobby_update``/``players_update``/``lobby_deleted``
events, and three background loops (countdown tick, fallback poll, watchdog)
run beside them.
"""

import logging
from typing import Any, Callable, Dict, Optional

import socketio
from socketio.exceptions import SocketIOError

from config import Config
from charades.services.charades.state import Session, now_ms
from .coordinator import TurnCoordinator
from .sync import LobbyWatchdog, StateSink
from .views import build_view

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'


class CharadesClient:
    def __init__(
        self,
        url: str,
        nickname: str,
        pin: str,
        code: str,
        config=Config,
        sio: Optional[socketio.Client] = None,
        on_view: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_warning: Optional[Callable[[int], None]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
    ):
        self.url = url
        self.code = code
        self.config = config
        self._auth = {'nickname': nickname, 'pin': pin}
        self.sio = sio or socketio.Client(reconnection=True)
        self.session: Optional[Session] = None
        self.sink = StateSink(on_change=self._on_sink_change)
        self.coordinator: Optional[TurnCoordinator] = None
        self.watchdog: Optional[LobbyWatchdog] = None
        self._on_view = on_view
        self._on_warning = on_warning
        self._on_notice = on_notice
        self._running = False
        self._loops_started = False

        self.sio.on('connected', self._handle_connected, namespace=NAMESPACE)
        self.sio.on('joined', self._handle_joined, namespace=NAMESPACE)
        self.sio.on('lobby_update', self._handle_lobby_update, namespace=NAMESPACE)
        self.sio.on('players_update', self._handle_players_update, namespace=NAMESPACE)
        self.sio.on('lobby_deleted', self._handle_lobby_deleted, namespace=NAMESPACE)
        self.sio.on('error', self._handle_error, namespace=NAMESPACE)

    # ---- lifecycle ----

    def start(self) -> None:
        self._running = True
        self.sio.connect(self.url, namespaces=[NAMESPACE], auth=self._auth)

    def stop(self) -> None:
        self._running = False
        self.sio.disconnect()

    def _handle_connected(self, data):
        player_id = (data or {}).get('player_id')
        if not player_id:
            self._notice('Login failed')
            self.stop()
            return
        if self.session is not None:
            # Reconnected: keep the coordinator and its guards, just rejoin the room
            logger.info(f"[client-reconnect] player={player_id} code={self.code}")
            self.sio.emit('join_lobby', {'code': self.code}, namespace=NAMESPACE)
            return
        self.session = Session(player_id=player_id, nickname=self._auth['nickname'])
        self.coordinator = TurnCoordinator(
            self.session,
            submit=self.submit,
            scheduler=self._schedule,
            warning_threshold_sec=int(self.config.WARNING_THRESHOLD_SEC),
            on_warning=self._on_warning,
            on_error=lambda result: self._notice(result.get('message') or result.get('error')),
        )
        self.watchdog = LobbyWatchdog(self.session, self.fetch_lobby, self._disbanded)
        self.sio.emit('join_lobby', {'code': self.code}, namespace=NAMESPACE)

    def _handle_joined(self, data):
        self.sink.apply((data or {}).get('lobby'), source='join')
        if self._loops_started:
            return
        self._loops_started = True
        self.sio.start_background_task(self._tick_loop)
        self.sio.start_background_task(self._poll_loop)
        self.sio.start_background_task(self._watchdog_loop)

    # ---- producers ----

    def _handle_lobby_update(self, row):
        self.sink.apply(row, source='push')

    def _handle_players_update(self, data):
        self.sink.apply_players((data or {}).get('players') or [])

    def _handle_lobby_deleted(self, data):
        self._disbanded()

    def _handle_error(self, data):
        self._notice((data or {}).get('message') or 'error')

    def fetch_lobby(self) -> Optional[Dict[str, Any]]:
        """Read the lobby row; None means the store no longer has it."""
        query = {'lobby_id': self.sink.lobby_id} if self.sink.lobby_id is not None else {'code': self.code}
        result = self.sio.call('get_lobby', query, namespace=NAMESPACE, timeout=10)
        if result.get('ok'):
            return result['lobby']
        if result.get('error') == 'lobby_not_found':
            return None
        raise RuntimeError(result.get('message') or result.get('error'))

    # ---- actions ----

    def submit(self, action: str, **params) -> Dict[str, Any]:
        payload = dict(params, action=action, code=self.code)
        try:
            result = self.sio.call('game_action', payload, namespace=NAMESPACE, timeout=10)
        except SocketIOError as exc:
            logger.warning(f"[submit-transport] action={action} error={exc}")
            return {'ok': False, 'error': 'sync_failed', 'message': str(exc)}
        if result.get('ok') and result.get('lobby'):
            # Our own write; don't wait for the echo
            self.sink.apply(result['lobby'], source='ack')
        return result

    def guess_correct(self, guesser_id):
        return self.coordinator.perform(self.sink.state, 'guess', guesser_id=guesser_id)

    def skip(self):
        return self.coordinator.perform(self.sink.state, 'skip')

    def continue_after_time_up(self):
        return self.coordinator.perform(self.sink.state, 'continue')

    def begin(self):
        return self.coordinator.perform(self.sink.state, 'begin')

    def start_game(self):
        return self.submit('start')

    def disband(self):
        return self.submit('disband')

    def leave(self):
        result = self.submit('leave')
        if result.get('ok'):
            self.stop()
        return result

    # ---- loops ----

    def _schedule(self, delay_sec: float, fn: Callable[[], None]) -> None:
        def _runner():
            self.sio.sleep(delay_sec)
            if self._running:
                fn()
        self.sio.start_background_task(_runner)

    def _tick_loop(self):
        interval = int(self.config.TICK_INTERVAL_MS) / 1000.0
        while self._running and not self.sink.deleted:
            self.coordinator.tick(self.sink.state, now_ms())
            self._render()
            self.sio.sleep(interval)

    def _poll_loop(self):
        interval = float(self.config.POLL_INTERVAL_SEC)
        while self._running and not self.sink.deleted:
            self.sio.sleep(interval)
            try:
                row = self.fetch_lobby()
            except (SocketIOError, RuntimeError) as exc:
                logger.info(f"[poll-error] {exc}")
                continue
            if row is not None and not self.sink.apply(row, source='poll') and 'players' in row:
                self.sink.apply_players(row['players'])

    def _watchdog_loop(self):
        interval = float(self.config.WATCHDOG_INTERVAL_SEC)
        while self._running and not self.watchdog.triggered and not self.sink.deleted:
            self.sio.sleep(interval)
            self.watchdog.check()

    # ---- outputs ----

    def _on_sink_change(self, sink: StateSink):
        if self.coordinator is not None:
            self.coordinator.observe(sink.state, now_ms())
        self._render()

    def _disbanded(self):
        if not self.sink.deleted:
            self.sink.mark_deleted()
            self._notice('Lobby disbanded')

    def _render(self):
        if self._on_view and self.session is not None:
            self._on_view(build_view(
                self.sink.lobby, self.sink.players, self.session, now_ms(),
                deleted=self.sink.deleted, min_players=int(self.config.MIN_PLAYERS),
            ))

    def _notice(self, message: str):
        logger.info(f"[notice] {message}")
        if self._on_notice:
            self._on_notice(message)
