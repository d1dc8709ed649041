"""Per-client turn and timer coordination.

There is no server tick: every client compares its own clock with the
``timer`` epoch stored in the shared document. Only the narrator's client
ever submits a transition, and a re-entrancy flag keeps it to one
submission per (turn, phase). Scheduled callbacks remember the identity they
were scheduled for and do nothing if the game has moved on by the time they
fire.
"""

import logging
from typing import Any, Callable, Dict, Optional, Set, Tuple

from charades.services.charades.state import (
    PLAYING,
    REVEAL,
    GameState,
    Session,
    is_narrator,
    remaining_seconds,
)

logger = logging.getLogger(__name__)

# Failures that mean "someone else already moved the game"; the next
# delivered state resets the guard.
SETTLED_ERRORS = {'not_authorized', 'invalid_phase', 'stale_state', 'lobby_not_found'}

Submit = Callable[..., Dict[str, Any]]
Scheduler = Callable[[float, Callable[[], None]], Any]


class TurnCoordinator:
    def __init__(
        self,
        session: Session,
        submit: Submit,
        scheduler: Scheduler,
        warning_threshold_sec: int = 5,
        on_warning: Optional[Callable[[int], None]] = None,
        on_error: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.session = session
        self._submit = submit
        self._schedule = scheduler
        self.warning_threshold_sec = warning_threshold_sec
        self._on_warning = on_warning
        self._on_error = on_error
        self._identity: Optional[Tuple[int, str]] = None
        self._scheduled: Set[Tuple[int, str]] = set()
        self.transitioning = False
        self.warned = False

    def observe(self, state: Optional[GameState], now: int) -> None:
        """Called for every delivered state."""
        identity = state.identity if state else None
        if identity != self._identity:
            self._identity = identity
            self.transitioning = False
            self.warned = False
        if state is None or state.phase != REVEAL or state.reveal is None:
            return
        if not is_narrator(state, self.session) or identity in self._scheduled:
            return

        self._scheduled.add(identity)
        delay_ms = state.reveal.ends_at_ms - now
        logger.info(f"[reveal-set] turn={identity[0]} delay={max(0, delay_ms)}ms")
        if delay_ms <= 0:
            self._fire_reveal_end(identity)
        else:
            self._schedule(delay_ms / 1000.0, lambda: self._fire_reveal_end(identity))

    def _fire_reveal_end(self, expected: Tuple[int, str]) -> None:
        self._scheduled.discard(expected)
        if self._identity != expected:
            logger.info(f"[reveal-abort] expected={expected} actual={self._identity}")
            return
        self._transition('advance')

    def tick(self, state: Optional[GameState], now: int) -> Optional[int]:
        """Advance the local countdown. Returns the remaining seconds while playing."""
        self.observe(state, now)
        if state is None or state.phase != PLAYING or not state.timer.running:
            return None

        remaining = remaining_seconds(state, now)
        if 0 < remaining <= self.warning_threshold_sec and not self.warned:
            self.warned = True
            if self._on_warning:
                self._on_warning(remaining)
        if remaining == 0 and is_narrator(state, self.session):
            self._transition('time_up')
        return remaining

    def perform(self, state: Optional[GameState], action: str, **params) -> Optional[Dict[str, Any]]:
        """Narrator button presses (guess, skip, continue, begin)."""
        if state is None or not is_narrator(state, self.session):
            return None
        return self._transition(action, **params)

    def _transition(self, action: str, **params) -> Optional[Dict[str, Any]]:
        if self.transitioning:
            return None
        self.transitioning = True
        try:
            result = self._submit(action, **params)
        except Exception as exc:
            logger.warning(f"[submit-error] action={action} error={exc}")
            result = {'ok': False, 'error': 'sync_failed', 'message': str(exc)}

        if not result.get('ok'):
            error = result.get('error')
            if error in SETTLED_ERRORS:
                logger.debug(f"[submit-ignored] action={action} error={error}")
            else:
                # Transient: let the next tick or the next button press retry
                self.transitioning = False
                logger.warning(f"[submit-failed] action={action} error={error}")
                if self._on_error:
                    self._on_error(result)
        return result
