"""Silent Cinema game state and its transitions.

The whole progress of a game lives in one ``GameState`` value. Transitions
are pure: they take the current value, the acting ``Session`` and the
wall-clock time, and return a new value (or raise a CharadesError). Nothing
here touches the database or the network, so the same functions run on the
server and in tests.
"""

import time
from dataclasses import dataclass, replace
from typing import Any, Collection, Dict, List, Optional, Tuple

from .errors import (
    InvalidGuessError,
    InvalidPhaseError,
    NotHostError,
    NotNarratorError,
)

WAITING_FOR_START = 'waiting_for_start'
PLAYING = 'playing'
TIME_UP = 'time_up'
REVEAL = 'reveal'
FINISHED = 'finished'
CANCELED = 'canceled'

PHASES = (WAITING_FOR_START, PLAYING, TIME_UP, REVEAL, FINISHED, CANCELED)
TERMINAL_PHASES = frozenset({FINISHED, CANCELED})

REVEAL_DURATION_MS = 4000


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Session:
    """The acting player. Passed into every transition explicitly."""
    player_id: str
    nickname: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'player_id', str(self.player_id))


@dataclass(frozen=True)
class TaskAssignment:
    narrator_id: str
    task_id: str
    task_content: str

    def to_dict(self) -> Dict[str, Any]:
        return {'narratorId': self.narrator_id, 'taskId': self.task_id, 'taskContent': self.task_content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TaskAssignment':
        return cls(str(data['narratorId']), str(data['taskId']), data['taskContent'])


@dataclass(frozen=True)
class Turn:
    narrator_id: str
    narrator_index: int
    word_index_in_block: int
    global_turn_index: int
    task_id: str
    task_content: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'narratorId': self.narrator_id,
            'narratorIndex': self.narrator_index,
            'wordIndexInBlock': self.word_index_in_block,
            'globalTurnIndex': self.global_turn_index,
            'taskId': self.task_id,
            'taskContent': self.task_content,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Turn':
        return cls(
            narrator_id=str(data['narratorId']),
            narrator_index=int(data['narratorIndex']),
            word_index_in_block=int(data['wordIndexInBlock']),
            global_turn_index=int(data['globalTurnIndex']),
            task_id=str(data['taskId']),
            task_content=data['taskContent'],
        )


@dataclass(frozen=True)
class Timer:
    started_at_ms: Optional[int]
    duration_sec: int
    paused_at_ms: Optional[int] = None

    @property
    def running(self) -> bool:
        return self.started_at_ms is not None and self.paused_at_ms is None

    def to_dict(self) -> Dict[str, Any]:
        return {'startedAtMs': self.started_at_ms, 'durationSec': self.duration_sec, 'pausedAtMs': self.paused_at_ms}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Timer':
        return cls(data.get('startedAtMs'), int(data['durationSec']), data.get('pausedAtMs'))


@dataclass(frozen=True)
class Reveal:
    task_content: str
    correct_player_id: str
    correct_player_name: str
    ends_at_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taskContent': self.task_content,
            'correctPlayerId': self.correct_player_id,
            'correctPlayerName': self.correct_player_name,
            'endsAtMs': self.ends_at_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Reveal':
        return cls(data['taskContent'], str(data['correctPlayerId']), data['correctPlayerName'], int(data['endsAtMs']))


@dataclass(frozen=True)
class GameState:
    phase: str
    player_order: Tuple[str, ...]
    tasks_per_player: int
    round_duration_sec: int
    task_queue: Tuple[TaskAssignment, ...]
    turn: Turn
    timer: Timer
    version: int
    last_action_at: int
    last_action_by: str
    reveal: Optional[Reveal] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def identity(self) -> Tuple[int, str]:
        """What a scheduled callback is keyed to: the turn cursor and phase."""
        return (self.turn.global_turn_index, self.phase)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'phase': self.phase,
            'playerOrder': list(self.player_order),
            'tasksPerPlayer': self.tasks_per_player,
            'roundDurationSec': self.round_duration_sec,
            'turn': self.turn.to_dict(),
            'taskQueue': [t.to_dict() for t in self.task_queue],
            'timer': self.timer.to_dict(),
            'version': self.version,
            'lastActionAt': self.last_action_at,
            'lastActionBy': self.last_action_by,
        }
        if self.reveal is not None:
            data['reveal'] = self.reveal.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameState':
        reveal = data.get('reveal')
        return cls(
            phase=data['phase'],
            player_order=tuple(str(p) for p in data['playerOrder']),
            tasks_per_player=int(data['tasksPerPlayer']),
            round_duration_sec=int(data['roundDurationSec']),
            task_queue=tuple(TaskAssignment.from_dict(t) for t in data['taskQueue']),
            turn=Turn.from_dict(data['turn']),
            timer=Timer.from_dict(data['timer']),
            version=int(data.get('version') or 0),
            last_action_at=int(data.get('lastActionAt') or 0),
            last_action_by=str(data.get('lastActionBy') or ''),
            reveal=Reveal.from_dict(reveal) if reveal else None,
        )


@dataclass(frozen=True)
class NextTurnInfo:
    is_game_over: bool
    next_turn: Optional[Turn] = None


def validate_state(state: GameState) -> None:
    """Raise ValueError if the turn cursor disagrees with the queue."""
    idx = state.turn.global_turn_index
    if not 0 <= idx < len(state.task_queue):
        raise ValueError(f'globalTurnIndex {idx} outside queue of {len(state.task_queue)}')
    if state.task_queue[idx].narrator_id != state.turn.narrator_id:
        raise ValueError(f'turn narrator {state.turn.narrator_id} != queue narrator {state.task_queue[idx].narrator_id}')
    if state.phase not in PHASES:
        raise ValueError(f'unknown phase {state.phase!r}')


def create_initial_game_state(
    player_order: List[str],
    task_queue: List[TaskAssignment],
    tasks_per_player: int,
    round_duration_sec: int,
    host_id: str,
    now: Optional[int] = None,
) -> GameState:
    first = task_queue[0]
    order = tuple(str(p) for p in player_order)
    return GameState(
        phase=WAITING_FOR_START,
        player_order=order,
        tasks_per_player=tasks_per_player,
        round_duration_sec=round_duration_sec,
        task_queue=tuple(task_queue),
        turn=Turn(
            narrator_id=first.narrator_id,
            narrator_index=order.index(first.narrator_id),
            word_index_in_block=0,
            global_turn_index=0,
            task_id=first.task_id,
            task_content=first.task_content,
        ),
        timer=Timer(started_at_ms=None, duration_sec=round_duration_sec, paused_at_ms=None),
        version=1,
        last_action_at=now if now is not None else now_ms(),
        last_action_by=str(host_id),
    )


def get_next_turn_info(state: GameState) -> NextTurnInfo:
    turn = state.turn
    next_index = turn.global_turn_index + 1
    if next_index >= len(state.task_queue):
        return NextTurnInfo(is_game_over=True)

    task = state.task_queue[next_index]
    if task.narrator_id == turn.narrator_id:
        word_index = turn.word_index_in_block + 1
    else:
        word_index = 0
    return NextTurnInfo(
        is_game_over=False,
        next_turn=Turn(
            narrator_id=task.narrator_id,
            narrator_index=state.player_order.index(task.narrator_id),
            word_index_in_block=word_index,
            global_turn_index=next_index,
            task_id=task.task_id,
            task_content=task.task_content,
        ),
    )


def resolve_next_turn(state: GameState, member_ids: Optional[Collection[str]] = None) -> NextTurnInfo:
    """Like get_next_turn_info, but passes over narrators who left the lobby."""
    info = get_next_turn_info(state)
    if member_ids is None:
        return info
    members = {str(m) for m in member_ids}
    while not info.is_game_over and info.next_turn.narrator_id not in members:
        info = get_next_turn_info(replace(state, turn=info.next_turn))
    return info


def remaining_seconds(state: GameState, now: int) -> int:
    timer = state.timer
    if timer.started_at_ms is None:
        return timer.duration_sec
    reference = timer.paused_at_ms if timer.paused_at_ms is not None else now
    elapsed = (reference - timer.started_at_ms) // 1000
    return max(0, timer.duration_sec - elapsed)


def is_narrator(state: GameState, session: Session) -> bool:
    return session.player_id == state.turn.narrator_id


def _stamp(state: GameState, session: Session, now: int, **changes) -> GameState:
    return replace(
        state,
        version=state.version + 1,
        last_action_at=now,
        last_action_by=session.player_id,
        **changes,
    )


def _require(state: GameState, session: Session, action: str, phases: Collection[str]) -> None:
    if state.phase not in phases:
        raise InvalidPhaseError(action, state.phase)
    if not is_narrator(state, session):
        raise NotNarratorError(session.player_id, state.turn.narrator_id)


def begin_turn(state: GameState, session: Session, now: int) -> GameState:
    """The narrator presses start on the first turn: the clock begins."""
    _require(state, session, 'begin', (WAITING_FOR_START,))
    return _stamp(
        state, session, now,
        phase=PLAYING,
        timer=Timer(started_at_ms=now, duration_sec=state.round_duration_sec, paused_at_ms=None),
        reveal=None,
    )


def mark_time_up(state: GameState, session: Session, now: int) -> GameState:
    _require(state, session, 'time_up', (PLAYING,))
    return _stamp(state, session, now, phase=TIME_UP, timer=replace(state.timer, paused_at_ms=now), reveal=None)


def mark_correct_guess(
    state: GameState,
    session: Session,
    guesser_id: str,
    guesser_name: str,
    now: int,
    reveal_duration_ms: int = REVEAL_DURATION_MS,
) -> GameState:
    _require(state, session, 'guess', (PLAYING,))
    guesser_id = str(guesser_id)
    if guesser_id == state.turn.narrator_id:
        raise InvalidGuessError('The narrator cannot guess their own prompt')
    return _stamp(
        state, session, now,
        phase=REVEAL,
        reveal=Reveal(
            task_content=state.turn.task_content,
            correct_player_id=guesser_id,
            correct_player_name=guesser_name or '?',
            ends_at_ms=now + int(reveal_duration_ms),
        ),
        timer=replace(state.timer, paused_at_ms=now),
    )


def _advance(state: GameState, session: Session, now: int, member_ids=None) -> GameState:
    info = resolve_next_turn(state, member_ids)
    if info.is_game_over:
        return _stamp(
            state, session, now,
            phase=FINISHED,
            timer=replace(state.timer, started_at_ms=None, paused_at_ms=None),
            reveal=None,
        )
    return _stamp(
        state, session, now,
        phase=PLAYING,
        turn=info.next_turn,
        timer=Timer(started_at_ms=now, duration_sec=state.round_duration_sec, paused_at_ms=None),
        reveal=None,
    )


def advance_after_reveal(state: GameState, session: Session, now: int, member_ids=None) -> GameState:
    _require(state, session, 'advance', (REVEAL,))
    return _advance(state, session, now, member_ids)


def continue_after_time_up(state: GameState, session: Session, now: int, member_ids=None) -> GameState:
    _require(state, session, 'continue', (TIME_UP,))
    return _advance(state, session, now, member_ids)


def skip_turn(
    state: GameState,
    session: Session,
    now: int,
    member_ids: Optional[Collection[str]] = None,
    host_id: Optional[str] = None,
) -> GameState:
    """Move on without scoring.

    The narrator may always skip. The host may also skip when the narrator
    is no longer among ``member_ids``, so a departed narrator cannot stall
    the game.
    """
    if state.phase not in (PLAYING, TIME_UP):
        raise InvalidPhaseError('skip', state.phase)
    if not is_narrator(state, session):
        narrator_gone = member_ids is not None and state.turn.narrator_id not in {str(m) for m in member_ids}
        if not (narrator_gone and host_id is not None and session.player_id == str(host_id)):
            raise NotNarratorError(session.player_id, state.turn.narrator_id)
    return _advance(state, session, now, member_ids)


def cancel_game(state: GameState, session: Session, host_id: str, now: int) -> GameState:
    if session.player_id != str(host_id):
        raise NotHostError('Only the host may disband the lobby')
    if state.phase == CANCELED:
        raise InvalidPhaseError('cancel', state.phase)
    return _stamp(state, session, now, phase=CANCELED)
