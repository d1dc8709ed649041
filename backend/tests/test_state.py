from dataclasses import replace

import pytest

from charades.services.charades import state as sm
from charades.services.charades.errors import (
    InvalidGuessError,
    InvalidPhaseError,
    NotHostError,
    NotNarratorError,
)

T0 = 1_000_000


@pytest.fixture()
def initial(make_queue):
    queue = make_queue(['A', 'B', 'C'], 2)
    return sm.create_initial_game_state(['A', 'B', 'C'], queue, 2, 60, 'A', now=T0)


def _assert_narrator_matches_queue(state):
    sm.validate_state(state)
    assert state.turn.narrator_id == state.task_queue[state.turn.global_turn_index].narrator_id


def test_initial_state(initial):
    assert initial.phase == sm.WAITING_FOR_START
    assert initial.version == 1
    assert initial.turn.global_turn_index == 0
    assert initial.turn.narrator_id == 'A'
    assert initial.turn.word_index_in_block == 0
    assert initial.timer.started_at_ms is None
    assert initial.timer.duration_sec == 60
    assert initial.reveal is None
    assert initial.last_action_by == 'A'
    _assert_narrator_matches_queue(initial)


def test_next_turn_increments_within_block_and_resets_across(initial, sessions):
    info = sm.get_next_turn_info(initial)
    assert not info.is_game_over
    assert info.next_turn.global_turn_index == 1
    assert info.next_turn.narrator_id == 'A'
    assert info.next_turn.word_index_in_block == 1

    second = replace(initial, turn=info.next_turn)
    info = sm.get_next_turn_info(second)
    assert info.next_turn.narrator_id == 'B'
    assert info.next_turn.narrator_index == 1
    assert info.next_turn.word_index_in_block == 0


def test_next_turn_at_end_is_game_over(initial):
    last = initial.task_queue[-1]
    end = replace(initial, turn=sm.Turn(last.narrator_id, 2, 1, len(initial.task_queue) - 1, last.task_id, last.task_content))
    assert sm.get_next_turn_info(end).is_game_over


def test_begin_turn_starts_timer(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0 + 10)
    assert playing.phase == sm.PLAYING
    assert playing.timer.started_at_ms == T0 + 10
    assert playing.timer.running
    assert playing.version == 2
    assert playing.last_action_at == T0 + 10
    # the input value is untouched
    assert initial.phase == sm.WAITING_FOR_START


def test_only_narrator_may_transition(initial, sessions):
    with pytest.raises(NotNarratorError):
        sm.begin_turn(initial, sessions['B'], T0)
    playing = sm.begin_turn(initial, sessions['A'], T0)
    with pytest.raises(NotNarratorError):
        sm.mark_time_up(playing, sessions['C'], T0)
    with pytest.raises(NotNarratorError):
        sm.mark_correct_guess(playing, sessions['B'], 'B', 'bob', T0)
    with pytest.raises(NotNarratorError):
        sm.skip_turn(playing, sessions['B'], T0)


def test_time_up_twice_is_rejected(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0)
    timed_out = sm.mark_time_up(playing, sessions['A'], T0 + 60_000)
    assert timed_out.phase == sm.TIME_UP
    assert timed_out.timer.paused_at_ms == T0 + 60_000
    with pytest.raises(InvalidPhaseError):
        sm.mark_time_up(timed_out, sessions['A'], T0 + 60_500)


def test_correct_guess_enters_reveal(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0)
    revealed = sm.mark_correct_guess(playing, sessions['A'], 'B', 'bob', T0 + 5_000)
    assert revealed.phase == sm.REVEAL
    assert revealed.reveal.correct_player_id == 'B'
    assert revealed.reveal.correct_player_name == 'bob'
    assert revealed.reveal.task_content == playing.turn.task_content
    assert revealed.reveal.ends_at_ms == T0 + 5_000 + sm.REVEAL_DURATION_MS
    assert revealed.timer.paused_at_ms == T0 + 5_000


def test_narrator_cannot_be_the_guesser(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0)
    with pytest.raises(InvalidGuessError):
        sm.mark_correct_guess(playing, sessions['A'], 'A', 'alice', T0)


def test_advance_after_reveal_starts_fresh_timer(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0)
    revealed = sm.mark_correct_guess(playing, sessions['A'], 'B', 'bob', T0 + 5_000)
    nxt = sm.advance_after_reveal(revealed, sessions['A'], T0 + 9_000)
    assert nxt.phase == sm.PLAYING
    assert nxt.turn.global_turn_index == 1
    assert nxt.timer.started_at_ms == T0 + 9_000
    assert nxt.timer.paused_at_ms is None
    assert nxt.reveal is None
    assert 'reveal' not in nxt.to_dict()
    _assert_narrator_matches_queue(nxt)


def test_continue_after_time_up(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0)
    timed_out = sm.mark_time_up(playing, sessions['A'], T0 + 60_000)
    nxt = sm.continue_after_time_up(timed_out, sessions['A'], T0 + 61_000)
    assert nxt.phase == sm.PLAYING
    assert nxt.turn.global_turn_index == 1
    with pytest.raises(InvalidPhaseError):
        sm.continue_after_time_up(playing, sessions['A'], T0)


def test_full_game_keeps_narrator_invariant(initial, sessions):
    st = sm.begin_turn(initial, sessions['A'], T0)
    now = T0
    while st.phase != sm.FINISHED:
        _assert_narrator_matches_queue(st)
        narrator = sessions[st.turn.narrator_id]
        guesser = 'B' if narrator.player_id != 'B' else 'C'
        now += 1_000
        st = sm.mark_correct_guess(st, narrator, guesser, guesser.lower(), now)
        _assert_narrator_matches_queue(st)
        now += 4_000
        st = sm.advance_after_reveal(st, narrator, now)
    assert st.turn.global_turn_index == len(st.task_queue) - 1
    assert st.version == 1 + 1 + 2 * len(st.task_queue)


def test_skip_at_last_position_finishes(initial, sessions):
    last = initial.task_queue[-1]
    playing = sm.begin_turn(initial, sessions['A'], T0)
    at_end = replace(playing, turn=sm.Turn(last.narrator_id, 2, 1, len(initial.task_queue) - 1, last.task_id, last.task_content))
    done = sm.skip_turn(at_end, sessions['C'], T0 + 1_000)
    assert done.phase == sm.FINISHED
    assert done.timer.started_at_ms is None
    assert done.timer.paused_at_ms is None
    assert done.reveal is None
    assert done.is_terminal


def test_resolver_passes_over_departed_narrator(initial, sessions):
    second = replace(initial, turn=sm.get_next_turn_info(initial).next_turn)
    # B left: the queue jumps from A's block straight to C's
    info = sm.resolve_next_turn(second, member_ids=['A', 'C'])
    assert info.next_turn.narrator_id == 'C'
    assert info.next_turn.global_turn_index == 4
    assert info.next_turn.word_index_in_block == 0

    info = sm.resolve_next_turn(second, member_ids=['A'])
    assert info.is_game_over


def test_host_may_skip_for_departed_narrator(initial, sessions):
    b_turn = sm.get_next_turn_info(replace(initial, turn=sm.get_next_turn_info(initial).next_turn)).next_turn
    playing = replace(sm.begin_turn(initial, sessions['A'], T0), turn=b_turn)
    with pytest.raises(NotNarratorError):
        sm.skip_turn(playing, sessions['A'], T0, member_ids=['A', 'B', 'C'], host_id='A')
    skipped = sm.skip_turn(playing, sessions['A'], T0, member_ids=['A', 'C'], host_id='A')
    assert skipped.turn.narrator_id == 'C'
    assert skipped.last_action_by == 'A'


def test_skip_is_rejected_during_reveal(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0)
    revealed = sm.mark_correct_guess(playing, sessions['A'], 'B', 'bob', T0)
    with pytest.raises(InvalidPhaseError):
        sm.skip_turn(revealed, sessions['A'], T0)


def test_cancel_game_is_host_only(initial, sessions):
    with pytest.raises(NotHostError):
        sm.cancel_game(initial, sessions['B'], 'A', T0)
    canceled = sm.cancel_game(initial, sessions['A'], 'A', T0)
    assert canceled.phase == sm.CANCELED
    assert canceled.is_terminal
    with pytest.raises(InvalidPhaseError):
        sm.cancel_game(canceled, sessions['A'], 'A', T0)


def test_remaining_seconds(initial, sessions):
    assert sm.remaining_seconds(initial, T0) == 60
    playing = sm.begin_turn(initial, sessions['A'], T0)
    assert sm.remaining_seconds(playing, T0 + 999) == 60
    assert sm.remaining_seconds(playing, T0 + 1_000) == 59
    assert sm.remaining_seconds(playing, T0 + 120_000) == 0
    paused = sm.mark_time_up(playing, sessions['A'], T0 + 10_000)
    assert sm.remaining_seconds(paused, T0 + 50_000) == 50


def test_wire_format_survives_a_round_trip(initial, sessions):
    playing = sm.begin_turn(initial, sessions['A'], T0)
    revealed = sm.mark_correct_guess(playing, sessions['A'], 'B', 'bob', T0)
    data = revealed.to_dict()
    assert data['turn']['globalTurnIndex'] == 0
    assert data['reveal']['correctPlayerId'] == 'B'
    assert data['timer']['pausedAtMs'] == T0
    assert sm.GameState.from_dict(data) == revealed
