"""Round phase state machine.

The round record only ever moves through guarded conditional updates: one
``UPDATE ... WHERE phase = :expected AND round_number = :round`` statement
per transition, won by whoever gets ``rowcount == 1``. Duplicate or
reordered triggers therefore find the guard already moved and do nothing.

    waiting -> submission -> voting -> results -> leaderboard
        -> submission (next round) ... -> game_over
"""

import time
from typing import Optional, Tuple

from flask import current_app
from sqlalchemy import update

from memebattle import db, socketio
from memebattle.models import (
    Abstention,
    GameState,
    Lobby,
    Submission,
    Vote,
    PHASE_GAME_OVER,
    PHASE_LEADERBOARD,
    PHASE_RESULTS,
    PHASE_SUBMISSION,
    PHASE_VOTING,
    PHASE_WAITING,
)
from . import events
from .scheduler import schedule_phase_timer
from .scoring import score_round


_DURATION_KEYS = {
    PHASE_SUBMISSION: 'SUBMISSION_DURATION_SEC',
    PHASE_VOTING: 'VOTING_DURATION_SEC',
    PHASE_RESULTS: 'RESULTS_DURATION_SEC',
    PHASE_LEADERBOARD: 'LEADERBOARD_DURATION_SEC',
}

_DEFAULT_DURATIONS = {
    PHASE_SUBMISSION: 60,
    PHASE_VOTING: 30,
    PHASE_RESULTS: 10,
    PHASE_LEADERBOARD: 15,
}


def phase_duration(app, phase: str) -> Optional[int]:
    if phase not in _DURATION_KEYS:
        return None
    return int(app.config.get(_DURATION_KEYS[phase], _DEFAULT_DURATIONS[phase]))


def phase_durations(app) -> dict:
    return {phase: phase_duration(app, phase) for phase in _DURATION_KEYS}


def load_round(lobby_id: int) -> Tuple[Optional[Lobby], Optional[GameState]]:
    """Fresh read of the lobby and its round record, bypassing the identity map."""
    lobby = db.session.get(Lobby, lobby_id, populate_existing=True)
    if lobby is None:
        return None, None
    state = GameState.query.filter_by(lobby_id=lobby_id).populate_existing().first()
    return lobby, state


def notify(lobby_code: str) -> None:
    socketio.emit('state_update', {'game_code': lobby_code}, to=f"game:{lobby_code}", namespace='/ws')


def guarded_transition(lobby_id: int, expected_phase: str, new_phase: str, round_number: int,
                       checked: bool = False, **values) -> bool:
    """Atomically move ``expected_phase`` -> ``new_phase`` for ``round_number``.

    Returns True only for the caller whose update matched the guard. Pass
    ``checked=True`` when the caller has just read the round in
    ``expected_phase``: losing the update then means another writer got in
    between, which is logged as a race rather than a stale trigger.
    """
    app = current_app._get_current_object()
    now = time.time()
    values.setdefault('time_left', phase_duration(app, new_phase))
    values['phase'] = new_phase
    values['phase_start_time'] = now
    result = db.session.execute(
        update(GameState)
        .where(
            GameState.lobby_id == lobby_id,
            GameState.phase == expected_phase,
            GameState.round_number == round_number,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        if checked:
            app.logger.warning(
                f"[phase-race] lobby={lobby_id} {expected_phase}->{new_phase} round={round_number} lost to a concurrent writer"
            )
        else:
            app.logger.info(
                f"[phase-skip] lobby={lobby_id} {expected_phase}->{new_phase} round={round_number} guard already moved"
            )
        return False
    db.session.execute(
        update(Lobby)
        .where(Lobby.id == lobby_id)
        .values(updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    app.logger.info(f"[phase-advance] lobby={lobby_id} {expected_phase}->{new_phase} round={round_number}")
    return True


def _after_transition(lobby_id: int, new_phase: str, round_number: int) -> None:
    app = current_app._get_current_object()
    lobby = db.session.get(Lobby, lobby_id)
    if lobby is not None:
        notify(lobby.code)
    schedule_phase_timer(app, lobby_id)
    events.dispatch(app, events.PHASE_CHANGED, lobby_id, phase=new_phase, round_number=round_number)


def advance_phase(lobby_id: int, expected_phase: str, new_phase: str, round_number: int,
                  checked: bool = False, **values) -> bool:
    won = guarded_transition(lobby_id, expected_phase, new_phase, round_number, checked=checked, **values)
    if won:
        _after_transition(lobby_id, new_phase, round_number)
    return won


def start_match(lobby: Lobby) -> bool:
    """waiting -> submission for round 1."""
    if lobby.game_state is None:
        lobby.game_state = GameState(phase=PHASE_WAITING, round_number=1, scored_round=0)
        db.session.add(lobby)
        db.session.commit()
    round_number = lobby.game_state.round_number
    won = guarded_transition(lobby.id, PHASE_WAITING, PHASE_SUBMISSION, round_number)
    if not won:
        return False
    db.session.execute(
        update(Lobby)
        .where(Lobby.id == lobby.id, Lobby.started_at.is_(None))
        .values(started_at=time.time())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    _after_transition(lobby.id, PHASE_SUBMISSION, round_number)
    return True


def advance_round(lobby_id: int, expected_round: int) -> bool:
    """leaderboard -> next round's submission, or game_over after the last round."""
    lobby, state = load_round(lobby_id)
    if lobby is None or state is None:
        return False
    if state.phase != PHASE_LEADERBOARD or state.round_number != expected_round:
        return False

    if expected_round >= lobby.total_rounds:
        won = guarded_transition(lobby_id, PHASE_LEADERBOARD, PHASE_GAME_OVER, expected_round, time_left=0)
        if won:
            db.session.execute(
                update(Lobby)
                .where(Lobby.id == lobby_id, Lobby.finished_at.is_(None))
                .values(finished_at=time.time())
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            _after_transition(lobby_id, PHASE_GAME_OVER, expected_round)
        return won

    next_round = expected_round + 1
    won = guarded_transition(
        lobby_id,
        PHASE_LEADERBOARD,
        PHASE_SUBMISSION,
        expected_round,
        round_number=next_round,
        winner=None,
        round_results=None,
    )
    if not won:
        return False
    # Scores stay cumulative; only the per-round writes are cleared
    for model in (Submission, Vote, Abstention):
        model.query.filter(model.lobby_id == lobby_id, model.round_number <= expected_round).delete(
            synchronize_session=False
        )
    db.session.commit()
    current_app.logger.info(f"[next-round] lobby={lobby_id} advance round {expected_round} -> {next_round}")
    _after_transition(lobby_id, PHASE_SUBMISSION, next_round)
    return True


def _submitted_players(lobby: Lobby, round_number: int) -> set:
    rows = Submission.query.filter_by(lobby_id=lobby.id, round_number=round_number).all()
    return {s.player_uid for s in rows} & set(lobby.roster())


def _responded_players(lobby: Lobby, round_number: int) -> set:
    voted = {v.voter_uid for v in Vote.query.filter_by(lobby_id=lobby.id, round_number=round_number).all()}
    abstained = {a.player_uid for a in Abstention.query.filter_by(lobby_id=lobby.id, round_number=round_number).all()}
    return (voted | abstained) & set(lobby.roster())


@events.on(events.SUBMISSION_CREATED)
def on_submission_created(lobby_id: int, **_) -> None:
    """Advance submission -> voting once every rostered player has submitted."""
    lobby, state = load_round(lobby_id)
    if lobby is None or state is None or not lobby.players:
        return
    if state.phase != PHASE_SUBMISSION:
        return
    expected = len(lobby.players)
    if len(_submitted_players(lobby, state.round_number)) < expected:
        return
    advance_phase(lobby_id, PHASE_SUBMISSION, PHASE_VOTING, state.round_number, checked=True)


@events.on(events.VOTE_CREATED, events.ABSTENTION_CREATED)
def on_vote_created(lobby_id: int, **_) -> None:
    """Advance voting -> results once every rostered player voted or abstained."""
    lobby, state = load_round(lobby_id)
    if lobby is None or state is None or not lobby.players:
        return
    if state.phase != PHASE_VOTING:
        return
    expected = len(lobby.players)
    if len(_responded_players(lobby, state.round_number)) < expected:
        return
    advance_phase(lobby_id, PHASE_VOTING, PHASE_RESULTS, state.round_number, checked=True)


def force_advance(lobby_id: int, expected_phase: str, expected_round: int) -> bool:
    """Move the round past ``expected_phase`` whether or not everyone acted.

    Used by the phase timer and by host intervention. Goes through the same
    guards as the completion-driven path.
    """
    if expected_phase == PHASE_SUBMISSION:
        return advance_phase(lobby_id, PHASE_SUBMISSION, PHASE_VOTING, expected_round)
    if expected_phase == PHASE_VOTING:
        return advance_phase(lobby_id, PHASE_VOTING, PHASE_RESULTS, expected_round)
    if expected_phase == PHASE_RESULTS:
        # Scoring normally ran on entry to results; this is a no-op if it did
        score_round(lobby_id)
        return advance_phase(lobby_id, PHASE_RESULTS, PHASE_LEADERBOARD, expected_round)
    if expected_phase == PHASE_LEADERBOARD:
        return advance_round(lobby_id, expected_round)
    return False
