import logging
import threading
from types import SimpleNamespace

import pytest
from flask import current_app

from memebattle import create_app, db
from memebattle.exceptions import InvalidMoveError, NotAPlayerError
from memebattle.models import GameState, Lobby, Player, Submission, Vote, Abstention
from memebattle.services.games import actions, events, progression
from memebattle.services.games.progression import (
    advance_round,
    force_advance,
    guarded_transition,
    load_round,
    on_submission_created,
    on_vote_created,
    start_match,
)
from memebattle.services.games.scheduler import expire_phase
from memebattle.services.games.scoring import score_round


def _app():
    return current_app._get_current_object()


def _state(lobby):
    return load_round(lobby.id)[1]


def _scores(lobby):
    return {p.uid: p.score for p in Player.query.filter_by(lobby_id=lobby.id).populate_existing().all()}


def _submit_all(lobby, uids):
    for uid in uids:
        actions.record_submission(lobby, uid, f'card-{uid}', f'Card {uid}')


def test_start_match_moves_waiting_to_submission(make_lobby):
    lobby = make_lobby()
    assert start_match(lobby) is True
    state = _state(lobby)
    assert state.phase == 'submission'
    assert state.round_number == 1
    assert state.time_left == 60
    assert state.phase_start_time is not None
    # A second start finds the guard already moved
    assert start_match(lobby) is False


def test_submission_phase_advances_exactly_on_last_player(make_lobby):
    lobby = make_lobby()
    start_match(lobby)

    for uid in ('A', 'B', 'C'):
        actions.record_submission(lobby, uid, f'card-{uid}')
        assert _state(lobby).phase == 'submission'

    actions.record_submission(lobby, 'D', 'card-D')
    state = _state(lobby)
    assert state.phase == 'voting'
    assert state.time_left == 30


def test_submission_handler_reinvocation_does_not_advance_twice(make_lobby):
    lobby = make_lobby()
    start_match(lobby)
    _submit_all(lobby, 'ABCD')
    first_start = _state(lobby).phase_start_time

    for _ in range(3):
        on_submission_created(lobby.id)
    state = _state(lobby)
    assert state.phase == 'voting'
    assert state.phase_start_time == first_start
    assert guarded_transition(lobby.id, 'submission', 'voting', 1) is False


def test_duplicate_submission_is_rejected(make_lobby):
    lobby = make_lobby()
    start_match(lobby)
    actions.record_submission(lobby, 'A', 'card-1')
    with pytest.raises(InvalidMoveError):
        actions.record_submission(lobby, 'A', 'card-2')
    assert Submission.query.filter_by(lobby_id=lobby.id).count() == 1


def test_submission_outside_phase_and_by_stranger_rejected(make_lobby):
    lobby = make_lobby()
    with pytest.raises(InvalidMoveError):
        actions.record_submission(lobby, 'A', 'card-1')
    start_match(lobby)
    with pytest.raises(NotAPlayerError):
        actions.record_submission(lobby, 'Z', 'card-1')


def test_votes_and_abstentions_complete_voting(make_lobby):
    lobby = make_lobby(uids=('A', 'B', 'C'))
    start_match(lobby)
    _submit_all(lobby, 'ABC')

    actions.record_vote(lobby, 'A', 'B')
    actions.record_vote(lobby, 'B', 'C')
    assert _state(lobby).phase == 'voting'
    actions.record_abstention(lobby, 'C')

    state = _state(lobby)
    assert state.phase == 'results'
    assert state.scored_round == 1


def test_invalid_votes_rejected(make_lobby):
    lobby = make_lobby(uids=('A', 'B', 'C'))
    start_match(lobby)
    _submit_all(lobby, 'ABC')

    with pytest.raises(InvalidMoveError):
        actions.record_vote(lobby, 'A', 'A')
    with pytest.raises(InvalidMoveError):
        actions.record_vote(lobby, 'A', 'nobody')
    actions.record_vote(lobby, 'A', 'B')
    with pytest.raises(InvalidMoveError):
        actions.record_vote(lobby, 'A', 'C')
    with pytest.raises(InvalidMoveError):
        actions.record_abstention(lobby, 'A')
    assert Vote.query.filter_by(lobby_id=lobby.id).count() == 1
    assert Abstention.query.filter_by(lobby_id=lobby.id).count() == 0


def test_handlers_ignore_missing_lobby_and_stale_phase(make_lobby):
    on_submission_created(9999)
    on_vote_created(9999)

    lobby = make_lobby()
    start_match(lobby)
    # Vote trigger while still in submission: stale, nothing happens
    on_vote_created(lobby.id)
    assert _state(lobby).phase == 'submission'


def test_end_to_end_round(make_lobby):
    lobby = make_lobby()
    start_match(lobby)
    _submit_all(lobby, 'ABCD')
    assert _state(lobby).phase == 'voting'

    for voter in ('B', 'C', 'D'):
        actions.record_vote(lobby, voter, 'A')
    actions.record_abstention(lobby, 'A')

    state = _state(lobby)
    assert state.phase == 'results'
    assert state.winner == 'A'
    assert state.scored_round == state.round_number == 1
    scores = _scores(lobby)
    assert scores == {'A': 7, 'B': 1, 'C': 1, 'D': 1}
    results = state.results()
    assert results['round_number'] == 1
    assert results['ranking'][0] == {'player_uid': 'A', 'votes_received': 3, 'score_delta': 7}

    # Manual re-trigger of the scorer changes nothing
    snapshot = (state.winner, state.round_results, state.scored_round)
    assert score_round(lobby.id) is False
    state = _state(lobby)
    assert (state.winner, state.round_results, state.scored_round) == snapshot
    assert _scores(lobby) == scores


def test_scorer_respects_idempotency_guard_when_results_reentered(make_lobby):
    lobby = make_lobby(uids=('A', 'B'))
    start_match(lobby)
    _submit_all(lobby, 'AB')
    actions.record_vote(lobby, 'A', 'B')
    actions.record_vote(lobby, 'B', 'A')
    scores = _scores(lobby)

    events.dispatch(_app(), events.PHASE_CHANGED, lobby.id, phase='results', round_number=1)
    assert _scores(lobby) == scores


def test_timer_fallback_forces_phases_forward(make_lobby):
    lobby = make_lobby()
    start_match(lobby)
    actions.record_submission(lobby, 'A', 'card-A')
    actions.record_submission(lobby, 'B', 'card-B')

    assert expire_phase(_app(), lobby.id, 'submission', 1) is True
    assert _state(lobby).phase == 'voting'
    # A late timer for the same phase finds the round moved on
    assert expire_phase(_app(), lobby.id, 'submission', 1) is False

    actions.record_vote(lobby, 'C', 'B')
    assert expire_phase(_app(), lobby.id, 'voting', 1) is True
    state = _state(lobby)
    assert state.phase == 'results'
    assert state.winner == 'B'
    # B: 1 vote + submitted + winner; A: submitted; C and D did not submit
    assert _scores(lobby) == {'A': 1, 'B': 5, 'C': 0, 'D': 0}


def test_round_reset_and_game_over(make_lobby):
    lobby = make_lobby(uids=('A', 'B'), total_rounds=2)
    start_match(lobby)
    _submit_all(lobby, 'AB')
    actions.record_vote(lobby, 'A', 'B')
    actions.record_vote(lobby, 'B', 'A')
    assert _state(lobby).phase == 'results'

    assert force_advance(lobby.id, 'results', 1) is True
    assert _state(lobby).phase == 'leaderboard'
    assert advance_round(lobby.id, 1) is True

    state = _state(lobby)
    assert state.phase == 'submission'
    assert state.round_number == 2
    assert state.winner is None
    assert state.round_results is None
    assert state.scored_round == 1
    assert Submission.query.filter_by(lobby_id=lobby.id).count() == 0
    assert Vote.query.filter_by(lobby_id=lobby.id).count() == 0
    # Cumulative scores carry over
    assert _scores(lobby) == {'A': 5, 'B': 2}
    # Stale round-1 leaderboard trigger is ignored
    assert advance_round(lobby.id, 1) is False

    _submit_all(lobby, 'AB')
    actions.record_vote(lobby, 'A', 'B')
    actions.record_abstention(lobby, 'B')
    assert _state(lobby).scored_round == 2
    force_advance(lobby.id, 'results', 2)
    assert advance_round(lobby.id, 2) is True
    state = _state(lobby)
    assert state.phase == 'game_over'
    assert state.round_number == 2
    assert load_round(lobby.id)[0].finished_at is not None


def test_handler_failure_is_logged_not_raised(flask_app, make_lobby, caplog):
    lobby = make_lobby()

    def explode(lobby_id, **_):
        raise RuntimeError('boom')

    events._invoke(flask_app, explode, 'submission_created', lobby.id, {})
    assert 'handler-error' in caplog.text
    # Session is still usable afterwards
    assert db.session.get(GameState, lobby.game_state.id) is not None


def _scored_two_player_round(make_lobby):
    lobby = make_lobby(uids=('A', 'B'))
    start_match(lobby)
    _submit_all(lobby, 'AB')
    actions.record_vote(lobby, 'A', 'B')
    actions.record_vote(lobby, 'B', 'A')
    return lobby


def test_scorer_losing_the_claim_changes_nothing(make_lobby, monkeypatch, caplog):
    lobby = _scored_two_player_round(make_lobby)
    state = _state(lobby)
    assert state.scored_round == 1
    snapshot = (state.winner, state.round_results)
    scores = _scores(lobby)

    # A scorer that read the round before the first one committed
    current_lobby = load_round(lobby.id)[0]
    stale = SimpleNamespace(phase='results', round_number=1, scored_round=0)
    monkeypatch.setattr(progression, 'load_round', lambda lobby_id: (current_lobby, stale))
    assert score_round(lobby.id) is False
    monkeypatch.undo()

    assert any(r.levelno == logging.WARNING and 'score-race' in r.getMessage() for r in caplog.records)
    state = _state(lobby)
    assert state.scored_round == 1
    assert (state.winner, state.round_results) == snapshot
    assert _scores(lobby) == scores


def test_completion_handler_warns_when_transition_is_lost(make_lobby, monkeypatch, caplog):
    lobby = make_lobby(uids=('A', 'B'))
    start_match(lobby)
    _submit_all(lobby, 'AB')
    assert _state(lobby).phase == 'voting'

    # The handler saw submission, but another writer already moved the round on
    current_lobby = load_round(lobby.id)[0]
    stale = SimpleNamespace(phase='submission', round_number=1)
    monkeypatch.setattr(progression, 'load_round', lambda lobby_id: (current_lobby, stale))
    on_submission_created(lobby.id)
    monkeypatch.undo()

    assert any(r.levelno == logging.WARNING and 'phase-race' in r.getMessage() for r in caplog.records)
    assert _state(lobby).phase == 'voting'


def test_stale_trigger_is_not_reported_as_race(make_lobby, caplog):
    lobby = make_lobby(uids=('A', 'B'))
    start_match(lobby)
    _submit_all(lobby, 'AB')
    assert guarded_transition(lobby.id, 'submission', 'voting', 1) is False
    assert not any('phase-race' in r.getMessage() for r in caplog.records)


def test_concurrent_transitions_have_one_winner(tmp_path):
    class FileConfig:
        TESTING = True
        SECRET_KEY = 'test-secret'
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.db'}"
        SQLALCHEMY_TRACK_MODIFICATIONS = False

    race_app = create_app(FileConfig)
    with race_app.app_context():
        db.create_all()
        lobby = Lobby(host_uid='A')
        lobby.game_state = GameState(phase='submission')
        lobby.players.append(Player(uid='A', name='Player A'))
        db.session.add(lobby)
        db.session.commit()
        lobby_id = lobby.id

    barrier = threading.Barrier(2)
    results = []

    def contender():
        with race_app.app_context():
            barrier.wait()
            results.append(guarded_transition(lobby_id, 'submission', 'voting', 1))

    threads = [threading.Thread(target=contender) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(results) == [False, True]
    with race_app.app_context():
        state = GameState.query.filter_by(lobby_id=lobby_id).one()
        assert state.phase == 'voting'
        assert state.round_number == 1
        db.session.remove()
        db.drop_all()
