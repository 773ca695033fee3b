"""Player write path: submissions, votes and abstentions.

Each write is validated against the current round, committed, and then
announced as an event; the completion handlers decide separately whether
the phase should move.
"""

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError

from memebattle import db
from memebattle.exceptions import InvalidMoveError, NotAPlayerError
from memebattle.models import Abstention, Lobby, Player, Submission, Vote, PHASE_SUBMISSION, PHASE_VOTING
from . import events
from .progression import load_round


def _require_player(lobby: Lobby, uid: str) -> Player:
    player = Player.query.filter_by(lobby_id=lobby.id, uid=uid).first()
    if not player:
        raise NotAPlayerError()
    return player


def _require_phase(lobby: Lobby, phase: str):
    _lobby, state = load_round(lobby.id)
    if state is None or state.phase != phase:
        raise InvalidMoveError(f'Not accepting this action during {state.phase if state else "setup"}')
    return state


def _commit_once(row, message: str) -> None:
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise InvalidMoveError(message)


def record_submission(lobby: Lobby, player_uid: str, card_id: str, card_name: str = None) -> Submission:
    if not card_id:
        raise InvalidMoveError('card_id is required')
    player = _require_player(lobby, player_uid)
    state = _require_phase(lobby, PHASE_SUBMISSION)
    submission = Submission(
        lobby_id=lobby.id,
        round_number=state.round_number,
        player_uid=player.uid,
        card_id=card_id,
        card_name=card_name,
    )
    player.last_seen = time.time()
    _commit_once(submission, 'Already submitted this round')
    current_app.logger.info(f"[submission] lobby={lobby.id} round={state.round_number} player={player.uid}")
    events.dispatch(current_app._get_current_object(), events.SUBMISSION_CREATED, lobby.id, player_uid=player.uid)
    return submission


def _already_responded(lobby: Lobby, round_number: int, uid: str) -> bool:
    return (
        Vote.query.filter_by(lobby_id=lobby.id, round_number=round_number, voter_uid=uid).first() is not None
        or Abstention.query.filter_by(lobby_id=lobby.id, round_number=round_number, player_uid=uid).first() is not None
    )


def record_vote(lobby: Lobby, voter_uid: str, target_uid: str) -> Vote:
    voter = _require_player(lobby, voter_uid)
    if voter_uid == target_uid:
        raise InvalidMoveError('You cannot vote for your own submission')
    if not Player.query.filter_by(lobby_id=lobby.id, uid=target_uid).first():
        raise InvalidMoveError('Invalid vote target')
    state = _require_phase(lobby, PHASE_VOTING)
    if _already_responded(lobby, state.round_number, voter.uid):
        raise InvalidMoveError('Already voted this round')
    vote = Vote(lobby_id=lobby.id, round_number=state.round_number, voter_uid=voter.uid, target_uid=target_uid)
    voter.last_seen = time.time()
    _commit_once(vote, 'Already voted this round')
    current_app.logger.info(f"[vote] lobby={lobby.id} round={state.round_number} voter={voter.uid} target={target_uid}")
    events.dispatch(current_app._get_current_object(), events.VOTE_CREATED, lobby.id, voter_uid=voter.uid)
    return vote


def record_abstention(lobby: Lobby, player_uid: str) -> Abstention:
    player = _require_player(lobby, player_uid)
    state = _require_phase(lobby, PHASE_VOTING)
    if _already_responded(lobby, state.round_number, player.uid):
        raise InvalidMoveError('Already voted this round')
    abstention = Abstention(lobby_id=lobby.id, round_number=state.round_number, player_uid=player.uid)
    player.last_seen = time.time()
    _commit_once(abstention, 'Already abstained this round')
    current_app.logger.info(f"[abstain] lobby={lobby.id} round={state.round_number} player={player.uid}")
    events.dispatch(current_app._get_current_object(), events.ABSTENTION_CREATED, lobby.id, player_uid=player.uid)
    return abstention
