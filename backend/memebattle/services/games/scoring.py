import json
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import update

from memebattle import db
from memebattle.models import GameState, Player, Submission, Vote, PHASE_RESULTS
from . import events

VOTE_POINTS = 1
PARTICIPATION_POINTS = 1
WINNER_BONUS = 3


@dataclass
class RoundOutcome:
    round_number: int
    winner: Optional[str]
    ranking: List[Dict] = field(default_factory=list)

    def deltas(self) -> Dict[str, int]:
        return {entry['player_uid']: entry['score_delta'] for entry in self.ranking}

    def to_dict(self):
        return {'round_number': self.round_number, 'ranking': self.ranking}


def tally_round(round_number: int, roster: Iterable[str], submitted: Iterable[str], votes: Dict[str, str]) -> RoundOutcome:
    """Tally one round's votes into a winner and a ranking.

    ``votes`` maps voter uid -> target uid. The winner is the rostered player
    with the most votes, ties going to the lexicographically smallest uid.
    Each player's delta is votes received, +1 for having submitted, +3 for
    winning.
    """
    players = sorted(set(roster))
    submitted = set(submitted)
    counts = Counter(votes.values())

    winner = None
    best = -1
    for uid in players:
        received = counts.get(uid, 0)
        if received > best:
            best = received
            winner = uid

    ranking = []
    for uid in players:
        received = counts.get(uid, 0)
        delta = received * VOTE_POINTS
        if uid in submitted:
            delta += PARTICIPATION_POINTS
        if uid == winner:
            delta += WINNER_BONUS
        ranking.append({'player_uid': uid, 'votes_received': received, 'score_delta': delta})
    ranking.sort(key=lambda e: (-e['votes_received'], e['player_uid']))
    return RoundOutcome(round_number=round_number, winner=winner, ranking=ranking)


def score_round(lobby_id: int) -> bool:
    """Apply scoring for the lobby's current round, at most once.

    Returns True when this call committed the scores. A missing roster or
    round record means "not ready yet" and is not an error.
    """
    from .progression import load_round

    lobby, state = load_round(lobby_id)
    if lobby is None or state is None or not lobby.players:
        return False
    round_number = state.round_number
    if state.scored_round >= round_number or state.phase != PHASE_RESULTS:
        return False

    submitted = [s.player_uid for s in Submission.query.filter_by(lobby_id=lobby_id, round_number=round_number).all()]
    votes = {v.voter_uid: v.target_uid for v in Vote.query.filter_by(lobby_id=lobby_id, round_number=round_number).all()}
    outcome = tally_round(round_number, lobby.roster(), submitted, votes)

    # Claim the round first; scores ride in the same transaction
    claimed = db.session.execute(
        update(GameState)
        .where(
            GameState.lobby_id == lobby_id,
            GameState.round_number == round_number,
            GameState.scored_round < round_number,
            GameState.phase == PHASE_RESULTS,
        )
        .values(
            scored_round=round_number,
            winner=outcome.winner,
            round_results=json.dumps(outcome.to_dict()),
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.session.rollback()
        current_app.logger.warning(f"[score-race] lobby={lobby_id} round={round_number} already claimed by another scorer")
        return False

    for uid, delta in outcome.deltas().items():
        db.session.execute(
            update(Player)
            .where(Player.lobby_id == lobby_id, Player.uid == uid)
            .values(score=Player.score + delta)
            .execution_options(synchronize_session=False)
        )
    db.session.commit()
    current_app.logger.info(
        f"[score] lobby={lobby_id} round={round_number} winner={outcome.winner} deltas={outcome.deltas()}"
    )
    return True


@events.on(events.PHASE_CHANGED)
def on_results_phase(lobby_id: int, phase: str = None, **_) -> None:
    if phase != PHASE_RESULTS:
        return
    if score_round(lobby_id):
        from .progression import notify, load_round
        lobby, _state = load_round(lobby_id)
        if lobby is not None:
            notify(lobby.code)
