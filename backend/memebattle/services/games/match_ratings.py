"""Post-match processing for competitive lobbies.

Turns final scores into finishing positions, runs every human player
through the skill rating engine and persists ratings, stats and match
history. Applied at most once per lobby, guarded by ``Lobby.rated_at``.
"""

import json
import time
from typing import Dict, List

from flask import current_app
from sqlalchemy import update

from memebattle import db
from memebattle.models import Lobby, MatchResult, PlayerRating, PHASE_GAME_OVER
from . import events
from .achievements import evaluate_achievements, stats_snapshot
from .progression import load_round
from .skill_rating import (
    BASE_RATING,
    GameResult,
    calculate_rating_change,
    clamp_rating,
    percentile,
    ranking_tier,
)


def final_positions(scores: Dict[str, int]) -> List[str]:
    """Player uids in finishing order: score descending, uid ascending on ties."""
    return sorted(scores, key=lambda uid: (-scores[uid], uid))


def get_or_create_rating(uid: str) -> PlayerRating:
    rating = db.session.get(PlayerRating, uid)
    if rating is None:
        rating = PlayerRating(
            uid=uid,
            skill_rating=BASE_RATING,
            highest_rating=BASE_RATING,
            games_played=0,
            wins=0,
            losses=0,
            current_streak=0,
            longest_win_streak=0,
            average_position=0.0,
        )
        db.session.add(rating)
    return rating


def _apply_stats(rating: PlayerRating, position: int, new_rating: int, now: float) -> None:
    previous_games = rating.games_played
    rating.games_played = previous_games + 1
    won = position == 1
    if won:
        rating.wins += 1
        rating.current_streak = rating.current_streak + 1 if rating.current_streak >= 0 else 1
        rating.longest_win_streak = max(rating.longest_win_streak, rating.current_streak)
    else:
        rating.current_streak = rating.current_streak - 1 if rating.current_streak <= 0 else -1
    if position > 3:
        rating.losses += 1
    rating.average_position = (rating.average_position * previous_games + position) / rating.games_played
    rating.skill_rating = new_rating
    rating.highest_rating = max(rating.highest_rating, new_rating)
    rating.last_played = now


def apply_match_ratings(lobby_id: int) -> bool:
    """Rate a finished competitive match. Returns True if this call applied it."""
    lobby, state = load_round(lobby_id)
    if lobby is None or not lobby.competitive or lobby.rated_at is not None:
        return False
    if state is None or state.phase != PHASE_GAME_OVER:
        return False

    players = list(lobby.players)
    if len(players) < 2:
        current_app.logger.info(f"[rating-skip] lobby={lobby_id} fewer than 2 players")
        return False

    now = time.time()
    claimed = db.session.execute(
        update(Lobby)
        .where(Lobby.id == lobby_id, Lobby.rated_at.is_(None))
        .values(rated_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.session.rollback()
        current_app.logger.warning(f"[rating-race] lobby={lobby_id} already rated")
        return False

    order = final_positions({p.uid: p.score for p in players})
    total = len(order)
    is_ai = {p.uid: p.is_ai for p in players}
    records = {uid: get_or_create_rating(uid) for uid in order if not is_ai[uid]}
    # AI players are opponents at the default rating but are not rated themselves
    ratings = {uid: (records[uid].skill_rating if uid in records else BASE_RATING) for uid in order}
    started = lobby.started_at or lobby.created_at
    duration = (lobby.finished_at or now) - started

    for index, uid in enumerate(order):
        record = records.get(uid)
        if record is None:
            continue
        position = index + 1
        result = GameResult(
            lobby_code=lobby.code,
            player_uid=uid,
            position=position,
            total_players=total,
            duration=duration,
        )
        opponents = [r for other, r in ratings.items() if other != uid]
        calc = calculate_rating_change(ratings[uid], result, opponents, record.games_played)
        new_rating = clamp_rating(ratings[uid] + calc.rating_change)
        previous = stats_snapshot(record)
        _apply_stats(record, position, new_rating, now)
        unlocked = evaluate_achievements(previous, stats_snapshot(record))
        record.unlock(unlocked, now)
        db.session.add(MatchResult(
            lobby_code=lobby.code,
            started_at=started,
            player_uid=uid,
            position=position,
            total_players=total,
            duration=duration,
            rating_before=ratings[uid],
            rating_after=new_rating,
            rating_change=calc.rating_change,
            completed_at=now,
            achievements=json.dumps([a.id for a in unlocked]),
        ))
        if unlocked:
            current_app.logger.info(
                f"[achievement] lobby={lobby_id} player={uid} unlocked={[a.id for a in unlocked]}"
            )
        current_app.logger.info(
            f"[rating] lobby={lobby_id} player={uid} position={position}/{total} "
            f"rating={ratings[uid]}->{new_rating} k={calc.k_factor} multiplier={calc.position_multiplier:.2f}"
        )
    db.session.commit()
    return True


def rating_summary(uid: str) -> dict:
    """Rating, tier and percentile for one player against everyone rated."""
    record = db.session.get(PlayerRating, uid)
    rating = record.skill_rating if record else BASE_RATING
    population = [r.skill_rating for r in PlayerRating.query.all()]
    return {
        'uid': uid,
        'skill_rating': rating,
        'tier': ranking_tier(rating).to_dict(),
        'percentile': percentile(rating, population),
        'achievements': record.unlocked_achievements() if record else [],
        'stats': record.to_dict() if record else None,
    }


def match_summary(lobby: Lobby) -> List[dict]:
    rows = MatchResult.query.filter_by(
        lobby_code=lobby.code, started_at=lobby.started_at or lobby.created_at
    ).order_by(MatchResult.position).all()
    summary = []
    for row in rows:
        entry = row.to_dict()
        entry.update({k: v for k, v in rating_summary(row.player_uid).items() if k in ('tier', 'percentile')})
        summary.append(entry)
    return summary


@events.on(events.PHASE_CHANGED)
def on_game_over(lobby_id: int, phase: str = None, **_) -> None:
    if phase != PHASE_GAME_OVER:
        return
    apply_match_ratings(lobby_id)
