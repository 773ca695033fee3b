"""Skill rating engine for competitive matches.

A multiplayer adaptation of Elo: a player is scored against the average
rating of everyone else in the match, and the finishing position both sets
the actual score and scales the resulting change. Everything here is pure;
callers persist the results.
"""

import math
from dataclasses import dataclass, asdict
from typing import Dict, List, Sequence


BASE_RATING = 1200
MIN_RATING = 100
MAX_RATING = 3000
BASE_K_FACTOR = 32
MIN_K_FACTOR = 16
MAX_K_FACTOR = 64


class InvalidRatingInput(ValueError):
    """Raised for inputs a rating change must never be computed from."""


@dataclass(frozen=True)
class RankingTier:
    name: str
    min_rating: int
    max_rating: int
    color: str
    percentile: int

    def to_dict(self):
        return asdict(self)


# Ordered lowest to highest
RANKING_TIERS = (
    RankingTier('Bronze', 100, 799, '#CD7F32', 0),
    RankingTier('Silver', 800, 1099, '#C0C0C0', 25),
    RankingTier('Gold', 1100, 1399, '#FFD700', 50),
    RankingTier('Platinum', 1400, 1699, '#E5E4E2', 75),
    RankingTier('Diamond', 1700, 2199, '#B9F2FF', 90),
    RankingTier('Master', 2200, 3000, '#FF6B6B', 98),
)


@dataclass(frozen=True)
class GameResult:
    lobby_code: str
    player_uid: str
    position: int
    total_players: int
    duration: float = 0.0


@dataclass(frozen=True)
class SkillRatingCalculation:
    base_rating: int
    k_factor: int
    position_multiplier: float
    opponent_rating_average: float
    expected_score: float
    actual_score: float
    rating_change: int

    @property
    def new_rating(self) -> int:
        return self.base_rating + self.rating_change

    def to_dict(self):
        data = asdict(self)
        data['new_rating'] = self.new_rating
        return data


def k_factor(games_played: int) -> int:
    """Volatility for a player with ``games_played`` rated matches behind them."""
    if games_played < 10:
        return MAX_K_FACTOR
    if games_played < 50:
        return BASE_K_FACTOR
    return MIN_K_FACTOR


def _normalized_position(position: int, total_players: int) -> float:
    # 1st place -> 1.0, last place -> 0.0
    return (total_players - position) / (total_players - 1)


def position_multiplier(position: int, total_players: int) -> float:
    normalized = _normalized_position(position, total_players)
    multiplier = 0.5 + normalized ** 0.7
    return max(0.3, min(1.8, multiplier))


def expected_score(rating: float, opponent_average: float) -> float:
    probability = 1 / (1 + 10 ** ((opponent_average - rating) / 400))
    return max(0.01, min(0.99, probability))


def actual_score(position: int, total_players: int) -> float:
    return math.sqrt(_normalized_position(position, total_players))


def clamp_rating(rating: float) -> int:
    return int(max(MIN_RATING, min(MAX_RATING, rating)))


def _validate(result: GameResult, opponent_ratings: Sequence[float]) -> None:
    if not opponent_ratings:
        raise InvalidRatingInput('No opponent ratings provided')
    if result.total_players < 2:
        raise InvalidRatingInput(f'A rated match needs at least 2 players, got {result.total_players}')
    if result.position < 1 or result.position > result.total_players:
        raise InvalidRatingInput(
            f'Invalid game position {result.position} for {result.total_players} players'
        )


def calculate_rating_change(
    current_rating: int,
    result: GameResult,
    opponent_ratings: Sequence[float],
    games_played: int = 0,
) -> SkillRatingCalculation:
    """Compute the rating change for one player's finished match.

    The reported ``rating_change`` is measured after clamping the new rating
    to ``[MIN_RATING, MAX_RATING]``, so it can be smaller than the raw value.

    Raises:
        InvalidRatingInput: empty ``opponent_ratings``, fewer than two
            players, or a position outside ``[1, total_players]``.
    """
    _validate(result, opponent_ratings)

    k = k_factor(games_played)
    multiplier = position_multiplier(result.position, result.total_players)
    opponent_average = sum(opponent_ratings) / len(opponent_ratings)
    expected = expected_score(current_rating, opponent_average)
    actual = actual_score(result.position, result.total_players)

    raw_change = round(k * (actual - expected) * multiplier)
    new_rating = clamp_rating(current_rating + raw_change)

    return SkillRatingCalculation(
        base_rating=current_rating,
        k_factor=k,
        position_multiplier=multiplier,
        opponent_rating_average=opponent_average,
        expected_score=expected,
        actual_score=actual,
        rating_change=new_rating - current_rating,
    )


def estimate_rating_change(
    current_rating: int,
    opponent_ratings: Sequence[float],
    estimated_position: int,
    total_players: int,
    games_played: int = 0,
) -> Dict[str, int]:
    """Preview best (1st), worst (last) and expected rating deltas."""
    def _change(position):
        preview = GameResult(lobby_code='', player_uid='preview', position=position, total_players=total_players)
        return calculate_rating_change(current_rating, preview, opponent_ratings, games_played).rating_change

    return {
        'best_case': _change(1),
        'worst_case': _change(total_players),
        'expected': _change(estimated_position),
    }


def ranking_tier(rating: float) -> RankingTier:
    for tier in reversed(RANKING_TIERS):
        if rating >= tier.min_rating:
            return tier
    # Below the lowest band
    return RANKING_TIERS[0]


def percentile(rating: float, all_ratings: Sequence[float]) -> float:
    if not all_ratings:
        return 50.0
    below = sum(1 for r in all_ratings if r < rating)
    return below / len(all_ratings) * 100


def all_ranking_tiers() -> List[RankingTier]:
    return list(RANKING_TIERS)


def validate_rating(rating: float) -> bool:
    return MIN_RATING <= rating <= MAX_RATING


def default_rating() -> int:
    return BASE_RATING


def rating_bounds() -> Dict[str, int]:
    return {'min': MIN_RATING, 'max': MAX_RATING}
