"""Post-match achievement unlocks.

Evaluated from a player's stats immediately before and after a rated match.
Milestones that count up (wins, ratings) fire when the threshold is crossed;
streak and games-played milestones fire when the counter lands exactly on
the threshold.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List

FIRST_VICTORY = 'first_victory'
TRIPLE_THREAT = 'triple_threat'
DOMINATOR = 'dominator'
SKILLED_PLAYER = 'skilled_player'
ELITE_COMPETITOR = 'elite_competitor'
BATTLE_TESTED = 'battle_tested'
VETERAN = 'veteran'


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    rarity: str

    def to_dict(self):
        return asdict(self)


ACHIEVEMENTS = {
    a.id: a for a in (
        Achievement(FIRST_VICTORY, 'First Victory', 'Win your first competitive match', 'common'),
        Achievement(TRIPLE_THREAT, 'Triple Threat', 'Win 3 matches in a row', 'rare'),
        Achievement(DOMINATOR, 'Dominator', 'Win 5 matches in a row', 'epic'),
        Achievement(SKILLED_PLAYER, 'Skilled Player', 'Reach 1500 skill rating', 'rare'),
        Achievement(ELITE_COMPETITOR, 'Elite Competitor', 'Reach 2000 skill rating', 'epic'),
        Achievement(BATTLE_TESTED, 'Battle Tested', 'Play 10 competitive matches', 'common'),
        Achievement(VETERAN, 'Veteran', 'Play 50 competitive matches', 'rare'),
    )
}


def stats_snapshot(rating) -> Dict[str, int]:
    """The counters achievements are judged on, copied off a PlayerRating."""
    return {
        'wins': rating.wins,
        'current_streak': rating.current_streak,
        'skill_rating': rating.skill_rating,
        'games_played': rating.games_played,
    }


def evaluate_achievements(previous: Dict[str, int], new: Dict[str, int]) -> List[Achievement]:
    unlocked = []
    if new['wins'] == 1 and previous['wins'] == 0:
        unlocked.append(ACHIEVEMENTS[FIRST_VICTORY])
    if new['current_streak'] == 3:
        unlocked.append(ACHIEVEMENTS[TRIPLE_THREAT])
    if new['current_streak'] == 5:
        unlocked.append(ACHIEVEMENTS[DOMINATOR])
    if new['skill_rating'] >= 1500 > previous['skill_rating']:
        unlocked.append(ACHIEVEMENTS[SKILLED_PLAYER])
    if new['skill_rating'] >= 2000 > previous['skill_rating']:
        unlocked.append(ACHIEVEMENTS[ELITE_COMPETITOR])
    if new['games_played'] == 10:
        unlocked.append(ACHIEVEMENTS[BATTLE_TESTED])
    if new['games_played'] == 50:
        unlocked.append(ACHIEVEMENTS[VETERAN])
    return unlocked


def all_achievements() -> List[Achievement]:
    return list(ACHIEVEMENTS.values())
