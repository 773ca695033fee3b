from memebattle import db
import json
import string
import random
import time


# Round phases, in play order
PHASE_WAITING = 'waiting'
PHASE_SUBMISSION = 'submission'
PHASE_VOTING = 'voting'
PHASE_RESULTS = 'results'
PHASE_LEADERBOARD = 'leaderboard'
PHASE_GAME_OVER = 'game_over'

PHASES = (
    PHASE_WAITING,
    PHASE_SUBMISSION,
    PHASE_VOTING,
    PHASE_RESULTS,
    PHASE_LEADERBOARD,
    PHASE_GAME_OVER,
)


def generate_lobby_code(length=4):
    """Generate a unique, short lobby code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Lobby.query.filter_by(code=code).first():
            return code


class Lobby(db.Model):
    __tablename__ = 'lobby'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(4), unique=True, index=True, nullable=False)
    host_uid = db.Column(db.String(64), nullable=False)
    competitive = db.Column(db.Boolean, default=False, nullable=False)
    total_rounds = db.Column(db.Integer, nullable=False, default=8)
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    updated_at = db.Column(db.Float, nullable=False, default=time.time)
    started_at = db.Column(db.Float, nullable=True)
    finished_at = db.Column(db.Float, nullable=True)
    # Set exactly once, when match ratings have been applied
    rated_at = db.Column(db.Float, nullable=True)
    players = db.relationship('Player', back_populates='lobby', cascade='all, delete-orphan', order_by='Player.uid')
    game_state = db.relationship('GameState', back_populates='lobby', uselist=False, cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        super(Lobby, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_lobby_code()

    def roster(self):
        """Authoritative set of participating player uids."""
        return [p.uid for p in self.players]

    def last_activity(self):
        times = [p.last_seen or p.joined_at or 0 for p in self.players]
        return max(times) if times else self.created_at

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'host_uid': self.host_uid,
            'competitive': self.competitive,
            'total_rounds': self.total_rounds,
            'created_at': self.created_at,
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'players': [p.to_dict() for p in self.players],
            'game_state': self.game_state.to_dict() if self.game_state else None,
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('lobby_id', 'uid', name='uq_player_lobby_uid'),)
    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    lobby_id = db.Column(db.Integer, db.ForeignKey('lobby.id'), nullable=False)
    is_ai = db.Column(db.Boolean, default=False, nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    joined_at = db.Column(db.Float, nullable=False, default=time.time)
    last_seen = db.Column(db.Float, nullable=True)
    lobby = db.relationship('Lobby', back_populates='players')

    def to_dict(self):
        return {
            'uid': self.uid,
            'name': self.name,
            'is_ai': self.is_ai,
            'score': self.score,
        }


class GameState(db.Model):
    """The shared round record for one lobby.

    Only the guarded operations in ``services.games.progression`` and
    ``services.games.scoring`` write to it.
    """
    __tablename__ = 'game_state'
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.Integer, db.ForeignKey('lobby.id'), unique=True, nullable=False)
    phase = db.Column(db.String(32), nullable=False, default=PHASE_WAITING)
    round_number = db.Column(db.Integer, nullable=False, default=1)
    scored_round = db.Column(db.Integer, nullable=False, default=0)
    time_left = db.Column(db.Integer, nullable=True)
    phase_start_time = db.Column(db.Float, nullable=True)
    winner = db.Column(db.String(64), nullable=True)
    round_results = db.Column(db.Text, nullable=True)  # JSON {round_number, ranking}
    lobby = db.relationship('Lobby', back_populates='game_state')

    def results(self):
        return json.loads(self.round_results) if self.round_results else None

    def submissions(self):
        return Submission.query.filter_by(lobby_id=self.lobby_id, round_number=self.round_number).all()

    def votes(self):
        return Vote.query.filter_by(lobby_id=self.lobby_id, round_number=self.round_number).all()

    def abstentions(self):
        return Abstention.query.filter_by(lobby_id=self.lobby_id, round_number=self.round_number).all()

    def to_dict(self):
        return {
            'phase': self.phase,
            'round_number': self.round_number,
            'scored_round': self.scored_round,
            'time_left': self.time_left,
            'phase_start_time': self.phase_start_time,
            'submissions': {s.player_uid: s.to_dict() for s in self.submissions()},
            'votes': {v.voter_uid: v.target_uid for v in self.votes()},
            'abstentions': sorted(a.player_uid for a in self.abstentions()),
            'winner': self.winner,
            'round_results': self.results(),
        }


class Submission(db.Model):
    __tablename__ = 'submission'
    __table_args__ = (db.UniqueConstraint('lobby_id', 'round_number', 'player_uid', name='uq_submission_round_player'),)
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.Integer, db.ForeignKey('lobby.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    player_uid = db.Column(db.String(64), nullable=False)
    card_id = db.Column(db.String(128), nullable=False)
    card_name = db.Column(db.String(256), nullable=True)
    submitted_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return {
            'card_id': self.card_id,
            'card_name': self.card_name,
            'submitted_at': self.submitted_at,
        }


class Vote(db.Model):
    __tablename__ = 'vote'
    __table_args__ = (db.UniqueConstraint('lobby_id', 'round_number', 'voter_uid', name='uq_vote_round_voter'),)
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.Integer, db.ForeignKey('lobby.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    voter_uid = db.Column(db.String(64), nullable=False)
    target_uid = db.Column(db.String(64), nullable=False)


class Abstention(db.Model):
    __tablename__ = 'abstention'
    __table_args__ = (db.UniqueConstraint('lobby_id', 'round_number', 'player_uid', name='uq_abstention_round_player'),)
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.Integer, db.ForeignKey('lobby.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    player_uid = db.Column(db.String(64), nullable=False)


class PlayerRating(db.Model):
    __tablename__ = 'player_rating'
    uid = db.Column(db.String(64), primary_key=True)
    skill_rating = db.Column(db.Integer, nullable=False, default=1200)
    highest_rating = db.Column(db.Integer, nullable=False, default=1200)
    games_played = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    current_streak = db.Column(db.Integer, nullable=False, default=0)
    longest_win_streak = db.Column(db.Integer, nullable=False, default=0)
    average_position = db.Column(db.Float, nullable=False, default=0.0)
    last_played = db.Column(db.Float, nullable=True)
    achievements = db.Column(db.Text, nullable=True)  # JSON [{id, name, description, rarity, unlocked_at}]

    @property
    def win_rate(self):
        if not self.games_played:
            return 0.0
        return self.wins / self.games_played * 100

    def unlocked_achievements(self):
        return json.loads(self.achievements) if self.achievements else []

    def unlock(self, achievements, now):
        """Record newly unlocked achievements; an id is only ever stored once."""
        unlocked = self.unlocked_achievements()
        known = {a['id'] for a in unlocked}
        added = []
        for achievement in achievements:
            if achievement.id in known:
                continue
            entry = achievement.to_dict()
            entry['unlocked_at'] = now
            unlocked.append(entry)
            known.add(achievement.id)
            added.append(entry)
        self.achievements = json.dumps(unlocked)
        return added

    def to_dict(self):
        return {
            'uid': self.uid,
            'skill_rating': self.skill_rating,
            'highest_rating': self.highest_rating,
            'games_played': self.games_played,
            'wins': self.wins,
            'losses': self.losses,
            'win_rate': self.win_rate,
            'current_streak': self.current_streak,
            'longest_win_streak': self.longest_win_streak,
            'average_position': self.average_position,
            'last_played': self.last_played,
            'achievements': self.unlocked_achievements(),
        }


class MatchResult(db.Model):
    __tablename__ = 'match_result'
    __table_args__ = (db.UniqueConstraint('lobby_code', 'started_at', 'player_uid', name='uq_match_result_player'),)
    id = db.Column(db.Integer, primary_key=True)
    # Lobbies are swept after a match, so history keeps the code rather than a foreign key
    lobby_code = db.Column(db.String(4), nullable=False, index=True)
    started_at = db.Column(db.Float, nullable=False)
    player_uid = db.Column(db.String(64), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    total_players = db.Column(db.Integer, nullable=False)
    duration = db.Column(db.Float, nullable=False, default=0.0)
    rating_before = db.Column(db.Integer, nullable=False)
    rating_after = db.Column(db.Integer, nullable=False)
    rating_change = db.Column(db.Integer, nullable=False)
    completed_at = db.Column(db.Float, nullable=False, default=time.time)
    achievements = db.Column(db.Text, nullable=True)  # JSON ids unlocked by this match

    def to_dict(self):
        return {
            'lobby_code': self.lobby_code,
            'player_uid': self.player_uid,
            'position': self.position,
            'total_players': self.total_players,
            'duration': self.duration,
            'rating_before': self.rating_before,
            'rating_after': self.rating_after,
            'rating_change': self.rating_change,
            'completed_at': self.completed_at,
            'achievements': json.loads(self.achievements) if self.achievements else [],
        }
