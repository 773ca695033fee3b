from flask import Blueprint, jsonify
from memebattle.services.games.achievements import all_achievements
from memebattle.services.games.skill_rating import all_ranking_tiers, rating_bounds, default_rating

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Meme Battles game server!'})

@main.route('/api/tiers')
def tiers():
    return jsonify({
        'tiers': [t.to_dict() for t in all_ranking_tiers()],
        'bounds': rating_bounds(),
        'default_rating': default_rating(),
    })

@main.route('/api/achievements')
def achievements():
    return jsonify({'achievements': [a.to_dict() for a in all_achievements()]})
