from flask import Blueprint, jsonify, request, current_app
from memebattle import db
from memebattle.exceptions import GameError
from memebattle.models import Lobby, Player, GameState, PHASE_GAME_OVER, PHASE_WAITING
from memebattle.services.games import actions
from memebattle.services.games.match_ratings import match_summary, rating_summary
from memebattle.services.games.progression import (
    force_advance,
    load_round,
    notify,
    phase_durations,
    start_match,
)
from memebattle.services.games.skill_rating import InvalidRatingInput, estimate_rating_change


lobbies = Blueprint('lobbies', __name__)


@lobbies.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify({'error': exc.message}), exc.status_code


@lobbies.errorhandler(InvalidRatingInput)
def handle_invalid_rating_input(exc):
    return jsonify({'error': str(exc)}), 400


def _get_lobby(code: str) -> Lobby:
    return Lobby.query.filter_by(code=code.upper()).first_or_404()


@lobbies.route('/create', methods=['POST'])
def create_lobby():
    data = request.get_json(silent=True) or {}
    host_uid = data.get('host_uid')
    name = data.get('name')
    if not all([host_uid, name]):
        return jsonify({'error': 'Host uid and name are required'}), 400
    rounds = data.get('rounds')
    try:
        rounds = int(rounds) if rounds is not None else None
    except (TypeError, ValueError):
        rounds = None
    if rounds is None or not 1 <= rounds <= 20:
        rounds = int(current_app.config.get('DEFAULT_TOTAL_ROUNDS', 8))

    lobby = Lobby(host_uid=host_uid, total_rounds=rounds, competitive=bool(data.get('competitive')))
    lobby.game_state = GameState()
    lobby.players.append(Player(uid=host_uid, name=name))
    db.session.add(lobby)
    db.session.commit()
    return jsonify({
        'message': 'New lobby created!',
        'code': lobby.code
    }), 201


@lobbies.route('/join', methods=['POST'])
def join_lobby():
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    uid = data.get('uid')
    name = data.get('name')
    if not all([code, uid, name]):
        return jsonify({'error': 'Lobby code, uid and name are required'}), 400

    lobby = Lobby.query.filter_by(code=code.upper()).first()
    if not lobby:
        return jsonify({'error': 'Lobby not found'}), 404
    if lobby.game_state and lobby.game_state.phase != PHASE_WAITING:
        return jsonify({'error': 'This lobby is not accepting players'}), 403
    if Player.query.filter_by(lobby_id=lobby.id, uid=uid).first():
        return jsonify({'error': 'You are already in this lobby'}), 400

    player = Player(uid=uid, name=name, lobby_id=lobby.id, is_ai=bool(data.get('is_ai')))
    db.session.add(player)
    db.session.commit()
    notify(lobby.code)
    return jsonify(player.to_dict()), 201


@lobbies.route('/<string:code>/state', methods=['GET'])
def get_lobby_state(code):
    lobby = _get_lobby(code)
    payload = lobby.to_dict()
    payload['durations'] = phase_durations(current_app)
    return jsonify(payload)


@lobbies.route('/<string:code>/start', methods=['POST'])
def start_lobby(code):
    data = request.get_json(silent=True) or {}
    lobby = _get_lobby(code)
    if data.get('host_uid') != lobby.host_uid:
        return jsonify({'error': 'Only the host may start the match'}), 403

    _lobby, state = load_round(lobby.id)
    if state is not None and state.phase != PHASE_WAITING:
        # Idempotent start: already started
        return jsonify(lobby.to_dict())

    min_players = int(current_app.config.get('MIN_PLAYERS', 3))
    if len(lobby.players) < min_players:
        return jsonify({'error': f'At least {min_players} players are required to start'}), 400

    start_match(lobby)
    lobby, _state = load_round(lobby.id)
    return jsonify(lobby.to_dict())


@lobbies.route('/<string:code>/submissions', methods=['POST'])
def submit_card(code):
    data = request.get_json(silent=True) or {}
    lobby = _get_lobby(code)
    actions.record_submission(lobby, data.get('player_uid'), data.get('card_id'), data.get('card_name'))
    notify(lobby.code)
    return jsonify({'message': 'Card submitted'}), 201


@lobbies.route('/<string:code>/votes', methods=['POST'])
def submit_vote(code):
    data = request.get_json(silent=True) or {}
    lobby = _get_lobby(code)
    actions.record_vote(lobby, data.get('voter_uid'), data.get('target_uid'))
    notify(lobby.code)
    return jsonify({'message': 'Vote submitted'}), 201


@lobbies.route('/<string:code>/abstentions', methods=['POST'])
def abstain(code):
    data = request.get_json(silent=True) or {}
    lobby = _get_lobby(code)
    actions.record_abstention(lobby, data.get('player_uid'))
    notify(lobby.code)
    return jsonify({'message': 'Abstention recorded'}), 201


@lobbies.route('/<string:code>/advance', methods=['POST'])
def advance(code):
    """Host intervention: push a stalled phase forward."""
    data = request.get_json(silent=True) or {}
    lobby = _get_lobby(code)
    if data.get('host_uid') != lobby.host_uid:
        return jsonify({'error': 'Only the host may advance'}), 403

    _lobby, state = load_round(lobby.id)
    if state is None or state.phase == PHASE_WAITING:
        return jsonify({'error': 'Match has not started'}), 400
    if state.phase == PHASE_GAME_OVER:
        return jsonify(lobby.to_dict())

    force_advance(lobby.id, state.phase, state.round_number)
    lobby, _state = load_round(lobby.id)
    return jsonify(lobby.to_dict())


@lobbies.route('/<string:code>/summary', methods=['GET'])
def get_match_summary(code):
    lobby = _get_lobby(code)
    return jsonify({
        'code': lobby.code,
        'competitive': lobby.competitive,
        'rated': lobby.rated_at is not None,
        'ranking': (lobby.game_state.results() or {}).get('ranking', []) if lobby.game_state else [],
        'players': match_summary(lobby),
    })


@lobbies.route('/ratings/<string:uid>', methods=['GET'])
def get_rating(uid):
    return jsonify(rating_summary(uid))


@lobbies.route('/ratings/preview', methods=['POST'])
def preview_rating():
    data = request.get_json(silent=True) or {}
    try:
        current_rating = int(data['current_rating'])
        opponents = [float(r) for r in data.get('opponent_ratings') or []]
        position = int(data['estimated_position'])
        total = int(data['total_players'])
        games_played = int(data.get('games_played', 0))
    except (KeyError, TypeError, ValueError):
        return jsonify({'error': 'current_rating, opponent_ratings, estimated_position and total_players are required'}), 400
    return jsonify(estimate_rating_change(current_rating, opponents, position, total, games_played))
