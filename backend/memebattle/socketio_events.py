from flask_socketio import join_room, leave_room, emit
from memebattle import socketio, db
from memebattle.models import Lobby, Player
import time


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def _touch_player(game_code: str, player_uid) -> None:
    # Presence feeds the sweeper's abandoned-lobby check
    if not player_uid:
        return
    lobby = Lobby.query.filter_by(code=game_code).first()
    if not lobby:
        return
    player = Player.query.filter_by(lobby_id=lobby.id, uid=str(player_uid)).first()
    if player:
        player.last_seen = time.time()
        db.session.add(player)
        db.session.commit()


def handle_join_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = f"game:{game_code.upper()}"
    join_room(room)
    _touch_player(game_code.upper(), (data or {}).get('player_uid'))
    emit('joined', {'room': room})


def handle_leave_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = f"game:{game_code.upper()}"
    leave_room(room)
    emit('left', {'room': room})


def handle_heartbeat(data):
    game_code = (data or {}).get('game_code')
    if game_code:
        _touch_player(game_code.upper(), (data or {}).get('player_uid'))


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('heartbeat', handle_heartbeat, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
