from memebattle import db
from memebattle.models import GameState, Lobby, Player, Submission
from memebattle.services.games.sweeper import sweep_lobbies

NOW = 1_000_000.0


def _lobby(code, created_at, players=()):
    lobby = Lobby(code=code, host_uid='host', created_at=created_at)
    lobby.game_state = GameState()
    for uid, last_seen in players:
        lobby.players.append(Player(uid=uid, name=uid, joined_at=created_at, last_seen=last_seen))
    db.session.add(lobby)
    db.session.commit()
    return lobby


def test_sweeper_removes_empty_and_abandoned_lobbies(flask_app):
    _lobby('EMPT', NOW - 600)
    _lobby('NEWE', NOW - 60)
    abandoned = _lobby('ABND', NOW - 7200, players=[('A', NOW - 3600), ('B', NOW - 1900)])
    db.session.add(Submission(lobby_id=abandoned.id, round_number=1, player_uid='A', card_id='c1'))
    db.session.commit()
    _lobby('LIVE', NOW - 7200, players=[('A', NOW - 3600), ('C', NOW - 30)])

    stats = sweep_lobbies(flask_app, now=NOW)

    assert stats == {'empty': 1, 'abandoned': 1, 'processed': 4}
    assert {lobby.code for lobby in Lobby.query.all()} == {'NEWE', 'LIVE'}
    assert Submission.query.count() == 0
    assert Player.query.count() == 2
    assert GameState.query.count() == 2


def test_sweeper_falls_back_to_join_time(flask_app):
    lobby = Lobby(code='JOIN', host_uid='host', created_at=NOW - 5000)
    lobby.players.append(Player(uid='A', name='A', joined_at=NOW - 100))
    db.session.add(lobby)
    db.session.commit()

    assert sweep_lobbies(flask_app, now=NOW)['abandoned'] == 0
    assert sweep_lobbies(flask_app, now=NOW + 2000)['abandoned'] == 1
