import time
from typing import Dict, Optional

from memebattle import db
from memebattle.models import Abstention, Lobby, Submission, Vote


def _delete_lobby(lobby: Lobby) -> None:
    for model in (Submission, Vote, Abstention):
        model.query.filter_by(lobby_id=lobby.id).delete(synchronize_session=False)
    # Players and the round record go with the lobby via the relationship cascade
    db.session.delete(lobby)


def sweep_lobbies(app, now: Optional[float] = None) -> Dict[str, int]:
    """Delete empty and abandoned lobbies.

    Best effort: a lobby swept moments before a late reconnect is lost.
    """
    now = time.time() if now is None else now
    empty_timeout = int(app.config.get('EMPTY_LOBBY_TIMEOUT_SEC', 300))
    abandoned_timeout = int(app.config.get('ABANDONED_LOBBY_TIMEOUT_SEC', 1800))

    stats = {'empty': 0, 'abandoned': 0, 'processed': 0}
    for lobby in Lobby.query.all():
        stats['processed'] += 1
        if not lobby.players:
            if now - (lobby.created_at or now) > empty_timeout:
                app.logger.info(f"[sweep] removing empty lobby {lobby.code}")
                _delete_lobby(lobby)
                stats['empty'] += 1
        elif now - lobby.last_activity() > abandoned_timeout:
            app.logger.info(f"[sweep] removing abandoned lobby {lobby.code}")
            _delete_lobby(lobby)
            stats['abandoned'] += 1

    if stats['empty'] or stats['abandoned']:
        db.session.commit()
        app.logger.info(
            f"[sweep] completed: {stats['empty']} empty, {stats['abandoned']} abandoned of {stats['processed']}"
        )
    else:
        app.logger.info(f"[sweep] no lobbies needed cleanup ({stats['processed']} checked)")
    return stats


def start_sweeper(app) -> None:
    """Run ``sweep_lobbies`` every SWEEP_INTERVAL_SEC in a background task."""
    if app.config.get('TESTING'):
        return
    interval = int(app.config.get('SWEEP_INTERVAL_SEC', 300))
    if interval <= 0:
        return

    def _loop():
        while True:
            time.sleep(interval)
            with app.app_context():
                try:
                    sweep_lobbies(app)
                except Exception:
                    db.session.rollback()
                    app.logger.exception("[sweep] lobby cleanup failed")

    from memebattle import socketio
    socketio.start_background_task(_loop)
