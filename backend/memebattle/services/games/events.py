"""Per-write event dispatch for the round pipeline.

Every committed player write (and every won phase transition) is announced
as an event. Handlers run independently of one another and of the writer:
as Socket.IO background tasks at runtime, inline under TESTING. Delivery is
at-least-once from the handlers' point of view, so each handler re-reads
the round record and acts only through guarded updates.
"""

from collections import defaultdict
from typing import Callable, Dict, List

from flask import has_app_context

from memebattle import db, socketio


SUBMISSION_CREATED = 'submission_created'
VOTE_CREATED = 'vote_created'
ABSTENTION_CREATED = 'abstention_created'
PHASE_CHANGED = 'phase_changed'

_handlers: Dict[str, List[Callable]] = defaultdict(list)


def on(*event_names: str):
    """Register the decorated function as a handler for the given events."""
    def decorator(fn):
        for name in event_names:
            if fn not in _handlers[name]:
                _handlers[name].append(fn)
        return fn
    return decorator


def handlers_for(event_name: str) -> List[Callable]:
    return list(_handlers.get(event_name, ()))


def dispatch(app, event_name: str, lobby_id: int, **payload) -> None:
    for handler in handlers_for(event_name):
        if app.config.get('TESTING'):
            _run(app, handler, event_name, lobby_id, payload)
        else:
            socketio.start_background_task(_run, app, handler, event_name, lobby_id, payload)


def _run(app, handler, event_name, lobby_id, payload):
    if has_app_context():
        _invoke(app, handler, event_name, lobby_id, payload)
    else:
        with app.app_context():
            _invoke(app, handler, event_name, lobby_id, payload)


def _invoke(app, handler, event_name, lobby_id, payload):
    # A failing handler must not wedge the round: log, roll back, move on.
    # The next trigger or the phase timer will redo the work.
    try:
        handler(lobby_id, **payload)
    except Exception:
        db.session.rollback()
        app.logger.exception(
            f"[handler-error] event={event_name} handler={handler.__name__} lobby={lobby_id}"
        )
