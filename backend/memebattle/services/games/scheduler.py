import time
from typing import Set, Tuple

from memebattle import db
from memebattle.models import GameState, Lobby


_scheduled_phase_keys: Set[Tuple[int, str, int]] = set()

_TIMED_PHASES = {
    'submission': 'SUBMISSION_DURATION_SEC',
    'voting': 'VOTING_DURATION_SEC',
    'results': 'RESULTS_DURATION_SEC',
    'leaderboard': 'LEADERBOARD_DURATION_SEC',
}


def schedule_phase_timer(app, lobby_id: int) -> None:
    """Schedule the time-based fallback for the lobby's current phase.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (lobby_id, phase, round)
    - When the timer fires the phase is forced forward through the same
      guarded transitions players trigger, so a timer racing the last
      vote is harmless
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        state = GameState.query.filter_by(lobby_id=lobby_id).first()
        if not state or state.phase not in _TIMED_PHASES:
            return

        phase = state.phase
        round_idx = int(state.round_number or 0)
        key = (lobby_id, phase, round_idx)
        duration = int(app.config.get(_TIMED_PHASES[phase], 0))

        if key in _scheduled_phase_keys:
            app.logger.info(f"[timer-skip] lobby={lobby_id} phase={phase} round={round_idx} already scheduled")
            return
        _scheduled_phase_keys.add(key)
        app.logger.info(f"[timer-set] lobby={lobby_id} phase={phase} round={round_idx} duration={duration}s")

    def _worker(expected_phase: str, lid: int, expected_round: int, delay: int):
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
        if hb > 0:
            slept = 0
            while slept < delay:
                step = min(hb, delay - slept)
                time.sleep(step)
                slept += step
                app.logger.info(
                    f"[timer-heartbeat] lobby={lid} phase={expected_phase} round={expected_round} remaining={max(0, delay - slept)}s"
                )
        else:
            time.sleep(delay)
        with app.app_context():
            _scheduled_phase_keys.discard((lid, expected_phase, expected_round))
            expire_phase(app, lid, expected_phase, expected_round)

    if app.config.get('TESTING'):
        _worker(phase, lobby_id, round_idx, duration)
    else:
        from memebattle import socketio
        socketio.start_background_task(_worker, phase, lobby_id, round_idx, duration)


def expire_phase(app, lobby_id: int, expected_phase: str, expected_round: int) -> bool:
    """Timer body: force the phase forward if the round is still where the timer left it."""
    from .progression import force_advance

    lobby = db.session.get(Lobby, lobby_id)
    state = GameState.query.filter_by(lobby_id=lobby_id).populate_existing().first()
    if lobby is None or state is None:
        return False
    app.logger.info(
        f"[timer-fire] lobby={lobby_id} expected_phase={expected_phase} expected_round={expected_round} "
        f"actual_phase={state.phase} actual_round={state.round_number}"
    )
    if state.phase != expected_phase or state.round_number != expected_round:
        app.logger.info(f"[timer-abort] lobby={lobby_id} phase/round mismatch")
        return False
    try:
        return force_advance(lobby_id, expected_phase, expected_round)
    except Exception:
        db.session.rollback()
        app.logger.exception(f"[timer-error] lobby={lobby_id} phase={expected_phase} round={expected_round}")
        return False
