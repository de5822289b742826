import time
from typing import Set, Tuple

from brizglass import socketio
from brizglass.models import Game, RESULTS_AUTHOR, RESULTS_TRUTH


_scheduled_reveal_keys: Set[Tuple[int, str, int, int]] = set()


def reveal_durations(config) -> dict:
    """Reveal windows clients count down before calling auto-advance."""
    return {
        RESULTS_AUTHOR: int(config.get('RESULTS_AUTHOR_DURATION_SEC', 20)),
        RESULTS_TRUTH: int(config.get('RESULTS_TRUTH_DURATION_SEC', 20)),
        'final_countdown': int(config.get('FINAL_COUNTDOWN_SEC', 5)),
    }


def schedule_auto_advance(app, game_id: int) -> None:
    """Fire auto-advance for the game's current results phase after its window.

    - No-ops unless SERVER_AUTO_ADVANCE is set; clients own the timers otherwise
    - No-ops in TESTING mode
    - Ensures a single timer per (game_id, status, current_round, truth_round)
    """
    if not app.config.get('SERVER_AUTO_ADVANCE'):
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    # Called right after a commit, inside the request's app context
    game = Game.query.filter_by(id=game_id).first()
    if not game or game.status not in (RESULTS_AUTHOR, RESULTS_TRUTH):
        return
    key = (game.id, game.status, int(game.current_round or 0), int(game.truth_round or 0))
    duration = reveal_durations(app.config)[game.status]

    if key in _scheduled_reveal_keys:
        app.logger.info(f"[timer-skip] game={game_id} status={key[1]} already scheduled")
        return
    _scheduled_reveal_keys.add(key)
    app.logger.info(f"[timer-set] game={game_id} status={key[1]} duration={duration}s")

    def _worker(timer_key, delay):
        time.sleep(delay)
        with app.app_context():
            fire(app, timer_key)

    socketio.start_background_task(_worker, key, duration)


def fire(app, timer_key) -> bool:
    """Run the auto-advance a timer was set for. Needs an app context."""
    from .controller import auto_advance

    _scheduled_reveal_keys.discard(timer_key)
    game_id, status, current_round, truth_round = timer_key
    game = Game.query.filter_by(id=game_id).first()
    if not game:
        return False
    shown_round = current_round if status == RESULTS_AUTHOR else truth_round
    advanced = auto_advance(game, expected_status=status, expected_round=shown_round)
    app.logger.info(f"[timer-fire] game={game_id} status={status} round={shown_round} advanced={advanced}")
    return advanced
