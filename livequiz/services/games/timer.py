import math
import threading
import time
from contextlib import nullcontext
from typing import Dict, Optional

from flask import current_app, has_app_context

from livequiz import repository, socketio
from livequiz.entities import QUESTION_LIVE, RESULTS, Game
from livequiz.errors import GameError
from .scoring import calculate_and_update_scores

QUESTION = 'question'
AUTO_ADVANCE = 'auto_advance'


def remaining(question_end_time: Optional[float], now: Optional[float] = None) -> int:
    """Whole seconds left until ``question_end_time``. Display only, never used for scoring."""
    if question_end_time is None:
        return 0
    now = time.time() if now is None else now
    return max(0, math.ceil(question_end_time - now))


class TimerHandle:
    """One running countdown (or pending auto-advance) for a game."""

    def __init__(self, game_id: str, kind: str, question_index: int, time_left: int):
        self.game_id = game_id
        self.kind = kind
        self.question_index = question_index
        self.time_left = time_left
        self.cancelled = False


class QuestionTimer:
    """Host-side countdown authority, at most one handle per game.

    The registry lives on this object, which ``create_app`` builds and stores
    in ``app.extensions['question_timer']``. Cancellation only sets a flag;
    a tick already in flight finishes before the loop notices it.
    """

    def __init__(self, app=None):
        self.app = None
        self._timers: Dict[str, TimerHandle] = {}
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.app = app
        app.extensions['question_timer'] = self

    # ---- registry ----

    def active(self, game_id: str) -> Optional[TimerHandle]:
        with self._lock:
            return self._timers.get(game_id)

    def _register(self, handle: TimerHandle) -> None:
        with self._lock:
            previous = self._timers.get(handle.game_id)
            if previous is not None:
                previous.cancelled = True
            self._timers[handle.game_id] = handle

    def cancel(self, game_id: str, handle: Optional[TimerHandle] = None) -> bool:
        """Stop the game's timer. Passing ``handle`` only cancels that handle,
        leaving a newer timer for the same game untouched."""
        with self._lock:
            current = self._timers.get(game_id)
            if handle is not None and current is not handle:
                handle.cancelled = True
                return False
            if current is None:
                return False
            del self._timers[game_id]
            current.cancelled = True
        self.app.logger.info(f"[timer-cancel] game={game_id} kind={current.kind} question={current.question_index}")
        return True

    def cancel_question(self, game_id: str, question_index: int) -> bool:
        """Stop the countdown of one question, leaving any other handle alone."""
        handle = self.active(game_id)
        if handle is None or handle.kind != QUESTION or handle.question_index != question_index:
            return False
        return self.cancel(game_id, handle)

    def cancel_all(self) -> None:
        with self._lock:
            handles = list(self._timers.values())
            self._timers.clear()
        for handle in handles:
            handle.cancelled = True
        if handles:
            self.app.logger.info(f"[timer-teardown] cancelled={len(handles)}")

    # ---- countdown ----

    def start(self, game_id: str, duration: int, question_index: int,
              changes: Optional[dict] = None, expect: Optional[dict] = None) -> Optional[Game]:
        """Stamp the question window and begin ticking.

        ``changes`` are written in the same update as the timer fields, guarded
        by ``expect``; returns None without starting when the guard fails.
        """
        duration = int(duration)
        now = time.time()
        partial = dict(changes or {})
        partial.update({
            'question_start_time': now,
            'question_end_time': now + duration,
            'time_left': duration,
            'last_timer_update': now,
        })
        game = repository.update_game(game_id, partial, expect=expect)
        if game is None:
            return None

        # Registering replaces, and cancels, whatever the game had before
        handle = TimerHandle(game_id, QUESTION, question_index, duration)
        self._register(handle)
        self.app.logger.info(
            f"[timer-set] game={game_id} question={question_index} duration={duration}s deadline={partial['question_end_time']}"
        )
        if self._background_enabled():
            socketio.start_background_task(self._run, handle)
        return game

    def tick(self, game_id: str, handle: Optional[TimerHandle] = None) -> Optional[int]:
        """Advance the countdown one step; returns the new time left, or None
        when the timer stopped without expiring.

        A loop passes its own ``handle`` and only ticks while that handle is
        still the game's active one.
        """
        current = self.active(game_id)
        if handle is None:
            handle = current
        elif current is not handle:
            return None
        if handle is None or handle.kind != QUESTION or handle.cancelled:
            return None
        guard = {'phase': QUESTION_LIVE, 'current_question_index': handle.question_index}
        with self._context():
            try:
                game = repository.get_game(game_id)
                if game.phase != QUESTION_LIVE or game.current_question_index != handle.question_index:
                    self.app.logger.info(
                        f"[timer-abort] game={game_id} expected_question={handle.question_index} "
                        f"actual_phase={game.phase} actual_question={game.current_question_index}"
                    )
                    self.cancel(game_id, handle)
                    return None
                time_left = max(0, handle.time_left - 1)
                updated = repository.update_game(
                    game_id, {'time_left': time_left, 'last_timer_update': time.time()}, expect=guard
                )
                if updated is None:
                    self.app.logger.info(f"[timer-abort] game={game_id} phase moved during tick")
                    self.cancel(game_id, handle)
                    return None
                handle.time_left = time_left
            except GameError as exc:
                self.app.logger.warning(f"[timer-error] game={game_id} {exc.message}; stopping timer")
                self.cancel(game_id, handle)
                return None

            if time_left > 0:
                return time_left
            self.cancel(game_id, handle)
            self._expire(game_id, handle.question_index)
            return 0

    def _expire(self, game_id: str, question_index: int) -> None:
        from .controller import close_question

        self.app.logger.info(f"[timer-fire] game={game_id} question={question_index}")
        try:
            calculate_and_update_scores(game_id, question_index)
            close_question(game_id, question_index)
        except GameError as exc:
            # Stalled until the host forces results
            self.app.logger.error(f"[timer-expire-failed] game={game_id} question={question_index} {exc.message}")

    def _run(self, handle: TimerHandle) -> None:
        period = float(self.app.config.get('TIMER_TICK_SEC', 1))
        while not handle.cancelled:
            socketio.sleep(period)
            if handle.cancelled:
                return
            try:
                self.tick(handle.game_id, handle)
            except Exception:
                self.app.logger.exception(f"[timer-crash] game={handle.game_id}")
                self.cancel(handle.game_id, handle)
                return

    # ---- auto-progress ----

    def schedule_advance(self, game_id: str, question_index: int) -> TimerHandle:
        delay = int(self.app.config.get('RESULTS_DURATION_SEC', 6))
        handle = TimerHandle(game_id, AUTO_ADVANCE, question_index, delay)
        self._register(handle)
        self.app.logger.info(f"[auto-advance-set] game={game_id} question={question_index} delay={delay}s")
        if self._background_enabled():
            socketio.start_background_task(self._run_auto_advance, handle)
        return handle

    def fire_auto_advance(self, game_id: str) -> Optional[Game]:
        handle = self.active(game_id)
        if handle is None or handle.kind != AUTO_ADVANCE or handle.cancelled:
            return None
        self.cancel(game_id, handle)
        from .controller import advance

        with self._context():
            try:
                game = repository.get_game(game_id)
                if game.phase != RESULTS or game.current_question_index != handle.question_index:
                    self.app.logger.info(f"[auto-advance-abort] game={game_id} phase={game.phase}")
                    return None
                return advance(game_id, from_index=handle.question_index)
            except GameError as exc:
                self.app.logger.warning(f"[auto-advance-failed] game={game_id} {exc.message}")
                return None

    def _run_auto_advance(self, handle: TimerHandle) -> None:
        socketio.sleep(handle.time_left)
        if handle.cancelled:
            return
        try:
            self.fire_auto_advance(handle.game_id)
        except Exception:
            self.app.logger.exception(f"[auto-advance-crash] game={handle.game_id}")

    def _background_enabled(self) -> bool:
        if self.app.config.get('TESTING') and not self.app.config.get('ENABLE_TIMER_IN_TESTS'):
            return False
        return True

    def _context(self):
        return nullcontext() if has_app_context() else self.app.app_context()


def get_question_timer() -> QuestionTimer:
    return current_app.extensions['question_timer']
