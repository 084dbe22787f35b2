"""
Cancellable one-shot delayed tasks.

``TimerScheduler.schedule(delay_s, fn)`` returns a ``ScheduledTask`` handle.
Cancelling the handle before it fires guarantees ``fn`` never runs; a
handle fires at most once.
"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for one pending delayed call."""

    PENDING = "pending"
    CANCELLED = "cancelled"
    FIRED = "fired"

    def __init__(self, fn: Callable[[], None], delay_s: float,
                 on_cancel: Callable[["ScheduledTask"], None] = None):
        self._fn = fn
        self.delay_s = delay_s
        self._on_cancel = on_cancel
        self._state = self.PENDING
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def pending(self) -> bool:
        return self._state == self.PENDING

    def cancel(self) -> bool:
        """Invalidate the task. Returns True if it had not fired yet."""
        with self._lock:
            if self._state != self.PENDING:
                return False
            self._state = self.CANCELLED
        if self._on_cancel is not None:
            self._on_cancel(self)
        return True

    def fire(self):
        """Run the task unless it was cancelled or already fired."""
        with self._lock:
            if self._state != self.PENDING:
                return
            self._state = self.FIRED
        try:
            self._fn()
        except Exception:
            logger.exception("Scheduled task failed")


class TimerScheduler:
    """Runs tasks on daemon ``threading.Timer`` threads."""

    def __init__(self):
        self._timers = {}
        self._lock = threading.Lock()

    def schedule(self, delay_s: float, fn: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(fn, delay_s, on_cancel=self._stop_timer)
        timer = threading.Timer(delay_s, self._run, args=(task,))
        timer.daemon = True
        with self._lock:
            self._timers[id(task)] = timer
        timer.start()
        return task

    def _stop_timer(self, task: ScheduledTask):
        with self._lock:
            timer = self._timers.pop(id(task), None)
        if timer is not None:
            timer.cancel()

    def _run(self, task: ScheduledTask):
        with self._lock:
            self._timers.pop(id(task), None)
        task.fire()

    def cancel_all(self):
        """Stop every timer that has not fired (shutdown)."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
