from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Union

LOGGER = logging.getLogger(__name__)

IntervalSource = Union[float, Callable[[], float]]


class TimerToken:
    """
    Handle returned by `RepeatingTimer.schedule`. Cancelling is the only way to stop ticking.
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.fired = 0
        self.skipped = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        # Safe to call any number of times, from any thread (including the callback).
        self._cancelled.set()

    def join(self, timeout: Optional[float] = None) -> None:
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class RepeatingTimer:
    """
    Fixed-rate repeating callback on a single background thread.

    The interval is read again before every wait, so changing it takes effect
    on the next tick. Ticks never overlap: a callback that overruns one or more
    deadlines makes the timer skip those ticks (counted in `token.skipped`)
    and realign on the original schedule.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, name: str = "repeating-timer"):
        self._clock = clock
        self._name = name

    def schedule(self, callback: Callable[[], None], interval: IntervalSource) -> TimerToken:
        provider = interval if callable(interval) else (lambda: float(interval))
        first = provider()
        if first <= 0:
            raise ValueError("interval must be > 0")

        token = TimerToken()
        thread = threading.Thread(
            target=self._run,
            args=(token, callback, provider),
            name=self._name,
            daemon=True,
        )
        token._thread = thread
        thread.start()
        return token

    def _run(self, token: TimerToken, callback: Callable[[], None], provider: Callable[[], float]) -> None:
        clock = self._clock
        next_due = clock() + provider()

        while not token.cancelled:
            delay = next_due - clock()
            if delay > 0 and token._cancelled.wait(delay):
                break
            if token.cancelled:
                break

            token.fired += 1
            try:
                callback()
            except Exception:
                LOGGER.exception("Timer callback raised; schedule continues")

            interval = max(provider(), 1e-3)
            now = clock()
            next_due += interval
            if next_due < now:
                missed = int((now - next_due) // interval) + 1
                token.skipped += missed
                next_due += missed * interval
                LOGGER.debug("Callback overran; skipped %d tick(s)", missed)
