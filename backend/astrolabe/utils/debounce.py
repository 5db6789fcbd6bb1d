"""Timer-based debouncing."""

from __future__ import annotations

import threading
from typing import Any, Callable

TimerFactory = Callable[[float, Callable[[], None]], Any]


def default_timer_factory(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class Debouncer:
    """Run ``callback`` once the calls stop for ``delay`` seconds.

    Each ``trigger`` cancels the pending timer and starts a new one with the
    latest arguments, so the final call of a burst is always delivered.
    Timers come from ``timer_factory`` (``threading.Timer`` by default); the
    object only needs ``start()`` and ``cancel()``.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[..., Any],
        timer_factory: TimerFactory = default_timer_factory,
    ) -> None:
        self.delay = delay
        self.callback = callback
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Any = None
        self._args: tuple[Any, ...] | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._args is not None

    def trigger(self, *args: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._args = args
            self._timer = self._timer_factory(self.delay, lambda: self._fire(generation))
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._args = None
            self._generation += 1

    def flush(self) -> bool:
        """Deliver the pending call now. Returns False when nothing was pending."""
        with self._lock:
            args = self._take()
        if args is None:
            return False
        self.callback(*args)
        return True

    def _take(self) -> tuple[Any, ...] | None:
        args = self._args
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._args = None
        self._generation += 1
        return args

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            args = self._take()
        if args is not None:
            self.callback(*args)


__all__ = ["Debouncer", "TimerFactory", "default_timer_factory"]
