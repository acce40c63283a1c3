"""
Debouncer: coalesce bursts of calls into one call per quiet period.

schedule() returns a Future for every caller. A call that is superseded before its
timer fires resolves to SUPERSEDED immediately; the surviving call resolves to the
wrapped function's return value (or raises its exception).
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional, Tuple

log = logging.getLogger("debounce")


class _Superseded:
    def __repr__(self) -> str:
        return "SUPERSEDED"

    def __bool__(self) -> bool:
        return False


SUPERSEDED = _Superseded()


class Debouncer:
    def __init__(self, fn: Callable[..., Any], delay_s: float = 0.3):
        self._fn = fn
        self._delay_s = delay_s
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Tuple[Future, tuple, dict]] = None
        self._generation = 0

    def schedule(self, *args, **kwargs) -> Future:
        fut: Future = Future()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            previous = self._pending
            self._generation += 1
            self._pending = (fut, args, kwargs)
            self._timer = threading.Timer(self._delay_s, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()
        if previous is not None:
            _settle(previous[0], SUPERSEDED)
        return fut

    def cancel(self) -> None:
        """Drop the pending call (if any), resolving it as superseded."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            previous, self._pending, self._timer = self._pending, None, None
            self._generation += 1
        if previous is not None:
            _settle(previous[0], SUPERSEDED)

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending is None:
                return
            fut, args, kwargs = self._pending
            self._pending = None
            self._timer = None
        if not fut.set_running_or_notify_cancel():
            return
        try:
            fut.set_result(self._fn(*args, **kwargs))
        except Exception as e:
            log.debug("Debounced call failed: %s", e)
            fut.set_exception(e)


def _settle(fut: Future, value: Any) -> None:
    if fut.set_running_or_notify_cancel():
        fut.set_result(value)
