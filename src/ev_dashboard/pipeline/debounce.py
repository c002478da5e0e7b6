from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from ev_dashboard.filters import FilterConfig

LOGGER = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")
TimerFactory = Callable[..., Any]


class Debouncer(Generic[ResultT]):
    """Run ``compute`` for the most recent filter change once changes go quiet.

    Every ``submit`` cancels the pending timer and bumps a generation counter.
    A computation only delivers its result if no newer submission arrived
    while it ran. Results are handed to ``on_result`` outside the state lock,
    so the callback may wait on threads that call ``submit``; deliveries are
    still serialized with one another.
    """

    def __init__(
        self,
        compute: Callable[[FilterConfig], ResultT],
        on_result: Callable[[ResultT], None],
        *,
        delay_seconds: float = 0.3,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._compute = compute
        self._on_result = on_result
        self.delay_seconds = max(0.0, float(delay_seconds))
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._delivery_lock = threading.RLock()
        self._generation = 0
        self._pending: FilterConfig | None = None
        self._timer: Any = None
        self.executions = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def submit(self, filters: FilterConfig) -> None:
        with self._lock:
            self._generation += 1
            self._cancel_timer()
            self._pending = filters
            timer = self._timer_factory(self.delay_seconds, self._fire, args=(self._generation,))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
            timer.start()

    def flush(self) -> bool:
        """Run the pending computation now instead of waiting for the timer."""
        with self._lock:
            if self._pending is None:
                return False
            self._cancel_timer()
            generation = self._generation
        return self._fire(generation)

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            self._cancel_timer()
            self._pending = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int) -> bool:
        with self._lock:
            if generation != self._generation or self._pending is None:
                return False
            filters = self._pending
            self._pending = None
            self._timer = None
            self.executions += 1

        result = self._compute(filters)

        with self._delivery_lock:
            with self._lock:
                superseded = generation != self._generation
            if superseded:
                LOGGER.debug("Dropping superseded aggregation result (generation %d)", generation)
                return False
            self._on_result(result)
            return True
