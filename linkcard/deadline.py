"""Time budget tracking for the resolution pipeline."""

import threading
import time
from typing import Callable, List

TOTAL_TIMEOUT_MS = 5000  # Hard limit for one resolution


class Deadline:
    """
    Elapsed-time tracker against a fixed budget.

    Expiry is checked between steps. A tier that overruns its budget is
    abandoned with cancel(), which marks the deadline expired and runs the
    registered abort callbacks (closing in-flight sockets).
    """

    def __init__(self, budget_ms: float, clock: Callable[[], float] = time.monotonic):
        self.budget_ms = budget_ms
        self._clock = clock
        self._started = clock()
        self._cancelled = False
        self._on_cancel: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def elapsed_ms(self) -> float:
        return (self._clock() - self._started) * 1000

    def remaining_ms(self) -> float:
        if self._cancelled:
            return 0.0
        return max(0.0, self.budget_ms - self.elapsed_ms())

    def remaining_seconds(self) -> float:
        return self.remaining_ms() / 1000

    def expired(self) -> bool:
        return self._cancelled or self.elapsed_ms() >= self.budget_ms

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register an abort callback; runs at once if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._on_cancel.append(callback)
                return
        callback()

    def cancel(self) -> None:
        """Expire now and run every abort callback once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._on_cancel = self._on_cancel, []
        for callback in callbacks:
            callback()

    def __repr__(self):
        return f'Deadline(budget_ms={self.budget_ms}, elapsed_ms={self.elapsed_ms():.0f})'
