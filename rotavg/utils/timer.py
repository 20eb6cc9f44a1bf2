"""
Wall-clock timer for solver diagnostics
"""

import time


class Timer:
    """Accumulating timer with start/pause semantics"""

    def __init__(self):
        self._elapsed = 0.0
        self._start = None

    def start(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def pause(self) -> None:
        if self._start is not None:
            self._elapsed += time.perf_counter() - self._start
            self._start = None

    def reset(self) -> None:
        self._elapsed = 0.0
        self._start = None

    def elapsed_seconds(self) -> float:
        running = time.perf_counter() - self._start if self._start is not None else 0.0
        return self._elapsed + running

    def elapsed_ms(self) -> float:
        return self.elapsed_seconds() * 1e3
