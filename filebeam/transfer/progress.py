"""Progress and ETA bookkeeping shared by sender and receiver."""

import math
import time
from typing import Callable


class ProgressTracker:
    """Average-throughput progress calculator.

    progress = bytes_moved / total_size * 100
    eta      = ceil(remaining / (bytes_moved / elapsed)), None until measurable
    """

    def __init__(self, total_size: int, clock: Callable[[], float] = time.monotonic):
        self.total_size = total_size
        self.bytes_moved = 0
        self._clock = clock
        self._start: float | None = None

    def start(self) -> None:
        self._start = self._clock()

    def record(self, byte_count: int) -> None:
        self.bytes_moved += byte_count

    @property
    def elapsed(self) -> float:
        if self._start is None:
            return 0.0
        return self._clock() - self._start

    @property
    def progress(self) -> float:
        if self.total_size <= 0:
            return 100.0
        return min(self.bytes_moved / self.total_size * 100, 100.0)

    @property
    def eta_seconds(self) -> int | None:
        elapsed = self.elapsed
        if self.bytes_moved <= 0 or elapsed <= 0:
            return None
        bytes_per_second = self.bytes_moved / elapsed
        remaining = max(self.total_size - self.bytes_moved, 0)
        return math.ceil(remaining / bytes_per_second)
