"""Per-job cancellation token and deadline, threaded through every collaborator call of a run."""
import threading
import time
from typing import Callable, Optional

from pitchdeck.core.errors import JobCancelledError, JobTimeoutError


class JobContext:
    """Bounds one job run: `max_duration` seconds from creation, plus an explicit cancel flag.

    The worker calls `check()` before each step and passes `timeout(cap)` to
    each collaborator so no single call can outlive the job's deadline.
    """

    def __init__(self, max_duration: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._deadline = clock() + max_duration if max_duration else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (None when the job has no deadline)."""
        if self._deadline is None:
            return None
        return self._deadline - self._clock()

    def check(self) -> None:
        if self._cancelled.is_set():
            raise JobCancelledError("job cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise JobTimeoutError("job deadline exceeded")

    def timeout(self, cap: Optional[float] = None) -> Optional[float]:
        """Timeout to hand to the next collaborator call: the smaller of `cap` and the time left."""
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return cap
        if cap is None:
            return remaining
        return min(cap, remaining)
