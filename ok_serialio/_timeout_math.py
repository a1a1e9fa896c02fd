"""Deadline arithmetic on the monotonic clock"""

import threading
import time

TIMEOUT_MAX = threading.TIMEOUT_MAX


def to_deadline(timeout: float | int | None) -> float:
    """Converts a timeout in seconds (None = forever) to a monotonic deadline"""

    if timeout is None:
        return TIMEOUT_MAX
    elif timeout <= 0:
        return 0.0
    return min(time.monotonic() + timeout, TIMEOUT_MAX)


def from_deadline(deadline: float | int) -> float:
    """Converts a monotonic deadline back to seconds remaining (never < 0)"""

    if deadline >= TIMEOUT_MAX:
        return TIMEOUT_MAX
    return max(0.0, deadline - time.monotonic())


class TimeoutTimer:
    """Tracks elapsed time since init_timer() and an optional deadline"""

    def __init__(self, timeout: float | int | None = None):
        self._timeout = timeout
        self.init_timer()

    def __repr__(self) -> str:
        return f"TimeoutTimer({self._timeout!r}, elapsed={self.elapsed_ms()}ms)"

    def init_timer(self) -> None:
        self._start = time.monotonic()
        self._deadline = to_deadline(self._timeout)

    def elapsed_ms(self) -> int:
        return max(0, int((time.monotonic() - self._start) * 1000))

    def remaining(self) -> float:
        return from_deadline(self._deadline)

    def expired(self) -> bool:
        return self.remaining() <= 0
