import threading
from typing import Optional

from .time import Clock


class CancellationToken:
    """
    Caller-side cancel switch with an optional absolute deadline

    Share one token between the thread running a call and the thread that
    may abandon it; `cancel()` wakes any backoff sleep immediately.
    """

    def __init__(self, deadline: Optional[float] = None, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self.deadline = deadline
        self._event = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float, clock: Optional[Clock] = None) -> "CancellationToken":
        clock = clock or Clock()
        return cls(deadline=clock.now() + seconds, clock=clock)

    def cancel(self) -> None:
        self._event.set()

    @property
    def event(self) -> threading.Event:
        return self._event

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline is not None and self.clock.now() >= self.deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None without one"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock.now())
