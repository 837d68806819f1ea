"""Per-request deadline and cancellation signal."""
import threading
import time
from typing import Optional

from models.errors import DeadlineExceeded


class Deadline:
    """
    Caller-supplied time limit plus a cancellation flag.

    One instance is created per request and handed to every blocking call
    (store fetch, model call, store append) so that a cancelled or expired
    request stops before its next step.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds from now until expiry (None means no time limit)
        """
        self._expires_at = None if timeout is None else time.monotonic() + timeout
        self._cancelled = threading.Event()

    def remaining(self) -> Optional[float]:
        """Seconds left, 0.0 once expired, None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return self.cancelled or (remaining is not None and remaining <= 0)

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self, operation: str) -> None:
        """
        Raise if the request may not start ``operation``.

        Raises:
            DeadlineExceeded: If the request was cancelled or is out of time
        """
        if self.cancelled:
            raise DeadlineExceeded(f"Request cancelled before {operation}")
        if self.expired:
            raise DeadlineExceeded(f"Request deadline exceeded before {operation}")

    def bound(self, timeout: float) -> float:
        """Clamp a per-operation timeout to the time left."""
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancellation."""
        self._cancelled.wait(seconds)
