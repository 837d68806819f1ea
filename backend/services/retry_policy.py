"""
Retry policy with exponential backoff and jitter.

Used by the model client. The conversation store deliberately has no retry
policy: replaying a write could duplicate turns.
"""
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from config import (
    RETRY_MAX_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_MULTIPLIER,
    RETRY_MAX_DELAY,
    RETRY_JITTER,
)
from services.deadline import Deadline

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Every permitted attempt failed with a transient error."""

    def __init__(self, last_error: BaseException, attempts: int, reason: str = "max_attempts"):
        self.last_error = last_error
        self.attempts = attempts
        self.reason = reason  # "max_attempts" or "deadline"
        super().__init__(f"Gave up after {attempts} attempt(s) ({reason}): {last_error}")


def _never_transient(error: BaseException) -> bool:
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry of transient failures.

    Attributes:
        max_attempts: Total number of calls, including the first one
        base_delay: Delay in seconds after the first failure
        multiplier: Geometric growth factor between consecutive delays
        max_delay: Cap applied before jitter
        jitter: Random extra delay as a fraction of the capped delay
        is_transient: Classification predicate; False means fail immediately
    """
    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    multiplier: float = RETRY_MULTIPLIER
    max_delay: float = RETRY_MAX_DELAY
    jitter: float = RETRY_JITTER
    is_transient: Callable[[BaseException], bool] = field(default=_never_transient, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays and jitter must be non-negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    def compute_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """
        Backoff before the next call, after ``attempt`` (1-based) has failed.

        delay = min(max_delay, base_delay * multiplier ** (attempt - 1)),
        plus uniform jitter in [0, delay * jitter].
        """
        bounded = min(self.max_delay, self.base_delay * (self.multiplier ** (attempt - 1)))
        if self.jitter == 0 or bounded == 0:
            return bounded
        spread = (rng or random).uniform(0, bounded * self.jitter)
        return bounded + spread

    def call(
        self,
        fn: Callable[[int], T],
        deadline: Optional[Deadline] = None,
        sleep: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None,
    ) -> T:
        """
        Run ``fn(attempt)`` until it succeeds or the policy gives up.

        Non-transient errors propagate unchanged on the attempt that raised
        them.

        Raises:
            RetryExhausted: After ``max_attempts`` transient failures, or when
                the deadline leaves no room for the next backoff
        """
        if sleep is None:
            sleep = deadline.sleep if deadline is not None else time.sleep

        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(attempt)
            except Exception as e:
                if not self.is_transient(e):
                    raise
                if attempt >= self.max_attempts:
                    raise RetryExhausted(e, attempt) from e

                delay = self.compute_delay(attempt, rng)
                if deadline is not None:
                    remaining = deadline.remaining()
                    if deadline.cancelled or (remaining is not None and remaining <= delay):
                        raise RetryExhausted(e, attempt, reason="deadline") from e

                logger.warning(
                    f"Transient failure on attempt {attempt}/{self.max_attempts}, "
                    f"retrying in {delay:.2f}s: {type(e).__name__}",
                    extra={"attempt": attempt}
                )
                sleep(delay)
                if deadline is not None and deadline.cancelled:
                    raise RetryExhausted(e, attempt, reason="deadline") from e
