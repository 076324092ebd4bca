"""
Retry decisions for a single logical API call.

`decide()` is pure: given the attempt number and the error that attempt
produced, it returns either Retry(delay) or Fail(error). The client owns
the loop, the sleeping and the transport.
"""

import random
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .errors import ApiError, ErrorKind, RateLimitExceeded

RETRYABLE_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.SERVER, ErrorKind.TRANSPORT}
)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5  # total HTTP calls, first one included
    base_delay: float = 0.5
    max_backoff: float = 30.0
    max_retry_after: float = 60.0
    jitter: float = 0.1  # fraction of the delay added at random

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_backoff=config.max_backoff,
            max_retry_after=config.max_retry_after,
        )


@dataclass(frozen=True)
class Retry:
    delay: float


@dataclass(frozen=True)
class Fail:
    error: ApiError


Decision = Union[Retry, Fail]


@dataclass
class RetryAttempt:
    """State of one logical call across its HTTP attempts"""

    attempt: int = 0
    last_error_kind: Optional[ErrorKind] = None
    delay: float = 0.0

    def record(self, error: ApiError, decision: Decision) -> None:
        self.last_error_kind = error.kind
        self.delay = decision.delay if isinstance(decision, Retry) else 0.0


def backoff_delay(
    attempt: int,
    policy: RetryPolicy,
    rand: Callable[[], float] = random.random,
) -> float:
    """base_delay * 2**(attempt-1), capped at max_backoff, plus jitter"""
    delay = min(policy.max_backoff, policy.base_delay * (2 ** (attempt - 1)))
    if policy.jitter > 0:
        delay += delay * policy.jitter * rand()
    return min(policy.max_backoff, delay)


def decide(
    attempt: int,
    error: ApiError,
    policy: RetryPolicy,
    rand: Callable[[], float] = random.random,
) -> Decision:
    """
    Decide what to do after attempt number `attempt` (1-based) failed

    Returns:
        Retry(delay) if another attempt is allowed, else Fail(error)
    """
    if error.kind not in RETRYABLE_KINDS:
        return Fail(error)
    if attempt >= policy.max_attempts:
        return Fail(error)

    if isinstance(error, RateLimitExceeded) and error.retry_after is not None:
        return Retry(min(error.retry_after, policy.max_retry_after))

    return Retry(backoff_delay(attempt, policy, rand))
