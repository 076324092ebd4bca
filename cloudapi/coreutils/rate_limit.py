"""
Rate Limit Store - client-side view of server rate limits.

One small record per (organization, endpoint identity), updated from
response headers and read before each call to throttle pre-emptively.
Each key has its own lock; locks are only held to read or write counters.
"""

import threading
from dataclasses import dataclass, replace
from typing import Dict, Mapping, Optional, Tuple

from .request import (
    RATE_LIMIT_LIMIT_HEADER,
    RATE_LIMIT_REMAINING_HEADER,
    RATE_LIMIT_RESET_HEADER,
    RETRY_AFTER_HEADER,
)
from .time import Clock, parse_reset_at, parse_retry_after
import logging

logger = logging.getLogger(__name__)

RateLimitKey = Tuple[str, str]


@dataclass
class RateLimitState:
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[float] = None
    retry_after_until: Optional[float] = None
    updated_at: Optional[float] = None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value.strip()))
    except ValueError:
        return None


class RateLimitStore:
    """Synchronized per-endpoint rate limit state"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self._states: Dict[RateLimitKey, RateLimitState] = {}
        self._locks: Dict[RateLimitKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: RateLimitKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _state(self, key: RateLimitKey) -> RateLimitState:
        # called under the key's lock; reset() may have dropped the entry
        return self._states.setdefault(key, RateLimitState())

    def get(self, key: RateLimitKey) -> RateLimitState:
        """Snapshot of the state for `key` (created lazily)"""
        with self._lock_for(key):
            return replace(self._state(key))

    def wait_time(self, key: RateLimitKey) -> float:
        """Seconds to hold off before calling this endpoint again"""
        with self._lock_for(key):
            state = self._state(key)
            now = self.clock.now()
            wait = 0.0
            if state.retry_after_until is not None and state.retry_after_until > now:
                wait = state.retry_after_until - now
            if (
                state.remaining is not None
                and state.remaining <= 0
                and state.reset_at is not None
                and state.reset_at > now
            ):
                wait = max(wait, state.reset_at - now)
            return wait

    def update(
        self, key: RateLimitKey, headers: Mapping[str, str], status_code: int
    ) -> Optional[float]:
        """
        Fold a response's rate limit headers into the state

        Returns:
            The Retry-After hint in seconds, if the response carried one
        """
        now = self.clock.now()
        limit = _parse_int(headers.get(RATE_LIMIT_LIMIT_HEADER))
        remaining = _parse_int(headers.get(RATE_LIMIT_REMAINING_HEADER))
        reset_at = parse_reset_at(headers.get(RATE_LIMIT_RESET_HEADER), now)
        retry_after = parse_retry_after(headers.get(RETRY_AFTER_HEADER), now)

        with self._lock_for(key):
            state = self._state(key)
            if limit is not None:
                state.limit = limit
            if remaining is not None:
                state.remaining = remaining
            if reset_at is not None:
                state.reset_at = reset_at
            if status_code == 429:
                if retry_after is not None:
                    state.retry_after_until = now + retry_after
                if remaining is None:
                    state.remaining = 0
            elif 200 <= status_code < 300:
                state.retry_after_until = None
            state.updated_at = now

        if remaining is not None and limit and remaining <= limit * 0.1:
            logger.debug(f"Rate limit low for {key[1]}: {remaining}/{limit} remaining")
        return retry_after

    def reset(self, key: Optional[RateLimitKey] = None) -> None:
        with self._registry_lock:
            if key is None:
                self._states.clear()
                self._locks.clear()
            else:
                self._states.pop(key, None)
                self._locks.pop(key, None)
