import threading
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


def dt_fromtimestamp(ts: float) -> str:
    """Convert UNIX timestamp to ISO-8601 string (UTC)."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def parse_retry_after(value: Optional[str], now: float) -> Optional[float]:
    """
    Parse a Retry-After header into seconds to wait

    Accepts delta-seconds ("2", "1.5") or an HTTP date. Returns None when
    the header is absent or unparseable; never negative.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, when.timestamp() - now)


def parse_reset_at(value: Optional[str], now: float) -> Optional[float]:
    """
    Parse a rate-limit reset header into an absolute epoch timestamp

    Large values are epoch seconds; small ones are seconds from now.
    """
    if value is None or not value.strip():
        return None
    try:
        number = float(value.strip())
    except ValueError:
        return None
    # anything before 2001-09-09 is treated as a relative offset
    if number < 1_000_000_000:
        return now + max(0.0, number)
    return number


class Clock:
    """Wall clock and interruptible sleep used by the client"""

    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float, cancel_event: Optional[threading.Event] = None) -> bool:
        """Sleep for `seconds`; returns True if woken early by `cancel_event`"""
        if seconds <= 0:
            return bool(cancel_event and cancel_event.is_set())
        if cancel_event is None:
            time.sleep(seconds)
            return False
        return cancel_event.wait(seconds)
