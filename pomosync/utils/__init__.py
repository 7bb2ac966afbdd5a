"""
Utility helpers for pomosync.

Timestamp helpers normalise the two timestamp dialects in play: the local
store writes Python isoformat strings, the remote service answers with
RFC 3339 strings ending in 'Z'. Both are turned into aware UTC datetimes
before any comparison.

retry_with_backoff wraps remote calls with bounded exponential backoff
and jitter.
"""

import functools
import random
import time
from datetime import datetime, timezone
from typing import Callable

from pomosync.core.logger import get_logger


logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Get current UTC timestamp in ISO format"""
    return utc_now().isoformat()


def parse_timestamp(value: str | datetime | None) -> datetime:
    """
    Parse a timestamp into an aware UTC datetime.

    Accepts isoformat strings, RFC 3339 strings with a trailing 'Z' and
    SQLite "YYYY-MM-DD HH:MM:SS" values. Naive values are assumed to be UTC.
    Missing or unparseable values map to the epoch so they always lose a
    "newer than" comparison.
    """
    if value is None:
        return EPOCH

    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if not text:
            return EPOCH
        try:
            dt = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            logger.warning(f"Unparseable timestamp treated as epoch: {value!r}")
            return EPOCH

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: str | datetime | None) -> str:
    """
    Format timestamp for display

    Returns "never" for missing values.
    """
    if value is None:
        return "never"
    dt = parse_timestamp(value)
    return dt.astimezone().strftime('%Y-%m-%d %H:%M:%S')


def backoff_delays(
    max_attempts: int,
    delay: float,
    backoff: float,
    max_delay: float,
    jitter: float
) -> list[float]:
    """
    Compute the sleep before each retry.

    The nth delay is delay * backoff**n capped at max_delay, then scaled by
    a random factor in [1 - jitter, 1 + jitter] and capped again.
    """
    delays = []
    current = delay
    for _ in range(max(max_attempts - 1, 0)):
        base = min(current, max_delay)
        spread = base * jitter
        delays.append(min(max(base + random.uniform(-spread, spread), 0.0), max_delay))
        current *= backoff
    return delays


def retry_with_backoff(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    max_delay: float = 30.0,
    jitter: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep
):
    """
    Decorator for retrying functions on failure

    Only exceptions listed in retry_on are retried; anything else
    propagates immediately. The last failure is re-raised once the
    attempts are exhausted.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between attempts
        backoff: Delay multiplier for exponential backoff
        max_delay: Upper bound of any single delay
        jitter: Fraction of each delay randomised in both directions
        retry_on: Exception types that trigger a retry
        sleep: Sleep function (injectable for tests)
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delays = backoff_delays(max_attempts, delay, backoff, max_delay, jitter)
            attempt = 1

            while True:
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_attempts:
                        raise
                    wait = delays[attempt - 1]
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}; "
                        f"retrying in {wait:.1f}s"
                    )
                    sleep(wait)
                    attempt += 1
        return wrapper
    return decorator
