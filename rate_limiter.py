import threading
import time
from typing import Callable, Dict

from constants import RATE_LIMIT_PER_SECOND
from logging_config import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """
    Token bucket refilled continuously at `rate` tokens per second, capped at `capacity`.

    Tokens are fractional internally; a consume needs at least one whole token.
    Not locked on its own, RateLimiter serializes access.
    """

    def __init__(self, rate: float, capacity: float, now: float):
        self.rate = rate
        self.capacity = capacity
        self.tokens = float(capacity)  # Start full
        self.last_refill = now

    def refill(self, now: float):
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now

    def consume(self, now: float, tokens: int = 1) -> bool:
        self.refill(now)
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False


class RateLimiter:
    """Per-connection token buckets, created lazily and discarded on disconnect."""

    def __init__(self, per_second: float = RATE_LIMIT_PER_SECOND, clock: Callable[[], float] = time.monotonic):
        self.per_second = per_second
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def try_consume(self, connection_id: str) -> bool:
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(connection_id)
            if bucket is None:
                bucket = TokenBucket(self.per_second, self.per_second, now)
                self._buckets[connection_id] = bucket
            allowed = bucket.consume(now)
        if not allowed:
            logger.debug(f"Rate limit hit for connection {connection_id}")
        return allowed

    def discard(self, connection_id: str):
        with self._lock:
            self._buckets.pop(connection_id, None)

    def __len__(self):
        with self._lock:
            return len(self._buckets)
