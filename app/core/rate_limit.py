"""
Fixed-window rate limiting keyed by client + route, on top of `limits`.

One RateLimiter is built at startup and kept on app.state. The storage comes
from RATE_LIMIT_STORAGE_URI: "memory://" keeps counters in process and expires
them itself; "redis://..." shares them between workers.
"""

import math
import time

from limits import RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter


class RateLimiter:
    def __init__(self, limit: int, window_seconds: int, storage: Storage = None):
        self.item = RateLimitItemPerSecond(limit, window_seconds)
        self.storage = storage or storage_from_string("memory://")
        self.strategy = FixedWindowRateLimiter(self.storage)

    @classmethod
    def from_uri(cls, limit: int, window_seconds: int, storage_uri: str) -> "RateLimiter":
        return cls(limit, window_seconds, storage=storage_from_string(storage_uri))

    def hit(self, key: str) -> bool:
        """Count one request for key. False once the window's limit is used up."""
        return self.strategy.hit(self.item, key)

    def retry_after(self, key: str) -> int:
        reset_time, _ = self.strategy.get_window_stats(self.item, key)
        return max(1, math.ceil(reset_time - time.time()))
