import logging
import threading
import time

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    """Counts hits per key inside fixed windows of ``window_seconds``.

    Redis is used when reachable so that limits hold across workers; the
    in-process counters take over whenever Redis is absent or failing.
    """

    # Local counters whose window has closed are dropped once per this many hits.
    SWEEP_EVERY = 256

    _REDIS_INCR_SCRIPT = """
local count = redis.call("INCR", KEYS[1])
if count == 1 then
  redis.call("EXPIRE", KEYS[1], tonumber(ARGV[1]))
end
return count
"""

    def __init__(self, redis_url: str | None = None, key_prefix: str = "tfinance") -> None:
        self._windows: dict[str, tuple[int, int, int]] = {}
        self._hits_since_sweep = 0
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis: Redis | None = None
        if redis_url:
            try:
                client = Redis.from_url(redis_url, decode_responses=False)
                client.ping()
                self._redis = client
            except RedisError:
                logger.warning("Redis unavailable at startup, using in-process rate limits")
                self._redis = None

    def _redis_key(self, key: str, window_start: int) -> str:
        return f"{self._key_prefix}:ratelimit:{key}:{window_start}"

    def _hit_redis(self, key: str, window_start: int, window_seconds: int) -> int | None:
        if self._redis is None:
            return None
        try:
            result = self._redis.eval(
                self._REDIS_INCR_SCRIPT,
                1,
                self._redis_key(key, window_start),
                window_seconds + 1,
            )
            return int(result or 0)
        except RedisError:
            logger.warning("Redis rate limit check failed for %s, falling back to local counter", key)
            return None

    def _hit_local(self, key: str, window_start: int, window_seconds: int, now: float) -> int:
        with self._lock:
            self._hits_since_sweep += 1
            if self._hits_since_sweep >= self.SWEEP_EVERY:
                self._sweep(now)
            start, count, _ = self._windows.get(key, (window_start, 0, 0))
            if start != window_start:
                count = 0
            count += 1
            self._windows[key] = (window_start, count, window_start + window_seconds)
            return count

    def _sweep(self, now: float) -> None:
        self._hits_since_sweep = 0
        stale = [key for key, (_, _, window_end) in self._windows.items() if window_end <= now]
        for key in stale:
            del self._windows[key]

    def exceeded(self, key: str, limit: int, window_seconds: int, now: float | None = None) -> bool:
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))
        current = time.time() if now is None else now
        window_start = int(current // window_seconds) * window_seconds

        count = self._hit_redis(key, window_start, window_seconds)
        if count is None:
            count = self._hit_local(key, window_start, window_seconds, current)
        return count > limit

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._hits_since_sweep = 0
