import secrets
import threading
import time

import structlog
from redis import Redis
from redis.exceptions import RedisError

log = structlog.get_logger(__name__)


class RateLimiter:
    """Sliding-window limiter keyed by arbitrary strings.

    Uses a Redis sorted set per key when ``redis_url`` is configured so that
    every worker shares one window; otherwise keeps the window in process.
    """

    SWEEP_INTERVAL = 60.0

    _WINDOW_SCRIPT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call("ZREMRANGEBYSCORE", key, 0, now_ms - window_ms)
if redis.call("ZCARD", key) >= limit then
  redis.call("PEXPIRE", key, window_ms)
  return 1
end
redis.call("ZADD", key, now_ms, member)
redis.call("PEXPIRE", key, window_ms)
return 0
"""

    def __init__(self, redis_url: str | None = None, key_prefix: str = "pocketledger") -> None:
        self._hits: dict[str, list[float]] = {}
        self._expires: dict[str, float] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis: Redis | None = None
        if redis_url:
            client = Redis.from_url(redis_url, decode_responses=False)
            try:
                client.ping()
                self._redis = client
            except RedisError as exc:
                log.warning("rate_limit_redis_unavailable", error=str(exc))

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:ratelimit:{key}"

    def _hit_redis(self, key: str, limit: int, window_seconds: int) -> bool | None:
        now_ms = int(time.time() * 1000)
        member = f"{now_ms}-{secrets.token_hex(6)}"
        try:
            blocked = self._redis.eval(
                self._WINDOW_SCRIPT, 1, self._key(key), now_ms, window_seconds * 1000, limit, member
            )
        except RedisError as exc:
            log.warning("rate_limit_redis_error", key=key, error=str(exc))
            return None
        return int(blocked or 0) == 1

    def _hit_local(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.time()
        with self._lock:
            recent = [ts for ts in self._hits.get(key, []) if ts > now - window_seconds]
            blocked = len(recent) >= limit
            if not blocked:
                recent.append(now)
            self._hits[key] = recent
            self._expires[key] = (recent[-1] if recent else now) + window_seconds
            if now >= self._next_sweep:
                self._sweep(now)
            return blocked

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        for stale in [key for key, until in self._expires.items() if until <= now]:
            self._expires.pop(stale, None)
            self._hits.pop(stale, None)
        self._next_sweep = now + self.SWEEP_INTERVAL

    def exceeded(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record one attempt for ``key``; True when the window is already full."""
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))

        blocked = None
        if self._redis is not None:
            blocked = self._hit_redis(key, limit, window_seconds)
        if blocked is None:
            blocked = self._hit_local(key, limit, window_seconds)
        if blocked:
            log.info("rate_limited", key=key, limit=limit, window=window_seconds)
        return blocked
