from pocketledger.core.config import settings
from pocketledger.core.rate_limit import RateLimiter
from pocketledger.db.pool import elevated_conn
from pocketledger.services.policy import AccessPolicy

rate_limiter = RateLimiter(redis_url=settings.redis_url, key_prefix=settings.redis_prefix)
policy = AccessPolicy(elevated_conn)
