from tfinance.core.config import settings
from tfinance.core.rate_limit import FixedWindowRateLimiter

rate_limiter = FixedWindowRateLimiter(redis_url=settings.redis_url, key_prefix=settings.redis_prefix)
