"""Rate limiting utilities using throttled-py"""
import os
import logging
from datetime import timedelta
from throttled import Throttled, RateLimiterType, store, rate_limiter

logger = logging.getLogger("corretorpro")

# Initialize storage - Redis for production, MemoryStore for development
try:
    redis_url = os.getenv("REDIS_URL", "").strip()
    if redis_url:
        # RedisStore expects the URL string, not a Redis client object
        storage = store.RedisStore(server=redis_url)
        logger.info("[rate_limit] Using Redis for rate limiting")
    else:
        storage = store.MemoryStore()
        logger.warning("[rate_limit] REDIS_URL not set - using in-memory storage (not suitable for production with multiple workers)")
except Exception as ex:
    # Fallback to memory storage if Redis is not available
    storage = store.MemoryStore()
    logger.warning(f"[rate_limit] Redis connection failed, using in-memory storage: {ex}")

SIGNUP_LIMIT_PER_HOUR = int(os.getenv("SIGNUP_LIMIT_PER_HOUR", "5"))
GENERATION_LIMIT_PER_HOUR = int(os.getenv("GENERATION_LIMIT_PER_HOUR", "60"))
ADMIN_LIMIT_PER_MINUTE = int(os.getenv("ADMIN_LIMIT_PER_MINUTE", "60"))

# Signup limiter: per IP per hour
signup_throttle = Throttled(
    using=RateLimiterType.FIXED_WINDOW.value,
    quota=rate_limiter.per_duration(timedelta(hours=1), limit=SIGNUP_LIMIT_PER_HOUR),
    store=storage,
)

# Ad generation limiter (generate + regenerate): per user per hour
generation_throttle = Throttled(
    using=RateLimiterType.FIXED_WINDOW.value,
    quota=rate_limiter.per_duration(timedelta(hours=1), limit=GENERATION_LIMIT_PER_HOUR),
    store=storage,
)

# Admin endpoint limiter: per IP per minute
admin_throttle = Throttled(
    using=RateLimiterType.FIXED_WINDOW.value,
    quota=rate_limiter.per_duration(timedelta(minutes=1), limit=ADMIN_LIMIT_PER_MINUTE),
    store=storage,
)


def _check(throttle: Throttled, key: str, message: str) -> tuple[bool, str]:
    try:
        result = throttle.limit(key, cost=1)
        if result.limited:
            return False, message
        return True, ""
    except Exception as ex:
        logger.warning(f"[rate_limit] check failed for {key}: {ex}")
        # Fail open - allow request if rate limiter fails
        return True, ""


def check_signup_rate_limit(ip: str) -> tuple[bool, str]:
    return _check(signup_throttle, f"signup:{ip}", "Too many signup attempts from this IP address. Please try again later.")


def check_generation_rate_limit(uid: str) -> tuple[bool, str]:
    return _check(
        generation_throttle,
        f"generation:{uid}",
        f"Generation rate limit exceeded. You can generate up to {GENERATION_LIMIT_PER_HOUR} ads per hour.",
    )


def check_admin_rate_limit(ip: str) -> tuple[bool, str]:
    return _check(admin_throttle, f"admin:{ip}", "Too many admin requests. Please slow down.")
