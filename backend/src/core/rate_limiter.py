"""Fixed-window throttling backed by the Redis Lua script."""
import logging
import time

from core import rate_limit_config
from core.rate_limit_config import OperationType, RateLimitResult
from core.redis import RedisClient

logger = logging.getLogger(__name__)


def window_key(subject: str, operation_type: OperationType) -> str:
    return f"rate:{subject}:{operation_type.value}"


async def check_rate_limit(
    redis_client: RedisClient | None,
    subject: str,
    operation_type: OperationType,
) -> RateLimitResult:
    """
    Count this request against the subject's window for the operation type.

    Without Redis, or when the script cannot run, the request is let through:
    throttling is a guard rail, not an access control.
    """
    config = rate_limit_config.RATE_LIMITS[operation_type]

    if redis_client is None or not redis_client.is_connected:
        logger.warning("redis_unavailable", extra={"operation": "rate_limit"})
        return RateLimitResult.unthrottled(config)

    started = int(time.time())
    counted = await redis_client.eval_fixed_window(
        window_key(subject, operation_type), config.max_requests, config.window_seconds,
    )
    if counted is None:
        return RateLimitResult.unthrottled(config)

    allowed, remaining, ttl, retry_after = (int(v) for v in counted)
    window_left = ttl if ttl > 0 else config.window_seconds
    if not allowed:
        logger.warning(
            "rate_limit_exceeded",
            extra={"subject": subject, "operation": operation_type.value},
        )
    return RateLimitResult(
        allowed=bool(allowed),
        limit=config.max_requests,
        remaining=max(remaining, 0),
        reset=started + window_left,
        retry_after=max(retry_after, 1) if not allowed else 0,
    )
