"""Per-subject request budgets and the values a throttling decision carries."""
from dataclasses import dataclass
from enum import Enum

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class OperationType(Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class RateLimitConfig:
    """At most max_requests per subject in each window."""

    max_requests: int
    window_seconds: int = 60


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # epoch seconds at which the window rolls over
    retry_after: int  # 0 unless throttled

    @classmethod
    def unthrottled(cls, config: RateLimitConfig) -> "RateLimitResult":
        """Answer used when the limiter has no backing store."""
        return cls(
            allowed=True,
            limit=config.max_requests,
            remaining=config.max_requests,
            reset=0,
            retry_after=0,
        )


class RateLimitExceededError(Exception):
    """Raised by the auth dependency; rendered as 429 by the app."""

    def __init__(self, result: RateLimitResult) -> None:
        self.result = result
        super().__init__(f"Rate limit of {result.limit} requests exceeded")


# Writes touch counters and invalidate caches, so they get the smaller budget
RATE_LIMITS: dict[OperationType, RateLimitConfig] = {
    OperationType.READ: RateLimitConfig(300),
    OperationType.WRITE: RateLimitConfig(60),
}


def get_operation_type(method: str) -> OperationType:
    return OperationType.READ if method.upper() in SAFE_METHODS else OperationType.WRITE
