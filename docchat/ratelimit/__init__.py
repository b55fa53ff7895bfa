"""Distributed rate limiting module."""

from .limiter import PRESETS, RateLimiter, create_rate_limiters
from .models import ROLE_MULTIPLIERS, RateLimitResult, RateLimitWindow, UserRole, WindowCount
from .store import InMemoryRateLimitStore, RateLimitStore, RedisRateLimitStore

__all__ = [
    "PRESETS",
    "ROLE_MULTIPLIERS",
    "InMemoryRateLimitStore",
    "RateLimitResult",
    "RateLimitStore",
    "RateLimitWindow",
    "RateLimiter",
    "RedisRateLimitStore",
    "UserRole",
    "WindowCount",
    "create_rate_limiters",
]
