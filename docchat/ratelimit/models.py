"""Rate limiting models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    """User roles, matching the user table."""

    USER = "USER"
    CONTRIBUTOR = "CONTRIBUTOR"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


# Role-based ceiling multipliers applied to a limiter's base max
ROLE_MULTIPLIERS: dict[UserRole, int] = {
    UserRole.USER: 1,
    UserRole.CONTRIBUTOR: 5,
    UserRole.ADMIN: 50,
    UserRole.SUPER_ADMIN: 100,
}


@dataclass(frozen=True)
class WindowCount:
    """Outcome of one atomic increment-and-compare against a sliding window.

    ``count`` is the number of admitted requests inside the window after the
    operation; ``window_start`` is the timestamp (epoch seconds) of the
    oldest admitted request still inside the window.
    """

    allowed: bool
    count: int
    window_start: float | None = None


@dataclass(frozen=True)
class RateLimitWindow:
    """Snapshot of one identifier's window."""

    identifier: str
    window_start: float | None
    count: int


@dataclass(frozen=True)
class RateLimitResult:
    """Admission decision returned to the caller."""

    allowed: bool
    remaining: int
    reset_at: datetime | None = None
    message: str | None = None
    degraded: bool = False
