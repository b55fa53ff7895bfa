"""Sliding-window rate limiter with role tiers and a local fallback.

When the primary store is unreachable the limiter degrades to a
process-local window and logs a warning. In that mode limits are enforced
per process only: several instances each admit up to ``max`` requests, so
the effective ceiling is multiplied by the instance count until the store
recovers. This is an accepted limitation. Store errors never reach the
caller.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from .models import ROLE_MULTIPLIERS, RateLimitResult, RateLimitWindow, UserRole, WindowCount
from .store import InMemoryRateLimitStore, RateLimitStore

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Too many requests, please try again later."


class RateLimiter:
    """Per-identifier admission control."""

    def __init__(
        self,
        store: RateLimitStore,
        window_seconds: float = 15 * 60,
        max_requests: int = 100,
        message: str = DEFAULT_MESSAGE,
        exempt: Iterable[str] = (),
        fallback: RateLimitStore | None = None,
        store_timeout: float = 0.5,
        name: str = "general",
    ) -> None:
        """Initialize rate limiter.

        Args:
            store: Primary backing store
            window_seconds: Sliding window length
            max_requests: Base ceiling for the USER role
            message: Message returned with a rejection
            exempt: Identifiers that are never limited
            fallback: Store used while the primary is failing
            store_timeout: Seconds to wait for the primary store
            name: Label used in log lines
        """
        self.store = store
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.message = message
        self.exempt = frozenset(exempt)
        self.fallback = fallback or InMemoryRateLimitStore()
        self.store_timeout = store_timeout
        self.name = name
        self._degraded = False

    @property
    def degraded(self) -> bool:
        """Whether the last decision was served by the fallback store."""
        return self._degraded

    def limit_for(self, role: UserRole = UserRole.USER) -> int:
        """Ceiling for a role."""
        return self.max_requests * ROLE_MULTIPLIERS[role]

    async def admit(self, identifier: str, role: UserRole = UserRole.USER) -> RateLimitResult:
        """Decide whether a request from ``identifier`` may proceed.

        Args:
            identifier: User ID or client address
            role: Role of the caller; selects the ceiling multiplier

        Returns:
            RateLimitResult; never raises on store failure
        """
        limit = self.limit_for(role)

        if identifier in self.exempt:
            return RateLimitResult(allowed=True, remaining=limit)

        window, degraded = await self._increment(identifier, limit)

        if not window.allowed:
            reset_at = None
            if window.window_start is not None:
                reset_at = datetime.fromtimestamp(window.window_start + self.window_seconds, tz=timezone.utc)
            logger.info(f"Rate limit '{self.name}' exceeded for {identifier} ({window.count}/{limit})")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=reset_at,
                message=self.message,
                degraded=degraded,
            )

        return RateLimitResult(
            allowed=True,
            remaining=max(limit - window.count, 0),
            degraded=degraded,
        )

    async def _increment(self, identifier: str, limit: int) -> tuple[WindowCount, bool]:
        try:
            window = await asyncio.wait_for(
                self.store.increment(identifier, self.window_seconds, limit),
                timeout=self.store_timeout,
            )
        except Exception as e:
            if not self._degraded:
                logger.warning(
                    f"Rate limit store unavailable for '{self.name}', falling back to "
                    f"process-local limits (no cross-instance consistency): {e!r}"
                )
            self._degraded = True
            window = await self.fallback.increment(identifier, self.window_seconds, limit)
            return window, True

        if self._degraded:
            logger.info(f"Rate limit store for '{self.name}' recovered")
            self._degraded = False
        return window, False


# (window seconds, base max, rejection message) per action
PRESETS: dict[str, tuple[float, int, str]] = {
    "chat": (5 * 60, 30, "Too many chat requests. Please wait a few minutes before asking another question."),
    "upload": (60 * 60, 100, "Upload limit exceeded. You can upload up to 100 files per hour."),
    "general": (15 * 60, 100, "Too many requests. Please slow down."),
    "export": (60 * 60, 1, "You can only request a data export once per hour."),
}


def create_rate_limiters(
    store: RateLimitStore,
    exempt: Iterable[str] = (),
    store_timeout: float = 0.5,
    overrides: Mapping[str, tuple[float, int, str]] | None = None,
) -> dict[str, RateLimiter]:
    """Build the standard limiter presets over one shared store.

    Args:
        store: Primary backing store
        exempt: Identifiers exempt from every preset
        store_timeout: Seconds to wait for the store
        overrides: Replacement (window, max, message) per preset name

    Returns:
        Limiters keyed by action name
    """
    exempt = tuple(exempt)
    fallback = InMemoryRateLimitStore()
    presets = {**PRESETS, **(overrides or {})}
    return {
        name: RateLimiter(
            store=_NamespacedStore(store, name),
            window_seconds=window,
            max_requests=max_requests,
            message=message,
            exempt=exempt,
            fallback=_NamespacedStore(fallback, name),
            store_timeout=store_timeout,
            name=name,
        )
        for name, (window, max_requests, message) in presets.items()
    }


class _NamespacedStore(RateLimitStore):
    """Keeps presets sharing one store from counting each other's requests."""

    def __init__(self, inner: RateLimitStore, namespace: str) -> None:
        self.inner = inner
        self.namespace = namespace

    async def increment(self, identifier: str, window_seconds: float, limit: int) -> WindowCount:
        return await self.inner.increment(f"{self.namespace}:{identifier}", window_seconds, limit)

    async def peek(self, identifier: str, window_seconds: float) -> RateLimitWindow:
        return await self.inner.peek(f"{self.namespace}:{identifier}", window_seconds)

    async def reset(self, identifier: str) -> None:
        await self.inner.reset(f"{self.namespace}:{identifier}")
