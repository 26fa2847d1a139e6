"""Fixed-window rate limiting for the connection endpoints."""

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Protocol

from fastapi import Depends, HTTPException, status

from serendipity.core.auth_middleware import AuthContext, require_auth
from serendipity.core.config import get_settings
from serendipity.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitWindow:
    """Request count for one key within one window."""

    count: int
    reset_at: float


class WindowStore(Protocol):
    """Keyed window storage. Swap for a shared store in multi-instance deployments."""

    def get(self, key: str) -> RateLimitWindow | None: ...

    def set(self, key: str, window: RateLimitWindow) -> None: ...

    def delete(self, key: str) -> None: ...

    def purge_expired(self, now: float) -> int: ...


class InMemoryWindowStore:
    """Process-local window store."""

    def __init__(self):
        self._windows: Dict[str, RateLimitWindow] = {}

    def get(self, key: str) -> RateLimitWindow | None:
        return self._windows.get(key)

    def set(self, key: str, window: RateLimitWindow) -> None:
        self._windows[key] = window

    def delete(self, key: str) -> None:
        self._windows.pop(key, None)

    def purge_expired(self, now: float) -> int:
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)


class FixedWindowRateLimiter:
    """
    Fixed-window counter keyed by actor.

    The first request for a key opens a window of `window_seconds`; requests
    beyond `max_requests` inside that window are rejected until it resets.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        store: WindowStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Requests allowed per window
            window_seconds: Window length in seconds
            store: Window storage (defaults to in-memory)
            clock: Time source, injectable for tests
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.store = store if store is not None else InMemoryWindowStore()
        self._clock = clock

    def check_limit(self, key: str) -> int:
        """
        Count a request against `key`.

        Args:
            key: Rate limit key (e.g., "auto-connect:<user_id>")

        Returns:
            Requests remaining in the current window

        Raises:
            HTTPException: 429 if the window is exhausted
        """
        now = self._clock()
        window = self.store.get(key)

        if window is None or now > window.reset_at:
            self.store.purge_expired(now)
            self.store.set(key, RateLimitWindow(count=1, reset_at=now + self.window_seconds))
            return self.max_requests - 1

        if window.count >= self.max_requests:
            retry_after = max(1, math.ceil(window.reset_at - now))
            logger.warning(
                f"Rate limit exceeded for key: {key}, "
                f"count: {window.count}/{self.max_requests}, "
                f"retry after: {retry_after}s"
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )

        window.count += 1
        self.store.set(key, window)
        return self.max_requests - window.count

    def get_stats(self, key: str) -> Dict[str, Any]:
        """Get current window stats for a key."""
        now = self._clock()
        window = self.store.get(key)
        if window is None or now > window.reset_at:
            return {"remaining": self.max_requests, "max_requests": self.max_requests, "reset_in": 0}

        return {
            "remaining": max(0, self.max_requests - window.count),
            "max_requests": self.max_requests,
            "reset_in": max(0, math.ceil(window.reset_at - now)),
        }

    def reset(self, key: str) -> None:
        """Reset rate limit for a key."""
        self.store.delete(key)
        logger.info(f"Rate limit reset for key: {key}")


def _build_limiters() -> Dict[str, FixedWindowRateLimiter]:
    settings = get_settings()
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    return {
        "auto-connect": FixedWindowRateLimiter(settings.AUTO_CONNECT_RATE_LIMIT, window),
        "deep-connections": FixedWindowRateLimiter(settings.BULK_CONNECT_RATE_LIMIT, window),
        "connections": FixedWindowRateLimiter(settings.SUGGEST_RATE_LIMIT, window),
    }


_limiters: Dict[str, FixedWindowRateLimiter] | None = None


def get_rate_limiter(scope: str) -> FixedWindowRateLimiter:
    """Get the shared limiter for an endpoint scope."""
    global _limiters
    if _limiters is None:
        _limiters = _build_limiters()
    return _limiters[scope]


def set_rate_limiter(scope: str, limiter: FixedWindowRateLimiter) -> None:
    """Replace the limiter for a scope (e.g., with one backed by a shared store)."""
    global _limiters
    if _limiters is None:
        _limiters = _build_limiters()
    _limiters[scope] = limiter


class RateLimitGuard:
    """Dependency that rate limits an endpoint per authenticated user."""

    def __init__(self, scope: str):
        self.scope = scope

    async def __call__(self, auth: AuthContext = Depends(require_auth)) -> AuthContext:
        get_rate_limiter(self.scope).check_limit(f"{self.scope}:{auth.user_id}")
        return auth
