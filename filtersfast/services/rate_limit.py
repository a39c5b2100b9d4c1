"""Fixed-window request rate limiting.

Each limiter instance holds its own counters and lives on ``app.state``; a
clock callable is injected so tests can step time deterministically. Two
requests racing at a window boundary may both be admitted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    def __init__(
        self,
        limit: int,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10000,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self.max_keys = max_keys
        self._windows: dict[str, _Window] = {}

    def check(self, key: str) -> bool:
        """Count one request for ``key``; False once the window is exhausted."""
        now = self.clock()
        window = self._windows.get(key)
        if window is None or now > window.reset_at:
            if window is None and len(self._windows) >= self.max_keys:
                self._evict(now)
            self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
            return True
        if window.count >= self.limit:
            return False
        window.count += 1
        return True

    def _evict(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        if len(self._windows) >= self.max_keys:
            # Still full: drop the windows closest to expiry
            overflow = len(self._windows) - self.max_keys + 1
            for key in sorted(self._windows, key=lambda k: self._windows[k].reset_at)[:overflow]:
                del self._windows[key]

    def __len__(self) -> int:
        return len(self._windows)


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def rate_limited(limiter_name: str, scope: str) -> Callable[[Request], None]:
    """Dependency enforcing the ``app.state`` limiter called ``limiter_name``.

    Keys are ``{scope}-{client}`` so endpoints sharing a limiter still count
    separately.
    """

    def dependency(request: Request) -> None:
        limiter: FixedWindowRateLimiter = getattr(request.app.state, limiter_name)
        client = client_identifier(request)
        if not limiter.check(f"{scope}-{client}"):
            logger.warning("Rate limit exceeded for %s on %s", client, scope)
            raise HTTPException(
                status_code=429, detail="Too many requests. Please try again later."
            )

    return dependency
