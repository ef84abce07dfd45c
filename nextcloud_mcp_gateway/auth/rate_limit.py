"""Per-IP rate limiting for the OAuth and login endpoints.

Sliding-window counters kept in process memory, so limits apply per
gateway instance.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRule:
    """Rate limit for a path prefix."""

    path_prefix: str
    max_requests: int
    window_seconds: float


@dataclass
class _ClientWindow:
    timestamps: list[float] = field(default_factory=list)


DEFAULT_RULES: list[RateLimitRule] = [
    RateLimitRule("/oauth/register", max_requests=10, window_seconds=60),
    RateLimitRule("/oauth/token", max_requests=30, window_seconds=60),
    RateLimitRule("/oauth/authorize", max_requests=30, window_seconds=60),
    RateLimitRule("/oauth/revoke", max_requests=30, window_seconds=60),
    # Credential guessing
    RateLimitRule("/auth/login", max_requests=10, window_seconds=60),
]

# Maximum number of tracked (ip, path) windows before stale ones are evicted
MAX_TRACKED_CLIENTS = 1000


class RateLimitMiddleware:
    """ASGI middleware that answers 429 once a client exceeds a path's limit."""

    def __init__(
        self,
        app: ASGIApp,
        rules: Optional[list[RateLimitRule]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.app = app
        self.rules = rules if rules is not None else DEFAULT_RULES
        self._clock = clock
        # (client_ip, path_prefix) -> sliding window
        self._windows: dict[tuple[str, str], _ClientWindow] = defaultdict(
            _ClientWindow
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        for rule in self.rules:
            if path.startswith(rule.path_prefix):
                if self._is_rate_limited(client_ip, rule):
                    logger.warning(
                        f"Rate limited: client={client_ip}, path={path}, "
                        f"limit={rule.max_requests}/{int(rule.window_seconds)}s"
                    )
                    response = JSONResponse(
                        {
                            "error": "too_many_requests",
                            "error_description": "Rate limit exceeded. Try again later.",
                        },
                        status_code=429,
                        headers={"Retry-After": str(int(rule.window_seconds))},
                    )
                    await response(scope, receive, send)
                    return
                break

        await self.app(scope, receive, send)

    def _is_rate_limited(self, client_ip: str, rule: RateLimitRule) -> bool:
        """Record a request and return True if it exceeds the rule."""
        now = self._clock()
        window = self._windows[(client_ip, rule.path_prefix)]

        cutoff = now - rule.window_seconds
        window.timestamps = [t for t in window.timestamps if t > cutoff]

        if len(window.timestamps) >= rule.max_requests:
            return True

        window.timestamps.append(now)

        if len(self._windows) > MAX_TRACKED_CLIENTS:
            self._evict_stale_clients(now)

        return False

    def _evict_stale_clients(self, now: float) -> None:
        max_window = max(r.window_seconds for r in self.rules)
        cutoff = now - max_window * 2
        stale = [
            key
            for key, window in self._windows.items()
            if not window.timestamps or window.timestamps[-1] < cutoff
        ]
        for key in stale:
            del self._windows[key]
