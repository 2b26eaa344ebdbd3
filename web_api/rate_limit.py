"""Simple in-memory rate limiter for unauthenticated endpoints."""

import time
from collections import defaultdict

from fastapi import HTTPException, Request


class RateLimiter:
    """
    Sliding-window rate limiter keyed by client IP.

    The IP is the connection peer as uvicorn reports it. Behind a reverse
    proxy, run uvicorn with proxy_headers and forwarded_allow_ips so that
    only trusted proxies can set it from X-Forwarded-For; the header itself
    is never read here, since any caller can send one.

    Args:
        max_requests: Maximum requests allowed in the window.
        window_seconds: Time window in seconds.
    """

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        # {ip: [timestamp, ...]}
        self._requests: dict[str, list[float]] = defaultdict(list)

    def _get_client_ip(self, request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def _prune(self, cutoff: float) -> None:
        """Drop expired timestamps, and keys left with none."""
        for ip in list(self._requests):
            recent = [t for t in self._requests[ip] if t > cutoff]
            if recent:
                self._requests[ip] = recent
            else:
                del self._requests[ip]

    def check(self, request: Request) -> None:
        """Raise 429 if rate limit exceeded."""
        ip = self._get_client_ip(request)
        now = time.monotonic()
        self._prune(now - self.window_seconds)

        if len(self._requests.get(ip, ())) >= self.max_requests:
            raise HTTPException(status_code=429, detail="Too many requests")

        self._requests[ip].append(now)


# Self check-in: anyone holding a QR token can post, so cap per client.
# 10 per minute covers a family checking in together at the kiosk.
self_check_in_limiter = RateLimiter(max_requests=10, window_seconds=60)
