import threading
import time
from collections import defaultdict

from fastapi import HTTPException
from starlette.requests import Request


class SimpleRateLimiter:
    """Sliding-window rate limiter; in-memory (per process). Used by API to cap deck creations and uploads per caller.
    Why available: Every request starts an LLM call and two renders, so one caller must not flood the service."""

    def __init__(self, max_requests: int, window_seconds: int):
        """Configure limiter: max_requests per window_seconds per key (caller id, or client IP when anonymous)."""
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.storage = defaultdict(list)  # key -> [timestamps]
        self._lock = threading.Lock()

    def check(self, request: Request, key: str | None = None):
        """Raise 429 if the key has exceeded the rate limit; otherwise record the request. Called on each protected endpoint."""
        now = time.time()
        if key is None:
            key = request.client.host if request.client else "unknown"

        with self._lock:
            # Remove expired timestamps
            self.storage[key] = [
                t for t in self.storage[key] if now - t < self.window_seconds
            ]

            if len(self.storage[key]) >= self.max_requests:
                raise HTTPException(
                    status_code=429,
                    detail="Rate limit exceeded. Please retry later.",
                )

            self.storage[key].append(now)
