"""
Rate limiting for API endpoints
"""
import time
from collections import defaultdict, deque
from fastapi import Request, HTTPException
from typing import Deque, Dict
import logging

from app.config import settings

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


class RateLimiter:
    """
    Sliding-window limiter kept in process memory

    One window per client: the acting user when the request carries one,
    otherwise the client IP. Not shared between replicas.
    """

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)

    def client_id(self, request: Request) -> str:
        actor = request.headers.get("X-User-Id")
        if actor:
            return f"user:{actor}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    def check(self, client_id: str, now: float) -> None:
        """
        Record a hit for client_id

        Raises:
            HTTPException: 429 when the window is full
        """
        window = self.hits[client_id]
        while window and window[0] <= now - self.window_seconds:
            window.popleft()

        if len(window) >= self.max_requests:
            retry_after = int(window[0] + self.window_seconds - now) + 1
            logger.warning(f"Rate limit exceeded: {client_id}")
            raise HTTPException(
                status_code=429,
                detail={
                    "error": "rate_limit_exceeded",
                    "message": (
                        f"Too many requests. Limit: {self.max_requests} requests "
                        f"per {self.window_seconds} seconds"
                    ),
                    "retry_after": retry_after,
                },
            )

        window.append(now)

    async def check_rate_limit(self, request: Request) -> None:
        if request.url.path in EXEMPT_PATHS:
            return
        self.check(self.client_id(request), time.time())

    def reset(self) -> None:
        self.hits.clear()


# Global instance
rate_limiter = RateLimiter(
    max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
)
