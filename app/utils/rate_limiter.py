"""
Per-principal sliding-window rate limiting
"""
import time
from collections import defaultdict, deque
from fastapi import Request, HTTPException
from typing import Deque, Dict, Optional
import logging

import jwt

from app.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    In-memory sliding-window limiter keyed by principal, then client IP

    Runs as middleware, i.e. before route dependencies authenticate the
    caller, so it reads the subject straight from the bearer token.
    Production: Use Redis for distributed rate limiting
    """

    def __init__(self, requests_per_minute: int = 60, requests_per_hour: int = 1000):
        self.windows = {60: requests_per_minute, 3600: requests_per_hour}
        self.history: Dict[str, Deque[float]] = defaultdict(deque)

    def _token_subject(self, request: Request) -> Optional[str]:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        try:
            payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.PyJWTError:
            return None
        return payload.get("sub")

    def _get_client_id(self, request: Request) -> str:
        subject = self._token_subject(request)
        if subject:
            return f"user:{subject}"

        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _cleanup_old_entries(self, now: float) -> None:
        """Drop timestamps older than the longest window, and clients left empty"""
        cutoff = now - max(self.windows)
        for client_id in list(self.history.keys()):
            timestamps = self.history[client_id]
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()
            if not timestamps:
                del self.history[client_id]

    async def check_rate_limit(self, request: Request) -> None:
        """
        Check if request exceeds rate limits

        Raises:
            HTTPException: 429 if rate limit exceeded
        """
        client_id = self._get_client_id(request)
        now = time.time()
        self._cleanup_old_entries(now)
        timestamps = self.history[client_id]

        for window, limit in sorted(self.windows.items()):
            used = sum(1 for ts in timestamps if ts > now - window)
            if used >= limit:
                logger.warning(f"Rate limit exceeded ({window}s): {client_id}")
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": "rate_limit_exceeded",
                        "message": f"Too many requests. Limit: {limit} requests per {window} seconds",
                        "retry_after": window,
                    },
                )

        timestamps.append(now)


# Global instance
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR
)
