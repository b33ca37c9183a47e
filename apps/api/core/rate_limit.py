"""
Rate Limiting Middleware

Fixed-window counters in Redis, keyed per user (or IP) and endpoint.
Write-heavy planner endpoints get their own, hourly limits.
"""
import re
import time
import logging
from typing import Dict, Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from core.config import settings
from core.cache import get_redis_client

logger = logging.getLogger(__name__)

HOUR = 3600

# (method, path pattern) -> (requests, window seconds)
ENDPOINT_LIMITS: Dict[Tuple[str, str], Tuple[int, int]] = {
    ("POST", r"^/v1/plan/generate$"): (5, HOUR),
    ("POST", r"^/v1/plan/blocks/[^/]+/(done|skip|reschedule|rerate)$"): (100, HOUR),
    ("PUT", r"^/v1/topics/[^/]+/rating$"): (100, HOUR),
    ("PUT", r"^/v1/topics/ratings$"): (100, HOUR),
    ("PUT", r"^/v1/availability$"): (100, HOUR),
    ("POST", r"^/v1/availability/weeks/[^/]+/confirm$"): (100, HOUR),
}

EXEMPT_PATHS = {"/health", "/ping", "/docs", "/openapi.json", "/redoc"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware using fixed windows."""

    def __init__(self, app, default_limit: int = 60, window: int = 60):
        super().__init__(app)
        self.default_limit = default_limit
        self.window = window
        self.endpoint_limits = [
            (method, re.compile(pattern), limit)
            for (method, pattern), limit in ENDPOINT_LIMITS.items()
        ]

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        user_id = self._get_user_id(request)
        bucket, limit, window = self._get_endpoint_limit(request.method, request.url.path)

        allowed, remaining, reset_time = self._check_rate_limit(
            user_id=user_id,
            endpoint=bucket,
            limit=limit,
            window=window
        )

        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded",
                    "error_code": "RATE_LIMITED",
                    "limit": limit,
                    "window": window,
                    "reset_at": reset_time
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": str(remaining),
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(max(0, int(reset_time - time.time())))
                }
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)
        return response

    def _get_user_id(self, request: Request) -> str:
        """Get user identifier from request (user ID or IP address)."""
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            from core.security import get_user_id_from_token
            user_id = get_user_id_from_token(auth_header.split(" ", 1)[1])
            if user_id:
                return f"user:{user_id}"

        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _get_endpoint_limit(self, method: str, path: str) -> Tuple[str, int, int]:
        """Bucket name, limit and window for a request."""
        for limit_method, pattern, (limit, window) in self.endpoint_limits:
            if method == limit_method and pattern.match(path):
                return f"{limit_method}:{pattern.pattern}", limit, window
        return path, self.default_limit, self.window

    def _check_rate_limit(
        self,
        user_id: str,
        endpoint: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int, int]:
        """
        Count this request against the window.

        Returns:
            (allowed, remaining, reset_time)
        """
        redis_client = get_redis_client()

        if not redis_client:
            # If Redis unavailable, allow request (graceful degradation)
            logger.warning("Redis unavailable, skipping rate limit check")
            return True, limit, int(time.time()) + window

        key = f"rate_limit:{user_id}:{endpoint}"

        try:
            new_count = redis_client.incr(key)
            if new_count == 1:
                redis_client.expire(key, window)

            ttl = redis_client.ttl(key)
            reset_time = int(time.time()) + (ttl if ttl > 0 else window)

            if new_count > limit:
                return False, 0, reset_time
            return True, max(0, limit - new_count), reset_time

        except Exception as e:
            # On error, allow request (fail open)
            logger.error(f"Rate limit check error: {e}")
            return True, limit, int(time.time()) + window
