import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def is_json_request(request: Request) -> bool:
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    return content_type == "application/json" or content_type.endswith("+json")


def _forwarded_for(request: Request) -> list[str]:
    raw = request.headers.get("x-forwarded-for", "")
    return [part.strip() for part in raw.split(",") if part.strip()]


def originating_ip(request: Request) -> str:
    """Best-effort address of the end client: first X-Forwarded-For hop, else the peer."""
    hops = _forwarded_for(request)
    if hops:
        return hops[0]
    return request.client.host if request.client else ""


def rate_limit_key(request: Request, trust_proxy: bool) -> str:
    """
    Client key for rate limiting. Behind one trusted proxy only the hop that
    proxy appended can be relied on, which is the last X-Forwarded-For entry.
    """
    if trust_proxy:
        hops = _forwarded_for(request)
        if hops:
            return hops[-1]
    return request.client.host if request.client else "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


@dataclass(frozen=True)
class RateLimitInfo:
    allowed: bool
    limit: int
    remaining: int
    reset_in: int

    def headers(self) -> dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_in),
        }


class FixedWindowRateLimiter:
    """In-process fixed-window counter per client key."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._next_sweep = clock() + window_seconds

    def _sweep(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds

    def hit(self, key: str) -> RateLimitInfo:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)

        start, count = self._windows.get(key, (now, 0))
        if now - start >= self.window_seconds:
            start, count = now, 0
        count += 1
        self._windows[key] = (start, count)

        reset_in = max(0, math.ceil(start + self.window_seconds - now))
        return RateLimitInfo(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_in=reset_in,
        )


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        limiter: FixedWindowRateLimiter,
        trust_proxy: bool = True,
        path_prefix: str = "/api/",
    ) -> None:
        super().__init__(app)
        self._limiter = limiter
        self._trust_proxy = trust_proxy
        self._path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self._path_prefix):
            return await call_next(request)

        key = rate_limit_key(request, self._trust_proxy)
        info = self._limiter.hit(key)
        if not info.allowed:
            logger.warning("[ratelimit] exceeded | key=%s | path=%s", key, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"ok": False, "error": "Too many requests, please try again later."},
                headers={**info.headers(), "Retry-After": str(info.reset_in)},
            )

        response = await call_next(request)
        response.headers.update(info.headers())
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Caps JSON request bodies. Multipart uploads are limited per file elsewhere."""

    def __init__(self, app, max_bytes: int) -> None:
        super().__init__(app)
        self._max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        if is_json_request(request):
            declared = request.headers.get("content-length")
            if declared is not None:
                try:
                    too_large = int(declared) > self._max_bytes
                except ValueError:
                    return JSONResponse(status_code=400, content={"detail": "Invalid Content-Length"})
            else:
                too_large = len(await request.body()) > self._max_bytes
            if too_large:
                return JSONResponse(status_code=413, content={"detail": "Request body too large"})
        return await call_next(request)
