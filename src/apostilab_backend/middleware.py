import asyncio
import logging
import time
from typing import Dict, Iterable, Optional, Tuple
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RateLimiter:
    """
    Simple in-memory rate limiter using a fixed window algorithm.
    Tracks requests per client identifier within a one-minute window.

    A limit of 0 (or less) disables limiting. Expired windows are swept
    at most once per window so the table does not grow without bound.
    """

    def __init__(self, requests_per_minute: int = 60, window_seconds: float = 60.0):
        self.rpm = requests_per_minute
        self.window = window_seconds
        # identifier -> (count, window_start_time)
        self.requests: Dict[str, Tuple[int, float]] = {}
        self._last_cleanup = time.time()

    def is_allowed(self, identifier: str) -> bool:
        if self.rpm <= 0:
            return True

        now = time.time()
        if now - self._last_cleanup > self.window:
            self.cleanup()

        count, start_time = self.requests.get(identifier, (0, now))

        if now - start_time > self.window:
            # New window
            self.requests[identifier] = (1, now)
            return True

        if count >= self.rpm:
            return False

        self.requests[identifier] = (count + 1, start_time)
        return True

    def cleanup(self) -> None:
        """Drop expired windows so idle clients do not accumulate."""
        now = time.time()
        keys_to_delete = [k for k, v in self.requests.items() if now - v[1] > self.window]
        for k in keys_to_delete:
            del self.requests[k]
        self._last_cleanup = now


def client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """
    Client address for rate limiting and logs.

    X-Forwarded-For and X-Real-IP are only read when the direct peer is one
    of ``trusted_proxies``. Otherwise the socket peer address is used.
    """
    peer = request.client.host if request.client else "unknown"
    if peer not in set(trusted_proxies):
        return peer

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return peer


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id, writes one access log line per request
    and cuts off handlers that run past the configured timeout (504).
    """

    def __init__(self, app, timeout_seconds: Optional[float] = 60.0, trusted_proxies: Iterable[str] = ()):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds
        self.trusted_proxies = tuple(trusted_proxies)

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            if self.timeout_seconds and self.timeout_seconds > 0:
                response = await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
            else:
                response = await call_next(request)
        except asyncio.TimeoutError:
            logger.error(
                "[%s] %s %s timed out after %.0fs",
                request_id, request.method, request.url.path, self.timeout_seconds,
            )
            response = JSONResponse(status_code=504, content={"detail": "request timed out"})

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            '[%s] %s - "%s %s" %d in %.1fms',
            request_id,
            client_ip(request, self.trusted_proxies),
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response
