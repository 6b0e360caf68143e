"""Fixed-window rate limiting for the credential endpoints."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import Protocol, runtime_checkable

from fastapi import status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.types import ASGIApp

from core import Settings

logger = logging.getLogger(__name__)

CREDENTIAL_PATHS = frozenset({"/api/v1/auth/login", "/api/v1/auth/register"})


@runtime_checkable
class SupportsRateLimitClient(Protocol):
    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> None: ...


class RateLimiter:
    """Simple fixed-window rate limiter backed by Redis."""

    def __init__(
        self,
        redis_client: SupportsRateLimitClient,
        limit: int,
        window_seconds: int,
        prefix: str = "rate-limit",
    ) -> None:
        self.redis = redis_client
        self.limit = max(limit, 0)
        self.window_seconds = max(window_seconds, 0)
        self.prefix = prefix

    async def allow(self, key: str) -> bool:
        """Return True when the request should be allowed, False if limited."""
        if self.limit == 0 or self.window_seconds == 0:
            return True

        bucket = int(time.time()) // self.window_seconds
        redis_key = f"{self.prefix}:{key}:{bucket}"

        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, self.window_seconds)
        return count <= self.limit


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Limiter over a lazily connecting Redis client."""
    return RateLimiter(
        Redis.from_url(settings.redis_url, decode_responses=False),
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


class ClientIdentifier:
    """Names the client a request is counted against.

    The peer address is used unless the peer is a trusted proxy, in which case
    the first valid address in the configured forwarding headers wins.
    """

    def __init__(
        self,
        trusted_proxies: Iterable[str] = (),
        ip_headers: Sequence[str] = ("x-forwarded-for", "x-real-ip"),
    ) -> None:
        networks: list[IPv4Network | IPv6Network] = []
        for cidr in trusted_proxies:
            try:
                networks.append(ip_network(cidr, strict=False))
            except ValueError as exc:
                raise ValueError(f"Invalid CIDR in RATE_LIMIT_TRUSTED_PROXIES: {cidr}") from exc
        self.trusted_networks = tuple(networks)
        self.ip_headers = tuple(header.lower() for header in ip_headers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientIdentifier":
        return cls(settings.rate_limit_trusted_proxies, settings.rate_limit_ip_headers)

    def __call__(self, request: Request) -> str:
        host = request.client.host if request.client else None
        if host and self._is_trusted(host):
            forwarded = self._forwarded_ip(request)
            if forwarded:
                return forwarded
        return host or "anonymous"

    def _is_trusted(self, host: str) -> bool:
        try:
            peer = ip_address(host)
        except ValueError:
            return False
        return any(peer in network for network in self.trusted_networks)

    def _forwarded_ip(self, request: Request) -> str | None:
        for header in self.ip_headers:
            for candidate in request.headers.get(header, "").split(","):
                candidate = candidate.strip()
                try:
                    ip_address(candidate)
                except ValueError:
                    continue
                return candidate
        return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Counts requests to ``limited_paths`` with ``app.state.rate_limiter``."""

    def __init__(
        self,
        app: ASGIApp,
        client_identifier: Callable[[Request], str],
        limited_paths: Iterable[str] = CREDENTIAL_PATHS,
    ) -> None:
        super().__init__(app)
        self.client_identifier = client_identifier
        self.limited_paths = frozenset(limited_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        if request.url.path.rstrip("/") not in self.limited_paths:
            return await call_next(request)

        limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            return _unavailable()

        client_key = self.client_identifier(request)
        try:
            is_allowed = await limiter.allow(client_key)
        except Exception:
            logger.warning("Rate limiter backend unavailable", exc_info=True)
            return _unavailable()

        if not is_allowed:
            logger.info("Rate limit exceeded", extra={"client": client_key})
            return JSONResponse(
                {"detail": "Too Many Requests", "code": "RateLimited"},
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            )

        return await call_next(request)


def _unavailable() -> JSONResponse:
    return JSONResponse(
        {"detail": "Service unavailable", "code": "RateLimiterUnavailable"},
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )
