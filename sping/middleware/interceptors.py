from __future__ import annotations

import asyncio

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from ..config import ServerConfig
from ..domain.cors import cors_headers
from ..logging_conf import get_logger
from .pipeline import Next

__all__ = [
    "ClientAddressError",
    "RecoveryInterceptor",
    "InFlightTracker",
    "AccessLogInterceptor",
    "CorsInterceptor",
    "WriteDeadlineInterceptor",
    "apply_cors",
    "resolve_client_ip",
]

logger = get_logger("middleware")


class ClientAddressError(ValueError):
    """The peer address of a request could not be turned into an IP."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Unable to parse client IP: {raw}")
        self.raw = raw


def apply_cors(request: Request, response: Response) -> Response:
    """Copy the CORS headers decided for this request onto `response`."""
    response.headers.update(getattr(request.state, "cors_headers", {}))
    return response


def resolve_client_ip(request: Request) -> str:
    """Prefer X-Real-Ip, else the host part of the peer address."""
    if "x-real-ip" in request.headers:
        return request.headers["x-real-ip"]
    client = request.client
    if client is None:
        raise ClientAddressError("")
    host, port = client
    if not host:
        raise ClientAddressError(f"{host}:{port}")
    return host


class RecoveryInterceptor:
    """Outermost stage: any escaping exception becomes a plain 500."""

    async def handle(self, request: Request, call_next: Next) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception(
                "request.error",
                extra={
                    "event": "request_error",
                    "method": request.method,
                    "path": request.url.path,
                },
            )
            return apply_cors(request, PlainTextResponse("Internal server error", status_code=500))


class InFlightTracker:
    """Count requests currently inside the pipeline.

    Only touched from the event loop thread, so a plain int is enough.
    """

    def __init__(self) -> None:
        self.active = 0
        self._idle = asyncio.Event()
        self._idle.set()

    async def handle(self, request: Request, call_next: Next) -> Response:
        self.active += 1
        self._idle.clear()
        try:
            return await call_next(request)
        finally:
            self.active -= 1
            if self.active == 0:
                self._idle.set()

    async def wait_idle(self, timeout: float) -> bool:
        """Wait until no request is active; False if `timeout` ran out first."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except TimeoutError:
            return False
        return True


class AccessLogInterceptor:
    """Log `ip method path` once the downstream response exists."""

    async def handle(self, request: Request, call_next: Next) -> Response:
        response = await call_next(request)
        try:
            ip = resolve_client_ip(request)
        except ClientAddressError as e:
            logger.warning(
                "access.bad_client",
                extra={"event": "access_bad_client", "client": e.raw},
            )
            return apply_cors(request, PlainTextResponse(str(e), status_code=400))

        logger.info(
            "access",
            extra={
                "event": "access",
                "ip": ip,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
            },
        )
        return response


class CorsInterceptor:
    """Apply the configured CORS policy; answer preflights directly."""

    def __init__(self, config: ServerConfig) -> None:
        self.whitelist = config.cors
        self.methods = config.allowed_methods

    async def handle(self, request: Request, call_next: Next) -> Response:
        # Outer stages reuse these for the responses they build themselves.
        request.state.cors_headers = cors_headers(
            self.whitelist, request.headers.get("Origin"), self.methods
        )

        if request.method == "OPTIONS":
            return apply_cors(request, Response(status_code=200))

        return apply_cors(request, await call_next(request))


class WriteDeadlineInterceptor:
    """Answer 503 when the routed app takes longer than the write timeout."""

    def __init__(self, config: ServerConfig) -> None:
        self.timeout = config.write_timeout

    async def handle(self, request: Request, call_next: Next) -> Response:
        try:
            async with asyncio.timeout(self.timeout):
                return await call_next(request)
        except TimeoutError:
            logger.warning(
                "request.write_timeout",
                extra={
                    "event": "request_write_timeout",
                    "method": request.method,
                    "path": request.url.path,
                    "timeout_s": self.timeout,
                },
            )
            return PlainTextResponse("Service unavailable", status_code=503)
