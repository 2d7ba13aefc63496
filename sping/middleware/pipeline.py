from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from typing import Protocol

from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

__all__ = ["Next", "Interceptor", "Pipeline"]

Next = Callable[[Request], Awaitable[Response]]


class Interceptor(Protocol):
    """One pipeline stage: do work around `call_next` or answer directly."""

    async def handle(self, request: Request, call_next: Next) -> Response: ...


class Pipeline:
    """ASGI middleware running interceptors in order, outermost first.

    Registered once per app:
        app.add_middleware(Pipeline, interceptors=[outer, ..., inner])

    The routed app's response is buffered into a Response object so every
    stage sees a finished response, and exceptions raised by the app reach
    the interceptors instead of the server.
    """

    def __init__(self, app: ASGIApp, interceptors: Sequence[Interceptor]) -> None:
        self.app = app
        self.interceptors = tuple(interceptors)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        request = Request(scope, receive)
        response = await self.dispatch(request, partial(self._call_app, scope, receive))
        await response(scope, receive, send)

    async def dispatch(self, request: Request, endpoint: Next) -> Response:
        return await self._run(0, request, endpoint=endpoint)

    async def _run(self, index: int, request: Request, *, endpoint: Next) -> Response:
        if index >= len(self.interceptors):
            return await endpoint(request)
        next_stage = partial(self._run, index + 1, endpoint=endpoint)
        return await self.interceptors[index].handle(request, next_stage)

    async def _call_app(self, scope: Scope, receive: Receive, request: Request) -> Response:
        start: Message | None = None
        body: list[bytes] = []

        async def capture(message: Message) -> None:
            nonlocal start
            if message["type"] == "http.response.start":
                start = message
            elif message["type"] == "http.response.body":
                body.append(message.get("body", b""))

        await self.app(scope, receive, capture)
        if start is None:
            raise RuntimeError("No response returned.")

        response = Response(content=b"".join(body), status_code=start["status"])
        response.raw_headers = list(start.get("headers", []))
        return response
