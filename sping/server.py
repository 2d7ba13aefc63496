"""uvicorn listener and the graceful-shutdown state machine.

running -> draining on SIGINT/SIGTERM; draining -> stopped once in-flight
requests finish or the drain timeout runs out.
"""
from __future__ import annotations

import asyncio
import contextlib
import signal
import threading
from collections.abc import Callable, Generator
from enum import Enum
from types import FrameType
from typing import Protocol

import uvicorn
from fastapi import FastAPI

from .config import ServerConfig
from .logging_conf import get_logger
from .main import create_app
from .middleware import InFlightTracker

__all__ = [
    "EXIT_OK",
    "EXIT_FAILURE",
    "ShutdownState",
    "SpingServer",
    "ShutdownController",
    "build_server",
    "serve",
]

EXIT_OK = 0
EXIT_FAILURE = 1

_HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

logger = get_logger("server")


class ShutdownState(str, Enum):
    running = "running"
    draining = "draining"
    stopped = "stopped"


class ServerLike(Protocol):
    started: bool
    should_exit: bool
    on_exit: Callable[[], None] | None

    async def serve(self) -> None: ...


class SpingServer(uvicorn.Server):
    """uvicorn server that reports exit signals and never re-raises them.

    uvicorn replays captured signals once serving ends, which would turn a
    clean SIGTERM into a signal death. The controller owns the exit status
    instead.
    """

    def __init__(self, config: uvicorn.Config) -> None:
        super().__init__(config)
        self.on_exit: Callable[[], None] | None = None

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        if self.on_exit is not None:
            self.on_exit()
        super().handle_exit(sig, frame)

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        original = {sig: signal.signal(sig, self.handle_exit) for sig in _HANDLED_SIGNALS}
        try:
            yield
        finally:
            for sig, handler in original.items():
                signal.signal(sig, handler)


class ShutdownController:
    """Drive a server through running, draining and stopped."""

    def __init__(self, server: ServerLike, tracker: InFlightTracker, drain_timeout: float) -> None:
        self.server = server
        self.tracker = tracker
        self.drain_timeout = drain_timeout
        self.state = ShutdownState.running
        self._drain_requested = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        server.on_exit = self.begin_drain

    def begin_drain(self) -> None:
        """Called from the signal handler; only the first call counts."""
        if self.state is not ShutdownState.running:
            return
        self.state = ShutdownState.draining
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._drain_requested.set)

    async def run(self) -> int:
        """Serve until stopped and return the process exit status."""
        self._loop = asyncio.get_running_loop()
        if self.state is ShutdownState.draining:
            self._drain_requested.set()

        serve_task = asyncio.create_task(self.server.serve())
        drain_task = asyncio.create_task(self._drain_requested.wait())
        done, _ = await asyncio.wait({serve_task, drain_task}, return_when=asyncio.FIRST_COMPLETED)

        if drain_task not in done:
            drain_task.cancel()
            await serve_task
            self.state = ShutdownState.stopped
            if not self.server.started:
                logger.error("listener.failed", extra={"event": "listener_failed"})
                return EXIT_FAILURE
            return EXIT_OK

        logger.info(
            "shutdown.draining",
            extra={
                "event": "shutdown_draining",
                "active": self.tracker.active,
                "timeout_s": self.drain_timeout,
            },
        )
        drained = await self.tracker.wait_idle(self.drain_timeout)
        active = self.tracker.active
        await serve_task
        self.state = ShutdownState.stopped

        if not drained:
            logger.error(
                "shutdown.drain_timeout",
                extra={"event": "shutdown_drain_timeout", "active": active},
            )
            return EXIT_FAILURE
        logger.info("shutdown.stopped", extra={"event": "shutdown_stopped"})
        return EXIT_OK


def build_server(config: ServerConfig, app: FastAPI) -> SpingServer:
    """Wrap `app` in a uvicorn server honouring the configured timeouts."""
    uv_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        log_level=config.log_level.lower(),
        access_log=False,
        timeout_keep_alive=config.read_timeout,
        timeout_graceful_shutdown=config.drain_timeout,
    )
    return SpingServer(uv_config)


def serve(config: ServerConfig) -> int:
    """Run the service in the foreground; returns the exit status."""
    tracker = InFlightTracker()
    app = create_app(config, tracker=tracker)
    server = build_server(config, app)
    controller = ShutdownController(server, tracker, config.drain_timeout)

    logger.info(
        "listener.starting",
        extra={
            "event": "listener_starting",
            "host": config.host,
            "port": config.port,
            "cors": config.cors.describe(),
            "read_timeout_s": config.read_timeout,
            "write_timeout_s": config.write_timeout,
        },
    )
    try:
        return asyncio.run(controller.run())
    except SystemExit as exc:  # uvicorn exits 1 when it cannot bind
        logger.error(
            "listener.failed",
            extra={"event": "listener_failed", "code": exc.code},
        )
        return EXIT_FAILURE
