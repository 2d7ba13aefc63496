"""FastAPI app factory: routes wrapped in the request pipeline."""
from __future__ import annotations

from fastapi import FastAPI

from . import __version__
from .api import router as api_router
from .config import ServerConfig
from .domain.clock import Clock, system_clock
from .logging_conf import get_logger, setup_logging
from .middleware import (
    AccessLogInterceptor,
    CorsInterceptor,
    InFlightTracker,
    Pipeline,
    RecoveryInterceptor,
    WriteDeadlineInterceptor,
)

# Configure logging before anything else.
setup_logging()
logger = get_logger("app")


def create_app(
    config: ServerConfig | None = None,
    *,
    clock: Clock = system_clock,
    tracker: InFlightTracker | None = None,
) -> FastAPI:
    """Build the app for one immutable configuration.

    Pipeline order, outermost first: recovery, in-flight tracking,
    access log, CORS, write deadline.
    """
    config = config or ServerConfig()
    tracker = tracker or InFlightTracker()

    app = FastAPI(title="sping", version=__version__)
    app.state.config = config
    app.state.clock = clock
    app.state.tracker = tracker

    @app.on_event("startup")
    async def _on_startup() -> None:
        logger.info(
            "startup",
            extra={
                "event": "startup",
                "host": config.host,
                "port": config.port,
                "cors": config.cors.describe(),
            },
        )

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        logger.info("shutdown", extra={"event": "shutdown"})

    app.add_middleware(
        Pipeline,
        interceptors=[
            RecoveryInterceptor(),
            tracker,
            AccessLogInterceptor(),
            CorsInterceptor(config),
            WriteDeadlineInterceptor(config),
        ],
    )
    app.include_router(api_router)

    return app


# ASGI entrypoint with default settings: `uvicorn sping.main:app --port 9001`
app = create_app()
