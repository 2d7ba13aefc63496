from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from .. import __version__
from ..domain.clock import Clock, format_server_time, system_clock
from .models import NowResponse, PingResponse, VersionResponse

router = APIRouter()


def get_clock(request: Request) -> Clock:
    """Clock stored on the app at construction time; overridable in tests."""
    return getattr(request.app.state, "clock", system_clock)


@router.get("/ping", response_model=PingResponse, summary="Liveness check")
async def ping() -> PingResponse:
    return PingResponse(status="ok")


@router.get("/version", response_model=VersionResponse, summary="Build version")
async def version() -> VersionResponse:
    return VersionResponse(version=__version__)


@router.get("/now", response_model=NowResponse, summary="Current server time")
async def now(clock: Clock = Depends(get_clock)) -> NowResponse:
    """Return the server's local time with microseconds and UTC offset."""
    return NowResponse(server_time=format_server_time(clock()))
