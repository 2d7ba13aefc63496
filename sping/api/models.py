from __future__ import annotations

from pydantic import BaseModel


class PingResponse(BaseModel):
    """Liveness answer."""
    status: str = "ok"


class VersionResponse(BaseModel):
    """Build version of the running server."""
    version: str


class NowResponse(BaseModel):
    """Server wall-clock time, `YYYY-MM-DD HH:MM:SS.ffffff+HH:MM`."""
    server_time: str
