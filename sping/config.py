"""Immutable server configuration, built once at startup."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .domain.cors import CorsWhitelist

__all__ = ["DEFAULT_METHODS", "ServerConfig"]

DEFAULT_METHODS: tuple[str, ...] = ("GET", "OPTIONS")


class ServerConfig(BaseModel):
    """Listener, CORS and timeout settings shared by every component."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = Field(9001, ge=0, le=65535)
    cors: CorsWhitelist = CorsWhitelist(wildcard=True)
    allowed_methods: tuple[str, ...] = DEFAULT_METHODS
    read_timeout: float = Field(10.0, gt=0)
    write_timeout: float = Field(10.0, gt=0)
    drain_timeout: float = Field(5.0, gt=0)
    log_level: str = "INFO"
