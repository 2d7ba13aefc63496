"""Shared fixtures: apps built from explicit configs, plus test clients."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sping.config import ServerConfig
from sping.domain.cors import parse_whitelist
from sping.main import create_app


@pytest.fixture
def make_client():
    """Build a TestClient for an app configured with the given CORS string."""

    def _make(cors: str = "*", **kwargs) -> TestClient:
        config = ServerConfig(cors=parse_whitelist(cors))
        return TestClient(create_app(config, **kwargs))

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
