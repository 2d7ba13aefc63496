from __future__ import annotations

import asyncio
import time
from datetime import datetime

import httpx

from probe.types import ClockSkewError, PingError, VersionError
from sping.domain.clock import parse_server_time
from sping.logging_conf import get_logger

logger = get_logger("probe.client")


async def wait_for_ping(
    client: httpx.AsyncClient, timeout_s: float = 10.0, poll_interval_s: float = 0.25
) -> None:
    """Poll /ping until it answers ok or raise after `timeout_s`.

    Connection errors count as "not up yet" and are retried.
    """
    deadline = time.monotonic() + timeout_s
    last_err = "no response"
    while True:
        try:
            r = await client.get("/ping")
            if r.status_code == 200 and r.json() == {"status": "ok"}:
                logger.info("ping.ok", extra={"event": "ping_ok"})
                return
            last_err = f"unexpected response {r.status_code}: {r.text[:200]}"
        except (httpx.HTTPError, ValueError) as e:
            last_err = str(e) or type(e).__name__
        if time.monotonic() >= deadline:
            break
        await asyncio.sleep(poll_interval_s)
    raise PingError(f"/ping did not pass within {timeout_s}s: {last_err}")


async def fetch_version(client: httpx.AsyncClient) -> str:
    """Return the server's version string."""
    try:
        r = await client.get("/version")
        r.raise_for_status()
        value = r.json().get("version")
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        raise VersionError(f"/version failed: {e}") from e
    if not isinstance(value, str) or not value:
        raise VersionError(f"/version returned {value!r}")
    return value


async def measure_skew(client: httpx.AsyncClient, max_skew_s: float = 5.0) -> float:
    """Return |server time - local time| in seconds, checked against `max_skew_s`."""
    try:
        r = await client.get("/now")
        r.raise_for_status()
        server_time = parse_server_time(r.json()["server_time"])
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
        raise ClockSkewError(f"/now failed: {e}") from e

    skew = abs((datetime.now().astimezone() - server_time).total_seconds())
    if skew > max_skew_s:
        raise ClockSkewError(f"server clock is {skew:.3f}s off (max {max_skew_s}s)")
    return skew
