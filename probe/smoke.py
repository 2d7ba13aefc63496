#!/usr/bin/env python3
"""Smoke probe: check a running sping instance end to end.

Steps:
- wait for /ping to answer ok
- read /version
- compare /now against the local clock
- emit a compact summary and exit code
"""
from __future__ import annotations

import asyncio
import sys

import httpx

from probe.cli import parse_args
from probe.client import fetch_version, measure_skew, wait_for_ping
from probe.types import ProbeError, ProbeResult
from sping.logging_conf import get_logger, setup_logging

setup_logging()
logger = get_logger("probe")


def _record(result: ProbeResult, err: ProbeError) -> None:
    result.failures.append({"check": err.check, "error": str(err)})
    logger.warning("probe.check_failed", extra={"event": "check_failed", "check": err.check})


async def run_probe(
    *,
    base_url: str,
    timeout_s: float = 10.0,
    poll_interval_s: float = 0.25,
    max_skew_s: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[ProbeResult, int]:
    """Run every check and return the result plus an exit code."""
    result = ProbeResult()
    async with httpx.AsyncClient(base_url=base_url, timeout=5.0, transport=transport) as client:
        try:
            await wait_for_ping(client, timeout_s, poll_interval_s)
        except ProbeError as e:
            # Nothing else is worth asking a server that never came up.
            _record(result, e)
            return result, 1

        try:
            result.version = await fetch_version(client)
        except ProbeError as e:
            _record(result, e)

        try:
            result.skew_s = round(await measure_skew(client, max_skew_s), 6)
        except ProbeError as e:
            _record(result, e)

    logger.info(
        "probe.summary",
        extra={
            "event": "summary",
            "base_url": base_url,
            "version": result.version,
            "skew_s": result.skew_s,
            "failures": result.failures,
        },
    )
    return result, 0 if result.ok else 1


def main(argv: list[str] | None = None) -> None:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    _, code = asyncio.run(
        run_probe(
            base_url=args.base_url,
            timeout_s=args.timeout,
            poll_interval_s=args.poll_interval,
            max_skew_s=args.max_skew,
        )
    )
    raise SystemExit(code)


if __name__ == "__main__":
    main()
