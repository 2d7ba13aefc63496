from __future__ import annotations

import argparse
import os

from pydantic import ValidationError

from .config import ServerConfig
from .domain.cors import parse_whitelist


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sping", description="Minimal HTTP ping server")
    parser.add_argument("--host", default="0.0.0.0", help="Server host")
    parser.add_argument("--port", type=int, default=9001, help="Server port")
    parser.add_argument(
        "--cors", default="*", help="List of comma separated domains for CORS, or *"
    )
    parser.add_argument(
        "--server-read-timeout", type=float, default=10.0, dest="read_timeout",
        help="Seconds an idle connection may wait for the next request",
    )
    parser.add_argument(
        "--server-write-timeout", type=float, default=10.0, dest="write_timeout",
        help="Seconds allowed for writing a response",
    )
    parser.add_argument(
        "--drain-timeout", type=float, default=5.0,
        help="Seconds to wait for in-flight requests on shutdown",
    )
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO").upper())
    return parser


def load_config(argv: list[str] | None = None) -> ServerConfig:
    """Parse CLI arguments and freeze them into a ServerConfig.

    Invalid values exit through argparse with status 2.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        return ServerConfig(
            host=args.host,
            port=args.port,
            cors=parse_whitelist(args.cors),
            read_timeout=args.read_timeout,
            write_timeout=args.write_timeout,
            drain_timeout=args.drain_timeout,
            log_level=args.log_level,
        )
    except ValidationError as e:
        parser.error(str(e))
