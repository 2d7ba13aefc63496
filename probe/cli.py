from __future__ import annotations

import argparse
import os


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments for the smoke probe."""
    parser = argparse.ArgumentParser(prog="sping-probe", description="sping smoke probe")
    parser.add_argument("--base-url", default=os.getenv("BASE_URL", "http://127.0.0.1:9001"))
    parser.add_argument("--timeout", type=float, default=10.0)
    parser.add_argument("--poll", type=float, default=0.25, dest="poll_interval")
    parser.add_argument("--max-skew", type=float, default=5.0, dest="max_skew")
    return parser.parse_args(argv)
