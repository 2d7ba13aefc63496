#!/usr/bin/env python3
"""Entry point: `python -m sping --port 9001 --cors https://a.example`."""
from __future__ import annotations

import sys

from .cli import load_config
from .logging_conf import setup_logging
from .server import serve


def main(argv: list[str] | None = None) -> None:
    config = load_config(sys.argv[1:] if argv is None else argv)
    setup_logging(config.log_level)
    raise SystemExit(serve(config))


if __name__ == "__main__":
    main()
