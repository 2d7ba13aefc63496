from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

__all__ = ["Clock", "system_clock", "format_server_time", "parse_server_time"]

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Current wall-clock time in the server's local timezone."""
    return datetime.now().astimezone()


def format_server_time(moment: datetime) -> str:
    """Format as `YYYY-MM-DD HH:MM:SS.ffffff+HH:MM`.

    Naive datetimes are treated as local time.
    """
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.isoformat(sep=" ", timespec="microseconds")


def parse_server_time(value: str) -> datetime:
    """Inverse of format_server_time; raises ValueError on bad input."""
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        raise ValueError(f"server time has no UTC offset: {value!r}")
    return moment
