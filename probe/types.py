from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ProbeResult:
    """Outcome of one probe run."""

    version: str | None = None
    skew_s: float | None = None
    failures: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class ProbeError(RuntimeError):
    """Raised when a check against the server fails."""

    check: str = "probe"


class PingError(ProbeError):
    """/ping never answered `{"status": "ok"}` within the timeout."""

    check = "ping"


class VersionError(ProbeError):
    """/version returned no usable version string."""

    check = "version"


class ClockSkewError(ProbeError):
    """/now was unparsable or too far from local time."""

    check = "now"
