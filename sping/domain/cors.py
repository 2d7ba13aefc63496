from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict

from ..logging_conf import get_logger

__all__ = [
    "WILDCARD",
    "CorsWhitelist",
    "normalize_origin",
    "parse_whitelist",
    "cors_headers",
]

WILDCARD = "*"

_BASE_ALLOW_HEADERS = "Content-Type"
_CREDENTIALED_ALLOW_HEADERS = "Authorization, Content-Type"

logger = get_logger("domain.cors")


class CorsWhitelist(BaseModel):
    """Origins allowed to receive CORS headers, or the wildcard."""

    model_config = ConfigDict(frozen=True)

    wildcard: bool = False
    origins: frozenset[str] = frozenset()

    def allows(self, origin: str | None) -> bool:
        if self.wildcard:
            return True
        return bool(origin) and origin in self.origins

    def describe(self) -> list[str]:
        return [WILDCARD] if self.wildcard else sorted(self.origins)


def normalize_origin(uri: str) -> str:
    """Parse a request URI and return its re-serialized form.

    Accepts absolute URIs (scheme and host) and absolute paths.

    Raises:
        ValueError: if the entry is empty or not a valid request URI.
    """
    if not uri:
        raise ValueError("empty URI")
    parts = urlsplit(uri)
    parts.port  # non-numeric ports raise ValueError
    if parts.scheme and parts.netloc:
        return urlunsplit(parts)
    if not parts.scheme and not parts.netloc and parts.path.startswith("/"):
        return urlunsplit(parts)
    raise ValueError(f"invalid request URI: {uri!r}")


def parse_whitelist(raw: str) -> CorsWhitelist:
    """Build the whitelist from a comma-separated string.

    Spaces are ignored. A `*` entry anywhere makes the whitelist a wildcard.
    Malformed entries are logged and dropped.
    """
    origins: set[str] = set()
    for entry in raw.replace(" ", "").split(","):
        if entry == WILDCARD:
            return CorsWhitelist(wildcard=True)
        try:
            origins.add(normalize_origin(entry))
        except ValueError:
            logger.warning(
                "cors.ignore_uri",
                extra={"event": "cors_ignore_uri", "uri": entry},
            )
    return CorsWhitelist(origins=frozenset(origins))


def cors_headers(
    whitelist: CorsWhitelist, origin: str | None, methods: Iterable[str]
) -> dict[str, str]:
    """Return the CORS headers to emit for a request; empty means none.

    A wildcard policy never allows credentials. A whitelisted origin is
    echoed back with credentials and the extended header list.
    """
    allow_methods = ",".join(methods)
    if whitelist.wildcard:
        return {
            "Access-Control-Allow-Origin": WILDCARD,
            "Access-Control-Allow-Methods": allow_methods,
            "Access-Control-Allow-Headers": _BASE_ALLOW_HEADERS,
        }
    if not whitelist.allows(origin):
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": allow_methods,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Headers": _CREDENTIALED_ALLOW_HEADERS,
        "Vary": "Origin",
    }
