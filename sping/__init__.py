"""sping: a tiny HTTP liveness probe service.

The version is a build-time constant; it is what `/version` reports.
"""
from importlib.metadata import PackageNotFoundError, version

try:  # Installed distributions report their own metadata.
    __version__ = version("sping")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.1"
