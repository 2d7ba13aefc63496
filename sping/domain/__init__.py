"""Pure domain utilities: CORS whitelist/policy and server-time formatting.

Nothing here imports FastAPI, so both the server and the probe can use it.
"""
__all__ = ["cors", "clock"]
