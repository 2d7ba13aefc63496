"""Smoke probe for a running sping instance (ping, version, now)."""
