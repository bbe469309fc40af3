"""Errors surfaced to callers. Everything else is logged and absorbed where it happens."""


class ConnectFailure(Exception):
    """Audio source unreachable or did not become ready within the connect timeout."""
