"""Insight backend: best-effort client and in-memory reference server."""

from screencoach.backend.client import InsightBackend

__all__ = ["InsightBackend", "create_app"]


def __getattr__(name: str):
    """Lazy import for the server, which requires fastapi."""
    if name == "create_app":
        from screencoach.backend.server import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
