"""Realtime voice and video sessions."""

from screencoach.realtime.session import (
    RealtimeEvent,
    RealtimeEventKind,
    RealtimeSessionManager,
    RealtimeTransport,
)

__all__ = [
    "GeminiLiveTransport",
    "RealtimeEvent",
    "RealtimeEventKind",
    "RealtimeSessionManager",
    "RealtimeTransport",
]


def __getattr__(name: str) -> type:
    """Lazy import for the transport that requires google-genai."""
    if name == "GeminiLiveTransport":
        from screencoach.realtime.gemini_live import GeminiLiveTransport
        return GeminiLiveTransport
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
