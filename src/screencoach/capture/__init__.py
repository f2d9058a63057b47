"""Frame capture for screencoach.

Public API:
    FrameSource -- Abstract base class
    CaptureError, CaptureErrorKind -- Start-time failures
    ScreenCapture -- mss screen capture implementation
"""

from screencoach.capture.base import CaptureError, CaptureErrorKind, FrameSource

__all__ = ["CaptureError", "CaptureErrorKind", "FrameSource", "ScreenCapture"]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "ScreenCapture":
        from screencoach.capture.screen import ScreenCapture
        return ScreenCapture
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
