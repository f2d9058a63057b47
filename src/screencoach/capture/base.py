"""Abstract base class for frame sources.

A frame source is started once, then polled for snapshots by any number
of consumers. It performs its own visual-diff suppression: a snapshot
that is indistinguishable from the previous one comes back as None.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod

from screencoach.domain.models import CapturedFrame

logger = logging.getLogger(__name__)


class CaptureErrorKind(str, enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    NO_SOURCE = "no_source"
    DEVICE_UNREADABLE = "device_unreadable"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class CaptureError(Exception):
    """Raised when a frame source cannot be started or read."""

    def __init__(self, message: str, kind: CaptureErrorKind = CaptureErrorKind.UNKNOWN) -> None:
        super().__init__(message)
        self.kind = kind


class FrameSource(ABC):
    """Abstract interface for a pollable source of screen frames.

    Example usage::

        async with ScreenCapture(monitor_index=1) as source:
            frame = await source.take_snapshot()
            if frame is not None:
                process(frame)
    """

    def __init__(self) -> None:
        self._frame_counter: int = 0
        self._is_active: bool = False

    @property
    def is_active(self) -> bool:
        """Whether capture has been started and not yet stopped."""
        return self._is_active

    @abstractmethod
    async def start_capture(self) -> None:
        """Acquire the capture device.

        Raises:
            CaptureError: If the device cannot be opened.
        """
        ...

    @abstractmethod
    async def stop_capture(self) -> None:
        """Release the capture device. Safe to call more than once."""
        ...

    @abstractmethod
    async def take_snapshot(self, suppress_unchanged: bool = True) -> CapturedFrame | None:
        """Grab the current frame.

        Returns None when capture is not active, or when
        ``suppress_unchanged`` is set and the frame did not change
        enough since the last returned one.
        """
        ...

    async def __aenter__(self) -> FrameSource:
        await self.start_capture()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.stop_capture()
