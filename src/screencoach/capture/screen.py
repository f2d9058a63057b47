"""Screen capture implementation using mss.

Grabs one monitor, suppresses frames that barely differ from the last
one returned, and hands out downscaled JPEG frames.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import mss
import mss.exception
import numpy as np

from screencoach.capture.base import CaptureError, CaptureErrorKind, FrameSource
from screencoach.capture.change import has_frame_changed
from screencoach.domain.models import CapturedFrame
from screencoach.utils.imaging import bgra_to_bgr, encode_jpeg, resize_for_mllm, to_gray

logger = logging.getLogger(__name__)


class ScreenCapture(FrameSource):
    """Captures frames from a local display with mss.

    mss handles are not thread-safe, so each grab opens its own handle
    inside the thread pool executor.
    """

    def __init__(
        self,
        monitor_index: int = 1,
        change_threshold: float = 0.02,
        pixel_delta: int = 25,
        jpeg_quality: int = 60,
        max_dimension: int = 1568,
    ) -> None:
        super().__init__()
        self._monitor_index = monitor_index
        self._change_threshold = change_threshold
        self._pixel_delta = pixel_delta
        self._jpeg_quality = jpeg_quality
        self._max_dimension = max_dimension
        self._prev_gray: np.ndarray | None = None

    async def start_capture(self) -> None:
        """Verify the monitor exists and can be read."""
        loop = asyncio.get_running_loop()
        try:
            width, height = await loop.run_in_executor(None, self._probe_sync)
        except asyncio.CancelledError:
            raise CaptureError("Screen capture start was cancelled", CaptureErrorKind.CANCELLED) from None
        self._prev_gray = None
        self._is_active = True
        logger.info("Started screen capture on monitor %d (%dx%d)", self._monitor_index, width, height)

    async def stop_capture(self) -> None:
        if self._is_active:
            logger.info("Stopped screen capture on monitor %d", self._monitor_index)
        self._is_active = False
        self._prev_gray = None

    async def take_snapshot(self, suppress_unchanged: bool = True) -> CapturedFrame | None:
        if not self._is_active:
            return None
        loop = asyncio.get_running_loop()
        try:
            image = await loop.run_in_executor(None, self._grab_sync)
        except CaptureError as e:
            logger.warning("Screen grab failed: %s", e)
            return None

        gray = to_gray(image)
        if suppress_unchanged:
            if self._prev_gray is not None and not has_frame_changed(
                self._prev_gray, gray, self._change_threshold, self._pixel_delta
            ):
                logger.debug("Screen unchanged, suppressing frame")
                return None
            self._prev_gray = gray

        resized = resize_for_mllm(bgra_to_bgr(image), self._max_dimension)
        self._frame_counter += 1
        return CapturedFrame(
            jpeg=encode_jpeg(resized, self._jpeg_quality),
            width=resized.shape[1],
            height=resized.shape[0],
            timestamp=datetime.now(),
            frame_number=self._frame_counter,
            source_device=f"screen:{self._monitor_index}",
        )

    def _probe_sync(self) -> tuple[int, int]:
        """Synchronous monitor check (runs in thread pool)."""
        try:
            with mss.mss() as sct:
                if self._monitor_index >= len(sct.monitors):
                    raise CaptureError(
                        f"Monitor {self._monitor_index} not found ({len(sct.monitors) - 1} available)",
                        CaptureErrorKind.NO_SOURCE,
                    )
                monitor = sct.monitors[self._monitor_index]
                sct.grab(monitor)
                return monitor["width"], monitor["height"]
        except PermissionError as e:
            raise CaptureError(f"Screen recording permission denied: {e}", CaptureErrorKind.PERMISSION_DENIED) from e
        except mss.exception.ScreenShotError as e:
            raise CaptureError(f"Cannot read screen: {e}", CaptureErrorKind.DEVICE_UNREADABLE) from e

    def _grab_sync(self) -> np.ndarray:
        """Synchronous frame grab (runs in thread pool). Returns BGRA."""
        try:
            with mss.mss() as sct:
                shot = sct.grab(sct.monitors[self._monitor_index])
                return np.array(shot)
        except (mss.exception.ScreenShotError, IndexError) as e:
            raise CaptureError(f"Failed to grab screen: {e}", CaptureErrorKind.DEVICE_UNREADABLE) from e
