"""Tests for the mss screen capture source."""

from __future__ import annotations

import numpy as np
import pytest

from screencoach.capture.base import CaptureError, CaptureErrorKind
from screencoach.capture.screen import ScreenCapture


def solid(value: int, height: int = 90, width: int = 160) -> np.ndarray:
    """A BGRA frame of a single gray level."""
    return np.full((height, width, 4), value, dtype=np.uint8)


@pytest.fixture
def frames() -> list[np.ndarray]:
    return []


@pytest.fixture
def capture(monkeypatch, frames) -> ScreenCapture:
    cap = ScreenCapture(monitor_index=1, max_dimension=100)
    monkeypatch.setattr(cap, "_probe_sync", lambda: (160, 90))
    monkeypatch.setattr(cap, "_grab_sync", lambda: frames.pop(0))
    return cap


class TestScreenCapture:
    @pytest.mark.asyncio
    async def test_snapshot_before_start(self, capture) -> None:
        assert await capture.take_snapshot() is None

    @pytest.mark.asyncio
    async def test_frame_is_resized_and_encoded(self, capture, frames) -> None:
        frames.append(solid(10))
        await capture.start_capture()

        frame = await capture.take_snapshot()

        assert frame is not None
        assert frame.jpeg[:2] == b"\xff\xd8"
        assert (frame.width, frame.height) == (100, 56)
        assert frame.frame_number == 1
        assert frame.source_device == "screen:1"

    @pytest.mark.asyncio
    async def test_unchanged_frame_suppressed(self, capture, frames) -> None:
        frames.extend([solid(10), solid(10), solid(200)])
        await capture.start_capture()

        assert await capture.take_snapshot() is not None
        assert await capture.take_snapshot() is None
        assert await capture.take_snapshot() is not None

    @pytest.mark.asyncio
    async def test_forced_snapshot_ignores_diff(self, capture, frames) -> None:
        frames.extend([solid(10), solid(10)])
        await capture.start_capture()

        assert await capture.take_snapshot() is not None
        assert await capture.take_snapshot(suppress_unchanged=False) is not None

    @pytest.mark.asyncio
    async def test_grab_failure_returns_none(self, capture, monkeypatch) -> None:
        def fail() -> np.ndarray:
            raise CaptureError("display went away", CaptureErrorKind.DEVICE_UNREADABLE)

        monkeypatch.setattr(capture, "_grab_sync", fail)
        await capture.start_capture()

        assert await capture.take_snapshot() is None

    @pytest.mark.asyncio
    async def test_start_failure_propagates(self, monkeypatch) -> None:
        cap = ScreenCapture(monitor_index=5)

        def missing() -> tuple[int, int]:
            raise CaptureError("Monitor 5 not found", CaptureErrorKind.NO_SOURCE)

        monkeypatch.setattr(cap, "_probe_sync", missing)

        with pytest.raises(CaptureError) as exc_info:
            await cap.start_capture()

        assert exc_info.value.kind == CaptureErrorKind.NO_SOURCE
        assert not cap.is_active

    @pytest.mark.asyncio
    async def test_stop(self, capture, frames) -> None:
        await capture.start_capture()
        await capture.stop_capture()
        assert not capture.is_active
        assert await capture.take_snapshot() is None
