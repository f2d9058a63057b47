"""Tests for the FrameSource abstract base class."""

from __future__ import annotations

import pytest

from screencoach.capture.base import CaptureError, CaptureErrorKind, FrameSource
from screencoach.domain.models import CapturedFrame


class CountingSource(FrameSource):
    def __init__(self) -> None:
        super().__init__()
        self.events: list[str] = []

    async def start_capture(self) -> None:
        self.events.append("start")
        self._is_active = True

    async def stop_capture(self) -> None:
        self.events.append("stop")
        self._is_active = False

    async def take_snapshot(self, suppress_unchanged: bool = True) -> CapturedFrame | None:
        return None


class TestFrameSourceInterface:
    def test_cannot_instantiate_abstract_class(self) -> None:
        with pytest.raises(TypeError):
            FrameSource()  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops(self) -> None:
        source = CountingSource()
        async with source as active:
            assert active is source
            assert source.is_active
        assert not source.is_active
        assert source.events == ["start", "stop"]


class TestCaptureError:
    def test_default_kind(self) -> None:
        assert CaptureError("boom").kind == CaptureErrorKind.UNKNOWN

    def test_kind_is_kept(self) -> None:
        error = CaptureError("denied", CaptureErrorKind.PERMISSION_DENIED)
        assert error.kind == CaptureErrorKind.PERMISSION_DENIED
        assert str(error) == "denied"
