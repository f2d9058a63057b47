"""Realtime voice and video session management.

The session manager owns the lifecycle of one bidirectional streaming
session: it pumps microphone audio and low-rate screen frames to the
model, queues the audio that comes back for playback, and drops queued
audio when the model reports that the user interrupted it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from screencoach.capture.base import FrameSource
from screencoach.domain.models import Credential
from screencoach.utils.imaging import downscale_jpeg

logger = logging.getLogger(__name__)


class RealtimeEventKind(str, enum.Enum):
    AUDIO = "audio"
    INTERRUPTED = "interrupted"
    TURN_COMPLETE = "turn_complete"


@dataclass(frozen=True)
class RealtimeEvent:
    kind: RealtimeEventKind
    data: bytes = b""


class RealtimeTransport(ABC):
    """Abstract wire connection to a realtime model."""

    @abstractmethod
    async def connect(self, credential: Credential) -> None:
        ...

    @abstractmethod
    async def send_audio(self, pcm: bytes) -> None:
        """Send 16-bit little-endian mono PCM."""
        ...

    @abstractmethod
    async def send_video(self, jpeg: bytes) -> None:
        ...

    @abstractmethod
    def events(self) -> AsyncIterator[RealtimeEvent]:
        """Yield server events until the connection closes."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class RealtimeSessionManager:
    """Start/stop/interrupt contract around a RealtimeTransport.

    Example usage::

        manager = RealtimeSessionManager(GeminiLiveTransport(), frame_source)
        await manager.start(credential)
        await manager.send_audio(pcm_chunk)
        chunk = await manager.next_audio()
        await manager.stop()
    """

    def __init__(
        self,
        transport: RealtimeTransport,
        frame_source: FrameSource | None = None,
        video_fps: float = 2.0,
        video_width: int = 640,
        video_quality: int = 50,
        on_open: Callable[[], None] | None = None,
        on_close: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_audio: Callable[[bytes], None] | None = None,
    ) -> None:
        self._transport = transport
        self._source = frame_source
        self._video_interval = 1.0 / video_fps
        self._video_width = video_width
        self._video_quality = video_quality
        self.on_open = on_open
        self.on_close = on_close
        self.on_error = on_error
        self.on_audio = on_audio

        self._active = False
        self._ai_speaking = False
        self._playback: asyncio.Queue[bytes] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_ai_speaking(self) -> bool:
        return self._ai_speaking

    @property
    def pending_audio(self) -> int:
        """Number of audio chunks waiting for playback."""
        return self._playback.qsize()

    async def start(self, credential: Credential) -> None:
        """Connect and start the receive loop and video pump."""
        if self._active:
            return
        await self._transport.connect(credential)
        self._active = True
        logger.info("Realtime session opened (%s)", credential.masked)
        if self.on_open is not None:
            self.on_open()
        loop = asyncio.get_running_loop()
        self._tasks = [loop.create_task(self._receive_loop(), name="realtime-receive")]
        if self._source is not None:
            self._tasks.append(loop.create_task(self._video_pump(), name="realtime-video"))

    async def stop(self) -> None:
        """Close the session and drop any queued audio. Safe to call twice."""
        if not self._active:
            return
        self._active = False
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        await asyncio.gather(*(t for t in self._tasks if t is not current), return_exceptions=True)
        self._tasks = []
        self._clear_playback()
        try:
            await self._transport.close()
        finally:
            logger.info("Realtime session closed")
            if self.on_close is not None:
                self.on_close()

    def interrupt(self) -> None:
        """Stop local playback immediately (barge-in)."""
        dropped = self._clear_playback()
        if dropped:
            logger.debug("Interrupted playback, dropped %d chunk(s)", dropped)

    async def send_audio(self, pcm: bytes) -> None:
        if not self._active:
            return
        await self._transport.send_audio(pcm)

    async def next_audio(self) -> bytes:
        """Wait for the next chunk of model audio to play."""
        return await self._playback.get()

    def playback_finished(self) -> None:
        """Report that the player drained everything it was given."""
        if self._playback.empty():
            self._ai_speaking = False

    def _clear_playback(self) -> int:
        dropped = 0
        while not self._playback.empty():
            self._playback.get_nowait()
            dropped += 1
        self._ai_speaking = False
        return dropped

    async def _receive_loop(self) -> None:
        try:
            async for event in self._transport.events():
                if event.kind == RealtimeEventKind.AUDIO and event.data:
                    self._ai_speaking = True
                    self._playback.put_nowait(event.data)
                    if self.on_audio is not None:
                        self.on_audio(event.data)
                elif event.kind == RealtimeEventKind.INTERRUPTED:
                    logger.info("Model interrupted by user")
                    self._clear_playback()
                elif event.kind == RealtimeEventKind.TURN_COMPLETE:
                    self.playback_finished()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Realtime session error: %s", e)
            if self.on_error is not None:
                self.on_error(e)
        if self._active:
            await self.stop()

    async def _video_pump(self) -> None:
        while self._active:
            frame = await self._source.take_snapshot(suppress_unchanged=False)
            if frame is not None:
                jpeg = await asyncio.get_running_loop().run_in_executor(
                    None, downscale_jpeg, frame.jpeg, self._video_width, self._video_quality,
                )
                try:
                    await self._transport.send_video(jpeg)
                except Exception as e:
                    logger.warning("Dropping video frame: %s", e)
            await asyncio.sleep(self._video_interval)
