"""Gemini Live transport for realtime sessions.

Uses the google-genai live API: PCM audio and JPEG frames in, spoken
audio out with a prebuilt voice.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import types

from screencoach.domain.models import Credential
from screencoach.interpreter.prompts import LIVE_SYSTEM_PROMPT
from screencoach.realtime.session import RealtimeEvent, RealtimeEventKind, RealtimeTransport

logger = logging.getLogger(__name__)


class GeminiLiveTransport(RealtimeTransport):
    """RealtimeTransport over ``client.aio.live.connect``."""

    def __init__(
        self,
        model: str = "gemini-2.5-flash-native-audio-preview-09-2025",
        voice_name: str = "Puck",
        input_sample_rate: int = 16000,
        system_instruction: str = LIVE_SYSTEM_PROMPT,
    ) -> None:
        self._model = model
        self._voice_name = voice_name
        self._input_sample_rate = input_sample_rate
        self._system_instruction = system_instruction
        self._stack: contextlib.AsyncExitStack | None = None
        self._session: Any = None

    def _create_client(self, api_key: str) -> genai.Client:
        return genai.Client(api_key=api_key)

    def _live_config(self) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self._voice_name),
                ),
            ),
            system_instruction=self._system_instruction,
        )

    async def connect(self, credential: Credential) -> None:
        client = self._create_client(credential.value)
        stack = contextlib.AsyncExitStack()
        try:
            self._session = await stack.enter_async_context(
                client.aio.live.connect(model=self._model, config=self._live_config())
            )
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        logger.info("Connected to Gemini Live (model=%s, voice=%s)", self._model, self._voice_name)

    async def send_audio(self, pcm: bytes) -> None:
        await self._require_session().send_realtime_input(
            audio=types.Blob(data=pcm, mime_type=f"audio/pcm;rate={self._input_sample_rate}"),
        )

    async def send_video(self, jpeg: bytes) -> None:
        await self._require_session().send_realtime_input(
            video=types.Blob(data=jpeg, mime_type="image/jpeg"),
        )

    async def events(self) -> AsyncIterator[RealtimeEvent]:
        session = self._require_session()
        # session.receive() ends after every completed turn
        while self._session is session:
            received = False
            async for message in session.receive():
                received = True
                content = message.server_content
                if content is None:
                    continue
                if content.interrupted:
                    yield RealtimeEvent(RealtimeEventKind.INTERRUPTED)
                if content.model_turn is not None:
                    for part in content.model_turn.parts or []:
                        if part.inline_data is not None and part.inline_data.data:
                            yield RealtimeEvent(RealtimeEventKind.AUDIO, part.inline_data.data)
                if content.turn_complete:
                    yield RealtimeEvent(RealtimeEventKind.TURN_COMPLETE)
            if not received:
                break

    async def close(self) -> None:
        stack, self._stack = self._stack, None
        self._session = None
        if stack is not None:
            await stack.aclose()
            logger.info("Disconnected from Gemini Live")

    def _require_session(self) -> Any:
        if self._session is None:
            raise RuntimeError("Gemini Live session is not connected")
        return self._session
