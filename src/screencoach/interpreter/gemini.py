"""Google Gemini vision provider implementation.

Uses the google-genai SDK. Any credential that is not an OpenAI-style
``sk-`` key is routed here. This provider is also the only one that
computes embeddings for similar-scenario retrieval.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from typing import Any

from google import genai
from google.genai import types

from screencoach.domain.models import (
    AnalysisContext,
    CapturedFrame,
    ConversationTurn,
    Credential,
    FileAttachment,
    ParsedAnalysis,
    PastInsight,
    ProviderKind,
)
from screencoach.interpreter.base import ProviderError, VisionProvider
from screencoach.interpreter.parser import parse_response
from screencoach.interpreter.prompts import (
    CHAT_SYSTEM_PROMPT,
    build_analysis_instruction,
    build_analysis_user_text,
    file_text_block,
)

logger = logging.getLogger(__name__)

EMPTY_CHAT_REPLY = "I'm sorry, I couldn't process that request."


class GeminiProvider(VisionProvider):
    """Vision provider using the Gemini generate_content API.

    Example usage::

        provider = GeminiProvider(model="gemini-2.5-flash")
        parsed = await provider.analyze_frame(frame, "Deploy the app", credential)

    Thinking models count reasoning tokens against ``max_output_tokens``.
    Chat calls are capped at ``chat_max_tokens``, which leaves room for
    them. Analysis calls send no cap, because the short analysis budget
    would be spent on reasoning before any reply is written.
    """

    kind = ProviderKind.GEMINI

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        embedding_model: str = "text-embedding-004",
        **kwargs: Any,
    ) -> None:
        super().__init__(model=model, **kwargs)
        self._embedding_model = embedding_model

    @property
    def supports_embeddings(self) -> bool:
        return True

    def _create_client(self, api_key: str) -> genai.Client:
        return genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(self._timeout * 1000)),
        )

    async def analyze_frame(
        self,
        frame: CapturedFrame,
        goal: str,
        credential: Credential,
        context: AnalysisContext | None = None,
        insights: Sequence[PastInsight] | None = None,
    ) -> ParsedAnalysis:
        """Analyze a screen frame with Gemini vision."""
        raw_text = await self._generate(
            credential,
            contents=[
                types.Part.from_bytes(data=frame.jpeg, mime_type="image/jpeg"),
                build_analysis_user_text(goal),
            ],
            config=types.GenerateContentConfig(
                system_instruction=build_analysis_instruction(goal, context, insights),
                temperature=self._analysis_temperature,
            ),
        )
        logger.debug("Gemini raw analysis: %s", raw_text[:200])
        return parse_response(raw_text)

    async def send_chat(
        self,
        message: str,
        history: Sequence[ConversationTurn],
        screenshot: CapturedFrame | None,
        goal: str,
        credential: Credential,
        attachment: FileAttachment | None = None,
    ) -> str:
        parts = [types.Part.from_text(text=f"User Goal Context: {goal}")]
        if screenshot is not None:
            parts.append(types.Part.from_bytes(data=screenshot.jpeg, mime_type="image/jpeg"))
            parts.append(types.Part.from_text(text="The above is the user's current screen."))
        if attachment is not None:
            if attachment.is_image:
                parts.append(types.Part.from_bytes(
                    data=base64.b64decode(attachment.data), mime_type=attachment.mime_type,
                ))
                parts.append(types.Part.from_text(
                    text=f"The user has also uploaded an image file: {attachment.name}",
                ))
            else:
                parts.append(types.Part.from_text(text=file_text_block(attachment.name, attachment.data)))
        parts.append(types.Part.from_text(text=message))

        contents = [
            types.Content(role=turn.role.value, parts=[types.Part.from_text(text=turn.text)])
            for turn in history
        ]
        contents.append(types.Content(role="user", parts=parts))

        reply = await self._generate(
            credential,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=CHAT_SYSTEM_PROMPT,
                temperature=self._chat_temperature,
                max_output_tokens=self._chat_max_tokens,
            ),
        )
        return reply or EMPTY_CHAT_REPLY

    async def embed(self, text: str, credential: Credential) -> list[float] | None:
        """Embed ``text``; failures are logged and return None."""
        try:
            result = await self._client_for(credential).aio.models.embed_content(
                model=self._embedding_model,
                contents=text,
            )
        except Exception as e:
            logger.warning("Embedding generation failed: %s", e)
            return None
        if not result.embeddings or not result.embeddings[0].values:
            return None
        return list(result.embeddings[0].values)

    async def _generate(self, credential: Credential, contents: Any, config: types.GenerateContentConfig) -> str:
        client = self._client_for(credential)
        try:
            response = await client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            raise ProviderError.from_exception(e, provider=self.name) from e
        return response.text or ""
