"""OpenAI-compatible vision provider implementation.

Works with OpenAI and any OpenAI-compatible API by setting a custom
base_url. Credentials starting with ``sk-`` are routed here.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import openai
from openai import AsyncOpenAI

from screencoach.domain.models import (
    AnalysisContext,
    CapturedFrame,
    ChatRole,
    ConversationTurn,
    Credential,
    FileAttachment,
    ParsedAnalysis,
    PastInsight,
    ProviderKind,
)
from screencoach.interpreter.base import ErrorKind, ProviderError, VisionProvider
from screencoach.interpreter.parser import parse_response
from screencoach.interpreter.prompts import (
    CHAT_SYSTEM_PROMPT,
    build_analysis_instruction,
    build_analysis_user_text,
    file_text_block,
    goal_context_text,
)

logger = logging.getLogger(__name__)

EMPTY_CHAT_REPLY = "I couldn't process that."


def _classify_openai_error(error: Exception) -> ErrorKind | None:
    if isinstance(error, openai.RateLimitError):
        return ErrorKind.QUOTA
    if isinstance(error, openai.APIConnectionError):
        return ErrorKind.NETWORK
    return None


class OpenAIProvider(VisionProvider):
    """Vision provider using OpenAI's chat completions API."""

    kind = ProviderKind.OPENAI

    def __init__(
        self,
        model: str = "gpt-4o",
        base_url: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(model=model, **kwargs)
        self._base_url = base_url

    def _create_client(self, api_key: str) -> AsyncOpenAI:
        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": self._timeout,
            # Rotation across credentials replaces SDK-level retries
            "max_retries": 0,
        }
        if self._base_url:
            client_kwargs["base_url"] = self._base_url
        return AsyncOpenAI(**client_kwargs)

    async def analyze_frame(
        self,
        frame: CapturedFrame,
        goal: str,
        credential: Credential,
        context: AnalysisContext | None = None,
        insights: Sequence[PastInsight] | None = None,
    ) -> ParsedAnalysis:
        """Analyze a screen frame using the vision API."""
        messages = [
            {"role": "system", "content": build_analysis_instruction(goal, context, insights)},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": build_analysis_user_text(goal)},
                    {"type": "image_url", "image_url": {"url": frame.data_url}},
                ],
            },
        ]
        raw_text = await self._complete(
            credential,
            messages,
            max_tokens=self._analysis_max_tokens,
            temperature=self._analysis_temperature,
        )
        logger.debug("OpenAI raw analysis: %s", raw_text[:200])
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
        messages: list[dict[str, Any]] = [{"role": "system", "content": CHAT_SYSTEM_PROMPT}]
        for turn in history:
            messages.append({
                "role": "assistant" if turn.role == ChatRole.MODEL else "user",
                "content": turn.text,
            })

        content: list[dict[str, Any]] = [
            {"type": "text", "text": goal_context_text(goal, message)},
        ]
        if screenshot is not None:
            content.append({"type": "image_url", "image_url": {"url": screenshot.data_url}})
        if attachment is not None:
            if attachment.is_image:
                content.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:{attachment.mime_type};base64,{attachment.data}"},
                })
            else:
                content.append({"type": "text", "text": file_text_block(attachment.name, attachment.data)})
        messages.append({"role": "user", "content": content})

        reply = await self._complete(
            credential,
            messages,
            max_tokens=self._chat_max_tokens,
            temperature=self._chat_temperature,
        )
        return reply or EMPTY_CHAT_REPLY

    async def _complete(
        self,
        credential: Credential,
        messages: list[dict[str, Any]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        client = self._client_for(credential)
        try:
            response = await client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            raise ProviderError.from_exception(
                e, provider=self.name, kind=_classify_openai_error(e)
            ) from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
