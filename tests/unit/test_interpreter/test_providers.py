"""Tests for the Gemini and OpenAI provider adapters with faked SDK clients."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from screencoach.domain.models import (
    AnalysisContext,
    AnalysisState,
    ChatRole,
    ConversationTurn,
    Credential,
    FileAttachment,
    PastInsight,
    ProviderKind,
)
from screencoach.interpreter.base import ErrorKind, ProviderError, VisionProvider
from screencoach.interpreter.gemini import GeminiProvider
from screencoach.interpreter.openai import OpenAIProvider

REPLY = "State: Error Detected\nObservation: Build failed\nMicro-Assist: Fix the import\nConfidence: High"

OPENAI_CRED = Credential(value="sk-test-openai-1234", provider_kind=ProviderKind.OPENAI)
GEMINI_CRED = Credential(value="AIza-test-gemini-5678", provider_kind=ProviderKind.GEMINI)


def openai_response(text: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    return response


@pytest.fixture
def openai_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=openai_response(REPLY))
    return client


@pytest.fixture
def openai_provider(openai_client: MagicMock) -> OpenAIProvider:
    provider = OpenAIProvider(model="gpt-4o")
    provider._create_client = MagicMock(return_value=openai_client)
    return provider


@pytest.fixture
def gemini_client() -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=MagicMock(text=REPLY))
    client.aio.models.embed_content = AsyncMock(
        return_value=MagicMock(embeddings=[MagicMock(values=[0.1, 0.2, 0.3])])
    )
    return client


@pytest.fixture
def gemini_provider(gemini_client: MagicMock) -> GeminiProvider:
    provider = GeminiProvider(model="gemini-2.5-flash")
    provider._create_client = MagicMock(return_value=gemini_client)
    return provider


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_analyze_frame_parses_reply(self, openai_provider, openai_client, sample_frame) -> None:
        result = await openai_provider.analyze_frame(sample_frame, "Ship it", OPENAI_CRED)
        assert result.state == AnalysisState.ERROR_DETECTED
        assert result.micro_assist == "Fix the import"

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 300
        system, user = kwargs["messages"]
        assert "Ship it" in system["content"]
        assert user["content"][1]["image_url"]["url"] == sample_frame.data_url

    @pytest.mark.asyncio
    async def test_analyze_frame_includes_context_and_insights(
        self, openai_provider, openai_client, sample_frame,
    ) -> None:
        context = AnalysisContext(last_observation="Editor open", last_instruction="Open settings")
        insights = [PastInsight(score=0.9, observation="Settings page", microAssist="Toggle dark mode")]
        await openai_provider.analyze_frame(sample_frame, "Theme", OPENAI_CRED, context, insights)
        system = openai_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "Open settings" in system
        assert '[Past Scenario 1]: Observed "Settings page" -> Action Taken "Toggle dark mode"' in system

    @pytest.mark.asyncio
    async def test_client_cached_per_key(self, openai_provider, sample_frame) -> None:
        await openai_provider.analyze_frame(sample_frame, "g", OPENAI_CRED)
        await openai_provider.analyze_frame(sample_frame, "g", OPENAI_CRED)
        openai_provider._create_client.assert_called_once_with(OPENAI_CRED.value)

    @pytest.mark.asyncio
    async def test_rate_limit_is_quota(self, openai_provider, openai_client, sample_frame) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        openai_client.chat.completions.create.side_effect = openai.RateLimitError(
            "Rate limit", response=httpx.Response(429, request=request), body=None,
        )
        with pytest.raises(ProviderError) as exc_info:
            await openai_provider.analyze_frame(sample_frame, "g", OPENAI_CRED)
        assert exc_info.value.kind == ErrorKind.QUOTA
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_connection_error_is_network(self, openai_provider, openai_client, sample_frame) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        openai_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
        with pytest.raises(ProviderError) as exc_info:
            await openai_provider.analyze_frame(sample_frame, "g", OPENAI_CRED)
        assert exc_info.value.kind == ErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_send_chat_maps_roles_and_attachment(self, openai_provider, openai_client) -> None:
        openai_client.chat.completions.create.return_value = openai_response("Sure.")
        history = [
            ConversationTurn(role=ChatRole.USER, text="hi"),
            ConversationTurn(role=ChatRole.MODEL, text="hello"),
        ]
        attachment = FileAttachment(name="notes.txt", mime_type="text/plain", data="line one")
        reply = await openai_provider.send_chat("Summarize", history, None, "Write docs", OPENAI_CRED, attachment)
        assert reply == "Sure."

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        roles = [m["role"] for m in kwargs["messages"]]
        assert roles == ["system", "user", "assistant", "user"]
        content = kwargs["messages"][-1]["content"]
        assert "Write docs" in content[0]["text"]
        assert "notes.txt" in content[1]["text"]
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 1500

    @pytest.mark.asyncio
    async def test_embed_not_supported(self, openai_provider) -> None:
        assert openai_provider.supports_embeddings is False
        assert await openai_provider.embed("text", OPENAI_CRED) is None


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_analyze_frame_parses_reply(self, gemini_provider, gemini_client, sample_frame) -> None:
        result = await gemini_provider.analyze_frame(sample_frame, "Ship it", GEMINI_CRED)
        assert result.state == AnalysisState.ERROR_DETECTED
        kwargs = gemini_client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["config"].temperature == 0.1
        assert "Ship it" in kwargs["config"].system_instruction

    @pytest.mark.asyncio
    async def test_failure_is_classified(self, gemini_provider, gemini_client, sample_frame) -> None:
        gemini_client.aio.models.generate_content.side_effect = Exception("429 RESOURCE_EXHAUSTED")
        with pytest.raises(ProviderError) as exc_info:
            await gemini_provider.analyze_frame(sample_frame, "g", GEMINI_CRED)
        assert exc_info.value.kind == ErrorKind.QUOTA

    @pytest.mark.asyncio
    async def test_rejection_is_not_retryable(self, gemini_provider, gemini_client, sample_frame) -> None:
        gemini_client.aio.models.generate_content.side_effect = Exception("API key not valid")
        with pytest.raises(ProviderError) as exc_info:
            await gemini_provider.analyze_frame(sample_frame, "g", GEMINI_CRED)
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_send_chat_history_roles(self, gemini_provider, gemini_client) -> None:
        gemini_client.aio.models.generate_content.return_value = MagicMock(text="Answer")
        history = [
            ConversationTurn(role=ChatRole.USER, text="hi"),
            ConversationTurn(role=ChatRole.MODEL, text="hello"),
        ]
        reply = await gemini_provider.send_chat("Next?", history, None, "g", GEMINI_CRED)
        assert reply == "Answer"
        contents = gemini_client.aio.models.generate_content.call_args.kwargs["contents"]
        assert [c.role for c in contents] == ["user", "model", "user"]

    @pytest.mark.asyncio
    async def test_empty_chat_reply_falls_back(self, gemini_provider, gemini_client) -> None:
        gemini_client.aio.models.generate_content.return_value = MagicMock(text=None)
        reply = await gemini_provider.send_chat("?", [], None, "g", GEMINI_CRED)
        assert reply

    @pytest.mark.asyncio
    async def test_embed(self, gemini_provider, gemini_client) -> None:
        assert gemini_provider.supports_embeddings is True
        assert await gemini_provider.embed("text", GEMINI_CRED) == [0.1, 0.2, 0.3]
        assert gemini_client.aio.models.embed_content.call_args.kwargs["model"] == "text-embedding-004"

    @pytest.mark.asyncio
    async def test_embed_failure_returns_none(self, gemini_provider, gemini_client) -> None:
        gemini_client.aio.models.embed_content.side_effect = Exception("boom")
        assert await gemini_provider.embed("text", GEMINI_CRED) is None

    @pytest.mark.asyncio
    async def test_chat_output_capped_analysis_uncapped(
        self, gemini_provider, gemini_client, sample_frame,
    ) -> None:
        await gemini_provider.analyze_frame(sample_frame, "g", GEMINI_CRED)
        assert gemini_client.aio.models.generate_content.call_args.kwargs["config"].max_output_tokens is None

        gemini_client.aio.models.generate_content.return_value = MagicMock(text="Answer")
        await gemini_provider.send_chat("?", [], None, "g", GEMINI_CRED)
        assert gemini_client.aio.models.generate_content.call_args.kwargs["config"].max_output_tokens == 1500


class MinimalProvider(VisionProvider):
    kind = ProviderKind.GEMINI

    async def analyze_frame(self, frame, goal, credential, context=None, insights=None):
        raise NotImplementedError

    async def send_chat(self, message, history, screenshot, goal, credential, attachment=None):
        return "ok"

    def _create_client(self, api_key):
        return object()


class TestVisionProviderInterface:
    @pytest.mark.asyncio
    async def test_subclass_needs_only_call_methods(self) -> None:
        provider = MinimalProvider(model="m")
        assert provider.name == "gemini"
        assert provider.supports_embeddings is False
        assert await provider.embed("text", GEMINI_CRED) is None
        assert await provider.send_chat("hi", [], None, "g", GEMINI_CRED) == "ok"
