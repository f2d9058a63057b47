"""Shared test fixtures for the screencoach test suite.

Provides common fixtures used across unit tests: sample frames, an
in-memory state store, credential pools, and mock providers, frame
sources and backends.
"""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest

from screencoach.coach.failover import FailoverRunner
from screencoach.credentials.pool import CredentialPool
from screencoach.credentials.quota import QuotaGuard
from screencoach.domain.models import (
    AnalysisState,
    CapturedFrame,
    ConfidenceLevel,
    ParsedAnalysis,
    ProviderKind,
)
from screencoach.interpreter.base import VisionProvider
from screencoach.storage.state import LocalStateStore


# ---------------------------------------------------------------------------
# Frame Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_frame() -> CapturedFrame:
    """A tiny fake JPEG frame; providers are mocked so it is never decoded."""
    return CapturedFrame(
        jpeg=b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9",
        width=16,
        height=9,
        timestamp=datetime(2025, 1, 1, 12, 0, 0),
        frame_number=1,
        source_device="test",
    )


# ---------------------------------------------------------------------------
# State / Credential Fixtures
# ---------------------------------------------------------------------------


class FakeDay:
    """Callable clock returning a settable calendar day."""

    def __init__(self, day: date) -> None:
        self.day = day

    def __call__(self) -> date:
        return self.day


@pytest.fixture
def memory_store() -> LocalStateStore:
    """A LocalStateStore that never touches disk."""
    return LocalStateStore(None)


@pytest.fixture
def today() -> FakeDay:
    return FakeDay(date(2025, 1, 1))


@pytest.fixture
def quota(memory_store: LocalStateStore, today: FakeDay) -> QuotaGuard:
    return QuotaGuard(memory_store, max_quota=1500, safety_limit=1490, today=today)


GEMINI_KEYS = ["AIza-key-zero-000", "AIza-key-one-1111", "AIza-key-two-2222"]


@pytest.fixture
def pool(memory_store: LocalStateStore) -> CredentialPool:
    """Three Gemini-style credentials."""
    return CredentialPool.from_values(GEMINI_KEYS, store=memory_store)


# ---------------------------------------------------------------------------
# Provider Fixtures
# ---------------------------------------------------------------------------


def make_parsed(
    state: AnalysisState = AnalysisState.FRICTION_DETECTED,
    micro_assist: str = "Click Save",
    observation: str = "User is editing a form",
) -> ParsedAnalysis:
    return ParsedAnalysis(
        state=state,
        observation=observation,
        micro_assist=micro_assist,
        confidence=ConfidenceLevel.HIGH,
    )


def make_provider(kind: ProviderKind = ProviderKind.GEMINI, supports_embeddings: bool = False) -> AsyncMock:
    """A mock VisionProvider for testing without real API calls."""
    mock = AsyncMock(spec=VisionProvider)
    mock.kind = kind
    mock.name = kind.value
    mock.model = "mock-model"
    mock.supports_embeddings = supports_embeddings
    mock.analyze_frame.return_value = make_parsed()
    mock.send_chat.return_value = "Here is how to do it."
    mock.embed.return_value = None
    return mock


@pytest.fixture
def gemini_provider() -> AsyncMock:
    return make_provider(ProviderKind.GEMINI)


@pytest.fixture
def openai_provider() -> AsyncMock:
    return make_provider(ProviderKind.OPENAI)


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Replacement for asyncio.sleep in the failover backoff."""
    return AsyncMock()


@pytest.fixture
def runner(
    pool: CredentialPool,
    quota: QuotaGuard,
    gemini_provider: AsyncMock,
    openai_provider: AsyncMock,
    no_sleep: AsyncMock,
) -> FailoverRunner:
    return FailoverRunner(
        pool,
        quota,
        {ProviderKind.GEMINI: gemini_provider, ProviderKind.OPENAI: openai_provider},
        retry_backoff=0.2,
        sleep=no_sleep,
    )


# ---------------------------------------------------------------------------
# Collaborator Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_frame_source(sample_frame: CapturedFrame) -> AsyncMock:
    """A started FrameSource that always has a fresh frame."""
    mock = AsyncMock()
    mock.is_active = True
    mock.take_snapshot.return_value = sample_frame
    return mock


@pytest.fixture
def mock_backend() -> AsyncMock:
    """An InsightBackend stand-in; every call succeeds with empty data."""
    mock = AsyncMock()
    mock.fetch_history.return_value = []
    mock.fetch_chat_history.return_value = []
    mock.similar_context.return_value = []
    return mock
