"""Abstract base class for vision-capable model providers.

All provider implementations must conform to this interface, so the
orchestrators can dispatch on a credential's provider kind without
knowing which SDK sits behind it. Every SDK failure leaves a provider
as a ProviderError whose ``kind`` tells the caller whether rotating to
the next credential can help.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx

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

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Classification of a failed provider call."""

    QUOTA = "quota"  # rate limited or out of quota: try the next credential
    NETWORK = "network"  # transport failure: try the next credential
    REJECTED = "rejected"  # auth, validation, server error: terminal for this call


QUOTA_MARKERS = (
    "quota",
    "exhausted",
    "resource_exhausted",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
)

QUOTA_STATUS_PATTERN = re.compile(r"\b429\b")

NETWORK_MARKERS = (
    "failed to fetch",
    "networkerror",
    "network error",
    "connection error",
    "connecterror",
    "connection refused",
    "connection reset",
    "timed out",
    "timeout",
    "name resolution",
    "name or service not known",
)


def describe_error(error: object) -> str:
    """Render any error shape (exception, JSON body, string) as one string."""
    try:
        if isinstance(error, str):
            return error
        if isinstance(error, (dict, list)):
            return json.dumps(error, default=str)
        if isinstance(error, BaseException):
            parts = [f"{type(error).__name__}: {error}"]
            body = getattr(error, "body", None) or getattr(error, "details", None)
            if body:
                parts.append(json.dumps(body, default=str) if isinstance(body, (dict, list)) else str(body))
            return " ".join(parts)
        return str(error)
    except Exception:
        return repr(error)


def _status_code(error: object) -> int | None:
    if isinstance(error, dict):
        nested = error.get("error")
        candidates: list[Any] = [error.get("status"), error.get("code")]
        if isinstance(nested, dict):
            candidates += [nested.get("code"), nested.get("status")]
    else:
        candidates = [getattr(error, name, None) for name in ("status_code", "code", "status")]
    for value in candidates:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_error(error: object) -> ErrorKind:
    """Decide whether a failure is worth retrying with another credential."""
    if isinstance(error, ProviderError):
        return error.kind

    detail = describe_error(error).lower()
    if (
        _status_code(error) == 429
        or QUOTA_STATUS_PATTERN.search(detail)
        or any(marker in detail for marker in QUOTA_MARKERS)
    ):
        return ErrorKind.QUOTA
    if isinstance(error, (ConnectionError, TimeoutError, httpx.TransportError)):
        return ErrorKind.NETWORK
    if any(marker in detail for marker in NETWORK_MARKERS):
        return ErrorKind.NETWORK
    return ErrorKind.REJECTED


class ProviderError(Exception):
    """Raised when a provider call fails, tagged with its classification."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.REJECTED,
        provider: str = "",
        raw_detail: str = "",
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.raw_detail = raw_detail

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.QUOTA, ErrorKind.NETWORK)

    @classmethod
    def from_exception(
        cls,
        error: object,
        provider: str = "",
        kind: ErrorKind | None = None,
    ) -> ProviderError:
        if isinstance(error, ProviderError):
            return error
        detail = describe_error(error)
        kind = kind or classify_error(error)
        return cls(
            f"{provider or 'provider'} request failed ({kind.value}): {detail[:300]}",
            kind=kind,
            provider=provider,
            raw_detail=detail,
        )


class VisionProvider(ABC):
    """Abstract interface for a vision-capable chat model backend.

    Providers are stateless with respect to credentials: the key is
    passed on every call, and SDK clients are created lazily and cached
    per key.
    """

    kind: ProviderKind

    def __init__(
        self,
        model: str,
        analysis_temperature: float = 0.1,
        analysis_max_tokens: int = 300,
        chat_temperature: float = 0.7,
        chat_max_tokens: int = 1500,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._analysis_temperature = analysis_temperature
        self._analysis_max_tokens = analysis_max_tokens
        self._chat_temperature = chat_temperature
        self._chat_max_tokens = chat_max_tokens
        self._timeout = timeout
        self._clients: dict[str, Any] = {}

    @property
    def model(self) -> str:
        return self._model

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def supports_embeddings(self) -> bool:
        return False

    @abstractmethod
    async def analyze_frame(
        self,
        frame: CapturedFrame,
        goal: str,
        credential: Credential,
        context: AnalysisContext | None = None,
        insights: Sequence[PastInsight] | None = None,
    ) -> ParsedAnalysis:
        """Ask the model where the user stands relative to ``goal``.

        Raises:
            ProviderError: If the call fails, classified by kind.
        """
        ...

    @abstractmethod
    async def send_chat(
        self,
        message: str,
        history: Sequence[ConversationTurn],
        screenshot: CapturedFrame | None,
        goal: str,
        credential: Credential,
        attachment: FileAttachment | None = None,
    ) -> str:
        """Send one chat message with prior turns and return the reply text.

        Raises:
            ProviderError: If the call fails, classified by kind.
        """
        ...

    async def embed(self, text: str, credential: Credential) -> list[float] | None:
        """Compute a semantic embedding for ``text``, if the provider can."""
        return None

    @abstractmethod
    def _create_client(self, api_key: str) -> Any:
        ...

    def _client_for(self, credential: Credential) -> Any:
        """Return the cached SDK client for a credential, creating it lazily."""
        client = self._clients.get(credential.value)
        if client is None:
            client = self._create_client(credential.value)
            self._clients[credential.value] = client
            logger.info("Initialized %s client (model=%s, key=%s)", self.name, self._model, credential.masked)
        return client
