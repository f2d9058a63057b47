"""Best-effort HTTP client for the insight backend.

Every call swallows its own failures: the backend stores history and
similarity context, and the orchestrators must keep running without it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from screencoach.domain.models import (
    AnalysisOutcome,
    AnalysisState,
    ChatRole,
    ConfidenceLevel,
    ConversationTurn,
    PastInsight,
)

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised internally when a backend request fails. Never escapes the client."""


def _timestamp_ms(value: Any) -> int | None:
    """Accept epoch milliseconds or an ISO-8601 date string."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, str) and value:
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            return None
    return None


def _enum_or(enum_cls: type, value: Any, default: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return default


def outcome_from_record(record: dict[str, Any]) -> AnalysisOutcome:
    """Rebuild an AnalysisOutcome from a backend history record."""
    timestamp = _timestamp_ms(record.get("timestamp"))
    return AnalysisOutcome(
        state=_enum_or(AnalysisState, record.get("state"), AnalysisState.UNKNOWN),
        observation=record.get("observation") or "",
        micro_assist=record.get("microAssist") or "",
        confidence=_enum_or(ConfidenceLevel, record.get("confidence"), ConfidenceLevel.MEDIUM),
        goal=record.get("goal"),
        **({"timestamp": timestamp} if timestamp is not None else {}),
    )


class InsightBackend:
    """Async client for the history, chat log and similarity endpoints.

    Example usage::

        async with InsightBackend("http://localhost:3001/api") as backend:
            history = await backend.fetch_history()
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3001/api",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> InsightBackend:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_history(self) -> list[AnalysisOutcome]:
        """Recent analysis outcomes, most recent first."""
        try:
            data = await self._request("GET", "/history")
            return [outcome_from_record(r) for r in data or [] if isinstance(r, dict)]
        except (BackendError, ValidationError) as e:
            logger.warning("Backend history fetch failed: %s", e)
            return []

    async def fetch_chat_history(self) -> list[ConversationTurn]:
        """Logged chat turns in chronological order."""
        try:
            data = await self._request("GET", "/chat/history")
            turns = []
            for record in data or []:
                if not isinstance(record, dict):
                    continue
                timestamp = _timestamp_ms(record.get("timestamp"))
                turns.append(ConversationTurn(
                    role=ChatRole(record.get("role")),
                    text=record.get("text") or "",
                    **({"timestamp": timestamp} if timestamp is not None else {}),
                ))
            return turns
        except (BackendError, ValidationError, ValueError) as e:
            logger.warning("Backend chat history fetch failed: %s", e)
            return []

    async def log_chat(self, role: ChatRole, text: str, goal_context: str | None = None) -> None:
        try:
            await self._request("POST", "/chat/log", {
                "role": role.value,
                "text": text,
                "goalContext": goal_context,
            })
        except BackendError as e:
            logger.warning("Backend chat logging failed: %s", e)

    async def log_analysis(
        self,
        outcome: AnalysisOutcome,
        goal: str,
        vector: Sequence[float] | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "goal": goal,
            "observation": outcome.observation,
            "microAssist": outcome.micro_assist,
            "state": outcome.state.value,
            "confidence": outcome.confidence.value,
        }
        if vector:
            payload["vector"] = list(vector)
        try:
            await self._request("POST", "/log", payload)
        except BackendError as e:
            logger.warning("Backend logging failed: %s", e)

    async def similar_context(self, vector: Sequence[float]) -> list[PastInsight]:
        """Top-k past scenarios closest to ``vector``."""
        try:
            data = await self._request("POST", "/context", {"vector": list(vector)})
            items = data.get("context", []) if isinstance(data, dict) else []
            return [PastInsight.model_validate(item) for item in items if isinstance(item, dict)]
        except (BackendError, ValidationError) as e:
            logger.warning("Backend context fetch failed: %s", e)
            return []

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        try:
            resp = await self._get_client().request(method, path, json=payload)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise BackendError(f"{method} {path} failed: {e}") from e
