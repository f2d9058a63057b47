"""In-memory storage behind the reference backend.

Holds the analysis log, the chat log, a small vector index searched by
cosine similarity, and a hot "last action" entry per goal.
"""

from __future__ import annotations

import itertools
import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)

LAST_ACTION_TTL = 3600.0


def goal_key(goal: str | None) -> str:
    """Cache key for a goal: lowercased, whitespace runs as underscores."""
    if not goal:
        return "last_action:unknown"
    return "last_action:" + re.sub(r"\s+", "_", goal).lower()


@dataclass
class VectorPoint:
    id: int
    vector: np.ndarray
    payload: dict[str, Any] = field(default_factory=dict)


class InsightStore:
    """Process-local store; nothing is persisted across restarts."""

    def __init__(
        self,
        max_records: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_records = max_records
        self._clock = clock
        self._ids = itertools.count(1)
        self._analysis: list[dict[str, Any]] = []
        self._chat: list[dict[str, Any]] = []
        self._points: list[VectorPoint] = []
        self._last_action: dict[str, tuple[float, dict[str, Any]]] = {}

    @property
    def analysis_count(self) -> int:
        return len(self._analysis)

    @property
    def chat_count(self) -> int:
        return len(self._chat)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -- analysis log -----------------------------------------------------

    def add_analysis(
        self,
        goal: str | None,
        observation: str | None,
        micro_assist: str | None,
        state: str | None,
        confidence: str | None,
        vector: Sequence[float] | None = None,
    ) -> int:
        record_id = next(self._ids)
        timestamp = self._now_ms()
        self._analysis.append({
            "id": record_id,
            "timestamp": timestamp,
            "goal": goal,
            "observation": observation,
            "microAssist": micro_assist,
            "state": state,
            "confidence": confidence,
            "vectorId": str(record_id) if vector else None,
        })
        del self._analysis[: -self._max_records]

        self._last_action[goal_key(goal)] = (
            self._clock() + LAST_ACTION_TTL,
            {"observation": observation, "microAssist": micro_assist, "timestamp": timestamp},
        )

        if vector:
            self._points.append(VectorPoint(
                id=record_id,
                vector=np.asarray(vector, dtype=np.float32),
                payload={
                    "goal": goal,
                    "observation": observation,
                    "microAssist": micro_assist,
                    "state": state,
                },
            ))
            del self._points[: -self._max_records]
        return record_id

    def recent_analysis(self, limit: int) -> list[dict[str, Any]]:
        """Most recent first."""
        return list(reversed(self._analysis[-limit:])) if limit > 0 else []

    def last_action(self, goal: str | None) -> dict[str, Any] | None:
        key = goal_key(goal)
        entry = self._last_action.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._last_action[key]
            return None
        return value

    # -- chat log ---------------------------------------------------------

    def add_chat(self, role: str, text: str, goal_context: str | None = None) -> None:
        self._chat.append({
            "role": role,
            "text": text,
            "timestamp": self._now_ms(),
            "goalContext": goal_context,
        })
        del self._chat[: -self._max_records]

    def chat_history(self, limit: int) -> list[dict[str, Any]]:
        """Oldest first, capped at ``limit`` entries."""
        return self._chat[:limit] if limit > 0 else []

    # -- vector search ----------------------------------------------------

    def search(self, vector: Sequence[float], limit: int = 3) -> list[dict[str, Any]]:
        """Top ``limit`` stored points by cosine similarity to ``vector``."""
        query = np.asarray(vector, dtype=np.float32)
        candidates = [p for p in self._points if p.vector.shape == query.shape]
        query_norm = float(np.linalg.norm(query))
        if not candidates or query_norm == 0.0 or limit <= 0:
            return []

        matrix = np.stack([p.vector for p in candidates])
        norms = np.linalg.norm(matrix, axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = matrix @ query / (norms * query_norm)
        scores = np.nan_to_num(scores, nan=0.0)

        order = np.argsort(-scores, kind="stable")[:limit]
        return [
            {
                "score": float(scores[i]),
                "observation": candidates[i].payload.get("observation") or "",
                "microAssist": candidates[i].payload.get("microAssist") or "",
            }
            for i in order
        ]
