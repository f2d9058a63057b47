"""FastAPI reference backend for history, chat logs and similarity search.

Implements the same routes the coaching client calls, backed by an
in-memory store. Useful for local runs and for tests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from screencoach.backend.store import InsightStore

logger = logging.getLogger(__name__)


class ChatLogRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str = Field(pattern="^(user|model)$")
    text: str = Field(min_length=1)
    goal_context: str | None = Field(default=None, alias="goalContext")


class ContextRequest(BaseModel):
    vector: list[float] | None = None


class AnalysisLogRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    goal: str | None = None
    observation: str | None = None
    micro_assist: str | None = Field(default=None, alias="microAssist")
    state: str | None = None
    confidence: str | None = None
    vector: list[float] | None = None


class BackendStatus(BaseModel):
    status: str = "ok"
    analysis_records: int = 0
    chat_records: int = 0


def create_app(
    store: InsightStore | None = None,
    history_limit: int = 50,
    chat_history_limit: int = 100,
    context_top_k: int = 3,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Insight backend started")
        yield
        logger.info("Insight backend stopped")

    app = FastAPI(
        title="screencoach Backend",
        description="History, chat log and similar-context store for screencoach",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store if store is not None else InsightStore()

    @app.get("/health")
    async def health_check() -> BackendStatus:
        s: InsightStore = app.state.store
        return BackendStatus(
            analysis_records=s.analysis_count,
            chat_records=s.chat_count,
        )

    @app.get("/api/history")
    async def get_history() -> list[dict[str, Any]]:
        return app.state.store.recent_analysis(history_limit)

    @app.get("/api/chat/history")
    async def get_chat_history() -> list[dict[str, Any]]:
        return app.state.store.chat_history(chat_history_limit)

    @app.post("/api/chat/log")
    async def log_chat(request: ChatLogRequest) -> dict[str, bool]:
        app.state.store.add_chat(request.role, request.text, request.goal_context)
        return {"success": True}

    @app.post("/api/context")
    async def search_context(request: ContextRequest) -> dict[str, list[dict[str, Any]]]:
        if not request.vector:
            raise HTTPException(status_code=400, detail="No vector provided")
        return {"context": app.state.store.search(request.vector, context_top_k)}

    @app.post("/api/log")
    async def log_analysis(request: AnalysisLogRequest) -> dict[str, Any]:
        record_id = app.state.store.add_analysis(
            goal=request.goal,
            observation=request.observation,
            micro_assist=request.micro_assist,
            state=request.state,
            confidence=request.confidence,
            vector=request.vector,
        )
        return {"success": True, "id": record_id}

    @app.get("/api/last-action")
    async def get_last_action(goal: str | None = None) -> dict[str, Any]:
        return {"lastAction": app.state.store.last_action(goal)}

    return app


def main(host: str = "127.0.0.1", port: int = 3001, **kwargs: Any) -> None:
    """Entry point for running the backend server standalone."""
    app = create_app(**kwargs)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
