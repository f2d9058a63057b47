"""Tests for the reference backend routes."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from screencoach.backend.server import create_app
from screencoach.backend.store import InsightStore


@pytest.fixture
def store() -> InsightStore:
    return InsightStore()


@pytest.fixture
def client(store) -> TestClient:
    return TestClient(create_app(store=store, history_limit=2, chat_history_limit=10, context_top_k=1))


class TestBackendServer:
    def test_health(self, client, store) -> None:
        store.add_chat("user", "hello")
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "analysis_records": 0, "chat_records": 1}

    def test_log_and_history(self, client) -> None:
        for i in range(3):
            resp = client.post("/api/log", json={
                "goal": "Ship it",
                "observation": f"obs {i}",
                "microAssist": f"step {i}",
                "state": "Friction Detected",
                "confidence": "High",
            })
            assert resp.status_code == 200
            assert resp.json()["success"] is True

        history = client.get("/api/history").json()

        assert [r["microAssist"] for r in history] == ["step 2", "step 1"]

    def test_last_action(self, client) -> None:
        client.post("/api/log", json={"goal": "Ship it", "observation": "obs", "microAssist": "Click Save"})
        body = client.get("/api/last-action", params={"goal": "Ship It"}).json()
        assert body["lastAction"]["microAssist"] == "Click Save"

    def test_chat_log_round(self, client) -> None:
        resp = client.post("/api/chat/log", json={"role": "user", "text": "hello", "goalContext": "Ship it"})
        assert resp.json() == {"success": True}

        history = client.get("/api/chat/history").json()
        assert history[0]["role"] == "user"
        assert history[0]["goalContext"] == "Ship it"

    def test_chat_log_rejects_unknown_role(self, client) -> None:
        resp = client.post("/api/chat/log", json={"role": "system", "text": "hello"})
        assert resp.status_code == 422

    def test_context_requires_vector(self, client) -> None:
        assert client.post("/api/context", json={}).status_code == 400
        assert client.post("/api/context", json={"vector": []}).status_code == 400

    def test_context_top_k(self, client) -> None:
        client.post("/api/log", json={"observation": "near", "microAssist": "a", "vector": [1.0, 0.0]})
        client.post("/api/log", json={"observation": "far", "microAssist": "b", "vector": [0.0, 1.0]})

        body = client.post("/api/context", json={"vector": [0.9, 0.1]}).json()

        assert len(body["context"]) == 1
        assert body["context"][0]["observation"] == "near"
