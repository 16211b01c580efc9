"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Admin quest reward endpoints through the FastAPI TestClient, backed by
the in-memory SQLite engine from conftest.

These tests verify:
- Auth guards on admin endpoints
- Reward status / process / complete responses and their error codes
- Health endpoint availability
"""

from __future__ import annotations

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from questkeeper.api.deps import JWT_ALGORITHM, JWT_SECRET, get_config, get_engine
from questkeeper.database.models import User


@pytest.fixture
def client(db_engine, config):
    """TestClient with the engine and config dependencies overridden."""
    from questkeeper.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def non_admin_token():
    return jwt.encode(
        {"sub": "67890", "username": "RegularUser", "is_admin": False},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAdminAuthGuards:
    ENDPOINTS = [
        ("get", "/api/admin/quests/summary"),
        ("post", "/api/admin/quests/reconcile"),
        ("get", "/api/admin/quests/Q1/rewards"),
        ("post", "/api/admin/quests/Q1/process"),
        ("post", "/api/admin/quests/Q1/complete"),
    ]

    @pytest.mark.parametrize("method, endpoint", ENDPOINTS)
    def test_no_token_returns_401(self, client, method, endpoint):
        resp = getattr(client, method)(endpoint)
        assert resp.status_code == 401

    @pytest.mark.parametrize("method, endpoint", ENDPOINTS)
    def test_non_admin_returns_403(self, client, non_admin_token, method, endpoint):
        resp = getattr(client, method)(endpoint, headers=_auth(non_admin_token))
        assert resp.status_code == 403

    def test_garbage_token_returns_401(self, client):
        resp = client.get("/api/admin/quests/summary", headers=_auth("not-a-jwt"))
        assert resp.status_code == 401


# ===========================================================================
# Quest reward endpoints
# ===========================================================================
class TestQuestRewardRoutes:
    def test_unknown_quest_returns_404(self, client, admin_token):
        assert client.get("/api/admin/quests/nope/rewards", headers=_auth(admin_token)).status_code == 404
        assert client.post("/api/admin/quests/nope/process", headers=_auth(admin_token)).status_code == 404

    def test_process_then_inspect(self, client, admin_token, seed, db_engine):
        seed.quest("Q1", "RP", "flat:100", participants=[
            {"user_id": "u1", "character_name": "Link", "rp_post_count": 15},
        ])

        resp = client.post("/api/admin/quests/Q1/process", headers=_auth(admin_token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["rewarded"] == 1
        assert body["quest_completed"] is True

        resp = client.get("/api/admin/quests/Q1/rewards", headers=_auth(admin_token))
        assert resp.status_code == 200
        (participant,) = resp.json()["participants"]
        assert participant["status"] == "already_rewarded"
        assert participant["tokens_earned"] == 100

        with Session(db_engine) as session:
            assert session.get(User, "u1").tokens == 100

    def test_complete_twice_conflicts(self, client, admin_token, seed):
        seed.quest("Q2", "RP", "flat:10", participants=[
            {"user_id": "u1", "character_name": "Link"},
        ])
        resp = client.post("/api/admin/quests/Q2/complete", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["quest_completed"] is True

        resp = client.post("/api/admin/quests/Q2/complete", headers=_auth(admin_token))
        assert resp.status_code == 409

    def test_summary_and_reconcile(self, client, admin_token, seed):
        seed.quest("Q3", "RP", "flat:10", status="completed", participants=[
            {"user_id": "u1", "character_name": "Link", "progress": "completed"},
        ])
        summary = client.get("/api/admin/quests/summary", headers=_auth(admin_token)).json()
        assert summary["pending_rewards"] == 1

        result = client.post("/api/admin/quests/reconcile", headers=_auth(admin_token)).json()
        assert result["rewarded"] == 1

        summary = client.get("/api/admin/quests/summary", headers=_auth(admin_token)).json()
        assert summary["pending_rewards"] == 0
        assert summary["by_source"]["monthly"] == 1
