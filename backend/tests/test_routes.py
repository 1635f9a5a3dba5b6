"""
API Tests

Tests for:
- POST /api/community/questions - Post a question (DevCoin debit)
- GET /api/devcoin/balance - Balance and question cost
- GET /api/devcoin/ledger - Transaction history
- POST /api/auth/login-guard/check - Login rate limit check
- POST /api/auth/login-guard/attempts - Record login attempt
- GET /api/health

Runs the real app in-process against the in-memory store.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import question_payload
from devcoin.config import COLLECTIONS
from login_guard.config import LOGIN_LOCKS_COLLECTION
from utils.auth import create_token


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    from server import app

    app.state.store = store
    with TestClient(app) as test_client:
        yield test_client
    app.state.store = None


@pytest.fixture
def seeded(store):
    asyncio.run(store.set(COLLECTIONS["accounts"], "user-1", {"balance": 25, "name": "Test User"}))
    return store


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_token('user-1', 'dev@example.com')}"}


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestPostQuestion:

    def test_post_question_success(self, client, seeded, auth_headers):
        response = client.post("/api/community/questions", json=question_payload(), headers=auth_headers)

        assert response.status_code == 200, f"Failed: {response.text}"
        data = response.json()
        assert data["remainingBalance"] == 15
        assert "questionId" in data

    def test_missing_token_is_unauthenticated(self, client, seeded):
        response = client.post("/api/community/questions", json=question_payload())

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "unauthenticated"

    def test_invalid_token_is_unauthenticated(self, client, seeded):
        response = client.post(
            "/api/community/questions",
            json=question_payload(),
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    def test_invalid_title(self, client, seeded, auth_headers):
        response = client.post("/api/community/questions", json=question_payload(title="Hey"), headers=auth_headers)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "invalid_argument"
        assert detail["details"]["field"] == "title"

    def test_insufficient_funds(self, client, seeded, auth_headers):
        for i in range(2):
            ok = client.post("/api/community/questions", json=question_payload(f"Question number {i}"), headers=auth_headers)
            assert ok.status_code == 200

        response = client.post("/api/community/questions", json=question_payload("One too many"), headers=auth_headers)

        assert response.status_code == 402
        detail = response.json()["detail"]
        assert detail["code"] == "insufficient_funds"
        assert detail["details"] == {"balance": 5, "cost": 10}

    def test_unknown_account(self, client, store):
        headers = {"Authorization": f"Bearer {create_token('nobody')}"}
        response = client.post("/api/community/questions", json=question_payload(), headers=headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "account_not_found"

    def test_duplicate_title(self, client, seeded, auth_headers):
        client.post("/api/community/questions", json=question_payload(), headers=auth_headers)
        response = client.post("/api/community/questions", json=question_payload(), headers=auth_headers)

        assert response.status_code == 429
        detail = response.json()["detail"]
        assert detail["code"] == "duplicate_submission"
        assert detail["details"]["retryAfterSeconds"] == 300

    def test_idempotency_key_replay(self, client, seeded, auth_headers):
        headers = dict(auth_headers, **{"Idempotency-Key": "req-1"})

        first = client.post("/api/community/questions", json=question_payload(), headers=headers)
        second = client.post("/api/community/questions", json=question_payload(), headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()


class TestBalanceAndLedger:

    def test_balance(self, client, seeded, auth_headers):
        response = client.get("/api/devcoin/balance", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"user_id": "user-1", "balance": 25, "question_cost": 10}

    def test_balance_store_failure_is_structured(self, client, store, auth_headers, monkeypatch):
        monkeypatch.setattr(store, "get", AsyncMock(side_effect=RuntimeError("store unavailable")))

        response = client.get("/api/devcoin/balance", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "internal"

    def test_ledger_after_post(self, client, seeded, auth_headers):
        posted = client.post("/api/community/questions", json=question_payload(), headers=auth_headers).json()

        response = client.get("/api/devcoin/ledger", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["entries"][0]["amount"] == -10
        assert data["entries"][0]["relatedId"] == posted["questionId"]

    def test_ledger_limit_bounds(self, client, seeded, auth_headers):
        response = client.get("/api/devcoin/ledger?limit=0", headers=auth_headers)
        assert response.status_code == 422


class TestLoginGuard:

    def test_check_allowed(self, client):
        response = client.post("/api/auth/login-guard/check", json={"email": "dev@example.com"})

        assert response.status_code == 200
        assert response.json() == {"allowed": True}

    def test_lockout_flow(self, client):
        for i in range(5):
            response = client.post("/api/auth/login-guard/attempts", json={"email": "dev@example.com", "success": False})
            assert response.status_code == 200
            assert response.json() == {"recorded": True, "failedAttempts": i + 1}

        response = client.post("/api/auth/login-guard/check", json={"email": "dev@example.com"})

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "locked_out"
        assert detail["details"]["remainingMinutes"] == 15
        assert "lockedUntil" in detail["details"]

    def test_success_resets(self, client):
        for _ in range(4):
            client.post("/api/auth/login-guard/attempts", json={"email": "dev@example.com", "success": False})

        response = client.post("/api/auth/login-guard/attempts", json={"email": "dev@example.com", "success": True})

        assert response.json() == {"recorded": True}
        check = client.post("/api/auth/login-guard/check", json={"email": "dev@example.com"})
        assert check.status_code == 200

    def test_missing_email(self, client):
        response = client.post("/api/auth/login-guard/check", json={})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_argument"

    def test_missing_success_flag(self, client):
        response = client.post("/api/auth/login-guard/attempts", json={"email": "dev@example.com"})
        assert response.status_code == 400

    def test_failure_after_expired_lock_keeps_login_open(self, client, store, clock):
        asyncio.run(store.set(LOGIN_LOCKS_COLLECTION, "dev@example.com", {
            "failedAttempts": 5,
            "lockedUntil": clock.current - timedelta(seconds=1),
        }))

        attempt = client.post("/api/auth/login-guard/attempts", json={"email": "dev@example.com", "success": False})
        check = client.post("/api/auth/login-guard/check", json={"email": "dev@example.com"})

        assert attempt.json() == {"recorded": True, "failedAttempts": 1}
        assert check.status_code == 200
        assert check.json() == {"allowed": True}
