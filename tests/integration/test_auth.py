"""Tests for API key authentication."""

from __future__ import annotations

import time

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from taskgate.api.app import create_app


@pytest.fixture()
def app_with_auth(monkeypatch, executor):
    """Create an app with API key authentication enabled."""
    monkeypatch.setenv("TASKGATE_API_KEY", "test-secret-key")
    return create_app(executor=executor)


@pytest.fixture()
def app_without_auth(monkeypatch, executor):
    """Create an app without API key authentication."""
    monkeypatch.delenv("TASKGATE_API_KEY", raising=False)
    return create_app(executor=executor)


@pytest.fixture()
async def auth_client(app_with_auth):
    transport = ASGITransport(app=app_with_auth)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture()
async def noauth_client(app_without_auth):
    transport = ASGITransport(app=app_without_auth)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestAPIKeyAuth:
    @pytest.mark.asyncio
    async def test_health_always_public(self, auth_client: AsyncClient) -> None:
        """Health endpoint should be accessible without API key."""
        resp = await auth_client.get("/health")
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_protected_endpoint_rejects_missing_key(self, auth_client: AsyncClient) -> None:
        resp = await auth_client.get("/queue/status")
        assert resp.status_code == 401
        assert "API key" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_protected_endpoint_rejects_wrong_key(self, auth_client: AsyncClient) -> None:
        resp = await auth_client.post(
            "/queue/tasks", json={"A": 1}, headers={"X-API-Key": "wrong-key"}
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_protected_endpoint_accepts_valid_key(self, auth_client: AsyncClient) -> None:
        resp = await auth_client.post(
            "/queue/tasks", json={"A": 1}, headers={"X-API-Key": "test-secret-key"}
        )
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_api_key_via_query_param(self, auth_client: AsyncClient) -> None:
        resp = await auth_client.get("/queue/status?api_key=test-secret-key")
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_no_auth_when_disabled(self, noauth_client: AsyncClient) -> None:
        """All endpoints should be accessible when TASKGATE_API_KEY is not set."""
        resp = await noauth_client.get("/queue/status")
        assert resp.status_code == 200


class TestWebSocketAuth:
    def test_rejects_missing_key(self, app_with_auth) -> None:
        with TestClient(app_with_auth) as tc:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with tc.websocket_connect("/queue/events"):
                    pass
            assert exc_info.value.code == 1008

    def test_accepts_valid_key(self, app_with_auth) -> None:
        with TestClient(app_with_auth) as tc:
            with tc.websocket_connect("/queue/events?api_key=test-secret-key") as ws:
                deadline = time.monotonic() + 2
                while (
                    app_with_auth.state.ws_manager.active_connections == 0
                    and time.monotonic() < deadline
                ):
                    time.sleep(0.01)
                tc.post("/queue/tasks", json={"A": 1}, headers={"X-API-Key": "test-secret-key"})
                assert ws.receive_json()["event_type"] == "task.submitted"
