"""Tests for the cache administration routes."""

import pytest
from fastapi.testclient import TestClient

from storycache import AsyncMemoryAdapter, CacheManager, CacheSettings, KeyValueStore
from storycache.server import create_app


@pytest.fixture
def client():
    app = create_app(settings=CacheSettings(), store=KeyValueStore(AsyncMemoryAdapter()))
    with TestClient(app) as test_client:
        yield test_client


def _manager(client: TestClient) -> CacheManager:
    return client.app.state.cache_manager


def _seed(client: TestClient, *keys: str) -> None:
    manager = _manager(client)
    for key in keys:
        client.portal.call(manager.set, key, {"key": key})


class TestCacheInfo:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/cache-management", params={"action": "health"})
        assert response.status_code == 200
        health = response.json()["health"]
        assert health["healthy"] is True
        assert health["backend"] == "memory"

    def test_stats(self, client: TestClient) -> None:
        _seed(client, "users:all")
        response = client.get("/api/cache-management", params={"action": "stats"})
        stats = response.json()["stats"]
        assert stats["entryCount"] == 1
        assert stats["backend"] == "memory"
        assert "hitRate" in stats

    def test_overview(self, client: TestClient) -> None:
        body = client.get("/api/cache-management").json()
        assert body["success"] is True
        assert set(body["cache"]) == {"health", "stats", "endpoints"}


class TestCacheActions:
    def test_clear(self, client: TestClient) -> None:
        _seed(client, "users:all", "stories:all")
        response = client.post("/api/cache-management", json={"action": "clear"})
        assert response.json() == {"success": True, "message": "All cache cleared successfully"}
        stats = client.get("/api/cache-management", params={"action": "stats"}).json()["stats"]
        assert stats["entryCount"] == 0

    def test_invalidate_pattern(self, client: TestClient) -> None:
        _seed(client, "users:all", "users:page2", "stories:all")
        response = client.post(
            "/api/cache-management", json={"action": "invalidate", "pattern": "users:*"}
        )
        body = response.json()
        assert body["success"] is True
        assert body["removed"] == 2

    def test_invalidate_key(self, client: TestClient) -> None:
        _seed(client, "users:all")
        response = client.post(
            "/api/cache-management", json={"action": "invalidate", "key": "users:all"}
        )
        assert response.json()["message"] == "Cache key 'users:all' invalidated successfully"
        assert client.portal.call(_manager(client).get, "users:all") is None

    def test_invalidate_requires_target(self, client: TestClient) -> None:
        response = client.post("/api/cache-management", json={"action": "invalidate"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.parametrize(
        ("action", "removed"),
        [
            ("invalidate-stats", 1),
            ("invalidate-users", 2),
            ("invalidate-stories", 2),
            ("invalidate-engagement", 1),
        ],
    )
    def test_family_actions(self, client: TestClient, action: str, removed: int) -> None:
        _seed(client, "dashboard:stats:default", "users:all", "stories:all")
        response = client.post("/api/cache-management", json={"action": action})
        body = response.json()
        assert body["success"] is True
        assert body["removed"] == removed

    def test_invalid_action(self, client: TestClient) -> None:
        response = client.post("/api/cache-management", json={"action": "explode"})
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid action. Supported actions:")

    def test_missing_action_rejected(self, client: TestClient) -> None:
        response = client.post("/api/cache-management", json={})
        assert response.status_code == 422

    def test_delete(self, client: TestClient) -> None:
        _seed(client, "users:all")
        response = client.delete("/api/cache-management")
        assert response.json()["success"] is True

    def test_unexpected_failure_is_500(self, client: TestClient, monkeypatch) -> None:
        async def broken() -> None:
            raise RuntimeError("boom")

        monkeypatch.setattr(_manager(client), "clear", broken)
        response = client.post("/api/cache-management", json={"action": "clear"})
        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "message": "Cache management operation failed",
            "error": "boom",
        }


class TestClientInvalidation:
    def test_no_signal(self, client: TestClient) -> None:
        body = client.post("/api/admin/clear-landing-cache").json()
        assert body["success"] is True
        assert body["instructions"]["clearAll"] is False
        assert isinstance(body["timestamp"], int)

    def test_signal_clients(self, client: TestClient) -> None:
        before = client.post("/api/admin/clear-landing-cache", json={}).json()["timestamp"]

        raised = client.post("/api/cache-management", json={"action": "signal-clients"}).json()
        assert raised["success"] is True

        body = client.post("/api/admin/clear-landing-cache", json={"since": before}).json()
        assert body["instructions"]["clearAll"] is True
        assert body["instructions"]["raisedAt"] == raised["raisedAt"]

        later = client.post(
            "/api/admin/clear-landing-cache", json={"since": raised["raisedAt"] + 1}
        ).json()
        assert later["instructions"]["clearAll"] is False

    def test_signal_survives_cache_clear(self, client: TestClient) -> None:
        before = client.post("/api/admin/clear-landing-cache", json={}).json()["timestamp"]
        client.post("/api/cache-management", json={"action": "signal-clients"})

        client.delete("/api/cache-management")
        client.post("/api/cache-management", json={"action": "invalidate", "pattern": "*"})
        client.post("/api/cache-management", json={"action": "clear"})

        body = client.post("/api/admin/clear-landing-cache", json={"since": before}).json()
        assert body["instructions"]["clearAll"] is True


class TestAppLifecycle:
    def test_restart_keeps_single_route_set(self) -> None:
        app = create_app(settings=CacheSettings())

        with TestClient(app) as first:
            route_count = len(app.routes)
            first_manager = _manager(first)
            _seed(first, "users:all")

        with TestClient(app) as second:
            assert len(app.routes) == route_count
            assert _manager(second) is not first_manager

            stats = second.get("/api/cache-management", params={"action": "stats"}).json()["stats"]
            assert stats["entryCount"] == 0

            _seed(second, "users:all", "stories:all")
            stats = second.get("/api/cache-management", params={"action": "stats"}).json()["stats"]
            assert stats["entryCount"] == 2
