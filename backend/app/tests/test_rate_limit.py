"""
Tests for the sliding-window rate limiter.
"""
import pytest
import redis
from starlette.requests import Request
from app.core.config import settings
from app.core.rate_limit import MemoryCounterStore, RateLimiter, client_address, set_counter_store


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_limiter_admits_up_to_limit():
    clock = FakeClock()
    limiter = RateLimiter("test", 3, 60, "slow down", store=MemoryCounterStore(), clock=clock)

    results = [limiter.check("10.0.0.1") for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert results[-1].reset_after == 60


def test_window_slides():
    clock = FakeClock()
    limiter = RateLimiter("test", 2, 60, "slow down", store=MemoryCounterStore(), clock=clock)

    limiter.check("a")
    clock.now = 30
    limiter.check("a")
    assert limiter.check("a").allowed is False

    clock.now = 61
    result = limiter.check("a")
    assert result.allowed is True
    assert result.count == 2


def test_clients_and_limiters_are_independent():
    store = MemoryCounterStore()
    clock = FakeClock()
    auth = RateLimiter("auth", 1, 60, "slow down", store=store, clock=clock)
    analytics = RateLimiter("analytics", 1, 60, "slow down", store=store, clock=clock)

    assert auth.check("a").allowed
    assert not auth.check("a").allowed
    assert auth.check("b").allowed
    assert analytics.check("a").allowed


def test_memory_store_forgets_idle_clients():
    store = MemoryCounterStore()
    clock = FakeClock()
    limiter = RateLimiter("general", 1000, 3600, "slow down", store=store, clock=clock)
    for n in range(5000):
        limiter.check(f"10.{n // 256}.{n % 256}.1")
    assert len(store._hits) == 5000

    clock.now += 10 * 3600
    limiter.check("10.0.0.1")
    assert list(store._hits) == ["general:10.0.0.1"]


def _request(headers=None, host="10.0.0.9"):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (host, 1234),
    }
    return Request(scope)


def test_client_address_ignores_forwarded_for_by_default(monkeypatch):
    monkeypatch.setattr(settings, "TRUST_PROXY", False)
    assert client_address(_request({"X-Forwarded-For": "1.2.3.4"})) == "10.0.0.9"


def test_client_address_trusts_proxy_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "TRUST_PROXY", True)
    assert client_address(_request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})) == "1.2.3.4"


@pytest.fixture
def limits_enabled(monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)


def test_auth_limit_returns_429(client, limits_enabled):
    credentials = {"email": "nobody@example.com", "password": "wrongpassword"}
    for _ in range(5):
        response = client.post("/api/auth/login", json=credentials)
        assert response.status_code == 401

    response = client.post("/api/auth/login", json=credentials)
    assert response.status_code == 429
    assert response.json()["message"] == "Too many authentication attempts, please try again later"
    assert int(response.headers["Retry-After"]) > 0
    assert response.headers["RateLimit-Remaining"] == "0"


def test_admitted_requests_carry_headers(client, user_headers, limits_enabled):
    response = client.get("/api/analytics/trends", headers=user_headers)
    assert response.status_code == 200
    assert response.headers["RateLimit-Limit"] == "50"
    assert response.headers["RateLimit-Remaining"] == "49"


def test_export_carries_rate_limit_headers(client, user_headers, limits_enabled):
    response = client.get("/api/transactions/export", headers=user_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["RateLimit-Limit"] == "100"
    assert response.headers["RateLimit-Remaining"] == "99"


def test_limits_skipped_in_test_mode(client):
    credentials = {"email": "nobody@example.com", "password": "wrongpassword"}
    for _ in range(7):
        assert client.post("/api/auth/login", json=credentials).status_code == 401


class FailingStore(MemoryCounterStore):
    def hit(self, key, limit, window, now):
        raise redis.ConnectionError("connection refused")


def test_store_failure_admits_request(client, user_headers, limits_enabled):
    set_counter_store(FailingStore())
    response = client.get("/api/categories", headers=user_headers)
    assert response.status_code == 200
