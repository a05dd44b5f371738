# ABOUTME: Authentication, authorization, and rate limiting tests for protected routes
# ABOUTME: Verifies error envelopes, rate limit headers, concurrency caps, and usage attribution

import time

from apiplatform.models.database import APIKey, APIUsage
from tests.conftest import TestingSessionLocal, issue_test_key


def usage_rows(key_id):
    db = TestingSessionLocal()
    try:
        return db.query(APIUsage).filter(APIUsage.api_key_id == key_id).all()
    finally:
        db.close()


def test_missing_key_returns_401(client):
    response = client.get("/api/webhooks")
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_API_KEY"


def test_unknown_key_returns_401(client):
    response = client.get("/api/webhooks", headers={"Authorization": "Bearer 209w_" + "z" * 32})
    assert response.status_code == 401
    assert response.json() == {"code": "INVALID_API_KEY", "message": "API key is missing or invalid"}


def test_valid_bearer_key_allows_access(client, platform):
    plaintext, key_id = issue_test_key(platform, scopes=("webhooks:read",))

    response = client.get("/api/webhooks", headers={"Authorization": f"Bearer {plaintext}"})

    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "300"
    assert response.headers["X-RateLimit-Remaining"] == "299"
    assert int(response.headers["X-RateLimit-Reset"]) > time.time()

    db = TestingSessionLocal()
    try:
        assert db.get(APIKey, key_id).last_used_at is not None
    finally:
        db.close()


def test_x_api_key_header_is_accepted(client, platform):
    plaintext, _ = issue_test_key(platform, scopes=("webhooks:read",))

    response = client.get("/api/webhooks", headers={"X-API-Key": plaintext})

    assert response.status_code == 200


def test_missing_scope_returns_403_with_required_scope(client, platform):
    plaintext, _ = issue_test_key(platform, scopes=("jobs:read",))

    response = client.get("/api/webhooks", headers={"Authorization": f"Bearer {plaintext}"})

    assert response.status_code == 403
    data = response.json()
    assert data["code"] == "INSUFFICIENT_SCOPE"
    assert data["message"] == "Insufficient permissions"
    assert data["details"] == {"required_scope": "webhooks:read"}


def test_admin_routes_require_admin_scope(client, platform):
    plaintext, _ = issue_test_key(platform, scopes=("jobs:read", "jobs:write"))

    response = client.get("/admin/keys", headers={"Authorization": f"Bearer {plaintext}"})

    assert response.status_code == 403
    assert response.json()["details"] == {"required_scope": "admin"}


def test_suspended_key_returns_401(client, platform):
    plaintext, key_id = issue_test_key(platform, scopes=("webhooks:read",))
    db = TestingSessionLocal()
    try:
        platform.set_key_status(db, key_id, "suspended")
    finally:
        db.close()

    response = client.get("/api/webhooks", headers={"Authorization": f"Bearer {plaintext}"})

    assert response.status_code == 401
    assert response.json()["code"] == "INACTIVE_API_KEY"


def test_expired_key_returns_401(client, platform):
    plaintext, _ = issue_test_key(platform, scopes=("webhooks:read",), expires_in_days=-1)

    response = client.get("/api/webhooks", headers={"Authorization": f"Bearer {plaintext}"})

    assert response.status_code == 401
    assert response.json()["code"] == "EXPIRED_API_KEY"


def test_rate_limit_returns_429_with_retry_after(client, platform):
    """The 61st request in one minute on a free key is rejected."""
    frozen = time.time()
    platform.limiter._clock = lambda: frozen
    plaintext, key_id = issue_test_key(platform, scopes=("webhooks:read",), tier="free")
    headers = {"Authorization": f"Bearer {plaintext}"}

    for i in range(60):
        response = client.get("/api/webhooks", headers=headers)
        assert response.status_code == 200, f"Request {i+1} failed with status {response.status_code}"

    response = client.get("/api/webhooks", headers=headers)
    assert response.status_code == 429
    data = response.json()
    assert data["code"] == "RATE_LIMITED"
    assert data["message"].startswith("Rate limit exceeded. Retry after")
    assert data["details"]["window"] == "minute"
    assert data["details"]["remaining"] == 0
    assert 0 <= data["details"]["retry_after"] <= 60
    assert response.headers["Retry-After"] == str(data["details"]["retry_after"])
    assert response.headers["X-RateLimit-Remaining"] == "0"

    # Every attempt, the rejected one included, is recorded
    rows = usage_rows(key_id)
    assert len(rows) == 61
    assert sorted(r.status_code for r in rows)[-1] == 429


def test_concurrency_cap_returns_429(client, platform):
    plaintext, key_id = issue_test_key(platform, scopes=("webhooks:read",), tier="free")
    for _ in range(5):
        assert platform.limiter.acquire_concurrency_slot(key_id, 5)

    response = client.get("/api/webhooks", headers={"Authorization": f"Bearer {plaintext}"})

    assert response.status_code == 429
    assert response.json()["code"] == "CONCURRENCY_LIMIT"


def test_concurrency_slot_released_after_request(client, platform):
    plaintext, key_id = issue_test_key(platform, scopes=("webhooks:read",), tier="free")

    for _ in range(3):
        assert client.get("/api/webhooks", headers={"Authorization": f"Bearer {plaintext}"}).status_code == 200

    # All five slots are free again
    assert all(platform.limiter.acquire_concurrency_slot(key_id, 5) for _ in range(5))


def test_usage_is_recorded_for_resolved_keys(client, platform):
    plaintext, key_id = issue_test_key(platform, scopes=("jobs:read",))
    headers = {"Authorization": f"Bearer {plaintext}", "X-Region": "us-west", "User-Agent": "gateway/1.0"}

    client.get("/api/webhooks", headers=headers)

    rows = usage_rows(key_id)
    assert len(rows) == 1
    row = rows[0]
    assert row.endpoint == "/api/webhooks"
    assert row.method == "GET"
    assert row.status_code == 403
    assert row.region == "us-west"
    assert row.user_agent == "gateway/1.0"
    assert row.response_time_ms >= 0


def test_unauthenticated_requests_are_not_recorded(client):
    client.get("/api/webhooks")
    client.get("/health")

    db = TestingSessionLocal()
    try:
        assert db.query(APIUsage).count() == 0
    finally:
        db.close()
