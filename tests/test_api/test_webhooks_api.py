# ABOUTME: Tests for webhook registration endpoints
# ABOUTME: Verifies creation, secret handling, request validation, and owner-scoped listing

from tests.conftest import issue_test_key


def writer_headers(platform, owner_id="employer_1"):
    plaintext, _ = issue_test_key(platform, owner_id=owner_id, scopes=("webhooks:write", "webhooks:read"),
                                  name=f"{owner_id} hooks")
    return {"Authorization": f"Bearer {plaintext}"}


def test_register_webhook(client, platform):
    response = client.post("/api/webhooks", headers=writer_headers(platform), json={
        "url": "https://ats.example.com/hooks/209",
        "events": ["job.created", "application.received"],
    })

    assert response.status_code == 201
    data = response.json()
    assert data["id"].startswith("whk_")
    assert data["url"] == "https://ats.example.com/hooks/209"
    assert data["events"] == ["job.created", "application.received"]
    assert len(data["secret"]) == 32
    assert data["status"] == "active"
    assert data["failure_count"] == 0
    assert data["retry_policy"] == {"max_retries": 3, "backoff_multiplier": 2.0, "max_backoff_seconds": 300}


def test_register_webhook_with_own_secret(client, platform):
    response = client.post("/api/webhooks", headers=writer_headers(platform), json={
        "url": "https://ats.example.com/hooks",
        "events": ["job.created"],
        "secret": "0123456789abcdef0123",
    })

    assert response.json()["secret"] == "0123456789abcdef0123"


def test_listing_masks_secrets_and_scopes_to_owner(client, platform):
    headers = writer_headers(platform, "employer_1")
    client.post("/api/webhooks", headers=headers, json={
        "url": "https://ats.example.com/hooks", "events": ["job.created"], "secret": "0123456789abcdef0123",
    })
    client.post("/api/webhooks", headers=writer_headers(platform, "employer_2"), json={
        "url": "https://other.example.com/hooks", "events": ["job.created"],
    })

    data = client.get("/api/webhooks", headers=headers).json()

    assert data["meta"]["count"] == 1
    assert data["data"][0]["url"] == "https://ats.example.com/hooks"
    assert data["data"][0]["secret"] == "********0123"


def test_register_webhook_validates_body(client, platform):
    headers = writer_headers(platform)

    assert client.post("/api/webhooks", headers=headers, json={
        "url": "not a url", "events": ["job.created"],
    }).status_code == 422
    assert client.post("/api/webhooks", headers=headers, json={
        "url": "https://ats.example.com/hooks", "events": [],
    }).status_code == 422
    assert client.post("/api/webhooks", headers=headers, json={
        "url": "https://ats.example.com/hooks", "events": ["job.created"], "secret": "short",
    }).status_code == 422


def test_blank_events_return_400(client, platform):
    response = client.post("/api/webhooks", headers=writer_headers(platform), json={
        "url": "https://ats.example.com/hooks", "events": [""],
    })

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PARAMETER"


def test_register_requires_write_scope(client, platform):
    plaintext, _ = issue_test_key(platform, scopes=("webhooks:read",))

    response = client.post("/api/webhooks", headers={"Authorization": f"Bearer {plaintext}"}, json={
        "url": "https://ats.example.com/hooks", "events": ["job.created"],
    })

    assert response.status_code == 403
