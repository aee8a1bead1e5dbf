from fastapi.testclient import TestClient

from psychx.core.logging import redact_secrets


def test_redact_secrets_masks_sensitive_values():
    raw = (
        "authorization=Bearer abc123 "
        "x-goog-api-key=AIzaSySecret "
        "api_key=my-api-key "
        "token=my-token password=my-password"
    )
    masked = redact_secrets(raw)
    assert "abc123" not in masked
    assert "AIzaSySecret" not in masked
    assert "my-api-key" not in masked
    assert "my-token" not in masked
    assert "my-password" not in masked
    assert masked.count("[REDACTED]") >= 5


def test_gateway_auth_enabled_path_requires_api_key(client, monkeypatch):
    from psychx.core.settings import settings

    monkeypatch.setattr(settings, "gateway_auth_enabled", True)
    monkeypatch.setattr(settings, "gateway_api_key", "test-key")

    blocked = client.post("/auth/login", json={"email": "rahul@example.com", "password": "student123"})
    assert blocked.status_code == 401
    assert "missing x-api-key" in str(blocked.json())
    assert client.get("/health").status_code == 200

    allowed = client.post(
        "/auth/login",
        json={"email": "rahul@example.com", "password": "student123"},
        headers={"x-api-key": "test-key"},
    )
    assert allowed.status_code == 200


def test_invalid_bearer_token_is_treated_as_anonymous(client):
    resp = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "not_authenticated"


def test_storage_outage_returns_error_envelope(client, monkeypatch):
    from psychx.memory.records import UserStore

    async def _raise_db(*_args, **_kwargs):
        raise RuntimeError("db unavailable")

    monkeypatch.setattr(UserStore, "get_by_email", _raise_db)
    quiet_client = TestClient(client.app, raise_server_exceptions=False)
    response = quiet_client.post("/auth/login", json={"email": "rahul@example.com", "password": "student123"})
    assert response.status_code == 500
    body = response.json()
    assert body.get("success") is False
    assert body.get("error", {}).get("code") == "internal_error"


def test_demo_accounts_are_not_seeded_by_default(monkeypatch):
    from psychx.core.settings import Settings

    monkeypatch.delenv("SEED_DEMO_DATA", raising=False)
    assert Settings(_env_file=None).seed_demo_data is False
