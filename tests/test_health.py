import pytest


@pytest.mark.anyio("asyncio")
async def test_healthcheck(client):
    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] in {"ok", "degraded"}
    assert payload["db_status"] in {"ok", "error"}
    assert payload["webhook_configured"] is True
    assert payload["webhook_secret_status"] in {"partial", "ok"}
    fps = payload["webhook_secret_fingerprints"]
    assert len(fps["primary"]) == 8
    assert "next" in fps
    assert payload["refunds"].keys() >= {"enabled", "allow_partial", "auto_creditmemo", "api_key_configured"}


@pytest.mark.anyio("asyncio")
async def test_health_degrades_on_db_failure(monkeypatch, client):
    class BrokenEngine:
        def connect(self):  # pragma: no cover - simple stub
            raise RuntimeError("DB down")

    monkeypatch.setattr("payledger.routers.health.get_engine", lambda: BrokenEngine())

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"


@pytest.mark.anyio("asyncio")
async def test_health_reports_missing_secrets(monkeypatch, client, settings):
    monkeypatch.setattr(settings, "webhook_secret", None)
    monkeypatch.setattr(settings, "webhook_secret_next", None)

    payload = (await client.get("/health")).json()

    assert payload["webhook_configured"] is False
    assert payload["webhook_secret_status"] == "missing"
    assert payload["webhook_secret_fingerprints"] == {"primary": None, "next": None}
