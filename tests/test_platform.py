from unittest.mock import AsyncMock, MagicMock

from httpx import ASGITransport, AsyncClient
from pymongo.errors import ServerSelectionTimeoutError

from justbecause.main import app


async def test_health(client, monkeypatch):
    fake_db = MagicMock()
    fake_db.command = AsyncMock(return_value={"ok": 1})
    monkeypatch.setattr("justbecause.routes.platform.db", fake_db)

    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    fake_db.command.assert_awaited_once_with("ping")


async def test_health_reports_database_outage(client, monkeypatch):
    fake_db = MagicMock()
    fake_db.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
    monkeypatch.setattr("justbecause.routes.platform.db", fake_db)

    response = await client.get("/api/health")
    assert response.status_code == 503


async def test_root(client):
    body = (await client.get("/")).json()
    assert body["health"] == "/api/health"


async def test_impact(client, project, volunteer):
    impact = (await client.get("/api/impact")).json()
    assert impact["volunteers"] == 1
    assert impact["ngos"] == 1
    assert impact["active_projects"] == 1


async def test_locale_messages(client):
    response = await client.get("/api/i18n/UR")
    assert response.status_code == 200
    assert response.json()["dir"] == "rtl"
    assert response.json()["messages"]["common"]["platformName"] == "JustBeCause Network"

    assert (await client.get("/api/i18n/fr")).status_code == 404


async def test_negotiate_from_header(client):
    response = await client.get("/api/i18n/negotiate", headers={"Accept-Language": "pa-IN,en;q=0.5"})
    assert response.json() == {"locale": "pa", "dir": "ltr"}


async def test_unhandled_errors_are_logged(db, monkeypatch):
    monkeypatch.setattr(
        "justbecause.routes.platform.get_dictionary", MagicMock(side_effect=RuntimeError("broken locale file"))
    )
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as quiet_client:
        response = await quiet_client.get("/api/i18n/en")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}

    error = await db.error_logs.find_one({"error_type": "RuntimeError"})
    assert error["endpoint"] == "/api/i18n/en"
    assert "broken locale file" in error["stack_trace"]
