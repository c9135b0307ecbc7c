import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_reports_database(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["db"] is True
    assert isinstance(data["redis"], bool)


@pytest.mark.asyncio
async def test_audit_log_category_filter(async_client: AsyncClient, login_as):
    await login_as("admin")
    await async_client.put("/api/v1/permissions/preview", json={"role": "manager"})
    await async_client.delete("/api/v1/permissions/preview")

    logs = (await async_client.get("/api/v1/audit-logs", params={"category": "security"})).json()
    assert [entry["action"] for entry in logs] == ["exit_preview", "preview_role"]

    resp = await async_client.get("/api/v1/audit-logs", params={"category": "gossip"})
    assert resp.status_code == 400


def test_shop_timezone_offset():
    from datetime import timedelta

    from pydantic import ValidationError

    from posdesk.core.config import Settings, parse_tz_offset

    assert parse_tz_offset("+05:30").utcoffset(None) == timedelta(hours=5, minutes=30)
    assert parse_tz_offset("-03:00").utcoffset(None) == timedelta(hours=-3)
    with pytest.raises(ValidationError):
        Settings(TIMEZONE_OFFSET="UTC")
