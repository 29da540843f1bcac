from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_issue_list(client: AsyncClient, make_issue):
    now = datetime.now(timezone.utc)
    for i in range(3):
        await make_issue(f"O11Y-{i}", now=now, age=timedelta(hours=i + 1), labels=["oncall"], components=["tikv"])
    await make_issue("O11Y-old", now=now, age=timedelta(days=60))

    response = await client.get("/api/dashboard/issues", params={"days": 7, "page_size": 2})
    assert response.status_code == 200
    data = response.json()
    assert [i["id"] for i in data] == ["O11Y-0", "O11Y-1"]
    assert data[0]["labels"] == ["oncall"]
    assert data[0]["components"] == ["tikv"]

    response = await client.get("/api/dashboard/issues", params={"days": 7, "page": 2, "page_size": 2})
    assert [i["id"] for i in response.json()] == ["O11Y-2"]


@pytest.mark.asyncio
async def test_mute_hides_issue(client: AsyncClient, make_issue):
    now = datetime.now(timezone.utc)
    await make_issue("O11Y-1", now=now)
    await make_issue("O11Y-2", now=now)

    response = await client.post("/api/issues/O11Y-1/mute", json={"reason": "known noise"})
    assert response.status_code == 201
    assert response.json()["issue_id"] == "O11Y-1"
    assert response.json()["reason"] == "known noise"

    listed = await client.get("/api/dashboard/issues")
    assert [i["id"] for i in listed.json()] == ["O11Y-2"]

    dashboard = await client.get("/api/dashboard")
    assert dashboard.json()["total_alerts"]["current"] == 1


@pytest.mark.asyncio
async def test_mute_twice_conflicts(client: AsyncClient):
    first = await client.post("/api/issues/O11Y-1/mute")
    assert first.status_code == 201
    assert first.json()["reason"] == "User muted via dashboard"

    second = await client.post("/api/issues/O11Y-1/mute")
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_unmute_restores_issue(client: AsyncClient, make_issue):
    await make_issue("O11Y-1", now=datetime.now(timezone.utc))
    await client.post("/api/issues/O11Y-1/mute")

    response = await client.delete("/api/issues/O11Y-1/mute")
    assert response.status_code == 200
    assert response.json()["status"] == "success"

    listed = await client.get("/api/dashboard/issues")
    assert [i["id"] for i in listed.json()] == ["O11Y-1"]


@pytest.mark.asyncio
async def test_unmute_unknown_issue(client: AsyncClient):
    response = await client.delete("/api/issues/O11Y-404/mute")
    assert response.status_code == 404
