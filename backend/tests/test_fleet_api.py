"""Fleet maintenance API tests."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def test_maintenance_window_lifecycle(client: AsyncClient, castles) -> None:
    castle_id = str(castles["CastleA"].id)

    created = await client.post(
        f"/api/v1/admin/fleet/{castle_id}/maintenance",
        json={"start_date": "2024-07-02", "end_date": "2024-07-03", "notes": "Seam repair"},
    )
    assert created.status_code == 201
    window = created.json()
    assert window["status"] == "maintenance"

    listed = await client.get(
        f"/api/v1/admin/fleet/{castle_id}/maintenance",
        params={"start": "2024-07-01", "end": "2024-07-31"},
    )
    assert [item["id"] for item in listed.json()] == [window["id"]]

    availability = await client.get(
        "/api/v1/availability",
        params={"castle_id": castle_id, "start": "2024-07-02", "end": "2024-07-02"},
    )
    assert availability.json()[0]["status"] == "maintenance"
    assert availability.json()[0]["reason"] == "Seam repair"

    deleted = await client.delete(f"/api/v1/admin/fleet/{castle_id}/maintenance/{window['id']}")
    assert deleted.status_code == 204

    listed = await client.get(f"/api/v1/admin/fleet/{castle_id}/maintenance")
    assert listed.json() == []


async def test_out_of_service_marks_days_unavailable(client: AsyncClient, castles) -> None:
    castle_id = str(castles["CastleB"].id)
    await client.post(
        f"/api/v1/admin/fleet/{castle_id}/maintenance",
        json={"start_date": "2024-07-02", "end_date": "2024-07-02", "status": "out_of_service"},
    )

    availability = await client.get(
        "/api/v1/availability",
        params={"castle_id": castle_id, "start": "2024-07-02", "end": "2024-07-02"},
    )

    assert availability.json()[0]["status"] == "unavailable"


async def test_invalid_windows(client: AsyncClient, castles) -> None:
    castle_id = str(castles["CastleA"].id)

    backwards = await client.post(
        f"/api/v1/admin/fleet/{castle_id}/maintenance",
        json={"start_date": "2024-07-03", "end_date": "2024-07-02"},
    )
    unknown_castle = await client.post(
        f"/api/v1/admin/fleet/{uuid.uuid4()}/maintenance",
        json={"start_date": "2024-07-02", "end_date": "2024-07-02"},
    )
    unknown_window = await client.delete(
        f"/api/v1/admin/fleet/{castle_id}/maintenance/{uuid.uuid4()}"
    )

    assert backwards.status_code == 400
    assert unknown_castle.status_code == 404
    assert unknown_window.status_code == 404
