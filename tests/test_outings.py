"""
Tests for the outing mirror endpoints and carpool summaries.
"""

from datetime import datetime, timezone, timedelta

import pytest
from httpx import AsyncClient

from conftest import ORGANIZER_ID, OTHER_DRIVER_ID, auth_headers_for


@pytest.mark.asyncio
async def test_create_outing(client: AsyncClient):
    response = await client.post(
        "/api/v1/outings/",
        json={
            "title": "Epave du Liban",
            "location": "Marseille",
            "starts_at": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
        },
        headers=auth_headers_for(ORGANIZER_ID),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Epave du Liban"
    assert data["organizer_id"] == ORGANIZER_ID
    assert data["status"] == "scheduled"


@pytest.mark.asyncio
async def test_create_outing_in_the_past(client: AsyncClient):
    response = await client.post(
        "/api/v1/outings/",
        json={
            "title": "Too late",
            "starts_at": (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat(),
        },
        headers=auth_headers_for(ORGANIZER_ID),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_get_outing(client: AsyncClient, outing):
    response = await client.get(f"/api/v1/outings/{outing.id}")
    assert response.status_code == 200
    assert response.json()["id"] == outing.id


@pytest.mark.asyncio
async def test_get_outing_not_found(client: AsyncClient):
    response = await client.get("/api/v1/outings/99999")
    assert response.status_code == 404
    assert response.json()["error"] == "outing_not_found"


@pytest.mark.asyncio
async def test_cancel_outing_not_organizer(client: AsyncClient, outing):
    response = await client.post(
        f"/api/v1/outings/{outing.id}/cancel", headers=auth_headers_for(OTHER_DRIVER_ID)
    )
    assert response.status_code == 403
    assert response.json()["error"] == "not_owner"


@pytest.mark.asyncio
async def test_cancelled_outing_status(client: AsyncClient, outing):
    await client.post(f"/api/v1/outings/{outing.id}/cancel", headers=auth_headers_for(ORGANIZER_ID))

    response = await client.get(f"/api/v1/outings/{outing.id}")
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancelled_at"] is not None


@pytest.mark.asyncio
async def test_carpool_summary(client: AsyncClient, outing, started_outing, trip_offer, second_offer):
    await client.post(
        "/api/v1/bookings/", json={"trip_offer_id": trip_offer.id}, headers=auth_headers_for(10)
    )

    response = await client.get(
        "/api/v1/outings/carpool-summary",
        params=[("outing_ids", outing.id), ("outing_ids", started_outing.id)],
    )
    assert response.status_code == 200
    assert response.json() == [
        {"outing_id": outing.id, "offer_count": 2, "seats_remaining": 6},
        {"outing_id": started_outing.id, "offer_count": 0, "seats_remaining": 0},
    ]


@pytest.mark.asyncio
async def test_carpool_summary_ignores_withdrawn(client: AsyncClient, outing, trip_offer, driver_headers):
    await client.delete(f"/api/v1/trip-offers/{trip_offer.id}", headers=driver_headers)

    response = await client.get(
        "/api/v1/outings/carpool-summary", params={"outing_ids": outing.id}
    )
    assert response.json() == [{"outing_id": outing.id, "offer_count": 0, "seats_remaining": 0}]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"] == "disabled"


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient, trip_offer):
    await client.post(
        "/api/v1/bookings/", json={"trip_offer_id": trip_offer.id}, headers=auth_headers_for(10)
    )
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "carpool_booking_attempts_total" in response.text
