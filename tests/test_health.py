#!/usr/bin/env python3
"""
Basic health endpoint tests for CI/CD pipeline.
"""

import pytest

from slotbook.core.config import settings


@pytest.mark.smoke
@pytest.mark.asyncio
async def test_health_endpoint(client):
    response = await client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.smoke
@pytest.mark.asyncio
async def test_ready_endpoint(client):
    response = await client.get("/readyz")
    assert response.status_code == 200
    assert response.json() == {"db": "ok"}


@pytest.mark.smoke
@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    response = await client.get("/metrics")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["bookings"]["bookings"] == 0
    assert "errors" in data


@pytest.mark.smoke
@pytest.mark.asyncio
async def test_correlation_id_header(client):
    response = await client.get("/healthz")
    assert len(response.headers["X-Correlation-ID"]) == 8


@pytest.mark.smoke
@pytest.mark.asyncio
async def test_api_key_protection(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "test_api_key")

    assert (await client.get("/providers")).status_code == 401
    assert (await client.get("/providers", headers={"X-API-Key": "wrong"})).status_code == 401
    assert (await client.get("/providers", headers={"X-API-Key": "test_api_key"})).status_code == 200
    assert (await client.get("/healthz")).status_code == 200


@pytest.mark.smoke
def test_app_startup():
    """Test that the FastAPI app publishes the booking routes"""
    from slotbook.main import app

    paths = app.openapi()["paths"]
    assert "get" in paths["/providers/{provider_id}/slots"]
    assert "post" in paths["/appointments"]
    assert "get" in paths["/appointments"]
    assert "post" in paths["/appointments/groups/{booking_group_id}/cancel"]
    # Health checks stay out of the schema
    assert "/healthz" not in paths
