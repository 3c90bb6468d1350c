"""
Application surface tests: health, authentication and error format.
"""

import pytest
from saferoute.app.core.jwt import create_access_token
from saferoute.tests.factories import auth_headers, trip_payload


@pytest.mark.asyncio
async def test_health(client, tracking):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["redis"] is True
    assert data["active_sessions"] == 0


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.json()["docs"] == "/docs"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_garbage_token_is_unauthorized(client):
    response = await client.get("/v1/trips", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_token_for_unknown_user_is_unauthorized(client):
    response = await client.get("/v1/trips", headers=auth_headers("ghost"))
    assert response.status_code == 401
    assert response.json()["message"] == "User not found"


@pytest.mark.asyncio
async def test_token_without_subject_is_unauthorized(client):
    token = create_access_token({"role": "guardian"})
    response = await client.get("/v1/trips", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client):
    response = await client.get("/v1/trips")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_request_validation_error_format(client, circle):
    response = await client.post(
        "/v1/trips/start", json=trip_payload(source_latitude=123.0), headers=auth_headers("alice")
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_correlation_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_health_reports_redis_outage(client, mocker):
    mocker.patch("saferoute.app.main.ping_redis", return_value=False)
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["redis"] is False
