from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from family_health.config import settings
from family_health.main import app as fastapi_app
from family_health.middleware.rate_limit import (
    AUTH,
    GENERAL,
    UNKNOWN_IDENTIFIER,
    UPLOAD,
    RateLimiter,
    RateLimitPolicy,
)
from tests.conftest import auth_headers, own_member_id, pdf_file


def tight_limiter(general: int = 100, auth: int = 100, upload: int = 100) -> RateLimiter:
    return RateLimiter(
        [
            RateLimitPolicy(name=GENERAL, window_ms=60_000, max_requests=general, message="general limit"),
            RateLimitPolicy(name=AUTH, window_ms=60_000, max_requests=auth, message="auth limit"),
            RateLimitPolicy(name=UPLOAD, window_ms=60_000, max_requests=upload, message="upload limit"),
        ]
    )


@pytest.mark.asyncio
async def test_health_check_is_not_limited(client: AsyncClient):
    fastapi_app.state.rate_limiter = tight_limiter(general=1)
    for _ in range(5):
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": "0.1.0"}


@pytest.mark.asyncio
async def test_auth_limit_returns_429_with_retry_after(client: AsyncClient):
    fastapi_app.state.rate_limiter = tight_limiter(auth=2)
    payload = {"email": "nobody@example.com", "password": "wrongpassword"}

    for _ in range(2):
        response = await client.post("/api/v1/auth/login", json=payload)
        assert response.status_code == 401

    response = await client.post("/api/v1/auth/login", json=payload)
    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Rate limit exceeded"
    assert body["message"] == "auth limit"
    assert isinstance(body["retryAfter"], int)
    assert 0 <= body["retryAfter"] <= 60
    assert response.headers["Retry-After"] == str(body["retryAfter"])


@pytest.mark.asyncio
async def test_general_limit_applies_to_all_api_routes(client: AsyncClient):
    fastapi_app.state.rate_limiter = tight_limiter(general=3)

    for _ in range(3):
        response = await client.get("/api/v1/family/members")
        assert response.status_code == 401

    response = await client.get("/api/v1/auth/profile")
    assert response.status_code == 429
    assert response.json()["message"] == "general limit"


@pytest.mark.asyncio
async def test_denied_request_does_not_reach_handler(client: AsyncClient):
    fastapi_app.state.rate_limiter = tight_limiter(auth=1)
    payload = {
        "email": "blocked@example.com",
        "password": "securepassword123",
        "familyName": "Blocked",
        "firstName": "B",
        "lastName": "L",
    }
    first = await client.post("/api/v1/auth/register", json={**payload, "email": "first@example.com"})
    assert first.status_code == 201

    blocked = await client.post("/api/v1/auth/register", json=payload)
    assert blocked.status_code == 429

    fastapi_app.state.rate_limiter = tight_limiter()
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "blocked@example.com", "password": "securepassword123"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_upload_limit_is_separate_from_general(client: AsyncClient):
    headers, _ = await auth_headers(client)
    member_id = await own_member_id(client, headers)
    fastapi_app.state.rate_limiter = tight_limiter(upload=1)

    first = await client.post(
        "/api/v1/health/reports",
        data={"memberId": member_id, "reportType": "lab_report"},
        files=pdf_file(),
        headers=headers,
    )
    assert first.status_code == 201

    second = await client.post(
        "/api/v1/health/reports",
        data={"memberId": member_id, "reportType": "lab_report"},
        files=pdf_file(),
        headers=headers,
    )
    assert second.status_code == 429
    assert second.json()["message"] == "upload limit"

    listing = await client.get(f"/api/v1/health/reports/{member_id}", headers=headers)
    assert listing.status_code == 200
    assert listing.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_missing_client_address_shared_bucket(client: AsyncClient):
    limiter = tight_limiter(general=1)
    fastapi_app.state.rate_limiter = limiter
    transport = ASGITransport(app=fastapi_app, client=None)
    async with AsyncClient(transport=transport, base_url="http://test") as anonymous:
        first = await anonymous.get("/api/v1/family/members")
        second = await anonymous.get("/api/v1/family/members")

    assert first.status_code == 401
    assert second.status_code == 429
    assert limiter.store.get(GENERAL, UNKNOWN_IDENTIFIER).count == 1


@pytest.mark.asyncio
async def test_missing_client_address_rejected(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_missing_identifier", "reject")
    limiter = tight_limiter()
    fastapi_app.state.rate_limiter = limiter
    transport = ASGITransport(app=fastapi_app, client=None)
    async with AsyncClient(transport=transport, base_url="http://test") as anonymous:
        response = await anonymous.get("/api/v1/family/members")

    assert response.status_code == 400
    assert response.json()["detail"] == "Client address unavailable"
    assert len(limiter.store) == 0
